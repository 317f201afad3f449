#!/usr/bin/env python3
"""Load the products.json record store into a normalized pandas frame."""

from __future__ import annotations

import argparse
import hashlib
import json
import re
from pathlib import Path

import pandas as pd

from product_query_engine import parse_record_dates


COLUMN_RENAME_MAP = {
    "SKU": "sku",
    "Description": "description",
    "Customer": "customer",
    "Rep": "rep",
    "Qty": "qty",
    "Price": "price",
    "Cost": "cost",
    "Date": "date",
    "inv#": "invoice_number",
    "Inv#": "invoice_number",
    "invoiceNumber": "invoice_number",
}

EXPECTED_COLUMNS = [
    "sku",
    "description",
    "customer",
    "rep",
    "qty",
    "price",
    "cost",
    "date",
    "invoice_number",
]

STRING_COLUMNS = [
    "sku",
    "description",
    "customer",
    "rep",
    "invoice_number",
]

NUMERIC_COLUMNS = [
    "qty",
    "price",
    "cost",
]

OPTION_COLUMNS = ["customer", "rep", "sku"]


def canonical_column(header: object) -> str:
    text = re.sub(r"\s+", " ", str(header or "").strip())
    if text in COLUMN_RENAME_MAP:
        return COLUMN_RENAME_MAP[text]
    return re.sub(r"[^a-zA-Z0-9]+", "_", text).strip("_").lower() or "unknown"


def clean_numeric(series: pd.Series) -> pd.Series:
    text = (
        series.astype("string")
        .str.strip()
        .str.replace(",", "", regex=False)
        .str.replace("$", "", regex=False)
    )
    text = text.replace({"": pd.NA, "-": pd.NA, "nan": pd.NA})
    return pd.to_numeric(text, errors="coerce")


def source_fingerprint(path: Path) -> dict:
    stat = path.stat()
    return {
        "file_name": path.name,
        "size": stat.st_size,
        "mtime_ns": stat.st_mtime_ns,
        "sha256": hashlib.sha256(path.read_bytes()).hexdigest(),
    }


def merge_duplicate_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Collapse columns sharing a label, first non-null value per row wins.

    Records mixing key spellings (``inv#`` and ``invoiceNumber``) land in two
    columns with the same canonical name after renaming.
    """
    if not frame.columns.duplicated().any():
        return frame.copy()

    merged: dict[str, pd.Series] = {}
    for column in dict.fromkeys(frame.columns):
        positions = [i for i, label in enumerate(frame.columns) if label == column]
        values = frame.iloc[:, positions[0]]
        for position in positions[1:]:
            values = values.combine_first(frame.iloc[:, position])
        merged[column] = values.rename(column)
    return pd.DataFrame(merged, index=frame.index)


def clean_records(frame: pd.DataFrame) -> pd.DataFrame:
    renamed = frame.set_axis([canonical_column(col) for col in frame.columns], axis=1)
    out = merge_duplicate_columns(renamed)

    for column in EXPECTED_COLUMNS:
        if column not in out.columns:
            out[column] = pd.NA

    for column in STRING_COLUMNS:
        out[column] = out[column].astype("string").fillna("").str.strip()

    for column in NUMERIC_COLUMNS:
        out[column] = clean_numeric(out[column])

    extra = [col for col in out.columns if col not in EXPECTED_COLUMNS]
    return out[EXPECTED_COLUMNS + extra].reset_index(drop=True)


def load_products(path: Path) -> pd.DataFrame:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input not found: {path}")

    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict) and "products" in payload:
        payload = payload["products"]
    if not isinstance(payload, list) or not all(
        isinstance(item, dict) for item in payload
    ):
        raise ValueError(f"Expected a JSON array of product objects in {path}")

    return clean_records(pd.DataFrame(payload))


def filter_options(records: pd.DataFrame) -> dict[str, list[str]]:
    options: dict[str, list[str]] = {}
    for column in OPTION_COLUMNS:
        if column not in records.columns:
            options[column] = []
            continue
        values = records[column].astype("string").fillna("").str.strip()
        options[column] = [value for value in values.unique() if value]
    return options


def describe_records(records: pd.DataFrame, source_path: Path | None = None) -> dict:
    undated = int(parse_record_dates(records).isna().sum())
    manifest = {
        "rows": int(len(records)),
        "columns": list(records.columns),
        "options": filter_options(records),
        "undated_records": undated,
    }
    if source_path is not None:
        manifest["source_file"] = str(source_path)
        manifest["source_fingerprint"] = source_fingerprint(Path(source_path))
    return manifest


def parse_args() -> argparse.Namespace:
    root = Path(__file__).resolve().parents[1]
    parser = argparse.ArgumentParser(
        description="Load products.json and summarize the record store."
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=root / "data" / "products.json",
        help="Path to source products JSON file.",
    )
    parser.add_argument(
        "--manifest",
        type=Path,
        default=None,
        help="Optional path to write the dataset manifest as JSON.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress the printed summary.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    records = load_products(args.input)
    manifest = describe_records(records, args.input)

    if args.manifest is not None:
        args.manifest.parent.mkdir(parents=True, exist_ok=True)
        args.manifest.write_text(
            json.dumps(manifest, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )

    if args.quiet:
        return

    print(f"Loaded {manifest['rows']} records from {args.input}")
    for name, values in manifest["options"].items():
        print(f"- {name}: {len(values)} distinct")
    print(f"- undated records: {manifest['undated_records']}")
    if args.manifest is not None:
        print(f"Wrote manifest: {args.manifest}")


if __name__ == "__main__":
    main()
