#!/usr/bin/env python3
"""Explore product sales records as cards or a per-customer monthly breakdown."""

from __future__ import annotations

import argparse
import html
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import pandas as pd

from logging_setup import configure_logging
from prepare_product_data import filter_options, load_products
from product_query_engine import (
    DEFAULT_TERM_FIELDS,
    SORT_COLUMNS,
    SUMMARY_COLUMNS,
    FilterCriteria,
    SortDirective,
    aggregate_monthly_breakdown,
    next_sort_directive,
    select_records,
    sort_breakdown,
)


LOGGER = logging.getLogger(__name__)

CARDS_EMPTY_MESSAGE = "No products found."
BREAKDOWN_EMPTY_MESSAGE = "No data matches the selected filters."

CARD_FIELDS = [
    ("SKU", "sku"),
    ("Customer", "customer"),
    ("Quantity", "qty"),
    ("Price", "price"),
    ("Cost", "cost"),
    ("Rep", "rep"),
    ("Invoice #", "invoice_number"),
]

MONEY_FIELDS = {"price", "cost", "total_price_amount", "total_cost_amount", "avg_price", "avg_cost"}

BREAKDOWN_HEADERS = [
    ("Customer", "customer"),
    ("Month", "month"),
    ("Total Qty", "total_qty"),
    ("Total Price", "total_price_amount"),
    ("Avg Price", "avg_price"),
    ("Total Cost", "total_cost_amount"),
    ("Avg Cost", "avg_cost"),
]

SEARCH_FIELD_CHOICES = ["description", "sku", "customer"]


@dataclass(frozen=True)
class ExplorerView:
    mode: str
    rows: pd.DataFrame
    message: str = ""

    @property
    def is_empty(self) -> bool:
        return self.rows.empty


class ExplorerSession:
    """UI state for one explorer: active criteria, sort directive, shown rows.

    Every criteria change recomputes the breakdown from the full record set.
    Header clicks re-sort the rows currently shown, so earlier sorts break
    ties for later ones.
    """

    def __init__(
        self,
        records: pd.DataFrame,
        term_fields: Iterable[str] = DEFAULT_TERM_FIELDS,
    ) -> None:
        self.records = records
        self.term_fields = tuple(term_fields)
        self.criteria = FilterCriteria()
        self.sort_directive: SortDirective | None = None
        self.breakdown = pd.DataFrame(columns=SUMMARY_COLUMNS)

    def update_criteria(self, criteria: FilterCriteria) -> ExplorerView:
        self.criteria = criteria
        if criteria.is_identity():
            self.breakdown = pd.DataFrame(columns=SUMMARY_COLUMNS)
            return self.current_view()

        filtered = select_records(self.records, criteria, self.term_fields)
        breakdown = aggregate_monthly_breakdown(filtered)
        if self.sort_directive is not None:
            breakdown = sort_breakdown(breakdown, self.sort_directive)
        self.breakdown = breakdown
        LOGGER.info(
            "Criteria matched %d records in %d breakdown rows",
            len(filtered),
            len(breakdown),
        )
        return self.current_view()

    def click_sort(self, key: str) -> ExplorerView:
        self.sort_directive = next_sort_directive(self.sort_directive, key)
        self.breakdown = sort_breakdown(self.breakdown, self.sort_directive)
        return self.current_view()

    def current_view(self) -> ExplorerView:
        if self.criteria.is_identity():
            rows = self.records.copy()
            return ExplorerView(
                mode="cards",
                rows=rows,
                message=CARDS_EMPTY_MESSAGE if rows.empty else "",
            )
        return ExplorerView(
            mode="breakdown",
            rows=self.breakdown.copy(),
            message=BREAKDOWN_EMPTY_MESSAGE if self.breakdown.empty else "",
        )


def format_money(value: object) -> str:
    if value is None or pd.isna(value):
        return "-"
    try:
        number = float(value)
    except (TypeError, ValueError):
        return "-"
    return f"${number:.2f}"


def format_value(column: str, value: object) -> str:
    if column in MONEY_FIELDS:
        return format_money(value)
    if value is None or pd.isna(value):
        return "-"
    if isinstance(value, float) and value.is_integer():
        return f"{value:.0f}"
    return str(value)


def render_cards_text(records: pd.DataFrame) -> str:
    if records.empty:
        return CARDS_EMPTY_MESSAGE

    blocks = []
    for _, row in records.iterrows():
        lines = [f"## {row.get('description', '')}"]
        for label, column in CARD_FIELDS:
            lines.append(f"- {label}: {format_value(column, row.get(column))}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def render_breakdown_text(rows: pd.DataFrame) -> str:
    if rows.empty:
        return BREAKDOWN_EMPTY_MESSAGE

    header = "| " + " | ".join(label for label, _ in BREAKDOWN_HEADERS) + " |"
    divider = "|" + "|".join("---" for _ in BREAKDOWN_HEADERS) + "|"
    lines = ["### Filtered Monthly Breakdown", "", header, divider]
    for _, row in rows.iterrows():
        cells = [format_value(column, row[column]) for _, column in BREAKDOWN_HEADERS]
        lines.append("| " + " | ".join(cells) + " |")
    return "\n".join(lines)


def render_view_text(view: ExplorerView) -> str:
    if view.mode == "cards":
        return render_cards_text(view.rows)
    return render_breakdown_text(view.rows)


def _json_records(frame: pd.DataFrame) -> list[dict]:
    return json.loads(frame.to_json(orient="records", force_ascii=False))


def view_to_payload(view: ExplorerView, session: ExplorerSession | None = None) -> dict:
    payload = {
        "mode": view.mode,
        "message": view.message,
        "rows": _json_records(view.rows),
    }
    if session is not None and session.sort_directive is not None:
        payload["sort"] = {
            "key": session.sort_directive.key,
            "ascending": session.sort_directive.ascending,
        }
    return payload


def _html_cards(records: pd.DataFrame) -> str:
    cards = []
    for _, row in records.iterrows():
        fields = "".join(
            f"<p><strong>{html.escape(label)}:</strong> "
            f"{html.escape(format_value(column, row.get(column)))}</p>"
            for label, column in CARD_FIELDS
        )
        title = html.escape(str(row.get("description", "")))
        cards.append(f"<div class='card'><h3>{title}</h3>{fields}</div>")
    return "".join(cards)


def _html_breakdown(rows: pd.DataFrame) -> str:
    head = "".join(f"<th>{html.escape(label)}</th>" for label, _ in BREAKDOWN_HEADERS)
    body = "".join(
        "<tr>"
        + "".join(
            f"<td>{html.escape(format_value(column, row[column]))}</td>"
            for _, column in BREAKDOWN_HEADERS
        )
        + "</tr>"
        for _, row in rows.iterrows()
    )
    return (
        "<h3>Filtered Monthly Breakdown</h3>"
        "<table class='breakdown-table'>"
        f"<thead><tr>{head}</tr></thead><tbody>{body}</tbody></table>"
    )


def write_html_view(path: Path, view: ExplorerView, generated_at: str) -> None:
    if view.is_empty:
        content = f"<p>{html.escape(view.message)}</p>"
    elif view.mode == "cards":
        content = _html_cards(view.rows)
    else:
        content = _html_breakdown(view.rows)

    template = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>Product Explorer</title>
  <style>
    body { font-family: sans-serif; margin: 24px; }
    .card { border: 1px solid #ddd; border-radius: 6px; padding: 12px; margin-bottom: 12px; }
    .breakdown-table { border-collapse: collapse; }
    .breakdown-table th, .breakdown-table td { border: 1px solid #ddd; padding: 4px 8px; }
  </style>
</head>
<body>
  <p class="last-updated">Generated at: __GENERATED_AT__</p>
  <div id="resultsContainer">__CONTENT__</div>
</body>
</html>
"""
    document = template.replace("__GENERATED_AT__", html.escape(generated_at)).replace(
        "__CONTENT__", content
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document, encoding="utf-8")


def build_criteria(args: argparse.Namespace) -> FilterCriteria:
    return FilterCriteria.from_form(
        {
            "term": args.term,
            "customer": args.customer,
            "rep": args.rep,
            "sku": args.sku,
            "min_price": args.min_price,
            "max_price": args.max_price,
        }
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    root = Path(__file__).resolve().parents[1]
    parser = argparse.ArgumentParser(
        description="Filter product records and show cards or a monthly breakdown."
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=root / "data" / "products.json",
        help="Path to source products JSON file.",
    )
    parser.add_argument("--term", default="", help="Free-text search term.")
    parser.add_argument("--customer", default="", help="Exact customer name.")
    parser.add_argument("--rep", default="", help="Exact sales rep name.")
    parser.add_argument("--sku", default="", help="Exact SKU.")
    parser.add_argument(
        "--min-price", type=float, default=None, help="Inclusive minimum price."
    )
    parser.add_argument(
        "--max-price", type=float, default=None, help="Inclusive maximum price."
    )
    parser.add_argument(
        "--search-field",
        action="append",
        choices=SEARCH_FIELD_CHOICES,
        default=None,
        help="Field matched by --term (repeatable). Defaults to description and sku.",
    )
    parser.add_argument(
        "--sort",
        action="append",
        choices=sorted(SORT_COLUMNS),
        default=[],
        help="Breakdown column header click (repeatable; repeating a key flips direction).",
    )
    parser.add_argument(
        "--format",
        choices=["text", "json", "html"],
        default="text",
        help="Output format.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write output to this file instead of stdout (required for html).",
    )
    parser.add_argument(
        "--list-options",
        action="store_true",
        help="Print the customer, rep and SKU values available for filtering.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (defaults to PRODUCT_EXPLORER_LOG_LEVEL or WARNING).",
    )
    args = parser.parse_args(argv)
    if args.format == "html" and args.output is None:
        parser.error("--format html requires --output")
    return args


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level)

    records = load_products(args.input)
    LOGGER.info("Loaded %d records from %s", len(records), args.input)

    if args.list_options:
        options = filter_options(records)
        print(json.dumps(options, ensure_ascii=False, indent=2))
        return

    session = ExplorerSession(records, args.search_field or DEFAULT_TERM_FIELDS)
    view = session.update_criteria(build_criteria(args))
    for key in args.sort:
        view = session.click_sort(key)

    if args.format == "html":
        generated_at = datetime.now().isoformat(timespec="seconds")
        write_html_view(args.output, view, generated_at)
        print(f"Wrote {view.mode} view: {args.output}")
        return

    if args.format == "json":
        text = json.dumps(
            view_to_payload(view, session), ensure_ascii=False, indent=2, default=str
        )
    else:
        text = render_view_text(view)

    if args.output is not None:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {view.mode} view: {args.output}")
        return
    print(text)


if __name__ == "__main__":
    main()
