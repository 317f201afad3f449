"""Filter, group and sort product sales records for the explorer views."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

import pandas as pd


LOGGER = logging.getLogger(__name__)

DEFAULT_TERM_FIELDS = ("description", "sku")

EXACT_MATCH_FIELDS = ["customer", "rep", "sku"]

SUMMARY_COLUMNS = [
    "customer",
    "month",
    "month_key",
    "total_qty",
    "total_price_amount",
    "total_cost_amount",
    "avg_price",
    "avg_cost",
]

# "month" orders chronologically through the year-month key, not the label.
SORT_COLUMNS = {
    "customer": "customer",
    "month": "month_key",
    "month_key": "month_key",
    "total_qty": "total_qty",
    "total_price_amount": "total_price_amount",
    "total_cost_amount": "total_cost_amount",
    "avg_price": "avg_price",
    "avg_cost": "avg_cost",
}

# Trailing "Z" or "+HH:MM" after a clock time.
UTC_OFFSET_PATTERN = r"(\d{1,2}:\d{2}(?::\d{2}(?:\.\d+)?)?)\s*(?:[Zz]|[+-]\d{2}(?::?\d{2})?)$"
MONTH_LABEL_FORMAT = "%b %Y"


@dataclass(frozen=True)
class FilterCriteria:
    term: str = ""
    customer: str = ""
    rep: str = ""
    sku: str = ""
    min_price: float | None = None
    max_price: float | None = None

    def is_identity(self) -> bool:
        if self.term or self.customer or self.rep or self.sku:
            return False
        return self.min_price is None and self.max_price is None

    @classmethod
    def from_form(cls, values: Mapping[str, object]) -> FilterCriteria:
        """Build criteria from raw input-widget values.

        Blank strings mean "no constraint"; price bounds accept either
        ``min_price`` or ``minPrice`` style keys.
        """

        def text(key: str) -> str:
            value = values.get(key)
            return "" if value is None else str(value).strip()

        def bound(*keys: str) -> float | None:
            for key in keys:
                if key in values:
                    return _parse_bound(values[key])
            return None

        return cls(
            term=text("term"),
            customer=text("customer"),
            rep=text("rep"),
            sku=text("sku"),
            min_price=bound("min_price", "minPrice"),
            max_price=bound("max_price", "maxPrice"),
        )


@dataclass(frozen=True)
class SortDirective:
    key: str
    ascending: bool = True


def _parse_bound(value: object) -> float | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid price bound: {value!r}") from exc


def _text_column(records: pd.DataFrame, column: str) -> pd.Series:
    if column not in records.columns:
        return pd.Series("", index=records.index, dtype="string")
    return records[column].astype("string").fillna("")


def _numeric_column(records: pd.DataFrame, column: str) -> pd.Series:
    if column not in records.columns:
        return pd.Series(0.0, index=records.index)
    return pd.to_numeric(records[column], errors="coerce").fillna(0)


def _safe_ratio(numerator: pd.Series, denominator: pd.Series) -> pd.Series:
    ratio = numerator.div(denominator)
    return ratio.where(denominator.ne(0), 0.0)


def parse_record_dates(records: pd.DataFrame) -> pd.Series:
    """Parse ``date`` into naive timestamps on each record's own calendar.

    Trailing UTC offsets are dropped before parsing so a late-evening
    ``-05:00`` timestamp stays in its own month. Values with no digits at all
    (``"March"``, ``"n/a"``) count as unparseable.
    """
    if "date" not in records.columns:
        return pd.Series(pd.NaT, index=records.index, dtype="datetime64[ns]")

    raw = records["date"]
    if pd.api.types.is_datetime64_any_dtype(raw):
        return raw.dt.tz_localize(None) if raw.dt.tz is not None else raw.copy()

    text = raw.astype("string").str.strip()
    text = text.str.replace(UTC_OFFSET_PATTERN, r"\1", regex=True)
    has_digits = text.str.contains(r"\d", regex=True).fillna(False).astype(bool)
    text = text.where(has_digits)

    parsed = pd.to_datetime(text, errors="coerce", format="mixed", utc=True)
    return parsed.dt.tz_localize(None)


def format_month_keys(dates: pd.Series) -> pd.Series:
    # Zero-padded so keys compare chronologically for years below 1000 too.
    keys = [
        f"{int(year):04d}-{int(month):02d}"
        for year, month in zip(dates.dt.year, dates.dt.month)
    ]
    return pd.Series(keys, index=dates.index, dtype=object)


def build_filter_mask(
    records: pd.DataFrame,
    criteria: FilterCriteria,
    term_fields: Iterable[str] = DEFAULT_TERM_FIELDS,
) -> pd.Series:
    mask = pd.Series(True, index=records.index, dtype=bool)

    if criteria.term:
        term_mask = pd.Series(False, index=records.index, dtype=bool)
        for field in term_fields:
            term_mask |= (
                _text_column(records, field)
                .str.contains(criteria.term, case=False, regex=False)
                .astype(bool)
            )
        mask &= term_mask

    for field in EXACT_MATCH_FIELDS:
        value = getattr(criteria, field)
        if value:
            mask &= _text_column(records, field).eq(value).astype(bool)

    if criteria.min_price is not None or criteria.max_price is not None:
        price = _numeric_column(records, "price")
        if criteria.min_price is not None:
            mask &= price.ge(criteria.min_price)
        if criteria.max_price is not None:
            mask &= price.le(criteria.max_price)

    return mask


def select_records(
    records: pd.DataFrame,
    criteria: FilterCriteria,
    term_fields: Iterable[str] = DEFAULT_TERM_FIELDS,
) -> pd.DataFrame:
    mask = build_filter_mask(records, criteria, term_fields)
    return records.loc[mask].copy()


def aggregate_monthly_breakdown(records: pd.DataFrame) -> pd.DataFrame:
    """Group records by customer and calendar month.

    Records whose ``date`` does not parse are left out of the totals. Groups
    come back in order of first appearance; chronological order is a sort
    on ``month``.
    """
    dates = parse_record_dates(records)
    valid = dates.notna()
    skipped = int((~valid).sum())
    if skipped:
        LOGGER.debug("Excluded %d undated records from monthly breakdown", skipped)

    dated = records.loc[valid].reset_index(drop=True)
    if dated.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    parsed = dates.loc[valid].reset_index(drop=True)

    qty = _numeric_column(dated, "qty")
    work = pd.DataFrame(
        {
            "customer": _text_column(dated, "customer"),
            "month_key": format_month_keys(parsed),
            "month": parsed.dt.strftime(MONTH_LABEL_FORMAT),
            "total_qty": qty,
            "total_price_amount": _numeric_column(dated, "price") * qty,
            "total_cost_amount": _numeric_column(dated, "cost") * qty,
        }
    )

    grouped = (
        work.groupby(["customer", "month_key"], sort=False, dropna=False)
        .agg(
            month=("month", "first"),
            total_qty=("total_qty", "sum"),
            total_price_amount=("total_price_amount", "sum"),
            total_cost_amount=("total_cost_amount", "sum"),
        )
        .reset_index()
    )
    grouped["avg_price"] = _safe_ratio(
        grouped["total_price_amount"], grouped["total_qty"]
    )
    grouped["avg_cost"] = _safe_ratio(
        grouped["total_cost_amount"], grouped["total_qty"]
    )

    LOGGER.debug(
        "Aggregated %d records into %d customer-month rows", len(work), len(grouped)
    )
    return grouped[SUMMARY_COLUMNS]


def next_sort_directive(current: SortDirective | None, key: str) -> SortDirective:
    if current is not None and current.key == key:
        return SortDirective(key=key, ascending=not current.ascending)
    return SortDirective(key=key, ascending=True)


def sort_breakdown(rows: pd.DataFrame, directive: SortDirective) -> pd.DataFrame:
    column = SORT_COLUMNS.get(directive.key)
    assert column is not None, f"Unknown sort key: {directive.key!r}"
    if column is None:
        return rows.copy()

    return rows.sort_values(column, ascending=directive.ascending, kind="stable")


def sort_breakdown_by_keys(
    rows: pd.DataFrame, directives: Sequence[SortDirective]
) -> pd.DataFrame:
    # Stable passes from the least significant key up; first directive wins.
    out = rows.copy()
    for directive in reversed(directives):
        out = sort_breakdown(out, directive)
    return out
