from __future__ import annotations

import json

import pandas as pd
import pytest

from explore_products import (
    BREAKDOWN_EMPTY_MESSAGE,
    CARDS_EMPTY_MESSAGE,
    ExplorerSession,
    format_money,
    main,
    render_breakdown_text,
    render_cards_text,
    view_to_payload,
    write_html_view,
)
from prepare_product_data import load_products
from product_query_engine import FilterCriteria, SortDirective


@pytest.fixture
def session(products_file) -> ExplorerSession:
    return ExplorerSession(load_products(products_file))


class TestExplorerSession:
    def test_identity_criteria_shows_all_cards(self, session):
        view = session.update_criteria(FilterCriteria())
        assert view.mode == "cards"
        assert len(view.rows) == 5
        assert view.message == ""

    def test_active_criteria_shows_breakdown(self, session):
        view = session.update_criteria(FilterCriteria(customer="A"))
        assert view.mode == "breakdown"
        assert list(view.rows["month_key"]) == ["2024-01"]
        assert view.rows.iloc[0]["total_qty"] == 5

    def test_empty_breakdown_has_message(self, session):
        view = session.update_criteria(FilterCriteria(term="chandelier"))
        assert view.is_empty
        assert view.message == BREAKDOWN_EMPTY_MESSAGE

    def test_undated_only_selection_is_empty_breakdown(self, session):
        view = session.update_criteria(FilterCriteria(sku="PND-300"))
        assert view.mode == "breakdown"
        assert view.is_empty

    def test_click_sort_toggles_direction(self, session):
        session.update_criteria(FilterCriteria(min_price=0))
        first = session.click_sort("month")
        assert list(first.rows["month_key"]) == ["2023-12", "2024-01", "2024-02"]
        second = session.click_sort("month")
        assert list(second.rows["month_key"]) == ["2024-02", "2024-01", "2023-12"]
        assert session.sort_directive == SortDirective("month", ascending=False)

    def test_click_on_new_key_resets_to_ascending(self, session):
        session.update_criteria(FilterCriteria(min_price=0))
        session.click_sort("month")
        session.click_sort("month")
        view = session.click_sort("customer")
        assert session.sort_directive == SortDirective("customer", ascending=True)
        assert list(view.rows["customer"]) == ["A", "B", "a"]

    def test_sort_is_reapplied_after_criteria_change(self, session):
        session.update_criteria(FilterCriteria(min_price=0))
        session.click_sort("total_qty")
        session.click_sort("total_qty")
        view = session.update_criteria(FilterCriteria(max_price=100))
        assert list(view.rows["total_qty"]) == [5, 5, 0]
        assert list(view.rows["customer"]) == ["A", "B", "a"]

    def test_clearing_criteria_returns_to_cards(self, session):
        session.update_criteria(FilterCriteria(customer="A"))
        view = session.update_criteria(FilterCriteria())
        assert view.mode == "cards"
        assert session.breakdown.empty

    def test_editing_a_view_leaves_session_rows_alone(self, session):
        view = session.update_criteria(FilterCriteria(min_price=0))
        view.rows.loc[view.rows.index[0], "customer"] = "edited"
        view.rows.drop(view.rows.index[-1], inplace=True)
        assert len(session.breakdown) == 3
        assert "edited" not in list(session.breakdown["customer"])

    def test_empty_record_store(self):
        view = ExplorerSession(pd.DataFrame()).current_view()
        assert view.mode == "cards"
        assert view.message == CARDS_EMPTY_MESSAGE


class TestRendering:
    def test_format_money(self):
        assert format_money(50) == "$50.00"
        assert format_money("1234.5") == "$1234.50"
        assert format_money(None) == "-"
        assert format_money("n/a") == "-"

    def test_cards_text(self, session):
        text = render_cards_text(session.records.head(1))
        assert "## Brass Table Lamp" in text
        assert "- Price: $10.00" in text
        assert "- Invoice #: INV-1" in text

    def test_cards_text_empty(self):
        assert render_cards_text(pd.DataFrame()) == CARDS_EMPTY_MESSAGE

    def test_breakdown_text(self, session):
        view = session.update_criteria(FilterCriteria(customer="A"))
        text = render_breakdown_text(view.rows)
        assert "| Customer | Month | Total Qty |" in text
        assert "| A | Jan 2024 | 5 | $50.00 | $10.00 | $20.00 | $4.00 |" in text

    def test_payload_includes_sort(self, session):
        session.update_criteria(FilterCriteria(customer="A"))
        view = session.click_sort("avg_price")
        payload = view_to_payload(view, session)
        assert payload["mode"] == "breakdown"
        assert payload["sort"] == {"key": "avg_price", "ascending": True}
        assert payload["rows"][0]["total_price_amount"] == 50

    def test_html_escapes_values(self, tmp_path):
        records = pd.DataFrame(
            [{"description": "<b>Lamp</b>", "sku": "S&1", "customer": "A", "qty": 1,
              "price": 2, "cost": 1, "rep": "", "invoice_number": "I1"}]
        )
        session = ExplorerSession(records)
        path = tmp_path / "view.html"
        write_html_view(path, session.current_view(), "2024-01-01T00:00:00")
        document = path.read_text(encoding="utf-8")
        assert "&lt;b&gt;Lamp&lt;/b&gt;" in document
        assert "S&amp;1" in document
        assert "<div class='card'>" in document


class TestMain:
    def test_json_breakdown(self, products_file, capsys):
        main(["--input", str(products_file), "--customer", "A", "--format", "json"])
        payload = json.loads(capsys.readouterr().out)
        assert payload["mode"] == "breakdown"
        assert payload["rows"][0]["month"] == "Jan 2024"

    def test_repeated_sort_flag_toggles(self, products_file, capsys):
        main(
            [
                "--input", str(products_file),
                "--min-price", "0",
                "--sort", "month",
                "--sort", "month",
                "--format", "json",
            ]
        )
        payload = json.loads(capsys.readouterr().out)
        assert [row["month_key"] for row in payload["rows"]] == ["2024-02", "2024-01", "2023-12"]
        assert payload["sort"]["ascending"] is False

    def test_search_field_flag(self, products_file, capsys):
        main(["--input", str(products_file), "--term", "a", "--search-field", "customer"])
        output = capsys.readouterr().out
        assert "| A | Jan 2024 |" in output
        assert "| B |" not in output

    def test_no_criteria_prints_cards(self, products_file, capsys):
        main(["--input", str(products_file)])
        output = capsys.readouterr().out
        assert output.count("## ") == 5

    def test_list_options(self, products_file, capsys):
        main(["--input", str(products_file), "--list-options"])
        options = json.loads(capsys.readouterr().out)
        assert options["customer"] == ["A", "B", "a"]

    def test_html_output(self, products_file, tmp_path, capsys):
        out = tmp_path / "view.html"
        main(["--input", str(products_file), "--rep", "Dana", "--format", "html", "--output", str(out)])
        assert "breakdown-table" in out.read_text(encoding="utf-8")
        assert "Wrote breakdown view" in capsys.readouterr().out

    def test_html_requires_output(self, products_file):
        with pytest.raises(SystemExit):
            main(["--input", str(products_file), "--format", "html"])
