from datetime import date, datetime

import pytest

from channel_ledger.ingest import (
    FormEntry,
    build_form_candidates,
    build_import_template,
    parse_sales_text,
    read_sales_file,
)
from channel_ledger.models import Channel, Item
from channel_ledger.state import BusinessState

NOW = datetime(2024, 3, 5, 14, 30, 15)
WORKING_DATE = date(2024, 3, 5)

HEADER = "date,channel,item,quantity,total_price\n"


def make_state() -> BusinessState:
    return BusinessState(
        items=[Item(id="m1", name="Fried chicken"), Item(id="m2", name="Cold noodles")],
        channels=[
            Channel(id="baemin", name="Baemin", fee_percent=6.8),
            Channel(id="coupang", name="Coupang Eats", fee_percent=9.8, adjustment_percent=2),
        ],
    )


# ---------------------------------------------------------------------------
# Form entry
# ---------------------------------------------------------------------------


def test_form_entries_drop_empty_and_zero_quantities() -> None:
    state = make_state()
    entries = {
        "m1": FormEntry(quantity="2", price="32000"),
        "m2": FormEntry(quantity="0", price="9000"),
    }

    candidates = build_form_candidates(state, "baemin", WORKING_DATE, entries, now=NOW)

    assert len(candidates) == 1
    record = candidates[0]
    assert record.item_id == "m1"
    assert record.channel_id == "baemin"
    assert record.quantity == 2
    assert record.gross_amount == pytest.approx(32000)
    assert record.settlement_amount == pytest.approx(32000 * (1 - 0.068))
    assert record.timestamp == datetime(2024, 3, 5, 14, 30, 15)


def test_form_entries_blank_or_invalid_price_counts_as_zero() -> None:
    state = make_state()
    entries = {
        "m1": FormEntry(quantity="1", price=""),
        "m2": FormEntry(quantity="3", price="abc"),
    }

    candidates = build_form_candidates(state, "baemin", WORKING_DATE, entries, now=NOW)

    assert [c.gross_amount for c in candidates] == [0.0, 0.0]
    assert [c.settlement_amount for c in candidates] == [0.0, 0.0]


def test_form_entries_without_channel_is_noop() -> None:
    state = make_state()
    entries = {"m1": FormEntry(quantity="1", price="1000")}

    assert build_form_candidates(state, None, WORKING_DATE, entries) == []
    assert build_form_candidates(state, "", WORKING_DATE, entries) == []
    assert build_form_candidates(state, "unknown", WORKING_DATE, entries) == []


def test_form_entries_ignore_missing_quantity_and_unknown_items() -> None:
    state = make_state()
    entries = {
        "m1": FormEntry(price="1000"),
        "m2": FormEntry(quantity="-1", price="1000"),
        "ghost": FormEntry(quantity="1", price="1000"),
    }

    assert build_form_candidates(state, "baemin", WORKING_DATE, entries) == []


# ---------------------------------------------------------------------------
# Delimited-text import
# ---------------------------------------------------------------------------


def test_import_skips_unknown_channel() -> None:
    state = make_state()
    text = (
        HEADER
        + "2024-01-01,UnknownChannel,Fried chicken,1,100\n"
        + "2024-01-01,Baemin,Fried chicken,2,30000\n"
    )

    result = parse_sales_text(text, state, WORKING_DATE, now=NOW)

    assert result.total_rows == 2
    assert result.skipped_rows == 1
    assert result.skip_reasons == {"unknown_channel": 1}
    assert len(result.candidates) == 1
    record = result.candidates[0]
    assert record.channel_id == "baemin"
    assert record.item_id == "m1"
    assert record.quantity == 2
    assert record.timestamp == datetime(2024, 1, 1, 14, 30, 15)


def test_import_name_matching_is_exact_and_case_sensitive() -> None:
    state = make_state()
    text = (
        HEADER
        + "2024-01-01,baemin,Fried chicken,1,100\n"
        + "2024-01-01,Baemin,fried chicken,1,100\n"
        + "2024-01-01, Baemin ,Fried chicken,1,100\n"
    )

    result = parse_sales_text(text, state, WORKING_DATE, now=NOW)

    # Surrounding whitespace is trimmed, case is not folded.
    assert result.accepted_rows == 1
    assert result.skip_reasons == {"unknown_channel": 1, "unknown_item": 1}


def test_import_rejects_bad_quantities_and_field_counts() -> None:
    state = make_state()
    text = (
        HEADER
        + "2024-01-01,Baemin,Fried chicken,0,100\n"
        + "2024-01-01,Baemin,Fried chicken,abc,100\n"
        + "2024-01-01,Baemin,Fried chicken,-2,100\n"
        + "2024-01-01,Baemin,Fried chicken,1\n"
        + "2024-01-01,Baemin,Fried chicken,1,100,extra\n"
        + "2024-01-02,Coupang Eats,Cold noodles,1.5,9000\n"
    )

    result = parse_sales_text(text, state, WORKING_DATE, now=NOW)

    assert result.total_rows == 6
    assert result.skipped_rows == 5
    assert result.skip_reasons == {"bad_quantity": 3, "field_count": 2}
    record = result.candidates[0]
    assert record.quantity == pytest.approx(1.5)
    assert record.settlement_amount == pytest.approx(9000 * (1 - 0.118))


def test_import_rejects_infinite_quantities_and_prices() -> None:
    state = make_state()
    text = (
        HEADER
        + "2024-01-01,Baemin,Fried chicken,inf,100\n"
        + "2024-01-01,Baemin,Fried chicken,1e400,100\n"
        + "2024-01-01,Baemin,Fried chicken,2,1e400\n"
    )

    result = parse_sales_text(text, state, WORKING_DATE, now=NOW)

    assert result.skip_reasons == {"bad_quantity": 2}
    assert result.accepted_rows == 1
    assert result.candidates[0].gross_amount == 0.0

    candidates = build_form_candidates(
        state,
        "baemin",
        WORKING_DATE,
        {
            "m1": FormEntry(quantity="inf", price="100"),
            "m2": FormEntry(quantity="1", price="inf"),
        },
        now=NOW,
    )
    assert [(c.item_id, c.gross_amount) for c in candidates] == [("m2", 0.0)]


def test_import_quoted_names_may_contain_newlines() -> None:
    state = make_state()
    state.items.append(Item(id="m3", name="Set menu\nfor two"))
    text = (
        HEADER
        + '2024-01-01,Baemin,"Set menu\nfor two",1,30000\n'
        + "2024-01-01,Baemin,Fried chicken,1,15000\n"
    )

    result = parse_sales_text(text, state, WORKING_DATE, now=NOW)

    assert result.total_rows == 2
    assert result.skip_reasons == {}
    assert [c.item_id for c in result.candidates] == ["m3", "m1"]


def test_import_tolerates_bom_blank_lines_and_missing_dates() -> None:
    state = make_state()
    text = (
        "\ufeff"
        + HEADER
        + "\n"
        + ",Baemin,Fried chicken,1,15000\n"
        + "not-a-date,Baemin,Fried chicken,1,15000\n"
        + "\n"
    )

    result = parse_sales_text(text, state, WORKING_DATE, now=NOW)

    assert result.total_rows == 2
    assert result.skip_reasons == {"bad_date": 1}
    assert result.candidates[0].sale_date == WORKING_DATE


def test_import_price_defaults_to_zero() -> None:
    state = make_state()
    text = HEADER + "2024-01-01,Baemin,Fried chicken,1,\n"

    result = parse_sales_text(text, state, WORKING_DATE, now=NOW)

    assert result.accepted_rows == 1
    assert result.candidates[0].gross_amount == 0.0


def test_import_header_only_and_empty_text() -> None:
    state = make_state()

    for text in ("", HEADER, "\ufeff" + HEADER):
        result = parse_sales_text(text, state, WORKING_DATE, now=NOW)
        assert result.candidates == []
        assert result.total_rows == 0
        assert result.skipped_rows == 0


def test_read_sales_file_with_bom(tmp_path) -> None:
    state = make_state()
    csv_path = tmp_path / "sales.csv"
    csv_path.write_text(
        HEADER + "2024-02-29,Coupang Eats,Cold noodles,3,27000\n",
        encoding="utf-8-sig",
    )

    result = read_sales_file(csv_path, state, WORKING_DATE, now=NOW)

    assert result.accepted_rows == 1
    assert result.candidates[0].sale_date == date(2024, 2, 29)


def test_import_template_round_trips_through_parser() -> None:
    state = make_state()
    template = build_import_template(state, date(2024, 3, 1))

    assert template.startswith("\ufeff")
    assert "2024-03-01,Baemin,Fried chicken,1,15000" in template

    result = parse_sales_text(template, state, WORKING_DATE, now=NOW)
    assert result.accepted_rows == 1
    assert result.skipped_rows == 0
