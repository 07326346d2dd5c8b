"""Tests for Kyte CSV intake."""
import datetime as dt
from decimal import Decimal

import pytest

from kyte_qbo.domain.orders.parser import parse_items_description, parse_kyte_csv, split_leading_quantity
from kyte_qbo.exceptions import ValidationError

KYTE_EXPORT = """Number,Date,Status,Customer,Items Description,Observation,Total
#1001,2024-03-05 10:15:00,Pending Order,Padaria Central,"2x(00) Semolina Fine G/S 1KGx12, 1x Corn Flour",Deliver Monday,"1,234.50"
#1002,05/03/2024,Paid,Mercado Sol,1x Corn Flour,,5.25
#1003,2024-03-06,pending order,,3 Blue Widget SKU:BW-100; Red Widget,,
"""


@pytest.mark.parametrize(
    "text, expected",
    [
        ("2x(00) Semolina Fine", (2, "Semolina Fine")),
        ("1x Corn Flour", (1, "Corn Flour")),
        ("3 Apples", (3, "Apples")),
        ("4 * Pears", (4, "Pears")),
        ("100W bulb", (None, "100W bulb")),
        ("Corn Flour", (None, "Corn Flour")),
        ("0x Nothing", (None, "0x Nothing")),
    ],
)
def test_split_leading_quantity(text, expected):
    assert split_leading_quantity(text) == expected


def test_parse_items_description_strips_case_pack_and_keeps_original():
    lines = parse_items_description("2x(00) Semolina Fine G/S 1KGx12, 1x Corn Flour\nRice")

    assert [(l.quantity, l.productName) for l in lines] == [
        (2, "Semolina Fine G/S 1KG"),
        (1, "Corn Flour"),
        (1, "Rice"),
    ]
    assert lines[0].originalText == "2x(00) Semolina Fine G/S 1KGx12"
    assert lines[2].originalText == "Rice"


def test_parse_kyte_csv_keeps_only_pending_orders():
    orders = parse_kyte_csv(KYTE_EXPORT)

    assert [o.number for o in orders] == ["1001", "1003"]

    first = orders[0]
    assert first.date == dt.date(2024, 3, 5)
    assert first.customerName == "Padaria Central"
    assert first.observation == "Deliver Monday"
    assert first.total == Decimal("1234.50")
    assert [l.productName for l in first.lineItems] == ["Semolina Fine G/S 1KG", "Corn Flour"]

    second = orders[1]
    assert second.customerName == ""
    assert second.total is None
    assert [(l.quantity, l.productName) for l in second.lineItems] == [
        (3, "Blue Widget SKU:BW-100"),
        (1, "Red Widget"),
    ]


def test_parse_kyte_csv_reports_missing_columns():
    with pytest.raises(ValidationError, match="missing required columns: Status, Total"):
        parse_kyte_csv("Number,Date,Items Description\n1,2024-01-01,1x Rice\n")


def test_parse_kyte_csv_reports_bad_rows():
    content = "Number,Date,Status,Items Description,Total\n7,not a date,Pending Order,1x Rice,1\n"

    with pytest.raises(ValidationError, match="row 2"):
        parse_kyte_csv(content)


def test_parse_kyte_csv_empty_content():
    assert parse_kyte_csv("") == []
    assert parse_kyte_csv("Number,Date,Status,Items Description,Total\n") == []
