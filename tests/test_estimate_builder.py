"""Tests for mapping matched orders onto QuickBooks estimates."""
import datetime as dt
import logging
from decimal import Decimal

import pytest

from kyte_qbo.domain.orders.estimate_builder import EstimateBuilder, to_money
from kyte_qbo.domain.orders.schemas import MatchedLineItem, MatchedOrder
from kyte_qbo.exceptions import IncompleteOrderError


def matched_line(text: str, quantity: int, price: str, item_id: str = "101", tax: str = "TAX") -> MatchedLineItem:
    return MatchedLineItem(
        quantity=quantity,
        productName=text,
        productId=int(item_id),
        externalItemId=item_id,
        price=Decimal(price),
        taxCodeRef=tax,
        matched=True,
        matchMethod="name",
    )


def make_order(lines, customer_id="58", **fields) -> MatchedOrder:
    return MatchedOrder(
        number=fields.pop("number", "1001"),
        date=fields.pop("date", dt.date(2024, 3, 5)),
        customerName=fields.pop("customerName", "Padaria Central"),
        customerId=customer_id,
        lineItems=lines,
        **fields,
    )


def test_to_money_rounds_half_up():
    assert to_money(Decimal("2.345")) == Decimal("2.35")
    assert to_money(Decimal("2.344")) == Decimal("2.34")
    assert to_money(Decimal("10")) == Decimal("10.00")


def test_build_computes_lines_and_total_from_catalog_prices():
    order = make_order([matched_line("Blue Widget", 2, "9.99"), matched_line("Corn Flour", 3, "5.25", "104", "4")])

    payload = EstimateBuilder().build("acme", order)

    assert payload.tenant == "acme"
    assert payload.customerRef == "58"
    assert [line.amount for line in payload.lines] == [Decimal("19.98"), Decimal("15.75")]
    assert payload.totalAmount == Decimal("35.73")
    assert payload.totalAmount == sum(line.amount for line in payload.lines)
    assert payload.customerMemo == "Imported from Kyte - Order 1001"
    assert payload.privateNote == "Imported from Kyte - Order 1001"


def test_kyte_total_is_ignored_when_it_disagrees(caplog):
    order = make_order([matched_line("Blue Widget", 2, "9.99")], total=Decimal("25.00"))

    with caplog.at_level(logging.WARNING):
        payload = EstimateBuilder().build("acme", order)

    assert payload.totalAmount == Decimal("19.98")
    assert "differs from catalog total" in caplog.text


def test_observation_becomes_customer_memo():
    order = make_order([matched_line("Blue Widget", 1, "9.99")], observation="Deliver Monday")

    payload = EstimateBuilder().build("acme", order)

    assert payload.customerMemo == "Deliver Monday"


def test_quickbooks_body_shape():
    order = make_order([matched_line("Blue Widget", 2, "9.99")])

    body = EstimateBuilder().build("acme", order).to_quickbooks()

    assert body["CustomerRef"] == {"value": "58"}
    assert body["DocNumber"] == "1001"
    assert body["TxnDate"] == "2024-03-05"
    assert body["TotalAmt"] == 19.98
    assert body["Line"] == [
        {
            "DetailType": "SalesItemLineDetail",
            "Amount": 19.98,
            "Description": "Blue Widget",
            "SalesItemLineDetail": {
                "ItemRef": {"value": "101"},
                "Qty": 2,
                "UnitPrice": 9.99,
                "TaxCodeRef": {"value": "TAX"},
            },
        }
    ]


def test_unmatched_line_is_rejected_with_its_position():
    lines = [
        matched_line("Blue Widget", 1, "9.99"),
        MatchedLineItem(quantity=1, productName="Mystery", originalText="1x Mystery"),
    ]

    with pytest.raises(IncompleteOrderError) as exc_info:
        EstimateBuilder().build("acme", make_order(lines))

    assert exc_info.value.line_number == 2
    assert "1x Mystery" in exc_info.value.message


def test_missing_customer_is_rejected():
    with pytest.raises(IncompleteOrderError) as exc_info:
        EstimateBuilder().build("acme", make_order([matched_line("Blue Widget", 1, "9.99")], customer_id=None))

    assert exc_info.value.missing_customer is True


def test_order_without_lines_is_rejected():
    with pytest.raises(IncompleteOrderError, match="no line items"):
        EstimateBuilder().build("acme", make_order([]))
