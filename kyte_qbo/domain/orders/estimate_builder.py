"""
Estimate Builder
Maps a fully matched Kyte order onto a QuickBooks Online estimate payload.

Totals are recomputed from catalog price x quantity; the free-text total that
came with the order is never copied onto the estimate.
"""

import datetime as dt
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pydantic import BaseModel

from ...config import QBO_DEFAULT_TAX_CODE
from ...exceptions import IncompleteOrderError
from .schemas import MatchedOrder

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


class EstimateLine(BaseModel):
    """One SalesItemLineDetail line of an estimate"""

    itemRef: str
    description: str
    quantity: int
    unitPrice: Decimal
    amount: Decimal
    taxCodeRef: str

    def to_quickbooks(self) -> dict:
        return {
            "DetailType": "SalesItemLineDetail",
            "Amount": float(self.amount),
            "Description": self.description,
            "SalesItemLineDetail": {
                "ItemRef": {"value": self.itemRef},
                "Qty": self.quantity,
                "UnitPrice": float(self.unitPrice),
                "TaxCodeRef": {"value": self.taxCodeRef},
            },
        }


class EstimatePayload(BaseModel):
    """Estimate creation body, tenant-scoped"""

    tenant: str
    orderNumber: str
    customerRef: str
    txnDate: dt.date
    lines: list[EstimateLine]
    totalAmount: Decimal
    customerMemo: str
    privateNote: str

    def to_quickbooks(self) -> dict:
        return {
            "CustomerRef": {"value": self.customerRef},
            "DocNumber": self.orderNumber,
            "TxnDate": self.txnDate.isoformat(),
            "CustomerMemo": {"value": self.customerMemo},
            "PrivateNote": self.privateNote,
            "TotalAmt": float(self.totalAmount),
            "Line": [line.to_quickbooks() for line in self.lines],
        }


class EstimateBuilder:
    """Build estimate payloads from matched orders"""

    def __init__(self, default_tax_code: Optional[str] = QBO_DEFAULT_TAX_CODE):
        self.default_tax_code = default_tax_code

    def build(self, tenant: str, order: MatchedOrder) -> EstimatePayload:
        """
        Build the QuickBooks estimate for a matched order.

        Raises:
            IncompleteOrderError: If a line is unmatched, the order has no lines,
                or no customer has been resolved
        """
        if not order.lineItems:
            raise IncompleteOrderError(f"Order {order.number} has no line items")

        for position, item in enumerate(order.lineItems, start=1):
            if not item.matched:
                raise IncompleteOrderError(
                    f"Line {position} of order {order.number} is unmatched: '{item.originalText}'",
                    line_number=position,
                )

        if not order.customerId:
            raise IncompleteOrderError(
                f"Order {order.number} has no QuickBooks customer (customer name: '{order.customerName or '-'}')",
                missing_customer=True,
            )

        lines = []
        for item in order.lineItems:
            unit_price = to_money(item.price)
            lines.append(
                EstimateLine(
                    itemRef=item.externalItemId,
                    description=item.productName,
                    quantity=item.quantity,
                    unitPrice=unit_price,
                    amount=to_money(unit_price * item.quantity),
                    taxCodeRef=item.taxCodeRef or self.default_tax_code,
                )
            )
        total = to_money(sum((line.amount for line in lines), Decimal("0")))

        if order.total is not None and to_money(order.total) != total:
            logger.warning(
                f"⚠️ Order {order.number}: Kyte total {order.total} differs from catalog total {total}, using catalog"
            )

        return EstimatePayload(
            tenant=tenant,
            orderNumber=order.number,
            customerRef=order.customerId,
            txnDate=order.date,
            lines=lines,
            totalAmount=total,
            customerMemo=order.observation or f"Imported from Kyte - Order {order.number}",
            privateNote=f"Imported from Kyte - Order {order.number}",
        )
