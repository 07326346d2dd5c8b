"""
Kyte CSV intake
Parses a Kyte sales export and extracts pending orders with their line items
"""

import csv
import logging
import re
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Optional

from pydantic import ValidationError as SchemaValidationError

from ...exceptions import ValidationError
from ...shared.text import CASE_PACK_SUFFIX_RE
from .schemas import KyteOrder, RawOrderLine

logger = logging.getLogger(__name__)

PENDING_STATUS = "pending order"

# "2x(00) Semolina Fine G/S 1KGx12", "1x Corn Flour", "3 Apples"
# A bare number glued to letters ("100W bulb") is part of the name, not a quantity.
_LEADING_QUANTITY_RE = re.compile(
    r"^\s*(?P<qty>\d{1,5})\s*(?:[xX×*](?![A-Za-z])|(?=\s))\s*(?:\([^)]*\)\s*)?(?P<rest>\S.*)$"
)
_ITEM_SEPARATOR_RE = re.compile(r"[,;\n\r]")


def split_leading_quantity(text: str) -> tuple[Optional[int], str]:
    """
    Split a leading quantity token off a line of free text.

    Returns:
        (quantity, remainder). quantity is None when no token is present.
    """
    match = _LEADING_QUANTITY_RE.match(text or "")
    if not match:
        return None, (text or "").strip()
    quantity = int(match.group("qty"))
    if quantity < 1:
        return None, text.strip()
    return quantity, match.group("rest").strip()


def parse_items_description(items_description: str) -> list[RawOrderLine]:
    """Parse a Kyte "Items Description" cell into raw order lines"""
    if not items_description:
        return []

    lines = []
    for fragment in _ITEM_SEPARATOR_RE.split(items_description):
        original = fragment.strip()
        if not original:
            continue

        quantity, name = split_leading_quantity(original)
        name = CASE_PACK_SUFFIX_RE.sub("", name).strip() or name
        lines.append(RawOrderLine(quantity=quantity or 1, productName=name, originalText=original))
    return lines


def _find_column(headers: list[str], *needles: str, exact: bool = False) -> int:
    for index, header in enumerate(headers):
        lowered = header.lower().strip()
        if exact and lowered in needles:
            return index
        if not exact and any(needle in lowered for needle in needles):
            return index
    return -1


def _parse_total(value: str) -> Optional[Decimal]:
    try:
        return Decimal(value.strip().replace(",", "")) if value and value.strip() else None
    except InvalidOperation:
        return None


def parse_kyte_csv(csv_content: str) -> list[KyteOrder]:
    """
    Parse Kyte CSV data and extract pending orders.

    Args:
        csv_content: Raw CSV content of a Kyte sales export

    Returns:
        Pending orders in file order, each with raw line items

    Raises:
        ValidationError: If required columns are missing or a row is malformed
    """
    rows = [row for row in csv.reader(StringIO(csv_content or "")) if any(cell.strip() for cell in row)]
    if not rows:
        return []

    headers = [h.strip().strip('"') for h in rows[0]]
    columns = {
        "Number": _find_column(headers, "number"),
        "Date": _find_column(headers, "date"),
        "Status": _find_column(headers, "status"),
        "Items Description": _find_column(headers, "items", "description"),
        "Total": _find_column(headers, "total", exact=True),
    }
    missing = [name for name, index in columns.items() if index == -1]
    if missing:
        raise ValidationError(f"CSV file is missing required columns: {', '.join(missing)}")

    observation_index = _find_column(headers, "observation")
    customer_index = _find_column(headers, "customer", "client")

    def cell(row: list[str], index: int) -> str:
        return row[index].strip() if 0 <= index < len(row) else ""

    orders = []
    for row_number, row in enumerate(rows[1:], start=2):
        if cell(row, columns["Status"]).lower() != PENDING_STATUS:
            continue

        items_description = cell(row, columns["Items Description"])
        try:
            order = KyteOrder(
                number=cell(row, columns["Number"]),
                date=cell(row, columns["Date"]),
                customerName=cell(row, customer_index),
                lineItems=parse_items_description(items_description),
                observation=cell(row, observation_index),
                total=_parse_total(cell(row, columns["Total"])),
                itemsDescription=items_description,
            )
        except SchemaValidationError as e:
            raise ValidationError(f"Failed to parse CSV row {row_number}: {e.errors()[0]['msg']}") from e
        orders.append(order)

    logger.info(f"📄 Parsed Kyte CSV: {len(orders)} pending orders out of {len(rows) - 1} rows")
    return orders
