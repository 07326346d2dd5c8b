"""
Line Item Matcher
Resolves free-text Kyte order lines to catalog products.

Unmatched lines are a normal outcome: they come back with ``matched=False``
for a person to resolve, never as an exception.
"""

import logging
import re
from typing import Optional, Sequence

from ...config import QBO_DEFAULT_TAX_CODE
from ..catalog.index import CatalogIndex, CatalogMatch
from .parser import split_leading_quantity
from .schemas import KyteOrder, MatchedLineItem, MatchedOrder, RawOrderLine

logger = logging.getLogger(__name__)

_SKU_LABEL_RE = re.compile(r"\bSKU\b\s*[:#=]?\s*(?P<sku>[A-Za-z0-9][A-Za-z0-9\-_./]*)", re.IGNORECASE)
# Hyphenated codes with letters and digits, e.g. BW-100, AB-12-X
_SKU_TOKEN_RE = re.compile(r"(?<![\w-])(?=[\w-]*\d)(?=[\w-]*[A-Za-z])[A-Za-z0-9]+(?:-[A-Za-z0-9]+)+(?![\w-])")
# EAN-8 through GTIN-14
_BARCODE_RE = re.compile(r"(?<!\d)\d{8,14}(?!\d)")
_TOKEN_STRIP = "()[]{}.,;:!?\"'/"


def _dedupe(values: list[str]) -> list[str]:
    seen = set()
    result = []
    for value in values:
        key = value.upper()
        if value and key not in seen:
            seen.add(key)
            result.append(value)
    return result


def extract_identifiers(text: str) -> tuple[list[str], list[str], str]:
    """
    Pull SKU- and barcode-like tokens out of a line description.

    Returns:
        (sku_candidates, barcode_candidates, remaining_name_text), candidates in
        priority order: labelled SKUs, hyphenated codes, other tokens with digits.
    """
    labelled = [m.group("sku").rstrip("./-_") for m in _SKU_LABEL_RE.finditer(text)]
    name_text = _SKU_LABEL_RE.sub(" ", text)

    coded = _SKU_TOKEN_RE.findall(name_text)
    barcodes = _BARCODE_RE.findall(text)

    others = []
    for raw_token in name_text.split():
        token = raw_token.strip(_TOKEN_STRIP)
        if token and any(ch.isdigit() for ch in token) and not token.isdigit():
            others.append(token)

    for token in coded:
        name_text = re.sub(rf"(?<![\w-]){re.escape(token)}(?![\w-])", " ", name_text)

    skus = _dedupe([*labelled, *coded, *others, *barcodes])
    return skus, _dedupe(barcodes), " ".join(name_text.split())


class LineItemMatcher:
    """Match raw order lines against a catalog snapshot"""

    def __init__(self, index: CatalogIndex, default_tax_code: Optional[str] = QBO_DEFAULT_TAX_CODE):
        self.index = index
        self.default_tax_code = default_tax_code

    def match(self, tenant: str, lines: Sequence[RawOrderLine]) -> list[MatchedLineItem]:
        """Resolve each line in order; one output per input line"""
        return [self.match_line(tenant, line) for line in lines]

    def match_order(self, tenant: str, order: KyteOrder) -> MatchedOrder:
        return MatchedOrder(
            number=order.number,
            date=order.date,
            customerName=order.customerName,
            customerId=order.customerId,
            lineItems=self.match(tenant, order.lineItems),
            observation=order.observation,
            total=order.total,
        )

    def match_line(self, tenant: str, line: RawOrderLine) -> MatchedLineItem:
        quantity = line.quantity
        description = line.productName

        # Lines that still carry their original text have not had a quantity split off yet
        if line.originalText == line.productName:
            token_quantity, remainder = split_leading_quantity(description)
            if token_quantity is not None:
                quantity, description = token_quantity, remainder

        match = self._resolve(tenant, description)
        if match is None or not (match.product.tax_code_ref or self.default_tax_code):
            logger.debug(f"🔍 No catalog match for '{line.originalText}'")
            return MatchedLineItem(quantity=quantity, productName=description, originalText=line.originalText)

        product = match.product
        return MatchedLineItem(
            quantity=quantity,
            productName=description,
            originalText=line.originalText,
            productId=product.id,
            sku=product.sku,
            barcode=product.barcode,
            externalItemId=product.external_item_id,
            price=product.price,
            taxCodeRef=product.tax_code_ref or self.default_tax_code,
            matched=True,
            matchMethod=match.method,
        )

    def _resolve(self, tenant: str, description: str) -> Optional[CatalogMatch]:
        skus, barcodes, name_text = extract_identifiers(description)

        for sku in skus:
            match = self.index.match_sku(tenant, sku, name_text)
            if match:
                return match

        tokens = [token for token in (t.strip(_TOKEN_STRIP) for t in description.split()) if token]
        match = self.index.find_sku_tokens(tenant, tokens, name_text)
        if match:
            return match

        for barcode in barcodes:
            match = self.index.match_barcode(tenant, barcode, name_text)
            if match:
                return match

        # An explicit identifier that the catalog does not know must not resolve by name
        if barcodes or _SKU_LABEL_RE.search(description):
            logger.info(f"🔍 Identifier in '{description}' not found in catalog, skipping name match")
            return None

        return self.index.match_name(tenant, name_text or description)
