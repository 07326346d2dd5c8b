"""
Catalog Index
In-memory, per-tenant snapshot of the product catalog with SKU, barcode and
normalized-name lookups. The snapshot is immutable once built, so it can be
shared by concurrent matchers without locking.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...config import NAME_MATCH_THRESHOLD
from ...models import Product
from ...shared.text import levenshtein, normalize_identifier, normalize_name, similarity
from .repository import CatalogRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogProduct:
    """Detached, read-only copy of a Product row"""

    id: int
    company_id: str
    name: str
    sku: Optional[str]
    barcode: Optional[str]
    price: Decimal
    tax_code_ref: Optional[str]
    external_item_id: Optional[str]
    is_archived: bool = False
    normalized_name: str = field(default="", compare=False)
    tokens: frozenset = field(default=frozenset(), compare=False)

    @classmethod
    def from_model(cls, product: Product) -> "CatalogProduct":
        normalized = normalize_name(product.product_name or "")
        return cls(
            id=product.id,
            company_id=product.company_id,
            name=product.product_name or "",
            sku=product.sku,
            barcode=product.barcode,
            price=Decimal(str(product.price if product.price is not None else 0)),
            tax_code_ref=product.tax_code_ref,
            external_item_id=product.external_item_id,
            is_archived=bool(product.is_archived),
            normalized_name=normalized,
            tokens=frozenset(normalized.split()),
        )


@dataclass(frozen=True)
class CatalogMatch:
    """A resolved product plus how it was found"""

    product: CatalogProduct
    method: str  # sku, barcode, name


class _TenantCatalog:
    def __init__(self, products: list[CatalogProduct]):
        self.products = products
        self.by_sku: dict[str, list[CatalogProduct]] = defaultdict(list)
        self.by_barcode: dict[str, list[CatalogProduct]] = defaultdict(list)
        for product in products:
            if product.sku:
                self.by_sku[normalize_identifier(product.sku)].append(product)
            if product.barcode:
                self.by_barcode[product.barcode.strip()].append(product)


class CatalogIndex:
    """Lookup from SKU, barcode and normalized name to canonical products"""

    def __init__(self, products: Iterable[CatalogProduct], name_threshold: float = NAME_MATCH_THRESHOLD):
        grouped: dict[str, list[CatalogProduct]] = defaultdict(list)
        # Sort by id so every tie-break below is independent of load order
        for product in sorted(products, key=lambda p: p.id):
            grouped[product.company_id].append(product)
        self._tenants = {tenant: _TenantCatalog(items) for tenant, items in grouped.items()}
        self.name_threshold = name_threshold

    @classmethod
    def load(cls, db: Session, company_id: str, **kwargs) -> "CatalogIndex":
        """Build a snapshot of one tenant's catalog from the database"""
        products = [CatalogProduct.from_model(p) for p in CatalogRepository.list_products(db, company_id)]
        logger.info(f"📦 Catalog snapshot loaded for company {company_id}: {len(products)} products")
        return cls(products, **kwargs)

    def lookup(
        self,
        tenant: str,
        sku: Optional[str] = None,
        barcode: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Optional[CatalogProduct]:
        """Return the single best product for the given identifiers, or None"""
        match = self.resolve(tenant, sku=sku, barcode=barcode, name=name)
        return match.product if match else None

    def resolve(
        self,
        tenant: str,
        sku: Optional[str] = None,
        barcode: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Optional[CatalogMatch]:
        """
        Resolve identifiers to a product.

        Exact SKU wins over exact barcode, which wins over name comparison.
        Ambiguous candidates go through the disambiguation policy; a tie is
        reported as no match.
        """
        return (
            (self.match_sku(tenant, sku, name) if sku else None)
            or (self.match_barcode(tenant, barcode, name) if barcode else None)
            or self.match_name(tenant, name)
        )

    def match_sku(self, tenant: str, sku: str, name: Optional[str] = None) -> Optional[CatalogMatch]:
        """Exact SKU match; ``name`` only breaks ties between duplicates"""
        catalog = self._tenants.get(tenant)
        if catalog is None or not sku:
            return None
        product = self._disambiguate(catalog.by_sku.get(normalize_identifier(sku), []), normalize_name(name or ""))
        return CatalogMatch(product, "sku") if product else None

    def find_sku_tokens(
        self, tenant: str, tokens: Iterable[str], name: Optional[str] = None
    ) -> Optional[CatalogMatch]:
        """First token that is exactly a catalog SKU, whatever its shape"""
        catalog = self._tenants.get(tenant)
        if catalog is None:
            return None
        for token in tokens:
            if normalize_identifier(token) in catalog.by_sku:
                match = self.match_sku(tenant, token, name)
                if match:
                    return match
        return None

    def match_barcode(self, tenant: str, barcode: str, name: Optional[str] = None) -> Optional[CatalogMatch]:
        """Exact barcode match; ``name`` only breaks ties between duplicates"""
        catalog = self._tenants.get(tenant)
        if catalog is None or not barcode:
            return None
        product = self._disambiguate(catalog.by_barcode.get(barcode.strip(), []), normalize_name(name or ""))
        return CatalogMatch(product, "barcode") if product else None

    def match_name(self, tenant: str, name: Optional[str]) -> Optional[CatalogMatch]:
        """Normalized-name comparison"""
        catalog = self._tenants.get(tenant)
        query_name = normalize_name(name or "")
        if catalog is None or not query_name:
            return None
        product = self._disambiguate(self._name_candidates(catalog, query_name), query_name)
        return CatalogMatch(product, "name") if product else None

    def _name_candidates(self, catalog: _TenantCatalog, query_name: str) -> list[CatalogProduct]:
        query_tokens = set(query_name.split())
        candidates = []
        for product in catalog.products:
            if not product.normalized_name:
                continue
            if product.normalized_name == query_name:
                candidates.append(product)
                continue
            if len(product.tokens) >= 2 and product.tokens <= query_tokens:
                candidates.append(product)
                continue
            if len(query_tokens) >= 2 and query_tokens <= product.tokens:
                candidates.append(product)
                continue
            if similarity(product.normalized_name, query_name) >= self.name_threshold:
                candidates.append(product)
        return candidates

    @staticmethod
    def _disambiguate(candidates: list[CatalogProduct], query_name: str) -> Optional[CatalogProduct]:
        # Products without a QuickBooks item cannot be placed on an estimate
        usable = [p for p in candidates if p.external_item_id]
        if not usable:
            return None

        active = [p for p in usable if not p.is_archived]
        pool = active or usable
        if len(pool) == 1:
            return pool[0]
        if not query_name:
            return None

        scored = sorted(((levenshtein(query_name, p.normalized_name), p.id, p) for p in pool), key=lambda s: s[:2])
        best_distance = scored[0][0]
        winners = [s for s in scored if s[0] == best_distance]
        if len(winners) > 1:
            logger.info(
                f"⚖️ Ambiguous catalog match for '{query_name}': "
                f"{[p.id for _, _, p in winners]} tie at distance {best_distance}"
            )
            return None
        return winners[0][2]
