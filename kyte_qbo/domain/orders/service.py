"""Kyte conversion service - Business logic behind the /kyte endpoints and worker"""

import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from ...exceptions import ValidationError
from ...shared.validators import validate_order_number
from ..catalog.index import CatalogIndex
from ..customers.repository import CustomerMirrorStore
from .converter import EstimateClient, OrderConverter
from .matcher import LineItemMatcher
from .parser import parse_kyte_csv
from .repository import DEFAULT_HISTORY_LIMIT, ConversionHistoryRepository
from .schemas import (
    ConversionHistoryRecord,
    ConversionResult,
    ConversionSummary,
    CustomerOption,
    EstimatesResponse,
    HistoryResponse,
    KyteOrder,
    UploadResponse,
)

logger = logging.getLogger(__name__)


def summarize(results: Sequence[ConversionResult]) -> ConversionSummary:
    successful = sum(1 for r in results if r.success)
    return ConversionSummary(total=len(results), successful=successful, failed=len(results) - successful)


class KyteConversionService:
    """Service layer for Kyte order conversion"""

    def __init__(self, db: Session, client: Optional[EstimateClient] = None):
        self.db = db
        self.client = client

    def preview_upload(self, company_id: str, csv_content: str) -> UploadResponse:
        """Parse a Kyte export and match every pending order against the catalog"""
        orders = parse_kyte_csv(csv_content)
        if not orders:
            return UploadResponse(message="No pending orders found in CSV", orders=[])

        matcher = LineItemMatcher(CatalogIndex.load(self.db, company_id))
        matched_orders = [matcher.match_order(company_id, order) for order in orders]
        matched = sum(1 for order in matched_orders for line in order.lineItems if line.matched)
        unmatched = sum(len(order.unmatched_lines) for order in matched_orders)

        logger.info(f"📄 Upload preview for company {company_id}: {matched} matched, {unmatched} unmatched lines")
        return UploadResponse(
            message=f"Found {len(orders)} pending orders",
            orders=matched_orders,
            matchedLines=matched,
            unmatchedLines=unmatched,
        )

    def list_customers(self, company_id: str) -> list[CustomerOption]:
        """Customers available for mapping Kyte orders"""
        return [
            CustomerOption(customerId=c.remote_id, customerName=c.display_name)
            for c in CustomerMirrorStore.list_customers(self.db, company_id)
        ]

    async def create_estimates(
        self, company_id: str, orders: Sequence[KyteOrder], deadline: Optional[float] = None
    ) -> EstimatesResponse:
        """Convert a batch of orders; one order's failure never blocks the rest"""
        converter = OrderConverter(self.db, self.client)
        results = await converter.convert_batch(company_id, orders, deadline=deadline)
        summary = summarize(results)
        return EstimatesResponse(
            message=f"Processed {summary.total} orders: {summary.successful} successful, {summary.failed} failed",
            results=results,
            summary=summary,
        )

    def get_history(
        self, company_id: str, limit: int = DEFAULT_HISTORY_LIMIT, order_number: Optional[str] = None
    ) -> HistoryResponse:
        """Recent conversion attempts, or every attempt for one order"""
        if order_number:
            try:
                number = validate_order_number(order_number)
            except ValueError as e:
                raise ValidationError(str(e)) from e
            records = ConversionHistoryRepository.find_by_order_number(self.db, company_id, number)
            records = list(reversed(records))[:limit]
        else:
            records = ConversionHistoryRepository.list_recent(self.db, company_id, limit)

        history = [ConversionHistoryRecord.from_model(r) for r in records]
        successful = sum(1 for h in history if h.status == "success")
        return HistoryResponse(
            history=history,
            summary=ConversionSummary(total=len(history), successful=successful, failed=len(history) - successful),
        )
