"""
Order Converter
Drives one Kyte order through matching, estimate building and submission to
QuickBooks, and records every submission attempt in the conversion history.

    received -> matching -> matched | partially_unmatched
    matched -> converting -> success | failed

``partially_unmatched`` stops before any remote call and writes no history.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Protocol, Sequence

from sqlalchemy.orm import Session

from ...config import CONVERSION_DEADLINE_SECONDS
from ...exceptions import ConversionTimeoutError, KyteBridgeError, StoreError
from ..catalog.index import CatalogIndex
from ..customers.repository import CustomerMirrorStore
from .estimate_builder import EstimateBuilder, EstimatePayload
from .matcher import LineItemMatcher
from .repository import ConversionHistoryRepository
from .schemas import ConversionResult, KyteOrder, MatchedOrder

logger = logging.getLogger(__name__)


class ConversionState(str, Enum):
    RECEIVED = "received"
    MATCHING = "matching"
    MATCHED = "matched"
    PARTIALLY_UNMATCHED = "partially_unmatched"
    CONVERTING = "converting"
    SUCCESS = "success"
    FAILED = "failed"


class EstimateClient(Protocol):
    async def create_estimate(self, tenant: str, payload: EstimatePayload): ...


class OrderConverter:
    """
    Convert Kyte orders into QuickBooks estimates for one tenant's catalog.

    Stateless per call: submitting the same order twice makes two attempts
    and appends two history records. Skipping orders that were already
    converted is up to the caller.
    """

    def __init__(
        self,
        db: Session,
        client: EstimateClient,
        index: Optional[CatalogIndex] = None,
        builder: Optional[EstimateBuilder] = None,
        deadline_seconds: Optional[float] = CONVERSION_DEADLINE_SECONDS,
    ):
        self.db = db
        self.client = client
        self.index = index
        self._indexes: dict[str, CatalogIndex] = {}
        self.builder = builder or EstimateBuilder()
        self.deadline_seconds = deadline_seconds

    def _matcher(self, tenant: str) -> LineItemMatcher:
        if self.index is not None:
            return LineItemMatcher(self.index)
        # One snapshot per tenant, reused for that tenant's later orders
        if tenant not in self._indexes:
            self._indexes[tenant] = CatalogIndex.load(self.db, tenant)
        return LineItemMatcher(self._indexes[tenant])

    async def convert(self, tenant: str, order: KyteOrder, deadline: Optional[float] = None) -> ConversionResult:
        """
        Convert one order.

        Args:
            tenant: Company id owning the catalog, customers and history
            order: Order with raw line items
            deadline: Seconds allowed for building and submitting the estimate

        Returns:
            The caller-facing result. Failures are returned, not raised.
        """
        state = ConversionState.RECEIVED
        logger.info(f"📥 Converting Kyte order {order.number} for company {tenant}")

        state = ConversionState.MATCHING
        matched = self._matcher(tenant).match_order(tenant, order)

        if not matched.lineItems:
            logger.warning(f"⚠️ Order {order.number} has no line items, skipping")
            return ConversionResult(
                orderNumber=order.number,
                success=False,
                message=f"Order {order.number} has no line items",
            )

        if not matched.fully_matched:
            state = ConversionState.PARTIALLY_UNMATCHED
            unmatched = [line.originalText for line in matched.unmatched_lines]
            logger.info(f"🔍 Order {order.number} {state.value}: {len(unmatched)} unmatched line(s)")
            return ConversionResult(
                orderNumber=order.number,
                success=False,
                message=f"Order {order.number} has {len(unmatched)} unmatched line item(s): {'; '.join(unmatched)}",
                unmatchedLines=unmatched,
            )

        state = ConversionState.MATCHED
        matched = self._resolve_customer(tenant, matched)

        state = ConversionState.CONVERTING
        timeout = deadline if deadline is not None else self.deadline_seconds
        try:
            estimate = await asyncio.wait_for(self._submit(tenant, matched), timeout=timeout)
        except asyncio.TimeoutError:
            state = ConversionState.FAILED
            error = ConversionTimeoutError(
                f"Timed out after {timeout}s creating the QuickBooks estimate; remote outcome unknown, "
                f"check QuickBooks before resubmitting order {order.number}"
            )
            logger.error(f"⏰ Order {order.number} {state.value}: {error.message}")
            return self._failed(tenant, order.number, error.message)
        except KyteBridgeError as e:
            state = ConversionState.FAILED
            logger.error(f"❌ Order {order.number} {state.value}: {e.message}")
            return self._failed(tenant, order.number, e.message)
        except Exception as e:
            state = ConversionState.FAILED
            logger.exception(f"❌ Order {order.number} {state.value} with unexpected error")
            return self._failed(tenant, order.number, str(e) or e.__class__.__name__)

        state = ConversionState.SUCCESS
        result = ConversionResult(
            orderNumber=order.number,
            success=True,
            estimateId=estimate.estimate_id,
            estimateNumber=estimate.estimate_number,
            quickbooksUrl=estimate.url,
            message="Estimate created successfully",
        )
        try:
            ConversionHistoryRepository.append(
                self.db,
                tenant,
                order.number,
                state.value,
                estimate_id=estimate.estimate_id,
                estimate_number=estimate.estimate_number,
                quickbooks_url=estimate.url,
            )
        except StoreError as e:
            logger.critical(
                f"🚨 UNRECORDED ESTIMATE: order {order.number} (company {tenant}) created QuickBooks estimate "
                f"{estimate.estimate_id} but history write failed: {e.message}. Reconcile manually."
            )
            result.message = "Estimate created successfully, but it could not be recorded in conversion history"
        else:
            logger.info(f"✅ Order {order.number} converted to estimate {estimate.estimate_id}")
        return result

    async def convert_batch(
        self, tenant: str, orders: Sequence[KyteOrder], deadline: Optional[float] = None
    ) -> list[ConversionResult]:
        """Convert orders one after another; a failed order never stops the batch"""
        results = []
        for order in orders:
            try:
                results.append(await self.convert(tenant, order, deadline=deadline))
            except Exception as e:
                logger.exception(f"❌ Order {order.number} could not be processed")
                results.append(ConversionResult(orderNumber=order.number, success=False, message=str(e)))
        successful = sum(1 for r in results if r.success)
        logger.info(f"📊 Batch for company {tenant}: {successful}/{len(results)} orders converted")
        return results

    async def _submit(self, tenant: str, order: MatchedOrder):
        payload = self.builder.build(tenant, order)
        return await self.client.create_estimate(tenant, payload)

    def _resolve_customer(self, tenant: str, order: MatchedOrder) -> MatchedOrder:
        """Fill in the customer id from the mirror when the name identifies exactly one customer"""
        if order.customerId or not order.customerName:
            return order

        candidates = CustomerMirrorStore.find_by_display_name(self.db, tenant, order.customerName)
        if len(candidates) != 1:
            logger.info(
                f"🔍 Order {order.number}: customer '{order.customerName}' matched {len(candidates)} mirrored customers"
            )
            return order
        return order.model_copy(update={"customerId": candidates[0].remote_id})

    def _failed(self, tenant: str, order_number: str, message: str) -> ConversionResult:
        try:
            ConversionHistoryRepository.append(
                self.db, tenant, order_number, ConversionState.FAILED.value, error_message=message
            )
        except StoreError as e:
            logger.error(f"❌ Could not record failed conversion of order {order_number}: {e.message}")
        return ConversionResult(orderNumber=order_number, success=False, message=message)
