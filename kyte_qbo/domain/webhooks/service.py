"""
Webhook service - Keeps the customer mirror in step with QuickBooks

Only Customer create/update notifications are handled: each one triggers a
fetch of the current customer and an upsert into the mirror. Deletes and
other entity types are acknowledged and skipped.
"""

import logging
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from ...exceptions import KyteBridgeError
from ...services.quickbooks_service import get_integration_by_realm
from ..customers.repository import CustomerMirrorStore
from ..customers.schemas import CustomerRecord
from .schemas import WebhookEntity, WebhookPayload, WebhookSummary

logger = logging.getLogger(__name__)

CUSTOMER_ENTITY = "Customer"
DELETE_OPERATION = "Delete"


class CustomerClient(Protocol):
    async def fetch_customer(self, tenant: str, remote_id: str) -> Optional[CustomerRecord]: ...


class WebhookService:
    """Apply QuickBooks data change notifications to the local mirror"""

    def __init__(self, db: Session, client: CustomerClient, store=CustomerMirrorStore):
        self.db = db
        self.client = client
        self.store = store

    def resolve_tenant(self, realm_id: str) -> Optional[str]:
        integration = get_integration_by_realm(self.db, realm_id)
        return integration.company_id if integration else None

    async def handle(self, payload: WebhookPayload, tenant: Optional[str] = None) -> WebhookSummary:
        """
        Process every entity in a webhook delivery.

        Args:
            payload: Parsed webhook body
            tenant: Company id to use for every notification; resolved from
                each notification's realm when omitted

        Returns:
            Counts of processed, skipped and failed entities
        """
        summary = WebhookSummary()

        for notification in payload.eventNotifications:
            company_id = tenant or self.resolve_tenant(notification.realmId)
            entities = notification.dataChangeEvent.entities
            if not company_id:
                logger.warning(f"⚠️ No integration for realm {notification.realmId}, skipping {len(entities)} entities")
                summary.skipped += len(entities)
                continue

            for entity in entities:
                await self._handle_entity(company_id, entity, summary)

        logger.info(
            f"📊 Webhook processed: {summary.processed} processed, {summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    async def _handle_entity(self, company_id: str, entity: WebhookEntity, summary: WebhookSummary) -> None:
        if entity.name != CUSTOMER_ENTITY:
            logger.info(f"⏭️ Skipping non-Customer event: {entity.name} {entity.id}")
            summary.skipped += 1
            return

        if entity.operation == DELETE_OPERATION:
            # Customer deletion is not mirrored
            logger.info(f"⏭️ Customer {entity.id} deleted in QuickBooks; mirror left unchanged")
            summary.skipped += 1
            return

        try:
            record = await self.client.fetch_customer(company_id, entity.id)
            if record is None:
                logger.warning(f"⚠️ Customer {entity.id} not found in QuickBooks after {entity.operation} event")
                summary.skipped += 1
                return
            self.store.upsert(self.db, company_id, record)
        except KyteBridgeError as e:
            logger.error(f"❌ Failed to sync customer {entity.id} for company {company_id}: {e.message}")
            summary.failed += 1
            summary.errors.append(f"Customer {entity.id}: {e.message}")
            return

        logger.info(f"✅ Customer {entity.id} synced from {entity.operation} event")
        summary.processed += 1
