"""Customer mirror store - Database operations for mirrored QuickBooks customers"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...exceptions import StoreError
from ...models import Customer
from ...shared.locks import KeyedLock
from ...shared.text import normalize_name
from .schemas import CustomerRecord

logger = logging.getLogger(__name__)

# Writers for the same (company, remote id) queue here before touching the row
_customer_locks = KeyedLock()

# A concurrent insert from another process surfaces as an IntegrityError; retry as an update
UPSERT_ATTEMPTS = 2


class CustomerMirrorStore:
    """Repository for the local customer mirror. No delete is exposed."""

    @staticmethod
    def get_customer(db: Session, company_id: str, remote_id: str) -> Optional[Customer]:
        """Get a mirrored customer by QuickBooks id"""
        return (
            db.query(Customer)
            .filter(Customer.company_id == company_id, Customer.remote_id == str(remote_id))
            .first()
        )

    @staticmethod
    def list_customers(db: Session, company_id: str) -> list[Customer]:
        """Get all mirrored customers for a tenant, ordered by name"""
        return (
            db.query(Customer)
            .filter(Customer.company_id == company_id)
            .order_by(Customer.display_name, Customer.id)
            .all()
        )

    @staticmethod
    def find_by_display_name(db: Session, company_id: str, name: str) -> list[Customer]:
        """Get customers whose normalized display name equals the normalized ``name``"""
        wanted = normalize_name(name or "")
        if not wanted:
            return []
        return [
            customer
            for customer in CustomerMirrorStore.list_customers(db, company_id)
            if normalize_name(customer.display_name) == wanted
        ]

    @staticmethod
    def upsert(db: Session, company_id: str, record: CustomerRecord) -> Customer:
        """
        Insert or overwrite the mirrored customer keyed by (company_id, record.id).

        A snapshot fetched earlier than the one already stored is ignored, so
        redelivered webhooks never roll the mirror back.

        Raises:
            StoreError: If the write fails
        """
        with _customer_locks.hold((company_id, record.id)):
            for attempt in range(1, UPSERT_ATTEMPTS + 1):
                try:
                    return CustomerMirrorStore._write(db, company_id, record)
                except IntegrityError as e:
                    db.rollback()
                    if attempt == UPSERT_ATTEMPTS:
                        logger.error(f"❌ Customer upsert conflict for {company_id}/{record.id}: {e}")
                        raise StoreError(f"Failed to store customer {record.id}") from e
                    logger.warning(f"⚠️ Customer {record.id} inserted concurrently, retrying as update")
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.error(f"❌ Customer upsert failed for {company_id}/{record.id}: {e}")
                    raise StoreError(f"Failed to store customer {record.id}") from e

    @staticmethod
    def _write(db: Session, company_id: str, record: CustomerRecord) -> Customer:
        customer = (
            db.query(Customer)
            .filter(Customer.company_id == company_id, Customer.remote_id == record.id)
            .with_for_update()
            .first()
        )

        if customer is None:
            customer = Customer(
                company_id=company_id,
                remote_id=record.id,
                display_name=record.display_name,
                fetched_at=record.fetched_at,
            )
            db.add(customer)
            db.commit()
            db.refresh(customer)
            logger.info(f"✅ Customer {record.id} added to mirror for company {company_id}")
            return customer

        if customer.fetched_at is not None and record.fetched_at < customer.fetched_at:
            db.commit()  # release the row lock
            logger.info(
                f"⏭️ Ignoring stale snapshot of customer {record.id} "
                f"(fetched {record.fetched_at}, stored {customer.fetched_at})"
            )
            return customer

        customer.display_name = record.display_name
        customer.fetched_at = record.fetched_at
        db.commit()
        db.refresh(customer)
        logger.info(f"✅ Customer {record.id} updated in mirror for company {company_id}")
        return customer
