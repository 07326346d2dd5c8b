"""Conversion history repository - Append-only audit trail of conversion attempts"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...exceptions import StoreError
from ...models import KyteConversion

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class ConversionHistoryRepository:
    """Repository for conversion history. Records are never updated or deleted."""

    @staticmethod
    def append(
        db: Session,
        company_id: str,
        order_number: str,
        status: str,
        estimate_id: Optional[str] = None,
        estimate_number: Optional[str] = None,
        quickbooks_url: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> KyteConversion:
        """
        Append one conversion record.

        Raises:
            StoreError: If the record cannot be written
        """
        record = KyteConversion(
            company_id=company_id,
            kyte_order_number=order_number,
            status=status,
            quickbooks_estimate_id=estimate_id,
            quickbooks_estimate_number=estimate_number,
            quickbooks_url=quickbooks_url,
            error_message=error_message,
        )
        try:
            db.add(record)
            db.commit()
            db.refresh(record)
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to record conversion of order {order_number}: {e}") from e
        return record

    @staticmethod
    def find_by_order_number(db: Session, company_id: str, order_number: str) -> list[KyteConversion]:
        """Get every attempt for an order, oldest first"""
        return (
            db.query(KyteConversion)
            .filter(KyteConversion.company_id == company_id, KyteConversion.kyte_order_number == order_number)
            .order_by(KyteConversion.created_at, KyteConversion.id)
            .all()
        )

    @staticmethod
    def has_successful_conversion(db: Session, company_id: str, order_number: str) -> bool:
        """Whether any attempt for this order already produced an estimate"""
        return (
            db.query(KyteConversion.id)
            .filter(
                KyteConversion.company_id == company_id,
                KyteConversion.kyte_order_number == order_number,
                KyteConversion.status == "success",
            )
            .first()
            is not None
        )

    @staticmethod
    def list_recent(db: Session, company_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> list[KyteConversion]:
        """Get the most recent attempts for a tenant, newest first"""
        return (
            db.query(KyteConversion)
            .filter(KyteConversion.company_id == company_id)
            .order_by(KyteConversion.created_at.desc(), KyteConversion.id.desc())
            .limit(limit)
            .all()
        )
