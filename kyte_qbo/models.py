from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from .database import Base


class Product(Base):
    """Canonical catalog entry. Written by catalog sync jobs, read-only here."""

    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)  # Tenant
    product_name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=True)
    barcode = Column(String(64), nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    tax_code_ref = Column(String(50), nullable=True)
    external_item_id = Column(String(64), nullable=True)  # QuickBooks Item Id
    is_archived = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_products_company_sku", "company_id", "sku"),
        Index("ix_products_company_barcode", "company_id", "barcode"),
    )


class Customer(Base):
    """Local mirror of a QuickBooks customer"""

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)
    remote_id = Column(String(64), nullable=False)  # QuickBooks Customer Id
    display_name = Column(String(255), nullable=False)
    # When the snapshot was fetched from QuickBooks (last-fetched-wins)
    fetched_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (UniqueConstraint("company_id", "remote_id", name="uq_customers_company_remote"),)


class KyteConversion(Base):
    """Append-only audit record of one order-to-estimate conversion attempt"""

    __tablename__ = "kyte_conversions"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, index=True)
    kyte_order_number = Column(String(100), nullable=False, index=True)

    quickbooks_estimate_id = Column(String(64), nullable=True)
    quickbooks_estimate_number = Column(String(64), nullable=True)
    quickbooks_url = Column(String(500), nullable=True)

    status = Column(String(20), nullable=False)  # success, failed
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)
