"""
QuickBooks Integration Models
Tenant ↔ realm mapping and the OAuth tokens issued by the connection flow
"""
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from .database import Base


class QuickBooksIntegration(Base):
    """Store QuickBooks OAuth tokens and company information"""

    __tablename__ = "quickbooks_integrations"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(String(64), nullable=False, unique=True)

    # OAuth tokens (encrypted). Acquisition and refresh happen outside this service.
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=False)

    # QuickBooks company info
    realm_id = Column(String(255), nullable=False, index=True)  # QuickBooks company ID
    company_name = Column(String(255), nullable=True)

    # Environment (sandbox or production)
    environment = Column(String(50), default="production")

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
