"""
Tenant resolution
Login and sessions live in the surrounding application; it forwards the
authenticated company id in the X-Company-Id header.
"""

import logging
from typing import Optional

from fastapi import Header

from .exceptions import KyteBridgeError

logger = logging.getLogger(__name__)


async def get_current_company_id(x_company_id: Optional[str] = Header(default=None)) -> str:
    """FastAPI dependency: the tenant for this request"""
    company_id = (x_company_id or "").strip()
    if not company_id:
        logger.warning("❌ Request without X-Company-Id header")
        raise KyteBridgeError("Not authenticated: company is required", status_code=401, code="UNAUTHENTICATED")
    return company_id
