"""Kyte router - FastAPI endpoints for Kyte order conversion"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_company_id
from ...database import get_db
from ...routes.jobs import enqueue_conversion
from ...services.quickbooks_service import QuickBooksClient, get_quickbooks_client
from .repository import DEFAULT_HISTORY_LIMIT
from .schemas import (
    CreateEstimatesRequest,
    CustomerOption,
    EstimatesResponse,
    HistoryResponse,
    JobQueuedResponse,
    UploadRequest,
    UploadResponse,
)
from .service import KyteConversionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/kyte", tags=["Kyte"])


def get_kyte_service(
    db: Session = Depends(get_db),
    client: QuickBooksClient = Depends(get_quickbooks_client),
) -> KyteConversionService:
    """Dependency injection for KyteConversionService"""
    return KyteConversionService(db, client)


@router.post("/upload", response_model=UploadResponse)
async def upload_kyte_csv(
    data: UploadRequest,
    company_id: str = Depends(get_current_company_id),
    service: KyteConversionService = Depends(get_kyte_service),
):
    """Parse a Kyte CSV export and preview catalog matches for its pending orders"""
    logger.info(f"📥 Kyte CSV upload for company {company_id} ({len(data.csvContent)} bytes)")
    return service.preview_upload(company_id, data.csvContent)


@router.get("/customers")
async def get_customers_for_mapping(
    company_id: str = Depends(get_current_company_id),
    service: KyteConversionService = Depends(get_kyte_service),
) -> dict[str, list[CustomerOption]]:
    """Customers available for mapping orders"""
    return {"customers": service.list_customers(company_id)}


@router.post(
    "/estimates",
    response_model=Union[EstimatesResponse, JobQueuedResponse],
    response_model_exclude_none=True,
)
async def create_quickbooks_estimates(
    data: CreateEstimatesRequest,
    company_id: str = Depends(get_current_company_id),
    service: KyteConversionService = Depends(get_kyte_service),
):
    """Convert orders into QuickBooks estimates, inline or on the background worker"""
    if data.background:
        orders = [order.model_dump(mode="json") for order in data.orders]
        return await enqueue_conversion(company_id, orders)

    response = await service.create_estimates(company_id, data.orders)
    logger.info(f"📊 {response.message} for company {company_id}")
    return response


@router.get("/history", response_model=HistoryResponse)
async def get_conversion_history(
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=500),
    orderNumber: Optional[str] = Query(None),
    company_id: str = Depends(get_current_company_id),
    service: KyteConversionService = Depends(get_kyte_service),
):
    """Conversion attempts, newest first"""
    return service.get_history(company_id, limit=limit, order_number=orderNumber)
