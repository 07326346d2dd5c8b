"""Order domain schemas - Pydantic models for Kyte orders and conversion results"""

import datetime as dt
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ...shared.validators import parse_order_date, validate_order_number


class RawOrderLine(BaseModel):
    """One free-text line of a Kyte order, exactly as captured"""

    model_config = ConfigDict(frozen=True)

    quantity: int = 1
    productName: str
    originalText: str = ""

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("quantity must be at least 1")
        return v

    @field_validator("productName")
    @classmethod
    def validate_product_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("productName is required")
        return v.strip()

    @model_validator(mode="before")
    @classmethod
    def default_original_text(cls, data):
        if isinstance(data, dict) and not data.get("originalText"):
            data = {**data, "originalText": data.get("productName") or ""}
        return data


class MatchedLineItem(RawOrderLine):
    """A line after catalog resolution. Price always comes from the catalog."""

    productId: Optional[int] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    externalItemId: Optional[str] = None
    price: Optional[Decimal] = None
    taxCodeRef: Optional[str] = None
    matched: bool = False
    matchMethod: Optional[Literal["sku", "barcode", "name"]] = None

    @model_validator(mode="after")
    def check_resolution(self):
        resolution = (self.productId, self.externalItemId, self.price, self.taxCodeRef)
        if self.matched and any(value is None for value in resolution):
            raise ValueError("matched line items require product, item, price and tax code")
        descriptive = (self.sku, self.barcode, self.matchMethod)
        if not self.matched and any(value is not None for value in (*resolution, *descriptive)):
            raise ValueError("unmatched line items cannot carry resolution fields")
        return self

    @property
    def amount(self) -> Decimal:
        return (self.price or Decimal("0")) * self.quantity


class KyteOrder(BaseModel):
    """An order as received from Kyte (CSV upload or API), with raw lines"""

    number: str
    date: dt.date
    customerName: str = ""
    customerId: Optional[str] = None
    lineItems: list[RawOrderLine]
    observation: str = ""
    total: Optional[Decimal] = None  # Free-text total from Kyte, informational only
    itemsDescription: str = ""

    @field_validator("number", mode="before")
    @classmethod
    def validate_number(cls, v):
        return validate_order_number(v)

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, v):
        return parse_order_date(v)

    @field_validator("customerId", mode="before")
    @classmethod
    def blank_customer_is_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class MatchedOrder(BaseModel):
    """An order whose lines have all been through the matcher"""

    number: str
    date: dt.date
    customerName: str = ""
    customerId: Optional[str] = None
    lineItems: list[MatchedLineItem]
    observation: str = ""
    total: Optional[Decimal] = None

    @property
    def unmatched_lines(self) -> list[MatchedLineItem]:
        return [line for line in self.lineItems if not line.matched]

    @property
    def fully_matched(self) -> bool:
        return bool(self.lineItems) and not self.unmatched_lines


class ConversionResult(BaseModel):
    """Per-order outcome returned to the UI/CLI"""

    orderNumber: str
    success: bool
    estimateId: Optional[str] = None
    estimateNumber: Optional[str] = None
    quickbooksUrl: Optional[str] = None
    message: str
    unmatchedLines: Optional[list[str]] = None

    def to_response(self) -> dict:
        return self.model_dump(exclude_none=True)


class ConversionHistoryRecord(BaseModel):
    """Schema for one conversion history entry"""

    orderNumber: str
    estimateId: Optional[str] = None
    estimateNumber: Optional[str] = None
    quickbooksUrl: Optional[str] = None
    status: Literal["success", "failed"]
    errorMessage: Optional[str] = None
    createdAt: Optional[dt.datetime] = None

    @classmethod
    def from_model(cls, record) -> "ConversionHistoryRecord":
        return cls(
            orderNumber=record.kyte_order_number,
            estimateId=record.quickbooks_estimate_id,
            estimateNumber=record.quickbooks_estimate_number,
            quickbooksUrl=record.quickbooks_url,
            status=record.status,
            errorMessage=record.error_message,
            createdAt=record.created_at,
        )


# Request / response bodies


class UploadRequest(BaseModel):
    csvContent: str

    @field_validator("csvContent")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("CSV content is required")
        return v


class CreateEstimatesRequest(BaseModel):
    orders: list[KyteOrder]
    background: bool = False

    @field_validator("orders")
    @classmethod
    def validate_orders(cls, v: list[KyteOrder]) -> list[KyteOrder]:
        if not v:
            raise ValueError("Orders array is required")
        return v


class ConversionSummary(BaseModel):
    total: int
    successful: int
    failed: int


class HistoryResponse(BaseModel):
    history: list[ConversionHistoryRecord]
    summary: ConversionSummary


class CustomerOption(BaseModel):
    customerId: str
    customerName: str


class UploadResponse(BaseModel):
    message: str
    orders: list[MatchedOrder]
    matchedLines: int = 0
    unmatchedLines: int = 0


class EstimatesResponse(BaseModel):
    message: str
    results: list[ConversionResult]
    summary: ConversionSummary


class JobQueuedResponse(BaseModel):
    jobId: str
    status: str = "queued"
    message: str


class JobStatusResponse(BaseModel):
    jobId: str
    status: str  # queued, in_progress, complete, failed
    result: Optional[dict] = None
    error: Optional[str] = None
