"""Customer domain schemas"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import utcnow


class CustomerRecord(BaseModel):
    """One QuickBooks customer snapshot, as fetched"""

    id: str
    display_name: str
    fetched_at: datetime

    @field_validator("id", "display_name", mode="before")
    @classmethod
    def strip_required(cls, v):
        v = "" if v is None else str(v).strip()
        if not v:
            raise ValueError("value is required")
        return v

    @field_validator("fetched_at")
    @classmethod
    def naive_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @classmethod
    def from_quickbooks(cls, data: dict, fetched_at: Optional[datetime] = None) -> "CustomerRecord":
        """Build from a QuickBooks ``Customer`` object"""
        name = data.get("DisplayName") or data.get("FullyQualifiedName") or data.get("CompanyName")
        return cls(id=data.get("Id"), display_name=name, fetched_at=fetched_at or utcnow())
