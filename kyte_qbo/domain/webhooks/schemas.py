"""Webhook schemas - QuickBooks data change notifications"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class WebhookEntity(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    id: str
    operation: str
    lastUpdated: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_as_string(cls, v):
        return str(v) if v is not None else v


class DataChangeEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    entities: list[WebhookEntity] = []


class EventNotification(BaseModel):
    model_config = ConfigDict(extra="allow")

    realmId: str
    dataChangeEvent: DataChangeEvent = DataChangeEvent()

    @field_validator("realmId", mode="before")
    @classmethod
    def realm_as_string(cls, v):
        return str(v) if v is not None else v


class WebhookPayload(BaseModel):
    """Body of an Intuit webhook delivery"""

    model_config = ConfigDict(extra="allow")

    eventNotifications: list[EventNotification] = []


class WebhookSummary(BaseModel):
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = []
