"""Pydantic schemas for the notification log and manual sends."""

from pydantic import BaseModel
from typing import Optional, List
from datetime import date, datetime

from budgenudge.models.notification import NotificationStatus, SourceEndpoint, TemplateType


class NotificationLogResponse(BaseModel):
    id: str
    user_id: str
    template_type: TemplateType
    send_date: date
    status: NotificationStatus
    source_endpoint: SourceEndpoint
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int
    created_at: datetime
    finalized_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class NotificationHistoryResponse(BaseModel):
    items: List[NotificationLogResponse]
    total: int


class RetryResponse(BaseModel):
    log_id: str
    status: NotificationStatus
    error: Optional[str] = None


class PreviewResponse(BaseModel):
    template_type: TemplateType
    as_of: date
    text: str
    length: int
