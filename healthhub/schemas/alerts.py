"""Health alerts and weekly digests."""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from healthhub.schemas.utils import CamelModel, Title

AlertPriority = Literal["low", "medium", "high", "urgent"]


class AlertCreate(CamelModel):
    family_member_id: int
    alert_type: str = Field("custom", max_length=50)
    category: str = Field(..., min_length=1, max_length=50)
    title: Title
    message: str = Field(..., min_length=1)
    priority: AlertPriority = "medium"
    action_url: str | None = Field(None, max_length=500)
    related_entity_type: str | None = Field(None, max_length=50)
    related_entity_id: str | None = Field(None, max_length=100)
    metadata: dict[str, Any] | None = None


class AlertResponse(CamelModel):
    id: int
    family_member_id: int
    alert_type: str
    category: str
    title: str
    message: str
    priority: str
    action_url: str | None = None
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    metadata: dict[str, Any] | None = Field(None, validation_alias="extra")
    read_at: datetime | None = None
    dismissed_at: datetime | None = None
    created_at: datetime | None = None


class MemberAlertResponse(CamelModel):
    alert: AlertResponse
    member_name: str


class AlertCountResponse(CamelModel):
    count: int


class UpdatedResponse(CamelModel):
    updated: bool


class GenerateAlertsResponse(CamelModel):
    success: bool = True
    message: str = "Alerts generated successfully"
    created: int = 0


class DigestResponse(CamelModel):
    id: int
    user_id: int
    week_start_date: datetime
    week_end_date: datetime
    summary: dict[str, Any]
    highlights: list[str]
    appointment_count: int
    action_item_count: int
    completed_actions_count: int
    read_at: datetime | None = None
    created_at: datetime | None = None
