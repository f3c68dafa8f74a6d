"""Family dashboard: members, narratives, goals and action items."""

from datetime import date, datetime
from typing import Any, Literal

from pydantic import Field

from healthhub.schemas.utils import CamelModel, Description, PersonName, Priority, Title

Relationship = Literal["self", "spouse", "partner", "child", "parent", "sibling", "grandparent", "other"]
NarrativeType = Literal["overview", "condition_focus", "preventive", "growth", "medication"]
GoalStatus = Literal["active", "completed", "abandoned"]
ActionStatus = Literal["pending", "scheduled", "completed", "dismissed"]


class SuccessResponse(CamelModel):
    success: bool = True


# =============================================================================
# Members
# =============================================================================


class FamilyMemberCreate(CamelModel):
    name: PersonName
    relationship: Relationship
    date_of_birth: date | None = None
    gender: str | None = Field(None, max_length=20)
    avatar_url: str | None = Field(None, max_length=1024)
    is_primary: bool = False


class FamilyMemberUpdate(CamelModel):
    name: PersonName | None = None
    relationship: Relationship | None = None
    date_of_birth: date | None = None
    gender: str | None = Field(None, max_length=20)
    avatar_url: str | None = Field(None, max_length=1024)
    is_primary: bool | None = None


class LinkFhirRequest(CamelModel):
    fhir_session_id: int


class FamilyMemberResponse(CamelModel):
    id: int
    user_id: int
    name: str
    relationship: str
    date_of_birth: date | None = None
    gender: str | None = None
    avatar_url: str | None = None
    is_primary: bool
    fhir_session_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class MemberDeleteResponse(SuccessResponse):
    deleted: FamilyMemberResponse


class MemberSummary(FamilyMemberResponse):
    pending_actions: int = 0


class FamilySummaryResponse(CamelModel):
    members: list[MemberSummary]
    total_pending_actions: int


# =============================================================================
# Narratives
# =============================================================================


class NarrativeGenerateRequest(CamelModel):
    family_member_id: int
    narrative_type: NarrativeType = "overview"
    force_regenerate: bool = False


class NarrativeResponse(CamelModel):
    id: int
    family_member_id: int
    narrative_type: str
    title: str
    content: str
    source_data: dict[str, Any] | None = None
    generated_at: datetime | None = None
    valid_until: datetime | None = None
    ai_model: str | None = None


# =============================================================================
# Goals
# =============================================================================


class GoalCreate(CamelModel):
    family_member_id: int
    title: Title
    description: Description | None = None
    category: str | None = Field(None, max_length=50)
    target_value: float | None = None
    current_value: float | None = None
    unit: str | None = Field(None, max_length=30)
    target_date: date | None = None


class GoalUpdate(CamelModel):
    title: Title | None = None
    description: Description | None = None
    category: str | None = Field(None, max_length=50)
    target_value: float | None = None
    current_value: float | None = None
    unit: str | None = Field(None, max_length=30)
    target_date: date | None = None
    status: GoalStatus | None = None


class GoalResponse(CamelModel):
    id: int
    family_member_id: int
    title: str
    description: str | None = None
    category: str | None = None
    target_value: float | None = None
    current_value: float | None = None
    unit: str | None = None
    target_date: date | None = None
    status: str
    progress: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None


# =============================================================================
# Action items
# =============================================================================


class ActionItemCreate(CamelModel):
    family_member_id: int
    title: Title
    description: Description | None = None
    action_type: str | None = Field(None, max_length=50)
    priority: Priority = 2
    due_date: date | None = None
    source: str | None = Field(None, max_length=50)
    metadata: dict[str, Any] | None = None


class ActionItemUpdate(CamelModel):
    title: Title | None = None
    description: Description | None = None
    action_type: str | None = Field(None, max_length=50)
    priority: Priority | None = None
    due_date: date | None = None
    status: ActionStatus | None = None


class ActionScheduleRequest(CamelModel):
    scheduled_date: datetime
    scheduled_provider: str | None = Field(None, max_length=255)
    scheduled_location: str | None = Field(None, max_length=255)


class ActionItemResponse(CamelModel):
    id: int
    family_member_id: int
    title: str
    description: str | None = None
    action_type: str | None = None
    priority: int
    due_date: date | None = None
    status: str
    source: str | None = None
    metadata: dict[str, Any] | None = Field(None, validation_alias="extra")
    scheduled_date: datetime | None = None
    scheduled_provider: str | None = None
    scheduled_location: str | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None


class PendingActionResponse(CamelModel):
    action_item: ActionItemResponse
    member_name: str
