"""Appointments, intake form templates and pre-filled forms."""

from datetime import datetime
from typing import Any, Literal

from pydantic import Field

from healthhub.schemas.utils import CamelModel

AppointmentStatus = Literal["scheduled", "confirmed", "completed", "cancelled", "no_show"]
FormStatus = Literal["draft", "ready", "submitted"]
FieldType = Literal["text", "date", "select", "multiselect", "textarea"]


class IntakeField(CamelModel):
    field_id: str
    field_type: FieldType
    label: str
    fhir_path: str = ""
    required: bool = False


class FormTemplateResponse(CamelModel):
    id: int
    name: str
    description: str | None = None
    form_type: str
    fields: list[dict[str, Any]] = Field(default_factory=list)
    is_active: bool
    created_at: datetime | None = None


class AppointmentCreate(CamelModel):
    """Schedule an appointment for an existing action item."""

    action_item_id: int
    provider_name: str | None = Field(None, max_length=255)
    provider_npi: str | None = Field(None, pattern=r"^\d{10}$")
    facility_name: str | None = Field(None, max_length=255)
    facility_address: str | None = Field(None, max_length=500)
    scheduled_date_time: datetime
    duration_minutes: int = Field(30, gt=0, le=480)
    appointment_type: str | None = Field(None, max_length=50)
    notes: str | None = None


class QuickAppointmentCreate(CamelModel):
    """Schedule an appointment that is not tied to an action item."""

    family_member_id: int
    provider_name: str | None = Field(None, max_length=255)
    provider_npi: str | None = Field(None, pattern=r"^\d{10}$")
    facility_name: str | None = Field(None, max_length=255)
    facility_address: str | None = Field(None, max_length=500)
    scheduled_date_time: datetime
    duration_minutes: int = Field(30, gt=0, le=480)
    appointment_type: str | None = Field(None, max_length=50)
    notes: str | None = None


class AppointmentUpdate(CamelModel):
    provider_name: str | None = Field(None, max_length=255)
    provider_npi: str | None = Field(None, pattern=r"^\d{10}$")
    facility_name: str | None = Field(None, max_length=255)
    facility_address: str | None = Field(None, max_length=500)
    scheduled_date_time: datetime | None = None
    duration_minutes: int | None = Field(None, gt=0, le=480)
    appointment_type: str | None = Field(None, max_length=50)
    status: AppointmentStatus | None = None
    notes: str | None = None


class AppointmentResponse(CamelModel):
    id: int
    family_member_id: int
    action_item_id: int | None = None
    provider_name: str | None = None
    provider_npi: str | None = None
    facility_name: str | None = None
    facility_address: str | None = None
    scheduled_date_time: datetime
    duration_minutes: int
    appointment_type: str | None = None
    status: str
    notes: str | None = None
    prefilled_form_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UpcomingAppointmentResponse(CamelModel):
    appointment: AppointmentResponse
    member_name: str


class PrefillRequest(CamelModel):
    family_member_id: int
    template_id: int | None = None
    appointment_id: int | None = None


class FormUpdate(CamelModel):
    filled_data: dict[str, Any] | None = None
    status: FormStatus | None = None


class PrefilledFormResponse(CamelModel):
    id: int
    family_member_id: int
    template_id: int
    appointment_id: int | None = None
    filled_data: dict[str, Any]
    status: str
    generated_at: datetime | None = None
    last_modified: datetime | None = None
    submitted_at: datetime | None = None
