"""
Appointments, intake form templates and pre-filled intake forms.

Appointments created from an action item keep the item in step: scheduling
marks it ``scheduled``, cancelling resets it to ``pending`` and completing
the appointment completes the item.
"""

import logging
from typing import Any

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import utcnow
from healthhub.infrastructure.fhir.helpers import (
    codeable_concept_text,
    format_human_name,
    medication_name,
)
from healthhub.models.family import ActionItem, FamilyMember
from healthhub.models.scheduling import FormTemplate, PrefilledForm, ScheduledAppointment
from healthhub.schemas.scheduling import (
    AppointmentCreate,
    AppointmentUpdate,
    FormUpdate,
    IntakeField,
    QuickAppointmentCreate,
)
from healthhub.services import family_service

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_TEMPLATE_ID = 1

STANDARD_INTAKE_FIELDS: list[IntakeField] = [
    IntakeField(field_id="patient_name", field_type="text", label="Full Name",
                fhir_path="Patient.name[0].given + Patient.name[0].family", required=True),
    IntakeField(field_id="dob", field_type="date", label="Date of Birth",
                fhir_path="Patient.birthDate", required=True),
    IntakeField(field_id="gender", field_type="select", label="Gender",
                fhir_path="Patient.gender", required=True),
    IntakeField(field_id="phone", field_type="text", label="Phone Number",
                fhir_path="Patient.telecom[phone].value", required=True),
    IntakeField(field_id="email", field_type="text", label="Email Address",
                fhir_path="Patient.telecom[email].value"),
    IntakeField(field_id="address", field_type="text", label="Street Address",
                fhir_path="Patient.address[0].line", required=True),
    IntakeField(field_id="city", field_type="text", label="City",
                fhir_path="Patient.address[0].city", required=True),
    IntakeField(field_id="state", field_type="text", label="State",
                fhir_path="Patient.address[0].state", required=True),
    IntakeField(field_id="zip", field_type="text", label="ZIP Code",
                fhir_path="Patient.address[0].postalCode", required=True),
    IntakeField(field_id="emergency_contact", field_type="text", label="Emergency Contact Name",
                required=True),
    IntakeField(field_id="emergency_phone", field_type="text", label="Emergency Contact Phone",
                required=True),
    IntakeField(field_id="allergies", field_type="multiselect", label="Known Allergies",
                fhir_path="AllergyIntolerance[*].code.text"),
    IntakeField(field_id="medications", field_type="multiselect", label="Current Medications",
                fhir_path="MedicationRequest[*].medicationCodeableConcept.text"),
    IntakeField(field_id="conditions", field_type="multiselect", label="Medical Conditions",
                fhir_path="Condition[*].code.text"),
    IntakeField(field_id="surgeries", field_type="textarea", label="Past Surgeries",
                fhir_path="Procedure[*].code.text"),
    IntakeField(field_id="family_history", field_type="textarea", label="Family Medical History"),
    IntakeField(field_id="insurance_provider", field_type="text", label="Insurance Provider",
                fhir_path="Coverage.payor[0].display"),
    IntakeField(field_id="insurance_id", field_type="text", label="Insurance ID Number",
                fhir_path="Coverage.subscriberId"),
    IntakeField(field_id="primary_care", field_type="text", label="Primary Care Physician"),
    IntakeField(field_id="reason_for_visit", field_type="textarea", label="Reason for Visit",
                required=True),
]


# =============================================================================
# Form templates
# =============================================================================


async def list_templates(db: AsyncSession) -> list[FormTemplate]:
    result = await db.execute(
        select(FormTemplate).where(FormTemplate.is_active.is_(True)).order_by(FormTemplate.name)
    )
    return list(result.scalars().all())


async def get_template(db: AsyncSession, template_id: int) -> FormTemplate | None:
    return await db.get(FormTemplate, template_id)


# =============================================================================
# Appointments
# =============================================================================


async def list_member_appointments(
    db: AsyncSession,
    member_id: int,
    status: str | None = None,
    upcoming: bool = False,
) -> list[ScheduledAppointment]:
    """
    Appointments of one member.

    ``upcoming`` keeps future appointments, soonest first. Otherwise the list
    is optionally filtered on ``status`` and ordered latest first.
    """
    query = select(ScheduledAppointment).where(ScheduledAppointment.family_member_id == member_id)
    if upcoming:
        query = query.where(ScheduledAppointment.scheduled_date_time >= utcnow()).order_by(
            ScheduledAppointment.scheduled_date_time, ScheduledAppointment.id
        )
    else:
        if status:
            query = query.where(ScheduledAppointment.status == status)
        query = query.order_by(
            ScheduledAppointment.scheduled_date_time.desc(), ScheduledAppointment.id.desc()
        )
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_upcoming_appointments(
    db: AsyncSession, user_id: int
) -> list[tuple[ScheduledAppointment, str]]:
    """Future appointments across the account's family, with the member's name."""
    result = await db.execute(
        select(ScheduledAppointment, FamilyMember.name)
        .join(FamilyMember, ScheduledAppointment.family_member_id == FamilyMember.id)
        .where(
            FamilyMember.user_id == user_id,
            ScheduledAppointment.scheduled_date_time >= utcnow(),
        )
        .order_by(ScheduledAppointment.scheduled_date_time, ScheduledAppointment.id)
    )
    return [(appointment, name) for appointment, name in result.all()]


async def get_appointment(
    db: AsyncSession, user_id: int, appointment_id: int
) -> ScheduledAppointment | None:
    result = await db.execute(
        select(ScheduledAppointment)
        .join(FamilyMember, ScheduledAppointment.family_member_id == FamilyMember.id)
        .where(ScheduledAppointment.id == appointment_id, FamilyMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def schedule_from_action(
    db: AsyncSession, user_id: int, data: AppointmentCreate
) -> ScheduledAppointment | None:
    """
    Book an appointment for an action item and mark the item scheduled.

    Returns None when the action item does not exist for this account.
    """
    with tracer.start_as_current_span("schedule_appointment") as span:
        span.set_attribute("action_item.id", data.action_item_id)

        action = await family_service.get_action(db, user_id, data.action_item_id)
        if action is None:
            return None

        appointment = ScheduledAppointment(
            family_member_id=action.family_member_id,
            status="scheduled",
            **data.model_dump(),
        )
        db.add(appointment)

        action.status = "scheduled"
        action.scheduled_date = data.scheduled_date_time
        action.scheduled_provider = data.provider_name
        action.scheduled_location = data.facility_name

        await db.commit()
        await db.refresh(appointment)

        span.set_attribute("appointment.id", appointment.id)
        logger.info(f"Appointment {appointment.id} scheduled for action item {action.id}")
        return appointment


async def quick_schedule(db: AsyncSession, data: QuickAppointmentCreate) -> ScheduledAppointment:
    appointment = ScheduledAppointment(status="scheduled", **data.model_dump())
    db.add(appointment)
    await db.commit()
    await db.refresh(appointment)
    return appointment


async def update_appointment(
    db: AsyncSession, user_id: int, appointment_id: int, data: AppointmentUpdate
) -> ScheduledAppointment | None:
    appointment = await get_appointment(db, user_id, appointment_id)
    if appointment is None:
        return None
    for field_name, value in data.model_dump(exclude_unset=True).items():
        setattr(appointment, field_name, value)
    await db.commit()
    await db.refresh(appointment)
    return appointment


async def cancel_appointment(
    db: AsyncSession, user_id: int, appointment_id: int
) -> ScheduledAppointment | None:
    """Cancel; a linked action item goes back to ``pending`` with its schedule cleared."""
    appointment = await get_appointment(db, user_id, appointment_id)
    if appointment is None:
        return None

    appointment.status = "cancelled"
    if appointment.action_item_id is not None:
        action = await db.get(ActionItem, appointment.action_item_id)
        if action is not None:
            action.status = "pending"
            action.scheduled_date = None
            action.scheduled_provider = None
            action.scheduled_location = None

    await db.commit()
    await db.refresh(appointment)
    logger.info(f"Appointment {appointment_id} cancelled")
    return appointment


async def complete_appointment(
    db: AsyncSession, user_id: int, appointment_id: int
) -> ScheduledAppointment | None:
    """Complete; a linked action item is completed too."""
    appointment = await get_appointment(db, user_id, appointment_id)
    if appointment is None:
        return None

    appointment.status = "completed"
    if appointment.action_item_id is not None:
        action = await db.get(ActionItem, appointment.action_item_id)
        if action is not None:
            action.status = "completed"
            action.completed_at = utcnow()

    await db.commit()
    await db.refresh(appointment)
    return appointment


# =============================================================================
# Pre-filled forms
# =============================================================================


def _telecom(patient: dict[str, Any], system: str) -> str:
    for contact in patient.get("telecom") or []:
        if contact.get("system") == system and contact.get("value"):
            return contact["value"]
    return ""


def prefill_intake_data(member: FamilyMember, patient_data: dict[str, Any]) -> dict[str, Any]:
    """
    Map a member's profile and FHIR bundle onto the standard intake fields.

    Profile values win for name, birth date and gender; everything else comes
    from the records. Fields without a source are left out.
    """
    patient = patient_data.get("patient") or {}
    address = (patient.get("address") or [{}])[0]
    coverage = (patient_data.get("coverages") or [{}])[0]

    name = member.name or format_human_name(patient)
    birth_date = member.date_of_birth.isoformat() if member.date_of_birth else patient.get("birthDate", "")

    data: dict[str, Any] = {
        "patient_name": name,
        "dob": birth_date or "",
        "gender": member.gender or patient.get("gender", ""),
        "phone": _telecom(patient, "phone"),
        "email": _telecom(patient, "email"),
        "address": ", ".join(address.get("line") or []),
        "city": address.get("city", ""),
        "state": address.get("state", ""),
        "zip": address.get("postalCode", ""),
        "allergies": [
            codeable_concept_text(a.get("code")) for a in patient_data.get("allergies") or []
        ],
        "medications": [medication_name(m) for m in patient_data.get("medications") or []],
        "conditions": [
            codeable_concept_text(c.get("code")) for c in patient_data.get("conditions") or []
        ],
    }
    payors = coverage.get("payor") or []
    if payors and payors[0].get("display"):
        data["insurance_provider"] = payors[0]["display"]
    if coverage.get("subscriberId"):
        data["insurance_id"] = coverage["subscriberId"]
    return data


async def prefill_form(
    db: AsyncSession,
    member: FamilyMember,
    template_id: int | None = None,
    appointment_id: int | None = None,
) -> PrefilledForm:
    """
    Create a ``ready`` intake form for a member.

    When ``appointment_id`` is given the appointment is linked back to the form.
    """
    with tracer.start_as_current_span("prefill_form") as span:
        span.set_attribute("family.member_id", member.id)

        patient_data = await family_service.member_patient_data(db, member)
        form = PrefilledForm(
            family_member_id=member.id,
            template_id=template_id or DEFAULT_TEMPLATE_ID,
            appointment_id=appointment_id,
            filled_data=prefill_intake_data(member, patient_data),
            status="ready",
        )
        db.add(form)
        await db.flush()

        if appointment_id is not None:
            appointment = await db.get(ScheduledAppointment, appointment_id)
            if appointment is not None:
                appointment.prefilled_form_id = form.id

        await db.commit()
        await db.refresh(form)

        span.set_attribute("form.id", form.id)
        span.set_attribute("form.records_linked", member.fhir_session_id is not None)
        return form


async def get_form(db: AsyncSession, user_id: int, form_id: int) -> PrefilledForm | None:
    result = await db.execute(
        select(PrefilledForm)
        .join(FamilyMember, PrefilledForm.family_member_id == FamilyMember.id)
        .where(PrefilledForm.id == form_id, FamilyMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def update_form(
    db: AsyncSession, user_id: int, form_id: int, data: FormUpdate
) -> PrefilledForm | None:
    form = await get_form(db, user_id, form_id)
    if form is None:
        return None
    if data.filled_data is not None:
        form.filled_data = data.filled_data
    if data.status is not None:
        form.status = data.status
    form.last_modified = utcnow()
    await db.commit()
    await db.refresh(form)
    return form


async def submit_form(db: AsyncSession, user_id: int, form_id: int) -> PrefilledForm | None:
    form = await get_form(db, user_id, form_id)
    if form is None:
        return None
    form.status = "submitted"
    form.submitted_at = utcnow()
    await db.commit()
    await db.refresh(form)
    return form


async def list_member_forms(db: AsyncSession, member_id: int) -> list[PrefilledForm]:
    result = await db.execute(
        select(PrefilledForm)
        .where(PrefilledForm.family_member_id == member_id)
        .order_by(PrefilledForm.generated_at.desc(), PrefilledForm.id.desc())
    )
    return list(result.scalars().all())
