"""Appointment scheduling and pre-filled intake forms."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import get_session
from healthhub.core.exceptions import NotFoundError
from healthhub.core.security import CurrentUser
from healthhub.schemas.scheduling import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentUpdate,
    FormTemplateResponse,
    FormUpdate,
    IntakeField,
    PrefilledFormResponse,
    PrefillRequest,
    QuickAppointmentCreate,
    UpcomingAppointmentResponse,
)
from healthhub.services import family_service, scheduling_service

router = APIRouter()


async def _require_member(request: Request, db: AsyncSession, user_id: int, member_id: int) -> None:
    if await family_service.get_member(db, user_id, member_id) is None:
        raise NotFoundError(
            detail=f"Family member {member_id} not found", instance=request.url.path
        )


def _appointment_not_found(request: Request, appointment_id: int) -> NotFoundError:
    return NotFoundError(detail=f"Appointment {appointment_id} not found", instance=request.url.path)


def _form_not_found(request: Request, form_id: int) -> NotFoundError:
    return NotFoundError(detail=f"Form {form_id} not found", instance=request.url.path)


# =============================================================================
# Templates
# =============================================================================


@router.get("/templates", response_model=list[FormTemplateResponse], summary="Active form templates")
async def list_templates(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[FormTemplateResponse]:
    templates = await scheduling_service.list_templates(db)
    return [FormTemplateResponse.model_validate(t) for t in templates]


@router.get(
    "/templates/standard/fields",
    response_model=list[IntakeField],
    summary="Standard intake fields",
    description="The fields of the standard intake form with their FHIR source paths",
)
async def standard_fields(current_user: CurrentUser) -> list[IntakeField]:
    return scheduling_service.STANDARD_INTAKE_FIELDS


@router.get("/templates/{template_id}", response_model=FormTemplateResponse, summary="Get a template")
async def get_template(
    template_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> FormTemplateResponse:
    template = await scheduling_service.get_template(db, template_id)
    if template is None:
        raise NotFoundError(detail=f"Template {template_id} not found", instance=request.url.path)
    return FormTemplateResponse.model_validate(template)


# =============================================================================
# Appointments
# =============================================================================


@router.get(
    "/appointments",
    response_model=list[UpcomingAppointmentResponse],
    summary="Upcoming appointments of the whole family",
)
async def list_upcoming_appointments(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[UpcomingAppointmentResponse]:
    rows = await scheduling_service.list_upcoming_appointments(db, current_user.id)
    return [
        UpcomingAppointmentResponse(
            appointment=AppointmentResponse.model_validate(appointment), member_name=member_name
        )
        for appointment, member_name in rows
    ]


@router.get(
    "/appointments/{member_id}",
    response_model=list[AppointmentResponse],
    summary="Appointments of a member",
)
async def list_member_appointments(
    member_id: int,
    request: Request,
    current_user: CurrentUser,
    appointment_status: AppointmentStatus | None = Query(None, alias="status"),
    upcoming: bool = Query(False, description="Only future appointments, soonest first"),
    db: AsyncSession = Depends(get_session),
) -> list[AppointmentResponse]:
    await _require_member(request, db, current_user.id, member_id)
    appointments = await scheduling_service.list_member_appointments(
        db, member_id, status=appointment_status, upcoming=upcoming
    )
    return [AppointmentResponse.model_validate(a) for a in appointments]


@router.post(
    "/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule an appointment for an action item",
    description="The action item is marked scheduled",
)
async def schedule_appointment(
    data: AppointmentCreate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AppointmentResponse:
    appointment = await scheduling_service.schedule_from_action(db, current_user.id, data)
    if appointment is None:
        raise NotFoundError(
            detail=f"Action item {data.action_item_id} not found", instance=request.url.path
        )
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/appointments/quick",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule an appointment without an action item",
)
async def quick_schedule(
    data: QuickAppointmentCreate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AppointmentResponse:
    await _require_member(request, db, current_user.id, data.family_member_id)
    appointment = await scheduling_service.quick_schedule(db, data)
    return AppointmentResponse.model_validate(appointment)


@router.put(
    "/appointments/{appointment_id}",
    response_model=AppointmentResponse,
    summary="Update an appointment",
)
async def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AppointmentResponse:
    appointment = await scheduling_service.update_appointment(
        db, current_user.id, appointment_id, data
    )
    if appointment is None:
        raise _appointment_not_found(request, appointment_id)
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/appointments/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    summary="Cancel an appointment",
    description="A linked action item goes back to pending",
)
async def cancel_appointment(
    appointment_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AppointmentResponse:
    appointment = await scheduling_service.cancel_appointment(db, current_user.id, appointment_id)
    if appointment is None:
        raise _appointment_not_found(request, appointment_id)
    return AppointmentResponse.model_validate(appointment)


@router.post(
    "/appointments/{appointment_id}/complete",
    response_model=AppointmentResponse,
    summary="Complete an appointment",
    description="A linked action item is completed too",
)
async def complete_appointment(
    appointment_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AppointmentResponse:
    appointment = await scheduling_service.complete_appointment(db, current_user.id, appointment_id)
    if appointment is None:
        raise _appointment_not_found(request, appointment_id)
    return AppointmentResponse.model_validate(appointment)


# =============================================================================
# Forms
# =============================================================================


@router.post(
    "/forms/prefill",
    response_model=PrefilledFormResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Pre-fill an intake form",
    description=(
        "Fill the intake form from the member's profile and linked health record. "
        "When an appointment is given, it is linked to the form"
    ),
)
async def prefill_form(
    data: PrefillRequest,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> PrefilledFormResponse:
    member = await family_service.get_member(db, current_user.id, data.family_member_id)
    if member is None:
        raise NotFoundError(
            detail=f"Family member {data.family_member_id} not found", instance=request.url.path
        )
    if data.template_id is not None and await scheduling_service.get_template(db, data.template_id) is None:
        raise NotFoundError(detail=f"Template {data.template_id} not found", instance=request.url.path)
    if (
        data.appointment_id is not None
        and await scheduling_service.get_appointment(db, current_user.id, data.appointment_id) is None
    ):
        raise _appointment_not_found(request, data.appointment_id)

    form = await scheduling_service.prefill_form(
        db, member, template_id=data.template_id, appointment_id=data.appointment_id
    )
    return PrefilledFormResponse.model_validate(form)


@router.get(
    "/forms/member/{member_id}",
    response_model=list[PrefilledFormResponse],
    summary="Forms of a member",
)
async def list_member_forms(
    member_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[PrefilledFormResponse]:
    await _require_member(request, db, current_user.id, member_id)
    forms = await scheduling_service.list_member_forms(db, member_id)
    return [PrefilledFormResponse.model_validate(f) for f in forms]


@router.get("/forms/{form_id}", response_model=PrefilledFormResponse, summary="Get a form")
async def get_form(
    form_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> PrefilledFormResponse:
    form = await scheduling_service.get_form(db, current_user.id, form_id)
    if form is None:
        raise _form_not_found(request, form_id)
    return PrefilledFormResponse.model_validate(form)


@router.put("/forms/{form_id}", response_model=PrefilledFormResponse, summary="Edit a form")
async def update_form(
    form_id: int,
    data: FormUpdate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> PrefilledFormResponse:
    form = await scheduling_service.update_form(db, current_user.id, form_id, data)
    if form is None:
        raise _form_not_found(request, form_id)
    return PrefilledFormResponse.model_validate(form)


@router.post(
    "/forms/{form_id}/submit",
    response_model=PrefilledFormResponse,
    summary="Submit a form",
)
async def submit_form(
    form_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> PrefilledFormResponse:
    form = await scheduling_service.submit_form(db, current_user.id, form_id)
    if form is None:
        raise _form_not_found(request, form_id)
    return PrefilledFormResponse.model_validate(form)
