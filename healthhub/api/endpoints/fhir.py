"""FHIR provider sessions, resource proxies and migration.

Resource routes read from the provider behind the current session and
answer a flat JSON array (searches) or a single resource. Without a current
session they answer 401.
"""

import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import get_session
from healthhub.core.dependencies import CurrentFhirSession, ProviderClient, get_fhir_client
from healthhub.core.exceptions import NotFoundError
from healthhub.core.security import OptionalUserId
from healthhub.infrastructure.fhir.client import FHIRClient
from healthhub.infrastructure.fhir.exceptions import FHIRError, FHIRResourceNotFoundError
from healthhub.models.fhir_session import FhirSession
from healthhub.schemas.care_gaps import CareGapReport
from healthhub.schemas.fhir import (
    FhirSessionCreate,
    FhirSessionResponse,
    HapiConnectRequest,
    MigrationResponse,
    SessionEndResponse,
)
from healthhub.services import care_gaps_service, migration_service, session_service

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")

OBSERVATION_PAGE_SIZE = 50


def _session_response(session: FhirSession) -> FhirSessionResponse:
    return FhirSessionResponse.model_validate(session)


async def _proxy(request: Request, label: str, call: Awaitable[T]) -> T:
    """Await a provider call, mapping FHIR errors to 404 or 500 problems."""
    try:
        return await call
    except FHIRResourceNotFoundError as e:
        raise NotFoundError(detail=e.message, instance=request.url.path) from e
    except FHIRError as e:
        logger.error(f"Error fetching {label}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch {label}",
        ) from e


# =============================================================================
# Sessions
# =============================================================================


@router.post(
    "/demo/connect",
    response_model=FhirSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Connect the demo provider",
    description="Start a session on the bundled sample patient (no network access)",
)
async def connect_demo(
    user_id: OptionalUserId,
    db: AsyncSession = Depends(get_session),
) -> FhirSessionResponse:
    session = await session_service.connect_demo(db, user_id=user_id)
    return _session_response(session)


@router.post(
    "/hapi/connect",
    response_model=FhirSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Connect the public HAPI test server",
)
async def connect_hapi(
    user_id: OptionalUserId,
    data: HapiConnectRequest | None = None,
    db: AsyncSession = Depends(get_session),
) -> FhirSessionResponse:
    patient_id = data.patient_id if data else None
    session = await session_service.connect_hapi(db, patient_id=patient_id, user_id=user_id)
    return _session_response(session)


@router.post(
    "/sessions",
    response_model=FhirSessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Store an OAuth provider session",
    description="Record the tokens of a SMART on FHIR connection as the current session",
)
async def create_session(
    data: FhirSessionCreate,
    user_id: OptionalUserId,
    db: AsyncSession = Depends(get_session),
) -> FhirSessionResponse:
    values = data.model_dump(exclude={"expires_in", "token_expiry"})
    values["token_expiry"] = session_service.token_expiry_from(data.expires_in, data.token_expiry)
    if values.get("user_id") is None:
        values["user_id"] = user_id
    session = await session_service.create_fhir_session(db, values)
    return _session_response(session)


@router.get("/sessions", response_model=list[FhirSessionResponse], summary="List sessions")
async def list_sessions(db: AsyncSession = Depends(get_session)) -> list[FhirSessionResponse]:
    sessions = await session_service.list_fhir_sessions(db)
    return [_session_response(s) for s in sessions]


@router.get(
    "/sessions/current",
    response_model=FhirSessionResponse,
    summary="Current session",
)
async def get_current_session(session: CurrentFhirSession) -> FhirSessionResponse:
    return _session_response(session)


@router.delete(
    "/sessions/current",
    response_model=SessionEndResponse,
    summary="Disconnect",
    description="End the current session. The session row is kept",
)
async def end_current_session(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> SessionEndResponse:
    session = await session_service.end_current_fhir_session(db)
    if session is None:
        raise NotFoundError(detail="No active session to end", instance=request.url.path)
    return SessionEndResponse(success=True, session=_session_response(session))


@router.post(
    "/sessions/current/migrate",
    response_model=MigrationResponse,
    summary="Copy the current patient record into the local FHIR store",
    description=(
        "Fetch the patient and every related resource from the provider, "
        "recreate them on the local store and record the per-type counts"
    ),
)
async def migrate_current_session(
    request: Request,
    session: CurrentFhirSession,
    db: AsyncSession = Depends(get_session),
    destination: FHIRClient = Depends(get_fhir_client),
) -> MigrationResponse:
    if not session.patient_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="The current session has no patient",
        )
    try:
        patient_id, counts = await migration_service.run_session_migration(db, session, destination)
    except FHIRError as e:
        logger.error(f"Migration failed for FHIR session {session.id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to migrate data: {e.message}",
        ) from e

    return MigrationResponse(
        session_id=session.id,
        patient_id=patient_id,
        counts=counts,
        total=sum(counts.values()),
    )


# =============================================================================
# Patient resources
# =============================================================================


@router.get("/patient", summary="Patient of the current session")
async def get_patient(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> dict[str, Any]:
    return await _proxy(request, "patient data", client.get_patient(session.patient_id))


@router.get("/condition", summary="Conditions")
async def get_conditions(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> list[dict[str, Any]]:
    return await _proxy(request, "conditions", client.get_conditions(session.patient_id))


@router.get("/observation", summary="Observations, newest first")
async def get_observations(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> list[dict[str, Any]]:
    return await _proxy(
        request,
        "observations",
        client.get_observations(session.patient_id, count=OBSERVATION_PAGE_SIZE),
    )


@router.get("/medicationrequest", summary="Medication requests")
async def get_medication_requests(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> list[dict[str, Any]]:
    return await _proxy(request, "medications", client.get_medications(session.patient_id))


@router.get("/allergyintolerance", summary="Allergies")
async def get_allergies(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> list[dict[str, Any]]:
    return await _proxy(request, "allergies", client.get_allergies(session.patient_id))


@router.get("/immunization", summary="Immunizations")
async def get_immunizations(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> list[dict[str, Any]]:
    return await _proxy(request, "immunizations", client.get_immunizations(session.patient_id))


@router.get("/coverage", summary="Insurance coverage")
async def get_coverage(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> list[dict[str, Any]]:
    return await _proxy(request, "coverage", client.get_coverage(session.patient_id))


@router.get("/claim", summary="Claims")
async def get_claims(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> list[dict[str, Any]]:
    return await _proxy(request, "claims", client.get_claims(session.patient_id))


@router.get("/explanation-of-benefit", summary="Explanations of benefit")
async def get_explanation_of_benefits(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> list[dict[str, Any]]:
    return await _proxy(
        request, "explanation of benefits", client.get_explanation_of_benefits(session.patient_id)
    )


@router.get("/appointment", summary="Appointments")
async def get_appointments(
    request: Request, session: CurrentFhirSession, client: ProviderClient
) -> list[dict[str, Any]]:
    return await _proxy(
        request, "appointments", client.search("Appointment", {"patient": session.patient_id})
    )


@router.get(
    "/care-gaps",
    response_model=CareGapReport,
    summary="Preventive care gaps",
    description="Evaluate quality measures over the current patient's record",
)
async def get_care_gaps(
    session: CurrentFhirSession, client: ProviderClient
) -> CareGapReport:
    patient_data = await client.get_patient_data(session.patient_id)
    if not patient_data.get("patient"):
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to evaluate care gaps",
        )
    return care_gaps_service.care_gap_report(patient_data)


# =============================================================================
# Provider directory
# =============================================================================


async def _directory_lookup(
    request: Request,
    client: FHIRClient,
    resource_type: str,
    label: str,
    resource_id: str | None,
    name: str | None,
) -> dict[str, Any] | list[dict[str, Any]]:
    if resource_id:
        return await _proxy(request, label, client.get(resource_type, resource_id))
    params = {"name": name} if name else None
    return await _proxy(request, label, client.search(resource_type, params))


@router.get("/practitioner", summary="Practitioners", description="One by id, or search by name")
async def get_practitioners(
    request: Request,
    client: ProviderClient,
    id: str | None = Query(None),
    name: str | None = Query(None),
) -> Any:
    return await _directory_lookup(request, client, "Practitioner", "practitioners", id, name)


@router.get("/organization", summary="Organizations", description="One by id, or search by name")
async def get_organizations(
    request: Request,
    client: ProviderClient,
    id: str | None = Query(None),
    name: str | None = Query(None),
) -> Any:
    return await _directory_lookup(request, client, "Organization", "organizations", id, name)


@router.get("/location", summary="Locations", description="One by id, or search by name")
async def get_locations(
    request: Request,
    client: ProviderClient,
    id: str | None = Query(None),
    name: str | None = Query(None),
) -> Any:
    return await _directory_lookup(request, client, "Location", "locations", id, name)


@router.get("/practitionerrole", summary="Practitioner roles")
async def get_practitioner_roles(
    request: Request,
    client: ProviderClient,
    practitioner: str | None = Query(None),
) -> list[dict[str, Any]]:
    params = {"practitioner": practitioner} if practitioner else None
    return await _proxy(request, "practitioner roles", client.search("PractitionerRole", params))
