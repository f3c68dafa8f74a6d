"""FastAPI dependencies for clients and the current FHIR session."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import get_session
from healthhub.core.exceptions import NoActiveSessionError
from healthhub.infrastructure.external import (
    ClinicalTrialsClient,
    NPIRegistryClient,
    OpenFDAClient,
)
from healthhub.infrastructure.fhir.client import FHIRClient
from healthhub.infrastructure.fhir.providers import client_for_session
from healthhub.models.fhir_session import FhirSession
from healthhub.services import session_service


def _from_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise RuntimeError(
            f"{name} not initialized. "
            f"Ensure the application lifespan properly initializes app.state.{name}"
        )
    return value


def get_fhir_client(request: Request) -> FHIRClient:
    """
    Local FHIR store client (migration destination).

    Initialized in the application lifespan (main.py) and stored in
    app.state.fhir_client.
    """
    return _from_state(request, "fhir_client")


def get_clinical_trials_client(request: Request) -> ClinicalTrialsClient:
    return _from_state(request, "clinical_trials_client")


def get_openfda_client(request: Request) -> OpenFDAClient:
    return _from_state(request, "openfda_client")


def get_npi_client(request: Request) -> NPIRegistryClient:
    return _from_state(request, "npi_client")


async def get_current_fhir_session(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_session)],
) -> FhirSession:
    """
    The current provider connection.

    Raises:
        NoActiveSessionError: 401 when no session is flagged current
    """
    session = await session_service.get_current_fhir_session(db)
    if session is None:
        raise NoActiveSessionError(instance=request.url.path)
    return session


async def get_provider_client(
    session: Annotated[FhirSession, Depends(get_current_fhir_session)],
) -> AsyncGenerator[FHIRClient, None]:
    """Client for the current session's provider, closed after the request."""
    client = client_for_session(session)
    try:
        yield client
    finally:
        await client.close()


CurrentFhirSession = Annotated[FhirSession, Depends(get_current_fhir_session)]
ProviderClient = Annotated[FHIRClient, Depends(get_provider_client)]
