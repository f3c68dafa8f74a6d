"""Build a FHIR client for the provider behind a session."""

from typing import Protocol

from healthhub.core.config import settings
from healthhub.infrastructure.fhir.client import FHIRClient
from healthhub.infrastructure.fhir.demo import DemoFHIRClient

DEMO_PROVIDER = "demo"
HAPI_PROVIDER = "hapi"


class ProviderConnection(Protocol):
    provider: str
    fhir_server: str
    access_token: str | None


def client_for_session(session: ProviderConnection) -> FHIRClient:
    """
    Return a client talking to the session's provider.

    - ``demo``: bundled sample data, no network
    - ``hapi``: the public HAPI R4 test server (no authentication)
    - anything else: the session's SMART on FHIR server with its bearer token

    The caller owns the returned client and must ``close()`` it.
    """
    if session.provider == DEMO_PROVIDER:
        return DemoFHIRClient(base_url=session.fhir_server)
    if session.provider == HAPI_PROVIDER:
        return FHIRClient(base_url=settings.HAPI_PUBLIC_URL)
    return FHIRClient(base_url=session.fhir_server, access_token=session.access_token)
