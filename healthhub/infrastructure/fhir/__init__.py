"""FHIR integration package: provider and local store clients."""

from healthhub.infrastructure.fhir.client import FHIRClient, normalize_search_response
from healthhub.infrastructure.fhir.demo import DemoFHIRClient
from healthhub.infrastructure.fhir.providers import client_for_session

__all__ = [
    "DemoFHIRClient",
    "FHIRClient",
    "client_for_session",
    "normalize_search_response",
]
