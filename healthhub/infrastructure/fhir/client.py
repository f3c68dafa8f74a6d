"""Async FHIR client for provider and local FHIR server communication.

This module provides a generic CRUD gateway over a FHIR R4 base URL. The same
class is used for the user's connected provider (with a SMART on FHIR bearer
token) and for the application's own local FHIR store.

Resources are exchanged as plain FHIR JSON dicts: provider data is only
loosely conformant, so documents are checked superficially (resourceType and
id) rather than parsed into strict models.

Errors are not retried and not classified beyond connection failures versus
non-2xx responses. Every failure is logged and re-raised to the caller.
"""

import asyncio
import json
import logging
from typing import Any

import httpx
from opentelemetry import trace

from healthhub.core.config import settings
from healthhub.infrastructure.fhir.exceptions import (
    FHIRConnectionError,
    FHIROperationError,
    FHIRResourceNotFoundError,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

FHIR_JSON = "application/fhir+json"


def normalize_search_response(payload: Any) -> list[dict[str, Any]]:
    """Turn a FHIR search response into a flat list of resources.

    Servers answer searches in different shapes:
    - a Bundle: ``{"resourceType": "Bundle", "entry": [{"resource": ...}]}``
    - a bare JSON array of resources
    - a single resource object

    Args:
        payload: Decoded JSON body

    Returns:
        List of resources. ``[]`` for ``{"entry": []}``, a Bundle without
        entries, or any unrecognized shape.
    """
    if isinstance(payload, list):
        return payload

    if not isinstance(payload, dict):
        return []

    if "entry" in payload or payload.get("resourceType") == "Bundle":
        entries = payload.get("entry") or []
        return [entry["resource"] for entry in entries if isinstance(entry, dict) and "resource" in entry]

    if "resourceType" in payload:
        return [payload]

    return []


class FHIRClient:
    """Async FHIR client with OpenTelemetry tracing.

    Example:
        ```python
        client = FHIRClient("https://fhir.example-hospital.org/r4", access_token=token)
        conditions = await client.search("Condition", {"patient": "123"})
        await client.close()
        ```
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        access_token: str | None = None,
    ):
        """Initialize the FHIR client.

        Args:
            base_url: FHIR server base URL. Defaults to settings.FHIR_SERVER_URL.
            timeout: Request timeout in seconds. Defaults to settings.FHIR_TIMEOUT.
            access_token: Optional OAuth2 bearer token sent with every request.
        """
        self.base_url = (base_url or settings.FHIR_SERVER_URL).rstrip("/")
        self.timeout = timeout or settings.FHIR_TIMEOUT
        self.access_token = access_token
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the async HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {
                "Content-Type": FHIR_JSON,
                "Accept": FHIR_JSON,
            }
            if self.access_token:
                headers["Authorization"] = f"Bearer {self.access_token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
            )
        return self._client

    async def _send(
        self,
        method: str,
        path: str,
        span: trace.Span,
        *,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
        token: str | None = None,
    ) -> httpx.Response:
        """Send one request, mapping transport failures to FHIRConnectionError."""
        headers = {"Authorization": f"Bearer {token}"} if token else None
        try:
            client = await self._get_client()
            return await client.request(
                method,
                path,
                params=params,
                content=json.dumps(body) if body is not None else None,
                headers=headers,
            )
        except httpx.ConnectError as e:
            span.record_exception(e)
            logger.error(f"FHIR {method} {path} failed: {e}")
            raise FHIRConnectionError(f"Failed to connect to FHIR server: {e}")
        except httpx.TimeoutException as e:
            span.record_exception(e)
            logger.error(f"FHIR {method} {path} timed out: {e}")
            raise FHIRConnectionError(f"FHIR server request timed out: {e}")

    async def create(self, resource_type: str, body: dict[str, Any]) -> dict[str, Any]:
        """Create a resource on the server.

        Args:
            resource_type: FHIR resource type (e.g. "Condition")
            body: Resource document

        Returns:
            Created resource with server-assigned id

        Raises:
            FHIRConnectionError: If connection to server fails
            FHIROperationError: If server returns an error
        """
        with tracer.start_as_current_span(f"fhir_create_{resource_type}") as span:
            span.set_attribute("fhir.resource_type", resource_type)
            payload = {**body, "resourceType": resource_type}

            response = await self._send("POST", f"/{resource_type}", span, body=payload)
            if response.status_code in (200, 201):
                created = response.json()
                span.set_attribute("fhir.resource_id", str(created.get("id", "")))
                span.add_event("Resource created successfully")
                return created

            self._handle_error_response(response, span, resource_type)

    async def get(self, resource_type: str, resource_id: str) -> dict[str, Any]:
        """Read a resource by id.

        Raises:
            FHIRResourceNotFoundError: If the server answers 404
            FHIRConnectionError: If connection to server fails
            FHIROperationError: If server returns another error
        """
        with tracer.start_as_current_span(f"fhir_read_{resource_type}") as span:
            span.set_attribute("fhir.resource_type", resource_type)
            span.set_attribute("fhir.resource_id", resource_id)

            response = await self._send("GET", f"/{resource_type}/{resource_id}", span)
            if response.status_code == 404:
                span.add_event("Resource not found")
                logger.error(f"FHIR read {resource_type}/{resource_id}: not found")
                raise FHIRResourceNotFoundError(resource_type, resource_id)

            if response.status_code == 200:
                span.add_event("Resource found")
                return response.json()

            self._handle_error_response(response, span, resource_type)

    async def search(
        self,
        resource_type: str,
        params: dict[str, str] | None = None,
        token: str | None = None,
    ) -> list[dict[str, Any]]:
        """Search for resources.

        Args:
            resource_type: Type of resource to search
            params: FHIR search parameters
            token: Bearer token overriding the client's own for this call

        Returns:
            Resources found, normalized with ``normalize_search_response``

        Raises:
            FHIRConnectionError: If connection to server fails
            FHIROperationError: If server returns an error
        """
        with tracer.start_as_current_span(f"fhir_search_{resource_type}") as span:
            span.set_attribute("fhir.resource_type", resource_type)
            if params:
                span.set_attribute("fhir.search_params", json.dumps(params))

            response = await self._send(
                "GET", f"/{resource_type}", span, params=params or {}, token=token
            )
            if response.status_code == 200:
                resources = normalize_search_response(response.json())
                span.set_attribute("fhir.search_total", len(resources))
                span.add_event("Search completed")
                return resources

            self._handle_error_response(response, span, resource_type)

    async def update(
        self, resource_type: str, resource_id: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        """Replace an existing resource.

        Raises:
            FHIRResourceNotFoundError: If resource doesn't exist
            FHIRConnectionError: If connection to server fails
            FHIROperationError: If server returns an error
        """
        with tracer.start_as_current_span(f"fhir_update_{resource_type}") as span:
            span.set_attribute("fhir.resource_type", resource_type)
            span.set_attribute("fhir.resource_id", resource_id)
            payload = {**body, "resourceType": resource_type, "id": resource_id}

            response = await self._send(
                "PUT", f"/{resource_type}/{resource_id}", span, body=payload
            )
            if response.status_code == 404:
                logger.error(f"FHIR update {resource_type}/{resource_id}: not found")
                raise FHIRResourceNotFoundError(resource_type, resource_id)

            if response.status_code in (200, 201):
                span.add_event("Resource updated successfully")
                return response.json()

            self._handle_error_response(response, span, resource_type)

    async def delete(self, resource_type: str, resource_id: str) -> None:
        """Delete a resource.

        Raises:
            FHIRConnectionError: If connection to server fails
            FHIROperationError: If server returns an error
        """
        with tracer.start_as_current_span(f"fhir_delete_{resource_type}") as span:
            span.set_attribute("fhir.resource_type", resource_type)
            span.set_attribute("fhir.resource_id", resource_id)

            response = await self._send("DELETE", f"/{resource_type}/{resource_id}", span)
            if response.status_code in (200, 202, 204):
                span.add_event("Resource deleted")
                return

            self._handle_error_response(response, span, resource_type)

    # -------------------------------------------------------------------------
    # Patient-scoped helpers
    # -------------------------------------------------------------------------

    async def get_patient(self, patient_id: str) -> dict[str, Any]:
        return await self.get("Patient", patient_id)

    async def get_conditions(self, patient_id: str) -> list[dict[str, Any]]:
        return await self.search("Condition", {"patient": patient_id})

    async def get_observations(
        self, patient_id: str, count: int | None = None
    ) -> list[dict[str, Any]]:
        params = {"patient": patient_id, "_sort": "-date"}
        if count:
            params["_count"] = str(count)
        return await self.search("Observation", params)

    async def get_medications(
        self, patient_id: str, status: str | None = None
    ) -> list[dict[str, Any]]:
        params = {"patient": patient_id}
        if status:
            params["status"] = status
        return await self.search("MedicationRequest", params)

    async def get_allergies(self, patient_id: str) -> list[dict[str, Any]]:
        return await self.search("AllergyIntolerance", {"patient": patient_id})

    async def get_immunizations(self, patient_id: str) -> list[dict[str, Any]]:
        return await self.search("Immunization", {"patient": patient_id})

    async def get_coverage(self, patient_id: str) -> list[dict[str, Any]]:
        return await self.search("Coverage", {"beneficiary": patient_id})

    async def get_claims(self, patient_id: str) -> list[dict[str, Any]]:
        return await self.search("Claim", {"patient": patient_id})

    async def get_explanation_of_benefits(self, patient_id: str) -> list[dict[str, Any]]:
        return await self.search("ExplanationOfBenefit", {"patient": patient_id})

    async def get_patient_data(self, patient_id: str) -> dict[str, Any]:
        """Fetch a patient's full resource bundle concurrently.

        Each resource type fails independently: an unreadable patient becomes
        ``None`` and a failed search becomes ``[]``, so one broken endpoint on
        the provider does not hide the rest of the record.

        Returns:
            Dict with keys patient, conditions, observations, medications,
            allergies, immunizations, coverages, claims, explanationOfBenefits
        """
        with tracer.start_as_current_span("fhir_get_patient_data") as span:
            span.set_attribute("fhir.patient_id", patient_id)
            results = await asyncio.gather(
                self.get_patient(patient_id),
                self.get_conditions(patient_id),
                self.get_observations(patient_id),
                self.get_medications(patient_id),
                self.get_allergies(patient_id),
                self.get_immunizations(patient_id),
                self.get_coverage(patient_id),
                self.get_claims(patient_id),
                self.get_explanation_of_benefits(patient_id),
                return_exceptions=True,
            )

            keys = [
                "patient",
                "conditions",
                "observations",
                "medications",
                "allergies",
                "immunizations",
                "coverages",
                "claims",
                "explanationOfBenefits",
            ]
            data: dict[str, Any] = {}
            for key, result in zip(keys, results):
                if isinstance(result, Exception):
                    logger.warning(f"Could not fetch {key} for patient {patient_id}: {result}")
                    span.add_event("Partial fetch failure", {"fhir.bundle_key": key})
                    data[key] = None if key == "patient" else []
                else:
                    data[key] = result
            return data

    def _handle_error_response(
        self, response: httpx.Response, span: trace.Span, resource_type: str
    ) -> None:
        """Raise FHIROperationError for a non-success response.

        Raises:
            FHIROperationError: Always raised with error details
        """
        try:
            outcome = response.json()
        except json.JSONDecodeError:
            outcome = {"text": response.text}

        error_msg = f"FHIR {resource_type} operation failed with status {response.status_code}"
        span.set_attribute("fhir.error_status", response.status_code)
        span.add_event("FHIR operation failed", {"status_code": response.status_code})
        logger.error(error_msg)

        raise FHIROperationError(
            status_code=response.status_code,
            message=error_msg,
            operation_outcome=outcome,
            resource_type=resource_type,
        )

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None


# =============================================================================
# Singleton Pattern - local FHIR store client
# =============================================================================

_fhir_client: FHIRClient | None = None


def get_fhir_client() -> FHIRClient:
    """Get the local FHIR store client.

    Returns:
        FHIRClient: The initialized client

    Raises:
        RuntimeError: If the client has not been initialized (app not started)

    Example:
        ```python
        from healthhub.infrastructure.fhir.client import get_fhir_client

        async def migrate(session, bundle):
            destination = get_fhir_client()
            await destination.create("Patient", bundle["patient"])
        ```
    """
    if _fhir_client is None:
        raise RuntimeError(
            "FHIR client not initialized. Ensure the application lifespan has started properly."
        )
    return _fhir_client


async def initialize_fhir_client(
    base_url: str | None = None,
    timeout: float | None = None,
) -> FHIRClient:
    """Initialize the local FHIR store client (application startup)."""
    global _fhir_client
    _fhir_client = FHIRClient(base_url=base_url, timeout=timeout)
    return _fhir_client


async def close_fhir_client() -> None:
    """Close the local FHIR store client (application shutdown)."""
    global _fhir_client
    if _fhir_client is not None:
        await _fhir_client.close()
        _fhir_client = None
