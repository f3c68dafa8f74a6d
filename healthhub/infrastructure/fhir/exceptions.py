"""Exceptions raised by the FHIR clients.

The clients do not classify failures beyond these types: every error is
logged once and re-raised to the caller, which translates it into an HTTP
problem response.
"""

from typing import Any


class FHIRError(Exception):
    """Base exception for FHIR operations."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FHIRConnectionError(FHIRError):
    """The FHIR server could not be reached or timed out."""

    pass


class FHIRResourceNotFoundError(FHIRError):
    """A read or update targeted a resource the server does not have (404)."""

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type}/{resource_id} not found",
            {"resource_type": resource_type, "resource_id": resource_id},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class FHIRValidationError(FHIRError):
    """A document is not a usable FHIR resource (missing resourceType or id)."""

    def __init__(self, message: str, issues: list[dict[str, Any]] | None = None):
        super().__init__(message, {"issues": issues or []})
        self.issues = issues or []


class FHIROperationError(FHIRError):
    """The server answered with a non-2xx status."""

    def __init__(
        self,
        status_code: int,
        message: str,
        operation_outcome: dict | None = None,
        resource_type: str | None = None,
    ):
        super().__init__(
            message,
            {
                "status_code": status_code,
                "resource_type": resource_type,
                "outcome": operation_outcome,
            },
        )
        self.status_code = status_code
        self.operation_outcome = operation_outcome
        self.resource_type = resource_type
