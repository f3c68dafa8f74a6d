"""
RFC 9457 Problem Details exceptions for healthhub-api.

Re-exports the fastapi-errors-rfc9457 exceptions and adds the two
domain-specific problems used by the API: a missing FHIR session (401)
and an unreachable upstream data provider (503). Request validation
failures are reported as 400 problems by ``request_validation_handler``.
"""

from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi_errors_rfc9457 import (
    ConflictError,
    ForbiddenError,
    InternalServerError,
    NotFoundError,
    ProblemDetail,
    RFC9457Exception,
    ServiceUnavailableError,
    UnauthorizedError,
    ValidationError,
)


class NoActiveSessionError(UnauthorizedError):
    """
    Raised when a route needs a connected FHIR provider and none is current.

    Attributes:
        status_code: HTTP 401 (Unauthorized)
        problem_detail: RFC 9457 problem details

    Example:
        ```python
        session = await session_service.get_current_fhir_session(db)
        if session is None:
            raise NoActiveSessionError(instance="/api/fhir/patient")
        ```
    """

    def __init__(
        self,
        detail: str = "No active FHIR session",
        instance: str | None = None,
    ):
        super().__init__(detail=detail, instance=instance)


class UpstreamUnavailableError(ServiceUnavailableError):
    """
    Raised when a single-item lookup against an external API degraded.

    Search endpoints report degradation in the response body instead; this
    error is reserved for lookups where an empty answer would be misleading.

    Example:
        ```python
        result = await clinical_trials.get_trial(nct_id)
        if isinstance(result, Degraded):
            raise UpstreamUnavailableError(
                source=result.source,
                detail=result.reason,
                instance=f"/api/external/clinical-trials/{nct_id}",
            )
        ```
    """

    def __init__(
        self,
        source: str,
        detail: str | None = None,
        instance: str | None = None,
        retry_after: int | None = None,
    ):
        super().__init__(
            detail=detail or f"{source} is currently unavailable",
            retry_after=retry_after,
            instance=instance,
        )
        self.source = source


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests answer 400 with the field-level errors."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Bad Request",
            "status": status.HTTP_400_BAD_REQUEST,
            "detail": "Request validation failed",
            "instance": request.url.path,
            "errors": jsonable_encoder(exc.errors()),
        },
    )


__all__ = [
    "ConflictError",
    "ForbiddenError",
    "InternalServerError",
    "NoActiveSessionError",
    "NotFoundError",
    "ProblemDetail",
    "RFC9457Exception",
    "ServiceUnavailableError",
    "UnauthorizedError",
    "UpstreamUnavailableError",
    "ValidationError",
    "request_validation_handler",
]
