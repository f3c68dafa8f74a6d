"""
OpenAPI response schemas for RFC 9457 Problem Details.

Validation failures answer 400 (not 422) and unreachable public APIs answer
503 on single-item lookups; both are documented on every route.
"""

from fastapi_errors_rfc9457 import (
    COMMON_RESPONSES,
    ProblemDetailResponse,
    ValidationErrorResponse,
)

API_RESPONSES: dict[int | str, dict] = {
    **{code: spec for code, spec in COMMON_RESPONSES.items() if str(code) != "422"},
    400: {"model": ValidationErrorResponse, "description": "Malformed request"},
    503: {"model": ProblemDetailResponse, "description": "Upstream API unavailable"},
}

AUTH_RESPONSES: dict[int | str, dict] = {
    401: {"model": ProblemDetailResponse, "description": "Missing, expired or revoked token"},
}

__all__ = [
    "API_RESPONSES",
    "AUTH_RESPONSES",
    "ProblemDetailResponse",
    "ValidationErrorResponse",
]
