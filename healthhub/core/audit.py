"""
Access log for routes that expose protected health information.

``AuditMiddleware`` writes one ``audit_logs`` row per request whose path
starts with a PHI prefix. The row is written after the response is produced;
a failure to write it is logged and never changes the response.
"""

import logging
import re
import time
from collections.abc import Callable

from fastapi import Request, Response
from opentelemetry import metrics
from starlette.middleware.base import BaseHTTPMiddleware

from healthhub.core import database
from healthhub.core.config import settings
from healthhub.core.security import identity_from_token
from healthhub.models.audit_log import AuditLog

logger = logging.getLogger(__name__)
meter = metrics.get_meter(__name__)

audit_failures = meter.create_counter(
    name="audit_log_failures_total",
    description="Audit rows that could not be written",
    unit="1",
)

PHI_PATHS = (
    "/fhir/patient",
    "/fhir/condition",
    "/fhir/observation",
    "/fhir/medicationrequest",
    "/fhir/allergyintolerance",
    "/fhir/immunization",
    "/fhir/coverage",
    "/fhir/claim",
    "/fhir/explanation-of-benefit",
    "/fhir/appointment",
    "/fhir/care-gaps",
    "/fhir/sessions/current/migrate",
    "/chat/messages",
)

METHOD_ACTIONS = {
    "POST": "CREATE",
    "GET": "READ",
    "PUT": "UPDATE",
    "PATCH": "UPDATE",
    "DELETE": "DELETE",
}

_FHIR_RESOURCE = re.compile(r"/fhir/([^/?]+)(?:/([^/?]+))?")


def phi_prefixes(api_prefix: str = settings.API_PREFIX) -> tuple[str, ...]:
    return tuple(f"{api_prefix}{path}" for path in PHI_PATHS)


def is_phi_path(path: str, api_prefix: str = settings.API_PREFIX) -> bool:
    return path.startswith(phi_prefixes(api_prefix))


def action_for_method(method: str) -> str:
    return METHOD_ACTIONS.get(method.upper(), "ACCESS")


def resource_from_path(path: str) -> tuple[str, str | None]:
    """
    Resource type and id of a request path.

    ``/api/fhir/observation/obs-1`` -> ("OBSERVATION", "obs-1");
    ``/api/chat/messages`` -> ("CHAT", None).
    """
    match = _FHIR_RESOURCE.search(path)
    if match:
        return match.group(1).upper(), match.group(2)
    if "/chat" in path:
        return "CHAT", None
    if "/users" in path:
        return "USER", None
    return "UNKNOWN", None


def client_ip(request: Request) -> str:
    """First ``x-forwarded-for`` hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def request_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization", "")
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return request.cookies.get("auth_token")


async def write_audit_log(entry: AuditLog) -> None:
    try:
        async with database.async_session_maker() as db:
            db.add(entry)
            await db.commit()
    except Exception as e:
        audit_failures.add(1, {"resource_type": entry.resource_type})
        logger.error(f"Failed to write audit log for {entry.method} {entry.endpoint}: {e}")


class AuditMiddleware(BaseHTTPMiddleware):
    """Record every access to a PHI route in ``audit_logs``."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not is_phi_path(path):
            return await call_next(request)

        start_time = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            user_id, user_email = identity_from_token(request_token(request))
            resource_type, resource_id = resource_from_path(path)
            await write_audit_log(
                AuditLog(
                    user_id=user_id,
                    user_email=user_email,
                    action=action_for_method(request.method),
                    resource_type=resource_type,
                    resource_id=resource_id,
                    endpoint=path,
                    method=request.method,
                    status_code=status_code,
                    success=200 <= status_code < 400,
                    ip_address=client_ip(request),
                    user_agent=request.headers.get("user-agent", "unknown"),
                    duration_ms=duration_ms,
                    extra={"query": dict(request.query_params)},
                )
            )
