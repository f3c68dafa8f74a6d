from fastapi import APIRouter

from healthhub.api import health
from healthhub.api.endpoints import (
    alerts,
    auth,
    chat,
    external,
    family,
    fhir,
    scheduling,
    users,
)
from healthhub.schemas import API_RESPONSES, AUTH_RESPONSES

# Main router with RFC 9457 responses by default
router = APIRouter(responses=API_RESPONSES)

router.include_router(health.router, tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(users.router, prefix="/users", tags=["users"], responses=AUTH_RESPONSES)
router.include_router(fhir.router, prefix="/fhir", tags=["fhir"])
router.include_router(chat.router, prefix="/chat", tags=["chat"])
router.include_router(external.router, prefix="/external", tags=["external"])
router.include_router(family.router, prefix="/family", tags=["family"], responses=AUTH_RESPONSES)
router.include_router(
    scheduling.router, prefix="/scheduling", tags=["scheduling"], responses=AUTH_RESPONSES
)
router.include_router(alerts.router, prefix="/alerts", tags=["alerts"], responses=AUTH_RESPONSES)
