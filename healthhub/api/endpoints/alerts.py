"""Health alerts and weekly digests of the signed-in account's family."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import get_session
from healthhub.core.exceptions import NotFoundError
from healthhub.core.security import CurrentUser
from healthhub.schemas.alerts import (
    AlertCountResponse,
    AlertCreate,
    AlertResponse,
    DigestResponse,
    GenerateAlertsResponse,
    MemberAlertResponse,
    UpdatedResponse,
)
from healthhub.services import digest_service, family_service, notification_service

router = APIRouter()


async def _require_member(request: Request, db: AsyncSession, user_id: int, member_id: int) -> None:
    if await family_service.get_member(db, user_id, member_id) is None:
        raise NotFoundError(
            detail=f"Family member {member_id} not found", instance=request.url.path
        )


# =============================================================================
# Alerts
# =============================================================================


@router.get(
    "",
    response_model=list[MemberAlertResponse],
    summary="Family alerts",
    description="Newest first. Without unreadOnly the list holds the 50 latest alerts",
)
async def list_alerts(
    current_user: CurrentUser,
    unread_only: bool = Query(False, alias="unreadOnly"),
    db: AsyncSession = Depends(get_session),
) -> list[MemberAlertResponse]:
    rows = await notification_service.list_alerts(db, current_user.id, unread_only=unread_only)
    return [
        MemberAlertResponse(alert=AlertResponse.model_validate(alert), member_name=member_name)
        for alert, member_name in rows
    ]


@router.get("/count", response_model=AlertCountResponse, summary="Unread alert count")
async def unread_count(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AlertCountResponse:
    return AlertCountResponse(count=await notification_service.unread_count(db, current_user.id))


@router.get(
    "/member/{member_id}",
    response_model=list[AlertResponse],
    summary="Alerts of a member",
)
async def list_member_alerts(
    member_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[AlertResponse]:
    await _require_member(request, db, current_user.id, member_id)
    alerts = await notification_service.list_member_alerts(db, member_id)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.post(
    "",
    response_model=AlertResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an alert",
)
async def create_alert(
    data: AlertCreate,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AlertResponse:
    await _require_member(request, db, current_user.id, data.family_member_id)
    alert = await notification_service.create_alert(db, data)
    return AlertResponse.model_validate(alert)


@router.post(
    "/read-all",
    response_model=UpdatedResponse,
    summary="Mark every alert read",
)
async def mark_all_read(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> UpdatedResponse:
    updated = await notification_service.mark_all_read(db, current_user.id)
    return UpdatedResponse(updated=updated > 0)


@router.post(
    "/generate",
    response_model=GenerateAlertsResponse,
    summary="Generate reminders and milestone alerts",
    description=(
        "Create reminders for appointments 7, 3 and 1 days ahead and alerts "
        "for goals reaching 50, 75 and 100 %. Alerts are never repeated"
    ),
)
async def generate_alerts(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> GenerateAlertsResponse:
    created = await notification_service.generate_alerts(db, current_user.id)
    return GenerateAlertsResponse(created=created)


@router.post("/{alert_id}/read", response_model=AlertResponse, summary="Mark an alert read")
async def mark_read(
    alert_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AlertResponse:
    alert = await notification_service.mark_read(db, current_user.id, alert_id)
    if alert is None:
        raise NotFoundError(detail=f"Alert {alert_id} not found", instance=request.url.path)
    return AlertResponse.model_validate(alert)


@router.post("/{alert_id}/dismiss", response_model=AlertResponse, summary="Dismiss an alert")
async def dismiss(
    alert_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> AlertResponse:
    alert = await notification_service.dismiss(db, current_user.id, alert_id)
    if alert is None:
        raise NotFoundError(detail=f"Alert {alert_id} not found", instance=request.url.path)
    return AlertResponse.model_validate(alert)


# =============================================================================
# Digests
# =============================================================================


@router.get("/digests", response_model=list[DigestResponse], summary="Recent weekly digests")
async def list_digests(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> list[DigestResponse]:
    digests = await digest_service.list_digests(db, current_user.id)
    return [DigestResponse.model_validate(d) for d in digests]


@router.get("/digests/latest", response_model=DigestResponse, summary="Latest weekly digest")
async def latest_digest(
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> DigestResponse:
    digest = await digest_service.latest_digest(db, current_user.id)
    if digest is None:
        raise NotFoundError(detail="No digest found", instance=request.url.path)
    return DigestResponse.model_validate(digest)


@router.post(
    "/digests/generate",
    response_model=DigestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate this week's digest",
)
async def generate_digest(
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> DigestResponse:
    digest = await digest_service.generate_digest(db, current_user.id)
    return DigestResponse.model_validate(digest)


@router.post("/digests/{digest_id}/read", response_model=DigestResponse, summary="Mark a digest read")
async def mark_digest_read(
    digest_id: int,
    request: Request,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> DigestResponse:
    digest = await digest_service.mark_digest_read(db, current_user.id, digest_id)
    if digest is None:
        raise NotFoundError(detail=f"Digest {digest_id} not found", instance=request.url.path)
    return DigestResponse.model_validate(digest)
