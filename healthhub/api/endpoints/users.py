"""Profile and preference endpoints of the signed-in account."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import get_session
from healthhub.core.security import CurrentUser
from healthhub.schemas.auth import UserResponse
from healthhub.schemas.user import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    ProfileUpdate,
    ThemeUpdate,
)
from healthhub.services import user_service

router = APIRouter()


@router.get("/profile", response_model=UserResponse, summary="Get profile")
async def get_profile(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)


@router.patch(
    "/profile",
    response_model=UserResponse,
    summary="Update profile",
    description="Update name, email or picture. A taken email answers 409",
)
async def update_profile(
    data: ProfileUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await user_service.update_profile(db, current_user, data)
    return UserResponse.model_validate(user)


@router.patch("/theme", response_model=UserResponse, summary="Set UI theme")
async def update_theme(
    data: ThemeUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> UserResponse:
    user = await user_service.update_theme(db, current_user, data.theme)
    return UserResponse.model_validate(user)


@router.get(
    "/notifications",
    response_model=NotificationPreferences,
    summary="Get notification preferences",
)
async def get_notification_preferences(current_user: CurrentUser) -> NotificationPreferences:
    return user_service.get_notification_preferences(current_user)


@router.patch(
    "/notifications",
    response_model=NotificationPreferences,
    summary="Update notification preferences",
    description="Only the given keys change",
)
async def update_notification_preferences(
    data: NotificationPreferencesUpdate,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_session),
) -> NotificationPreferences:
    return await user_service.update_notification_preferences(db, current_user, data)
