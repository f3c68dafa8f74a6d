"""Profile, theme and notification preferences of an account."""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.exceptions import ConflictError
from healthhub.models.user import DEFAULT_NOTIFICATION_PREFERENCES, User
from healthhub.schemas.user import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    ProfileUpdate,
)


async def update_profile(db: AsyncSession, user: User, data: ProfileUpdate) -> User:
    changes = data.model_dump(exclude_unset=True)
    if "email" in changes and changes["email"]:
        changes["email"] = changes["email"].lower()
    for field, value in changes.items():
        setattr(user, field, value)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(detail="Email already registered", instance="/api/users/profile") from e
    await db.refresh(user)
    return user


async def update_theme(db: AsyncSession, user: User, theme: str) -> User:
    user.theme = theme
    await db.commit()
    await db.refresh(user)
    return user


def get_notification_preferences(user: User) -> NotificationPreferences:
    stored = {**DEFAULT_NOTIFICATION_PREFERENCES, **(user.notification_preferences or {})}
    return NotificationPreferences.model_validate(stored)


async def update_notification_preferences(
    db: AsyncSession, user: User, data: NotificationPreferencesUpdate
) -> NotificationPreferences:
    """Merge the given keys into the stored preferences."""
    merged = get_notification_preferences(user).model_dump(by_alias=True)
    merged.update(data.model_dump(by_alias=True, exclude_none=True))
    # Reassign so SQLAlchemy sees the JSON column change
    user.notification_preferences = merged
    await db.commit()
    await db.refresh(user)
    return get_notification_preferences(user)
