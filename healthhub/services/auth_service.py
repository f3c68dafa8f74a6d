"""Account registration, login and refresh-token rotation."""

import logging
from datetime import timedelta

from opentelemetry import trace
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.config import settings
from healthhub.core.database import ensure_aware, utcnow
from healthhub.core.exceptions import ConflictError, UnauthorizedError
from healthhub.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)
from healthhub.models.user import RefreshToken, User
from healthhub.schemas.auth import LoginRequest, RegisterRequest, TokenResponse, UserResponse

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def split_name(name: str) -> tuple[str, str | None]:
    """Split "First Middle Last" into ("First", "Middle Last")."""
    first, _, rest = name.strip().partition(" ")
    return first, rest.strip() or None


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def _issue_tokens(db: AsyncSession, user: User) -> TokenResponse:
    refresh_token, jti, expires_at = create_refresh_token(user.id)
    db.add(RefreshToken(user_id=user.id, jti=jti, expires_at=expires_at))
    await db.commit()
    await db.refresh(user)
    return TokenResponse(
        access_token=create_access_token(user.id, user.email),
        refresh_token=refresh_token,
        expires_in=int(timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES).total_seconds()),
        user=UserResponse.model_validate(user),
    )


async def register(db: AsyncSession, data: RegisterRequest) -> TokenResponse:
    """
    Create an account and sign it in.

    Raises:
        ConflictError: 409 if the email is already registered
    """
    with tracer.start_as_current_span("register_user") as span:
        if await get_user_by_email(db, data.email):
            span.add_event("Email already registered")
            raise ConflictError(detail="Email already registered", instance="/api/auth/register")

        first_name, last_name = split_name(data.name)
        user = User(
            email=data.email.lower(),
            password_hash=hash_password(data.password),
            first_name=first_name,
            last_name=last_name,
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            raise ConflictError(
                detail="Email already registered", instance="/api/auth/register"
            ) from e

        span.set_attribute("auth.user_id", user.id)
        logger.info(f"User {user.id} registered")
        return await _issue_tokens(db, user)


async def login(db: AsyncSession, data: LoginRequest) -> TokenResponse:
    """
    Check credentials and issue a token pair.

    Raises:
        UnauthorizedError: 401 for an unknown email, a wrong password or a disabled account
    """
    with tracer.start_as_current_span("login_user") as span:
        user = await get_user_by_email(db, data.email)
        if user is None or not verify_password(data.password, user.password_hash):
            span.add_event("Invalid credentials")
            logger.warning("Failed login attempt")
            raise UnauthorizedError(detail=INVALID_CREDENTIALS, instance="/api/auth/login")
        if not user.is_active:
            raise UnauthorizedError(detail="Account disabled", instance="/api/auth/login")

        user.last_login_at = utcnow()
        span.set_attribute("auth.user_id", user.id)
        return await _issue_tokens(db, user)


async def _active_refresh_token(db: AsyncSession, token: str) -> RefreshToken:
    claims = decode_token(token, REFRESH_TOKEN_TYPE)
    result = await db.execute(select(RefreshToken).where(RefreshToken.jti == claims.get("jti")))
    stored = result.scalar_one_or_none()
    if (
        stored is None
        or stored.revoked_at is not None
        or ensure_aware(stored.expires_at) <= utcnow()
    ):
        raise UnauthorizedError(detail="Refresh token revoked or expired", instance="/api/auth/refresh")
    return stored


async def refresh(db: AsyncSession, token: str) -> TokenResponse:
    """Rotate a refresh token: the presented one is revoked, a new pair is issued."""
    with tracer.start_as_current_span("refresh_token"):
        stored = await _active_refresh_token(db, token)
        user = await db.get(User, stored.user_id)
        if user is None or not user.is_active:
            raise UnauthorizedError(detail="Account disabled", instance="/api/auth/refresh")

        stored.revoked_at = utcnow()
        return await _issue_tokens(db, user)


async def logout(db: AsyncSession, user: User, token: str | None = None) -> None:
    """Revoke one refresh token, or all of the user's tokens when none is given."""
    now = utcnow()
    query = update(RefreshToken).where(
        RefreshToken.user_id == user.id, RefreshToken.revoked_at.is_(None)
    )
    if token:
        claims = decode_token(token, REFRESH_TOKEN_TYPE)
        query = query.where(RefreshToken.jti == claims.get("jti"))
    await db.execute(query.values(revoked_at=now))
    await db.commit()
    logger.info(f"User {user.id} logged out")
