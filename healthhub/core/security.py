"""
Local authentication: bcrypt password hashing and HS256 JWTs.

Access tokens are short lived (ACCESS_TOKEN_EXPIRE_MINUTES) and stateless.
Refresh tokens carry a ``jti`` that is persisted in ``refresh_tokens`` so
logout and rotation can revoke them.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Annotated, Any

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.config import settings
from healthhub.core.database import get_session, utcnow
from healthhub.models.user import User

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# auto_error=False so the cookie fallback in extract_token can run
security_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# =============================================================================
# Passwords
# =============================================================================


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


# =============================================================================
# Tokens
# =============================================================================


def create_access_token(user_id: int, email: str) -> str:
    expires_at = utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": str(user_id),
        "email": email,
        "type": ACCESS_TOKEN_TYPE,
        "exp": expires_at,
        "iat": utcnow(),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token(user_id: int) -> tuple[str, str, datetime]:
    """
    Create a refresh token.

    Returns:
        (token, jti, expires_at). The caller persists jti and expires_at.
    """
    jti = uuid.uuid4().hex
    expires_at = utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    claims = {
        "sub": str(user_id),
        "jti": jti,
        "type": REFRESH_TOKEN_TYPE,
        "exp": expires_at,
        "iat": utcnow(),
    }
    token = jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, jti, expires_at


def decode_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> dict[str, Any]:
    """
    Verify signature, expiry and token type.

    Raises:
        HTTPException: 401 when the token is invalid, expired or of the wrong type
    """
    with tracer.start_as_current_span("verify_jwt") as span:
        try:
            claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except JWTError as e:
            logger.warning(f"Token verification failed: {e}")
            span.set_attribute("auth.error", True)
            raise _unauthorized("Invalid or expired token") from e

        if claims.get("type") != expected_type:
            span.set_attribute("auth.error", True)
            raise _unauthorized("Invalid token type")

        span.set_attribute("auth.user_id", claims.get("sub", ""))
        return claims


def identity_from_token(token: str | None) -> tuple[int | None, str | None]:
    """Best-effort (user id, email) of an access token; (None, None) when invalid."""
    if not token:
        return None, None
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None, None
    if claims.get("type") != ACCESS_TOKEN_TYPE:
        return None, None
    try:
        return int(claims["sub"]), claims.get("email")
    except (KeyError, ValueError):
        return None, None


# =============================================================================
# FastAPI dependencies
# =============================================================================


async def extract_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)] = None,
) -> str:
    """
    Extract the access token.

    Priority:
    1. Authorization header: Bearer <token>
    2. Cookie: auth_token

    Raises:
        HTTPException: 401 if no token is present
    """
    if credentials:
        return credentials.credentials

    token = request.cookies.get("auth_token")
    if token:
        logger.debug("Token extracted from cookie")
        return token

    logger.warning("No authentication token found in request")
    raise _unauthorized("Authentication required")


async def get_current_user(
    token: Annotated[str, Depends(extract_token)],
    db: Annotated[AsyncSession, Depends(get_session)],
) -> User:
    """Resolve the authenticated account from its access token."""
    with tracer.start_as_current_span("get_current_user") as span:
        claims = decode_token(token, ACCESS_TOKEN_TYPE)
        try:
            user_id = int(claims["sub"])
        except (KeyError, ValueError) as e:
            raise _unauthorized("Could not validate credentials") from e

        user = await db.get(User, user_id)
        if user is None or not user.is_active:
            span.set_attribute("auth.error", True)
            raise _unauthorized("Could not validate credentials")

        span.set_attribute("auth.user_id", user.id)
        return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def get_optional_user_id(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security_scheme)] = None,
) -> int | None:
    """Account id of the caller when a valid access token is presented, else None."""
    token = credentials.credentials if credentials else request.cookies.get("auth_token")
    user_id, _ = identity_from_token(token)
    return user_id


OptionalUserId = Annotated[int | None, Depends(get_optional_user_id)]
