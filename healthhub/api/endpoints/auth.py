"""Account registration, login and token endpoints."""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.config import settings
from healthhub.core.database import get_session
from healthhub.core.security import CurrentUser
from healthhub.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from healthhub.services import auth_service

router = APIRouter()

AUTH_COOKIE = "auth_token"


def _set_auth_cookie(response: Response, tokens: TokenResponse) -> None:
    response.set_cookie(
        AUTH_COOKIE,
        tokens.access_token,
        max_age=tokens.expires_in,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
    )


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an account",
    description="Create an account and return an access/refresh token pair",
)
async def register(
    data: RegisterRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    tokens = await auth_service.register(db, data)
    _set_auth_cookie(response, tokens)
    return tokens


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Log in",
)
async def login(
    data: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    tokens = await auth_service.login(db, data)
    _set_auth_cookie(response, tokens)
    return tokens


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Rotate a refresh token",
    description="Revoke the presented refresh token and issue a new pair",
)
async def refresh(
    data: RefreshRequest,
    response: Response,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    tokens = await auth_service.refresh(db, data.refresh_token)
    _set_auth_cookie(response, tokens)
    return tokens


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Log out",
)
async def logout(
    current_user: CurrentUser,
    response: Response,
    data: LogoutRequest | None = None,
    db: AsyncSession = Depends(get_session),
) -> Response:
    await auth_service.logout(db, current_user, data.refresh_token if data else None)
    response.status_code = status.HTTP_204_NO_CONTENT
    response.delete_cookie(AUTH_COOKIE)
    return response


@router.get("/me", response_model=UserResponse, summary="Current account")
async def me(current_user: CurrentUser) -> UserResponse:
    return UserResponse.model_validate(current_user)
