"""Unit tests for the security module.

Covers bcrypt hashing, JWT issue/verification, token extraction (header
then cookie) and the current-user dependency.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from jose import jwt

from healthhub.core.config import settings
from healthhub.core.database import utcnow
from healthhub.core.security import (
    ACCESS_TOKEN_TYPE,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    extract_token,
    get_current_user,
    get_optional_user_id,
    hash_password,
    identity_from_token,
    verify_password,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_request():
    request = MagicMock()
    request.cookies = {}
    return request


@pytest.fixture
def mock_credentials():
    creds = MagicMock()
    creds.credentials = "header-token"
    return creds


def _expired_token(token_type: str = ACCESS_TOKEN_TYPE) -> str:
    claims = {
        "sub": "1",
        "type": token_type,
        "exp": utcnow() - timedelta(minutes=1),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


# =============================================================================
# Passwords
# =============================================================================


class TestPasswords:
    def test_hash_and_verify(self):
        password_hash = hash_password("Str0ngPassw0rd!")

        assert password_hash != "Str0ngPassw0rd!"
        assert verify_password("Str0ngPassw0rd!", password_hash)
        assert not verify_password("wrong", password_hash)

    def test_hashes_are_salted(self):
        assert hash_password("Str0ngPassw0rd!") != hash_password("Str0ngPassw0rd!")

    def test_malformed_hash_does_not_verify(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


# =============================================================================
# Tokens
# =============================================================================


class TestTokens:
    def test_access_token_claims(self):
        claims = decode_token(create_access_token(42, "alex@example.com"))

        assert claims["sub"] == "42"
        assert claims["email"] == "alex@example.com"
        assert claims["type"] == ACCESS_TOKEN_TYPE

    def test_refresh_token_carries_jti(self):
        token, jti, expires_at = create_refresh_token(42)
        claims = decode_token(token, REFRESH_TOKEN_TYPE)

        assert claims["jti"] == jti
        assert expires_at > utcnow() + timedelta(days=6)

    def test_refresh_tokens_are_unique(self):
        _, jti_a, _ = create_refresh_token(42)
        _, jti_b, _ = create_refresh_token(42)
        assert jti_a != jti_b

    def test_refresh_token_rejected_as_access_token(self):
        token, _, _ = create_refresh_token(42)

        with pytest.raises(HTTPException) as exc_info:
            decode_token(token, ACCESS_TOKEN_TYPE)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid token type"

    def test_expired_token(self):
        with pytest.raises(HTTPException) as exc_info:
            decode_token(_expired_token())

        assert exc_info.value.status_code == 401
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    def test_token_signed_with_another_secret(self):
        forged = jwt.encode(
            {"sub": "1", "type": ACCESS_TOKEN_TYPE}, "x" * 40, algorithm=settings.JWT_ALGORITHM
        )
        with pytest.raises(HTTPException):
            decode_token(forged)

    def test_identity_from_token(self):
        assert identity_from_token(create_access_token(7, "sam@example.com")) == (
            7,
            "sam@example.com",
        )

    @pytest.mark.parametrize("token", [None, "", "garbage"])
    def test_identity_from_invalid_token(self, token):
        assert identity_from_token(token) == (None, None)

    def test_identity_ignores_refresh_tokens(self):
        token, _, _ = create_refresh_token(7)
        assert identity_from_token(token) == (None, None)


# =============================================================================
# Dependencies
# =============================================================================


class TestExtractToken:
    @pytest.mark.asyncio
    async def test_header_has_priority(self, mock_request, mock_credentials):
        mock_request.cookies = {"auth_token": "cookie-token"}

        assert await extract_token(mock_request, mock_credentials) == "header-token"

    @pytest.mark.asyncio
    async def test_cookie_fallback(self, mock_request):
        mock_request.cookies = {"auth_token": "cookie-token"}

        assert await extract_token(mock_request, None) == "cookie-token"

    @pytest.mark.asyncio
    async def test_missing_token(self, mock_request):
        with pytest.raises(HTTPException) as exc_info:
            await extract_token(mock_request, None)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Authentication required"


class TestGetCurrentUser:
    @pytest.mark.asyncio
    async def test_resolves_user(self, db_session, user):
        token = create_access_token(user.id, user.email)

        current = await get_current_user(token, db_session)

        assert current.id == user.id

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session):
        token = create_access_token(9999, "ghost@example.com")

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(token, db_session)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_inactive_user(self, db_session, user):
        user.is_active = False
        await db_session.commit()

        with pytest.raises(HTTPException):
            await get_current_user(create_access_token(user.id, user.email), db_session)


class TestOptionalUserId:
    @pytest.mark.asyncio
    async def test_anonymous(self, mock_request):
        assert await get_optional_user_id(mock_request, None) is None

    @pytest.mark.asyncio
    async def test_from_cookie(self, mock_request):
        mock_request.cookies = {"auth_token": create_access_token(5, "a@example.com")}

        assert await get_optional_user_id(mock_request, None) == 5

    @pytest.mark.asyncio
    async def test_invalid_header_is_anonymous(self, mock_request, mock_credentials):
        assert await get_optional_user_id(mock_request, mock_credentials) is None
