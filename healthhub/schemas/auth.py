"""Registration, login and token schemas."""

from datetime import datetime

from pydantic import Field, field_validator

from healthhub.schemas.utils import CamelModel, Email, StrongPassword


class RegisterRequest(CamelModel):
    email: Email
    password: StrongPassword
    name: str = Field(..., description="Full name, split into first and last name")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class LoginRequest(CamelModel):
    email: Email
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1)


class UserResponse(CamelModel):
    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    profile_picture: str | None = None
    theme: str = "system"
    created_at: datetime | None = None


class TokenResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")
    user: UserResponse


class LogoutRequest(CamelModel):
    refresh_token: str | None = Field(None, description="Token to revoke; all tokens when omitted")
