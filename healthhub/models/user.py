"""Application accounts and refresh tokens."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from healthhub.core.database import Base, JSONType

DEFAULT_NOTIFICATION_PREFERENCES = {
    "emailNotifications": True,
    "pushNotifications": True,
    "careGapAlerts": True,
    "medicationReminders": True,
    "appointmentReminders": True,
    "healthSummaries": True,
}


class User(Base):
    """An account holder managing health records for a family."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        comment="Login email (stored lower-cased)",
    )
    password_hash: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="bcrypt hash"
    )
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    profile_picture: Mapped[str | None] = mapped_column(
        String(1024), nullable=True, comment="Avatar URL"
    )
    theme: Mapped[str] = mapped_column(
        String(10), nullable=False, default="system", comment="light, dark or system"
    )
    notification_preferences: Mapped[dict] = mapped_column(
        JSONType,
        nullable=False,
        default=lambda: dict(DEFAULT_NOTIFICATION_PREFERENCES),
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.email

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"


class RefreshToken(Base):
    """Issued refresh tokens, tracked by JWT id so they can be revoked."""

    __tablename__ = "refresh_tokens"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    jti: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True, comment="JWT id claim"
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
