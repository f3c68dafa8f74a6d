"""FHIR provider connections and the chat history attached to them."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from healthhub.core.database import Base, JSONType


class FhirSession(Base):
    """One connection to an external FHIR provider.

    Lifecycle: created current, later ended (``current=False`` and
    ``ended_at`` set). Rows are never deleted. The partial unique index
    allows at most one row with ``current`` true.
    """

    __tablename__ = "fhir_sessions"
    __table_args__ = (
        Index(
            "uq_fhir_sessions_single_current",
            "current",
            unique=True,
            postgresql_where=text("current"),
            sqlite_where=text("current = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    provider: Mapped[str] = mapped_column(
        String(50), nullable=False, comment="Provider key (demo, hapi, epic, ...)"
    )
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    token_expiry: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    fhir_server: Mapped[str | None] = mapped_column(
        String(1024), nullable=True, comment="FHIR base URL of the provider"
    )
    patient_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True, comment="Patient id on the provider server"
    )
    scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    state: Mapped[str | None] = mapped_column(String(255), nullable=True, comment="OAuth state")
    current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    migrated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    migration_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    migration_counts: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="Resources copied to the local store, by type"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<FhirSession(id={self.id}, provider='{self.provider}', current={self.current})>"
        )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(primary_key=True)
    fhir_session_id: Mapped[int] = mapped_column(
        ForeignKey("fhir_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, comment="user or assistant")
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
    context_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
