"""Health alerts and weekly digests."""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from healthhub.core.database import Base, JSONType


class HealthAlert(Base):
    """A notification about one family member.

    Generated alerts are deduplicated on
    (``family_member_id``, ``alert_type``, ``related_entity_id``).
    """

    __tablename__ = "health_alerts"

    id: Mapped[int] = mapped_column(primary_key=True)
    family_member_id: Mapped[int] = mapped_column(
        ForeignKey("family_members.id", ondelete="CASCADE"), nullable=False, index=True
    )
    alert_type: Mapped[str] = mapped_column(
        String(50), nullable=False, default="custom", comment="appointment_reminder, milestone, ..."
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, default="medium", comment="low, medium, high, urgent"
    )
    action_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    related_entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    related_entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    extra: Mapped[dict | None] = mapped_column("metadata", JSONType, nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    dismissed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )


class HealthDigest(Base):
    __tablename__ = "health_digests"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    week_start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    week_end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    summary: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    highlights: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    appointment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    action_item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_actions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
