"""Weekly health digests (Sunday 00:00 to Saturday 23:59:59.999999 UTC)."""

import logging
from datetime import datetime, time, timedelta
from typing import Any

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import utcnow
from healthhub.models.family import ActionItem, FamilyMember, HealthGoal
from healthhub.models.notification import HealthDigest
from healthhub.models.scheduling import ScheduledAppointment

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DIGEST_LIST_LIMIT = 10


def week_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Start (Sunday midnight) and end (Saturday, last microsecond) of ``now``'s week."""
    days_since_sunday = (now.weekday() + 1) % 7
    start = datetime.combine(now.date() - timedelta(days=days_since_sunday), time.min, tzinfo=now.tzinfo)
    end = start + timedelta(days=7) - timedelta(microseconds=1)
    return start, end


def digest_highlights(completed: int, appointments: int, pending: int) -> list[str]:
    highlights = []
    if completed:
        verb = "s were" if completed > 1 else " was"
        highlights.append(f"Great job! {completed} health action{verb} completed this week.")
    if appointments:
        verb = "s are" if appointments > 1 else " is"
        highlights.append(f"{appointments} appointment{verb} scheduled for this week.")
    if pending:
        verb = "s need" if pending > 1 else " needs"
        highlights.append(f"{pending} health action{verb} attention.")
    return highlights


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


async def list_digests(db: AsyncSession, user_id: int) -> list[HealthDigest]:
    result = await db.execute(
        select(HealthDigest)
        .where(HealthDigest.user_id == user_id)
        .order_by(HealthDigest.week_start_date.desc(), HealthDigest.id.desc())
        .limit(DIGEST_LIST_LIMIT)
    )
    return list(result.scalars().all())


async def latest_digest(db: AsyncSession, user_id: int) -> HealthDigest | None:
    digests = await list_digests(db, user_id)
    return digests[0] if digests else None


async def generate_digest(
    db: AsyncSession, user_id: int, now: datetime | None = None
) -> HealthDigest:
    """
    Summarize the current week for the account's family and store it.

    The summary holds the members, the week's appointments, actions completed
    since the week started, pending actions and active goals.
    """
    with tracer.start_as_current_span("generate_digest") as span:
        span.set_attribute("user.id", user_id)
        week_start, week_end = week_bounds(now or utcnow())

        members_result = await db.execute(
            select(FamilyMember).where(FamilyMember.user_id == user_id).order_by(FamilyMember.id)
        )
        members = list(members_result.scalars().all())

        appointments_result = await db.execute(
            select(ScheduledAppointment, FamilyMember.name)
            .join(FamilyMember, ScheduledAppointment.family_member_id == FamilyMember.id)
            .where(
                FamilyMember.user_id == user_id,
                ScheduledAppointment.scheduled_date_time >= week_start,
                ScheduledAppointment.scheduled_date_time <= week_end,
            )
            .order_by(ScheduledAppointment.scheduled_date_time)
        )
        appointments = appointments_result.all()

        completed_result = await db.execute(
            select(ActionItem, FamilyMember.name)
            .join(FamilyMember, ActionItem.family_member_id == FamilyMember.id)
            .where(
                FamilyMember.user_id == user_id,
                ActionItem.status == "completed",
                ActionItem.completed_at >= week_start,
            )
        )
        completed = completed_result.all()

        pending_result = await db.execute(
            select(ActionItem, FamilyMember.name)
            .join(FamilyMember, ActionItem.family_member_id == FamilyMember.id)
            .where(FamilyMember.user_id == user_id, ActionItem.status == "pending")
        )
        pending = pending_result.all()

        goals_result = await db.execute(
            select(HealthGoal, FamilyMember.name)
            .join(FamilyMember, HealthGoal.family_member_id == FamilyMember.id)
            .where(FamilyMember.user_id == user_id, HealthGoal.status == "active")
        )
        goals = goals_result.all()

        highlights = digest_highlights(len(completed), len(appointments), len(pending))
        summary: dict[str, Any] = {
            "familyMembers": [
                {"id": m.id, "name": m.name, "relationship": m.relationship} for m in members
            ],
            "appointments": [
                {
                    "id": a.id,
                    "memberName": name,
                    "providerName": a.provider_name,
                    "scheduledDateTime": _isoformat(a.scheduled_date_time),
                    "status": a.status,
                }
                for a, name in appointments
            ],
            "completedActions": [
                {"id": item.id, "memberName": name, "title": item.title} for item, name in completed
            ],
            "pendingActions": [
                {"id": item.id, "memberName": name, "title": item.title, "priority": item.priority}
                for item, name in pending
            ],
            "goalProgress": [
                {"id": g.id, "memberName": name, "title": g.title, "progress": g.progress}
                for g, name in goals
            ],
            "highlights": highlights,
        }

        digest = HealthDigest(
            user_id=user_id,
            week_start_date=week_start,
            week_end_date=week_end,
            summary=summary,
            highlights=highlights,
            appointment_count=len(appointments),
            action_item_count=len(pending),
            completed_actions_count=len(completed),
        )
        db.add(digest)
        await db.commit()
        await db.refresh(digest)

        span.set_attribute("digest.id", digest.id)
        logger.info(f"Weekly digest {digest.id} generated for user {user_id}")
        return digest


async def mark_digest_read(db: AsyncSession, user_id: int, digest_id: int) -> HealthDigest | None:
    result = await db.execute(
        select(HealthDigest).where(HealthDigest.id == digest_id, HealthDigest.user_id == user_id)
    )
    digest = result.scalar_one_or_none()
    if digest is None:
        return None
    digest.read_at = utcnow()
    await db.commit()
    await db.refresh(digest)
    return digest
