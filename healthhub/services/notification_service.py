"""
Health alerts for the account holder's family.

Besides alerts created through the API, ``generate_alerts`` derives two kinds
of alerts from stored data:

- appointment reminders for scheduled appointments exactly 7, 3 or 1 days ahead
- goal milestones when an active goal reaches 50, 75 or 100 % of its target

Generated alerts are deduplicated on (member, alert type, related entity id),
so running the generator repeatedly never repeats an alert.
"""

import logging
from datetime import datetime, time, timedelta

from opentelemetry import trace
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import utcnow
from healthhub.models.family import FamilyMember, HealthGoal
from healthhub.models.notification import HealthAlert
from healthhub.models.scheduling import ScheduledAppointment
from healthhub.schemas.alerts import AlertCreate

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

REMINDER_DAYS = (7, 3, 1)
GOAL_MILESTONES = (50, 75, 100)
ALERT_LIST_LIMIT = 50
MEMBER_ALERT_LIMIT = 20

APPOINTMENT_REMINDER = "appointment_reminder"
MILESTONE = "milestone"


def _family_member_ids(user_id: int):
    return select(FamilyMember.id).where(FamilyMember.user_id == user_id)


async def list_alerts(
    db: AsyncSession, user_id: int, unread_only: bool = False
) -> list[tuple[HealthAlert, str]]:
    """Newest first, with the member's name. The full list is capped at 50 alerts."""
    query = (
        select(HealthAlert, FamilyMember.name)
        .join(FamilyMember, HealthAlert.family_member_id == FamilyMember.id)
        .where(FamilyMember.user_id == user_id)
        .order_by(HealthAlert.created_at.desc(), HealthAlert.id.desc())
    )
    if unread_only:
        query = query.where(HealthAlert.read_at.is_(None))
    else:
        query = query.limit(ALERT_LIST_LIMIT)
    result = await db.execute(query)
    return [(alert, name) for alert, name in result.all()]


async def list_member_alerts(db: AsyncSession, member_id: int) -> list[HealthAlert]:
    result = await db.execute(
        select(HealthAlert)
        .where(HealthAlert.family_member_id == member_id)
        .order_by(HealthAlert.created_at.desc(), HealthAlert.id.desc())
        .limit(MEMBER_ALERT_LIMIT)
    )
    return list(result.scalars().all())


async def get_alert(db: AsyncSession, user_id: int, alert_id: int) -> HealthAlert | None:
    result = await db.execute(
        select(HealthAlert).where(
            HealthAlert.id == alert_id,
            HealthAlert.family_member_id.in_(_family_member_ids(user_id)),
        )
    )
    return result.scalar_one_or_none()


async def create_alert(db: AsyncSession, data: AlertCreate) -> HealthAlert:
    alert = HealthAlert(**data.model_dump(exclude={"metadata"}), extra=data.metadata or {})
    db.add(alert)
    await db.commit()
    await db.refresh(alert)
    return alert


async def mark_read(db: AsyncSession, user_id: int, alert_id: int) -> HealthAlert | None:
    alert = await get_alert(db, user_id, alert_id)
    if alert is None:
        return None
    alert.read_at = utcnow()
    await db.commit()
    await db.refresh(alert)
    return alert


async def mark_all_read(db: AsyncSession, user_id: int) -> int:
    """Mark every unread alert of the family as read; returns how many changed."""
    result = await db.execute(
        update(HealthAlert)
        .where(
            HealthAlert.family_member_id.in_(_family_member_ids(user_id)),
            HealthAlert.read_at.is_(None),
        )
        .values(read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount or 0


async def dismiss(db: AsyncSession, user_id: int, alert_id: int) -> HealthAlert | None:
    """Dismissing also marks the alert read."""
    alert = await get_alert(db, user_id, alert_id)
    if alert is None:
        return None
    now = utcnow()
    alert.dismissed_at = now
    alert.read_at = alert.read_at or now
    await db.commit()
    await db.refresh(alert)
    return alert


async def unread_count(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(HealthAlert.id)).where(
            HealthAlert.family_member_id.in_(_family_member_ids(user_id)),
            HealthAlert.read_at.is_(None),
        )
    )
    return result.scalar_one()


# =============================================================================
# Generation
# =============================================================================


async def _alert_exists(
    db: AsyncSession, member_id: int, alert_type: str, related_entity_id: str
) -> bool:
    result = await db.execute(
        select(HealthAlert.id)
        .where(
            HealthAlert.family_member_id == member_id,
            HealthAlert.alert_type == alert_type,
            HealthAlert.related_entity_id == related_entity_id,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


def _day_bounds(day: datetime) -> tuple[datetime, datetime]:
    start = datetime.combine(day.date(), time.min, tzinfo=day.tzinfo)
    return start, start + timedelta(days=1)


async def generate_appointment_reminders(
    db: AsyncSession, user_id: int, now: datetime | None = None
) -> int:
    """Reminders for scheduled appointments falling exactly 7, 3 or 1 days from today."""
    now = now or utcnow()
    created = 0
    for days_before in REMINDER_DAYS:
        start, end = _day_bounds(now + timedelta(days=days_before))
        result = await db.execute(
            select(ScheduledAppointment, FamilyMember.name)
            .join(FamilyMember, ScheduledAppointment.family_member_id == FamilyMember.id)
            .where(
                FamilyMember.user_id == user_id,
                ScheduledAppointment.status == "scheduled",
                ScheduledAppointment.scheduled_date_time >= start,
                ScheduledAppointment.scheduled_date_time < end,
            )
        )
        for appointment, member_name in result.all():
            entity_id = str(appointment.id)
            if await _alert_exists(db, appointment.family_member_id, APPOINTMENT_REMINDER, entity_id):
                continue
            when = "tomorrow" if days_before == 1 else f"in {days_before} days"
            provider = appointment.provider_name or "their provider"
            db.add(
                HealthAlert(
                    family_member_id=appointment.family_member_id,
                    alert_type=APPOINTMENT_REMINDER,
                    category="appointment_upcoming",
                    title=f"Upcoming Appointment for {member_name}",
                    message=f"{member_name} has an appointment with {provider} {when}.",
                    priority="high" if days_before == 1 else "medium",
                    action_url=f"/appointments/{appointment.id}",
                    related_entity_type="appointment",
                    related_entity_id=entity_id,
                    extra={"appointmentId": appointment.id, "daysBefore": days_before},
                )
            )
            await db.flush()
            created += 1
    return created


async def generate_goal_alerts(db: AsyncSession, user_id: int) -> int:
    """One alert per milestone an active goal has reached."""
    result = await db.execute(
        select(HealthGoal, FamilyMember.name)
        .join(FamilyMember, HealthGoal.family_member_id == FamilyMember.id)
        .where(FamilyMember.user_id == user_id, HealthGoal.status == "active")
    )
    created = 0
    for goal, member_name in result.all():
        progress = goal.progress
        for milestone in GOAL_MILESTONES:
            if progress < milestone:
                break
            entity_id = f"{goal.id}-{milestone}"
            if await _alert_exists(db, goal.family_member_id, MILESTONE, entity_id):
                continue
            if milestone == 100:
                title = f"Goal Achieved: {goal.title}"
                message = f"Congratulations! {member_name} has achieved their health goal: {goal.title}!"
            else:
                title = f"{milestone}% Progress on {goal.title}"
                message = (
                    f"{member_name} has reached {milestone}% of their goal: {goal.title}. Keep going!"
                )
            db.add(
                HealthAlert(
                    family_member_id=goal.family_member_id,
                    alert_type=MILESTONE,
                    category="goal_milestone",
                    title=title,
                    message=message,
                    priority="high" if milestone == 100 else "low",
                    action_url=f"/goals/{goal.id}",
                    related_entity_type="goal",
                    related_entity_id=entity_id,
                    extra={"goalId": goal.id, "milestone": milestone},
                )
            )
            await db.flush()
            created += 1
    return created


async def generate_alerts(db: AsyncSession, user_id: int, now: datetime | None = None) -> int:
    """Run every generator for the account and commit; returns the number of new alerts."""
    with tracer.start_as_current_span("generate_alerts") as span:
        span.set_attribute("user.id", user_id)
        reminders = await generate_appointment_reminders(db, user_id, now=now)
        milestones = await generate_goal_alerts(db, user_id)
        await db.commit()

        span.set_attribute("alerts.reminders", reminders)
        span.set_attribute("alerts.milestones", milestones)
        logger.info(
            f"Generated {reminders} reminder(s) and {milestones} milestone alert(s) for user {user_id}"
        )
        return reminders + milestones
