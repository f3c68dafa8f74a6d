"""
Family dashboard: members, narratives, goals and action items.

Every lookup is scoped to the account holder: a member, goal or action item
belonging to another user is reported as missing (``None``).
"""

import logging
from datetime import timedelta
from typing import Any

from opentelemetry import trace
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.database import ensure_aware, utcnow
from healthhub.infrastructure.fhir.mappers import FamilyMemberMapper
from healthhub.infrastructure.fhir.providers import client_for_session
from healthhub.models.family import ActionItem, FamilyMember, HealthGoal, HealthNarrative
from healthhub.schemas.family import (
    ActionItemCreate,
    ActionItemUpdate,
    ActionScheduleRequest,
    FamilyMemberCreate,
    FamilyMemberUpdate,
    GoalCreate,
    GoalUpdate,
)
from healthhub.services import narrative_service, session_service

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

NARRATIVE_VALIDITY = timedelta(days=7)


# =============================================================================
# Members
# =============================================================================


async def list_members(db: AsyncSession, user_id: int) -> list[FamilyMember]:
    """Primary member first, then by name."""
    result = await db.execute(
        select(FamilyMember)
        .where(FamilyMember.user_id == user_id)
        .order_by(FamilyMember.is_primary.desc(), FamilyMember.name, FamilyMember.id)
    )
    return list(result.scalars().all())


async def get_member(db: AsyncSession, user_id: int, member_id: int) -> FamilyMember | None:
    result = await db.execute(
        select(FamilyMember).where(FamilyMember.id == member_id, FamilyMember.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def _clear_primary(db: AsyncSession, user_id: int) -> None:
    await db.execute(
        update(FamilyMember).where(FamilyMember.user_id == user_id).values(is_primary=False)
    )


async def create_member(db: AsyncSession, user_id: int, data: FamilyMemberCreate) -> FamilyMember:
    """Add a member. Marking it primary demotes the account's previous primary member."""
    with tracer.start_as_current_span("create_family_member") as span:
        if data.is_primary:
            await _clear_primary(db, user_id)

        member = FamilyMember(user_id=user_id, **data.model_dump())
        db.add(member)
        await db.commit()
        await db.refresh(member)

        span.set_attribute("family.member_id", member.id)
        logger.info(f"Family member {member.id} added for user {user_id}")
        return member


async def update_member(
    db: AsyncSession, user_id: int, member_id: int, data: FamilyMemberUpdate
) -> FamilyMember | None:
    member = await get_member(db, user_id, member_id)
    if member is None:
        return None

    changes = data.model_dump(exclude_unset=True)
    if changes.get("is_primary"):
        await _clear_primary(db, user_id)
    for field_name, value in changes.items():
        setattr(member, field_name, value)

    await db.commit()
    await db.refresh(member)
    return member


async def delete_member(db: AsyncSession, user_id: int, member_id: int) -> FamilyMember | None:
    """Delete a member and (by cascade) its narratives, goals, actions and alerts."""
    member = await get_member(db, user_id, member_id)
    if member is None:
        return None

    await db.delete(member)
    await db.commit()
    logger.info(f"Family member {member_id} deleted for user {user_id}")
    return member


async def link_fhir_session(
    db: AsyncSession, user_id: int, member_id: int, fhir_session_id: int
) -> FamilyMember | None:
    """
    Attach a provider connection to a member.

    Returns None when either the member or the session does not exist.
    """
    member = await get_member(db, user_id, member_id)
    if member is None or await session_service.get_fhir_session(db, fhir_session_id) is None:
        return None

    member.fhir_session_id = fhir_session_id
    await db.commit()
    await db.refresh(member)
    return member


async def member_patient_data(db: AsyncSession, member: FamilyMember) -> dict[str, Any]:
    """
    The member's FHIR bundle through its linked session.

    Members without a linked session (or with a provider that cannot be
    reached) yield a bundle holding only a Patient built from the profile.
    """
    profile_only = {"patient": FamilyMemberMapper.to_resource(member)}
    if member.fhir_session_id is None:
        return profile_only
    session = await session_service.get_fhir_session(db, member.fhir_session_id)
    if session is None or not session.patient_id:
        return profile_only

    client = client_for_session(session)
    try:
        return await client.get_patient_data(session.patient_id)
    except Exception as e:
        logger.warning(f"Records unavailable for family member {member.id}: {e}")
        return profile_only
    finally:
        await client.close()


# =============================================================================
# Narratives
# =============================================================================


async def list_narratives(db: AsyncSession, member_id: int) -> list[HealthNarrative]:
    result = await db.execute(
        select(HealthNarrative)
        .where(HealthNarrative.family_member_id == member_id)
        .order_by(HealthNarrative.generated_at.desc(), HealthNarrative.id.desc())
    )
    return list(result.scalars().all())


async def latest_valid_narrative(
    db: AsyncSession, member_id: int, narrative_type: str
) -> HealthNarrative | None:
    """Most recent narrative of a type, if it has not expired yet."""
    result = await db.execute(
        select(HealthNarrative)
        .where(
            HealthNarrative.family_member_id == member_id,
            HealthNarrative.narrative_type == narrative_type,
        )
        .order_by(HealthNarrative.generated_at.desc(), HealthNarrative.id.desc())
        .limit(1)
    )
    narrative = result.scalar_one_or_none()
    if narrative is None or narrative.valid_until is None:
        return None
    if ensure_aware(narrative.valid_until) <= utcnow():
        return None
    return narrative


async def generate_narrative(
    db: AsyncSession,
    member: FamilyMember,
    narrative_type: str = "overview",
    force_regenerate: bool = False,
) -> HealthNarrative:
    """
    Return the member's narrative of ``narrative_type``.

    A stored narrative younger than seven days is reused unless
    ``force_regenerate`` is set; otherwise a new one is written and stored.
    """
    with tracer.start_as_current_span("generate_member_narrative") as span:
        span.set_attribute("family.member_id", member.id)
        span.set_attribute("narrative.type", narrative_type)

        if not force_regenerate:
            existing = await latest_valid_narrative(db, member.id, narrative_type)
            if existing is not None:
                span.add_event("Reused stored narrative", {"narrative.id": existing.id})
                return existing

        patient_data = await member_patient_data(db, member)
        generated = await narrative_service.generate_narrative(member, patient_data, narrative_type)

        narrative = HealthNarrative(
            family_member_id=member.id,
            narrative_type=narrative_type,
            title=generated.title,
            content=generated.content,
            source_data=generated.source_data,
            valid_until=utcnow() + NARRATIVE_VALIDITY,
            ai_model=generated.ai_model,
        )
        db.add(narrative)
        await db.commit()
        await db.refresh(narrative)

        span.set_attribute("narrative.id", narrative.id)
        logger.info(f"Narrative {narrative.id} ({narrative_type}) generated for member {member.id}")
        return narrative


# =============================================================================
# Goals
# =============================================================================


def _owned_by(model, user_id: int):
    """Filter clause restricting ``model`` rows to members of ``user_id``."""
    return model.family_member_id.in_(
        select(FamilyMember.id).where(FamilyMember.user_id == user_id)
    )


async def list_goals(db: AsyncSession, member_id: int) -> list[HealthGoal]:
    result = await db.execute(
        select(HealthGoal)
        .where(HealthGoal.family_member_id == member_id)
        .order_by(HealthGoal.created_at.desc(), HealthGoal.id.desc())
    )
    return list(result.scalars().all())


async def get_goal(db: AsyncSession, user_id: int, goal_id: int) -> HealthGoal | None:
    result = await db.execute(
        select(HealthGoal).where(HealthGoal.id == goal_id, _owned_by(HealthGoal, user_id))
    )
    return result.scalar_one_or_none()


async def create_goal(db: AsyncSession, data: GoalCreate) -> HealthGoal:
    goal = HealthGoal(**data.model_dump())
    db.add(goal)
    await db.commit()
    await db.refresh(goal)
    return goal


async def update_goal(
    db: AsyncSession, user_id: int, goal_id: int, data: GoalUpdate
) -> HealthGoal | None:
    goal = await get_goal(db, user_id, goal_id)
    if goal is None:
        return None
    for field_name, value in data.model_dump(exclude_unset=True).items():
        setattr(goal, field_name, value)
    await db.commit()
    await db.refresh(goal)
    return goal


async def delete_goal(db: AsyncSession, user_id: int, goal_id: int) -> bool:
    goal = await get_goal(db, user_id, goal_id)
    if goal is None:
        return False
    await db.delete(goal)
    await db.commit()
    return True


# =============================================================================
# Action items
# =============================================================================


async def list_actions(
    db: AsyncSession, member_id: int, status: str | None = None
) -> list[ActionItem]:
    """Highest priority first, then earliest due date."""
    query = select(ActionItem).where(ActionItem.family_member_id == member_id)
    if status:
        query = query.where(ActionItem.status == status)
    result = await db.execute(
        query.order_by(ActionItem.priority.desc(), ActionItem.due_date, ActionItem.id)
    )
    return list(result.scalars().all())


async def list_pending_actions(db: AsyncSession, user_id: int) -> list[tuple[ActionItem, str]]:
    """Pending actions across the account's family, with the member's name."""
    result = await db.execute(
        select(ActionItem, FamilyMember.name)
        .join(FamilyMember, ActionItem.family_member_id == FamilyMember.id)
        .where(FamilyMember.user_id == user_id, ActionItem.status == "pending")
        .order_by(ActionItem.priority.desc(), ActionItem.due_date, ActionItem.id)
    )
    return [(item, name) for item, name in result.all()]


async def get_action(db: AsyncSession, user_id: int, action_id: int) -> ActionItem | None:
    result = await db.execute(
        select(ActionItem).where(ActionItem.id == action_id, _owned_by(ActionItem, user_id))
    )
    return result.scalar_one_or_none()


async def create_action(db: AsyncSession, data: ActionItemCreate) -> ActionItem:
    values = data.model_dump(exclude={"metadata"})
    item = ActionItem(**values, extra=data.metadata)
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


async def update_action(
    db: AsyncSession, user_id: int, action_id: int, data: ActionItemUpdate
) -> ActionItem | None:
    item = await get_action(db, user_id, action_id)
    if item is None:
        return None
    for field_name, value in data.model_dump(exclude_unset=True).items():
        setattr(item, field_name, value)
    await db.commit()
    await db.refresh(item)
    return item


async def schedule_action(
    db: AsyncSession, user_id: int, action_id: int, data: ActionScheduleRequest
) -> ActionItem | None:
    item = await get_action(db, user_id, action_id)
    if item is None:
        return None
    item.status = "scheduled"
    item.scheduled_date = data.scheduled_date
    item.scheduled_provider = data.scheduled_provider
    item.scheduled_location = data.scheduled_location
    await db.commit()
    await db.refresh(item)
    return item


async def complete_action(db: AsyncSession, user_id: int, action_id: int) -> ActionItem | None:
    item = await get_action(db, user_id, action_id)
    if item is None:
        return None
    item.status = "completed"
    item.completed_at = utcnow()
    await db.commit()
    await db.refresh(item)
    return item


async def delete_action(db: AsyncSession, user_id: int, action_id: int) -> bool:
    item = await get_action(db, user_id, action_id)
    if item is None:
        return False
    await db.delete(item)
    await db.commit()
    return True


# =============================================================================
# Summary
# =============================================================================


async def family_summary(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Members with their pending action counts."""
    members = await list_members(db, user_id)
    result = await db.execute(
        select(ActionItem.family_member_id, func.count(ActionItem.id))
        .where(_owned_by(ActionItem, user_id), ActionItem.status == "pending")
        .group_by(ActionItem.family_member_id)
    )
    pending = dict(result.all())
    return {
        "members": [(member, pending.get(member.id, 0)) for member in members],
        "total_pending_actions": sum(pending.values()),
    }
