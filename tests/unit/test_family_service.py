"""Tests for the family dashboard service (members, narratives, goals, actions)."""

from datetime import UTC, date, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select

from healthhub.models.family import ActionItem, HealthNarrative
from healthhub.models.notification import HealthAlert
from healthhub.schemas.family import (
    ActionItemCreate,
    ActionItemUpdate,
    ActionScheduleRequest,
    FamilyMemberCreate,
    FamilyMemberUpdate,
    GoalCreate,
    GoalUpdate,
)
from healthhub.services import family_service, session_service


@pytest.fixture(autouse=True)
def no_openai():
    with patch("healthhub.services.narrative_service.get_openai_client", return_value=None):
        yield


async def add_member(db, user_id, name, **kwargs):
    data = FamilyMemberCreate(name=name, relationship=kwargs.pop("relationship", "child"), **kwargs)
    return await family_service.create_member(db, user_id, data)


class TestMembers:
    @pytest.mark.asyncio
    async def test_primary_first_then_name(self, db_session, user, member):
        await add_member(db_session, user.id, "Zoe Martin")
        await add_member(db_session, user.id, "Ben Martin")

        names = [m.name for m in await family_service.list_members(db_session, user.id)]

        assert names == ["Alex Martin", "Ben Martin", "Zoe Martin"]

    @pytest.mark.asyncio
    async def test_new_primary_demotes_previous(self, db_session, user, member):
        child = await add_member(db_session, user.id, "Ben Martin", is_primary=True)

        await db_session.refresh(member)
        assert member.is_primary is False
        assert child.is_primary is True

    @pytest.mark.asyncio
    async def test_update_to_primary(self, db_session, user, member):
        child = await add_member(db_session, user.id, "Ben Martin")

        updated = await family_service.update_member(
            db_session, user.id, child.id, FamilyMemberUpdate(is_primary=True, gender="male")
        )

        await db_session.refresh(member)
        assert updated.is_primary is True
        assert updated.gender == "male"
        assert member.is_primary is False

    @pytest.mark.asyncio
    async def test_other_account_cannot_see_member(self, db_session, other_user, member):
        assert await family_service.get_member(db_session, other_user.id, member.id) is None
        assert (
            await family_service.update_member(
                db_session, other_user.id, member.id, FamilyMemberUpdate(name="Hacked")
            )
            is None
        )
        assert await family_service.delete_member(db_session, other_user.id, member.id) is None

    @pytest.mark.asyncio
    async def test_delete_cascades(self, db_session, user, member):
        await family_service.create_action(
            db_session, ActionItemCreate(family_member_id=member.id, title="Flu shot")
        )
        db_session.add(
            HealthAlert(family_member_id=member.id, category="reminder", title="t", message="m")
        )
        await db_session.commit()

        deleted = await family_service.delete_member(db_session, user.id, member.id)

        assert deleted.id == member.id
        assert (await db_session.execute(select(ActionItem))).scalars().all() == []
        assert (await db_session.execute(select(HealthAlert))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_link_fhir_session(self, db_session, user, member):
        session = await session_service.connect_demo(db_session)

        linked = await family_service.link_fhir_session(db_session, user.id, member.id, session.id)

        assert linked.fhir_session_id == session.id
        assert await family_service.link_fhir_session(db_session, user.id, member.id, 999) is None


class TestMemberPatientData:
    @pytest.mark.asyncio
    async def test_profile_only_without_session(self, db_session, member):
        data = await family_service.member_patient_data(db_session, member)

        assert list(data) == ["patient"]
        assert data["patient"]["resourceType"] == "Patient"
        assert data["patient"]["gender"] == "female"

    @pytest.mark.asyncio
    async def test_linked_demo_session(self, db_session, user, member):
        session = await session_service.connect_demo(db_session)
        await family_service.link_fhir_session(db_session, user.id, member.id, session.id)

        data = await family_service.member_patient_data(db_session, member)

        assert data["patient"]["id"] == "demo-patient-1"
        assert len(data["conditions"]) == 3

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back_to_profile(self, db_session, user, member):
        session = await session_service.connect_demo(db_session)
        await family_service.link_fhir_session(db_session, user.id, member.id, session.id)

        with patch(
            "healthhub.infrastructure.fhir.demo.DemoFHIRClient.get_patient_data",
            AsyncMock(side_effect=RuntimeError("down")),
        ):
            data = await family_service.member_patient_data(db_session, member)

        assert list(data) == ["patient"]


class TestNarratives:
    @pytest.mark.asyncio
    async def test_recent_narrative_is_reused(self, db_session, member):
        first = await family_service.generate_narrative(db_session, member, "overview")
        second = await family_service.generate_narrative(db_session, member, "overview")

        assert second.id == first.id
        assert first.ai_model == "demo"
        assert first.title == "Health Overview for Alex Martin"

    @pytest.mark.asyncio
    async def test_force_regenerate(self, db_session, member):
        first = await family_service.generate_narrative(db_session, member, "overview")
        second = await family_service.generate_narrative(
            db_session, member, "overview", force_regenerate=True
        )

        assert second.id != first.id
        assert len(await family_service.list_narratives(db_session, member.id)) == 2

    @pytest.mark.asyncio
    async def test_expired_narrative_is_not_reused(self, db_session, member):
        stale = HealthNarrative(
            family_member_id=member.id,
            narrative_type="preventive",
            title="Old",
            content="Old",
            valid_until=datetime.now(UTC) - timedelta(minutes=1),
        )
        db_session.add(stale)
        await db_session.commit()

        fresh = await family_service.generate_narrative(db_session, member, "preventive")

        assert fresh.id != stale.id

    @pytest.mark.asyncio
    async def test_types_are_cached_separately(self, db_session, member):
        overview = await family_service.generate_narrative(db_session, member, "overview")
        medication = await family_service.generate_narrative(db_session, member, "medication")

        assert overview.id != medication.id


class TestGoals:
    @pytest.mark.asyncio
    async def test_lifecycle(self, db_session, user, member):
        goal = await family_service.create_goal(
            db_session,
            GoalCreate(
                family_member_id=member.id, title="Walk", target_value=10000, current_value=2500
            ),
        )
        assert goal.status == "active"
        assert goal.progress == 25.0

        updated = await family_service.update_goal(
            db_session, user.id, goal.id, GoalUpdate(current_value=10000, status="completed")
        )
        assert updated.progress == 100.0
        assert updated.status == "completed"

        assert await family_service.delete_goal(db_session, user.id, goal.id) is True
        assert await family_service.list_goals(db_session, member.id) == []

    @pytest.mark.asyncio
    async def test_scoped_to_account(self, db_session, other_user, member):
        goal = await family_service.create_goal(
            db_session, GoalCreate(family_member_id=member.id, title="Sleep")
        )

        assert await family_service.get_goal(db_session, other_user.id, goal.id) is None
        assert await family_service.delete_goal(db_session, other_user.id, goal.id) is False


class TestActions:
    @pytest.mark.asyncio
    async def test_priority_then_due_date(self, db_session, member):
        for title, priority, due in [
            ("Low", 1, date(2024, 1, 1)),
            ("Urgent later", 5, date(2024, 3, 1)),
            ("Urgent soon", 5, date(2024, 2, 1)),
        ]:
            await family_service.create_action(
                db_session,
                ActionItemCreate(
                    family_member_id=member.id, title=title, priority=priority, due_date=due
                ),
            )

        titles = [a.title for a in await family_service.list_actions(db_session, member.id)]

        assert titles == ["Urgent soon", "Urgent later", "Low"]

    @pytest.mark.asyncio
    async def test_metadata_is_stored(self, db_session, member):
        item = await family_service.create_action(
            db_session,
            ActionItemCreate(
                family_member_id=member.id, title="Mammogram", metadata={"careGapId": "bcs-1"}
            ),
        )

        assert item.extra == {"careGapId": "bcs-1"}
        assert item.status == "pending"

    @pytest.mark.asyncio
    async def test_schedule_and_complete(self, db_session, user, member):
        item = await family_service.create_action(
            db_session, ActionItemCreate(family_member_id=member.id, title="Eye exam")
        )

        scheduled = await family_service.schedule_action(
            db_session,
            user.id,
            item.id,
            ActionScheduleRequest(
                scheduled_date=datetime(2030, 5, 1, 9, 0, tzinfo=UTC), scheduled_provider="Dr. Lee"
            ),
        )
        assert scheduled.status == "scheduled"
        assert scheduled.scheduled_provider == "Dr. Lee"

        completed = await family_service.complete_action(db_session, user.id, item.id)
        assert completed.status == "completed"
        assert completed.completed_at is not None

    @pytest.mark.asyncio
    async def test_update_and_filter(self, db_session, user, member):
        item = await family_service.create_action(
            db_session, ActionItemCreate(family_member_id=member.id, title="Dentist")
        )

        await family_service.update_action(
            db_session, user.id, item.id, ActionItemUpdate(status="dismissed")
        )

        assert await family_service.list_actions(db_session, member.id, status="pending") == []
        assert len(await family_service.list_actions(db_session, member.id, status="dismissed")) == 1

    @pytest.mark.asyncio
    async def test_other_account(self, db_session, other_user, member):
        item = await family_service.create_action(
            db_session, ActionItemCreate(family_member_id=member.id, title="Dentist")
        )

        assert await family_service.complete_action(db_session, other_user.id, item.id) is None
        assert await family_service.delete_action(db_session, other_user.id, item.id) is False


class TestSummary:
    @pytest.mark.asyncio
    async def test_pending_counts(self, db_session, user, member):
        child = await add_member(db_session, user.id, "Ben Martin")
        for title in ("Flu shot", "Checkup"):
            await family_service.create_action(
                db_session, ActionItemCreate(family_member_id=member.id, title=title)
            )
        done = await family_service.create_action(
            db_session, ActionItemCreate(family_member_id=child.id, title="Vaccine")
        )
        await family_service.complete_action(db_session, user.id, done.id)

        summary = await family_service.family_summary(db_session, user.id)

        assert summary["total_pending_actions"] == 2
        assert [(m.name, count) for m, count in summary["members"]] == [
            ("Alex Martin", 2),
            ("Ben Martin", 0),
        ]

        pending = await family_service.list_pending_actions(db_session, user.id)
        assert {name for _, name in pending} == {"Alex Martin"}
