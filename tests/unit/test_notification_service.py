"""Tests for family alerts and generated reminders."""

from datetime import UTC, datetime

import pytest

from healthhub.models.family import HealthGoal
from healthhub.models.notification import HealthAlert
from healthhub.models.scheduling import ScheduledAppointment
from healthhub.schemas.alerts import AlertCreate
from healthhub.services import notification_service

NOW = datetime(2024, 6, 10, 9, 0, tzinfo=UTC)


async def add_alert(db_session, member, title="Refill", **kwargs) -> HealthAlert:
    return await notification_service.create_alert(
        db_session,
        AlertCreate(family_member_id=member.id, category="medication", title=title, message="Soon", **kwargs),
    )


async def add_appointment(db_session, member, when, status="scheduled") -> ScheduledAppointment:
    appointment = ScheduledAppointment(
        family_member_id=member.id,
        provider_name="Dr. Lee",
        scheduled_date_time=when,
        status=status,
    )
    db_session.add(appointment)
    await db_session.commit()
    await db_session.refresh(appointment)
    return appointment


class TestAlerts:
    @pytest.mark.asyncio
    async def test_create_keeps_metadata(self, db_session, member):
        alert = await add_alert(db_session, member, metadata={"drug": "Lisinopril"})

        assert alert.alert_type == "custom"
        assert alert.priority == "medium"
        assert alert.extra == {"drug": "Lisinopril"}

    @pytest.mark.asyncio
    async def test_list_newest_first_with_member_name(self, db_session, user, member):
        first = await add_alert(db_session, member, title="First")
        second = await add_alert(db_session, member, title="Second")

        rows = await notification_service.list_alerts(db_session, user.id)

        assert [alert.id for alert, _ in rows] == [second.id, first.id]
        assert {name for _, name in rows} == {"Alex Martin"}

    @pytest.mark.asyncio
    async def test_read_and_unread_count(self, db_session, user, member):
        first = await add_alert(db_session, member)
        await add_alert(db_session, member)

        read = await notification_service.mark_read(db_session, user.id, first.id)

        assert read.read_at is not None
        assert await notification_service.unread_count(db_session, user.id) == 1
        unread = await notification_service.list_alerts(db_session, user.id, unread_only=True)
        assert len(unread) == 1

    @pytest.mark.asyncio
    async def test_mark_all_read_counts_changes(self, db_session, user, member):
        await add_alert(db_session, member)
        await add_alert(db_session, member)

        assert await notification_service.mark_all_read(db_session, user.id) == 2
        assert await notification_service.mark_all_read(db_session, user.id) == 0
        assert await notification_service.unread_count(db_session, user.id) == 0

    @pytest.mark.asyncio
    async def test_dismiss_marks_read(self, db_session, user, member):
        alert = await add_alert(db_session, member)

        dismissed = await notification_service.dismiss(db_session, user.id, alert.id)

        assert dismissed.dismissed_at is not None
        assert dismissed.read_at is not None

    @pytest.mark.asyncio
    async def test_other_account(self, db_session, user, other_user, member):
        alert = await add_alert(db_session, member)

        assert await notification_service.mark_read(db_session, other_user.id, alert.id) is None
        assert await notification_service.dismiss(db_session, other_user.id, alert.id) is None
        assert await notification_service.mark_all_read(db_session, other_user.id) == 0
        assert await notification_service.list_alerts(db_session, other_user.id) == []
        assert await notification_service.unread_count(db_session, user.id) == 1

    @pytest.mark.asyncio
    async def test_member_list_is_capped(self, db_session, member):
        for i in range(notification_service.MEMBER_ALERT_LIMIT + 3):
            await add_alert(db_session, member, title=f"Alert {i}")

        alerts = await notification_service.list_member_alerts(db_session, member.id)

        assert len(alerts) == notification_service.MEMBER_ALERT_LIMIT


class TestAppointmentReminders:
    @pytest.mark.asyncio
    async def test_reminders_on_exact_days(self, db_session, user, member):
        week = await add_appointment(db_session, member, datetime(2024, 6, 17, 14, 0, tzinfo=UTC))
        tomorrow = await add_appointment(db_session, member, datetime(2024, 6, 11, 8, 0, tzinfo=UTC))
        await add_appointment(db_session, member, datetime(2024, 6, 15, 8, 0, tzinfo=UTC))
        await add_appointment(
            db_session, member, datetime(2024, 6, 13, 8, 0, tzinfo=UTC), status="cancelled"
        )

        created = await notification_service.generate_appointment_reminders(
            db_session, user.id, now=NOW
        )
        await db_session.commit()

        rows = await notification_service.list_alerts(db_session, user.id)
        by_entity = {alert.related_entity_id: alert for alert, _ in rows}
        assert created == 2
        assert set(by_entity) == {str(week.id), str(tomorrow.id)}
        assert by_entity[str(tomorrow.id)].priority == "high"
        assert by_entity[str(tomorrow.id)].message == (
            "Alex Martin has an appointment with Dr. Lee tomorrow."
        )
        assert by_entity[str(week.id)].priority == "medium"
        assert by_entity[str(week.id)].extra == {"appointmentId": week.id, "daysBefore": 7}

    @pytest.mark.asyncio
    async def test_generation_is_idempotent(self, db_session, user, member):
        await add_appointment(db_session, member, datetime(2024, 6, 13, 10, 0, tzinfo=UTC))

        assert await notification_service.generate_alerts(db_session, user.id, now=NOW) == 1
        assert await notification_service.generate_alerts(db_session, user.id, now=NOW) == 0

    @pytest.mark.asyncio
    async def test_other_family_untouched(self, db_session, other_user, member):
        await add_appointment(db_session, member, datetime(2024, 6, 11, 10, 0, tzinfo=UTC))

        assert await notification_service.generate_alerts(db_session, other_user.id, now=NOW) == 0


class TestGoalMilestones:
    @pytest.mark.asyncio
    async def test_each_reached_milestone_once(self, db_session, user, member):
        goal = HealthGoal(family_member_id=member.id, title="Walk", target_value=100, current_value=80)
        db_session.add(goal)
        await db_session.commit()

        assert await notification_service.generate_goal_alerts(db_session, user.id) == 2
        await db_session.commit()

        goal.current_value = 100
        await db_session.commit()
        assert await notification_service.generate_goal_alerts(db_session, user.id) == 1
        await db_session.commit()

        rows = await notification_service.list_alerts(db_session, user.id)
        titles = {alert.title for alert, _ in rows}
        assert titles == {"50% Progress on Walk", "75% Progress on Walk", "Goal Achieved: Walk"}
        achieved = next(a for a, _ in rows if a.related_entity_id == f"{goal.id}-100")
        assert achieved.priority == "high"

    @pytest.mark.asyncio
    async def test_inactive_or_unmeasured_goals(self, db_session, user, member):
        db_session.add_all(
            [
                HealthGoal(family_member_id=member.id, title="Done", target_value=10, current_value=10,
                           status="completed"),
                HealthGoal(family_member_id=member.id, title="Sleep"),
            ]
        )
        await db_session.commit()

        assert await notification_service.generate_goal_alerts(db_session, user.id) == 0

    def test_progress(self):
        assert HealthGoal(target_value=200, current_value=50).progress == 25
        assert HealthGoal(target_value=None, current_value=50).progress == 0
