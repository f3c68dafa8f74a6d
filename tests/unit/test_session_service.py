"""Tests for FHIR session lifecycle and chat history persistence."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from healthhub.core.database import ensure_aware, utcnow
from healthhub.models.fhir_session import FhirSession
from healthhub.services import session_service


async def _current_rows(db) -> list[FhirSession]:
    result = await db.execute(select(FhirSession).where(FhirSession.current.is_(True)))
    return list(result.scalars().all())


class TestSessionLifecycle:
    @pytest.mark.asyncio
    async def test_connect_demo(self, db_session):
        session = await session_service.connect_demo(db_session)

        assert session.current is True
        assert session.provider == "demo"
        assert session.patient_id == session_service.DEMO_PATIENT_ID
        assert session.fhir_server == session_service.DEMO_FHIR_SERVER
        assert session.access_token.startswith("demo_access_token_")

    @pytest.mark.asyncio
    async def test_connect_hapi_uses_default_patient(self, db_session):
        from healthhub.core.config import settings

        session = await session_service.connect_hapi(db_session)

        assert session.provider == "hapi"
        assert session.fhir_server == settings.HAPI_PUBLIC_URL
        assert session.patient_id == settings.HAPI_DEFAULT_PATIENT_ID

    @pytest.mark.asyncio
    async def test_new_session_demotes_previous(self, db_session):
        first = await session_service.connect_demo(db_session)
        second = await session_service.connect_hapi(db_session, patient_id="p-42")

        await db_session.refresh(first)
        assert first.current is False
        assert first.ended_at is not None
        assert [s.id for s in await _current_rows(db_session)] == [second.id]

        current = await session_service.get_current_fhir_session(db_session)
        assert current.id == second.id

    @pytest.mark.asyncio
    async def test_no_fallback_to_latest_row(self, db_session):
        await session_service.connect_demo(db_session)
        await session_service.end_current_fhir_session(db_session)

        assert await session_service.get_current_fhir_session(db_session) is None
        assert len(await session_service.list_fhir_sessions(db_session)) == 1

    @pytest.mark.asyncio
    async def test_end_without_session(self, db_session):
        assert await session_service.end_current_fhir_session(db_session) is None

    @pytest.mark.asyncio
    async def test_user_is_stamped(self, db_session, user):
        session = await session_service.connect_demo(db_session, user_id=user.id)

        assert session.user_id == user.id

    @pytest.mark.asyncio
    async def test_record_migration(self, db_session):
        session = await session_service.connect_demo(db_session)

        updated = await session_service.update_fhir_session_migration(
            db_session, session.id, {"Patient": 1, "Condition": 3}
        )

        assert updated.migrated is True
        assert updated.migration_counts == {"Patient": 1, "Condition": 3}
        assert updated.migration_date is not None

    @pytest.mark.asyncio
    async def test_record_migration_unknown_session(self, db_session):
        assert await session_service.update_fhir_session_migration(db_session, 999, {}) is None


class TestTokenExpiry:
    def test_explicit_expiry_wins(self):
        expiry = datetime(2030, 1, 1, tzinfo=UTC)
        assert session_service.token_expiry_from(3600, expiry) == expiry

    def test_expires_in(self):
        before = utcnow()
        expiry = session_service.token_expiry_from(3600, None)

        assert before + timedelta(seconds=3599) <= expiry <= utcnow() + timedelta(seconds=3600)

    def test_nothing_given(self):
        assert session_service.token_expiry_from(None, None) is None
        assert session_service.token_expiry_from(0, None) is None


class TestChatMessages:
    @pytest.mark.asyncio
    async def test_history_is_chronological(self, db_session):
        session = await session_service.connect_demo(db_session)
        for index in range(4):
            role = "user" if index % 2 == 0 else "assistant"
            await session_service.create_chat_message(db_session, session.id, role, f"m{index}")

        messages = await session_service.get_chat_messages(db_session, session.id)
        assert [m.content for m in messages] == ["m0", "m1", "m2", "m3"]

        last_two = await session_service.get_chat_messages(db_session, session.id, limit=2)
        assert [m.content for m in last_two] == ["m2", "m3"]

    @pytest.mark.asyncio
    async def test_clear(self, db_session):
        session = await session_service.connect_demo(db_session)
        await session_service.create_chat_message(
            db_session, session.id, "user", "hello", context_data={"conditions": 2}
        )

        assert await session_service.clear_chat_messages(db_session, session.id) is True
        assert await session_service.get_chat_messages(db_session, session.id) == []


class TestEnsureAware:
    def test_naive_gets_utc(self):
        assert ensure_aware(datetime(2024, 1, 1)).tzinfo is UTC

    def test_none(self):
        assert ensure_aware(None) is None
