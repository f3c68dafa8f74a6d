"""
FHIR provider sessions and their chat history.

State machine of a session:

    no-session -> connected (current=True) -> ended (current=False, ended_at set)

At most one row is current. ``create_fhir_session`` demotes the previous
current row and inserts the new one inside a single transaction, and the
partial unique index ``uq_fhir_sessions_single_current`` rejects any second
current row a concurrent writer might slip in.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

from opentelemetry import trace
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from healthhub.core.config import settings
from healthhub.core.database import utcnow
from healthhub.infrastructure.fhir.providers import DEMO_PROVIDER, HAPI_PROVIDER
from healthhub.models.fhir_session import ChatMessage, FhirSession

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEMO_FHIR_SERVER = "/api/fhir/demo"
DEMO_PATIENT_ID = "demo-patient-1"
DEMO_SCOPE = "patient/*.read"
DEMO_TOKEN_LIFETIME = timedelta(hours=1)
HAPI_TOKEN_LIFETIME = timedelta(hours=24)


async def create_fhir_session(db: AsyncSession, data: dict[str, Any]) -> FhirSession:
    """
    Store a new provider connection as the current session.

    Every row flagged current is demoted (``current=False``, ``ended_at=now``)
    in the same transaction as the insert.

    Args:
        db: Async database session
        data: FhirSession column values (provider, access_token, fhir_server, ...)

    Returns:
        The new current session

    Raises:
        IntegrityError: If a concurrent writer committed another current row
    """
    with tracer.start_as_current_span("create_fhir_session") as span:
        span.set_attribute("fhir.provider", data.get("provider", ""))
        now = utcnow()

        demoted = await db.execute(
            update(FhirSession)
            .where(FhirSession.current.is_(True))
            .values(current=False, ended_at=now)
        )
        session = FhirSession(**{**data, "current": True})
        db.add(session)
        try:
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        await db.refresh(session)

        span.set_attribute("fhir.session_id", session.id)
        span.set_attribute("fhir.demoted_sessions", demoted.rowcount or 0)
        logger.info(
            f"FHIR session {session.id} connected ({session.provider}), "
            f"{demoted.rowcount or 0} previous session(s) ended"
        )
        return session


async def get_current_fhir_session(db: AsyncSession) -> FhirSession | None:
    """Return the session flagged current. There is no fallback to the latest row."""
    result = await db.execute(select(FhirSession).where(FhirSession.current.is_(True)))
    return result.scalar_one_or_none()


async def get_fhir_session(db: AsyncSession, session_id: int) -> FhirSession | None:
    return await db.get(FhirSession, session_id)


async def list_fhir_sessions(db: AsyncSession) -> list[FhirSession]:
    result = await db.execute(
        select(FhirSession).order_by(FhirSession.created_at.desc(), FhirSession.id.desc())
    )
    return list(result.scalars().all())


async def end_current_fhir_session(db: AsyncSession) -> FhirSession | None:
    """Disconnect: clear the current flag and stamp ``ended_at``. The row is kept."""
    with tracer.start_as_current_span("end_fhir_session") as span:
        session = await get_current_fhir_session(db)
        if session is None:
            span.add_event("No current session")
            return None

        session.current = False
        session.ended_at = utcnow()
        await db.commit()
        await db.refresh(session)

        span.set_attribute("fhir.session_id", session.id)
        logger.info(f"FHIR session {session.id} ended")
        return session


async def update_fhir_session_migration(
    db: AsyncSession, session_id: int, counts: dict[str, int]
) -> FhirSession | None:
    """Record a finished migration on the session it came from."""
    session = await db.get(FhirSession, session_id)
    if session is None:
        logger.warning(f"Cannot record migration: FHIR session {session_id} not found")
        return None

    session.migrated = True
    session.migration_date = utcnow()
    session.migration_counts = dict(counts)
    await db.commit()
    await db.refresh(session)
    return session


async def connect_demo(db: AsyncSession, user_id: int | None = None) -> FhirSession:
    """Connect to the bundled demo provider (no network, ``demo-patient-1``)."""
    return await create_fhir_session(
        db,
        {
            "provider": DEMO_PROVIDER,
            "access_token": f"demo_access_token_{uuid.uuid4().hex}",
            "refresh_token": f"demo_refresh_token_{uuid.uuid4().hex}",
            "token_expiry": utcnow() + DEMO_TOKEN_LIFETIME,
            "fhir_server": DEMO_FHIR_SERVER,
            "patient_id": DEMO_PATIENT_ID,
            "scope": DEMO_SCOPE,
            "user_id": user_id,
        },
    )


async def connect_hapi(
    db: AsyncSession, patient_id: str | None = None, user_id: int | None = None
) -> FhirSession:
    """Connect to the public HAPI R4 test server (no authentication)."""
    return await create_fhir_session(
        db,
        {
            "provider": HAPI_PROVIDER,
            "access_token": f"hapi_public_{uuid.uuid4().hex}",
            "token_expiry": utcnow() + HAPI_TOKEN_LIFETIME,
            "fhir_server": settings.HAPI_PUBLIC_URL,
            "patient_id": patient_id or settings.HAPI_DEFAULT_PATIENT_ID,
            "scope": DEMO_SCOPE,
            "user_id": user_id,
        },
    )


def token_expiry_from(expires_in: int | None, token_expiry: datetime | None) -> datetime | None:
    if token_expiry is not None:
        return token_expiry
    if expires_in:
        return utcnow() + timedelta(seconds=expires_in)
    return None


# =============================================================================
# Chat messages
# =============================================================================


async def get_chat_messages(
    db: AsyncSession, session_id: int, limit: int | None = None
) -> list[ChatMessage]:
    """Messages of a session in chronological order; ``limit`` keeps the last N."""
    query = select(ChatMessage).where(ChatMessage.fhir_session_id == session_id)
    if limit:
        query = query.order_by(ChatMessage.timestamp.desc(), ChatMessage.id.desc()).limit(limit)
        result = await db.execute(query)
        return list(reversed(result.scalars().all()))

    result = await db.execute(query.order_by(ChatMessage.timestamp.asc(), ChatMessage.id.asc()))
    return list(result.scalars().all())


async def create_chat_message(
    db: AsyncSession,
    session_id: int,
    role: str,
    content: str,
    context_data: dict[str, Any] | None = None,
) -> ChatMessage:
    message = ChatMessage(
        fhir_session_id=session_id,
        role=role,
        content=content,
        context_data=context_data,
    )
    db.add(message)
    await db.commit()
    await db.refresh(message)
    return message


async def clear_chat_messages(db: AsyncSession, session_id: int) -> bool:
    await db.execute(delete(ChatMessage).where(ChatMessage.fhir_session_id == session_id))
    await db.commit()
    return True
