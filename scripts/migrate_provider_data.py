#!/usr/bin/env python3
"""Copy provider records of stored FHIR sessions into the local FHIR store.

The API migrates the current session on demand. This script does the same
for sessions in bulk, for instance after the local store was reset:

1. Selects sessions with a patient id (not yet migrated, unless --all)
2. Fetches each session's bundle from its provider
3. Creates the Patient and its resources in the local store
4. Records the migration counts on the session

Usage:
    # Dry-run (nothing is created)
    python scripts/migrate_provider_data.py --dry-run

    # One session
    python scripts/migrate_provider_data.py --session-id 12

    # Keep going after a failed session
    python scripts/migrate_provider_data.py --force --limit 10

Requirements:
    - Local FHIR store reachable (FHIR_SERVER_URL)
    - Database configured (SQLALCHEMY_DATABASE_URI)
"""

import argparse
import asyncio
import logging
import sys
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from healthhub.core.config import settings
from healthhub.infrastructure.fhir.client import FHIRClient
from healthhub.models.fhir_session import FhirSession
from healthhub.services.migration_service import run_session_migration

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class MigrationStats:
    def __init__(self):
        self.sessions_total = 0
        self.sessions_migrated = 0
        self.sessions_errors = 0
        self.resources_created = 0
        self.start_time = datetime.now(UTC)

    def summary(self) -> str:
        duration = datetime.now(UTC) - self.start_time
        return f"""
========================================
        MIGRATION SUMMARY
========================================

Sessions:
  - Total:     {self.sessions_total}
  - Migrated:  {self.sessions_migrated}
  - Errors:    {self.sessions_errors}

Resources created: {self.resources_created}

Duration: {duration.total_seconds():.2f} seconds
========================================
"""


async def select_sessions(
    db: AsyncSession,
    session_id: int | None,
    include_migrated: bool,
    limit: int | None,
) -> list[FhirSession]:
    query = select(FhirSession).where(FhirSession.patient_id.is_not(None)).order_by(FhirSession.id)
    if session_id is not None:
        query = query.where(FhirSession.id == session_id)
    elif not include_migrated:
        query = query.where(FhirSession.migrated.is_(False))
    if limit:
        query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def migrate_sessions(
    db: AsyncSession,
    destination: FHIRClient,
    sessions: list[FhirSession],
    stats: MigrationStats,
    dry_run: bool,
    force: bool,
) -> None:
    for session in sessions:
        session_id = session.id
        if dry_run:
            logger.info(
                f"[DRY-RUN] Would migrate session {session_id} "
                f"({session.provider}, patient {session.patient_id})"
            )
            continue
        try:
            patient_id, counts = await run_session_migration(db, session, destination)
        except Exception as e:
            stats.sessions_errors += 1
            logger.error(f"Session {session_id} failed: {e}")
            if not force:
                raise
            continue

        stats.sessions_migrated += 1
        stats.resources_created += sum(counts.values())
        logger.info(f"Session {session_id} migrated to local Patient/{patient_id}: {counts}")


async def main(
    session_id: int | None,
    include_migrated: bool,
    dry_run: bool,
    force: bool,
    limit: int | None,
) -> int:
    logger.info("=" * 50)
    logger.info("PROVIDER DATA MIGRATION")
    logger.info("=" * 50)
    logger.info(f"Dry-run: {dry_run}")
    logger.info(f"Force: {force}")
    logger.info(f"Limit: {limit or 'none'}")
    logger.info(f"Local FHIR store: {settings.FHIR_SERVER_URL}")

    stats = MigrationStats()
    destination = FHIRClient(base_url=settings.FHIR_SERVER_URL, timeout=settings.FHIR_TIMEOUT)
    engine = create_async_engine(settings.SQLALCHEMY_DATABASE_URI, echo=False)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    try:
        async with session_maker() as db:
            sessions = await select_sessions(db, session_id, include_migrated, limit)
            stats.sessions_total = len(sessions)
            logger.info(f"Found {stats.sessions_total} sessions to migrate")
            await migrate_sessions(db, destination, sessions, stats, dry_run, force)
    finally:
        await destination.close()
        await engine.dispose()

    logger.info(stats.summary())

    if stats.sessions_errors > 0:
        logger.error("Migration finished with errors")
        return 1

    logger.info("Migration finished successfully")
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Copy provider records of stored FHIR sessions into the local FHIR store"
    )
    parser.add_argument("--session-id", type=int, default=None, help="Migrate a single session")
    parser.add_argument(
        "--all",
        action="store_true",
        dest="include_migrated",
        help="Include sessions that were already migrated (creates duplicates)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the sessions without creating anything",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Keep going after a failed session",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of sessions to migrate",
    )

    args = parser.parse_args()

    exit_code = asyncio.run(
        main(args.session_id, args.include_migrated, args.dry_run, args.force, args.limit)
    )
    sys.exit(exit_code)
