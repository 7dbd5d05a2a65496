# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Deletion Journal - Append-only audit trail of bulk deletions.

Every bulk version deletion is recorded as a run, and every version or
delete marker it touched as an outcome. Records are never modified except
to mark a run as completed.
"""

from datetime import datetime, UTC
from pathlib import Path
from typing import List, TypedDict

import aiosqlite
import structlog

from s3obj.exceptions import JournalError
from s3obj.models import VersionOutcome

logger = structlog.get_logger()


class RunRecord(TypedDict):
    """Record of a bulk deletion run."""

    id: str  # ULID
    started_at: str  # ISO 8601
    bucket: str
    key: str
    force: bool
    ignore_errors: bool
    completed_at: str | None
    deleted_count: int
    failed_count: int
    error: str | None


class OutcomeRecord(TypedDict):
    """Record of one version or delete marker deletion attempt."""

    id: int  # Auto-increment
    run_id: str
    key: str
    version_id: str
    is_delete_marker: bool
    deleted: bool
    error: str | None
    recorded_at: str  # ISO 8601


_RUN_COLUMNS = """
    id, started_at, bucket, key, force, ignore_errors,
    completed_at, deleted_count, failed_count, error
"""


def _run_from_row(row) -> RunRecord:
    return RunRecord(
        id=row[0],
        started_at=row[1],
        bucket=row[2],
        key=row[3],
        force=bool(row[4]),
        ignore_errors=bool(row[5]),
        completed_at=row[6],
        deleted_count=row[7],
        failed_count=row[8],
        error=row[9],
    )


async def init_journal_db(db_path: Path) -> None:
    """
    Initialize the journal database schema.

    Creates tables if they don't exist. This is idempotent.

    Args:
        db_path: Path to the SQLite database file
    """
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    id TEXT PRIMARY KEY,
                    started_at TEXT NOT NULL,
                    bucket TEXT NOT NULL,
                    key TEXT NOT NULL,
                    force INTEGER NOT NULL,
                    ignore_errors INTEGER NOT NULL,
                    completed_at TEXT,
                    deleted_count INTEGER NOT NULL DEFAULT 0,
                    failed_count INTEGER NOT NULL DEFAULT 0,
                    error TEXT
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS outcomes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    key TEXT NOT NULL,
                    version_id TEXT NOT NULL,
                    is_delete_marker INTEGER NOT NULL,
                    deleted INTEGER NOT NULL,
                    error TEXT,
                    recorded_at TEXT NOT NULL,
                    FOREIGN KEY (run_id) REFERENCES runs(id)
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_outcomes_run_id
                ON outcomes(run_id)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_runs_started_at
                ON runs(started_at)
            """)

            await db.commit()

        logger.info("journal_db_initialized", db_path=str(db_path))

    except Exception as e:
        raise JournalError(
            f"Failed to initialize journal database: {e}",
            details={"db_path": str(db_path)},
        )


async def record_run(
    db: aiosqlite.Connection,
    run_id: str,
    bucket: str,
    key: str,
    force: bool,
    ignore_errors: bool,
) -> None:
    """
    Record the start of a bulk deletion run.

    Args:
        db: SQLite database connection
        run_id: Unique run ID (ULID)
        bucket: Bucket being purged
        key: Key being purged ("" for the whole bucket)
        force: Whether object lock protections are overridden
        ignore_errors: Whether per-item failures are ignored
    """
    now = datetime.now(UTC).isoformat()

    await db.execute(
        """
        INSERT INTO runs (id, started_at, bucket, key, force, ignore_errors)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (run_id, now, bucket, key, int(force), int(ignore_errors)),
    )
    await db.commit()

    logger.debug("journal_run_recorded", run_id=run_id, bucket=bucket, key=key)


async def complete_run(
    db: aiosqlite.Connection,
    run_id: str,
    deleted_count: int,
    failed_count: int,
    error: str | None = None,
) -> None:
    """
    Mark a run as completed.

    Args:
        db: SQLite database connection
        run_id: Run ID
        deleted_count: Entries deleted
        failed_count: Entries that could not be deleted
        error: Error message if the run failed
    """
    now = datetime.now(UTC).isoformat()

    await db.execute(
        """
        UPDATE runs
        SET completed_at = ?, deleted_count = ?, failed_count = ?, error = ?
        WHERE id = ?
        """,
        (now, deleted_count, failed_count, error, run_id),
    )
    await db.commit()


async def record_outcome(db: aiosqlite.Connection, outcome: VersionOutcome) -> int:
    """
    Record one deletion attempt.

    Returns:
        Outcome record ID
    """
    now = datetime.now(UTC).isoformat()

    cursor = await db.execute(
        """
        INSERT INTO outcomes
        (run_id, key, version_id, is_delete_marker, deleted, error, recorded_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            outcome.run_id,
            outcome.key,
            outcome.version_id,
            int(outcome.is_delete_marker),
            int(outcome.deleted),
            outcome.error,
            now,
        ),
    )
    await db.commit()

    return cursor.lastrowid


async def get_run(db: aiosqlite.Connection, run_id: str) -> RunRecord | None:
    """
    Get a run record.

    Args:
        db: SQLite database connection
        run_id: Run ID

    Returns:
        Run record or None if not found
    """
    async with db.execute(
        f"SELECT {_RUN_COLUMNS} FROM runs WHERE id = ?",
        (run_id,),
    ) as cursor:
        row = await cursor.fetchone()

        if row:
            return _run_from_row(row)

        return None


async def list_runs(
    db: aiosqlite.Connection,
    limit: int = 50,
    offset: int = 0,
    bucket: str | None = None,
) -> List[RunRecord]:
    """
    List runs with pagination, newest first.

    Args:
        db: SQLite database connection
        limit: Maximum number of records to return
        offset: Number of records to skip
        bucket: Optional filter by bucket
    """
    query = f"SELECT {_RUN_COLUMNS} FROM runs"
    params: List = []

    if bucket:
        query += " WHERE bucket = ?"
        params.append(bucket)

    query += " ORDER BY started_at DESC, id DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    records: List[RunRecord] = []

    async with db.execute(query, params) as cursor:
        async for row in cursor:
            records.append(_run_from_row(row))

    return records


async def get_outcomes_by_run(db: aiosqlite.Connection, run_id: str) -> List[OutcomeRecord]:
    """
    Get every outcome recorded for a run, in attempt order.
    """
    records: List[OutcomeRecord] = []

    async with db.execute(
        """
        SELECT id, run_id, key, version_id, is_delete_marker, deleted, error, recorded_at
        FROM outcomes
        WHERE run_id = ?
        ORDER BY id
        """,
        (run_id,),
    ) as cursor:
        async for row in cursor:
            records.append(
                OutcomeRecord(
                    id=row[0],
                    run_id=row[1],
                    key=row[2],
                    version_id=row[3],
                    is_delete_marker=bool(row[4]),
                    deleted=bool(row[5]),
                    error=row[6],
                    recorded_at=row[7],
                )
            )

    return records


async def get_journal_stats(db: aiosqlite.Connection) -> dict:
    """
    Get journal statistics.

    Returns:
        Dict with journal statistics
    """
    stats = {}

    async with db.execute("SELECT COUNT(*) FROM runs") as cursor:
        row = await cursor.fetchone()
        stats["total_runs"] = row[0] if row else 0

    async with db.execute(
        "SELECT COUNT(*) FROM runs WHERE error IS NOT NULL"
    ) as cursor:
        row = await cursor.fetchone()
        stats["failed_runs"] = row[0] if row else 0

    async with db.execute(
        "SELECT SUM(deleted), COUNT(*) - SUM(deleted) FROM outcomes"
    ) as cursor:
        row = await cursor.fetchone()
        stats["deleted_entries"] = row[0] or 0
        stats["failed_entries"] = row[1] or 0

    async with db.execute(
        "SELECT COUNT(*) FROM outcomes WHERE is_delete_marker = 1 AND deleted = 1"
    ) as cursor:
        row = await cursor.fetchone()
        stats["deleted_delete_markers"] = row[0] if row else 0

    return stats


def create_journal_recorder(db_path: Path):
    """
    Create a recorder that appends version outcomes to the journal.

    Args:
        db_path: Path to the journal database

    Returns:
        Async function suitable as the recorder of a bulk deletion
    """

    async def recorder(outcome: VersionOutcome) -> None:
        async with aiosqlite.connect(db_path) as db:
            await record_outcome(db, outcome)

    return recorder
