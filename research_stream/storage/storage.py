"""SQLite storage for diagnostics and snapshot checkpoints."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import AgentSnapshot, Run, RunStatus, TraceEvent


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    ts = datetime.fromisoformat(value)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class IStorage(Protocol):
    """Diagnostic storage (SQLite, in-memory unless configured)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Runs
    async def save_run(self, run: Run) -> None:
        """Insert or update a run record."""
        ...

    async def get_run(self, run_id: str) -> Run | None:
        """Get a run record."""
        ...

    async def get_runs(self, limit: int = 100) -> list[Run]:
        """Get run records (newest first)."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        ...

    # Snapshots
    async def save_snapshot(self, snapshot: AgentSnapshot) -> None:
        """Checkpoint an agent snapshot."""
        ...

    async def get_snapshot(self, run_id: str) -> AgentSnapshot | None:
        """Load a checkpointed agent snapshot."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Runs
    async def save_run(self, run: Run) -> None:
        """Insert or update a run record."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT OR REPLACE INTO runs
            (id, label, argv, status, started_at, ended_at, exit_code,
             failure_reason, malformed_lines, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            """,
            (
                run.id,
                run.label,
                json.dumps(run.argv),
                run.status.value,
                _iso(run.started_at),
                _iso(run.ended_at),
                run.exit_code,
                run.failure_reason,
                run.malformed_lines,
            ),
        )
        await conn.commit()

    async def get_run(self, run_id: str) -> Run | None:
        """Get a run record."""
        conn = self._require_conn()

        cursor = await conn.execute(
            """
            SELECT id, label, argv, status, started_at, ended_at, exit_code,
                   failure_reason, malformed_lines
            FROM runs
            WHERE id = ?
            """,
            (run_id,),
        )
        row = await cursor.fetchone()

        if not row:
            return None
        return self._row_to_run(row)

    async def get_runs(self, limit: int = 100) -> list[Run]:
        """Get run records (newest first)."""
        conn = self._require_conn()

        cursor = await conn.execute(
            """
            SELECT id, label, argv, status, started_at, ended_at, exit_code,
                   failure_reason, malformed_lines
            FROM runs
            ORDER BY started_at DESC
            LIMIT ?
            """,
            (limit,),
        )
        rows = await cursor.fetchall()
        return [self._row_to_run(row) for row in rows]

    @staticmethod
    def _row_to_run(row) -> Run:
        return Run(
            id=row[0],
            label=row[1],
            argv=json.loads(row[2]),
            status=RunStatus(row[3]),
            started_at=_parse_ts(row[4]),
            ended_at=_parse_ts(row[5]),
            exit_code=row[6],
            failure_reason=row[7],
            malformed_lines=row[8],
        )

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data, default=str),
                _iso(event.timestamp),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters (newest first)."""
        conn = self._require_conn()

        conditions = []
        params: list = []

        if after:
            conditions.append("timestamp > ?")
            params.append(_iso(after))
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=_parse_ts(row[4]),
            )
            for row in rows
        ]

    # Snapshots
    async def save_snapshot(self, snapshot: AgentSnapshot) -> None:
        """Checkpoint an agent snapshot."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT OR REPLACE INTO snapshots (run_id, last_seq, payload, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            """,
            (snapshot.id, snapshot.last_seq_applied, snapshot.to_json()),
        )
        await conn.commit()

    async def get_snapshot(self, run_id: str) -> AgentSnapshot | None:
        """Load a checkpointed agent snapshot."""
        conn = self._require_conn()

        cursor = await conn.execute(
            "SELECT payload FROM snapshots WHERE run_id = ?",
            (run_id,),
        )
        row = await cursor.fetchone()

        if not row:
            return None
        return AgentSnapshot.from_dict(json.loads(row[0]))

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()

        for table in ["runs", "trace_events", "snapshots"]:
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()
