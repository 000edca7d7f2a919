"""PostgreSQL-backed process store with automatic table migration.

Beginner terms:
- Partial unique index: a uniqueness rule that only applies to rows matching
  a WHERE clause. Here it makes (name, process_id) unique among ACTIVE rows
  while terminal rows may repeat.
- Conditional update: ``UPDATE ... WHERE status = 'ACTIVE'`` so two concurrent
  completions cannot both succeed.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from process_tracker.lifecycle.errors import StoreUnavailableError
from process_tracker.lifecycle.models import ProcessStatus, ProcessTag
from process_tracker.storage.base import ActiveProcessConflict
from process_tracker.storage.models import ProcessDraft, ProcessRecord

UNIQUE_ACTIVE_INDEX = "idx_processes_unique_active"


class PostgresProcessStore:
    """Persist process rows in PostgreSQL."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("PROCESS_TRACKER_DATABASE_URL is required")
        self.database_url = database_url
        # Lock guards DB operations done through this storage instance.
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        with self._lock, self._session() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS processes (
                    id BIGSERIAL PRIMARY KEY,
                    process_id VARCHAR(50) NOT NULL,
                    name VARCHAR(100) NOT NULL,
                    status VARCHAR(20) NOT NULL,
                    started_at TIMESTAMPTZ NOT NULL,
                    completed_at TIMESTAMPTZ,
                    deadline TIMESTAMPTZ,
                    tags JSONB NOT NULL DEFAULT '[]'::jsonb,
                    context JSONB NOT NULL DEFAULT '{}'::jsonb,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute(f"""
                CREATE UNIQUE INDEX IF NOT EXISTS {UNIQUE_ACTIVE_INDEX}
                ON processes(name, process_id)
                WHERE status = 'ACTIVE'
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_processes_name_process_id
                ON processes(name, process_id)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_processes_status
                ON processes(status)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_processes_started_at
                ON processes(started_at DESC)
                """)
            conn.commit()

    def ping(self) -> None:
        with self._lock, self._session() as conn:
            conn.execute("SELECT 1").fetchone()

    def insert_process(self, draft: ProcessDraft) -> ProcessRecord:
        now = datetime.now(tz=UTC)
        unique_violation = self._psycopg.errors.UniqueViolation
        with self._lock, self._session() as conn:
            try:
                row = conn.execute(
                    """
                    INSERT INTO processes (
                        process_id,
                        name,
                        status,
                        started_at,
                        completed_at,
                        deadline,
                        tags,
                        context,
                        created_at,
                        updated_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        draft.process_id,
                        draft.name,
                        draft.status,
                        draft.started_at,
                        None,
                        draft.deadline,
                        self._json_wrapper([tag.model_dump() for tag in draft.tags]),
                        self._json_wrapper(draft.context),
                        now,
                        now,
                    ),
                ).fetchone()
            except unique_violation as exc:
                conn.rollback()
                if exc.diag.constraint_name == UNIQUE_ACTIVE_INDEX:
                    raise ActiveProcessConflict(draft.name, draft.process_id) from exc
                raise
            conn.commit()
        if row is None:
            raise RuntimeError("Failed to persist process")
        return self._row_to_record(row)

    def find_process(self, name: str, process_id: str) -> ProcessRecord | None:
        with self._lock, self._session() as conn:
            row = conn.execute(
                """
                SELECT *
                FROM processes
                WHERE name = %s AND process_id = %s
                ORDER BY started_at DESC, id DESC
                LIMIT 1
                """,
                (name, process_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def update_process(
        self,
        internal_id: int,
        *,
        status: ProcessStatus,
        completed_at: datetime,
    ) -> ProcessRecord | None:
        with self._lock, self._session() as conn:
            row = conn.execute(
                """
                UPDATE processes
                SET status = %s,
                    completed_at = %s,
                    updated_at = %s
                WHERE id = %s AND status = 'ACTIVE'
                RETURNING *
                """,
                (status, completed_at, datetime.now(tz=UTC), internal_id),
            ).fetchone()
            if row is None:
                exists = conn.execute(
                    "SELECT 1 AS present FROM processes WHERE id = %s",
                    (internal_id,),
                ).fetchone()
                conn.rollback()
                if exists is None:
                    raise KeyError(f"Process {internal_id} does not exist")
                return None
            conn.commit()
        return self._row_to_record(row)

    def find_processes(
        self,
        *,
        name: str | None = None,
        process_id: str | None = None,
        status: ProcessStatus | None = None,
    ) -> list[ProcessRecord]:
        clauses: list[str] = []
        params: list[Any] = []
        if name is not None:
            clauses.append("name = %s")
            params.append(name)
        if process_id is not None:
            clauses.append("process_id = %s")
            params.append(process_id)
        if status is not None:
            clauses.append("status = %s")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._lock, self._session() as conn:
            rows = conn.execute(
                f"SELECT * FROM processes {where} ORDER BY started_at DESC, id DESC",
                tuple(params),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count_by_status(self, status: ProcessStatus) -> int:
        with self._lock, self._session() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS total FROM processes WHERE status = %s",
                (status,),
            ).fetchone()
        return int(row["total"]) if row else 0

    @contextmanager
    def _session(self) -> Iterator[Any]:
        """Open a dict-row connection, reporting connectivity loss as StoreUnavailableError."""
        try:
            with self._psycopg.connect(self.database_url, row_factory=self._dict_row) as conn:
                yield conn
        except self._psycopg.OperationalError as exc:
            raise StoreUnavailableError(f"Process store unavailable: {exc}") from exc

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _parse_json(raw: Any, default: Any) -> Any:
        if raw is None:
            return default
        if isinstance(raw, str):
            return json.loads(raw)
        return raw

    @staticmethod
    def _parse_datetime(raw: Any) -> datetime | None:
        if raw is None:
            return None
        if isinstance(raw, datetime):
            return raw
        if isinstance(raw, str):
            return datetime.fromisoformat(raw)
        raise TypeError(f"Unsupported datetime value: {type(raw)!r}")

    @classmethod
    def _row_to_record(cls, row: Any) -> ProcessRecord:
        raw_tags = cls._parse_json(row["tags"], [])
        raw_context = cls._parse_json(row["context"], {})
        return ProcessRecord(
            internal_id=int(row["id"]),
            name=row["name"],
            process_id=row["process_id"],
            status=row["status"],
            started_at=cls._parse_datetime(row["started_at"]),
            completed_at=cls._parse_datetime(row["completed_at"]),
            deadline=cls._parse_datetime(row["deadline"]),
            tags=[ProcessTag.model_validate(item) for item in raw_tags if isinstance(item, dict)],
            context=raw_context if isinstance(raw_context, dict) else {},
        )
