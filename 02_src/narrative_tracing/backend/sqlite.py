"""SQLite telemetry backend.

Records are buffered in memory as they are opened and written in one transaction
on flush(), mirroring how hosted tracing SDKs batch their events.
"""

import json
from pathlib import Path
from typing import Any

import aiosqlite

from ..config import resolve_db_path
from ..errors import BackendUnavailableError
from ..logging_config import get_logger
from ..models import utc_now

logger = get_logger(__name__)


class SqliteBackend:
    """Buffers trace/span records and exports them to SQLite on flush."""

    def __init__(self, db_path: str | Path | None = None):
        self._db_path = resolve_db_path(db_path)
        if str(self._db_path) != ":memory:":
            try:
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise BackendUnavailableError(
                    f"Cannot prepare trace database at {self._db_path}: {e}"
                ) from e
        self._conn: aiosqlite.Connection | None = None
        self._pending: list[tuple[str, tuple]] = []

    @property
    def pending_count(self) -> int:
        """Number of buffered statements."""
        return len(self._pending)

    async def init(self) -> None:
        """Open the database and create tables."""
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

    # Recording (synchronous, buffered)
    def open_trace(
        self,
        trace_id: str,
        session_id: str,
        name: str,
        metadata: dict[str, Any],
    ) -> str:
        """Buffer a trace row; the handle is the trace ID."""
        self._pending.append(
            (
                """
                INSERT OR REPLACE INTO traces (id, session_id, name, metadata, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (trace_id, session_id, name, _dumps(metadata), utc_now()),
            )
        )
        return trace_id

    def open_child_span(
        self,
        handle: str,
        span_id: str,
        name: str,
        input: dict[str, Any] | None = None,
        output: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        parent_span_id: str | None = None,
    ) -> None:
        """Buffer a span row."""
        self._pending.append(
            (
                """
                INSERT OR REPLACE INTO spans
                (id, trace_id, parent_span_id, name, input, output, metadata, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    span_id,
                    handle,
                    parent_span_id,
                    name,
                    _dumps(input),
                    _dumps(output),
                    _dumps(metadata or {}),
                    utc_now(),
                ),
            )
        )

    def update_span(
        self,
        handle: str,
        observation_id: str,
        output: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Buffer an update of the trace (observation_id == handle) or one of its spans."""
        if observation_id == handle:
            self._pending.append(
                (
                    """
                    UPDATE traces
                    SET output = COALESCE(?, output), updated_at = ?
                    WHERE id = ?
                    """,
                    (_dumps(output), utc_now(), handle),
                )
            )
            return

        self._pending.append(
            (
                """
                UPDATE spans
                SET output = COALESCE(?, output), error = COALESCE(?, error)
                WHERE id = ? AND trace_id = ?
                """,
                (_dumps(output), error, observation_id, handle),
            )
        )

    async def flush(self) -> None:
        """Write buffered records in a single transaction."""
        if not self._conn:
            await self.init()

        pending, self._pending = self._pending, []
        for sql, params in pending:
            await self._conn.execute(sql, params)
        await self._conn.commit()
        logger.debug("Flushed %d trace records", len(pending))

    # Reading
    async def get_trace(self, trace_id: str) -> dict[str, Any] | None:
        """Get an exported trace row."""
        if not self._conn:
            raise RuntimeError("Backend not initialized")

        cursor = await self._conn.execute(
            """
            SELECT id, session_id, name, metadata, output, created_at, updated_at
            FROM traces
            WHERE id = ?
            """,
            (trace_id,),
        )
        row = await cursor.fetchone()

        if not row:
            return None

        return {
            "id": row[0],
            "session_id": row[1],
            "name": row[2],
            "metadata": json.loads(row[3]),
            "output": json.loads(row[4]) if row[4] else None,
            "created_at": row[5],
            "updated_at": row[6],
        }

    async def get_spans(self, trace_id: str) -> list[dict[str, Any]]:
        """Get exported span rows for a trace in insertion order."""
        if not self._conn:
            raise RuntimeError("Backend not initialized")

        cursor = await self._conn.execute(
            """
            SELECT id, parent_span_id, name, input, output, metadata, error
            FROM spans
            WHERE trace_id = ?
            ORDER BY rowid ASC
            """,
            (trace_id,),
        )
        rows = await cursor.fetchall()

        return [
            {
                "id": row[0],
                "parent_span_id": row[1],
                "name": row[2],
                "input": json.loads(row[3]) if row[3] else None,
                "output": json.loads(row[4]) if row[4] else None,
                "metadata": json.loads(row[5]),
                "error": row[6],
            }
            for row in rows
        ]

    async def clear(self) -> None:
        """Delete all exported records and drop anything buffered."""
        self._pending.clear()
        if not self._conn:
            return

        for table in ["spans", "traces"]:
            await self._conn.execute(f"DELETE FROM {table}")

        await self._conn.commit()


def _dumps(value: dict[str, Any] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)
