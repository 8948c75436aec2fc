"""Session, request, clipboard, and history persistence.

Rows are only inserted or updated; nothing is deleted except through
``clear_history`` and ``prune_history``, which touch the history table alone.
Text lengths are always computed here from the stored text.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import aiosqlite

from quickllm.core.types import ClipboardOperation, RequestStatus
from quickllm.errors import ValidationError
from quickllm.log import get_logger
from quickllm.storage.database import Database
from quickllm.storage.models import (
    ClipboardEvent,
    HistoryEntry,
    RequestRecord,
    SessionRecord,
    SessionStats,
    SettingsBackup,
)

logger = get_logger(__name__)

_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%f','now')"
_SESSION_FIELDS = frozenset({"provider", "model", "end_time"})


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class HistoryStore:
    """Relational audit trail over the application database."""

    def __init__(self, db: Database):
        self._db = db
        # one connection is shared, so a rollback must never see another writer's rows
        self._write_lock = asyncio.Lock()

    async def _write(self, sql: str, params: tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        async with self._write_lock:
            cursor = await self._db.conn.execute(sql, params)
            await self._db.conn.commit()
        return cursor

    # -- sessions ------------------------------------------------------------

    async def create_session(self, provider: str, model: str) -> str:
        session_id = f"session_{uuid.uuid4().hex[:12]}"
        await self._write(
            "INSERT INTO sessions (session_id, provider, model) VALUES (?, ?, ?)",
            (session_id, provider, model),
        )
        logger.info("session_created", session_id=session_id, provider=provider, model=model)
        return session_id

    async def update_session(self, session_id: str, **updates: Any) -> None:
        """Set any of ``provider``, ``model``, ``end_time`` on a session."""
        unknown = set(updates) - _SESSION_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update session fields: {', '.join(sorted(unknown))}")
        if not updates:
            return

        assignments = ", ".join(f"{name} = ?" for name in updates)
        await self._write(
            f"UPDATE sessions SET {assignments}, updated_at = {_NOW_SQL} WHERE session_id = ?",
            (*updates.values(), session_id),
        )

    async def end_session(self, session_id: str) -> None:
        await self._write(
            f"UPDATE sessions SET end_time = {_NOW_SQL}, updated_at = {_NOW_SQL} "
            "WHERE session_id = ?",
            (session_id,),
        )
        logger.info("session_ended", session_id=session_id)

    async def get_session(self, session_id: str) -> Optional[SessionRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM sessions WHERE session_id = ?", (session_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_session(row) if row else None

    async def list_recent_sessions(self, limit: int = 10) -> list[SessionRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM sessions ORDER BY start_time DESC, id DESC LIMIT ?", (limit,)
        )
        rows = await cursor.fetchall()
        return [self._row_to_session(row) for row in rows]

    # -- requests ------------------------------------------------------------

    async def create_request(
        self,
        session_id: str,
        provider: str,
        model: str,
        mode: str,
        input_text: str,
    ) -> int:
        """Insert a pending request and bump the session's request count."""
        conn = self._db.conn
        async with self._write_lock:
            try:
                cursor = await conn.execute(
                    """INSERT INTO requests
                       (session_id, provider, model, mode, input_text, input_length, status)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (
                        session_id,
                        provider,
                        model,
                        mode,
                        input_text,
                        len(input_text),
                        RequestStatus.PENDING.value,
                    ),
                )
                await conn.execute(
                    f"UPDATE sessions SET total_requests = total_requests + 1, updated_at = {_NOW_SQL} "
                    "WHERE session_id = ?",
                    (session_id,),
                )
                await conn.commit()
            except aiosqlite.Error:
                await conn.rollback()
                raise
        return cursor.lastrowid  # type: ignore[return-value]

    async def update_request(
        self,
        request_id: int,
        status: str,
        *,
        output_text: Optional[str] = None,
        error_message: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Apply the single terminal update to a pending request.

        ``success`` requires ``output_text``; ``error`` requires ``error_message``.
        """
        if status == RequestStatus.SUCCESS:
            if not output_text:
                raise ValidationError("A successful request needs output text")
            values: tuple[Any, ...] = (output_text, len(output_text), None)
        elif status == RequestStatus.ERROR:
            if not error_message or not error_message.strip():
                raise ValidationError("A failed request needs an error message")
            values = (None, 0, error_message)
        else:
            raise ValidationError(f"Invalid terminal status: {status}")

        cursor = await self._write(
            """UPDATE requests
               SET output_text = ?, output_length = ?, error_message = ?,
                   status = ?, processing_time_ms = ?
               WHERE id = ? AND status = 'pending'""",
            (*values, str(status), duration_ms, request_id),
        )
        if cursor.rowcount == 0:
            raise ValidationError(f"Request {request_id} is not pending")

    async def get_request(self, request_id: int) -> Optional[RequestRecord]:
        cursor = await self._db.conn.execute("SELECT * FROM requests WHERE id = ?", (request_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return RequestRecord(
            id=row["id"],
            session_id=row["session_id"],
            provider=row["provider"],
            model=row["model"],
            mode=row["mode"],
            input_text=row["input_text"],
            input_length=row["input_length"],
            status=row["status"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            output_text=row["output_text"],
            output_length=row["output_length"],
            processing_time_ms=row["processing_time_ms"],
            error_message=row["error_message"],
        )

    # -- clipboard -----------------------------------------------------------

    async def log_clipboard_event(
        self,
        session_id: str,
        operation: str,
        content: str,
        mode: Optional[str] = None,
        source: str = "unknown",
    ) -> int:
        try:
            op = ClipboardOperation(operation)
        except ValueError:
            raise ValidationError(f"Unknown clipboard operation: {operation}") from None

        cursor = await self._write(
            """INSERT INTO clipboard_operations
               (session_id, operation_type, content, content_length, mode, source)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (session_id, op.value, content, len(content), mode, source),
        )
        return cursor.lastrowid  # type: ignore[return-value]

    async def list_clipboard_events(self, session_id: str, limit: int = 50) -> list[ClipboardEvent]:
        cursor = await self._db.conn.execute(
            """SELECT * FROM clipboard_operations WHERE session_id = ?
               ORDER BY timestamp DESC, id DESC LIMIT ?""",
            (session_id, limit),
        )
        rows = await cursor.fetchall()
        return [
            ClipboardEvent(
                id=row["id"],
                session_id=row["session_id"],
                operation=row["operation_type"],
                content=row["content"],
                content_length=row["content_length"],
                source=row["source"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
                mode=row["mode"],
            )
            for row in rows
        ]

    # -- history -------------------------------------------------------------

    async def add_history_entry(
        self,
        session_id: str,
        mode: str,
        original_text: str,
        processed_text: str,
        provider: str,
        model: str,
        processing_time_ms: Optional[int] = None,
    ) -> int:
        cursor = await self._write(
            """INSERT INTO history
               (session_id, mode, original_text, processed_text, provider, model, processing_time_ms)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (session_id, mode, original_text, processed_text, provider, model, processing_time_ms),
        )
        return cursor.lastrowid  # type: ignore[return-value]

    async def get_history(
        self, session_id: Optional[str] = None, limit: int = 10, offset: int = 0
    ) -> list[HistoryEntry]:
        """Newest-first page of history, optionally for one session."""
        if session_id:
            cursor = await self._db.conn.execute(
                """SELECT * FROM history WHERE session_id = ?
                   ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?""",
                (session_id, limit, offset),
            )
        else:
            cursor = await self._db.conn.execute(
                "SELECT * FROM history ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
                (limit, offset),
            )
        rows = await cursor.fetchall()
        return [self._row_to_history(row) for row in rows]

    async def clear_history(self, session_id: Optional[str] = None) -> int:
        """Delete history entries. Sessions and requests are left alone."""
        if session_id:
            cursor = await self._write("DELETE FROM history WHERE session_id = ?", (session_id,))
        else:
            cursor = await self._write("DELETE FROM history")
        logger.info("history_cleared", session_id=session_id, deleted=cursor.rowcount)
        return cursor.rowcount

    async def prune_history(self, max_items: int) -> int:
        """Keep only the newest ``max_items`` history entries."""
        cursor = await self._write(
            """DELETE FROM history WHERE id NOT IN (
                   SELECT id FROM history ORDER BY timestamp DESC, id DESC LIMIT ?
               )""",
            (max_items,),
        )
        if cursor.rowcount:
            logger.debug("history_pruned", deleted=cursor.rowcount, kept=max_items)
        return cursor.rowcount

    # -- reporting -----------------------------------------------------------

    async def get_session_stats(self, session_id: str) -> Optional[SessionStats]:
        cursor = await self._db.conn.execute(
            """SELECT
                   s.session_id, s.start_time, s.end_time, s.provider, s.model,
                   COUNT(r.id) AS total_requests,
                   COALESCE(SUM(CASE WHEN r.status = 'success' THEN 1 ELSE 0 END), 0) AS successful,
                   COALESCE(SUM(CASE WHEN r.status = 'error' THEN 1 ELSE 0 END), 0) AS failed,
                   COALESCE(SUM(CASE WHEN r.status = 'pending' THEN 1 ELSE 0 END), 0) AS pending,
                   AVG(r.processing_time_ms) AS avg_time,
                   COALESCE(SUM(r.input_length), 0) AS input_chars,
                   COALESCE(SUM(r.output_length), 0) AS output_chars
               FROM sessions s
               LEFT JOIN requests r ON s.session_id = r.session_id
               WHERE s.session_id = ?
               GROUP BY s.session_id""",
            (session_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return SessionStats(
            session_id=row["session_id"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=_parse_ts(row["end_time"]),
            provider=row["provider"],
            model=row["model"],
            total_requests=row["total_requests"],
            successful_requests=row["successful"],
            failed_requests=row["failed"],
            pending_requests=row["pending"],
            avg_processing_time_ms=row["avg_time"],
            total_input_chars=row["input_chars"],
            total_output_chars=row["output_chars"],
        )

    # -- settings backups ----------------------------------------------------

    async def backup_settings(self, settings: dict[str, Any], name: Optional[str] = None) -> int:
        backup_name = name or f"backup_{datetime.now(timezone.utc).isoformat()}"
        cursor = await self._write(
            "INSERT INTO settings_backup (backup_name, settings_json) VALUES (?, ?)",
            (backup_name, json.dumps(settings)),
        )
        return cursor.lastrowid  # type: ignore[return-value]

    async def list_settings_backups(self, limit: int = 5) -> list[SettingsBackup]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM settings_backup ORDER BY timestamp DESC, id DESC LIMIT ?", (limit,)
        )
        rows = await cursor.fetchall()
        return [
            SettingsBackup(
                id=row["id"],
                name=row["backup_name"],
                settings=json.loads(row["settings_json"]),
                timestamp=datetime.fromisoformat(row["timestamp"]),
            )
            for row in rows
        ]

    # -- maintenance ---------------------------------------------------------

    async def export_data(self) -> dict[str, Any]:
        """Every table as lists of plain dicts, newest first."""
        tables = {
            "sessions": "SELECT * FROM sessions ORDER BY start_time DESC, id DESC",
            "requests": "SELECT * FROM requests ORDER BY timestamp DESC, id DESC",
            "history": "SELECT * FROM history ORDER BY timestamp DESC, id DESC",
            "clipboard_operations": "SELECT * FROM clipboard_operations ORDER BY timestamp DESC, id DESC",
            "settings_backups": "SELECT * FROM settings_backup ORDER BY timestamp DESC, id DESC",
        }
        data: dict[str, Any] = {}
        for key, sql in tables.items():
            cursor = await self._db.conn.execute(sql)
            data[key] = [dict(row) for row in await cursor.fetchall()]
        data["exported_at"] = datetime.now(timezone.utc).isoformat()
        return data

    async def vacuum(self) -> None:
        async with self._write_lock:
            await self._db.vacuum()

    @staticmethod
    def _row_to_session(row) -> SessionRecord:
        return SessionRecord(
            session_id=row["session_id"],
            start_time=datetime.fromisoformat(row["start_time"]),
            provider=row["provider"],
            model=row["model"],
            end_time=_parse_ts(row["end_time"]),
            total_requests=row["total_requests"],
        )

    @staticmethod
    def _row_to_history(row) -> HistoryEntry:
        return HistoryEntry(
            id=row["id"],
            session_id=row["session_id"],
            mode=row["mode"],
            original_text=row["original_text"],
            processed_text=row["processed_text"],
            provider=row["provider"],
            model=row["model"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            processing_time_ms=row["processing_time_ms"],
        )
