"""SQLite database connection manager with schema migration."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from quickllm.log import get_logger

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sessions (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id      TEXT    NOT NULL UNIQUE,
    start_time      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    end_time        TEXT,
    provider        TEXT,
    model           TEXT,
    total_requests  INTEGER NOT NULL DEFAULT 0,
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now')),
    updated_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE TABLE IF NOT EXISTS requests (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id          TEXT    NOT NULL REFERENCES sessions(session_id),
    provider            TEXT    NOT NULL,
    model               TEXT    NOT NULL,
    mode                TEXT    NOT NULL,
    input_text          TEXT    NOT NULL,
    output_text         TEXT,
    input_length        INTEGER NOT NULL DEFAULT 0,
    output_length       INTEGER NOT NULL DEFAULT 0,
    processing_time_ms  INTEGER,
    status              TEXT    NOT NULL DEFAULT 'pending'
                        CHECK(status IN ('pending','success','error')),
    error_message       TEXT,
    timestamp           TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE INDEX IF NOT EXISTS idx_requests_session
    ON requests(session_id);

CREATE INDEX IF NOT EXISTS idx_requests_timestamp
    ON requests(timestamp);

CREATE TABLE IF NOT EXISTS clipboard_operations (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id      TEXT    NOT NULL REFERENCES sessions(session_id),
    operation_type  TEXT    NOT NULL CHECK(operation_type IN ('copy','paste')),
    content         TEXT    NOT NULL,
    content_length  INTEGER NOT NULL DEFAULT 0,
    mode            TEXT,
    source          TEXT    NOT NULL DEFAULT 'unknown',
    timestamp       TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE INDEX IF NOT EXISTS idx_clipboard_session
    ON clipboard_operations(session_id);

CREATE INDEX IF NOT EXISTS idx_clipboard_timestamp
    ON clipboard_operations(timestamp);

CREATE TABLE IF NOT EXISTS history (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id          TEXT    NOT NULL REFERENCES sessions(session_id),
    mode                TEXT    NOT NULL,
    original_text       TEXT    NOT NULL,
    processed_text      TEXT    NOT NULL,
    provider            TEXT    NOT NULL,
    model               TEXT    NOT NULL,
    processing_time_ms  INTEGER,
    timestamp           TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);

CREATE INDEX IF NOT EXISTS idx_history_session
    ON history(session_id);

CREATE INDEX IF NOT EXISTS idx_history_timestamp
    ON history(timestamp);

CREATE TABLE IF NOT EXISTS settings_backup (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    backup_name     TEXT    NOT NULL,
    settings_json   TEXT    NOT NULL,
    timestamp       TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
);
"""


class Database:
    """Async SQLite database manager."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection and run migrations. Safe to call on every start."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(SCHEMA_SQL)
        await self._conn.commit()
        logger.info("database_initialized", path=self._db_path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._conn

    async def vacuum(self) -> None:
        await self.conn.execute("VACUUM")

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("database_closed")
