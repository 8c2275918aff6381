"""
SQLite database connection management and schema initialization.
Uses aiosqlite for fully async, non-blocking access.
"""
import aiosqlite
import asyncio
import logging
import sqlite3
from pathlib import Path

from mech_evolve.config import DB_PATH

logger = logging.getLogger(__name__)

# Module-level connection pool (single shared connection with WAL mode)
_db: aiosqlite.Connection | None = None
_lock = asyncio.Lock()


class StoreUnavailableError(RuntimeError):
    """Raised when the agent store cannot be opened."""


async def get_db() -> aiosqlite.Connection:
    """Return the shared async database connection, initializing it if needed."""
    global _db
    if _db is None:
        async with _lock:
            if _db is None:
                try:
                    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)
                    db = await aiosqlite.connect(DB_PATH)
                except (OSError, sqlite3.Error) as e:
                    raise StoreUnavailableError(f"Cannot open agent store at {DB_PATH}: {e}") from e
                db.row_factory = aiosqlite.Row
                # WAL mode: allows concurrent reads while writing
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA foreign_keys=ON")
                await init_schema(db)
                _db = db
                logger.info(f"Database initialized at {DB_PATH}")
    return _db


async def close_db() -> None:
    """Gracefully close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database connection closed.")


async def init_schema(db: aiosqlite.Connection) -> None:
    """Create all tables if they do not already exist (idempotent)."""
    await db.executescript("""
        -- ----------------------------------------------------------------
        -- Agent: one specialization per project
        -- JSON text columns: triggers, capabilities, specification
        -- ----------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS agents (
            id                      TEXT PRIMARY KEY,
            application_id          TEXT NOT NULL,
            name                    TEXT NOT NULL,
            role                    TEXT NOT NULL,
            purpose                 TEXT NOT NULL DEFAULT '',
            triggers                TEXT NOT NULL DEFAULT '[]',
            capabilities            TEXT NOT NULL DEFAULT '[]',
            priority                TEXT NOT NULL,
            tier                    INTEGER NOT NULL,
            status                  TEXT NOT NULL DEFAULT 'learning',
            created_at              TEXT NOT NULL,
            last_active             TEXT NOT NULL,
            suggestions_generated   INTEGER NOT NULL DEFAULT 0,
            suggestions_accepted    INTEGER NOT NULL DEFAULT 0,
            success_rate            REAL NOT NULL DEFAULT 0,
            specification           TEXT NOT NULL
        );

        -- Names are unique per project; guards concurrent factory runs
        CREATE UNIQUE INDEX IF NOT EXISTS idx_agents_app_name
            ON agents(application_id, name);

        CREATE INDEX IF NOT EXISTS idx_agents_app_status
            ON agents(application_id, status);

        -- ----------------------------------------------------------------
        -- Pattern memory: one row per (agent, pattern key)
        -- ----------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS agent_patterns (
            agent_id    TEXT NOT NULL REFERENCES agents(id) ON DELETE CASCADE,
            pattern     TEXT NOT NULL,
            frequency   INTEGER NOT NULL DEFAULT 1,
            confidence  REAL NOT NULL,
            examples    TEXT NOT NULL DEFAULT '[]',
            last_seen   TEXT NOT NULL,
            PRIMARY KEY (agent_id, pattern)
        );

        -- ----------------------------------------------------------------
        -- Context map: last_<changeType> -> latest response summary
        -- ----------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS agent_context (
            agent_id    TEXT NOT NULL REFERENCES agents(id) ON DELETE CASCADE,
            key         TEXT NOT NULL,
            value       TEXT NOT NULL,
            updated_at  TEXT NOT NULL,
            PRIMARY KEY (agent_id, key)
        );

        -- ----------------------------------------------------------------
        -- Ecosystem: derived per-project summary, replaced wholesale
        -- ----------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS agent_ecosystems (
            application_id  TEXT PRIMARY KEY,
            agent_count     INTEGER NOT NULL,
            agent_types     TEXT NOT NULL,
            last_updated    TEXT NOT NULL
        );

        -- ----------------------------------------------------------------
        -- Evolutions: raw change history recorded before fan-out
        -- ----------------------------------------------------------------
        CREATE TABLE IF NOT EXISTS evolutions (
            id              TEXT PRIMARY KEY,
            application_id  TEXT NOT NULL,
            file_path       TEXT NOT NULL,
            change_type     TEXT NOT NULL,
            machine_id      TEXT,
            metadata        TEXT,
            created_at      TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_evolutions_app_time
            ON evolutions(application_id, created_at);
    """)
    await db.commit()
    logger.info("Schema initialized.")
