"""
CRUD operations for mech-evolve.
All functions are async and receive the aiosqlite connection from the caller.

Counters and pattern memory are updated with single SQL statements
(``SET n = n + ?`` and ``INSERT ... ON CONFLICT DO UPDATE``) so overlapping
change events for the same agent never lose increments.
"""
import json
import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import aiosqlite

from mech_evolve.db.models import (
    Agent, AgentEcosystem, AgentMemory, AgentPerformance, AgentSpecification,
    Evolution, PatternMemory, STATUSES,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_dt(s: str) -> datetime:
    return datetime.fromisoformat(s)


def _iso(dt: Optional[datetime]) -> str:
    return dt.isoformat() if dt is not None else _now()


# ─────────────────────────────────────────────
# Agent CRUD
# ─────────────────────────────────────────────

async def agent_insert(db: aiosqlite.Connection, agent: Agent) -> Agent:
    """Persist a new agent. Raises sqlite3.IntegrityError if the name is taken in the project."""
    await db.execute(
        "INSERT INTO agents (id, application_id, name, role, purpose, triggers, capabilities, priority, tier, "
        "status, created_at, last_active, suggestions_generated, suggestions_accepted, success_rate, specification) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            agent.id, agent.application_id, agent.name, agent.role, agent.purpose,
            json.dumps(agent.triggers), json.dumps(agent.capabilities),
            agent.priority, agent.tier, agent.status,
            agent.created_at.isoformat(), agent.last_active.isoformat(),
            agent.performance.suggestions_generated, agent.performance.suggestions_accepted,
            agent.performance.success_rate, json.dumps(agent.specification.to_dict()),
        ),
    )
    await db.commit()
    logger.info(f"Agent stored: {agent.id} '{agent.name}' (tier {agent.tier})")
    return agent


async def agent_get(
    db: aiosqlite.Connection,
    agent_id: str,
    application_id: Optional[str] = None,
) -> Optional[Agent]:
    if application_id is None:
        query, params = "SELECT * FROM agents WHERE id = ?", (agent_id,)
    else:
        query, params = "SELECT * FROM agents WHERE id = ? AND application_id = ?", (agent_id, application_id)
    async with db.execute(query, params) as cur:
        row = await cur.fetchone()
    if row is None:
        return None
    return await _load_agent(db, row)


async def agent_list(
    db: aiosqlite.Connection,
    application_id: str,
    statuses: Optional[Iterable[str]] = None,
) -> list[Agent]:
    """List a project's agents in creation order, optionally filtered by status."""
    if statuses:
        statuses = tuple(statuses)
        marks = ", ".join("?" for _ in statuses)
        query = (f"SELECT * FROM agents WHERE application_id = ? AND status IN ({marks}) "
                 "ORDER BY created_at, rowid")
        params: tuple = (application_id, *statuses)
    else:
        query = "SELECT * FROM agents WHERE application_id = ? ORDER BY created_at, rowid"
        params = (application_id,)
    async with db.execute(query, params) as cur:
        rows = await cur.fetchall()
    return [await _load_agent(db, r) for r in rows]


async def agent_names(db: aiosqlite.Connection, application_id: str) -> set[str]:
    async with db.execute("SELECT name FROM agents WHERE application_id = ?", (application_id,)) as cur:
        return {r["name"] for r in await cur.fetchall()}


async def agent_set_status(db: aiosqlite.Connection, agent_id: str, status: str) -> bool:
    if status not in STATUSES:
        raise ValueError(f"Invalid status '{status}'. Must be one of {set(STATUSES)}")
    async with db.execute("UPDATE agents SET status = ? WHERE id = ?", (status, agent_id)) as cur:
        updated = cur.rowcount
    await db.commit()
    if updated == 0:
        return False  # agent_id does not exist
    logger.info(f"Agent {agent_id} status -> {status}")
    return True


async def agent_record_performance(
    db: aiosqlite.Connection,
    agent_id: str,
    suggestion_count: int,
    active_at: Optional[datetime] = None,
) -> bool:
    """Atomically add to suggestions_generated and refresh last_active."""
    async with db.execute(
        "UPDATE agents SET suggestions_generated = suggestions_generated + ?, last_active = ? WHERE id = ?",
        (suggestion_count, _iso(active_at), agent_id),
    ) as cur:
        updated = cur.rowcount
    await db.commit()
    return updated > 0


async def agent_record_feedback(db: aiosqlite.Connection, agent_id: str, accepted: int = 1) -> bool:
    """
    Count accepted suggestions and recompute the success rate in the same statement.

    The rate is accepted / generated, capped at 1.0. It stays untouched while
    the agent has not generated anything yet.
    """
    if accepted < 0:
        raise ValueError("accepted must be non-negative")
    async with db.execute(
        """
        UPDATE agents SET
            suggestions_accepted = suggestions_accepted + ?,
            success_rate = CASE
                WHEN suggestions_generated > 0
                THEN MIN(1.0, CAST(suggestions_accepted + ? AS REAL) / suggestions_generated)
                ELSE success_rate
            END
        WHERE id = ?
        """,
        (accepted, accepted, agent_id),
    ) as cur:
        updated = cur.rowcount
    await db.commit()
    return updated > 0


async def _load_agent(db: aiosqlite.Connection, row: aiosqlite.Row) -> Agent:
    agent_id = row["id"]
    return Agent(
        id=agent_id,
        application_id=row["application_id"],
        name=row["name"],
        role=row["role"],
        purpose=row["purpose"] or "",
        triggers=json.loads(row["triggers"]),
        capabilities=json.loads(row["capabilities"]),
        priority=row["priority"],
        tier=row["tier"],
        status=row["status"],
        created_at=_parse_dt(row["created_at"]),
        last_active=_parse_dt(row["last_active"]),
        specification=AgentSpecification.from_dict(json.loads(row["specification"])),
        performance=AgentPerformance(
            suggestions_generated=row["suggestions_generated"],
            suggestions_accepted=row["suggestions_accepted"],
            success_rate=row["success_rate"],
        ),
        memory=AgentMemory(
            patterns=await pattern_list(db, agent_id),
            context=await context_get(db, agent_id),
        ),
    )


# ─────────────────────────────────────────────
# Agent memory
# ─────────────────────────────────────────────

async def agent_apply_memory(
    db: aiosqlite.Connection,
    agent_id: str,
    pattern: str,
    confidence: float,
    file_path: str,
    context_key: str,
    context_value: dict[str, Any],
    seen_at: Optional[datetime] = None,
    example_limit: int = 5,
) -> None:
    """
    Record one observation of `pattern` for an agent, overwrite its context entry
    and refresh last_active, committing once.

    First observation inserts frequency=1 with the given confidence. Repeats
    bump frequency, refresh last_seen and append `file_path` to the examples
    while fewer than `example_limit` distinct paths are stored. Confidence is
    never rewritten. Paths already stored are not appended again.

    A failing statement rolls back the whole observation before re-raising.
    """
    seen = _iso(seen_at)
    try:
        await db.execute(
            """
            INSERT INTO agent_patterns (agent_id, pattern, frequency, confidence, examples, last_seen)
            VALUES (?, ?, 1, ?, json_array(?), ?)
            ON CONFLICT(agent_id, pattern) DO UPDATE SET
                frequency = frequency + 1,
                last_seen = excluded.last_seen,
                examples = CASE
                    WHEN json_array_length(examples) < ?
                         AND NOT EXISTS (SELECT 1 FROM json_each(agent_patterns.examples) WHERE json_each.value = ?)
                    THEN json_insert(examples, '$[#]', ?)
                    ELSE examples
                END
            """,
            (agent_id, pattern, confidence, file_path, seen, example_limit, file_path, file_path),
        )
        await db.execute(
            """
            INSERT INTO agent_context (agent_id, key, value, updated_at) VALUES (?, ?, ?, ?)
            ON CONFLICT(agent_id, key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (agent_id, context_key, json.dumps(context_value), seen),
        )
        await db.execute("UPDATE agents SET last_active = ? WHERE id = ?", (seen, agent_id))
    except Exception:
        await db.rollback()
        raise
    await db.commit()


async def pattern_list(db: aiosqlite.Connection, agent_id: str) -> list[PatternMemory]:
    """Pattern memory for one agent, most recently seen first."""
    async with db.execute(
        "SELECT * FROM agent_patterns WHERE agent_id = ? ORDER BY last_seen DESC, rowid DESC",
        (agent_id,),
    ) as cur:
        rows = await cur.fetchall()
    return [PatternMemory(
        pattern=r["pattern"],
        frequency=r["frequency"],
        confidence=r["confidence"],
        examples=json.loads(r["examples"]),
        last_seen=_parse_dt(r["last_seen"]),
    ) for r in rows]


async def context_get(db: aiosqlite.Connection, agent_id: str) -> dict[str, Any]:
    async with db.execute(
        "SELECT key, value FROM agent_context WHERE agent_id = ? ORDER BY key", (agent_id,)
    ) as cur:
        rows = await cur.fetchall()
    return {r["key"]: json.loads(r["value"]) for r in rows}


# ─────────────────────────────────────────────
# Agent ecosystem (derived summary)
# ─────────────────────────────────────────────

async def ecosystem_replace(
    db: aiosqlite.Connection,
    application_id: str,
    agents: list[Agent],
) -> AgentEcosystem:
    """Overwrite the project's ecosystem summary with the given agent set."""
    ecosystem = AgentEcosystem(
        application_id=application_id,
        agent_count=len(agents),
        agent_types=[{"name": a.name, "role": a.role, "tier": a.tier} for a in agents],
        last_updated=datetime.now(timezone.utc),
    )
    await db.execute(
        "INSERT OR REPLACE INTO agent_ecosystems (application_id, agent_count, agent_types, last_updated) "
        "VALUES (?, ?, ?, ?)",
        (application_id, ecosystem.agent_count, json.dumps(ecosystem.agent_types),
         ecosystem.last_updated.isoformat()),
    )
    await db.commit()
    return ecosystem


async def ecosystem_get(db: aiosqlite.Connection, application_id: str) -> Optional[AgentEcosystem]:
    async with db.execute(
        "SELECT * FROM agent_ecosystems WHERE application_id = ?", (application_id,)
    ) as cur:
        row = await cur.fetchone()
    if row is None:
        return None
    return _row_to_ecosystem(row)


async def ecosystem_list(db: aiosqlite.Connection) -> list[AgentEcosystem]:
    async with db.execute("SELECT * FROM agent_ecosystems ORDER BY application_id") as cur:
        rows = await cur.fetchall()
    return [_row_to_ecosystem(r) for r in rows]


def _row_to_ecosystem(row: aiosqlite.Row) -> AgentEcosystem:
    return AgentEcosystem(
        application_id=row["application_id"],
        agent_count=row["agent_count"],
        agent_types=json.loads(row["agent_types"]),
        last_updated=_parse_dt(row["last_updated"]),
    )


# ─────────────────────────────────────────────
# Evolution history
# ─────────────────────────────────────────────

async def evolution_insert(
    db: aiosqlite.Connection,
    application_id: str,
    file_path: str,
    change_type: str,
    machine_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> Evolution:
    eid = str(uuid.uuid4())
    now = _now()
    meta_json = json.dumps(metadata) if metadata else None
    await db.execute(
        "INSERT INTO evolutions (id, application_id, file_path, change_type, machine_id, metadata, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (eid, application_id, file_path, change_type, machine_id, meta_json, now),
    )
    await db.commit()
    logger.debug(f"Evolution tracked: {eid} {change_type} {file_path}")
    return Evolution(id=eid, application_id=application_id, file_path=file_path,
                     change_type=change_type, machine_id=machine_id, metadata=meta_json,
                     created_at=_parse_dt(now))


async def evolution_history(
    db: aiosqlite.Connection,
    application_id: str,
    limit: int = 50,
) -> list[Evolution]:
    async with db.execute(
        "SELECT * FROM evolutions WHERE application_id = ? ORDER BY created_at DESC LIMIT ?",
        (application_id, limit),
    ) as cur:
        rows = await cur.fetchall()
    return [Evolution(
        id=r["id"],
        application_id=r["application_id"],
        file_path=r["file_path"],
        change_type=r["change_type"],
        machine_id=r["machine_id"],
        metadata=r["metadata"],
        created_at=_parse_dt(r["created_at"]),
    ) for r in rows]
