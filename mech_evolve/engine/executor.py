"""
Single-agent analysis of one change event.
"""
import logging
import sqlite3
from datetime import datetime, timezone

import aiosqlite

from mech_evolve.config import PATTERN_EXAMPLE_LIMIT
from mech_evolve.db import crud
from mech_evolve.db.models import Agent, AgentResponse, ChangeEvent
from mech_evolve.engine.confidence import estimate_confidence
from mech_evolve.engine.matching import pattern_key
from mech_evolve.engine.suggestions import generate_suggestions
from mech_evolve.engine.templates import render_analysis

logger = logging.getLogger(__name__)


async def execute_agent_analysis(
    db: aiosqlite.Connection,
    agent: Agent,
    event: ChangeEvent,
) -> AgentResponse:
    """
    Build the agent's response to an already-matched event and record what it learned.

    Confidence is computed against the memory loaded with `agent`, before this
    event is recorded. A failed memory write is logged and the response is
    still returned.
    """
    now = datetime.now(timezone.utc)
    analysis = render_analysis(agent.name, agent.role, event.file_path)
    response = AgentResponse(
        agent_id=agent.id,
        agent_name=agent.name,
        change_event_id=event.id,
        analysis=analysis,
        suggestions=generate_suggestions(agent, event),
        confidence=estimate_confidence(agent, event),
        timestamp=now,
    )

    try:
        await crud.agent_apply_memory(
            db,
            agent.id,
            pattern=pattern_key(event),
            confidence=response.confidence,
            file_path=event.file_path,
            context_key=f"last_{event.change_type}",
            context_value={
                "filePath": event.file_path,
                "timestamp": now.isoformat(),
                "response": analysis,
            },
            seen_at=now,
            example_limit=PATTERN_EXAMPLE_LIMIT,
        )
    except sqlite3.Error as e:
        logger.warning(f"Memory update lost for agent {agent.id} on event {event.id}: {e}")

    logger.debug(f"Agent {agent.name} answered {event.id} with {len(response.suggestions)} suggestions "
                 f"(confidence={response.confidence:.2f})")
    return response
