"""
Fan-out of one change event across a project's agents.

Load the responding agents, keep those whose triggers match, run them
concurrently, cross-reference the responses, then record performance.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

import aiosqlite

from mech_evolve.config import FANOUT_TIMEOUT
from mech_evolve.db import crud
from mech_evolve.db.models import (
    Agent, AgentResponse, ChangeEvent, Coordination, RESPONDING_STATUSES, Suggestion,
)
from mech_evolve.engine.executor import execute_agent_analysis
from mech_evolve.engine.matching import agent_matches
from mech_evolve.engine.suggestions import fallback_suggestions

logger = logging.getLogger(__name__)


@dataclass
class TrackResult:
    responses: list[AgentResponse] = field(default_factory=list)
    suggestions: list[Suggestion] = field(default_factory=list)
    fallback: bool = False


async def get_active_agents(db: aiosqlite.Connection, application_id: str) -> list[Agent]:
    """Agents of the project that take part in change analysis (active or learning)."""
    return await crud.agent_list(db, application_id, statuses=RESPONDING_STATUSES)


async def _run_agent(db: aiosqlite.Connection, agent: Agent, event: ChangeEvent) -> Optional[AgentResponse]:
    try:
        return await execute_agent_analysis(db, agent, event)
    except Exception as e:
        logger.error(f"Agent {agent.name} ({agent.id}) failed on event {event.id}: {type(e).__name__}: {e}")
        await crud.agent_set_status(db, agent.id, "error")
        return None


def coordinate_responses(responses: list[AgentResponse]) -> None:
    """
    Attach a coordination block to every response that has co-responders on the same event.

    Responses without co-responders keep ``coordination = None``.
    """
    for response in responses:
        related = [
            r for r in responses
            if r.agent_id != response.agent_id and r.change_event_id == response.change_event_id
        ]
        if related:
            response.coordination = Coordination(
                related_agents=[r.agent_name for r in related],
                shared_findings="; ".join(r.analysis for r in related),
            )


async def trigger_agent_analysis(
    db: aiosqlite.Connection,
    application_id: str,
    event: ChangeEvent,
) -> list[AgentResponse]:
    agents = await get_active_agents(db, application_id)
    matching = [a for a in agents if agent_matches(a, event)]
    if not matching:
        logger.debug(f"No agent of {application_id} matched {event.change_type} {event.file_path}")
        return []

    results = await asyncio.gather(*(_run_agent(db, a, event) for a in matching))
    responses = [r for r in results if r is not None]

    coordinate_responses(responses)

    for response in responses:
        await crud.agent_record_performance(
            db, response.agent_id, len(response.suggestions), active_at=response.timestamp,
        )

    logger.info(f"Event {event.id} for {application_id}: {len(responses)}/{len(agents)} agents responded")
    return responses


async def track_change(
    db: aiosqlite.Connection,
    event: ChangeEvent,
    timeout: Optional[float] = None,
) -> TrackResult:
    """
    Run agent fan-out for a change, falling back to context-free suggestions
    when the agents cannot answer in time or the store fails.
    """
    budget = FANOUT_TIMEOUT if timeout is None else timeout
    try:
        responses = await asyncio.wait_for(
            trigger_agent_analysis(db, event.application_id, event), timeout=budget,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Agent fan-out for event {event.id} exceeded {budget}s, using basic analysis")
        return TrackResult(suggestions=fallback_suggestions(event.file_path, event.change_type), fallback=True)
    except Exception as e:
        logger.warning(f"Agent analysis failed for event {event.id}, falling back to basic analysis: {e}")
        return TrackResult(suggestions=fallback_suggestions(event.file_path, event.change_type), fallback=True)

    suggestions = [s for r in responses for s in r.suggestions]
    return TrackResult(responses=responses, suggestions=suggestions)
