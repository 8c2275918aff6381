"""
Tool dispatch layer for the mech-evolve MCP server.
"""
import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

import mcp.types as types

from mech_evolve.db import crud
from mech_evolve.db.models import ChangeEvent
from mech_evolve.engine.coordinator import get_active_agents, track_change
from mech_evolve.engine.factory import MalformedAnalysisError, create_agents_from_analysis, parse_analysis
from mech_evolve.engine.suggestions import fallback_suggestions

logger = logging.getLogger(__name__)


def _text(payload: Any) -> list[types.TextContent]:
    return [types.TextContent(type="text", text=json.dumps(payload))]


async def handle_agents_create(db, arguments: dict[str, Any]) -> list[types.TextContent]:
    try:
        analysis = parse_analysis(arguments.get("analysis"))
    except MalformedAnalysisError as e:
        return _text({"error": "Malformed analysis", "problems": e.problems})
    created = await create_agents_from_analysis(db, analysis)
    return _text({
        "created": len(created),
        "agents": [{"agent_id": a.id, "name": a.name, "tier": a.tier, "priority": a.priority}
                   for a in created],
    })


async def handle_agent_list(db, arguments: dict[str, Any]) -> list[types.TextContent]:
    agents = await get_active_agents(db, arguments["application_id"])
    return _text([a.to_dict() for a in agents])


async def handle_agent_memory(db, arguments: dict[str, Any]) -> list[types.TextContent]:
    agent = await crud.agent_get(db, arguments["agent_id"], application_id=arguments["application_id"])
    if agent is None:
        return _text({"error": "Agent not found"})
    return _text(agent.to_dict(include_memory=True))


async def handle_agent_set_status(db, arguments: dict[str, Any]) -> list[types.TextContent]:
    try:
        ok = await crud.agent_set_status(db, arguments["agent_id"], arguments["status"])
    except ValueError as e:
        return _text({"ok": False, "error": str(e)})
    return _text({"ok": ok})


def _fallback_track(arguments: dict[str, Any]) -> list[types.TextContent]:
    suggestions = fallback_suggestions(arguments["file_path"], arguments["change_type"])
    return _text({
        "evolution_id": str(uuid.uuid4()),
        "fallback": True,
        "responses": [],
        "suggestions": [s.to_dict() for s in suggestions],
    })


async def handle_evolution_track(db, arguments: dict[str, Any]) -> list[types.TextContent]:
    try:
        evolution = await crud.evolution_insert(
            db,
            arguments["application_id"],
            arguments["file_path"],
            arguments["change_type"],
            machine_id=arguments.get("machine_id"),
            metadata=arguments.get("metadata"),
        )
    except sqlite3.Error as e:
        logger.warning(f"[evolution_track] could not record change, using basic analysis: {e}")
        return _fallback_track(arguments)

    event = ChangeEvent(
        id=evolution.id,
        application_id=evolution.application_id,
        file_path=evolution.file_path,
        change_type=evolution.change_type,
        timestamp=datetime.now(timezone.utc),
        metadata=arguments.get("metadata"),
    )
    result = await track_change(db, event)
    return _text({
        "evolution_id": evolution.id,
        "fallback": result.fallback,
        "responses": [r.to_dict() for r in result.responses],
        "suggestions": [s.to_dict() for s in result.suggestions],
    })


TOOLS_DISPATCH = {
    "agents_create": handle_agents_create,
    "agent_list": handle_agent_list,
    "agent_memory": handle_agent_memory,
    "agent_set_status": handle_agent_set_status,
    "evolution_track": handle_evolution_track,
}


def store_unavailable(name: str, arguments: dict[str, Any], error: Exception) -> list[types.TextContent]:
    """Reply for a tool call made while the store cannot be opened."""
    if name == "evolution_track":
        logger.warning(f"[evolution_track] store unavailable, using basic analysis: {error}")
        return _fallback_track(arguments)
    return _text({"error": "Store unavailable"})


async def dispatch_tool(db, name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
    handler = TOOLS_DISPATCH.get(name)
    if handler is None:
        return _text({"error": f"Unknown tool: {name}"})
    return await handler(db, arguments)
