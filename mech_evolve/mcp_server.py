"""
MCP Server for mech-evolve.

Registers the agent and change-tracking tools plus one resource per project
ecosystem. Mounted onto the FastAPI app via SSE transport, or run over stdio.
"""
import json
from typing import Any

import mcp.types as types
from mcp.server import Server

from mech_evolve.db.database import StoreUnavailableError, get_db
from mech_evolve.db import crud
from mech_evolve.tools.dispatch import dispatch_tool, store_unavailable

server = Server("mech-evolve")


# ═════════════════════════════════════════════
# TOOLS
# ═════════════════════════════════════════════

@server.list_tools()
async def list_tools() -> list[types.Tool]:
    return [
        types.Tool(
            name="agents_create",
            description=(
                "Create agents for a project from a codebase analysis. Tier-1 suggestions are "
                "always created, only the first tier-2 suggestions are considered, tier-3 is never "
                "created. Names already present in the project are skipped."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "analysis": {
                        "type": "object",
                        "description": "CodebaseAnalysis with applicationId and suggestedAgents.",
                    },
                },
                "required": ["analysis"],
            },
        ),
        types.Tool(
            name="agent_list",
            description="List the agents of a project that respond to changes (active or learning).",
            inputSchema={
                "type": "object",
                "properties": {"application_id": {"type": "string"}},
                "required": ["application_id"],
            },
        ),
        types.Tool(
            name="agent_memory",
            description="Get an agent's pattern memory, context, performance and specification.",
            inputSchema={
                "type": "object",
                "properties": {
                    "application_id": {"type": "string"},
                    "agent_id": {"type": "string"},
                },
                "required": ["application_id", "agent_id"],
            },
        ),
        types.Tool(
            name="agent_set_status",
            description="Change an agent's lifecycle status. Inactive and error agents never respond.",
            inputSchema={
                "type": "object",
                "properties": {
                    "agent_id": {"type": "string"},
                    "status": {"type": "string", "enum": ["learning", "active", "inactive", "error"]},
                },
                "required": ["agent_id", "status"],
            },
        ),
        types.Tool(
            name="evolution_track",
            description=(
                "Report a file change. Matching agents analyze it and return suggestions; "
                "if they cannot, basic suggestions derived from the file type are returned."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "application_id": {"type": "string"},
                    "file_path": {"type": "string"},
                    "change_type": {"type": "string",
                                    "description": "Free-text category, e.g. 'function-add', 'refactor'."},
                    "machine_id": {"type": "string"},
                    "metadata": {"type": "object"},
                },
                "required": ["application_id", "file_path", "change_type"],
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[types.TextContent]:
    try:
        db = await get_db()
    except StoreUnavailableError as e:
        return store_unavailable(name, arguments, e)
    return await dispatch_tool(db, name, arguments)


# ═════════════════════════════════════════════
# RESOURCES
# ═════════════════════════════════════════════

@server.list_resources()
async def list_resources() -> list[types.Resource]:
    db = await get_db()
    ecosystems = await crud.ecosystem_list(db)
    return [
        types.Resource(
            uri=f"evolve://ecosystems/{e.application_id}",
            name=f"Ecosystem: {e.application_id[:40]}",
            description=f"{e.agent_count} agents for project '{e.application_id}'",
            mimeType="application/json",
        )
        for e in ecosystems
    ]


@server.read_resource()
async def read_resource(uri: types.AnyUrl) -> str:
    uri_str = str(uri)
    prefix = "evolve://ecosystems/"
    if not uri_str.startswith(prefix):
        return f"Unknown resource URI: {uri_str}"

    db = await get_db()
    ecosystem = await crud.ecosystem_get(db, uri_str[len(prefix):])
    if ecosystem is None:
        return "Ecosystem not found."
    return json.dumps(ecosystem.to_dict(), indent=2)
