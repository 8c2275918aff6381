"""
mech-evolve main entry point.

Starts a FastAPI HTTP server that:
  1. Tracks change events and fans them out to the project's agents
  2. Creates agents from codebase analysis results
  3. Exposes agent listings, memory, status and feedback
  4. Mounts the MCP Server (SSE + JSON-RPC) at /mcp
"""
import logging
import sqlite3
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, HTTPException, Request
from mcp.server.sse import SseServerTransport
from pydantic import BaseModel

from mech_evolve.config import HOST, LOG_LEVEL, PORT, SERVICE_NAME, SERVICE_VERSION
from mech_evolve.db.database import StoreUnavailableError, close_db, get_db
from mech_evolve.db import crud
from mech_evolve.db.models import ChangeEvent
from mech_evolve.engine.coordinator import TrackResult, get_active_agents, track_change
from mech_evolve.engine.factory import MalformedAnalysisError, create_agents_from_analysis, parse_analysis
from mech_evolve.engine.suggestions import fallback_suggestions
from mech_evolve.mcp_server import server as mcp_server

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("mech_evolve")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: initialize DB
    await get_db()
    logger.info(f"{SERVICE_NAME} running at http://{HOST}:{PORT}")
    yield
    # Shutdown: close DB
    await close_db()


app = FastAPI(
    title="mech-evolve",
    description="Change tracking with per-project learning agents.",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

# ─────────────────────────────────────────────
# MCP SSE Transport (mounted at /mcp)
# ─────────────────────────────────────────────

sse_transport = SseServerTransport("/mcp/messages/")


class _SseCompletedResponse:
    """
    Sentinel returned from mcp_sse_endpoint after connect_sse() exits.

    The SSE transport has already sent the full HTTP response through
    request._send; returning a real Response would start a second one.
    """
    async def __call__(self, scope, receive, send):
        pass


@app.get("/mcp/sse")
async def mcp_sse_endpoint(request: Request):
    """MCP SSE endpoint consumed by MCP clients."""
    try:
        async with sse_transport.connect_sse(
            request.scope, request.receive, request._send
        ) as streams:
            await mcp_server.run(
                streams[0], streams[1],
                mcp_server.create_initialization_options(),
            )
    except Exception as exc:
        # Mostly normal disconnects (ClosedResourceError, CancelledError, ...)
        logger.debug("MCP SSE session ended: %s: %s", type(exc).__name__, exc)
    return _SseCompletedResponse()


app.mount("/mcp/messages/", app=sse_transport.handle_post_message)


# ─────────────────────────────────────────────
# Request bodies
# ─────────────────────────────────────────────

class TrackChange(BaseModel):
    applicationId: str | None = None
    projectId: str | None = None
    filePath: str
    changeType: str
    machineId: str | None = None
    metadata: dict | None = None


class StatusChange(BaseModel):
    status: str


class Feedback(BaseModel):
    accepted: int = 1


def _track_payload(evolution_id: str, result: TrackResult) -> dict:
    count = len(result.responses)
    return {
        "success": True,
        "evolutionId": evolution_id,
        "agentResponses": count,
        "responses": [r.to_dict() for r in result.responses],
        "suggestions": [s.to_dict() for s in result.suggestions],
        "message": (f"Change analyzed by {count} dynamic agents" if count > 0
                    else "Change tracked with basic analysis"),
    }


# ─────────────────────────────────────────────
# Evolution tracking
# ─────────────────────────────────────────────

@app.post("/api/evolution/track")
async def api_track_change(body: TrackChange):
    application_id = body.applicationId or body.projectId
    if not application_id:
        raise HTTPException(status_code=400, detail="applicationId or projectId is required")

    try:
        db = await get_db()
        evolution = await crud.evolution_insert(
            db, application_id, body.filePath, body.changeType,
            machine_id=body.machineId, metadata=body.metadata,
        )
    except (StoreUnavailableError, sqlite3.Error) as e:
        logger.warning(f"Store unavailable while tracking {body.filePath}, using basic analysis: {e}")
        result = TrackResult(suggestions=fallback_suggestions(body.filePath, body.changeType), fallback=True)
        return _track_payload(str(uuid.uuid4()), result)

    event = ChangeEvent(
        id=evolution.id,
        application_id=application_id,
        file_path=body.filePath,
        change_type=body.changeType,
        timestamp=datetime.now(timezone.utc),
        metadata=body.metadata,
    )
    result = await track_change(db, event)
    return _track_payload(evolution.id, result)


@app.get("/api/evolution/history/{application_id}")
async def api_evolution_history(application_id: str, limit: int = 50):
    db = await get_db()
    evolutions = await crud.evolution_history(db, application_id, limit=limit)
    return {"success": True, "evolutions": [e.to_dict() for e in evolutions], "count": len(evolutions)}


# ─────────────────────────────────────────────
# Agents
# ─────────────────────────────────────────────

@app.post("/api/agents/create")
async def api_create_agents(body: dict[str, Any] = Body(...)):
    try:
        analysis = parse_analysis(body)
    except MalformedAnalysisError as e:
        raise HTTPException(status_code=422, detail={"error": "Malformed analysis", "problems": e.problems})

    db = await get_db()
    created = await create_agents_from_analysis(db, analysis)
    return {
        "success": True,
        "analysis": {
            "projectType": analysis.project_type,
            "languages": analysis.languages,
            "frameworks": analysis.frameworks,
            "complexity": analysis.complexity,
        },
        "agents": {
            "created": len(created),
            "tier1": sum(1 for a in created if a.tier == 1),
            "tier2": sum(1 for a in created if a.tier == 2),
            "agents": [{"id": a.id, "name": a.name, "role": a.role, "purpose": a.purpose,
                        "tier": a.tier, "priority": a.priority} for a in created],
        },
        "message": f"Created {len(created)} specialized agents for your project",
    }


@app.get("/api/agents/{application_id}")
async def api_agents(application_id: str):
    db = await get_db()
    agents = await get_active_agents(db, application_id)
    return {
        "success": True,
        "applicationId": application_id,
        "agentCount": len(agents),
        "agents": [a.to_dict() for a in agents],
    }


@app.get("/api/agents/{application_id}/ecosystem")
async def api_ecosystem(application_id: str):
    db = await get_db()
    ecosystem = await crud.ecosystem_get(db, application_id)
    if ecosystem is None:
        raise HTTPException(status_code=404, detail="Ecosystem not found")
    return {"success": True, "ecosystem": ecosystem.to_dict()}


@app.get("/api/agents/{application_id}/{agent_id}/memory")
async def api_agent_memory(application_id: str, agent_id: str):
    db = await get_db()
    agent = await crud.agent_get(db, agent_id, application_id=application_id)
    if agent is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    return {
        "success": True,
        "agent": {
            "name": agent.name,
            "role": agent.role,
            "memory": agent.memory.to_dict(),
            "performance": agent.performance.to_dict(),
            "specification": agent.specification.to_dict(),
        },
    }


@app.post("/api/agents/{application_id}/{agent_id}/status")
async def api_agent_status(application_id: str, agent_id: str, body: StatusChange):
    db = await get_db()
    if await crud.agent_get(db, agent_id, application_id=application_id) is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    try:
        await crud.agent_set_status(db, agent_id, body.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "status": body.status}


@app.post("/api/agents/{application_id}/{agent_id}/feedback")
async def api_agent_feedback(application_id: str, agent_id: str, body: Feedback):
    db = await get_db()
    if await crud.agent_get(db, agent_id, application_id=application_id) is None:
        raise HTTPException(status_code=404, detail="Agent not found")
    try:
        await crud.agent_record_feedback(db, agent_id, body.accepted)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    agent = await crud.agent_get(db, agent_id)
    return {"ok": True, "performance": agent.performance.to_dict()}


# ─────────────────────────────────────────────
# Health check
# ─────────────────────────────────────────────

@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ─────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run("mech_evolve.main:app", host=HOST, port=PORT, reload=True)
