"""
Shared fixtures for the mech-evolve test suite.

Every test gets its own in-memory SQLite store, so no server or on-disk
database is needed.
"""
import os
from datetime import datetime, timezone

# Keep the module-level DB path away from the developer's data directory
os.environ.setdefault("MECH_EVOLVE_DB", ":memory:")

import aiosqlite
import pytest
import pytest_asyncio

from mech_evolve.db.database import init_schema
from mech_evolve.db.models import AgentSuggestion, ChangeEvent, CodebaseAnalysis
from mech_evolve.engine.factory import build_agent


@pytest_asyncio.fixture
async def db():
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await init_schema(conn)
    yield conn
    await conn.close()


@pytest.fixture
def make_suggestion():
    def _make(name="SecuritySentinel", role="Security", purpose="Guard auth flows",
              triggers=None, capabilities=None, priority="critical", tier=1):
        return AgentSuggestion(
            name=name,
            role=role,
            purpose=purpose,
            triggers=["auth", "validation"] if triggers is None else triggers,
            capabilities=["vulnerability-scanning"] if capabilities is None else capabilities,
            priority=priority,
            tier=tier,
        )
    return _make


@pytest.fixture
def make_analysis():
    def _make(suggestions, application_id="test-app"):
        return CodebaseAnalysis(
            application_id=application_id,
            suggested_agents=list(suggestions),
            project_type="react-app",
            languages=["typescript"],
            complexity="moderate",
        )
    return _make


@pytest.fixture
def make_agent(make_suggestion):
    """Unsaved Agent built the same way the factory builds them."""
    def _make(application_id="test-app", **kwargs):
        return build_agent(application_id, make_suggestion(**kwargs))
    return _make


@pytest.fixture
def make_event():
    counter = {"n": 0}

    def _make(change_type="auth-change", file_path="/api/login.ts", application_id="test-app"):
        counter["n"] += 1
        return ChangeEvent(
            id=f"evt-{counter['n']}",
            application_id=application_id,
            file_path=file_path,
            change_type=change_type,
            timestamp=datetime.now(timezone.utc),
        )
    return _make
