import asyncio
import sqlite3

import pytest

from mech_evolve.db import crud


@pytest.mark.asyncio
async def test_agent_insert_and_get_round_trip(db, make_agent):
    agent = make_agent(name="APIArchitect", role="API", triggers=["routes"],
                       capabilities=["endpoint-optimization"], priority="important", tier=2)
    await crud.agent_insert(db, agent)

    stored = await crud.agent_get(db, agent.id)
    assert stored.name == "APIArchitect"
    assert stored.priority == "important"
    assert stored.tier == 2
    assert stored.status == "learning"
    assert stored.memory.patterns == []
    assert stored.memory.context == {}

    assert await crud.agent_get(db, agent.id, application_id="other-app") is None
    assert await crud.agent_get(db, "missing") is None


@pytest.mark.asyncio
async def test_duplicate_name_in_project_rejected(db, make_agent):
    await crud.agent_insert(db, make_agent(name="Dup"))
    with pytest.raises(sqlite3.IntegrityError):
        await crud.agent_insert(db, make_agent(name="Dup"))


@pytest.mark.asyncio
async def test_agent_set_status(db, make_agent):
    agent = make_agent()
    await crud.agent_insert(db, agent)

    assert await crud.agent_set_status(db, agent.id, "inactive") is True
    assert (await crud.agent_get(db, agent.id)).status == "inactive"
    assert await crud.agent_set_status(db, "missing", "active") is False

    with pytest.raises(ValueError):
        await crud.agent_set_status(db, agent.id, "sleeping")


@pytest.mark.asyncio
async def test_agent_list_filters_by_status(db, make_agent):
    a = make_agent(name="A")
    b = make_agent(name="B")
    await crud.agent_insert(db, a)
    await crud.agent_insert(db, b)
    await crud.agent_set_status(db, b.id, "inactive")

    assert [x.name for x in await crud.agent_list(db, "test-app")] == ["A", "B"]
    assert [x.name for x in await crud.agent_list(db, "test-app", statuses=["inactive"])] == ["B"]
    assert await crud.agent_list(db, "unknown-app") == []


@pytest.mark.asyncio
async def test_performance_increments_are_atomic(db, make_agent):
    agent = make_agent()
    await crud.agent_insert(db, agent)

    await asyncio.gather(*(crud.agent_record_performance(db, agent.id, 2) for _ in range(20)))

    assert (await crud.agent_get(db, agent.id)).performance.suggestions_generated == 40


@pytest.mark.asyncio
async def test_feedback_updates_success_rate(db, make_agent):
    agent = make_agent()
    await crud.agent_insert(db, agent)

    # No suggestions yet: the rate is left alone
    await crud.agent_record_feedback(db, agent.id, 1)
    perf = (await crud.agent_get(db, agent.id)).performance
    assert perf.suggestions_accepted == 1
    assert perf.success_rate == 0

    await crud.agent_record_performance(db, agent.id, 4)
    await crud.agent_record_feedback(db, agent.id, 2)
    perf = (await crud.agent_get(db, agent.id)).performance
    assert perf.suggestions_accepted == 3
    assert perf.success_rate == pytest.approx(0.75)

    await crud.agent_record_feedback(db, agent.id, 5)
    assert (await crud.agent_get(db, agent.id)).performance.success_rate == 1.0

    with pytest.raises(ValueError):
        await crud.agent_record_feedback(db, agent.id, -1)


@pytest.mark.asyncio
async def test_patterns_listed_most_recent_first(db, make_agent):
    agent = make_agent()
    await crud.agent_insert(db, agent)
    for pattern in ("refactor_ts", "file-create_py"):
        await crud.agent_apply_memory(db, agent.id, pattern, 0.5, "/x", f"last_{pattern}", {"p": pattern})

    patterns = await crud.pattern_list(db, agent.id)
    assert [p.pattern for p in patterns] == ["file-create_py", "refactor_ts"]


@pytest.mark.asyncio
async def test_evolution_history_newest_first(db):
    first = await crud.evolution_insert(db, "web", "/a.ts", "refactor")
    second = await crud.evolution_insert(db, "web", "/b.ts", "function-add", machine_id="m1",
                                         metadata={"lines": 12})
    await crud.evolution_insert(db, "other", "/c.ts", "refactor")

    history = await crud.evolution_history(db, "web")
    assert [e.id for e in history] == [second.id, first.id]
    assert history[0].machine_id == "m1"
    assert len(await crud.evolution_history(db, "web", limit=1)) == 1


@pytest.mark.asyncio
async def test_ecosystem_missing_is_none(db):
    assert await crud.ecosystem_get(db, "nothing-here") is None


@pytest.mark.asyncio
async def test_failed_memory_write_leaves_no_partial_pattern(db, make_agent):
    agent = make_agent()
    await crud.agent_insert(db, agent)
    await db.execute(
        "CREATE TRIGGER reject_context BEFORE INSERT ON agent_context "
        "BEGIN SELECT RAISE(ABORT, 'context rejected'); END"
    )
    await db.commit()

    with pytest.raises(sqlite3.IntegrityError):
        await crud.agent_apply_memory(db, agent.id, "auth-change_ts", 0.7, "/api/login.ts",
                                      "last_auth-change", {"filePath": "/api/login.ts"})
    # A later commit on the shared connection must not persist the pattern row
    await crud.agent_record_performance(db, agent.id, 1)

    assert await crud.pattern_list(db, agent.id) == []
    assert await crud.context_get(db, agent.id) == {}
    stored = await crud.agent_get(db, agent.id)
    assert stored.performance.suggestions_generated == 1
