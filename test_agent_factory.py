"""
Tests for agent creation from codebase analysis.
Uses an in-memory SQLite database per test.
"""
from unittest.mock import AsyncMock, patch

import pytest

from mech_evolve.db import crud
from mech_evolve.engine.factory import (
    MalformedAnalysisError, create_agents_from_analysis, generate_agent_id, parse_analysis,
)
from mech_evolve.engine.templates import PROFILES


@pytest.mark.asyncio
async def test_creates_tier1_and_tier2_agents_in_learning_state(db, make_analysis, make_suggestion):
    analysis = make_analysis([
        make_suggestion("CodeQualityGuardian", "Code Quality", triggers=[".ts"],
                        capabilities=["linting", "formatting"], priority="critical", tier=1),
        make_suggestion("TestingChampion", "Testing", triggers=[".test.ts"],
                        capabilities=["test-generation"], priority="important", tier=2),
    ])

    agents = await create_agents_from_analysis(db, analysis)

    assert [a.name for a in agents] == ["CodeQualityGuardian", "TestingChampion"]
    assert [a.tier for a in agents] == [1, 2]
    assert all(a.status == "learning" for a in agents)
    assert all(a.performance.suggestions_generated == 0 for a in agents)

    stored = await crud.agent_list(db, "test-app")
    assert [a.name for a in stored] == ["CodeQualityGuardian", "TestingChampion"]
    assert stored[0].triggers == [".ts"]
    assert stored[0].capabilities == ["linting", "formatting"]


@pytest.mark.asyncio
async def test_second_run_is_idempotent(db, make_analysis, make_suggestion):
    analysis = make_analysis([
        make_suggestion("CodeQualityGuardian", tier=1),
        make_suggestion("APIArchitect", tier=2, priority="important"),
    ])

    first = await create_agents_from_analysis(db, analysis)
    second = await create_agents_from_analysis(db, analysis)

    assert len(first) == 2
    assert second == []
    assert len(await crud.agent_list(db, "test-app")) == 2


@pytest.mark.asyncio
async def test_tier2_limited_to_first_three(db, make_analysis, make_suggestion):
    analysis = make_analysis(
        [make_suggestion(f"Helper{i}", tier=2, priority="important") for i in range(5)]
    )

    agents = await create_agents_from_analysis(db, analysis)

    assert [a.name for a in agents] == ["Helper0", "Helper1", "Helper2"]


@pytest.mark.asyncio
async def test_tier2_limit_does_not_grow_on_rerun(db, make_analysis, make_suggestion):
    analysis = make_analysis(
        [make_suggestion(f"Helper{i}", tier=2, priority="important") for i in range(5)]
    )
    await create_agents_from_analysis(db, analysis)
    again = await create_agents_from_analysis(db, analysis)

    assert again == []
    assert len(await crud.agent_list(db, "test-app")) == 3


@pytest.mark.asyncio
async def test_tier1_is_uncapped_and_tier3_never_created(db, make_analysis, make_suggestion):
    analysis = make_analysis(
        [make_suggestion(f"Core{i}", tier=1) for i in range(6)]
        + [make_suggestion("Optional", tier=3, priority="nice-to-have")]
    )

    agents = await create_agents_from_analysis(db, analysis)

    assert len(agents) == 6
    assert "Optional" not in {a.name for a in agents}


@pytest.mark.asyncio
async def test_tier1_created_before_tier2(db, make_analysis, make_suggestion):
    analysis = make_analysis([
        make_suggestion("Second", tier=2, priority="important"),
        make_suggestion("First", tier=1),
    ])

    agents = await create_agents_from_analysis(db, analysis)

    assert [a.name for a in agents] == ["First", "Second"]


@pytest.mark.asyncio
async def test_duplicate_names_in_one_analysis_are_skipped(db, make_analysis, make_suggestion):
    analysis = make_analysis([
        make_suggestion("SecuritySentinel", tier=1),
        make_suggestion("SecuritySentinel", role="Other", tier=1),
    ])

    agents = await create_agents_from_analysis(db, analysis)

    assert len(agents) == 1
    assert agents[0].role == "Security"


@pytest.mark.asyncio
async def test_existing_agent_is_never_overwritten(db, make_analysis, make_suggestion):
    await create_agents_from_analysis(db, make_analysis([make_suggestion("SecuritySentinel", role="Security")]))
    await create_agents_from_analysis(db, make_analysis([make_suggestion("SecuritySentinel", role="Changed")]))

    stored = await crud.agent_list(db, "test-app")
    assert len(stored) == 1
    assert stored[0].role == "Security"


@pytest.mark.asyncio
async def test_projects_are_independent(db, make_analysis, make_suggestion):
    await create_agents_from_analysis(db, make_analysis([make_suggestion()], application_id="app-a"))
    created = await create_agents_from_analysis(db, make_analysis([make_suggestion()], application_id="app-b"))

    assert len(created) == 1
    assert created[0].application_id == "app-b"


@pytest.mark.asyncio
async def test_name_race_is_skipped(db, make_analysis, make_suggestion):
    """A concurrent run that inserted the same name first leaves one agent."""
    analysis = make_analysis([make_suggestion("SecuritySentinel")])
    await create_agents_from_analysis(db, analysis)

    with patch.object(crud, "agent_names", AsyncMock(return_value=set())):
        created = await create_agents_from_analysis(db, analysis)

    assert created == []
    assert len(await crud.agent_list(db, "test-app")) == 1


@pytest.mark.asyncio
async def test_ecosystem_replaced_with_project_summary(db, make_analysis, make_suggestion):
    await create_agents_from_analysis(db, make_analysis([make_suggestion("A", role="Role A")]))
    await create_agents_from_analysis(db, make_analysis([make_suggestion("B", role="Role B", tier=2,
                                                                         priority="important")]))

    ecosystem = await crud.ecosystem_get(db, "test-app")
    assert ecosystem.agent_count == 2
    assert ecosystem.agent_types == [
        {"name": "A", "role": "Role A", "tier": 1},
        {"name": "B", "role": "Role B", "tier": 2},
    ]
    assert len(await crud.ecosystem_list(db)) == 1


@pytest.mark.asyncio
async def test_known_name_gets_table_specification(db, make_analysis, make_suggestion):
    agents = await create_agents_from_analysis(db, make_analysis([make_suggestion("SecuritySentinel")]))

    assert agents[0].specification == PROFILES["SecuritySentinel"].specification
    stored = await crud.agent_get(db, agents[0].id)
    assert stored.specification == PROFILES["SecuritySentinel"].specification


@pytest.mark.asyncio
async def test_unknown_name_gets_generic_specification(db, make_analysis, make_suggestion):
    analysis = make_analysis([make_suggestion("DocsScribe", role="Documentation",
                                              capabilities=["doc-generation", "link-check"])])

    agents = await create_agents_from_analysis(db, analysis)

    spec = agents[0].specification
    assert spec.analysis_logic == "Analyze Documentation patterns and identify improvement opportunities"
    assert spec.improvement_strategies == ("doc-generation", "link-check")
    assert spec.communication_protocols == ("broadcast-findings", "coordinate-with-relevant-agents")


@pytest.mark.asyncio
async def test_malformed_analysis_creates_nothing(db, make_analysis, make_suggestion):
    analysis = make_analysis([
        make_suggestion("Valid"),
        make_suggestion("Broken", priority="urgent"),
    ])

    with pytest.raises(MalformedAnalysisError) as exc_info:
        await create_agents_from_analysis(db, analysis)

    assert any("priority" in p for p in exc_info.value.problems)
    assert await crud.agent_list(db, "test-app") == []
    assert await crud.ecosystem_get(db, "test-app") is None


@pytest.mark.asyncio
async def test_missing_application_id_rejected(db, make_analysis, make_suggestion):
    with pytest.raises(MalformedAnalysisError):
        await create_agents_from_analysis(db, make_analysis([make_suggestion()], application_id=""))


def test_generate_agent_id_is_slugged():
    agent_id = generate_agent_id("my-app", "Security Sentinel!")
    prefix, millis, suffix = agent_id.rsplit("_", 2)
    assert prefix == "my-app_security-sentinel"
    assert millis.isdigit()
    assert len(suffix) == 6


@pytest.mark.asyncio
async def test_names_with_same_slug_created_in_same_millisecond(db, make_analysis, make_suggestion):
    analysis = make_analysis([make_suggestion("API Architect"), make_suggestion("api-architect")])

    with patch("mech_evolve.engine.factory.time.time", return_value=1700000000.0):
        created = await create_agents_from_analysis(db, analysis)

    assert [a.name for a in created] == ["API Architect", "api-architect"]
    assert len({a.id for a in created}) == 2
    stored = await crud.agent_list(db, "test-app")
    assert sorted(a.name for a in stored) == ["API Architect", "api-architect"]


class TestParseAnalysis:
    def test_parses_camel_case_payload(self):
        analysis = parse_analysis({
            "applicationId": "web",
            "projectType": "react-app",
            "languages": ["typescript"],
            "suggestedAgents": [{
                "name": "APIArchitect", "role": "API", "purpose": "Design endpoints",
                "triggers": ["routes"], "capabilities": ["endpoint-optimization"],
                "priority": "important", "tier": 2,
            }],
        })
        assert analysis.application_id == "web"
        assert analysis.project_type == "react-app"
        assert analysis.suggested_agents[0].tier == 2

    def test_rejects_non_object(self):
        with pytest.raises(MalformedAnalysisError):
            parse_analysis(["not", "an", "object"])

    def test_rejects_missing_suggested_agents(self):
        with pytest.raises(MalformedAnalysisError):
            parse_analysis({"applicationId": "web"})

    def test_collects_every_problem(self):
        with pytest.raises(MalformedAnalysisError) as exc_info:
            parse_analysis({
                "applicationId": "web",
                "suggestedAgents": [{"name": "", "role": "r", "triggers": "auth",
                                     "capabilities": [], "priority": "critical", "tier": 4}],
            })
        problems = exc_info.value.problems
        assert any(".name" in p for p in problems)
        assert any(".triggers" in p for p in problems)
        assert any(".tier" in p for p in problems)
