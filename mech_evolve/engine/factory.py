"""
Agent creation from codebase analysis results.

Tier-1 suggestions are always created, tier-2 suggestions are limited to the
first TIER2_AGENT_LIMIT the analysis lists, tier-3 suggestions are never
created here. Names already present in the project are skipped, so repeated
runs with the same analysis add nothing.
"""
import logging
import re
import secrets
import sqlite3
import time
from datetime import datetime, timezone
from typing import Any

import aiosqlite

from mech_evolve.config import TIER2_AGENT_LIMIT
from mech_evolve.db import crud
from mech_evolve.db.models import (
    Agent, AgentSuggestion, CodebaseAnalysis, PRIORITIES, TIERS,
)
from mech_evolve.engine.templates import resolve_specification

logger = logging.getLogger(__name__)


class MalformedAnalysisError(ValueError):
    """Raised when a codebase analysis cannot be turned into agents."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("Malformed codebase analysis: " + "; ".join(problems))


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _suggestion_problems(index: int, s: AgentSuggestion) -> list[str]:
    where = f"suggestedAgents[{index}]"
    problems = []
    if not isinstance(s.name, str) or not s.name.strip():
        problems.append(f"{where}.name is required")
    if not isinstance(s.role, str) or not s.role.strip():
        problems.append(f"{where}.role is required")
    if not isinstance(s.purpose, str):
        problems.append(f"{where}.purpose must be a string")
    if not _is_str_list(s.triggers):
        problems.append(f"{where}.triggers must be a list of strings")
    if not _is_str_list(s.capabilities):
        problems.append(f"{where}.capabilities must be a list of strings")
    if s.priority not in PRIORITIES:
        problems.append(f"{where}.priority must be one of {list(PRIORITIES)}")
    if isinstance(s.tier, bool) or s.tier not in TIERS:
        problems.append(f"{where}.tier must be one of {list(TIERS)}")
    return problems


def validate_analysis(analysis: CodebaseAnalysis) -> None:
    problems = []
    if not isinstance(analysis.application_id, str) or not analysis.application_id.strip():
        problems.append("applicationId is required")
    if not isinstance(analysis.suggested_agents, list):
        problems.append("suggestedAgents must be a list")
    else:
        for i, s in enumerate(analysis.suggested_agents):
            problems.extend(_suggestion_problems(i, s))
    if problems:
        raise MalformedAnalysisError(problems)


def parse_analysis(data: Any) -> CodebaseAnalysis:
    """Build a CodebaseAnalysis from its JSON form (camelCase keys), validating it."""
    if not isinstance(data, dict):
        raise MalformedAnalysisError(["analysis must be an object"])

    raw_agents = data.get("suggestedAgents")
    if not isinstance(raw_agents, list):
        raise MalformedAnalysisError(["suggestedAgents must be a list"])

    suggestions = []
    problems = []
    for i, raw in enumerate(raw_agents):
        if not isinstance(raw, dict):
            problems.append(f"suggestedAgents[{i}] must be an object")
            continue
        suggestions.append(AgentSuggestion(
            name=raw.get("name"),
            role=raw.get("role"),
            purpose=raw.get("purpose", ""),
            triggers=raw.get("triggers"),
            capabilities=raw.get("capabilities"),
            priority=raw.get("priority"),
            tier=raw.get("tier"),
        ))
    if problems:
        raise MalformedAnalysisError(problems)

    analysis = CodebaseAnalysis(
        application_id=data.get("applicationId"),
        suggested_agents=suggestions,
        project_type=data.get("projectType") or "",
        languages=list(data.get("languages") or []),
        frameworks=list(data.get("frameworks") or []),
        complexity=data.get("complexity") or "",
    )
    validate_analysis(analysis)
    return analysis


def generate_agent_id(application_id: str, name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"{application_id}_{slug}_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def build_agent(application_id: str, suggestion: AgentSuggestion) -> Agent:
    now = datetime.now(timezone.utc)
    return Agent(
        id=generate_agent_id(application_id, suggestion.name),
        application_id=application_id,
        name=suggestion.name,
        role=suggestion.role,
        purpose=suggestion.purpose,
        triggers=list(suggestion.triggers),
        capabilities=list(suggestion.capabilities),
        priority=suggestion.priority,
        tier=suggestion.tier,
        status="learning",  # New agents start in learning mode
        created_at=now,
        last_active=now,
        specification=resolve_specification(suggestion.name, suggestion.role, suggestion.capabilities),
    )


def select_suggestions(analysis: CodebaseAnalysis) -> list[AgentSuggestion]:
    """Suggestions eligible for creation, tier 1 first, then the capped tier 2 slice."""
    tier1 = [s for s in analysis.suggested_agents if s.tier == 1]
    tier2 = [s for s in analysis.suggested_agents if s.tier == 2][:TIER2_AGENT_LIMIT]
    return tier1 + tier2


async def create_agents_from_analysis(
    db: aiosqlite.Connection,
    analysis: CodebaseAnalysis,
) -> list[Agent]:
    """Persist new agents for the analysed project and refresh its ecosystem summary."""
    validate_analysis(analysis)
    application_id = analysis.application_id
    logger.info(f"Creating agents for {application_id} "
                f"({len(analysis.suggested_agents)} suggestions)")

    existing = await crud.agent_names(db, application_id)
    created: list[Agent] = []
    for suggestion in select_suggestions(analysis):
        if suggestion.name in existing:
            continue
        agent = build_agent(application_id, suggestion)
        try:
            await crud.agent_insert(db, agent)
        except sqlite3.IntegrityError as e:
            # Another factory run for this project created the same name first
            logger.info(f"Agent '{suggestion.name}' already exists for {application_id}, skipping: {e}")
            existing.add(suggestion.name)
            continue
        existing.add(suggestion.name)
        created.append(agent)

    all_agents = await crud.agent_list(db, application_id)
    await crud.ecosystem_replace(db, application_id, all_agents)
    logger.info(f"Created {len(created)} agents for {application_id} ({len(all_agents)} total)")
    return created
