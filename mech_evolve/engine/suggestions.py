"""
Suggestion generation.

Agent suggestions come from declared capabilities; the fallback list is used
when agents cannot be consulted at all and depends only on the file and the
change type.
"""
from mech_evolve.config import MAX_SUGGESTIONS
from mech_evolve.db.models import Agent, ChangeEvent, Suggestion

PRIORITY_RANK = {"critical": 1, "important": 2, "nice-to-have": 3}

# (suffixes, [(type, command, priority)])
FALLBACK_TOOLCHAINS: list[tuple[tuple[str, ...], list[tuple[str, str, int]]]] = [
    ((".ts", ".tsx"), [
        ("formatting", "prettier", 1),
        ("linting", "eslint", 2),
        ("type-check", "tsc", 3),
    ]),
]

# change type -> (type, command, priority)
FALLBACK_CHANGE_TYPES: dict[str, tuple[str, str, int]] = {
    "function-add": ("test-generation", "generate-test", 5),
}


def priority_rank(priority: str) -> int:
    return PRIORITY_RANK.get(priority, 3)


def impact_for(priority: str) -> str:
    return "high" if priority == "critical" else "medium"


def generate_suggestions(agent: Agent, event: ChangeEvent) -> list[Suggestion]:
    """One suggestion per capability, in declaration order, first MAX_SUGGESTIONS only."""
    rank = priority_rank(agent.priority)
    impact = impact_for(agent.priority)
    return [
        Suggestion(
            type=capability,
            description=f"Apply {capability} to {event.file_path}",
            priority=rank,
            effort="low",
            impact=impact,
        )
        for capability in agent.capabilities[:MAX_SUGGESTIONS]
    ]


def fallback_suggestions(file_path: str, change_type: str) -> list[Suggestion]:
    """Context-free suggestions used when fan-out is unavailable."""
    suggestions = []
    for suffixes, tools in FALLBACK_TOOLCHAINS:
        if file_path.endswith(suffixes):
            for kind, command, rank in tools:
                suggestions.append(Suggestion(
                    type=kind,
                    description=f"Run {command} on {file_path}",
                    priority=rank,
                    effort="low",
                    impact="medium",
                    command=command,
                ))
    extra = FALLBACK_CHANGE_TYPES.get(change_type)
    if extra is not None:
        kind, command, rank = extra
        suggestions.append(Suggestion(
            type=kind,
            description=f"Generate tests for the new function in {file_path}",
            priority=rank,
            effort="medium",
            impact="medium",
            command=command,
        ))
    return suggestions
