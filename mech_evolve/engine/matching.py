"""
Trigger matching and pattern-key extraction for change events.
"""
from mech_evolve.db.models import Agent, ChangeEvent


def should_respond(triggers: list[str], event: ChangeEvent) -> bool:
    """
    True if any trigger keyword is a substring of the change type or the file path.

    Matching is case-sensitive and substring based, not token based: the
    trigger "auth" matches "auth-change" and "/api/oauth.ts" alike.
    """
    return any(
        trigger in event.change_type or trigger in event.file_path
        for trigger in triggers
    )


def agent_matches(agent: Agent, event: ChangeEvent) -> bool:
    return should_respond(agent.triggers, event)


def file_extension(file_path: str) -> str:
    """Text after the last '.' in the path, or 'unknown' when there is none."""
    _, dot, ext = file_path.rpartition(".")
    if not dot or not ext:
        return "unknown"
    return ext


def pattern_key(event: ChangeEvent) -> str:
    return f"{event.change_type}_{file_extension(event.file_path)}"
