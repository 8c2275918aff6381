"""
Per-response confidence from agent history and pattern memory.
"""
from mech_evolve.db.models import Agent, ChangeEvent

BASE_CONFIDENCE = 0.5


def estimate_confidence(agent: Agent, event: ChangeEvent) -> float:
    confidence = BASE_CONFIDENCE

    success_rate = agent.performance.success_rate
    if success_rate > 0.8:
        confidence += 0.3
    elif success_rate > 0.6:
        confidence += 0.2

    # Flat bonus, however many stored patterns occur in the path
    if any(p.pattern in event.file_path for p in agent.memory.patterns):
        confidence += 0.2

    return min(confidence, 1.0)
