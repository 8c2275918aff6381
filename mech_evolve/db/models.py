"""
Data models (dataclasses) for mech-evolve.
These are plain Python objects used across the DB, engine, MCP, and API layers.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Any


PRIORITIES = ("critical", "important", "nice-to-have")
STATUSES = ("learning", "active", "inactive", "error")
# Agents in these states take part in change analysis
RESPONDING_STATUSES = ("active", "learning")
TIERS = (1, 2, 3)


@dataclass
class PatternMemory:
    pattern: str         # "<changeType>_<extension>"
    frequency: int
    confidence: float    # fixed at first observation
    examples: list[str]
    last_seen: datetime

    def to_dict(self) -> dict:
        return {
            "pattern": self.pattern,
            "frequency": self.frequency,
            "confidence": self.confidence,
            "examples": list(self.examples),
            "lastSeen": self.last_seen.isoformat(),
        }


@dataclass
class AgentPerformance:
    suggestions_generated: int = 0
    suggestions_accepted: int = 0
    success_rate: float = 0.0

    def to_dict(self) -> dict:
        return {
            "suggestionsGenerated": self.suggestions_generated,
            "suggestionsAccepted": self.suggestions_accepted,
            "successRate": self.success_rate,
        }


@dataclass
class AgentMemory:
    patterns: list[PatternMemory] = field(default_factory=list)   # most recent first
    context: dict[str, Any] = field(default_factory=dict)         # last_<changeType> -> summary

    def to_dict(self) -> dict:
        return {
            "patterns": [p.to_dict() for p in self.patterns],
            "context": self.context,
        }


@dataclass(frozen=True)
class AgentSpecification:
    analysis_logic: str
    improvement_strategies: tuple[str, ...]
    communication_protocols: tuple[str, ...]
    learning_mechanisms: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "analysisLogic": self.analysis_logic,
            "improvementStrategies": list(self.improvement_strategies),
            "communicationProtocols": list(self.communication_protocols),
            "learningMechanisms": list(self.learning_mechanisms),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AgentSpecification":
        return cls(
            analysis_logic=data.get("analysisLogic", ""),
            improvement_strategies=tuple(data.get("improvementStrategies", ())),
            communication_protocols=tuple(data.get("communicationProtocols", ())),
            learning_mechanisms=tuple(data.get("learningMechanisms", ())),
        )


@dataclass
class Agent:
    id: str
    application_id: str
    name: str
    role: str
    purpose: str
    triggers: list[str]
    capabilities: list[str]
    priority: str        # critical | important | nice-to-have
    tier: int            # 1 | 2 | 3
    status: str          # learning | active | inactive | error
    created_at: datetime
    last_active: datetime
    specification: AgentSpecification
    performance: AgentPerformance = field(default_factory=AgentPerformance)
    memory: AgentMemory = field(default_factory=AgentMemory)

    def to_dict(self, include_memory: bool = False) -> dict:
        data = {
            "id": self.id,
            "applicationId": self.application_id,
            "name": self.name,
            "role": self.role,
            "purpose": self.purpose,
            "triggers": list(self.triggers),
            "capabilities": list(self.capabilities),
            "priority": self.priority,
            "tier": self.tier,
            "status": self.status,
            "createdAt": self.created_at.isoformat(),
            "lastActive": self.last_active.isoformat(),
            "performance": self.performance.to_dict(),
            "patterns": len(self.memory.patterns),
        }
        if include_memory:
            data["memory"] = self.memory.to_dict()
            data["specification"] = self.specification.to_dict()
        return data


@dataclass
class ChangeEvent:
    """A file change reported for a project. Persisted upstream, transient here."""
    id: str
    application_id: str
    file_path: str
    change_type: str     # free text: function-add | refactor | file-create | ...
    timestamp: datetime
    metadata: Optional[dict] = None


@dataclass
class Suggestion:
    type: str
    description: str
    priority: int        # 1 = highest
    effort: str          # low | medium | high
    impact: str          # low | medium | high
    command: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "type": self.type,
            "description": self.description,
            "priority": self.priority,
            "effort": self.effort,
            "impact": self.impact,
        }
        if self.command:
            data["command"] = self.command
        return data


@dataclass
class Coordination:
    related_agents: list[str]
    shared_findings: str

    def to_dict(self) -> dict:
        return {"relatedAgents": list(self.related_agents), "sharedFindings": self.shared_findings}


@dataclass
class AgentResponse:
    agent_id: str
    agent_name: str
    change_event_id: str
    analysis: str
    suggestions: list[Suggestion]
    confidence: float
    timestamp: datetime
    coordination: Optional[Coordination] = None

    def to_dict(self) -> dict:
        data = {
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "changeEventId": self.change_event_id,
            "analysis": self.analysis,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "confidence": self.confidence,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.coordination is not None:
            data["coordination"] = self.coordination.to_dict()
        return data


@dataclass
class AgentSuggestion:
    """One ranked agent proposal produced by the external codebase analyzer."""
    name: str
    role: str
    purpose: str
    triggers: list[str]
    capabilities: list[str]
    priority: str
    tier: int


@dataclass
class CodebaseAnalysis:
    application_id: str
    suggested_agents: list[AgentSuggestion]
    # Descriptive metadata, not used by agent creation
    project_type: str = ""
    languages: list[str] = field(default_factory=list)
    frameworks: list[str] = field(default_factory=list)
    complexity: str = ""


@dataclass
class AgentEcosystem:
    """Derived per-project summary, fully replaced on every factory run."""
    application_id: str
    agent_count: int
    agent_types: list[dict]    # [{"name", "role", "tier"}]
    last_updated: datetime

    def to_dict(self) -> dict:
        return {
            "applicationId": self.application_id,
            "agentCount": self.agent_count,
            "agentTypes": self.agent_types,
            "lastUpdated": self.last_updated.isoformat(),
        }


@dataclass
class Evolution:
    """Raw change history row recorded by the tracking endpoint."""
    id: str
    application_id: str
    file_path: str
    change_type: str
    machine_id: Optional[str]
    metadata: Optional[str]   # JSON string
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "applicationId": self.application_id,
            "filePath": self.file_path,
            "changeType": self.change_type,
            "machineId": self.machine_id,
            "metadata": self.metadata,
            "timestamp": self.created_at.isoformat(),
        }
