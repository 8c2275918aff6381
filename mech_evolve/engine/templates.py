"""
Name-keyed behaviour tables for the built-in agent specializations.

Each known agent name maps to one ``AgentProfile`` carrying both its analysis
template and its specification. Unknown names fall back to text derived from
the agent's role and capabilities.
"""
from dataclasses import dataclass

from mech_evolve.db.models import AgentSpecification


@dataclass(frozen=True)
class AgentProfile:
    analysis_template: str      # formatted with {path}
    specification: AgentSpecification


PROFILES: dict[str, AgentProfile] = {
    "CodeQualityGuardian": AgentProfile(
        analysis_template=(
            "Analyzed {path} for code quality issues. Found complexity score: moderate. "
            "Recommended: linting fixes."
        ),
        specification=AgentSpecification(
            analysis_logic="Analyze code complexity, maintainability, and adherence to standards",
            improvement_strategies=("linting", "formatting", "complexity-reduction", "best-practices"),
            communication_protocols=("broadcast-quality-issues", "coordinate-with-builders"),
            learning_mechanisms=("pattern-recognition", "success-tracking", "failure-analysis"),
        ),
    ),
    "ComponentArchitect": AgentProfile(
        analysis_template=(
            "Reviewed component structure in {path}. Props pattern: good. "
            "State management: could be optimized."
        ),
        specification=AgentSpecification(
            analysis_logic="Analyze React/Vue component patterns, props flow, and state management",
            improvement_strategies=("component-optimization", "prop-validation", "state-simplification"),
            communication_protocols=("coordinate-with-performance", "share-patterns"),
            learning_mechanisms=("component-pattern-learning", "performance-correlation"),
        ),
    ),
    "APIArchitect": AgentProfile(
        analysis_template=(
            "Examined API endpoint changes in {path}. Route structure: optimal. "
            "Error handling: needs improvement."
        ),
        specification=AgentSpecification(
            analysis_logic="Analyze API design, endpoint structure, and data flow patterns",
            improvement_strategies=("endpoint-optimization", "middleware-enhancement", "error-handling"),
            communication_protocols=("coordinate-with-security", "share-api-patterns"),
            learning_mechanisms=("api-pattern-recognition", "performance-tracking"),
        ),
    ),
    "SecuritySentinel": AgentProfile(
        analysis_template=(
            "Security scan of {path}. No critical vulnerabilities. "
            "Recommend: input validation enhancement."
        ),
        specification=AgentSpecification(
            analysis_logic="Scan for security vulnerabilities, auth issues, and data exposure",
            improvement_strategies=("vulnerability-patching", "auth-enhancement", "data-protection"),
            communication_protocols=("alert-critical-issues", "coordinate-with-architects"),
            learning_mechanisms=("threat-pattern-learning", "security-trend-analysis"),
        ),
    ),
    "PerformanceWatchdog": AgentProfile(
        analysis_template=(
            "Performance analysis of {path}. Bundle impact: minimal. "
            "Optimization opportunity: memoization."
        ),
        specification=AgentSpecification(
            analysis_logic="Monitor performance metrics, bundle size, and optimization opportunities",
            improvement_strategies=("bundle-optimization", "lazy-loading", "caching", "memoization"),
            communication_protocols=("share-performance-data", "coordinate-with-components"),
            learning_mechanisms=("performance-pattern-recognition", "optimization-effectiveness"),
        ),
    ),
}


def resolve_specification(name: str, role: str, capabilities: list[str]) -> AgentSpecification:
    profile = PROFILES.get(name)
    if profile is not None:
        return profile.specification
    return AgentSpecification(
        analysis_logic=f"Analyze {role} patterns and identify improvement opportunities",
        improvement_strategies=tuple(capabilities),
        communication_protocols=("broadcast-findings", "coordinate-with-relevant-agents"),
        learning_mechanisms=("pattern-recognition", "feedback-learning", "success-tracking"),
    )


def render_analysis(name: str, role: str, file_path: str) -> str:
    profile = PROFILES.get(name)
    if profile is not None:
        return profile.analysis_template.format(path=file_path)
    return f"{name} analyzed {file_path} for {role} improvements."
