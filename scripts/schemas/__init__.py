"""
Pydantic schemas for triage pipeline validation

Strict schemas for data entering the pipeline from the reasoning engine.
They catch malformed responses at the boundary instead of deep inside
aggregation.
"""

from .analysis import (
    CriticalFinding,
    ExecutiveSummary,
    Recommendation,
    RiskAnalysis,
    SecurityAnalysis,
    SecurityScore,
    VulnerabilityAssessment,
)

__all__ = [
    "CriticalFinding",
    "ExecutiveSummary",
    "Recommendation",
    "RiskAnalysis",
    "SecurityAnalysis",
    "SecurityScore",
    "VulnerabilityAssessment",
]
