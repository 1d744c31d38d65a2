"""
Reasoning Schemas - Typed models for the reasoning engine's JSON response.

The reasoning engine is asked to answer with a single JSON object.  These
models validate that object at the boundary so that the rest of the pipeline
never handles an untyped dict:

    ExecutiveSummary          - overall risk, posture text, key concerns
    CriticalFinding           - one finding with severity and location
    VulnerabilityAssessment   - one vulnerability with a risk level
    RiskAnalysis              - high / medium / low risk item lists
    Recommendation            - one prioritised recommendation
    SecurityScore             - 1-10 score with justification
    SecurityAnalysis          - the full response envelope
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, field_validator

from models import Finding, FindingKind, Severity

_SEVERITY_LABELS = {"critical", "high", "medium", "low", "info"}
_PRIORITY_LABELS = {"immediate", "high", "medium", "low"}


def _normalize_label(value: str, allowed: set, default: str) -> str:
    label = str(value or "").strip().lower()
    if label not in allowed:
        label = default
    return label.capitalize()


class ExecutiveSummary(BaseModel):
    overall_risk: str = "Low"
    security_posture: str = ""
    key_concerns: List[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    @field_validator("overall_risk", mode="before")
    @classmethod
    def normalize_risk(cls, v: str) -> str:
        return _normalize_label(v, _SEVERITY_LABELS, "low")


class CriticalFinding(BaseModel):
    finding: str
    severity: str = "Medium"
    impact: str = ""
    location: str = ""

    model_config = {"extra": "ignore"}

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: str) -> str:
        return _normalize_label(v, _SEVERITY_LABELS, "medium")


class VulnerabilityAssessment(BaseModel):
    vulnerability: str
    type: str = ""
    risk_level: str = "Medium"
    description: str = ""

    model_config = {"extra": "ignore"}

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk_level(cls, v: str) -> str:
        return _normalize_label(v, _SEVERITY_LABELS, "medium")


class RiskAnalysis(BaseModel):
    high_risk_items: List[str] = Field(default_factory=list)
    medium_risk_items: List[str] = Field(default_factory=list)
    low_risk_items: List[str] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class Recommendation(BaseModel):
    recommendation: str
    priority: str = "Medium"
    effort: str = "Medium"
    impact: str = ""

    model_config = {"extra": "ignore"}

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v: str) -> str:
        return _normalize_label(v, _PRIORITY_LABELS, "medium")


class SecurityScore(BaseModel):
    score: float = Field(default=5.0, ge=0.0, le=10.0)
    justification: str = ""
    factors: List[str] = Field(default_factory=list)

    model_config = {"extra": "ignore"}


class SecurityAnalysis(BaseModel):
    """Full structured answer from the reasoning engine."""

    executive_summary: ExecutiveSummary = Field(default_factory=ExecutiveSummary)
    critical_findings: List[CriticalFinding] = Field(default_factory=list)
    vulnerability_assessment: List[VulnerabilityAssessment] = Field(default_factory=list)
    risk_analysis: RiskAnalysis = Field(default_factory=RiskAnalysis)
    recommendations: List[Recommendation] = Field(default_factory=list)
    security_score: SecurityScore = Field(default_factory=SecurityScore)

    model_config = {"extra": "ignore"}

    def to_findings(self) -> List[Finding]:
        """Convert reported findings and vulnerabilities to pipeline findings."""
        findings = []
        for item in self.critical_findings:
            findings.append(
                Finding(
                    kind=FindingKind.VULNERABILITY,
                    severity=Severity(item.severity.lower()),
                    title=item.finding[:120],
                    description=item.impact or item.finding,
                    file_path=item.location or None,
                )
            )
        for item in self.vulnerability_assessment:
            findings.append(
                Finding(
                    kind=FindingKind.VULNERABILITY,
                    severity=Severity(item.risk_level.lower()),
                    title=item.vulnerability[:120],
                    description=item.description or item.vulnerability,
                )
            )
        return findings
