#!/usr/bin/env python3
"""
Chunk Processor Module

Turns one analysis chunk into a ``ChunkResult``: per-file heuristic findings,
a severity roll-up, the cost actually used and the wall-clock duration.

Heuristics look at file paths only.  Each file is evaluated on its own; a
heuristic that fails for one file contributes no findings for that file and
never fails the chunk.

When a ``ReasoningEngine`` is supplied, the chunk description is also sent to
it and the reported findings are appended after the heuristic ones.  Errors
from that call are not caught here: the orchestrator records them as a failed
chunk.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from github_file_provider import summarize_issue
from models import Category, Chunk, ChunkResult, ClassifiedFile, Finding, FindingKind, Severity, SeveritySummary

__all__ = ["ChunkProcessor", "FINDING_COST", "SUMMARY_OVERHEAD_COST"]

logger = logging.getLogger(__name__)

FINDING_COST = 50
SUMMARY_OVERHEAD_COST = 100

# ---------------------------------------------------------------------------
# Per-category heuristics (one file in, zero or more findings out)
# ---------------------------------------------------------------------------


def _secret_findings(file: ClassifiedFile) -> List[Finding]:
    findings = []
    if ".env" in file.path:
        findings.append(
            Finding(
                kind=FindingKind.SECRET,
                severity=Severity.HIGH,
                title="Environment file detected",
                description=f"Environment file found: {file.path}. Ensure this file is not committed to version control.",
                file_path=file.path,
                recommendation="Add .env files to .gitignore and use environment variables for secrets.",
            )
        )
    if "secrets.json" in file.path or "credentials.json" in file.path:
        findings.append(
            Finding(
                kind=FindingKind.SECRET,
                severity=Severity.CRITICAL,
                title="Secrets file detected",
                description=f"Secrets file found: {file.path}. This file may contain sensitive credentials.",
                file_path=file.path,
                recommendation="Use a secrets management service instead of storing secrets in files.",
            )
        )
    return findings


def _dependency_findings(file: ClassifiedFile) -> List[Finding]:
    findings = []
    if "package.json" in file.path:
        findings.append(
            Finding(
                kind=FindingKind.DEPENDENCY,
                severity=Severity.MEDIUM,
                title="Dependency file detected",
                description=f"Dependency file found: {file.path}. Review dependencies for known vulnerabilities.",
                file_path=file.path,
                recommendation="Run npm audit regularly and keep dependencies updated.",
            )
        )
    if "requirements.txt" in file.path:
        findings.append(
            Finding(
                kind=FindingKind.DEPENDENCY,
                severity=Severity.MEDIUM,
                title="Python dependencies detected",
                description=f"Python dependency file found: {file.path}. Review for security vulnerabilities.",
                file_path=file.path,
                recommendation="Use tools like pip-audit or safety to check for known vulnerabilities.",
            )
        )
    return findings


def _config_findings(file: ClassifiedFile) -> List[Finding]:
    return [
        Finding(
            kind=FindingKind.CONFIGURATION,
            severity=Severity.LOW,
            title="Configuration file detected",
            description=f"Configuration file found: {file.path}. Review for security settings.",
            file_path=file.path,
            recommendation="Ensure configuration files have appropriate security settings.",
        )
    ]


def _security_findings(file: ClassifiedFile) -> List[Finding]:
    return [
        Finding(
            kind=FindingKind.SECURITY,
            severity=Severity.MEDIUM,
            title="Security file detected",
            description=f"Security-related file found: {file.path}. Review security configurations.",
            file_path=file.path,
            recommendation="Ensure security configurations follow best practices.",
        )
    ]


def _deployment_findings(file: ClassifiedFile) -> List[Finding]:
    findings = []
    lowered = file.path.lower()
    if "dockerfile" in lowered:
        findings.append(
            Finding(
                kind=FindingKind.SECURITY,
                severity=Severity.MEDIUM,
                title="Dockerfile detected",
                description=f"Dockerfile found: {file.path}. Review for security best practices.",
                file_path=file.path,
                recommendation="Use multi-stage builds, run as non-root user, and scan for vulnerabilities.",
            )
        )
    if "docker-compose" in lowered:
        findings.append(
            Finding(
                kind=FindingKind.SECURITY,
                severity=Severity.LOW,
                title="Docker Compose file detected",
                description=f"Docker Compose file found: {file.path}. Review container configurations.",
                file_path=file.path,
                recommendation="Ensure containers don't run as root and use secure base images.",
            )
        )
    return findings


HEURISTICS: Dict[Category, Callable[[ClassifiedFile], List[Finding]]] = {
    Category.SECRET: _secret_findings,
    Category.DEPENDENCY: _dependency_findings,
    Category.CONFIG: _config_findings,
    Category.SECURITY: _security_findings,
    Category.DEPLOYMENT: _deployment_findings,
}


class ChunkProcessor:
    """Process analysis chunks into ``ChunkResult`` objects.

    Parameters
    ----------
    analysis_intent : str
        The run's analysis intent, recorded on every result and passed to the
        reasoning engine.
    repository : str
        Repository identifier (``owner/repo``) for the reasoning context.
    reasoning_engine : ReasoningEngine | None
        Optional delegate for chunk-level reasoning.
    security_issues : list of dict | None
        Raw GitHub issue-search items; summarized into every reasoning
        context when present.
    """

    def __init__(
        self,
        analysis_intent: str = "default",
        repository: str = "",
        reasoning_engine=None,
        security_issues: Optional[List[dict]] = None,
    ):
        self.analysis_intent = analysis_intent
        self.repository = repository
        self.reasoning_engine = reasoning_engine
        self.security_issues = list(security_issues or [])

    def process(self, chunk: Chunk) -> ChunkResult:
        """Analyze *chunk* and return its result.

        Raises:
            ReasoningError: Only when a reasoning engine is configured and
                its call fails or times out
        """
        start = time.monotonic()
        logger.info("Processing chunk: %s (%d files)", chunk.category.value, len(chunk.files))

        findings = self._heuristic_findings(chunk)

        reasoning = None
        if self.reasoning_engine is not None:
            reasoning = self.reasoning_engine.analyze(self.build_context(chunk))
            findings.extend(reasoning.findings)

        summary = SeveritySummary.from_findings(findings)
        duration_ms = int((time.monotonic() - start) * 1000)

        result = ChunkResult(
            chunk_id=chunk.id,
            category=chunk.category,
            findings=tuple(findings),
            severity_summary=summary,
            processing_duration_ms=duration_ms,
            cost_used=self.estimate_cost_used(chunk, findings),
            analysis_intent=self.analysis_intent,
            reasoning=reasoning,
        )
        logger.info("Chunk processed in %dms: %d findings", duration_ms, len(findings))
        return result

    def _heuristic_findings(self, chunk: Chunk) -> List[Finding]:
        heuristic = HEURISTICS.get(chunk.category)
        if heuristic is None:
            return []

        findings: List[Finding] = []
        for file in chunk.files:
            try:
                findings.extend(heuristic(file))
            except Exception as e:
                logger.warning("Heuristic analysis failed for %s: %s", file.path, e)
        return findings

    def build_context(self, chunk: Chunk) -> dict:
        """JSON-serializable description of *chunk* for the reasoning engine."""
        context = {
            "repository": self.repository,
            "analysis_intent": self.analysis_intent,
            "category": chunk.category.value,
            "files": [f.to_dict() for f in chunk.files],
        }
        if self.security_issues:
            context["security_issues"] = [summarize_issue(item) for item in self.security_issues]
        return context

    @staticmethod
    def estimate_cost_used(chunk: Chunk, findings: List[Finding]) -> int:
        return chunk.cost_estimate + len(findings) * FINDING_COST + SUMMARY_OVERHEAD_COST

    @staticmethod
    def get_processing_stats(chunk: Chunk, result: ChunkResult) -> str:
        return (
            f"Chunk {chunk.category.value}: {len(result.findings)} findings, "
            f"{result.processing_duration_ms}ms, ~{result.cost_used} units"
        )
