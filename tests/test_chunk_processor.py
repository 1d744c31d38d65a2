"""
Tests for the chunk processor.

Covers the per-category path heuristics, the severity roll-up, the
cost-used formula, per-file failure containment and the optional
reasoning-engine delegate.
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Ensure scripts/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "scripts"))

import chunk_processor
from chunk_processor import FINDING_COST, SUMMARY_OVERHEAD_COST, ChunkProcessor
from exceptions import ReasoningError
from models import (
    Category,
    Chunk,
    ClassifiedFile,
    Finding,
    FindingKind,
    Priority,
    RiskLevel,
    Severity,
)


def _chunk(category, *paths, cost=100):
    files = tuple(ClassifiedFile(p, category, Priority.HIGH, "test") for p in paths)
    return Chunk(
        id=f"chunk-{category.value}-test",
        category=category,
        files=files,
        priority=Priority.HIGH,
        cost_estimate=cost,
        description=f"{len(files)} {category.value} files",
    )


# ============================================================================
# Test heuristics
# ============================================================================


class TestHeuristics:
    def test_secrets_json_is_single_critical(self):
        result = ChunkProcessor().process(_chunk(Category.SECRET, "secrets.json"))

        assert len(result.findings) == 1
        finding = result.findings[0]
        assert finding.severity is Severity.CRITICAL
        assert finding.kind is FindingKind.SECRET
        assert finding.file_path == "secrets.json"
        assert result.severity_summary.overall_risk is RiskLevel.CRITICAL

    def test_env_file_is_high(self):
        result = ChunkProcessor().process(_chunk(Category.SECRET, ".env"))
        assert [f.severity for f in result.findings] == [Severity.HIGH]
        assert result.findings[0].title == "Environment file detected"

    def test_secret_keyword_file_has_no_finding(self):
        result = ChunkProcessor().process(_chunk(Category.SECRET, "src/token_store.py"))
        assert result.findings == ()
        assert result.severity_summary.overall_risk is RiskLevel.SAFE

    def test_dependency_files(self):
        result = ChunkProcessor().process(_chunk(Category.DEPENDENCY, "package.json", "requirements.txt", "go.mod"))
        assert [f.title for f in result.findings] == ["Dependency file detected", "Python dependencies detected"]
        assert all(f.severity is Severity.MEDIUM for f in result.findings)

    def test_config_files(self):
        result = ChunkProcessor().process(_chunk(Category.CONFIG, "config.json", "app.yml"))
        assert len(result.findings) == 2
        assert all(f.severity is Severity.LOW for f in result.findings)
        assert all(f.kind is FindingKind.CONFIGURATION for f in result.findings)

    def test_security_files(self):
        result = ChunkProcessor().process(_chunk(Category.SECURITY, "src/security/policy.py"))
        assert [f.severity for f in result.findings] == [Severity.MEDIUM]

    def test_deployment_files(self):
        result = ChunkProcessor().process(_chunk(Category.DEPLOYMENT, "Dockerfile", "docker-compose.yml", "helm/values"))
        assert [(f.title, f.severity) for f in result.findings] == [
            ("Dockerfile detected", Severity.MEDIUM),
            ("Docker Compose file detected", Severity.LOW),
        ]

    def test_findings_reference_chunk_files(self):
        chunk = _chunk(Category.CONFIG, "a.yml", "b.yml")
        result = ChunkProcessor().process(chunk)
        paths = {f.path for f in chunk.files}
        assert all(f.file_path in paths for f in result.findings)

    def test_summary_matches_findings(self):
        result = ChunkProcessor().process(_chunk(Category.SECRET, ".env", "secrets.json", ".env.local"))
        summary = result.severity_summary
        assert summary.total == len(result.findings) == 3
        assert summary.critical == 1
        assert summary.high == 2


# ============================================================================
# Test result fields
# ============================================================================


class TestChunkResult:
    def test_cost_used_formula(self):
        chunk = _chunk(Category.SECRET, ".env", "secrets.json", cost=400)
        result = ChunkProcessor().process(chunk)
        assert result.cost_used == 400 + 2 * FINDING_COST + SUMMARY_OVERHEAD_COST == 600

    def test_cost_used_without_findings(self):
        chunk = _chunk(Category.DEPENDENCY, "go.mod", cost=150)
        assert ChunkProcessor().process(chunk).cost_used == 250

    def test_identity_and_intent(self):
        chunk = _chunk(Category.CONFIG, "config.json")
        result = ChunkProcessor(analysis_intent="secrets").process(chunk)
        assert result.chunk_id == chunk.id
        assert result.category is Category.CONFIG
        assert result.analysis_intent == "secrets"
        assert result.processing_duration_ms >= 0
        assert result.reasoning is None

    def test_processing_stats(self):
        chunk = _chunk(Category.SECRET, "secrets.json", cost=200)
        result = ChunkProcessor().process(chunk)
        stats = ChunkProcessor.get_processing_stats(chunk, result)
        assert stats.startswith("Chunk secret: 1 findings, ")
        assert stats.endswith("~350 units")


# ============================================================================
# Test failure containment
# ============================================================================


class TestFailureContainment:
    def test_heuristic_error_skips_only_that_file(self):
        original = chunk_processor.HEURISTICS[Category.SECRET]

        def flaky(file):
            if file.path == "broken.env":
                raise RuntimeError("boom")
            return original(file)

        with patch.dict(chunk_processor.HEURISTICS, {Category.SECRET: flaky}):
            result = ChunkProcessor().process(_chunk(Category.SECRET, "broken.env", "secrets.json"))

        assert [f.file_path for f in result.findings] == ["secrets.json"]


# ============================================================================
# Test reasoning delegate
# ============================================================================


class TestReasoningDelegate:
    def _engine(self, findings):
        engine = MagicMock()
        outcome = MagicMock()
        outcome.findings = findings
        engine.analyze.return_value = outcome
        return engine, outcome

    def test_reasoning_findings_appended(self):
        extra = Finding(
            kind=FindingKind.VULNERABILITY,
            severity=Severity.HIGH,
            title="Hardcoded key",
            description="A key is committed",
            file_path=".env",
        )
        engine, outcome = self._engine([extra])
        processor = ChunkProcessor(analysis_intent="secrets", repository="acme/app", reasoning_engine=engine)

        result = processor.process(_chunk(Category.SECRET, "secrets.json"))

        assert [f.title for f in result.findings] == ["Secrets file detected", "Hardcoded key"]
        assert result.severity_summary.critical == 1
        assert result.severity_summary.high == 1
        assert result.reasoning is outcome

    def test_reasoning_context(self):
        engine, _ = self._engine([])
        processor = ChunkProcessor(analysis_intent="secrets", repository="acme/app", reasoning_engine=engine)
        processor.process(_chunk(Category.SECRET, ".env"))

        context = engine.analyze.call_args[0][0]
        assert context["repository"] == "acme/app"
        assert context["analysis_intent"] == "secrets"
        assert context["category"] == "secret"
        assert [f["path"] for f in context["files"]] == [".env"]
        assert "security_issues" not in context

    def test_reasoning_context_carries_security_issues(self):
        engine, _ = self._engine([])
        issues = [
            {
                "number": 41,
                "title": "Prototype pollution in merge()",
                "state": "open",
                "html_url": "https://github.com/acme/app/issues/41",
                "labels": [{"name": "security"}],
                "body": "details",
            }
        ]
        processor = ChunkProcessor(
            analysis_intent="vulnerabilities", repository="acme/app", reasoning_engine=engine, security_issues=issues
        )
        processor.process(_chunk(Category.DEPENDENCY, "package.json"))

        context = engine.analyze.call_args[0][0]
        assert context["security_issues"] == [
            {
                "number": 41,
                "title": "Prototype pollution in merge()",
                "state": "open",
                "url": "https://github.com/acme/app/issues/41",
                "labels": ["security"],
            }
        ]

    def test_reasoning_error_propagates(self):
        engine = MagicMock()
        engine.analyze.side_effect = ReasoningError("provider down")
        processor = ChunkProcessor(reasoning_engine=engine)

        with pytest.raises(ReasoningError):
            processor.process(_chunk(Category.SECRET, ".env"))
