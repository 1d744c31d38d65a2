"""
The five triage stages and the factory that assembles them.

    discovery -> selection -> chunking -> chunk analysis -> reporting

Each stage reads only what earlier stages put on the context, so any of them
can be run alone in tests against a hand-built ``PipelineContext``.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from typing import Any, Dict, List

from analysis_chunker import AnalysisChunker
from chunk_processor import ChunkProcessor
from github_file_provider import GitHubFileProvider
from models import SelectionPolicy
from reporting import build_security_report, generate_markdown_report, save_results, verdict_to_dict
from security_file_classifier import group_by_category, resolve_policy, select_files
from streaming_analyzer import StreamingAnalyzer

from .base_stage import BaseStage
from .protocol import PipelineContext

logger = logging.getLogger(__name__)


def policy_for(ctx: PipelineContext) -> SelectionPolicy:
    """Intent policy, with ``max_files`` overridden when configured"""
    policy = resolve_policy(ctx.analysis_intent)
    max_files = ctx.config.get("max_files")
    if max_files is not None:
        policy = dataclasses.replace(policy, max_files=int(max_files))
    return policy


# ============================================================================
# Phase 1: File discovery
# ============================================================================


class FileDiscoveryStage(BaseStage):
    """Phase 1: List candidate paths through the file-listing provider.

    Skipped when the caller already supplied ``ctx.paths``.  If no provider
    was injected, one is opened from the config for this stage only.  For
    the ``vulnerabilities`` intent the repository's security issues are
    fetched too and kept on ``ctx.security_issues``.
    """

    name = "file_discovery"
    display_name = "Phase 1: File Discovery"
    phase_number = 1.0

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.paths is None

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        if ctx.file_provider is not None:
            self._discover(ctx.file_provider, ctx)
        else:
            with GitHubFileProvider.from_config(ctx.config) as provider:
                self._discover(provider, ctx)
        return {"paths_discovered": len(ctx.paths), "security_issues": len(ctx.security_issues)}

    @staticmethod
    def _discover(provider, ctx: PipelineContext) -> None:
        ctx.paths = provider.discover_paths(ctx.repository, ctx.analysis_intent)
        ctx.security_issues = list(provider.discover_issues(ctx.repository, ctx.analysis_intent))

    def rollback(self, ctx: PipelineContext) -> None:
        # Selection treats "no paths" as an empty repository
        ctx.paths = []
        ctx.security_issues = []


# ============================================================================
# Phase 2: Selection
# ============================================================================


class FileSelectionStage(BaseStage):
    """Phase 2: Classify paths and apply the intent's selection policy."""

    name = "file_selection"
    display_name = "Phase 2: File Selection"
    phase_number = 2.0
    required_stages = ["file_discovery"]

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        policy = policy_for(ctx)
        ctx.selected_files = select_files(ctx.paths or [], policy)

        by_category = {
            category.value: len(files) for category, files in group_by_category(ctx.selected_files).items()
        }
        logger.info(
            "Selected %d of %d paths for intent '%s': %s",
            len(ctx.selected_files),
            len(ctx.paths or []),
            ctx.analysis_intent,
            by_category,
        )
        return {
            "candidate_paths": len(ctx.paths or []),
            "selected_files": len(ctx.selected_files),
            "by_category": by_category,
            "max_files": policy.max_files,
        }


# ============================================================================
# Phase 3: Chunking
# ============================================================================


class ChunkingStage(BaseStage):
    """Phase 3: Group selected files into single-category chunks."""

    name = "chunking"
    display_name = "Phase 3: Chunking"
    phase_number = 3.0
    required_stages = ["file_selection"]

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        chunker = AnalysisChunker(ctx.config)
        ctx.chunks = chunker.chunk(ctx.selected_files)
        logger.info(chunker.get_chunk_summary(ctx.chunks))
        return {
            "chunks": len(ctx.chunks),
            "estimated_cost": sum(chunk.cost_estimate for chunk in ctx.chunks),
        }


# ============================================================================
# Phase 4: Chunk analysis
# ============================================================================


class ChunkAnalysisStage(BaseStage):
    """Phase 4: Process every chunk and aggregate the verdict.

    Always runs once chunking completed, including for zero chunks, so an
    empty selection still yields a (safe) verdict.
    """

    name = "chunk_analysis"
    display_name = "Phase 4: Chunk Analysis"
    phase_number = 4.0
    required_stages = ["chunking"]

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        processor = ChunkProcessor(
            analysis_intent=ctx.analysis_intent,
            repository=ctx.repository,
            reasoning_engine=ctx.reasoning_engine,
            security_issues=ctx.security_issues,
        )
        analyzer = StreamingAnalyzer(processor, callbacks=ctx.callbacks, cancel_event=ctx.cancel_event)
        ctx.verdict = analyzer.run(ctx.chunks)

        if ctx.verdict.failed_chunks:
            ctx.errors.append(f"{ctx.verdict.failed_chunks} of {ctx.verdict.total_chunks} chunks failed")
        if ctx.verdict.cancelled:
            ctx.errors.append("Chunk analysis was cancelled")

        return {
            "processed_chunks": ctx.verdict.processed_chunks,
            "failed_chunks": ctx.verdict.failed_chunks,
            "overall_risk": ctx.verdict.overall_risk.value,
            "cancelled": ctx.verdict.cancelled,
        }


# ============================================================================
# Phase 5: Reporting
# ============================================================================


class ReportingStage(BaseStage):
    """Phase 5: Build the security report, render it and optionally save it."""

    name = "reporting"
    display_name = "Phase 5: Report Generation"
    phase_number = 5.0
    required_stages = ["chunk_analysis"]

    def should_run(self, ctx: PipelineContext) -> bool:
        return ctx.verdict is not None

    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        ctx.report = build_security_report(
            ctx.verdict,
            ctx.repository,
            ctx.analysis_intent,
            failed_stages=ctx.failed_stages,
            security_issues=ctx.security_issues,
        )
        ctx.reports["json"] = json.dumps({**ctx.report, "verdict": verdict_to_dict(ctx.verdict)}, indent=2, default=str)
        ctx.reports["markdown"] = generate_markdown_report(ctx.report)

        output_dir = ctx.config.get("output_dir")
        if output_dir:
            ctx.report_paths = save_results(
                ctx.report,
                ctx.verdict,
                output_dir,
                ctx.config.get("report_format", "all"),
            )

        return {"formats_generated": sorted(ctx.reports), "saved": sorted(ctx.report_paths)}


# ============================================================================
# Factory: Build default pipeline
# ============================================================================


def build_default_stages(config: Dict[str, Any]) -> List[BaseStage]:
    """Build the default set of pipeline stages.

    Returns all stages; the orchestrator uses ``should_run`` to skip
    discovery when paths are supplied and reporting when no verdict exists.
    """
    return [
        FileDiscoveryStage(),
        FileSelectionStage(),
        ChunkingStage(),
        ChunkAnalysisStage(),
        ReportingStage(),
    ]
