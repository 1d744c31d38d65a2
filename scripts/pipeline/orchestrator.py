"""
Runs triage stages in phase order.

A ``ConfigurationError`` from any stage ends the run; every other failure is
recorded on the context, the stage is rolled back and later stages still run
against whatever state is left.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from exceptions import ConfigurationError

from .protocol import PipelineContext, PipelineStage, StageResult

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Sequential stage runner.

    ::

        pipeline = PipelineOrchestrator(build_default_stages(config), config)
        ctx, results = pipeline.run("owner/repo")
        print(ctx.verdict.narrative_summary)

    Raises ValueError at construction if a stage requires one that is not
    part of the pipeline.
    """

    def __init__(self, stages: List[PipelineStage], config: Dict[str, Any]):
        self.stages = sorted(stages, key=lambda s: s.phase_number)
        self.config = config

        known = {s.name for s in self.stages}
        for stage in self.stages:
            missing = [dep for dep in stage.required_stages if dep not in known]
            if missing:
                raise ValueError(
                    f"Stage '{stage.name}' requires {missing}, which is not in the pipeline "
                    f"(stages: {sorted(known)})"
                )

    def run(
        self,
        repository: str,
        ctx: Optional[PipelineContext] = None,
    ) -> Tuple[PipelineContext, List[StageResult]]:
        """Run every stage for *repository*.

        Pass *ctx* to pre-seed paths or collaborators; otherwise a fresh
        context is built from the orchestrator's config. Returns the context
        and one ``StageResult`` per stage that was considered.
        """
        if ctx is None:
            ctx = PipelineContext(
                config=self.config,
                repository=repository,
                analysis_intent=self.config.get("analysis_intent", "default"),
            )

        results: List[StageResult] = []
        done: Set[str] = set()
        started = time.monotonic()
        logger.info("Running %d stages for %s", len(self.stages), repository)

        for stage in self.stages:
            unmet = [dep for dep in stage.required_stages if dep not in done]
            if unmet:
                logger.warning("Skipping %s: unmet dependencies %s", stage.display_name, unmet)
                reason = f"Unmet dependencies: {unmet}"
                results.append(StageResult(False, stage.name, error=reason, skipped=True, skip_reason=reason))
                continue

            result = self._gate(stage, ctx)
            if result is None:
                try:
                    result = self._execute(stage, ctx)
                except ConfigurationError as exc:
                    results.append(StageResult(
                        success=False,
                        stage_name=stage.name,
                        findings_before=ctx.total_findings,
                        findings_after=ctx.total_findings,
                        error=f"Configuration error: {exc}",
                    ))
                    ctx.failed_stages.append(stage.name)
                    ctx.errors.append(f"{stage.display_name}: configuration error: {exc}")
                    logger.error("Stopping at %s: configuration error: %s", stage.display_name, exc)
                    break

            results.append(result)
            done.add(stage.name)

        ctx.phase_timings["_total"] = time.monotonic() - started
        logger.info(
            "Pipeline finished in %.1fs: %d of %d stages ran, %d findings, %d errors",
            ctx.phase_timings["_total"],
            sum(1 for r in results if not r.skipped),
            len(self.stages),
            ctx.total_findings,
            len(ctx.errors),
        )
        return ctx, results

    def _gate(self, stage: PipelineStage, ctx: PipelineContext) -> Optional[StageResult]:
        """Return a skip result when ``should_run`` declines or raises, else None."""
        try:
            wanted = stage.should_run(ctx)
        except Exception as exc:
            logger.warning("Skipping %s: should_run raised %s", stage.display_name, exc)
            return StageResult(
                False, stage.name,
                error=f"should_run check failed: {exc}",
                skipped=True,
                skip_reason=f"should_run raised: {exc}",
            )

        if not wanted:
            logger.info("Skipping %s: nothing to do", stage.display_name)
            return StageResult(
                True, stage.name,
                skipped=True,
                skip_reason="Preconditions not met (should_run=False)",
                findings_before=ctx.total_findings,
                findings_after=ctx.total_findings,
            )
        return None

    def _execute(self, stage: PipelineStage, ctx: PipelineContext) -> StageResult:
        """Run one stage, timing it and rolling it back on failure."""
        before = ctx.total_findings
        start = time.monotonic()
        logger.info("Starting %s", stage.display_name)

        try:
            result = stage.execute(ctx)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error("%s raised (continuing)", stage.display_name, exc_info=True)
            result = StageResult(False, stage.name, error=f"{type(exc).__name__}: {exc}")

        result.duration_seconds = time.monotonic() - start
        result.findings_before = before
        result.findings_after = ctx.total_findings

        if result.success:
            ctx.phase_timings[stage.name] = result.duration_seconds
            logger.info(
                "Completed %s in %.2fs (findings %d -> %d)",
                stage.display_name, result.duration_seconds, before, result.findings_after,
            )
        else:
            ctx.failed_stages.append(stage.name)
            ctx.errors.append(f"{stage.display_name}: {result.error}")
            logger.warning("%s failed: %s", stage.display_name, result.error)
            try:
                stage.rollback(ctx)
            except Exception:
                logger.warning("Rollback of %s failed", stage.display_name, exc_info=True)
        return result
