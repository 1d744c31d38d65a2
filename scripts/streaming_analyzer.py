#!/usr/bin/env python3
"""
Streaming Analyzer - sequential chunk orchestration with live feedback.

Runs every chunk through a ``ChunkProcessor`` in the order the chunker
produced them, emitting progress/completion/error callbacks along the way,
and folds the successful results into one ``AggregatedVerdict``.

Per-chunk failures are contained: the failure counter is incremented, the
``on_error`` hook fires, and the next chunk is processed.  The only way to stop
a run early is the caller-supplied cancellation event, which is checked
before each chunk.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from chunk_processor import ChunkProcessor
from models import (
    AggregatedVerdict,
    Chunk,
    ChunkResult,
    ProgressUpdate,
    SeveritySummary,
    round_half_up,
)

logger = logging.getLogger(__name__)

# Rough per-chunk estimate for the time-remaining hint
ESTIMATED_MS_PER_CHUNK = 100

ProgressCallback = Callable[[ProgressUpdate], None]
ChunkCallback = Callable[[ChunkResult], None]
ErrorCallback = Callable[[Exception, Chunk], None]


@dataclass
class AnalysisCallbacks:
    """Hook points of one run; any of them may be left unset"""

    on_progress: Optional[ProgressCallback] = None
    on_chunk_complete: Optional[ChunkCallback] = None
    on_error: Optional[ErrorCallback] = None


def _invoke(hook: Optional[Callable], name: str, *args) -> None:
    if hook is None:
        return
    try:
        hook(*args)
    except Exception as e:
        logger.warning("%s callback raised %s: %s", name, type(e).__name__, e)


def build_progress_update(
    index: int,
    total_chunks: int,
    category: str,
    processed_chunks: int,
    failed_chunks: int,
    total_findings: int,
) -> ProgressUpdate:
    """Progress snapshot emitted before chunk number ``index`` (zero-based)"""
    remaining = total_chunks - index - 1
    return ProgressUpdate(
        current_chunk=index + 1,
        total_chunks=total_chunks,
        current_category=category,
        processed_chunks=processed_chunks,
        failed_chunks=failed_chunks,
        total_findings=total_findings,
        estimated_time_remaining_ms=remaining * ESTIMATED_MS_PER_CHUNK,
        percentage=round_half_up((index + 1) / total_chunks * 100),
    )


def generate_summary(
    total_chunks: int,
    processed_chunks: int,
    counts: SeveritySummary,
    duration_ms: int,
    total_cost: int,
) -> str:
    """Human-readable multi-line run summary"""
    success_rate = 100 if total_chunks == 0 else round_half_up(processed_chunks / total_chunks * 100)
    return "\n".join(
        [
            f"Processed {processed_chunks}/{total_chunks} chunks ({success_rate}% success rate)",
            f"Found {counts.total} security issues:",
            f"  • Critical: {counts.critical}",
            f"  • High: {counts.high}",
            f"  • Medium: {counts.medium}",
            f"  • Low: {counts.low}",
            f"Completed in {duration_ms}ms using ~{total_cost} units",
        ]
    )


def aggregate_results(
    results: Sequence[ChunkResult],
    total_chunks: int,
    failed_chunks: int,
    duration_ms: int,
    cancelled: bool = False,
) -> AggregatedVerdict:
    """Fold chunk results into a repository-wide verdict.

    Only the per-chunk severity summaries are summed; findings themselves are
    not re-counted, so the verdict totals always agree with the chunk totals.
    """
    critical = high = medium = low = info = 0
    total_cost = 0
    for result in results:
        summary = result.severity_summary
        critical += summary.critical
        high += summary.high
        medium += summary.medium
        low += summary.low
        info += summary.info
        total_cost += result.cost_used

    counts = SeveritySummary.from_counts(critical=critical, high=high, medium=medium, low=low, info=info)

    return AggregatedVerdict(
        total_chunks=total_chunks,
        processed_chunks=len(results),
        failed_chunks=failed_chunks,
        total_findings=counts.total,
        severity_counts=counts,
        overall_risk=counts.overall_risk,
        chunk_results=tuple(results),
        total_duration_ms=duration_ms,
        total_cost_used=total_cost,
        narrative_summary=generate_summary(total_chunks, len(results), counts, duration_ms, total_cost),
        cancelled=cancelled,
    )


class StreamingAnalyzer:
    """Process chunks one at a time and aggregate the results.

    Args:
        processor: The unit processor applied to each chunk
        callbacks: Optional progress/completion/error hooks
        cancel_event: Set by the caller to stop the run before the next chunk
    """

    def __init__(
        self,
        processor: ChunkProcessor,
        callbacks: Optional[AnalysisCallbacks] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.processor = processor
        self.callbacks = callbacks or AnalysisCallbacks()
        self.cancel_event = cancel_event

    def run(self, chunks: Iterable[Chunk]) -> AggregatedVerdict:
        chunks = list(chunks)
        total = len(chunks)
        start = time.monotonic()
        logger.info("Starting streaming analysis of %d chunks", total)

        results: List[ChunkResult] = []
        failed = 0
        total_findings = 0
        cancelled = False

        for index, chunk in enumerate(chunks):
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.warning("Analysis cancelled after %d/%d chunks", index, total)
                cancelled = True
                break

            progress = build_progress_update(
                index, total, chunk.category.value, len(results), failed, total_findings
            )
            _invoke(self.callbacks.on_progress, "on_progress", progress)
            logger.debug("Progress: %d%% (%d/%d)", progress.percentage, index + 1, total)

            try:
                result = self.processor.process(chunk)
            except Exception as e:
                failed += 1
                logger.error("Failed to process chunk %s (%s): %s", chunk.id, chunk.category.value, e)
                _invoke(self.callbacks.on_error, "on_error", e, chunk)
                continue

            results.append(result)
            total_findings += len(result.findings)
            _invoke(self.callbacks.on_chunk_complete, "on_chunk_complete", result)
            logger.info(self.processor.get_processing_stats(chunk, result))

        duration_ms = int((time.monotonic() - start) * 1000)
        verdict = aggregate_results(results, total, failed, duration_ms, cancelled=cancelled)
        logger.info("Streaming analysis completed: %d/%d chunks, risk=%s",
                    verdict.processed_chunks, total, verdict.overall_risk.value)
        return verdict


# ---------------------------------------------------------------------------
# Console callbacks
# ---------------------------------------------------------------------------

RISK_ICONS = {
    "critical": "🔴",
    "high": "🟠",
    "medium": "🟡",
    "low": "🟢",
    "safe": "🟢",
}


def console_progress_callback() -> ProgressCallback:
    """Progress hook printing a 20-cell bar"""

    def _print(progress: ProgressUpdate) -> None:
        filled = progress.percentage // 5
        bar = "█" * filled + "░" * (20 - filled)
        print(
            f"📊 [{bar}] {progress.percentage}% - "
            f"{progress.current_chunk}/{progress.total_chunks} chunks ({progress.total_findings} findings)"
        )

    return _print


def console_chunk_callback() -> ChunkCallback:
    def _print(result: ChunkResult) -> None:
        icon = RISK_ICONS.get(result.severity_summary.overall_risk.value, "⚪")
        print(
            f"  {icon} {result.category.value}: {len(result.findings)} findings "
            f"({result.processing_duration_ms}ms)"
        )

    return _print


def console_error_callback() -> ErrorCallback:
    def _print(error: Exception, chunk: Chunk) -> None:
        print(f"  ❌ {chunk.category.value} ({chunk.id}): {error}")

    return _print


def console_callbacks() -> AnalysisCallbacks:
    return AnalysisCallbacks(
        on_progress=console_progress_callback(),
        on_chunk_complete=console_chunk_callback(),
        on_error=console_error_callback(),
    )
