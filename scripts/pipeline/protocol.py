"""
Stage interface and shared run state for the triage pipeline.

A triage run is a fixed sequence of stages (discovery, selection, chunking,
chunk analysis, reporting). Each stage satisfies ``PipelineStage``, reads
what earlier stages left on the ``PipelineContext`` and writes its own output
back to it. ``StageResult`` is what a stage hands the orchestrator for
logging and failure handling.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@dataclass
class PipelineContext:
    """Everything one triage run knows, filled in stage by stage.

    ``paths`` stays ``None`` until discovery runs; a caller that already
    has a listing sets it up front and discovery is skipped. Collaborators
    (``file_provider``, ``reasoning_engine``, ``callbacks``) belong to the
    caller: stages use them but never close them. ``security_issues`` holds
    raw GitHub issue-search items (``vulnerabilities`` intent only).
    ``phase_timings`` is keyed by stage name, in seconds; ``errors`` collects
    non-fatal problems and ``failed_stages`` names every stage whose
    ``execute`` failed.
    """

    config: Dict[str, Any] = field(default_factory=dict)
    repository: str = ""
    analysis_intent: str = "default"

    # caller-owned collaborators
    file_provider: Any = None
    reasoning_engine: Any = None
    callbacks: Any = None
    cancel_event: Optional[threading.Event] = None

    # stage outputs, in pipeline order
    paths: Optional[List[str]] = None
    security_issues: List[Dict[str, Any]] = field(default_factory=list)
    selected_files: List[Any] = field(default_factory=list)
    chunks: List[Any] = field(default_factory=list)
    verdict: Any = None
    report: Optional[Dict[str, Any]] = None
    reports: Dict[str, str] = field(default_factory=dict)
    report_paths: Dict[str, str] = field(default_factory=dict)

    phase_timings: Dict[str, float] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    failed_stages: List[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """True when a stage failed, so the verdict covers less than intended."""
        return bool(self.failed_stages)

    @property
    def total_findings(self) -> int:
        """Findings in the verdict so far (0 before chunk analysis)."""
        if self.verdict is None:
            return 0
        return self.verdict.total_findings


@dataclass
class StageResult:
    """What happened when one stage ran.

    ``findings_before``/``findings_after`` snapshot ``ctx.total_findings``
    around the stage. ``metadata`` holds stage-specific counts such as
    ``selected_files`` or ``chunks``.
    """

    success: bool
    stage_name: str
    duration_seconds: float = 0.0
    findings_before: int = 0
    findings_after: int = 0
    error: Optional[str] = None
    skipped: bool = False
    skip_reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class PipelineStage(Protocol):
    """Structural interface of a pipeline stage.

    Any object with these attributes and methods qualifies; subclassing
    ``BaseStage`` is the usual way to get one.
    """

    @property
    def name(self) -> str:
        """Stable identifier used for dependencies and timings (``chunking``)."""
        ...

    @property
    def display_name(self) -> str:
        """Label for logs (``Phase 3: Chunking``)."""
        ...

    @property
    def phase_number(self) -> float:
        """Sort key within the pipeline."""
        ...

    @property
    def required_stages(self) -> List[str]:
        """Stages that must have run (or failed and been rolled back) first."""
        ...

    def should_run(self, ctx: PipelineContext) -> bool:
        """Return ``False`` to skip the stage for this run."""
        ...

    def execute(self, ctx: PipelineContext) -> StageResult:
        ...

    def rollback(self, ctx: PipelineContext) -> None:
        """Undo partial writes to ``ctx`` after a failed ``execute``."""
        ...
