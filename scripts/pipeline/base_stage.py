"""
Base class for triage stages.

Subclasses declare ``name``, ``display_name`` and ``phase_number`` and
implement ``_execute``; the base class turns that into a ``StageResult``.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from exceptions import ConfigurationError

from .protocol import PipelineContext, StageResult

logger = logging.getLogger(__name__)


class BaseStage(ABC):
    """``PipelineStage`` implementation with timing and failure wrapping."""

    name: str = ""
    display_name: str = ""
    phase_number: float = 0.0
    required_stages: List[str] = []

    def should_run(self, ctx: PipelineContext) -> bool:
        return True

    @abstractmethod
    def _execute(self, ctx: PipelineContext) -> Dict[str, Any]:
        """Do the stage's work on *ctx* and return metadata for the result.

        A ``ConfigurationError`` escapes to the orchestrator, which stops
        the run. Any other exception becomes a failed ``StageResult``.
        """

    def execute(self, ctx: PipelineContext) -> StageResult:
        before = ctx.total_findings
        start = time.monotonic()
        result = StageResult(success=True, stage_name=self.name, findings_before=before)

        try:
            result.metadata = self._execute(ctx) or {}
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error("%s failed: %s", self.display_name, exc, exc_info=True)
            result.success = False
            result.error = f"{type(exc).__name__}: {exc}"

        result.duration_seconds = time.monotonic() - start
        result.findings_after = ctx.total_findings
        return result

    def rollback(self, ctx: PipelineContext) -> None:
        pass
