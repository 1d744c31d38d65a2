"""
Stage-based composition of a triage run.

``build_default_stages`` returns discovery, selection, chunking, chunk
analysis and reporting; ``PipelineOrchestrator`` runs them against a shared
``PipelineContext``. Custom stages subclass ``BaseStage`` or satisfy the
``PipelineStage`` protocol directly.
"""

from .protocol import PipelineStage, PipelineContext, StageResult
from .orchestrator import PipelineOrchestrator
from .base_stage import BaseStage
from .stages import (
    FileDiscoveryStage,
    FileSelectionStage,
    ChunkingStage,
    ChunkAnalysisStage,
    ReportingStage,
    build_default_stages,
    policy_for,
)

__all__ = [
    # Core protocol
    "PipelineStage",
    "PipelineContext",
    "StageResult",
    # Orchestrator
    "PipelineOrchestrator",
    # Base class
    "BaseStage",
    # Concrete stages
    "FileDiscoveryStage",
    "FileSelectionStage",
    "ChunkingStage",
    "ChunkAnalysisStage",
    "ReportingStage",
    # Factory
    "build_default_stages",
    "policy_for",
]
