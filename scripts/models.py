"""
Security Triage Data Models.

Core value types that flow through the triage pipeline: classified files,
analysis chunks, findings, per-chunk results and the repository-wide verdict.
All of them are frozen dataclasses; a stage produces them once and later
stages only read them.

Classes:
    Category, Priority, Severity, RiskLevel, FindingKind: enumerations
    ClassifiedFile: A path annotated with category, priority and match reason
    SelectionPolicy: Which categories to keep and how many files at most
    Chunk: A single-category batch of classified files
    Finding: One security observation for a file
    SeveritySummary: Per-severity counts with the rolled-up risk
    ChunkResult: Outcome of processing one chunk
    ProgressUpdate: Payload of the pre-chunk progress notification
    AggregatedVerdict: Terminal output of one orchestration run
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Category(Enum):
    """Security category of a file, listed in classification precedence order"""

    SECRET = "secret"
    DEPENDENCY = "dependency"
    SECURITY = "security"
    DEPLOYMENT = "deployment"
    CONFIG = "config"

    def get_rank(self) -> int:
        """Tie-break rank used when ordering selected files (higher first)"""
        return {
            Category.SECRET: 5,
            Category.DEPENDENCY: 4,
            Category.SECURITY: 3,
            Category.DEPLOYMENT: 2,
            Category.CONFIG: 1,
        }[self]


class Priority(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    def get_score(self) -> int:
        return {Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}[self]


class Severity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class RiskLevel(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    SAFE = "safe"


class FindingKind(Enum):
    VULNERABILITY = "vulnerability"
    SECRET = "secret"
    DEPENDENCY = "dependency"
    CONFIGURATION = "configuration"
    SECURITY = "security"


def roll_up_risk(critical: int, high: int, medium: int, low: int) -> RiskLevel:
    """Worst-severity-wins roll-up of severity counts into one risk label.

    Info findings never raise the risk above ``safe``.
    """
    if critical > 0:
        return RiskLevel.CRITICAL
    if high > 0:
        return RiskLevel.HIGH
    if medium > 0:
        return RiskLevel.MEDIUM
    if low > 0:
        return RiskLevel.LOW
    return RiskLevel.SAFE


@dataclass(frozen=True)
class ClassifiedFile:
    """A security-relevant file path"""

    path: str
    category: Category
    priority: Priority
    reason: str

    def __post_init__(self):
        if not self.reason:
            raise ValueError(f"ClassifiedFile for {self.path!r} requires a reason")

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "category": self.category.value,
            "priority": self.priority.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class SelectionPolicy:
    """Categories to keep and the maximum number of files to return"""

    enabled_categories: frozenset = field(default_factory=lambda: frozenset(Category))
    max_files: Optional[int] = None

    def __post_init__(self):
        if self.max_files is not None and self.max_files < 0:
            raise ValueError(f"max_files must be >= 0, got {self.max_files}")

    def allows(self, category: Category) -> bool:
        return category in self.enabled_categories


@dataclass(frozen=True)
class Chunk:
    """A bounded, single-category batch of classified files"""

    id: str
    category: Category
    files: tuple[ClassifiedFile, ...]
    priority: Priority
    cost_estimate: int
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category.value,
            "files": [f.to_dict() for f in self.files],
            "priority": self.priority.value,
            "cost_estimate": self.cost_estimate,
            "description": self.description,
        }


@dataclass(frozen=True)
class Finding:
    """One discrete security observation"""

    kind: FindingKind
    severity: Severity
    title: str
    description: str
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    recommendation: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "file_path": self.file_path,
            "line_number": self.line_number,
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class SeveritySummary:
    """Per-severity finding counts and the rolled-up risk"""

    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    info: int = 0
    overall_risk: RiskLevel = RiskLevel.SAFE

    @classmethod
    def from_counts(
        cls, critical: int = 0, high: int = 0, medium: int = 0, low: int = 0, info: int = 0
    ) -> "SeveritySummary":
        return cls(
            total=critical + high + medium + low + info,
            critical=critical,
            high=high,
            medium=medium,
            low=low,
            info=info,
            overall_risk=roll_up_risk(critical, high, medium, low),
        )

    @classmethod
    def from_findings(cls, findings) -> "SeveritySummary":
        counts = {severity: 0 for severity in Severity}
        for finding in findings:
            counts[finding.severity] += 1
        return cls.from_counts(
            critical=counts[Severity.CRITICAL],
            high=counts[Severity.HIGH],
            medium=counts[Severity.MEDIUM],
            low=counts[Severity.LOW],
            info=counts[Severity.INFO],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "critical": self.critical,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
            "info": self.info,
            "overall_risk": self.overall_risk.value,
        }


@dataclass(frozen=True)
class ChunkResult:
    """Result of one successful chunk processing attempt"""

    chunk_id: str
    category: Category
    findings: tuple[Finding, ...]
    severity_summary: SeveritySummary
    processing_duration_ms: int
    cost_used: int
    analysis_intent: str = "default"
    reasoning: Optional[Any] = None  # ReasoningOutcome when the engine ran

    def to_dict(self) -> dict[str, Any]:
        data = {
            "chunk_id": self.chunk_id,
            "category": self.category.value,
            "analysis_intent": self.analysis_intent,
            "findings": [f.to_dict() for f in self.findings],
            "severity_summary": self.severity_summary.to_dict(),
            "processing_duration_ms": self.processing_duration_ms,
            "cost_used": self.cost_used,
        }
        if self.reasoning is not None:
            data["reasoning"] = self.reasoning.to_dict()
        return data


@dataclass(frozen=True)
class ProgressUpdate:
    """Progress snapshot emitted before each chunk is processed"""

    current_chunk: int
    total_chunks: int
    current_category: str
    processed_chunks: int
    failed_chunks: int
    total_findings: int
    estimated_time_remaining_ms: int
    percentage: int


@dataclass(frozen=True)
class AggregatedVerdict:
    """Repository-wide verdict, the terminal output of one run"""

    total_chunks: int
    processed_chunks: int
    failed_chunks: int
    total_findings: int
    severity_counts: SeveritySummary
    overall_risk: RiskLevel
    chunk_results: tuple[ChunkResult, ...]
    total_duration_ms: int
    total_cost_used: int
    narrative_summary: str
    cancelled: bool = False

    @property
    def success_rate(self) -> int:
        """Percentage of chunks processed; an empty run counts as complete"""
        if self.total_chunks == 0:
            return 100
        return round_half_up(self.processed_chunks / self.total_chunks * 100)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_chunks": self.total_chunks,
            "processed_chunks": self.processed_chunks,
            "failed_chunks": self.failed_chunks,
            "total_findings": self.total_findings,
            "severity_counts": self.severity_counts.to_dict(),
            "overall_risk": self.overall_risk.value,
            "chunk_results": [r.to_dict() for r in self.chunk_results],
            "total_duration_ms": self.total_duration_ms,
            "total_cost_used": self.total_cost_used,
            "success_rate": self.success_rate,
            "narrative_summary": self.narrative_summary,
            "cancelled": self.cancelled,
        }


def round_half_up(value: float) -> int:
    """Round .5 upwards (``round`` would use banker's rounding)"""
    return int(value + 0.5)


__all__ = [
    "Category",
    "Priority",
    "Severity",
    "RiskLevel",
    "FindingKind",
    "roll_up_risk",
    "round_half_up",
    "ClassifiedFile",
    "SelectionPolicy",
    "Chunk",
    "Finding",
    "SeveritySummary",
    "ChunkResult",
    "ProgressUpdate",
    "AggregatedVerdict",
]
