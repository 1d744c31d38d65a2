#!/usr/bin/env python3
"""
Analysis Chunker

Groups classified files into bounded, single-category analysis units.  Each
chunk carries a heuristic cost estimate that budget-aware callers can use to
size reasoning-engine requests; the chunker itself never enforces it.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from models import Category, Chunk, ClassifiedFile, Priority

__all__ = ["AnalysisChunker", "DEFAULT_COST_MULTIPLIERS"]

logger = logging.getLogger(__name__)

DEFAULT_BASE_COST_PER_FILE = 100
DEFAULT_COST_CAP = 4000
DEFAULT_COST_MULTIPLIERS: Dict[Category, float] = {
    Category.SECRET: 2.0,
    Category.DEPENDENCY: 1.5,
    Category.CONFIG: 1.2,
}


class AnalysisChunker:
    """Group classified files by category into analysis chunks.

    Parameters
    ----------
    config : dict | None
        Flat configuration dict.  Reads ``chunk_base_cost_per_file``,
        ``chunk_cost_cap`` and ``chunk_cost_multipliers`` (category name to
        float); missing keys fall back to the module defaults.
    """

    def __init__(self, config: Optional[dict] = None):
        config = config or {}
        self.base_cost_per_file = config.get("chunk_base_cost_per_file", DEFAULT_BASE_COST_PER_FILE)
        self.cost_cap = config.get("chunk_cost_cap", DEFAULT_COST_CAP)

        self.cost_multipliers = dict(DEFAULT_COST_MULTIPLIERS)
        for name, multiplier in (config.get("chunk_cost_multipliers") or {}).items():
            try:
                self.cost_multipliers[Category(name)] = float(multiplier)
            except ValueError:
                logger.warning("Ignoring cost multiplier for unknown category %r", name)

    def chunk(self, files: Iterable[ClassifiedFile]) -> List[Chunk]:
        """Create one chunk per category present in *files*.

        Chunks come out in the order their category first appears in the
        input, which for selector output is rank order.  File order inside a
        chunk is the input order.
        """
        groups: Dict[Category, List[ClassifiedFile]] = {}
        for classified in files:
            groups.setdefault(classified.category, []).append(classified)

        chunks = []
        for category, members in groups.items():
            chunks.append(
                Chunk(
                    id=f"chunk-{category.value}-{uuid.uuid4().hex[:12]}",
                    category=category,
                    files=tuple(members),
                    priority=self._chunk_priority(members),
                    cost_estimate=self.estimate_cost(category, len(members)),
                    description=f"{len(members)} {category.value} files",
                )
            )

        if chunks:
            logger.debug(self.get_chunk_summary(chunks))
        return chunks

    @staticmethod
    def _chunk_priority(files: List[ClassifiedFile]) -> Priority:
        return max((f.priority for f in files), key=lambda p: p.get_score())

    def estimate_cost(self, category: Category, file_count: int) -> int:
        """Heuristic cost units for a chunk of *file_count* files."""
        multiplier = self.cost_multipliers.get(category, 1.0)
        cost = file_count * self.base_cost_per_file * multiplier
        return int(round(min(cost, self.cost_cap)))

    @staticmethod
    def get_chunk_summary(chunks: List[Chunk]) -> str:
        """One-line description of *chunks* for logs."""
        summary = ", ".join(
            f"{c.category.value}: {len(c.files)} files "
            f"({c.priority.value} priority, ~{c.cost_estimate} units)"
            for c in chunks
        )
        return f"Created {len(chunks)} chunks: {summary}"
