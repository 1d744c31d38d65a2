"""
Tests for the analysis chunker.

Covers category partitioning, chunk ordering, priority roll-up and the
heuristic cost estimate (multipliers, cap and config overrides).
"""

import sys
from pathlib import Path

import pytest

# Ensure scripts/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "scripts"))

from analysis_chunker import AnalysisChunker
from models import Category, ClassifiedFile, Priority
from security_file_classifier import classify


def _files(*paths):
    return [classify(p) for p in paths]


# ============================================================================
# Test chunk
# ============================================================================


class TestChunk:
    def test_empty_input(self):
        assert AnalysisChunker().chunk([]) == []

    def test_one_chunk_per_category(self):
        files = _files(".env", "secrets.json", "package.json", "config.json")
        chunks = AnalysisChunker().chunk(files)

        assert [c.category for c in chunks] == [Category.SECRET, Category.DEPENDENCY, Category.CONFIG]
        assert len({c.category for c in chunks}) == len(chunks)

    def test_partition_is_complete(self):
        files = _files(".env", "package.json", "Dockerfile", "config.json", "secrets.json")
        chunks = AnalysisChunker().chunk(files)

        chunked = [f for c in chunks for f in c.files]
        assert sorted(f.path for f in chunked) == sorted(f.path for f in files)
        for chunk in chunks:
            assert all(f.category is chunk.category for f in chunk.files)

    def test_file_order_within_chunk(self):
        files = _files("secrets.json", ".env", "credentials.json")
        (chunk,) = AnalysisChunker().chunk(files)
        assert [f.path for f in chunk.files] == ["secrets.json", ".env", "credentials.json"]

    def test_ids_unique(self):
        files = _files(".env", "package.json", "config.json")
        chunks = AnalysisChunker().chunk(files)
        assert len({c.id for c in chunks}) == 3
        assert all(c.id.startswith(f"chunk-{c.category.value}-") for c in chunks)

    def test_description(self):
        (chunk,) = AnalysisChunker().chunk(_files(".env", "secrets.json"))
        assert chunk.description == "2 secret files"

    def test_priority_is_highest_member(self):
        files = [
            ClassifiedFile("a.yml", Category.CONFIG, Priority.LOW, "test"),
            ClassifiedFile("b.yml", Category.CONFIG, Priority.HIGH, "test"),
        ]
        (chunk,) = AnalysisChunker().chunk(files)
        assert chunk.priority is Priority.HIGH


# ============================================================================
# Test estimate_cost
# ============================================================================


class TestEstimateCost:
    @pytest.mark.parametrize(
        "category,count,expected",
        [
            (Category.SECRET, 2, 400),
            (Category.DEPENDENCY, 3, 450),
            (Category.CONFIG, 1, 120),
            (Category.SECURITY, 4, 400),
            (Category.DEPLOYMENT, 1, 100),
        ],
    )
    def test_default_multipliers(self, category, count, expected):
        assert AnalysisChunker().estimate_cost(category, count) == expected

    def test_cap(self):
        assert AnalysisChunker().estimate_cost(Category.SECRET, 30) == 4000

    def test_chunk_carries_estimate(self):
        (chunk,) = AnalysisChunker().chunk(_files(".env", "secrets.json"))
        assert chunk.cost_estimate == 400

    def test_config_overrides(self):
        chunker = AnalysisChunker(
            {
                "chunk_base_cost_per_file": 10,
                "chunk_cost_cap": 25,
                "chunk_cost_multipliers": {"security": 2.0},
            }
        )
        assert chunker.estimate_cost(Category.SECURITY, 1) == 20
        assert chunker.estimate_cost(Category.SECURITY, 5) == 25
        # Unmentioned categories keep their default multiplier
        assert chunker.estimate_cost(Category.SECRET, 1) == 20

    def test_unknown_multiplier_category_ignored(self):
        chunker = AnalysisChunker({"chunk_cost_multipliers": {"bogus": 9.0}})
        assert chunker.estimate_cost(Category.DEPLOYMENT, 1) == 100


# ============================================================================
# Test get_chunk_summary
# ============================================================================


class TestChunkSummary:
    def test_summary_text(self):
        chunks = AnalysisChunker().chunk(_files(".env", "package.json"))
        summary = AnalysisChunker.get_chunk_summary(chunks)
        assert summary.startswith("Created 2 chunks: ")
        assert "secret: 1 files (high priority, ~200 units)" in summary
        assert "dependency: 1 files (high priority, ~150 units)" in summary
