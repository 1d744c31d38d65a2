"""Reasoning engine package: LLM provider management and chunk analysis."""

from reasoning.engine import ReasoningEngine, ReasoningOutcome, parse_analysis_response
from reasoning.llm_manager import LLMManager
from reasoning.prompts import build_chunk_prompt

__all__ = [
    "LLMManager",
    "ReasoningEngine",
    "ReasoningOutcome",
    "build_chunk_prompt",
    "parse_analysis_response",
]
