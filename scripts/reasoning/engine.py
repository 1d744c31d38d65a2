"""
Reasoning Engine - turns one chunk description into structured analysis.

``ReasoningEngine.analyze`` sends a JSON analysis context to the configured
LLM and validates the answer against ``schemas.SecurityAnalysis``.

Failure handling:
- Transport errors and timeouts raise ``ReasoningError``; the orchestrator
  records them as failed chunks.
- Responses that are not parseable JSON, or that fail schema validation,
  come back as a ``ReasoningOutcome`` with ``parse_error`` set.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from exceptions import ReasoningError, ReasoningResponseError
from models import Finding
from reasoning.llm_manager import LLMManager
from reasoning.prompts import build_chunk_prompt
from schemas.analysis import SecurityAnalysis

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class ReasoningOutcome:
    """Result of one reasoning-engine call.

    Exactly one of ``analysis`` and ``parse_error`` is set.
    """

    model: str
    analysis: Optional[SecurityAnalysis] = None
    parse_error: Optional[str] = None
    raw_response: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def ok(self) -> bool:
        return self.analysis is not None

    @property
    def findings(self) -> List[Finding]:
        return self.analysis.to_findings() if self.analysis else []

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "model_used": self.model,
            "analysis_timestamp": self.timestamp,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "cost_usd": round(self.cost_usd, 6),
        }
        if self.analysis is not None:
            data["ai_analysis"] = self.analysis.model_dump()
        else:
            data["ai_analysis"] = {
                "error": self.parse_error,
                "raw_response": self.raw_response[:2000],
            }
        return data


def parse_analysis_response(response: str) -> SecurityAnalysis:
    """Parse raw model output into a ``SecurityAnalysis``.

    Models sometimes wrap the JSON in prose or code fences, so the outermost
    ``{...}`` span is extracted first.

    Raises:
        ReasoningResponseError: If no JSON object is found, it does not
            decode, or it fails schema validation
    """
    match = _JSON_OBJECT.search(response or "")
    if not match:
        raise ReasoningResponseError("Could not find JSON in AI response", response)

    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ReasoningResponseError(f"Failed to parse AI response as JSON: {e}", response) from e

    if not isinstance(payload, dict):
        raise ReasoningResponseError("AI response JSON is not an object", response)

    try:
        return SecurityAnalysis.model_validate(payload)
    except ValidationError as e:
        raise ReasoningResponseError(f"AI response failed schema validation: {e}", response) from e


class ReasoningEngine:
    """Delegates chunk analysis to an LLM.

    Parameters
    ----------
    llm : LLMManager
        An initialized manager.  The engine does not own it; whoever opened
        the manager closes it at the end of the run.
    max_tokens : int
        Output token budget per call.
    """

    def __init__(self, llm: LLMManager, max_tokens: int = 2000):
        self.llm = llm
        self.max_tokens = max_tokens

    @classmethod
    def from_config(cls, llm: LLMManager, config: dict) -> "ReasoningEngine":
        return cls(llm, max_tokens=int(config.get("reasoning_max_tokens", 2000)))

    def analyze(self, context: Dict[str, Any]) -> ReasoningOutcome:
        """Analyze one chunk context.

        Args:
            context: JSON-serializable dict (repository, analysis_intent,
                category, files)

        Returns:
            ReasoningOutcome with either ``analysis`` or ``parse_error``

        Raises:
            ReasoningError: If the LLM call fails or times out
        """
        prompt = build_chunk_prompt(context)
        operation = f"Analyze {context.get('category', 'unknown')} chunk"

        try:
            response, input_tokens, output_tokens = self.llm.call_llm_api(
                prompt=prompt,
                max_tokens=self.max_tokens,
                operation=operation,
            )
        except ReasoningError:
            raise
        except Exception as e:
            raise ReasoningError(f"{operation} failed: {type(e).__name__}: {e}") from e

        cost = LLMManager.calculate_actual_cost(input_tokens, output_tokens, self.llm.provider)

        try:
            analysis = parse_analysis_response(response)
        except ReasoningResponseError as e:
            logger.warning("%s returned malformed output: %s", operation, e)
            return ReasoningOutcome(
                model=self.llm.model or "",
                parse_error=str(e),
                raw_response=e.raw_response,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost_usd=cost,
            )

        logger.debug(
            "%s: %d findings, %d recommendations",
            operation,
            len(analysis.critical_findings) + len(analysis.vulnerability_assessment),
            len(analysis.recommendations),
        )
        return ReasoningOutcome(
            model=self.llm.model or "",
            analysis=analysis,
            raw_response=response,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
        )
