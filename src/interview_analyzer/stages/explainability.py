"""
Explainability stage.
"""

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from interview_analyzer.pipeline.schemas import Evidence, Explanation
from interview_analyzer.stages.base import Explainer, LLMStage

logger = logging.getLogger(__name__)


class _ExplanationPayload(BaseModel):
    reasoning: list[str] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)
    confidence_level: float = 0.5
    alternative_interpretations: list[str] = Field(default_factory=list)


class LLMExplainer(LLMStage, Explainer):
    """Asks the LLM to justify a score with reasoning and evidence."""

    stage_name = "explainability"

    SYSTEM_PROMPT = """You are an explainable AI expert. Given a decision and its score, give transparent reasoning.

Respond with a JSON object:
{
  "reasoning": ["step-by-step explanation", ...],
  "evidence": [{"statement": "...", "weight": <0-1>, "source": "..."}],
  "confidence_level": <0-1>,
  "alternative_interpretations": ["...", ...]
}"""

    async def explain(self, decision: str, score: float, context: dict[str, Any]) -> Explanation:
        """
        Explain a score.

        Args:
            decision: What the score measures.
            score: The score being explained.
            context: Extra facts the model may cite.

        Returns:
            Explanation with confidence as a 0-100 percentage.
        """
        content = f"Decision: {decision}\nScore: {score:.1f}\nContext: {json.dumps(context, indent=2, default=str)}"
        payload = await self._ask(self.SYSTEM_PROMPT, content, _ExplanationPayload)
        confidence = payload.confidence_level
        # Models answer on either a 0-1 or a 0-100 scale.
        if confidence <= 1:
            confidence *= 100
        return Explanation(
            reasoning=payload.reasoning,
            evidence=payload.evidence,
            confidence_level=confidence,
            alternative_interpretations=payload.alternative_interpretations,
        )
