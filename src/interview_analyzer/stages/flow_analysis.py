"""
Conversation flow scoring stage.
"""

import logging

from interview_analyzer.pipeline.schemas import FlowAnalysis, Transcription
from interview_analyzer.stages.base import FlowAnalyzer, LLMStage

logger = logging.getLogger(__name__)


class LLMFlowAnalyzer(LLMStage, FlowAnalyzer):
    """LLM-based continuity score, flow breaks and insights."""

    stage_name = "flow"

    SYSTEM_PROMPT = """You are an expert at analyzing conversational flow and interview structure.
Evaluate how naturally the interview progresses: do questions build on previous
answers, are topic changes smooth, are there abrupt jumps or awkward pauses?

Respond with a JSON object:
{
  "continuity_score": <0-100>,
  "flow_breaks": [{"timestamp": "MM:SS", "issue": "...", "severity": "low" | "medium" | "high"}],
  "insights": ["actionable observation", ...]
}"""

    async def analyze(self, transcript: Transcription) -> FlowAnalysis:
        lines = "\n".join(f"[{s.timestamp:.0f}s] {s.speaker}: {s.text}" for s in transcript.segments)
        result = await self._ask(self.SYSTEM_PROMPT, f"Transcript:\n{lines}", FlowAnalysis)
        logger.info(f"Flow continuity: {result.continuity_score:.0f} ({len(result.flow_breaks)} breaks)")
        return result
