"""
Sentiment analysis stage.
"""

import logging

from interview_analyzer.pipeline.schemas import ContentAnalysis, SentimentAnalysis, Transcription
from interview_analyzer.stages.base import LLMStage, SentimentAnalyzer

logger = logging.getLogger(__name__)


class LLMSentimentAnalyzer(LLMStage, SentimentAnalyzer):
    """Per-speaker sentiment plus a timeline, scored by the LLM."""

    stage_name = "sentiment"

    SYSTEM_PROMPT = """You are a sentiment analyst with deep expertise in interview psychology.
Analyze the real emotional tone of each speaker, taking context into account:
- Professional, polite exchanges are neutral to positive, not negative.
- Honest admissions of gaps ("I haven't used that yet") are not negative.
- Nervousness is different from negativity.

For each speaker give the share of positive, neutral and negative statements
(percentages that add up to 100) and an overall score from 1 (very negative)
to 10 (very positive), with a short reasoning.

Respond with a JSON object:
{
  "recruiter_sentiment": {"positive": <0-100>, "neutral": <0-100>, "negative": <0-100>,
                          "overall_score": <1-10>, "reasoning": "..."},
  "candidate_sentiment": {"positive": <0-100>, "neutral": <0-100>, "negative": <0-100>,
                          "overall_score": <1-10>, "reasoning": "..."},
  "timeline": [{"timestamp": "MM:SS", "speaker": "Recruiter" | "Candidate", "score": <1-10>}]
}"""

    async def analyze(
        self,
        transcript: Transcription,
        content: ContentAnalysis | None = None,
    ) -> SentimentAnalysis:
        context = ""
        if content is not None:
            topics = ", ".join(content.topics) or "unknown"
            context = f"Content type: {content.content_type.value}. Topics: {topics}.\n\n"

        lines = "\n".join(f"[{s.timestamp:.0f}s] {s.speaker}: {s.text}" for s in transcript.segments)
        result = await self._ask(self.SYSTEM_PROMPT, f"{context}Transcript:\n{lines}", SentimentAnalysis)
        logger.info(
            f"Sentiment: recruiter {result.recruiter_sentiment.overall_score:.1f}, "
            f"candidate {result.candidate_sentiment.overall_score:.1f}"
        )
        return result
