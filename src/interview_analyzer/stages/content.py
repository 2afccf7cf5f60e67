"""
Content classification stage.

Decides whether a recording is a two-person job interview before any further
analysis is spent on it.
"""

import logging

from interview_analyzer.pipeline.schemas import ContentAnalysis, Transcription
from interview_analyzer.stages.base import ContentClassifier, LLMStage

logger = logging.getLogger(__name__)


class LLMContentClassifier(LLMStage, ContentClassifier):
    """LLM-based content classifier."""

    stage_name = "content_classification"

    SYSTEM_PROMPT = """You are a content classifier with expertise in interview analysis and topic domain detection.

1. Content type:
   - interview: two-way conversation with a question and answer pattern about a job or experience
   - monologue: a single speaker presenting information
   - presentation: structured information delivery, possibly with several speakers
   - other: general conversation or discussion

2. Count the distinct speakers accurately.

3. Topic domains: list the specific professional domains discussed
   (e.g. "finance", "software engineering", "healthcare"), not generic terms.

4. Job relevance: is_job_related is true when the content is about employment,
   hiring, experience, skills or an offer; false for religious, educational or
   entertainment content.

Respond with a JSON object:
{
  "content_type": "interview" | "monologue" | "presentation" | "other",
  "speaker_count": <number>,
  "topics": ["specific topic", ...],
  "topic_domains": ["domain", ...],
  "is_job_related": <true|false>,
  "recommended_analysis": ["analysis type", ...]
}"""

    async def classify(self, transcript: Transcription) -> ContentAnalysis:
        speakers = sorted(transcript.speakers)
        content = (
            f"Number of speakers detected: {len(speakers)}\n"
            f"Speaker labels: {', '.join(speakers)}\n\n"
            f"Full content:\n{transcript.as_dialogue()}"
        )
        result = await self._ask(self.SYSTEM_PROMPT, content, ContentAnalysis)
        logger.info(
            f"Classified content as {result.content_type.value} "
            f"({result.speaker_count} speakers, job related: {result.is_job_related})"
        )
        return result
