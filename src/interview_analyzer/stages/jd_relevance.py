"""
Job description relevance stage.

Scores how well the interview covered the job description, per requirement
category, per question and per answer.
"""

import logging

from interview_analyzer.pipeline.schemas import JDRelevance, Transcription
from interview_analyzer.stages.base import JDRelevanceAnalyzer, LLMStage

logger = logging.getLogger(__name__)

JD_CATEGORIES = (
    "technical_skills",
    "experience_level",
    "cultural_fit",
    "leadership",
    "education_qualifications",
    "soft_skills",
    "communication",
    "problem_solving",
    "industry_knowledge",
    "motivation_fit",
)


class LLMJDRelevanceAnalyzer(LLMStage, JDRelevanceAnalyzer):
    """LLM-based JD relevance scoring."""

    stage_name = "jd_relevance"

    SYSTEM_PROMPT = (
        """You are an expert at analyzing interview relevance to job descriptions. Be strict and accurate.

Scoring rules:
- If the interview discusses a different domain than the job description, the overall score must be below 30.
- A category that was never discussed scores 0 and its details say "Not discussed".
- Scores are 0-100.

Categories: """
        + ", ".join(JD_CATEGORIES)
        + """

Respond with a JSON object:
{
  "overall_score": <0-100>,
  "category_breakdown": {"<category>": {"score": <0-100>, "details": "...",
                                        "matched_skills": [...], "missing_skills": [...]}},
  "question_relevance": [{"question": "exact recruiter question", "relevance_score": <0-100>,
                          "category": "<category>", "reasoning": "..."}],
  "answer_alignment": [{"answer": "exact candidate answer", "alignment_score": <0-100>,
                        "key_skills": [...], "categories": [...], "reasoning": "...",
                        "tone": "Positive" | "Neutral" | "Negative"}],
  "skill_gap_analysis": {"critical_missing_skills": [...], "unexpected_skills": [...],
                         "overqualified_areas": [...], "underqualified_areas": [...]},
  "recommended_action": "..."
}"""
    )

    async def analyze(self, transcript: Transcription, job_description: str) -> JDRelevance:
        content = f"Job description:\n{job_description}\n\nInterview transcript:\n{transcript.as_dialogue()}"
        result = await self._ask(self.SYSTEM_PROMPT, content, JDRelevance)
        # Blending fields are filled in by the pipeline, never by the model.
        result = result.model_copy(update={"embedding_score": 0.0, "combined_score": None})
        logger.info(f"JD relevance: {result.overall_score:.0f}")
        return result
