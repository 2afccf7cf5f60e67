"""
Résumé alignment stage.

Compares the interview against the candidate's résumé when one was provided,
otherwise assesses candidate and recruiter from the interview alone. Also
looks up the recruiter's name.
"""

import logging

from pydantic import BaseModel

from interview_analyzer.pipeline.errors import StageError
from interview_analyzer.pipeline.schemas import AlignmentResult, Transcription
from interview_analyzer.stages.base import AlignmentAnalyzer, LLMStage

logger = logging.getLogger(__name__)

_REPORT_SHAPE = """  "candidate_report": {
    "skills_demonstration": {"claimed_skills": [...], "demonstrated_skills": [...], "score": <0-100>},
    "consistency_check": {"score": <0-100>, "inconsistencies": [...]},
    "communication_rating": {"clarity": <0-100>, "confidence": <0-100>, "depth": <0-100>},
    "strengths": [...], "areas_for_improvement": [...], "overall_score": <0-100>, "summary": "..."
  },
  "recruiter_report": {
    "question_quality": {"resume_relevance": <0-100>, "depth": <0-100>, "engagement": <0-100>},
    "interview_coverage": {"experience_covered": [...], "skills_covered": [...], "missed_opportunities": [...]},
    "effectiveness": {"score": <0-100>, "strengths": [...], "improvements": [...]},
    "overall_score": <0-100>, "summary": "..."
  }"""


class RecruiterName(BaseModel):
    name: str | None = None


class LLMAlignmentAnalyzer(LLMStage, AlignmentAnalyzer):
    """LLM-based résumé alignment and interview assessment."""

    stage_name = "resume_alignment"

    RESUME_PROMPT = (
        """You are an expert recruiter comparing a recorded interview with the candidate's résumé.
Assess whether the recruiter's questions targeted the résumé and whether the
candidate's answers are consistent with and as deep as the résumé claims.

Respond with a JSON object:
{
  "resume_analysis": {
    "recruiter_question_relevance": {"total_questions": <n>, "resume_related_questions": <n>,
                                     "relevance_percentage": <0-100>,
                                     "examples": [{"question": "...", "is_resume_related": true,
                                                   "resume_section": "..."}]},
    "candidate_response_quality": {"consistency_score": <0-100>, "depth_score": <0-100>,
                                   "examples": [{"claim": "...", "response": "...",
                                                 "is_consistent": true, "notes": "..."}]},
    "overall_assessment": {"recruiter_effectiveness": <0-100>, "candidate_performance": <0-100>,
                           "summary": "..."}
  },
"""
        + _REPORT_SHAPE
        + "\n}"
    )

    INTERVIEW_ONLY_PROMPT = (
        """You are an expert recruiter reviewing a recorded interview against the job description.
No résumé is available: judge the candidate only on what they said, and the
recruiter on the questions they asked.

Respond with a JSON object:
{
"""
        + _REPORT_SHAPE
        + "\n}"
    )

    NAME_PROMPT = """Find the recruiter's (interviewer's) name in this interview transcript.
Only return a name the recruiter states or is addressed by. If no name is given, use null.

Respond with a JSON object: {"name": "First Last" | null}"""

    async def align_resume(
        self,
        transcript: Transcription,
        resume_text: str,
        job_description: str,
    ) -> AlignmentResult:
        content = (
            f"Job description:\n{job_description}\n\n"
            f"Résumé:\n{resume_text}\n\n"
            f"Interview transcript:\n{transcript.as_dialogue()}"
        )
        result = await self._ask(self.RESUME_PROMPT, content, AlignmentResult)
        if result.resume_analysis is None:
            logger.warning("Résumé alignment returned no resume_analysis section")
        return result

    async def assess_interview(self, transcript: Transcription, job_description: str) -> AlignmentResult:
        content = f"Job description:\n{job_description}\n\nInterview transcript:\n{transcript.as_dialogue()}"
        result = await self._ask(self.INTERVIEW_ONLY_PROMPT, content, AlignmentResult)
        return result.model_copy(update={"resume_analysis": None})

    async def recruiter_name(self, transcript: Transcription) -> str | None:
        """Look up the recruiter's name; returns None instead of failing."""
        opening = "\n".join(f"{s.speaker}: {s.text}" for s in transcript.segments[:20])
        try:
            result = await self._ask(self.NAME_PROMPT, opening, RecruiterName)
        except StageError as e:
            logger.warning(f"Recruiter name extraction failed: {e}")
            return None
        name = (result.name or "").strip()
        if not name or name.lower() in ("null", "none", "unknown", "recruiter"):
            return None
        return name
