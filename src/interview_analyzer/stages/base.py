"""
Capability interfaces for the external analysis stages.

The orchestrator only talks to these ABCs. `AnalysisServices` bundles one
implementation of each and is injected into the orchestrator, so tests can
swap in fakes and configuration can swap in no-op adapters.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel

from interview_analyzer.models.llm_client import LLMClientBase, Message
from interview_analyzer.pipeline.schemas import (
    AlignmentResult,
    ContentAnalysis,
    EmbeddingAnalysis,
    Explanation,
    FlowAnalysis,
    JDRelevance,
    PIIEntity,
    SentimentAnalysis,
    Transcription,
    TranscriptSegment,
)

if TYPE_CHECKING:
    from interview_analyzer.config import Settings

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Transcripts longer than this are truncated before being sent to the model.
MAX_PROMPT_CHARS = 24_000


class Transcriber(ABC):
    @abstractmethod
    async def transcribe(self, file_path: str | Path) -> Transcription:
        """
        Transcribe a recording into speaker-labelled segments.

        Raises:
            TranscriptionError: If the audio cannot be read or labelled.
        """
        ...


class ContentClassifier(ABC):
    @abstractmethod
    async def classify(self, transcript: Transcription) -> ContentAnalysis: ...


class PIIDetector(ABC):
    @abstractmethod
    async def detect(self, text: str) -> list[PIIEntity]:
        """Find PII spans in `text`; positions are offsets into `text`."""
        ...


class SentimentAnalyzer(ABC):
    @abstractmethod
    async def analyze(
        self,
        transcript: Transcription,
        content: ContentAnalysis | None = None,
    ) -> SentimentAnalysis: ...


class JDRelevanceAnalyzer(ABC):
    @abstractmethod
    async def analyze(self, transcript: Transcription, job_description: str) -> JDRelevance: ...


class FlowAnalyzer(ABC):
    @abstractmethod
    async def analyze(self, transcript: Transcription) -> FlowAnalysis: ...


class AlignmentAnalyzer(ABC):
    """Résumé alignment, interview-only assessment and recruiter name lookup."""

    @abstractmethod
    async def align_resume(
        self,
        transcript: Transcription,
        resume_text: str,
        job_description: str,
    ) -> AlignmentResult: ...

    @abstractmethod
    async def assess_interview(self, transcript: Transcription, job_description: str) -> AlignmentResult: ...

    @abstractmethod
    async def recruiter_name(self, transcript: Transcription) -> str | None:
        """Best-effort name of the recruiter; None when it cannot be found."""
        ...


class Explainer(ABC):
    @abstractmethod
    async def explain(self, decision: str, score: float, context: dict[str, Any]) -> Explanation: ...


class Embedder(ABC):
    @abstractmethod
    async def analyze(self, job_description: str, answers: Sequence[TranscriptSegment]) -> EmbeddingAnalysis:
        """Compare the job description against each candidate answer."""
        ...

    async def close(self) -> None:
        return None


class LLMStage:
    """Shared plumbing for stages backed by the LLM client."""

    stage_name = "llm"

    def __init__(self, llm_client: LLMClientBase) -> None:
        self._llm_client = llm_client

    async def _ask(self, system_prompt: str, content: str, response_model: type[ModelT]) -> ModelT:
        messages = [
            Message(role="system", content=system_prompt),
            Message(role="user", content=content[:MAX_PROMPT_CHARS]),
        ]
        return await self._llm_client.chat_structured(
            messages,
            response_model,
            stage=self.stage_name,
        )


@dataclass
class AnalysisServices:
    """One implementation of every analysis capability."""

    transcriber: Transcriber
    classifier: ContentClassifier
    pii_detector: PIIDetector
    sentiment: SentimentAnalyzer
    jd_relevance: JDRelevanceAnalyzer
    flow: FlowAnalyzer
    alignment: AlignmentAnalyzer
    explainer: Explainer
    embedder: Embedder

    @classmethod
    def from_settings(cls, settings: Settings, llm_client: LLMClientBase) -> AnalysisServices:
        """
        Build the real adapters.

        Args:
            settings: Application settings.
            llm_client: Shared LLM client.

        Returns:
            Services bundle. The embedder is a no-op unless embeddings are enabled.
        """
        from interview_analyzer.stages.content import LLMContentClassifier
        from interview_analyzer.stages.embeddings import NoOpEmbedder, OllamaEmbedder
        from interview_analyzer.stages.explainability import LLMExplainer
        from interview_analyzer.stages.flow_analysis import LLMFlowAnalyzer
        from interview_analyzer.stages.jd_relevance import LLMJDRelevanceAnalyzer
        from interview_analyzer.stages.pii import HybridPIIDetector
        from interview_analyzer.stages.resume_alignment import LLMAlignmentAnalyzer
        from interview_analyzer.stages.sentiment import LLMSentimentAnalyzer
        from interview_analyzer.stages.transcription import WhisperTranscriber

        if settings.use_embeddings:
            embedder: Embedder = OllamaEmbedder(
                host=settings.ollama_host,
                model=settings.embedding_model,
                timeout=settings.embedding_timeout,
            )
        else:
            embedder = NoOpEmbedder()
        logger.info(f"Embeddings {'enabled' if settings.use_embeddings else 'disabled'}")

        return cls(
            transcriber=WhisperTranscriber(settings, llm_client),
            classifier=LLMContentClassifier(llm_client),
            pii_detector=HybridPIIDetector(llm_client),
            sentiment=LLMSentimentAnalyzer(llm_client),
            jd_relevance=LLMJDRelevanceAnalyzer(llm_client),
            flow=LLMFlowAnalyzer(llm_client),
            alignment=LLMAlignmentAnalyzer(llm_client),
            explainer=LLMExplainer(llm_client),
            embedder=embedder,
        )

    async def close(self) -> None:
        await self.embedder.close()
