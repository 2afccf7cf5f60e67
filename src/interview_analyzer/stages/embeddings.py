"""
Optional embedding similarity stage.

Embeds the job description and every candidate answer through the Ollama
embeddings endpoint and scores answers by cosine similarity to the JD.
"""

import logging
from collections.abc import Sequence

import httpx
import numpy as np

from interview_analyzer.models.usage import estimate_tokens, record_usage
from interview_analyzer.pipeline.errors import StageError
from interview_analyzer.pipeline.schemas import EmbeddingAnalysis, EmbeddingMatch, TranscriptSegment
from interview_analyzer.stages.base import Embedder

logger = logging.getLogger(__name__)

MATCH_TEXT_LENGTH = 100


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Raises:
        ValueError: If the dimensions differ.
    """
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise ValueError(f"Embeddings must have the same dimension ({va.shape} vs {vb.shape})")
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class OllamaEmbedder(Embedder):
    """Embeddings from a local Ollama server."""

    def __init__(self, host: str, model: str, timeout: float = 60.0) -> None:
        self._host = host.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._host, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def embed(self, text: str) -> list[float]:
        client = await self._get_client()
        try:
            response = await client.post("/api/embeddings", json={"model": self._model, "prompt": text})
            response.raise_for_status()
        except httpx.HTTPError as e:
            record_usage(calls=1)
            raise StageError("embeddings", f"embedding request failed: {e}") from e

        record_usage(calls=1, tokens=estimate_tokens(text))
        embedding = response.json().get("embedding")
        if not embedding:
            raise StageError("embeddings", "empty embedding returned")
        return embedding

    async def analyze(self, job_description: str, answers: Sequence[TranscriptSegment]) -> EmbeddingAnalysis:
        """
        Score each answer against the job description.

        Makes one call for the JD plus one per answer.

        Returns:
            Similarities on a 0-100 scale.
        """
        jd_embedding = await self.embed(job_description)

        matches: list[EmbeddingMatch] = []
        for answer in answers:
            vector = await self.embed(answer.text)
            try:
                similarity = cosine_similarity(jd_embedding, vector) * 100
            except ValueError as e:
                raise StageError("embeddings", str(e)) from e
            matches.append(EmbeddingMatch(text=answer.text[:MATCH_TEXT_LENGTH], similarity=similarity))

        by_category: dict[str, list[float]] = {}
        for match in matches:
            by_category.setdefault(match.category, []).append(match.similarity)

        overall = float(np.mean([m.similarity for m in matches])) if matches else 0.0
        logger.info(f"Embedding similarity {overall:.1f} over {len(matches)} answers")
        return EmbeddingAnalysis(
            overall_similarity=overall,
            answer_matches=matches,
            category_breakdown={cat: float(np.mean(scores)) for cat, scores in by_category.items()},
            available=True,
        )


class NoOpEmbedder(Embedder):
    """Used when embeddings are disabled; makes no calls."""

    async def analyze(self, job_description: str, answers: Sequence[TranscriptSegment]) -> EmbeddingAnalysis:
        return EmbeddingAnalysis(available=False)
