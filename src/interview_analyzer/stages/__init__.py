"""
Analysis stages.

Capability interfaces and their real adapters.
"""

from interview_analyzer.stages.base import (
    AlignmentAnalyzer,
    AnalysisServices,
    ContentClassifier,
    Embedder,
    Explainer,
    FlowAnalyzer,
    JDRelevanceAnalyzer,
    PIIDetector,
    SentimentAnalyzer,
    Transcriber,
)
from interview_analyzer.stages.documents import read_document
from interview_analyzer.stages.embeddings import NoOpEmbedder, OllamaEmbedder
from interview_analyzer.stages.encryption import TranscriptCipher, hash_data
from interview_analyzer.stages.pii import partial_redact, redact_pii

__all__ = [
    "AlignmentAnalyzer",
    "AnalysisServices",
    "ContentClassifier",
    "Embedder",
    "Explainer",
    "FlowAnalyzer",
    "JDRelevanceAnalyzer",
    "NoOpEmbedder",
    "OllamaEmbedder",
    "PIIDetector",
    "SentimentAnalyzer",
    "Transcriber",
    "TranscriptCipher",
    "hash_data",
    "partial_redact",
    "read_document",
    "redact_pii",
]
