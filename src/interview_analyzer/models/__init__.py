"""
Models module for LLM client abstraction.

Provides a unified interface for interacting with Ollama locally.
"""

from interview_analyzer.models.json_extract import extract_json
from interview_analyzer.models.llm_client import (
    DEFAULT_OLLAMA_MODEL,
    LLMClient,
    LLMClientBase,
    LLMResponse,
    Message,
    OllamaError,
)
from interview_analyzer.models.usage import UsageMeter, metered, record_usage

__all__ = [
    "LLMClient",
    "LLMClientBase",
    "LLMResponse",
    "Message",
    "OllamaError",
    "DEFAULT_OLLAMA_MODEL",
    "UsageMeter",
    "extract_json",
    "metered",
    "record_usage",
]
