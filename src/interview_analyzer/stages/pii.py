"""
PII detection and redaction.

Combines contextual LLM detection with regex detectors for well-formed
identifiers, then redacts the merged spans.
"""

import logging
import re
from collections.abc import Iterable

from interview_analyzer.pipeline.errors import StageError
from interview_analyzer.pipeline.schemas import PIIDetection, PIIEntity, PIIType
from interview_analyzer.stages.base import LLMStage, PIIDetector

logger = logging.getLogger(__name__)

_REGEX_DETECTORS: tuple[tuple[PIIType, re.Pattern[str], float], ...] = (
    (PIIType.EMAIL, re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), 0.95),
    (PIIType.SSN, re.compile(r"\b\d{3}-\d{2}-\d{4}\b"), 0.98),
    (PIIType.CREDIT_CARD, re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"), 0.85),
    (PIIType.PHONE, re.compile(r"(?:\+?1[-.\s]?)?\(?\b\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"), 0.9),
    (
        PIIType.ADDRESS,
        re.compile(
            r"\b\d+\s+[A-Z][a-z]+\s+(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Drive|Dr|Lane|Ln)\b",
            re.IGNORECASE,
        ),
        0.75,
    ),
)


def detect_pii_with_regex(text: str) -> list[PIIEntity]:
    """Find emails, SSNs, card numbers, phone numbers and street addresses."""
    entities: list[PIIEntity] = []
    for pii_type, pattern, confidence in _REGEX_DETECTORS:
        for match in pattern.finditer(text):
            entities.append(
                PIIEntity(type=pii_type, value=match.group(0), position=match.start(), confidence=confidence)
            )
    return entities


def _locate(text: str, entity: PIIEntity) -> PIIEntity | None:
    """Fix up the position of a model-reported entity; None if it is not in the text."""
    if 0 <= entity.position and text[entity.position : entity.end] == entity.value:
        return entity
    found = text.find(entity.value)
    if found < 0:
        return None
    return entity.model_copy(update={"position": found})


def deduplicate_entities(entities: Iterable[PIIEntity]) -> list[PIIEntity]:
    """
    Drop overlapping spans, keeping the higher-confidence one.

    Returns:
        Non-overlapping entities ordered by position.
    """
    kept: list[PIIEntity] = []
    for entity in sorted(entities, key=lambda e: (-e.confidence, e.position)):
        if any(entity.position < other.end and other.position < entity.end for other in kept):
            continue
        kept.append(entity)
    return sorted(kept, key=lambda e: e.position)


def redact_pii(text: str, entities: Iterable[PIIEntity]) -> str:
    """Replace every entity span with `[REDACTED-<TYPE>]`."""
    redacted = text
    for entity in sorted(entities, key=lambda e: e.position, reverse=True):
        if entity.position < 0:
            continue
        replacement = f"[REDACTED-{entity.type.value.upper()}]"
        redacted = redacted[: entity.position] + replacement + redacted[entity.end :]
    return redacted


def partial_redact(value: str, pii_type: PIIType) -> str:
    """Mask a value but keep enough of it to stay recognisable."""
    if pii_type == PIIType.EMAIL and "@" in value:
        local, domain = value.split("@", 1)
        return f"{local[:2]}***@{domain}"
    if pii_type == PIIType.PHONE:
        digits = re.sub(r"\D", "", value)
        return f"***-***-{digits[-4:]}"
    if pii_type == PIIType.SSN:
        return f"***-**-{value[-4:]}"
    if pii_type == PIIType.CREDIT_CARD:
        digits = re.sub(r"\D", "", value)
        return f"**** **** **** {digits[-4:]}"
    return f"[{pii_type.value.upper()}]"


class HybridPIIDetector(LLMStage, PIIDetector):
    """LLM detection merged with regex detection."""

    stage_name = "pii_detection"

    SYSTEM_PROMPT = """You are a PII detection expert. Identify all personally identifiable information in the text:
- full names of people
- email addresses
- phone numbers
- social security numbers
- credit card numbers
- street addresses
- dates of birth

Respond with a JSON object:
{"entities": [{"type": "name" | "email" | "phone" | "ssn" | "credit_card" | "address" | "date_of_birth",
               "value": "exact text from the input", "position": <character index>, "confidence": <0.0-1.0>}]}

"value" must be copied exactly from the input."""

    async def detect(self, text: str) -> list[PIIEntity]:
        """
        Detect PII in `text`.

        Falls back to regex detection alone when the model call fails.
        """
        regex_entities = detect_pii_with_regex(text)
        try:
            detection = await self._ask(self.SYSTEM_PROMPT, f"Detect PII in this text:\n\n{text}", PIIDetection)
        except StageError as e:
            logger.warning(f"LLM PII detection failed, using regex only: {e}")
            return deduplicate_entities(regex_entities)

        located = [fixed for entity in detection.entities if (fixed := _locate(text, entity)) is not None]
        entities = deduplicate_entities([*located, *regex_entities])
        logger.info(f"Detected {len(entities)} PII entities")
        return entities
