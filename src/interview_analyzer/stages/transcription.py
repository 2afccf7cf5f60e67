"""
Speech-to-text with speaker labelling.

Audio is transcribed offline by `faster-whisper`; the resulting segments are
then labelled Recruiter/Candidate by one LLM call.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from interview_analyzer.models.llm_client import LLMClientBase
from interview_analyzer.pipeline.errors import StageError, TranscriptionError
from interview_analyzer.pipeline.schemas import Speaker, Transcription, TranscriptSegment
from interview_analyzer.stages.base import LLMStage, Transcriber

if TYPE_CHECKING:
    from interview_analyzer.config import Settings

logger = logging.getLogger(__name__)


class RawSegment(BaseModel):
    start: float
    end: float
    text: str


class SpeakerLabel(BaseModel):
    index: int
    speaker: Speaker


class SpeakerLabels(BaseModel):
    labels: list[SpeakerLabel] = Field(default_factory=list)


class WhisperTranscriber(LLMStage, Transcriber):
    """faster-whisper transcription followed by LLM speaker diarization."""

    stage_name = "transcription"

    LABEL_PROMPT = """You are an expert at speaker diarization for job interviews.
You are given numbered transcript segments from a recorded interview between a
recruiter (who asks the questions) and a candidate (who answers them).

Label every segment with its speaker. Use only "Recruiter" or "Candidate".

Respond with a JSON object:
{"labels": [{"index": <segment number>, "speaker": "Recruiter" | "Candidate"}, ...]}"""

    def __init__(self, settings: Settings, llm_client: LLMClientBase) -> None:
        super().__init__(llm_client)
        self._settings = settings
        self._model = None

    def _load_model(self):
        if self._model is not None:
            return self._model

        from faster_whisper import WhisperModel

        device = self._settings.whisper_device
        if device == "auto":
            device = "cpu"

        kwargs: dict[str, Any] = {}
        if self._settings.whisper_compute_type:
            kwargs["compute_type"] = self._settings.whisper_compute_type

        logger.info(f"Loading faster-whisper model '{self._settings.whisper_model_size}' on {device}")
        self._model = WhisperModel(self._settings.whisper_model_size, device=device, **kwargs)
        return self._model

    def _transcribe_sync(self, path: Path) -> tuple[list[RawSegment], str | None, float | None]:
        model = self._load_model()
        segments, info = model.transcribe(
            str(path),
            language=self._settings.whisper_language,
            vad_filter=True,
        )
        raw = [
            RawSegment(start=s.start, end=s.end, text=s.text.strip())
            for s in segments
            if s.text and s.text.strip()
        ]
        return raw, getattr(info, "language", None), getattr(info, "duration", None)

    async def transcribe(self, file_path: str | Path) -> Transcription:
        """
        Transcribe an audio file.

        Args:
            file_path: Path to the recording.

        Returns:
            Chronological, speaker-labelled transcription.

        Raises:
            TranscriptionError: If the file is missing, cannot be decoded, or
                the speaker labels are unusable.
        """
        path = Path(file_path)
        if not path.is_file():
            raise TranscriptionError(f"Audio file not found: {path}")

        try:
            raw, language, duration = await asyncio.to_thread(self._transcribe_sync, path)
        except TranscriptionError:
            raise
        except Exception as e:
            logger.error(f"faster-whisper failed on {path}: {e}")
            raise TranscriptionError(f"could not decode audio: {e}") from e

        if not raw:
            raise TranscriptionError("no speech detected in recording")

        logger.info(f"Transcribed {len(raw)} segments from {path.name}")
        return await self.label(raw, language=language, duration_s=duration)

    async def label(
        self,
        raw: list[RawSegment],
        language: str | None = None,
        duration_s: float | None = None,
    ) -> Transcription:
        """Assign Recruiter/Candidate to raw whisper segments."""
        numbered = "\n".join(f"{i}. {segment.text}" for i, segment in enumerate(raw))
        try:
            result = await self._ask(self.LABEL_PROMPT, numbered, SpeakerLabels)
        except StageError as e:
            raise TranscriptionError(f"speaker labelling failed: {e.reason}") from e

        speakers = {label.index: label.speaker for label in result.labels if 0 <= label.index < len(raw)}
        missing = len(raw) - len(speakers)
        if missing > len(raw) // 2:
            raise TranscriptionError(f"speaker labels missing for {missing} of {len(raw)} segments")

        segments: list[TranscriptSegment] = []
        previous: Speaker = "Recruiter"
        for i, segment in enumerate(raw):
            # Unlabelled segments continue the previous speaker's turn.
            speaker = speakers.get(i, previous)
            segments.append(TranscriptSegment(speaker=speaker, text=segment.text, timestamp=segment.start))
            previous = speaker

        return Transcription(
            text=" ".join(s.text for s in segments),
            segments=segments,
            language=language,
            duration_s=duration_s,
        )
