"""
Exception hierarchy for the interview processing pipeline.
"""

from uuid import UUID


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class InterviewNotFoundError(PipelineError):
    """Raised when an interview record does not exist."""

    def __init__(self, interview_id: UUID | str) -> None:
        super().__init__(f"Interview not found: {interview_id}")
        self.interview_id = interview_id


class InvalidInputError(PipelineError):
    """
    Raised when the recording is not a two-person job interview.

    The message is meant to be shown to the user as-is.
    """


class InterviewBusyError(PipelineError):
    """Raised when another run already holds the lease for an interview."""

    def __init__(self, interview_id: UUID | str, owner: str | None = None) -> None:
        message = f"Interview {interview_id} is already being processed"
        if owner:
            message += f" (run {owner})"
        super().__init__(message)
        self.interview_id = interview_id
        self.owner = owner


class StepTransitionError(PipelineError):
    """Raised on an illegal step status transition."""


class StageError(PipelineError):
    """Raised when an external analysis stage fails."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage
        self.reason = message


class TranscriptionError(StageError):
    """Raised on unreadable audio or an unusable transcript."""

    def __init__(self, message: str) -> None:
        super().__init__("transcription", message)


class MalformedOutputError(StageError):
    """Raised when model output cannot be parsed or validated."""

    def __init__(self, message: str, raw: str = "", stage: str = "llm") -> None:
        super().__init__(stage, message)
        self.raw = raw
