"""
Step tracking for pipeline runs.

The tracker owns the ordered step list of a single run. Every transition
produces a new immutable snapshot; callers persist the snapshot and never
mutate steps themselves.
"""

from collections.abc import Sequence
from datetime import datetime, timezone

from interview_analyzer.pipeline.errors import StepTransitionError
from interview_analyzer.pipeline.schemas import Step, StepStatus


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class StepTracker:
    """
    Ordered, validated step state for one run.

    Enforces that at most one step is `processing` at a time and that a step
    which reached `complete` or `error` is never reopened.
    """

    def __init__(self, names: Sequence[str], messages: Sequence[str] | None = None) -> None:
        """
        Initialize the tracker with every step pending.

        Args:
            names: Step names in execution order.
            messages: Optional initial message per step.
        """
        if len(set(names)) != len(names):
            raise ValueError("Step names must be unique")
        initial = list(messages) if messages is not None else [""] * len(names)
        if len(initial) != len(names):
            raise ValueError("messages must match names")
        self._steps: tuple[Step, ...] = tuple(
            Step(name=name, message=message) for name, message in zip(names, initial)
        )
        self._previewed: tuple[Step, ...] | None = None

    @property
    def snapshot(self) -> tuple[Step, ...]:
        """The latest immutable snapshot."""
        return self._steps

    @property
    def processing_index(self) -> int | None:
        """Index of the step currently processing, if any."""
        for i, step in enumerate(self._steps):
            if step.status == StepStatus.PROCESSING:
                return i
        return None

    def index_of(self, name: str) -> int:
        """Index of the step with the given name."""
        for i, step in enumerate(self._steps):
            if step.name == name:
                return i
        raise KeyError(name)

    def has(self, name: str) -> bool:
        return any(step.name == name for step in self._steps)

    def preview(
        self,
        index: int,
        status: StepStatus,
        message: str | None = None,
        *,
        api_calls: int | None = None,
        tokens_used: int | None = None,
    ) -> tuple[Step, ...]:
        """
        Validate a transition and return the snapshot it would produce.

        Nothing changes until the result is passed to `commit`, so a caller can
        persist the new state first and keep the old one if that write fails.

        Args:
            index: Step index.
            status: Target status (processing, complete or error).
            message: Replacement message; keeps the current one if None.
            api_calls: Calls attributed to the step.
            tokens_used: Tokens attributed to the step.

        Returns:
            The snapshot after the transition.

        Raises:
            StepTransitionError: On an unknown index or an illegal transition.
        """
        if not 0 <= index < len(self._steps):
            raise StepTransitionError(f"No step at index {index}")

        current = self._steps[index]
        if current.status.is_terminal:
            raise StepTransitionError(
                f"Step '{current.name}' is already {current.status.value} and cannot be reopened"
            )
        if status == StepStatus.PENDING:
            raise StepTransitionError(f"Step '{current.name}' cannot return to pending")

        now = _now_utc()
        changes: dict = {}
        if message is not None:
            changes["message"] = message
        if api_calls is not None:
            changes["api_calls"] = api_calls
        if tokens_used is not None:
            changes["tokens_used"] = tokens_used

        if status == StepStatus.PROCESSING:
            active = self.processing_index
            if active is not None and active != index:
                raise StepTransitionError(
                    f"Cannot start '{current.name}' while '{self._steps[active].name}' is processing"
                )
            changes["status"] = StepStatus.PROCESSING
            if current.started_at is None:
                changes["started_at"] = now
        else:
            started = current.started_at
            changes["status"] = status
            changes["completed_at"] = now
            changes["duration_ms"] = int((now - started).total_seconds() * 1000) if started else 0

        updated = current.model_copy(update=changes)
        self._previewed = self._steps[:index] + (updated,) + self._steps[index + 1 :]
        return self._previewed

    def commit(self, snapshot: tuple[Step, ...]) -> tuple[Step, ...]:
        """
        Apply the snapshot returned by the latest `preview`.

        Raises:
            StepTransitionError: If `snapshot` is not that preview, or the
                tracker changed since it was taken.
        """
        if snapshot is not self._previewed:
            raise StepTransitionError("Only the latest preview of the current snapshot can be committed")
        self._steps = snapshot
        self._previewed = None
        return self._steps

    def advance(
        self,
        index: int,
        status: StepStatus,
        message: str | None = None,
        *,
        api_calls: int | None = None,
        tokens_used: int | None = None,
    ) -> tuple[Step, ...]:
        """Move one step to a new status and return the new snapshot (see `preview`)."""
        return self.commit(self.preview(index, status, message, api_calls=api_calls, tokens_used=tokens_used))

    def mark_error(self, index: int, message: str) -> tuple[Step, ...]:
        """Mark a step as failed with a human-readable message."""
        return self.advance(index, StepStatus.ERROR, message)

    def fail_active(self, message: str) -> tuple[Step, ...]:
        """Mark the processing step (if any) as failed."""
        index = self.processing_index
        if index is None:
            return self._steps
        return self.mark_error(index, message)
