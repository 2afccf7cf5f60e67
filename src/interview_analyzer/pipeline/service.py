"""
Pipeline service.

Fire-and-forget entry points: a run is scheduled as a background task and
callers poll `get_status` for step progress.
"""

import asyncio
import logging
from datetime import datetime, timezone
from uuid import UUID

from pydantic import BaseModel, Field

from interview_analyzer.db.store import InterviewStore
from interview_analyzer.pipeline.errors import InterviewBusyError, InterviewNotFoundError, InvalidInputError
from interview_analyzer.pipeline.orchestrator import PipelineOrchestrator
from interview_analyzer.pipeline.schemas import ApiUsageMetrics, InterviewRecord, ProcessingStatus, Step, StepStatus

logger = logging.getLogger(__name__)


class PipelineStatus(BaseModel):
    """Polling view of an interview's processing state."""

    interview_id: UUID
    processing_status: ProcessingStatus
    steps: list[Step] = Field(default_factory=list)
    api_usage_metrics: ApiUsageMetrics | None = None

    @property
    def current_step(self) -> Step | None:
        return next((s for s in self.steps if s.status == StepStatus.PROCESSING), None)


class PipelineService:
    """Schedules pipeline runs in the background."""

    def __init__(self, orchestrator: PipelineOrchestrator, store: InterviewStore) -> None:
        self._orchestrator = orchestrator
        self._store = store
        self._tasks: dict[UUID, asyncio.Task[None]] = {}

    @staticmethod
    def _holds_live_lease(interview: InterviewRecord) -> bool:
        expires = interview.lease_expires_at
        return interview.lease_owner is not None and expires is not None and expires > datetime.now(timezone.utc)

    async def _check_startable(self, interview_id: UUID) -> None:
        interview = await self._store.get_interview(interview_id)
        if interview is None:
            raise InterviewNotFoundError(interview_id)
        running = self._tasks.get(interview_id)
        if (running and not running.done()) or self._holds_live_lease(interview):
            raise InterviewBusyError(interview_id)
        if interview.processing_status == ProcessingStatus.COMPLETE:
            raise InvalidInputError(f"Interview {interview_id} has already been processed")
        if not interview.job_description.strip():
            raise InvalidInputError("A job description is required before processing")
        if interview.processing_status == ProcessingStatus.PROCESSING:
            logger.warning(f"Interview {interview_id} was left processing without a live lease; restarting it")

    def _on_done(self, interview_id: UUID, task: asyncio.Task[None]) -> None:
        if self._tasks.get(interview_id) is task:
            del self._tasks[interview_id]
        if task.cancelled():
            logger.warning(f"Processing of interview {interview_id} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Processing of interview {interview_id} failed: {error}")

    def _schedule(self, interview_id: UUID, enhanced: bool) -> asyncio.Task[None]:
        if enhanced:
            coro = self._orchestrator.process_enhanced_interview(interview_id)
        else:
            coro = self._orchestrator.process_interview(interview_id)
        task = asyncio.create_task(coro, name=f"pipeline-{interview_id}")
        self._tasks[interview_id] = task
        task.add_done_callback(lambda t: self._on_done(interview_id, t))
        return task

    async def process_interview(self, interview_id: UUID) -> asyncio.Task[None]:
        """
        Start the baseline pipeline in the background.

        Returns:
            The background task; awaiting it re-raises the run's error.

        Raises:
            InterviewNotFoundError: If the interview does not exist.
            InterviewBusyError: If a run is in flight here or holds a live lease.
            InvalidInputError: If it is complete or has no job description.
        """
        await self._check_startable(interview_id)
        logger.info(f"Scheduling baseline processing for interview {interview_id}")
        return self._schedule(interview_id, enhanced=False)

    async def process_enhanced_interview(self, interview_id: UUID) -> asyncio.Task[None]:
        """Start the enhanced pipeline in the background (see `process_interview`)."""
        await self._check_startable(interview_id)
        logger.info(f"Scheduling enhanced processing for interview {interview_id}")
        return self._schedule(interview_id, enhanced=True)

    async def get_status(self, interview_id: UUID) -> PipelineStatus:
        """
        Current processing status and steps.

        Raises:
            InterviewNotFoundError: If the interview does not exist.
        """
        interview = await self._store.get_interview(interview_id)
        if interview is None:
            raise InterviewNotFoundError(interview_id)
        return PipelineStatus(
            interview_id=interview.id,
            processing_status=interview.processing_status,
            steps=interview.processing_steps,
            api_usage_metrics=interview.api_usage_metrics,
        )
