"""
Interview store.

The persistence collaborator used by the pipeline. `SQLInterviewStore` runs
each operation in its own transaction so every write is durable before the
pipeline moves on.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from interview_analyzer.db.repository import (
    AnalysisReportRepository,
    InterviewRepository,
    PipelineMonitoringRepository,
    RecruiterMetricsRepository,
)
from interview_analyzer.pipeline.errors import InterviewNotFoundError
from interview_analyzer.pipeline.schemas import (
    AnalysisReport,
    InterviewRecord,
    PipelineMonitoringRecord,
    RecruiterMetrics,
)

logger = logging.getLogger(__name__)


class InterviewStore(ABC):
    """Abstract persistence interface for the pipeline."""

    @abstractmethod
    async def get_interview(self, interview_id: UUID) -> InterviewRecord | None: ...

    @abstractmethod
    async def create_interview(self, record: InterviewRecord) -> InterviewRecord: ...

    @abstractmethod
    async def update_interview(self, interview_id: UUID, **changes: Any) -> None:
        """
        Apply a partial update to an interview.

        Args:
            interview_id: Interview to update.
            **changes: Field values using the `InterviewRecord` field names.

        Raises:
            InterviewNotFoundError: If the interview does not exist.
        """
        ...

    @abstractmethod
    async def create_analysis_report(self, report: AnalysisReport) -> None: ...

    @abstractmethod
    async def get_analysis_report(self, interview_id: UUID) -> AnalysisReport | None:
        """Latest report for an interview."""
        ...

    @abstractmethod
    async def create_recruiter_metrics(self, metrics: RecruiterMetrics) -> None: ...

    @abstractmethod
    async def create_pipeline_monitoring(self, record: PipelineMonitoringRecord) -> None: ...

    @abstractmethod
    async def complete_run(self, record: PipelineMonitoringRecord, **changes: Any) -> None:
        """
        Finish a run in one write: apply the interview changes and store its
        success monitoring record together, or neither.

        Raises:
            InterviewNotFoundError: If the interview does not exist.
        """
        ...

    @abstractmethod
    async def list_monitoring(self, interview_id: UUID) -> list[PipelineMonitoringRecord]: ...

    @abstractmethod
    async def acquire_lease(self, interview_id: UUID, owner: str, ttl_seconds: int) -> bool:
        """
        Claim an interview for one run.

        Returns:
            True if `owner` now holds the lease, False if a live run holds it.
        """
        ...

    @abstractmethod
    async def release_lease(self, interview_id: UUID, owner: str) -> None:
        """Release the lease if `owner` still holds it."""
        ...


class SQLInterviewStore(InterviewStore):
    """SQLAlchemy-backed store."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_interview(self, interview_id: UUID) -> InterviewRecord | None:
        async with self._session_factory() as session:
            model = await InterviewRepository(session).get_by_id(interview_id)
            return InterviewRepository.to_record(model) if model else None

    async def create_interview(self, record: InterviewRecord) -> InterviewRecord:
        async with self._session_factory() as session, session.begin():
            model = await InterviewRepository(session).create_from_record(record)
            created = InterviewRepository.to_record(model)
        logger.info(f"Created interview {created.id}")
        return created

    async def update_interview(self, interview_id: UUID, **changes: Any) -> None:
        async with self._session_factory() as session, session.begin():
            updated = await InterviewRepository(session).apply_changes(interview_id, changes)
        if not updated:
            raise InterviewNotFoundError(interview_id)

    async def create_analysis_report(self, report: AnalysisReport) -> None:
        async with self._session_factory() as session, session.begin():
            await AnalysisReportRepository(session).create_from_report(report)

    async def get_analysis_report(self, interview_id: UUID) -> AnalysisReport | None:
        async with self._session_factory() as session:
            reports = await AnalysisReportRepository(session).list_for_interview(interview_id)
            return AnalysisReportRepository.to_report(reports[-1]) if reports else None

    async def create_recruiter_metrics(self, metrics: RecruiterMetrics) -> None:
        async with self._session_factory() as session, session.begin():
            await RecruiterMetricsRepository(session).create_from_metrics(metrics)

    async def create_pipeline_monitoring(self, record: PipelineMonitoringRecord) -> None:
        async with self._session_factory() as session, session.begin():
            await PipelineMonitoringRepository(session).create_from_record(record)

    async def complete_run(self, record: PipelineMonitoringRecord, **changes: Any) -> None:
        async with self._session_factory() as session, session.begin():
            updated = await InterviewRepository(session).apply_changes(record.interview_id, changes)
            if not updated:
                raise InterviewNotFoundError(record.interview_id)
            await PipelineMonitoringRepository(session).create_from_record(record)

    async def list_monitoring(self, interview_id: UUID) -> list[PipelineMonitoringRecord]:
        async with self._session_factory() as session:
            rows = await PipelineMonitoringRepository(session).list_for_interview(interview_id)
            return [PipelineMonitoringRepository.to_record(row) for row in rows]

    async def acquire_lease(self, interview_id: UUID, owner: str, ttl_seconds: int) -> bool:
        async with self._session_factory() as session, session.begin():
            return await InterviewRepository(session).try_acquire_lease(interview_id, owner, ttl_seconds)

    async def release_lease(self, interview_id: UUID, owner: str) -> None:
        async with self._session_factory() as session, session.begin():
            await InterviewRepository(session).release_lease(interview_id, owner)
