"""
Repository pattern for database operations.

Provides a clean abstraction over SQLAlchemy for CRUD operations and the
conversions between ORM rows and pipeline schemas.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from interview_analyzer.db.models import (
    AnalysisReportModel,
    Base,
    InterviewModel,
    PipelineMonitoringModel,
    RecruiterMetricsModel,
)
from interview_analyzer.pipeline.schemas import (
    AnalysisReport,
    InterviewRecord,
    PipelineMonitoringRecord,
    RecruiterMetrics,
)

T = TypeVar("T", bound=Base)

# Columns holding plain Python values; every other interview field is JSON.
_SCALAR_FIELDS = frozenset(
    {
        "id",
        "file_path",
        "job_description",
        "resume_text",
        "recruiter_name",
        "encrypted_transcript",
        "pii_redacted",
        "lease_owner",
        "lease_expires_at",
        "created_at",
        "updated_at",
    }
)

_INTERVIEW_FIELDS = tuple(InterviewRecord.model_fields)


def to_column_value(value: Any) -> Any:
    """Convert a schema value into something a column accepts."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_column_value(v) for v in value]
    if isinstance(value, dict):
        return {k: to_column_value(v) for k, v in value.items()}
    return value


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common CRUD operations."""

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    @property
    @abstractmethod
    def _model_class(self) -> type[T]:
        """Get the model class for this repository."""
        ...

    async def get_by_id(self, entity_id: UUID) -> T | None:
        """
        Get an entity by its ID.

        Args:
            entity_id: The entity's UUID.

        Returns:
            The entity if found, None otherwise.
        """
        return await self._session.get(self._model_class, entity_id)

    async def create(self, entity: T) -> T:
        """
        Create a new entity.

        Args:
            entity: The entity to create.

        Returns:
            The created entity.
        """
        self._session.add(entity)
        await self._session.flush()
        await self._session.refresh(entity)
        return entity

    async def list_for_interview(self, interview_id: UUID) -> list[T]:
        """List rows belonging to one interview, oldest first (child tables only)."""
        model = self._model_class
        stmt = select(model).where(model.interview_id == interview_id).order_by(model.created_at)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


class InterviewRepository(BaseRepository[InterviewModel]):
    """Repository for interview operations."""

    @property
    def _model_class(self) -> type[InterviewModel]:
        """Get the model class."""
        return InterviewModel

    async def create_from_record(self, record: InterviewRecord) -> InterviewModel:
        """
        Create an interview row from a record.

        Args:
            record: Interview data.

        Returns:
            The created interview model.
        """
        values = {
            name: getattr(record, name) if name in _SCALAR_FIELDS else to_column_value(getattr(record, name))
            for name in _INTERVIEW_FIELDS
        }
        return await self.create(InterviewModel(**values))

    async def apply_changes(self, interview_id: UUID, changes: dict[str, Any]) -> bool:
        """
        Write a partial update.

        Args:
            interview_id: Interview to update.
            changes: Field name to new value, using schema types.

        Returns:
            True if a row was updated.
        """
        unknown = set(changes) - set(_INTERVIEW_FIELDS)
        if unknown:
            raise ValueError(f"Unknown interview fields: {', '.join(sorted(unknown))}")
        values = {
            name: value if name in _SCALAR_FIELDS else to_column_value(value) for name, value in changes.items()
        }
        values["updated_at"] = datetime.now(timezone.utc)
        stmt = update(InterviewModel).where(InterviewModel.id == interview_id).values(**values)
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def try_acquire_lease(self, interview_id: UUID, owner: str, ttl_seconds: int) -> bool:
        """
        Claim the interview for one run.

        Succeeds when the lease is free, expired, or already held by `owner`.
        """
        now = datetime.now(timezone.utc)
        stmt = (
            update(InterviewModel)
            .where(
                InterviewModel.id == interview_id,
                or_(
                    InterviewModel.lease_owner.is_(None),
                    InterviewModel.lease_owner == owner,
                    InterviewModel.lease_expires_at.is_(None),
                    InterviewModel.lease_expires_at < now,
                ),
            )
            .values(lease_owner=owner, lease_expires_at=now + timedelta(seconds=ttl_seconds))
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def release_lease(self, interview_id: UUID, owner: str) -> None:
        stmt = (
            update(InterviewModel)
            .where(InterviewModel.id == interview_id, InterviewModel.lease_owner == owner)
            .values(lease_owner=None, lease_expires_at=None)
        )
        await self._session.execute(stmt)

    @staticmethod
    def to_record(model: InterviewModel) -> InterviewRecord:
        data = {name: getattr(model, name) for name in _INTERVIEW_FIELDS}
        for name in ("lease_expires_at", "created_at", "updated_at"):
            data[name] = _as_utc(data[name])
        return InterviewRecord.model_validate(data)


class AnalysisReportRepository(BaseRepository[AnalysisReportModel]):
    """Repository for analysis reports."""

    @property
    def _model_class(self) -> type[AnalysisReportModel]:
        return AnalysisReportModel

    async def create_from_report(self, report: AnalysisReport) -> AnalysisReportModel:
        values = report.model_dump(mode="json")
        values["interview_id"] = report.interview_id
        values["created_at"] = report.created_at
        return await self.create(AnalysisReportModel(**values))

    @staticmethod
    def to_report(model: AnalysisReportModel) -> AnalysisReport:
        data = {name: getattr(model, name) for name in AnalysisReport.model_fields}
        data["created_at"] = _as_utc(data["created_at"])
        return AnalysisReport.model_validate(data)


class RecruiterMetricsRepository(BaseRepository[RecruiterMetricsModel]):
    """Repository for recruiter metrics."""

    @property
    def _model_class(self) -> type[RecruiterMetricsModel]:
        return RecruiterMetricsModel

    async def create_from_metrics(self, metrics: RecruiterMetrics) -> RecruiterMetricsModel:
        values = metrics.model_dump(mode="json")
        values["interview_id"] = metrics.interview_id
        return await self.create(RecruiterMetricsModel(**values))


class PipelineMonitoringRepository(BaseRepository[PipelineMonitoringModel]):
    """Repository for pipeline monitoring records."""

    @property
    def _model_class(self) -> type[PipelineMonitoringModel]:
        return PipelineMonitoringModel

    async def create_from_record(self, record: PipelineMonitoringRecord) -> PipelineMonitoringModel:
        return await self.create(
            PipelineMonitoringModel(
                interview_id=record.interview_id,
                run_id=record.run_id,
                stage=record.stage,
                status=record.status.value,
                start_time=record.start_time,
                end_time=record.end_time,
                duration_ms=record.duration_ms,
                api_calls=record.api_calls,
                tokens_used=record.tokens_used,
                error_count=record.error_count,
                error_details=record.error_details,
                metadata_=record.metadata,
            )
        )

    @staticmethod
    def to_record(model: PipelineMonitoringModel) -> PipelineMonitoringRecord:
        return PipelineMonitoringRecord(
            interview_id=model.interview_id,
            run_id=model.run_id,
            stage=model.stage,
            status=model.status,
            start_time=_as_utc(model.start_time),
            end_time=_as_utc(model.end_time),
            duration_ms=model.duration_ms,
            api_calls=model.api_calls,
            tokens_used=model.tokens_used,
            error_count=model.error_count,
            error_details=model.error_details,
            metadata=model.metadata_,
        )
