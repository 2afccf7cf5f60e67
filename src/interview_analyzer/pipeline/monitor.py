"""
Pipeline monitoring.

Builds and stores the terminal monitoring record of a run. The monitor keeps
no state between runs; each run context records whether its run was already
monitored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from interview_analyzer.pipeline.schemas import MonitoringStatus, PipelineMonitoringRecord, PipelineRun

if TYPE_CHECKING:
    from interview_analyzer.db.store import InterviewStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunOutcome:
    """How a run ended."""

    run: PipelineRun
    status: MonitoringStatus
    ended_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    failed_stage: str | None = None
    error: BaseException | None = None
    extra: dict[str, Any] = field(default_factory=dict)


class PipelineMonitor:
    """Writes the terminal monitoring record of each run."""

    def __init__(self, store: InterviewStore) -> None:
        self._store = store

    def build_record(self, outcome: RunOutcome) -> PipelineMonitoringRecord:
        """
        Turn a run outcome into a monitoring record.

        Successful runs carry a per-step breakdown in `metadata`; failed runs
        carry the failing stage and error details instead.
        """
        run = outcome.run
        duration_ms = int((outcome.ended_at - run.started_at).total_seconds() * 1000)

        if outcome.status == MonitoringStatus.SUCCESS:
            return PipelineMonitoringRecord(
                interview_id=run.interview_id,
                run_id=run.run_id,
                stage="complete",
                status=MonitoringStatus.SUCCESS,
                start_time=run.started_at,
                end_time=outcome.ended_at,
                duration_ms=duration_ms,
                api_calls=run.api_call_count,
                tokens_used=run.token_count,
                error_count=0,
                metadata={
                    "kind": run.kind.value,
                    "steps": [
                        {
                            "name": step.name,
                            "status": step.status.value,
                            "duration_ms": step.duration_ms,
                            "api_calls": step.api_calls,
                            "tokens_used": step.tokens_used,
                        }
                        for step in run.steps
                    ],
                    **outcome.extra,
                },
            )

        error = outcome.error
        return PipelineMonitoringRecord(
            interview_id=run.interview_id,
            run_id=run.run_id,
            stage=outcome.failed_stage or "unknown",
            status=MonitoringStatus.ERROR,
            start_time=run.started_at,
            end_time=outcome.ended_at,
            duration_ms=duration_ms,
            api_calls=run.api_call_count,
            tokens_used=run.token_count,
            error_count=1,
            error_details={
                "type": type(error).__name__ if error else "Unknown",
                "error": str(error) if error else "Unknown error",
            },
            metadata=None,
        )

    async def record(self, outcome: RunOutcome) -> PipelineMonitoringRecord:
        """
        Persist the terminal record for a run.

        Args:
            outcome: How the run ended.

        Returns:
            The persisted record.
        """
        record = self.build_record(outcome)
        await self._store.create_pipeline_monitoring(record)
        self.log(record)
        return record

    async def record_completion(self, outcome: RunOutcome, **changes: Any) -> PipelineMonitoringRecord:
        """
        Persist a success record together with the interview's final changes.

        Args:
            outcome: The successful outcome, with every step settled.
            **changes: Interview fields written in the same transaction.

        Returns:
            The persisted record.
        """
        record = self.build_record(outcome)
        await self._store.complete_run(record, **changes)
        self.log(record)
        return record

    @staticmethod
    def log(record: PipelineMonitoringRecord) -> None:
        logger.info(
            f"Run {record.run_id} for interview {record.interview_id}: {record.status.value} "
            f"at '{record.stage}' in {record.duration_ms}ms ({record.api_calls} calls)"
        )
