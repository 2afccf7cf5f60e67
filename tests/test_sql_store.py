"""
Tests for the SQLAlchemy-backed interview store (SQLite via aiosqlite).
"""

from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from conftest import JOB_DESCRIPTION, make_services

from interview_analyzer.config import Settings
from interview_analyzer.db.session import create_engine, create_session_factory, init_db
from interview_analyzer.db.store import SQLInterviewStore
from interview_analyzer.pipeline.errors import InterviewNotFoundError
from interview_analyzer.pipeline.orchestrator import PipelineOrchestrator
from interview_analyzer.pipeline.schemas import (
    AnalysisReport,
    ApiUsageMetrics,
    InterviewRecord,
    MonitoringStatus,
    PipelineMonitoringRecord,
    ProcessingStatus,
    StepStatus,
    Transcription,
)
from interview_analyzer.pipeline.step_tracker import StepTracker
from interview_analyzer.stages.encryption import TranscriptCipher


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path) -> AsyncIterator[SQLInterviewStore]:
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'interviews.db'}", echo=False)
    await init_db(engine)
    try:
        yield SQLInterviewStore(create_session_factory(engine))
    finally:
        await engine.dispose()


async def _create(store: SQLInterviewStore, **fields) -> InterviewRecord:
    return await store.create_interview(
        InterviewRecord(file_path="recordings/a.wav", job_description=JOB_DESCRIPTION, **fields)
    )


class TestInterviews:
    """Tests for interview rows."""

    @pytest.mark.asyncio
    async def test_create_and_reload(self, sql_store: SQLInterviewStore) -> None:
        created = await _create(sql_store, resume_text="Five years of Airflow", recruiter_name="Morgan")

        loaded = await sql_store.get_interview(created.id)

        assert loaded is not None
        assert loaded.id == created.id
        assert loaded.job_description == JOB_DESCRIPTION
        assert loaded.resume_text == "Five years of Airflow"
        assert loaded.processing_status == ProcessingStatus.PENDING
        assert loaded.processing_steps == []
        assert loaded.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_missing_interview(self, sql_store: SQLInterviewStore) -> None:
        assert await sql_store.get_interview(uuid4()) is None
        with pytest.raises(InterviewNotFoundError):
            await sql_store.update_interview(uuid4(), processing_status=ProcessingStatus.ERROR)

    @pytest.mark.asyncio
    async def test_step_snapshots_round_trip(self, sql_store: SQLInterviewStore) -> None:
        created = await _create(sql_store)
        tracker = StepTracker(["Audio Transcription", "Parallel Analysis"], ["Transcribing...", "Waiting"])
        tracker.advance(0, StepStatus.PROCESSING)
        tracker.advance(0, StepStatus.COMPLETE, "Transcribed 6 segments", api_calls=1, tokens_used=20)
        tracker.advance(1, StepStatus.PROCESSING)

        await sql_store.update_interview(
            created.id,
            processing_steps=list(tracker.snapshot),
            processing_status=ProcessingStatus.PROCESSING,
        )
        loaded = await sql_store.get_interview(created.id)

        assert loaded.processing_steps == list(tracker.snapshot)
        assert loaded.processing_status == ProcessingStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_stage_outputs_round_trip(
        self, sql_store: SQLInterviewStore, interview_transcript: Transcription
    ) -> None:
        created = await _create(sql_store)
        usage = ApiUsageMetrics(total_api_calls=12, total_tokens=4000, embeddings_enabled=True)

        await sql_store.update_interview(created.id, transcript=interview_transcript, api_usage_metrics=usage)
        loaded = await sql_store.get_interview(created.id)

        assert loaded.transcript == interview_transcript
        assert loaded.api_usage_metrics == usage

    @pytest.mark.asyncio
    async def test_unknown_field_is_rejected(self, sql_store: SQLInterviewStore) -> None:
        created = await _create(sql_store)
        with pytest.raises(ValueError):
            await sql_store.update_interview(created.id, not_a_field=1)


class TestLease:
    """Tests for the per-interview lease."""

    @pytest.mark.asyncio
    async def test_lease_is_exclusive_until_released(self, sql_store: SQLInterviewStore) -> None:
        created = await _create(sql_store)

        assert await sql_store.acquire_lease(created.id, "run-a", 60)
        assert not await sql_store.acquire_lease(created.id, "run-b", 60)
        assert await sql_store.acquire_lease(created.id, "run-a", 60)

        await sql_store.release_lease(created.id, "run-b")
        assert (await sql_store.get_interview(created.id)).lease_owner == "run-a"

        await sql_store.release_lease(created.id, "run-a")
        assert await sql_store.acquire_lease(created.id, "run-b", 60)

    @pytest.mark.asyncio
    async def test_expired_lease_can_be_taken(self, sql_store: SQLInterviewStore) -> None:
        created = await _create(sql_store)

        assert await sql_store.acquire_lease(created.id, "run-a", -5)
        assert await sql_store.acquire_lease(created.id, "run-b", 60)
        assert (await sql_store.get_interview(created.id)).lease_owner == "run-b"

    @pytest.mark.asyncio
    async def test_unknown_interview_cannot_be_leased(self, sql_store: SQLInterviewStore) -> None:
        assert not await sql_store.acquire_lease(uuid4(), "run-a", 60)


class TestReportsAndMonitoring:
    """Tests for report and monitoring rows."""

    @pytest.mark.asyncio
    async def test_latest_report_is_returned(self, sql_store: SQLInterviewStore) -> None:
        created = await _create(sql_store)
        now = datetime.now(timezone.utc)
        for offset, score in ((0, 55.0), (5, 81.0)):
            await sql_store.create_analysis_report(
                AnalysisReport(
                    interview_id=created.id,
                    recruiter_sentiment=7,
                    candidate_engagement=70,
                    jd_match_score=score,
                    flow_continuity_score=60,
                    insights=["Clear questions"],
                    report_data={"summary": {"questions_asked": 4}},
                    created_at=now + timedelta(seconds=offset),
                )
            )

        report = await sql_store.get_analysis_report(created.id)

        assert report is not None
        assert report.jd_match_score == 81.0
        assert report.insights == ["Clear questions"]
        assert report.report_data == {"summary": {"questions_asked": 4}}
        assert await sql_store.get_analysis_report(uuid4()) is None

    @pytest.mark.asyncio
    async def test_monitoring_round_trip(self, sql_store: SQLInterviewStore) -> None:
        created = await _create(sql_store)
        start = datetime.now(timezone.utc)
        record = PipelineMonitoringRecord(
            interview_id=created.id,
            run_id="run-a",
            stage="Advanced Analysis",
            status=MonitoringStatus.ERROR,
            start_time=start,
            end_time=start + timedelta(seconds=3),
            duration_ms=3000,
            api_calls=4,
            error_count=1,
            error_details={"type": "StageError", "error": "jd_relevance failed: timeout"},
        )

        await sql_store.create_pipeline_monitoring(record)
        records = await sql_store.list_monitoring(created.id)

        assert records == [record]

    @pytest.mark.asyncio
    async def test_complete_run_writes_status_and_record_together(self, sql_store: SQLInterviewStore) -> None:
        created = await _create(sql_store)
        start = datetime.now(timezone.utc)
        record = PipelineMonitoringRecord(
            interview_id=created.id,
            run_id="run-a",
            stage="complete",
            status=MonitoringStatus.SUCCESS,
            start_time=start,
            end_time=start + timedelta(seconds=2),
            duration_ms=2000,
        )

        await sql_store.complete_run(record, processing_status=ProcessingStatus.COMPLETE)

        assert (await sql_store.get_interview(created.id)).processing_status == ProcessingStatus.COMPLETE
        assert await sql_store.list_monitoring(created.id) == [record]

    @pytest.mark.asyncio
    async def test_failed_complete_run_writes_nothing(self, sql_store: SQLInterviewStore) -> None:
        created = await _create(sql_store)
        start = datetime.now(timezone.utc)
        record = PipelineMonitoringRecord(
            interview_id=created.id,
            run_id="run-a",
            stage="complete",
            status=MonitoringStatus.SUCCESS,
            start_time=start,
            end_time=start,
            duration_ms=0,
        )

        with pytest.raises(ValueError):
            await sql_store.complete_run(record, processing_status=ProcessingStatus.COMPLETE, not_a_field=1)

        assert (await sql_store.get_interview(created.id)).processing_status == ProcessingStatus.PENDING
        assert await sql_store.list_monitoring(created.id) == []


@pytest.mark.asyncio
async def test_enhanced_run_against_sqlite(
    sql_store: SQLInterviewStore,
    interview_transcript: Transcription,
    cipher: TranscriptCipher,
    settings: Settings,
) -> None:
    created = await _create(sql_store)
    orchestrator = PipelineOrchestrator(
        store=sql_store,
        services=make_services(interview_transcript),
        cipher=cipher,
        settings=settings,
    )

    await orchestrator.process_enhanced_interview(created.id)

    loaded = await sql_store.get_interview(created.id)
    assert loaded.processing_status == ProcessingStatus.COMPLETE
    assert all(step.status == StepStatus.COMPLETE for step in loaded.processing_steps)
    assert loaded.lease_owner is None
    assert loaded.graph_flow_model is not None
    assert cipher.decrypt(loaded.encrypted_transcript).startswith("Recruiter: ")

    report = await sql_store.get_analysis_report(created.id)
    assert report is not None
    assert report.score_explanations is not None

    monitoring = await sql_store.list_monitoring(created.id)
    assert [m.status for m in monitoring] == [MonitoringStatus.SUCCESS]
