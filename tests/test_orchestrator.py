"""
Tests for the pipeline orchestrator.

Runs both pipeline variants end to end against fake stages and an in-memory
store.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from conftest import (
    FakeClassifier,
    FakeEmbedder,
    FakeJDRelevance,
    FakeStore,
    assert_single_processing,
    make_services,
)

from interview_analyzer.config import Settings
from interview_analyzer.pipeline.errors import (
    InterviewBusyError,
    InterviewNotFoundError,
    InvalidInputError,
    StageError,
)
from interview_analyzer.pipeline.orchestrator import (
    ADVANCED_ANALYSIS,
    EMBEDDING_GENERATION,
    ENCRYPTION,
    EXPLAINABILITY,
    MONITORING,
    PARALLEL_ANALYSIS,
    SINGLE_SPEAKER_MESSAGE,
    TRANSCRIPTION,
    PipelineOrchestrator,
    baseline_steps,
    blend_jd_score,
    enhanced_steps,
    gather_required,
)
from interview_analyzer.pipeline.schemas import (
    ContentType,
    EmbeddingAnalysis,
    InterviewRecord,
    JDRelevance,
    MonitoringStatus,
    ProcessingStatus,
    StepStatus,
    Transcription,
)
from interview_analyzer.stages.base import AnalysisServices
from interview_analyzer.stages.encryption import TranscriptCipher


def _statuses(record: InterviewRecord) -> dict[str, StepStatus]:
    return {step.name: step.status for step in record.processing_steps}


def _orchestrator(
    store: FakeStore,
    services: AnalysisServices,
    cipher: TranscriptCipher,
    settings: Settings,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(store=store, services=services, cipher=cipher, settings=settings)


class TestStepLists:
    """Tests for the step lists of both variants."""

    def test_enhanced_steps_include_embeddings_only_when_enabled(self) -> None:
        with_embeddings = [name for name, _ in enhanced_steps(True)]
        without = [name for name, _ in enhanced_steps(False)]

        assert with_embeddings == [
            TRANSCRIPTION,
            PARALLEL_ANALYSIS,
            ENCRYPTION,
            ADVANCED_ANALYSIS,
            EMBEDDING_GENERATION,
            EXPLAINABILITY,
            MONITORING,
        ]
        assert EMBEDDING_GENERATION not in without
        assert len(without) == 6

    def test_baseline_steps_include_resume_comparison_only_with_resume(self) -> None:
        assert len(baseline_steps(True)) == 5
        assert len(baseline_steps(False)) == 4


class TestHelpers:
    """Tests for the orchestration helpers."""

    @pytest.mark.asyncio
    async def test_gather_required_waits_for_all_then_raises_first_error(self) -> None:
        finished: list[str] = []

        async def ok(name: str) -> str:
            finished.append(name)
            return name

        async def fail(message: str) -> str:
            raise StageError("test", message)

        with pytest.raises(StageError, match="first"):
            await gather_required(ok("a"), fail("first"), fail("second"), ok("b"))
        assert finished == ["a", "b"]

        assert await gather_required(ok("x"), ok("y")) == ["x", "y"]

    def test_blend_jd_score_with_embeddings(self) -> None:
        jd = JDRelevance(overall_score=80)
        blended = blend_jd_score(jd, EmbeddingAnalysis(overall_similarity=50, available=True))

        assert blended.embedding_score == 50
        assert blended.combined_score == pytest.approx(80 * 0.7 + 50 * 0.3)
        assert blended.effective_score == pytest.approx(71.0)

    def test_blend_jd_score_without_embeddings(self) -> None:
        jd = JDRelevance(overall_score=80)
        blended = blend_jd_score(jd, EmbeddingAnalysis())

        assert blended.embedding_score == 0
        assert blended.combined_score == 80


class TestEnhancedPipeline:
    """End-to-end runs of the enhanced pipeline."""

    @pytest.mark.asyncio
    async def test_successful_run_completes_every_step(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        services = make_services(interview_transcript)
        orchestrator = _orchestrator(store, services, cipher, settings)

        await orchestrator.process_enhanced_interview(interview.id)

        record = store.interviews[interview.id]
        assert record.processing_status == ProcessingStatus.COMPLETE
        assert set(_statuses(record).values()) == {StepStatus.COMPLETE}
        assert [s.name for s in record.processing_steps] == [name for name, _ in enhanced_steps(True)]
        assert_single_processing(store.step_history)

        assert record.transcript == interview_transcript
        assert record.pii_redacted
        assert [e.value for e in record.pii_entities] == ["jane.doe@example.com"]
        assert record.content_analysis is not None
        assert record.sentiment_analysis is not None
        assert record.flow_analysis is not None
        assert record.explainability_data is not None
        assert record.candidate_report is not None
        assert record.resume_analysis is None
        assert record.recruiter_name == "Dana"
        assert record.lease_owner is None

        decrypted = cipher.decrypt(record.encrypted_transcript)
        assert "jane.doe@example.com" not in decrypted
        assert "[REDACTED-EMAIL]" in decrypted
        assert decrypted.startswith("Recruiter: ")

        assert record.embedding_analysis is not None and record.embedding_analysis.available
        assert record.jd_analysis.embedding_score == 60
        assert record.jd_analysis.combined_score == pytest.approx(72 * 0.7 + 60 * 0.3)

        graph = record.graph_flow_model
        assert graph.missed_follow_ups == []
        assert graph.logical_connection_score >= 80
        assert graph.base_flow_score == 80
        assert graph.enhanced_score == round((graph.logical_connection_score + 80) / 2, 2)

    @pytest.mark.asyncio
    async def test_successful_run_writes_reports_and_one_monitoring_record(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        services = make_services(interview_transcript)

        await _orchestrator(store, services, cipher, settings).process_enhanced_interview(interview.id)

        assert len(store.reports) == 1
        report = store.reports[0]
        assert report.jd_match_score == pytest.approx(72 * 0.7 + 60 * 0.3)
        assert report.embedding_match_score == 60
        assert report.score_explanations is not None
        assert report.training_recommendations is not None
        assert report.report_data["summary"]["questions_asked"] == 3
        assert [len(pair.answers) for pair in report.qa_analysis] == [1, 1, 1]

        assert len(store.metrics) == 1
        assert store.metrics[0].recruiter_name == "Dana"
        assert store.metrics[0].total_questions == 3
        assert store.metrics[0].follow_up_quality == 100

        assert services.explainer.decisions == [
            "JD Relevance Score",
            "Flow Continuity Score",
            "Sentiment Analysis",
        ]

        assert len(store.monitoring) == 1
        monitoring = store.monitoring[0]
        assert monitoring.status == MonitoringStatus.SUCCESS
        assert monitoring.stage == "complete"
        assert monitoring.error_count == 0
        assert [s["name"] for s in monitoring.metadata["steps"]][-1] == MONITORING
        assert {s["status"] for s in monitoring.metadata["steps"]} == {"complete"}

    @pytest.mark.asyncio
    async def test_failed_completion_write_ends_in_error_not_success(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        async def failing_complete_run(record, **changes) -> None:
            raise ConnectionError("database went away")

        store.complete_run = failing_complete_run  # type: ignore[method-assign]

        with pytest.raises(ConnectionError):
            await _orchestrator(store, make_services(interview_transcript), cipher, settings).process_enhanced_interview(
                interview.id
            )

        record = store.interviews[interview.id]
        statuses = _statuses(record)
        assert record.processing_status == ProcessingStatus.ERROR
        assert statuses[MONITORING] == StepStatus.ERROR
        assert StepStatus.PROCESSING not in statuses.values()
        assert "database went away" in record.processing_steps[-1].message
        assert [(m.status, m.stage) for m in store.monitoring] == [(MonitoringStatus.ERROR, MONITORING)]
        assert record.lease_owner is None

    @pytest.mark.asyncio
    async def test_embedding_usage_is_attributed_to_its_step_and_the_run(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        services = make_services(interview_transcript)

        await _orchestrator(store, services, cipher, settings).process_enhanced_interview(interview.id)

        record = store.interviews[interview.id]
        steps = {step.name: step for step in record.processing_steps}
        assert steps[EMBEDDING_GENERATION].api_calls == 3
        assert steps[EMBEDDING_GENERATION].tokens_used == 30
        assert steps[ADVANCED_ANALYSIS].api_calls == 0
        assert record.api_usage_metrics.total_api_calls == 3
        assert record.api_usage_metrics.total_tokens == 30
        assert record.api_usage_metrics.embeddings_enabled
        assert store.monitoring[0].api_calls == 3

    @pytest.mark.asyncio
    async def test_known_recruiter_name_is_not_looked_up(
        self,
        store: FakeStore,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        interview = await store.create_interview(
            InterviewRecord(
                file_path="a.wav",
                job_description="Data engineer",
                resume_text="Five years of Airflow",
                recruiter_name="Morgan",
            )
        )
        services = make_services(interview_transcript)

        await _orchestrator(store, services, cipher, settings).process_enhanced_interview(interview.id)

        record = store.interviews[interview.id]
        assert services.alignment.name_calls == 0
        assert services.alignment.resume_calls == 1
        assert services.alignment.assess_calls == 0
        assert record.recruiter_name == "Morgan"
        assert record.resume_analysis is not None
        assert store.metrics[0].recruiter_name == "Morgan"

    @pytest.mark.asyncio
    async def test_single_speaker_recording_is_rejected_before_analysis(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        monologue_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        services = make_services(monologue_transcript)

        with pytest.raises(InvalidInputError) as exc_info:
            await _orchestrator(store, services, cipher, settings).process_enhanced_interview(interview.id)

        assert str(exc_info.value) == SINGLE_SPEAKER_MESSAGE
        assert services.classifier.calls == 0
        assert services.pii_detector.calls == 0
        assert services.sentiment.calls == 0

        record = store.interviews[interview.id]
        assert record.processing_status == ProcessingStatus.ERROR
        statuses = _statuses(record)
        assert statuses[TRANSCRIPTION] == StepStatus.COMPLETE
        assert statuses[PARALLEL_ANALYSIS] == StepStatus.ERROR
        for name in (ENCRYPTION, ADVANCED_ANALYSIS, EMBEDDING_GENERATION, EXPLAINABILITY, MONITORING):
            assert statuses[name] == StepStatus.PENDING
        assert "only one speaker" in record.processing_steps[1].message
        assert record.lease_owner is None

        assert len(store.monitoring) == 1
        assert store.monitoring[0].status == MonitoringStatus.ERROR
        assert store.monitoring[0].stage == PARALLEL_ANALYSIS
        assert store.monitoring[0].error_details["type"] == "InvalidInputError"
        assert store.reports == []

    @pytest.mark.asyncio
    async def test_non_interview_content_is_rejected(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        services = make_services(interview_transcript, classifier=FakeClassifier(ContentType.PRESENTATION))

        with pytest.raises(InvalidInputError, match="not a job interview"):
            await _orchestrator(store, services, cipher, settings).process_enhanced_interview(interview.id)

        assert services.sentiment.calls == 0
        assert _statuses(store.interviews[interview.id])[PARALLEL_ANALYSIS] == StepStatus.ERROR

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades_without_failing_the_run(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        services = make_services(interview_transcript, embedder=FakeEmbedder(fail=True))

        await _orchestrator(store, services, cipher, settings).process_enhanced_interview(interview.id)

        record = store.interviews[interview.id]
        assert record.processing_status == ProcessingStatus.COMPLETE
        assert record.embedding_analysis.available is False
        assert record.embedding_analysis.overall_similarity == 0
        assert "connection refused" in record.embedding_analysis.error
        assert record.jd_analysis.embedding_score == 0
        assert record.jd_analysis.combined_score == record.jd_analysis.overall_score

        statuses = _statuses(record)
        assert statuses.pop(EMBEDDING_GENERATION) == StepStatus.ERROR
        assert set(statuses.values()) == {StepStatus.COMPLETE}
        assert_single_processing(store.step_history)

        assert store.monitoring[0].status == MonitoringStatus.SUCCESS
        assert store.reports[0].embedding_match_score == 0

    @pytest.mark.asyncio
    async def test_required_stage_failure_marks_step_and_records_error(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        error = StageError("jd_relevance", "model call failed: timeout")
        services = make_services(interview_transcript, jd_relevance=FakeJDRelevance(error=error))

        with pytest.raises(StageError):
            await _orchestrator(store, services, cipher, settings).process_enhanced_interview(interview.id)

        # Siblings in the same group still ran to completion.
        assert services.flow.calls == 1
        assert services.embedder.calls == 1

        record = store.interviews[interview.id]
        assert record.processing_status == ProcessingStatus.ERROR
        statuses = _statuses(record)
        assert statuses[ENCRYPTION] == StepStatus.COMPLETE
        assert statuses[ADVANCED_ANALYSIS] == StepStatus.ERROR
        assert statuses[EMBEDDING_GENERATION] == StepStatus.PENDING
        assert statuses[EXPLAINABILITY] == StepStatus.PENDING
        assert record.jd_analysis is None
        assert record.encrypted_transcript is not None

        assert len(store.monitoring) == 1
        assert store.monitoring[0].stage == ADVANCED_ANALYSIS
        assert store.monitoring[0].error_count == 1
        assert "timeout" in store.monitoring[0].error_details["error"]
        assert store.reports == []
        assert store.metrics == []

    @pytest.mark.asyncio
    async def test_busy_interview_is_refused(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        store.interviews[interview.id] = interview.model_copy(
            update={
                "lease_owner": "another-run",
                "lease_expires_at": datetime.now(timezone.utc) + timedelta(minutes=30),
            }
        )
        services = make_services(interview_transcript)

        with pytest.raises(InterviewBusyError):
            await _orchestrator(store, services, cipher, settings).process_enhanced_interview(interview.id)

        assert services.transcriber.calls == 0
        assert store.monitoring == []
        assert store.interviews[interview.id].lease_owner == "another-run"

    @pytest.mark.asyncio
    async def test_expired_lease_is_taken_over(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        store.interviews[interview.id] = interview.model_copy(
            update={
                "lease_owner": "crashed-run",
                "lease_expires_at": datetime.now(timezone.utc) - timedelta(minutes=1),
            }
        )
        services = make_services(interview_transcript)

        await _orchestrator(store, services, cipher, settings).process_enhanced_interview(interview.id)

        assert store.interviews[interview.id].processing_status == ProcessingStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_missing_interview_raises_not_found(
        self,
        store: FakeStore,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        orchestrator = _orchestrator(store, make_services(interview_transcript), cipher, settings)

        with pytest.raises(InterviewNotFoundError):
            await orchestrator.process_enhanced_interview(uuid4())

    @pytest.mark.asyncio
    async def test_embeddings_disabled_skips_the_embedding_step(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings_without_embeddings: Settings,
    ) -> None:
        services = make_services(interview_transcript)

        await _orchestrator(store, services, cipher, settings_without_embeddings).process_enhanced_interview(
            interview.id
        )

        record = store.interviews[interview.id]
        assert services.embedder.calls == 0
        assert EMBEDDING_GENERATION not in _statuses(record)
        assert record.embedding_analysis.available is False
        assert record.jd_analysis.combined_score == 72
        assert record.api_usage_metrics.embeddings_enabled is False


class TestBaselinePipeline:
    """End-to-end runs of the baseline pipeline."""

    @pytest.mark.asyncio
    async def test_baseline_run_with_resume(
        self,
        store: FakeStore,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        interview = await store.create_interview(
            InterviewRecord(file_path="a.wav", job_description="Data engineer", resume_text="Airflow, Python")
        )
        services = make_services(interview_transcript)

        await _orchestrator(store, services, cipher, settings).process_interview(interview.id)

        record = store.interviews[interview.id]
        assert record.processing_status == ProcessingStatus.COMPLETE
        assert [s.name for s in record.processing_steps] == [name for name, _ in baseline_steps(True)]
        assert set(_statuses(record).values()) == {StepStatus.COMPLETE}
        assert_single_processing(store.step_history)

        assert record.resume_analysis is not None
        assert record.encrypted_transcript is None
        assert services.embedder.calls == 0
        assert services.pii_detector.calls == 0

        assert len(store.reports) == 1
        assert store.reports[0].jd_match_score == 72
        assert store.reports[0].flow_continuity_score == 80
        assert store.metrics == []
        assert store.monitoring[0].status == MonitoringStatus.SUCCESS
        assert store.monitoring[0].metadata["kind"] == "baseline"

    @pytest.mark.asyncio
    async def test_baseline_run_without_resume(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        interview_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        services = make_services(interview_transcript)

        await _orchestrator(store, services, cipher, settings).process_interview(interview.id)

        record = store.interviews[interview.id]
        assert len(record.processing_steps) == 4
        assert services.alignment.resume_calls == 0
        assert record.processing_status == ProcessingStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_baseline_rejects_single_speaker(
        self,
        store: FakeStore,
        interview: InterviewRecord,
        monologue_transcript: Transcription,
        cipher: TranscriptCipher,
        settings: Settings,
    ) -> None:
        services = make_services(monologue_transcript)

        with pytest.raises(InvalidInputError):
            await _orchestrator(store, services, cipher, settings).process_interview(interview.id)

        record = store.interviews[interview.id]
        assert [s.status for s in record.processing_steps] == [
            StepStatus.COMPLETE,
            StepStatus.ERROR,
            StepStatus.PENDING,
            StepStatus.PENDING,
        ]
        assert services.classifier.calls == 0
