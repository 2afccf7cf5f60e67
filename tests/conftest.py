"""
Shared fixtures: an in-memory store, fake analysis stages and sample transcripts.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from uuid import UUID

import pytest

from interview_analyzer.config import Settings
from interview_analyzer.db.store import InterviewStore
from interview_analyzer.models.usage import record_usage
from interview_analyzer.pipeline.errors import InterviewNotFoundError, StageError
from interview_analyzer.pipeline.schemas import (
    AlignmentResult,
    AnalysisReport,
    CandidateReport,
    CategoryScore,
    ContentAnalysis,
    ContentType,
    EmbeddingAnalysis,
    EmbeddingMatch,
    Explanation,
    FlowAnalysis,
    InterviewRecord,
    JDRelevance,
    PIIEntity,
    PipelineMonitoringRecord,
    QuestionRelevance,
    RecruiterMetrics,
    RecruiterReport,
    ResumeAnalysis,
    SentimentAnalysis,
    SpeakerSentiment,
    Step,
    StepStatus,
    Transcription,
    TranscriptSegment,
)
from interview_analyzer.stages.base import (
    AlignmentAnalyzer,
    AnalysisServices,
    ContentClassifier,
    Embedder,
    Explainer,
    FlowAnalyzer,
    JDRelevanceAnalyzer,
    PIIDetector,
    SentimentAnalyzer,
    Transcriber,
)
from interview_analyzer.stages.encryption import TranscriptCipher
from interview_analyzer.stages.pii import detect_pii_with_regex

TEST_KEY = bytes(range(32))

JOB_DESCRIPTION = (
    "Senior Data Engineer. Build and operate batch data pipelines in Python and Airflow, "
    "partition large datasets, and mentor other engineers."
)


# ---------------------------------------------------------------------------
# Transcripts
# ---------------------------------------------------------------------------


def make_transcript(lines: Sequence[tuple[str, str, float]]) -> Transcription:
    segments = [TranscriptSegment(speaker=speaker, text=text, timestamp=ts) for speaker, text, ts in lines]
    return Transcription(text=" ".join(s.text for s in segments), segments=segments, language="en")


INTERVIEW_LINES = [
    (
        "Recruiter",
        "Thanks for joining today. Can you walk me through your experience building data pipelines with Python?",
        0.0,
    ),
    (
        "Candidate",
        "I have spent five years building batch data pipelines in Python, mostly scheduled with Airflow.",
        6.0,
    ),
    ("Recruiter", "Which part of those Airflow data pipelines was hardest to scale?", 20.0),
    (
        "Candidate",
        "Backfills were the hardest part; scaling Airflow backfills meant partitioning the data by day.",
        26.0,
    ),
    ("Recruiter", "How did partitioning the data by day change your backfills?", 45.0),
    (
        "Candidate",
        "Backfills only touched the affected partitions, so reruns finished the same morning. "
        "You can send the offer details to jane.doe@example.com.",
        50.0,
    ),
]

MONOLOGUE_LINES = [
    ("Candidate", "Welcome to my channel, today I am reviewing three mechanical keyboards.", 0.0),
    ("Candidate", "The first one has tactile switches and an aluminium case.", 12.0),
    ("Candidate", "Overall I would recommend the second one for most people.", 30.0),
]


@pytest.fixture
def interview_transcript() -> Transcription:
    return make_transcript(INTERVIEW_LINES)


@pytest.fixture
def monologue_transcript() -> Transcription:
    return make_transcript(MONOLOGUE_LINES)


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class FakeStore(InterviewStore):
    """Dict-backed store that keeps every persisted step snapshot."""

    def __init__(self) -> None:
        self.interviews: dict[UUID, InterviewRecord] = {}
        self.reports: list[AnalysisReport] = []
        self.metrics: list[RecruiterMetrics] = []
        self.monitoring: list[PipelineMonitoringRecord] = []
        self.step_history: list[list[Step]] = []

    async def get_interview(self, interview_id: UUID) -> InterviewRecord | None:
        return self.interviews.get(interview_id)

    async def create_interview(self, record: InterviewRecord) -> InterviewRecord:
        self.interviews[record.id] = record
        return record

    async def update_interview(self, interview_id: UUID, **changes: Any) -> None:
        current = self.interviews.get(interview_id)
        if current is None:
            raise InterviewNotFoundError(interview_id)
        if "processing_steps" in changes:
            self.step_history.append(list(changes["processing_steps"]))
        self.interviews[interview_id] = current.model_copy(update=changes)

    async def create_analysis_report(self, report: AnalysisReport) -> None:
        self.reports.append(report)

    async def get_analysis_report(self, interview_id: UUID) -> AnalysisReport | None:
        matching = [r for r in self.reports if r.interview_id == interview_id]
        return matching[-1] if matching else None

    async def create_recruiter_metrics(self, metrics: RecruiterMetrics) -> None:
        self.metrics.append(metrics)

    async def create_pipeline_monitoring(self, record: PipelineMonitoringRecord) -> None:
        self.monitoring.append(record)

    async def complete_run(self, record: PipelineMonitoringRecord, **changes: Any) -> None:
        await self.update_interview(record.interview_id, **changes)
        self.monitoring.append(record)

    async def list_monitoring(self, interview_id: UUID) -> list[PipelineMonitoringRecord]:
        return [r for r in self.monitoring if r.interview_id == interview_id]

    async def acquire_lease(self, interview_id: UUID, owner: str, ttl_seconds: int) -> bool:
        current = self.interviews[interview_id]
        now = datetime.now(timezone.utc)
        held = current.lease_owner not in (None, owner)
        if held and current.lease_expires_at is not None and current.lease_expires_at > now:
            return False
        self.interviews[interview_id] = current.model_copy(
            update={"lease_owner": owner, "lease_expires_at": now + timedelta(seconds=ttl_seconds)}
        )
        return True

    async def release_lease(self, interview_id: UUID, owner: str) -> None:
        current = self.interviews.get(interview_id)
        if current is not None and current.lease_owner == owner:
            self.interviews[interview_id] = current.model_copy(
                update={"lease_owner": None, "lease_expires_at": None}
            )


# ---------------------------------------------------------------------------
# Fake stages
# ---------------------------------------------------------------------------


class FakeTranscriber(Transcriber):
    def __init__(self, transcript: Transcription) -> None:
        self.transcript = transcript
        self.calls = 0

    async def transcribe(self, file_path: str | Path) -> Transcription:
        self.calls += 1
        return self.transcript


class FakeClassifier(ContentClassifier):
    def __init__(self, content_type: ContentType = ContentType.INTERVIEW, speaker_count: int = 2) -> None:
        self.content_type = content_type
        self.speaker_count = speaker_count
        self.calls = 0

    async def classify(self, transcript: Transcription) -> ContentAnalysis:
        self.calls += 1
        return ContentAnalysis(
            content_type=self.content_type,
            speaker_count=self.speaker_count,
            topics=["data pipelines"],
            is_job_related=self.content_type == ContentType.INTERVIEW,
        )


class FakePIIDetector(PIIDetector):
    def __init__(self) -> None:
        self.calls = 0

    async def detect(self, text: str) -> list[PIIEntity]:
        self.calls += 1
        return detect_pii_with_regex(text)


class FakeSentiment(SentimentAnalyzer):
    def __init__(self) -> None:
        self.calls = 0

    async def analyze(self, transcript: Transcription, content: ContentAnalysis | None = None) -> SentimentAnalysis:
        self.calls += 1
        return SentimentAnalysis(
            recruiter_sentiment=SpeakerSentiment(positive=70, neutral=30, overall_score=8),
            candidate_sentiment=SpeakerSentiment(positive=60, neutral=35, negative=5, overall_score=7),
        )


class FakeJDRelevance(JDRelevanceAnalyzer):
    def __init__(self, overall_score: float = 72.0, error: Exception | None = None) -> None:
        self.overall_score = overall_score
        self.error = error
        self.calls = 0

    async def analyze(self, transcript: Transcription, job_description: str) -> JDRelevance:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return JDRelevance(
            overall_score=self.overall_score,
            category_breakdown={
                "technical_skills": CategoryScore(score=85, details="Python and Airflow covered"),
                "leadership": CategoryScore(score=0, details="Not discussed"),
            },
            question_relevance=[
                QuestionRelevance(
                    question="Which part of those Airflow data pipelines was hardest to scale?",
                    relevance_score=90,
                    category="technical_skills",
                ),
            ],
            recommended_action="Advance to technical round",
        )


class FakeFlow(FlowAnalyzer):
    def __init__(self, continuity_score: float = 80.0) -> None:
        self.continuity_score = continuity_score
        self.calls = 0

    async def analyze(self, transcript: Transcription) -> FlowAnalysis:
        self.calls += 1
        return FlowAnalysis(continuity_score=self.continuity_score, insights=["Questions built on earlier answers"])


class FakeAlignment(AlignmentAnalyzer):
    def __init__(self, name: str | None = "Dana") -> None:
        self.name = name
        self.resume_calls = 0
        self.assess_calls = 0
        self.name_calls = 0

    async def align_resume(self, transcript: Transcription, resume_text: str, job_description: str) -> AlignmentResult:
        self.resume_calls += 1
        return AlignmentResult(
            resume_analysis=ResumeAnalysis(),
            candidate_report=CandidateReport(overall_score=75, summary="Solid pipeline experience"),
            recruiter_report=RecruiterReport(overall_score=80, summary="Good technical probing"),
        )

    async def assess_interview(self, transcript: Transcription, job_description: str) -> AlignmentResult:
        self.assess_calls += 1
        return AlignmentResult(
            candidate_report=CandidateReport(overall_score=70),
            recruiter_report=RecruiterReport(overall_score=78),
        )

    async def recruiter_name(self, transcript: Transcription) -> str | None:
        self.name_calls += 1
        return self.name


class FakeExplainer(Explainer):
    def __init__(self) -> None:
        self.decisions: list[str] = []

    async def explain(self, decision: str, score: float, context: dict[str, Any]) -> Explanation:
        self.decisions.append(decision)
        return Explanation(reasoning=[f"{decision} scored {score:.0f}"], confidence_level=80)


class FakeEmbedder(Embedder):
    """Reports three calls per analysis, then succeeds or raises."""

    def __init__(self, similarity: float = 60.0, fail: bool = False) -> None:
        self.similarity = similarity
        self.fail = fail
        self.calls = 0

    async def analyze(self, job_description: str, answers: Sequence[TranscriptSegment]) -> EmbeddingAnalysis:
        self.calls += 1
        record_usage(calls=3, tokens=30)
        if self.fail:
            raise StageError("embeddings", "embedding request failed: connection refused")
        return EmbeddingAnalysis(
            overall_similarity=self.similarity,
            answer_matches=[EmbeddingMatch(text=a.text, similarity=self.similarity) for a in answers],
            category_breakdown={"general": self.similarity},
            available=True,
        )


def make_services(
    transcript: Transcription,
    *,
    classifier: FakeClassifier | None = None,
    jd_relevance: FakeJDRelevance | None = None,
    embedder: FakeEmbedder | None = None,
    alignment: FakeAlignment | None = None,
) -> AnalysisServices:
    return AnalysisServices(
        transcriber=FakeTranscriber(transcript),
        classifier=classifier or FakeClassifier(),
        pii_detector=FakePIIDetector(),
        sentiment=FakeSentiment(),
        jd_relevance=jd_relevance or FakeJDRelevance(),
        flow=FakeFlow(),
        alignment=alignment or FakeAlignment(),
        explainer=FakeExplainer(),
        embedder=embedder or FakeEmbedder(),
    )


def assert_single_processing(history: list[list[Step]]) -> None:
    for snapshot in history:
        assert sum(1 for step in snapshot if step.status == StepStatus.PROCESSING) <= 1


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def cipher() -> TranscriptCipher:
    return TranscriptCipher(TEST_KEY)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, use_embeddings=True, encryption_key=TEST_KEY.hex())


@pytest.fixture
def settings_without_embeddings() -> Settings:
    return Settings(_env_file=None, use_embeddings=False, encryption_key=TEST_KEY.hex())


@pytest.fixture
def interview(store: FakeStore) -> InterviewRecord:
    record = InterviewRecord(file_path="recordings/interview.wav", job_description=JOB_DESCRIPTION)
    store.interviews[record.id] = record
    return record
