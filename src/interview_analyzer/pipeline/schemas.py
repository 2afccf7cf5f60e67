"""
Pydantic schemas for the interview processing pipeline.

Defines the step/run bookkeeping models, the transcript, the typed result of
every analysis stage, the conversation flow graph, and the persisted report
records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import UUID, uuid4

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator


def _now_utc() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def _clamp_ten(value: float) -> float:
    return max(0.0, min(10.0, float(value)))


# Scores reported by models drift out of range; clamp instead of rejecting.
Percent = Annotated[float, AfterValidator(_clamp_percent)]
TenPointScore = Annotated[float, AfterValidator(_clamp_ten)]

Speaker = Literal["Recruiter", "Candidate"]


# ---------------------------------------------------------------------------
# Steps and runs
# ---------------------------------------------------------------------------


class StepStatus(str, Enum):
    """Status of a tracked pipeline step."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETE, StepStatus.ERROR)


class ProcessingStatus(str, Enum):
    """Overall processing status of an interview."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class RunKind(str, Enum):
    """Which pipeline variant produced a run."""

    BASELINE = "baseline"
    ENHANCED = "enhanced"


class Step(BaseModel):
    """Immutable snapshot of one pipeline step."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Human-readable step name")
    status: StepStatus = Field(default=StepStatus.PENDING, description="Current status")
    message: str = Field(default="", description="Progress or error message")
    started_at: datetime | None = Field(default=None, description="When processing began")
    completed_at: datetime | None = Field(default=None, description="When the step became terminal")
    duration_ms: int | None = Field(default=None, description="Wall time spent processing")
    api_calls: int = Field(default=0, description="External calls made during the step")
    tokens_used: int = Field(default=0, description="Estimated tokens consumed during the step")


class PipelineRun(BaseModel):
    """One invocation of the pipeline for one interview."""

    run_id: str = Field(default_factory=lambda: uuid4().hex, description="Run identifier (lease owner)")
    interview_id: UUID = Field(..., description="Interview being processed")
    kind: RunKind = Field(default=RunKind.ENHANCED, description="Pipeline variant")
    steps: tuple[Step, ...] = Field(default_factory=tuple, description="Latest step snapshot")
    status: ProcessingStatus = Field(default=ProcessingStatus.PENDING, description="Run status")
    started_at: datetime = Field(default_factory=_now_utc, description="When the run started")
    api_call_count: int = Field(default=0, description="Total external calls")
    token_count: int = Field(default=0, description="Total estimated tokens")


class MonitoringStatus(str, Enum):
    """Outcome recorded by the pipeline monitor."""

    SUCCESS = "success"
    ERROR = "error"


class PipelineMonitoringRecord(BaseModel):
    """Terminal record emitted once per run."""

    model_config = ConfigDict(frozen=True)

    interview_id: UUID = Field(..., description="Interview the run processed")
    run_id: str = Field(default="", description="Run identifier")
    stage: str = Field(..., description="'complete' on success, failing step name on error")
    status: MonitoringStatus = Field(..., description="Run outcome")
    start_time: datetime = Field(..., description="Run start")
    end_time: datetime = Field(..., description="Run end")
    duration_ms: int = Field(..., description="Run wall time")
    api_calls: int = Field(default=0, description="Total external calls")
    tokens_used: int = Field(default=0, description="Total estimated tokens")
    error_count: int = Field(default=0, description="Number of fatal errors (0 or 1)")
    error_details: dict[str, Any] | None = Field(default=None, description="Error type and message")
    metadata: dict[str, Any] | None = Field(default=None, description="Per-step breakdown")


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


def parse_timestamp(value: Any) -> float:
    """
    Convert a timestamp into seconds.

    Accepts numbers, numeric strings and clock strings ("MM:SS" or "HH:MM:SS").
    Unparseable values become 0.0.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return max(0.0, float(value))
    text = str(value).strip()
    if ":" in text:
        seconds = 0.0
        try:
            for part in text.split(":"):
                seconds = seconds * 60 + float(part)
        except ValueError:
            return 0.0
        return max(0.0, seconds)
    try:
        return max(0.0, float(text))
    except ValueError:
        return 0.0


def format_timestamp(seconds: float) -> str:
    """Format seconds as MM:SS."""
    total = int(round(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


class TranscriptSegment(BaseModel):
    """One utterance in the transcript."""

    speaker: Speaker = Field(..., description="Who spoke")
    text: str = Field(..., description="What was said")
    timestamp: float = Field(default=0.0, description="Seconds from the start of the recording")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> float:
        return parse_timestamp(value)

    @field_validator("speaker", mode="before")
    @classmethod
    def _normalize_speaker(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("recruiter", "interviewer"):
                return "Recruiter"
            if lowered in ("candidate", "interviewee", "applicant"):
                return "Candidate"
        return value


class Transcription(BaseModel):
    """Result of the transcription stage."""

    text: str = Field(default="", description="Full transcript text")
    segments: list[TranscriptSegment] = Field(default_factory=list, description="Chronological segments")
    language: str | None = Field(default=None, description="Detected language")
    duration_s: float | None = Field(default=None, description="Audio duration in seconds")

    @property
    def speakers(self) -> set[str]:
        """Distinct speakers with at least one non-empty segment."""
        return {s.speaker for s in self.segments if s.text.strip()}

    def as_dialogue(self) -> str:
        """Render the transcript as `Speaker: text` lines."""
        return "\n".join(f"{s.speaker}: {s.text}" for s in self.segments)


# ---------------------------------------------------------------------------
# Stage results
# ---------------------------------------------------------------------------


class ContentType(str, Enum):
    """Kinds of recorded content."""

    INTERVIEW = "interview"
    MONOLOGUE = "monologue"
    PRESENTATION = "presentation"
    OTHER = "other"


class ContentAnalysis(BaseModel):
    """Classification of the recording's content."""

    content_type: ContentType = Field(..., description="Detected content type")
    speaker_count: int = Field(..., ge=0, description="Number of distinct speakers")
    topics: list[str] = Field(default_factory=list, description="Main topics discussed")
    topic_domains: list[str] = Field(default_factory=list, description="Professional domains touched")
    is_job_related: bool = Field(..., description="Whether the content is a job conversation")
    recommended_analysis: list[str] = Field(default_factory=list, description="Suggested analyses")

    @field_validator("content_type", mode="before")
    @classmethod
    def _normalize_content_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {c.value for c in ContentType}:
                return lowered
            return ContentType.OTHER.value
        return value


class PIIType(str, Enum):
    """Kinds of personally identifiable information."""

    NAME = "name"
    EMAIL = "email"
    PHONE = "phone"
    SSN = "ssn"
    ADDRESS = "address"
    CREDIT_CARD = "credit_card"
    DATE_OF_BIRTH = "date_of_birth"


class PIIEntity(BaseModel):
    """One detected PII span."""

    type: PIIType = Field(..., description="PII category")
    value: str = Field(..., description="Exact text as it appears in the input")
    position: int = Field(default=-1, description="Character offset of the value (-1 if unknown)")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0, description="Detector confidence")

    @property
    def end(self) -> int:
        return self.position + len(self.value)


class PIIDetection(BaseModel):
    """Model payload for PII detection."""

    entities: list[PIIEntity] = Field(default_factory=list)


class SpeakerSentiment(BaseModel):
    """Sentiment summary for one speaker."""

    positive: Percent = Field(default=0.0, description="Share of positive statements (0-100)")
    neutral: Percent = Field(default=0.0, description="Share of neutral statements (0-100)")
    negative: Percent = Field(default=0.0, description="Share of negative statements (0-100)")
    overall_score: TenPointScore = Field(..., description="Overall tone on a 1-10 scale")
    reasoning: str = Field(default="", description="Why the score was given")


class SentimentPoint(BaseModel):
    """Sentiment at a point in the conversation."""

    timestamp: float = Field(default=0.0)
    speaker: Speaker = Field(...)
    score: TenPointScore = Field(...)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> float:
        return parse_timestamp(value)


class SentimentAnalysis(BaseModel):
    """Result of the sentiment stage."""

    recruiter_sentiment: SpeakerSentiment
    candidate_sentiment: SpeakerSentiment
    timeline: list[SentimentPoint] = Field(default_factory=list)


class CategoryScore(BaseModel):
    """JD relevance for one requirement category."""

    score: Percent = Field(default=0.0)
    details: str = Field(default="")
    matched_skills: list[str] = Field(default_factory=list)
    missing_skills: list[str] = Field(default_factory=list)


class QuestionRelevance(BaseModel):
    """How relevant one recruiter question was to the JD."""

    question: str
    relevance_score: Percent = Field(default=0.0)
    category: str = Field(default="general")
    reasoning: str = Field(default="")


class AnswerAlignment(BaseModel):
    """How well one candidate answer aligned with the JD."""

    answer: str
    alignment_score: Percent = Field(default=0.0)
    key_skills: list[str] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    reasoning: str = Field(default="")
    tone: Literal["Positive", "Neutral", "Negative"] = Field(default="Neutral")


class SkillGapAnalysis(BaseModel):
    """Skill gaps between the JD and the interview."""

    critical_missing_skills: list[str] = Field(default_factory=list)
    unexpected_skills: list[str] = Field(default_factory=list)
    overqualified_areas: list[str] = Field(default_factory=list)
    underqualified_areas: list[str] = Field(default_factory=list)


class JDRelevance(BaseModel):
    """Result of the JD relevance stage."""

    overall_score: Percent = Field(..., description="Overall JD match (0-100)")
    category_breakdown: dict[str, CategoryScore] = Field(default_factory=dict)
    question_relevance: list[QuestionRelevance] = Field(default_factory=list)
    answer_alignment: list[AnswerAlignment] = Field(default_factory=list)
    skill_gap_analysis: SkillGapAnalysis = Field(default_factory=SkillGapAnalysis)
    recommended_action: str = Field(default="")
    embedding_score: float = Field(default=0.0, description="Embedding similarity blended in (0 if unused)")
    combined_score: float | None = Field(default=None, description="Blended LLM and embedding score")

    @property
    def effective_score(self) -> float:
        return self.overall_score if self.combined_score is None else self.combined_score


class FlowBreak(BaseModel):
    """A point where the conversation lost continuity."""

    timestamp: str = Field(default="")
    issue: str
    severity: Literal["low", "medium", "high"] = Field(default="medium")

    @field_validator("timestamp", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        if isinstance(value, (int, float)):
            return format_timestamp(float(value))
        return "" if value is None else str(value)


class FlowAnalysis(BaseModel):
    """Result of the flow stage."""

    continuity_score: Percent = Field(..., description="Conversation continuity (0-100)")
    flow_breaks: list[FlowBreak] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)


class QuestionExample(BaseModel):
    question: str
    is_resume_related: bool = False
    resume_section: str | None = None


class QuestionRelevanceSummary(BaseModel):
    total_questions: int = 0
    resume_related_questions: int = 0
    relevance_percentage: Percent = 0.0
    examples: list[QuestionExample] = Field(default_factory=list)


class ClaimCheck(BaseModel):
    claim: str
    response: str = ""
    is_consistent: bool = True
    notes: str = ""


class ResponseQuality(BaseModel):
    consistency_score: Percent = 0.0
    depth_score: Percent = 0.0
    examples: list[ClaimCheck] = Field(default_factory=list)


class OverallAssessment(BaseModel):
    recruiter_effectiveness: Percent = 0.0
    candidate_performance: Percent = 0.0
    summary: str = ""


class ResumeAnalysis(BaseModel):
    """Résumé versus interview comparison."""

    recruiter_question_relevance: QuestionRelevanceSummary = Field(default_factory=QuestionRelevanceSummary)
    candidate_response_quality: ResponseQuality = Field(default_factory=ResponseQuality)
    overall_assessment: OverallAssessment = Field(default_factory=OverallAssessment)


class SkillsDemonstration(BaseModel):
    claimed_skills: list[str] = Field(default_factory=list)
    demonstrated_skills: list[str] = Field(default_factory=list)
    score: Percent = 0.0


class ConsistencyCheck(BaseModel):
    score: Percent = 0.0
    inconsistencies: list[str] = Field(default_factory=list)


class CommunicationRating(BaseModel):
    clarity: Percent = 0.0
    confidence: Percent = 0.0
    depth: Percent = 0.0


class CandidateReport(BaseModel):
    """Candidate-facing performance report."""

    skills_demonstration: SkillsDemonstration = Field(default_factory=SkillsDemonstration)
    consistency_check: ConsistencyCheck = Field(default_factory=ConsistencyCheck)
    communication_rating: CommunicationRating = Field(default_factory=CommunicationRating)
    strengths: list[str] = Field(default_factory=list)
    areas_for_improvement: list[str] = Field(default_factory=list)
    overall_score: Percent = 0.0
    summary: str = ""


class QuestionQuality(BaseModel):
    resume_relevance: Percent = 0.0
    depth: Percent = 0.0
    engagement: Percent = 0.0


class InterviewCoverage(BaseModel):
    experience_covered: list[str] = Field(default_factory=list)
    skills_covered: list[str] = Field(default_factory=list)
    missed_opportunities: list[str] = Field(default_factory=list)


class Effectiveness(BaseModel):
    score: Percent = 0.0
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)


class RecruiterReport(BaseModel):
    """Recruiter-facing performance report."""

    question_quality: QuestionQuality = Field(default_factory=QuestionQuality)
    interview_coverage: InterviewCoverage = Field(default_factory=InterviewCoverage)
    effectiveness: Effectiveness = Field(default_factory=Effectiveness)
    overall_score: Percent = 0.0
    summary: str = ""


class AlignmentResult(BaseModel):
    """Result of résumé alignment or interview-only alignment."""

    resume_analysis: ResumeAnalysis | None = Field(default=None, description="Only set when a résumé was given")
    candidate_report: CandidateReport = Field(default_factory=CandidateReport)
    recruiter_report: RecruiterReport = Field(default_factory=RecruiterReport)


class Evidence(BaseModel):
    statement: str
    weight: float = Field(default=0.5)
    source: str = Field(default="transcript")


class Explanation(BaseModel):
    """Why a score came out the way it did."""

    reasoning: list[str] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)
    confidence_level: Percent = Field(default=0.0)
    alternative_interpretations: list[str] = Field(default_factory=list)


class ExplainabilityData(BaseModel):
    jd_relevance: Explanation
    flow_continuity: Explanation
    sentiment: Explanation


class EmbeddingMatch(BaseModel):
    text: str
    similarity: float
    category: str = "general"


class EmbeddingAnalysis(BaseModel):
    """Result of the optional embedding stage; zeroed when unavailable."""

    overall_similarity: float = Field(default=0.0, description="Mean JD/answer similarity (0-100)")
    answer_matches: list[EmbeddingMatch] = Field(default_factory=list)
    category_breakdown: dict[str, float] = Field(default_factory=dict)
    available: bool = Field(default=False, description="False when disabled or failed")
    error: str | None = Field(default=None)


# ---------------------------------------------------------------------------
# Conversation flow graph
# ---------------------------------------------------------------------------


class QAItem(BaseModel):
    """Question or answer fed to the flow graph builder."""

    text: str
    timestamp: float = 0.0


class NodeType(str, Enum):
    QUESTION = "question"
    ANSWER = "answer"


class EdgeKind(str, Enum):
    RESPONSE = "response"
    FOLLOW_UP = "follow_up"


class Importance(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class FollowUpType(str, Enum):
    TECHNICAL_DEPTH = "technical_depth"
    BEHAVIORAL = "behavioral"
    CLARIFICATION = "clarification"
    PROJECT_DETAILS = "project_details"
    QUANTIFICATION = "quantification"
    TEAM_COLLABORATION = "team_collaboration"


class FlowNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: NodeType
    speaker: Speaker
    text: str
    timestamp: float
    index: int


class FlowEdge(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    kind: EdgeKind
    weight: float = 1.0
    via: str | None = Field(default=None, description="Answer a follow-up builds on")


class FlowGraph(BaseModel):
    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)


class MissedFollowUp(BaseModel):
    """An answer whose detail the recruiter never followed up on."""

    after_node: str = Field(..., description="Answer node id")
    question_node: str | None = Field(default=None, description="Question the answer responded to")
    suggested_questions: list[str] = Field(default_factory=list)
    importance: Importance
    reasoning: str
    follow_up_type: FollowUpType
    answer_excerpt: str = ""


class ConversationBranch(BaseModel):
    """A topic thread: connected questions linked by follow-up edges."""

    id: str
    question_ids: list[str]
    node_ids: list[str]
    topic_keywords: list[str] = Field(default_factory=list)
    depth: int = Field(default=0, description="Number of follow-up edges in the thread")


class FlowGraphModel(BaseModel):
    """Flow graph plus its derived scores, as persisted on the interview."""

    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    missed_follow_ups: list[MissedFollowUp] = Field(default_factory=list)
    logical_connection_score: float = 50.0
    branches: list[ConversationBranch] = Field(default_factory=list)
    base_flow_score: float = 0.0
    enhanced_score: float = 0.0


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class TrainingRecommendation(BaseModel):
    area: str
    priority: Literal["critical", "high", "medium", "low"]
    issue: str
    recommendation: str
    resources: list[str] = Field(default_factory=list)
    expected_improvement: str = ""


class PerformanceGap(BaseModel):
    metric: str
    current_score: float
    target_score: float
    gap: float
    severity: Literal["critical", "moderate", "minor"]


PerformanceRating = Literal["excellent", "good", "needs_improvement", "poor"]


class TrainingRecommendations(BaseModel):
    recommendations: list[TrainingRecommendation] = Field(default_factory=list)
    performance_gaps: list[PerformanceGap] = Field(default_factory=list)
    strength_areas: list[str] = Field(default_factory=list)
    overall_rating: PerformanceRating = "poor"


class QAAnswer(BaseModel):
    text: str
    timestamp: float = 0.0
    tone: Literal["Positive", "Neutral", "Negative"] = "Neutral"
    jd_match: float = 50.0
    reasoning: str = ""


class QAPair(BaseModel):
    """A recruiter question with the candidate answers that followed it."""

    question: str
    timestamp: float = 0.0
    relevance: float = 50.0
    reasoning: str = ""
    answers: list[QAAnswer] = Field(default_factory=list)


class AnalysisReport(BaseModel):
    """Aggregated report persisted at the end of a run."""

    interview_id: UUID
    recruiter_sentiment: float
    candidate_engagement: float
    jd_match_score: float
    embedding_match_score: float = 0.0
    flow_continuity_score: float
    voice_tone_score: float = 0.0
    insights: list[str] = Field(default_factory=list)
    qa_analysis: list[QAPair] = Field(default_factory=list)
    report_data: dict[str, Any] = Field(default_factory=dict)
    training_recommendations: TrainingRecommendations | None = None
    score_explanations: ExplainabilityData | None = None
    created_at: datetime = Field(default_factory=_now_utc)


class RecruiterMetrics(BaseModel):
    """Per-interview recruiter performance metrics."""

    interview_id: UUID
    recruiter_name: str
    average_sentiment: float
    question_relevance_score: float
    flow_continuity_score: float
    follow_up_quality: float
    logical_connections_score: float
    missed_follow_ups: int
    total_questions: int
    performance_rating: PerformanceRating
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[PerformanceGap] = Field(default_factory=list)


class ApiUsageMetrics(BaseModel):
    total_api_calls: int = 0
    total_tokens: int = 0
    total_duration_ms: int = 0
    embeddings_enabled: bool = False
    parallel_optimization: bool = True


# ---------------------------------------------------------------------------
# Interview record
# ---------------------------------------------------------------------------


class InterviewRecord(BaseModel):
    """The persisted interview with every stage output."""

    id: UUID = Field(default_factory=uuid4)
    file_path: str = Field(..., description="Path to the recorded audio")
    job_description: str = Field(default="", description="Job description text")
    resume_text: str | None = Field(default=None, description="Candidate résumé text")
    recruiter_name: str | None = Field(default=None)
    transcript: Transcription | None = None
    encrypted_transcript: str | None = None
    pii_redacted: bool = False
    pii_entities: list[PIIEntity] = Field(default_factory=list)
    content_analysis: ContentAnalysis | None = None
    sentiment_analysis: SentimentAnalysis | None = None
    jd_analysis: JDRelevance | None = None
    embedding_analysis: EmbeddingAnalysis | None = None
    flow_analysis: FlowAnalysis | None = None
    graph_flow_model: FlowGraphModel | None = None
    resume_analysis: ResumeAnalysis | None = None
    candidate_report: CandidateReport | None = None
    recruiter_report: RecruiterReport | None = None
    explainability_data: ExplainabilityData | None = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    processing_steps: list[Step] = Field(default_factory=list)
    api_usage_metrics: ApiUsageMetrics | None = None
    lease_owner: str | None = None
    lease_expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=_now_utc)
    updated_at: datetime = Field(default_factory=_now_utc)
