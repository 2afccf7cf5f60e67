"""
SQLAlchemy models for database persistence.

Defines the schema for interviews, analysis reports, recruiter metrics and
pipeline monitoring records. Stage outputs are stored as JSON documents.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class InterviewModel(Base):
    """Database model for interviews and their stage outputs."""

    __tablename__ = "interviews"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    job_description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    resume_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    recruiter_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    transcript: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    encrypted_transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    pii_redacted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pii_entities: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    content_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    sentiment_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    jd_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    embedding_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    flow_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    graph_flow_model: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    resume_analysis: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    candidate_report: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    recruiter_report: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    explainability_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    processing_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    processing_steps: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    api_usage_metrics: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    lease_owner: Mapped[str | None] = mapped_column(String(64), nullable=True)
    lease_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_now_utc,
        onupdate=_now_utc,
        nullable=False,
    )


class AnalysisReportModel(Base):
    """Database model for the aggregated analysis report."""

    __tablename__ = "analysis_reports"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    interview_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("interviews.id"), nullable=False, index=True)
    recruiter_sentiment: Mapped[float] = mapped_column(Float, nullable=False)
    candidate_engagement: Mapped[float] = mapped_column(Float, nullable=False)
    jd_match_score: Mapped[float] = mapped_column(Float, nullable=False)
    embedding_match_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    flow_continuity_score: Mapped[float] = mapped_column(Float, nullable=False)
    voice_tone_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    insights: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    qa_analysis: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    report_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    training_recommendations: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    score_explanations: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)


class RecruiterMetricsModel(Base):
    """Database model for per-interview recruiter metrics."""

    __tablename__ = "recruiter_metrics"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    interview_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("interviews.id"), nullable=False, index=True)
    recruiter_name: Mapped[str] = mapped_column(String(255), nullable=False)
    average_sentiment: Mapped[float] = mapped_column(Float, nullable=False)
    question_relevance_score: Mapped[float] = mapped_column(Float, nullable=False)
    flow_continuity_score: Mapped[float] = mapped_column(Float, nullable=False)
    follow_up_quality: Mapped[float] = mapped_column(Float, nullable=False)
    logical_connections_score: Mapped[float] = mapped_column(Float, nullable=False)
    missed_follow_ups: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    performance_rating: Mapped[str] = mapped_column(String(32), nullable=False)
    strengths: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    weaknesses: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)


class PipelineMonitoringModel(Base):
    """Append-only terminal record of one pipeline run."""

    __tablename__ = "pipeline_monitoring"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    interview_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("interviews.id"), nullable=False, index=True)
    run_id: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    stage: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    api_calls: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tokens_used: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now_utc, nullable=False)
