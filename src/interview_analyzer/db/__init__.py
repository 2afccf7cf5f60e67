"""
Database module for persistence.

Provides SQLAlchemy models, the repository pattern and the interview store
used by the pipeline.
"""

from interview_analyzer.db.models import (
    AnalysisReportModel,
    Base,
    InterviewModel,
    PipelineMonitoringModel,
    RecruiterMetricsModel,
)
from interview_analyzer.db.session import create_engine, create_session_factory, init_db
from interview_analyzer.db.store import InterviewStore, SQLInterviewStore

__all__ = [
    "AnalysisReportModel",
    "Base",
    "InterviewModel",
    "InterviewStore",
    "PipelineMonitoringModel",
    "RecruiterMetricsModel",
    "SQLInterviewStore",
    "create_engine",
    "create_session_factory",
    "init_db",
]
