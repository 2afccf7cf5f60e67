"""
Interview processing pipeline.

Errors, schemas, step tracking and the conversation flow graph. The
orchestrator and service are imported from their own modules.
"""

from interview_analyzer.pipeline.errors import (
    InterviewBusyError,
    InterviewNotFoundError,
    InvalidInputError,
    MalformedOutputError,
    PipelineError,
    StageError,
    StepTransitionError,
    TranscriptionError,
)
from interview_analyzer.pipeline.schemas import (
    FlowGraphModel,
    InterviewRecord,
    PipelineMonitoringRecord,
    ProcessingStatus,
    Step,
    StepStatus,
)
from interview_analyzer.pipeline.step_tracker import StepTracker

__all__ = [
    "FlowGraphModel",
    "InterviewBusyError",
    "InterviewNotFoundError",
    "InterviewRecord",
    "InvalidInputError",
    "MalformedOutputError",
    "PipelineError",
    "PipelineMonitoringRecord",
    "ProcessingStatus",
    "StageError",
    "Step",
    "StepStatus",
    "StepTracker",
    "TranscriptionError",
]
