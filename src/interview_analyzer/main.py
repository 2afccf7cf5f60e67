"""
Main entry point for the Interview Analyzer command line.
"""

import argparse
import asyncio
import logging
import sys
from uuid import UUID

from interview_analyzer.config import get_settings
from interview_analyzer.db.session import create_engine, create_session_factory, init_db
from interview_analyzer.db.store import SQLInterviewStore
from interview_analyzer.models.llm_client import LLMClient
from interview_analyzer.pipeline.errors import PipelineError
from interview_analyzer.pipeline.orchestrator import PipelineOrchestrator
from interview_analyzer.pipeline.schemas import InterviewRecord, PipelineMonitoringRecord
from interview_analyzer.pipeline.service import PipelineService, PipelineStatus
from interview_analyzer.stages.base import AnalysisServices
from interview_analyzer.stages.documents import read_document
from interview_analyzer.stages.encryption import TranscriptCipher

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="interview-analyzer")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create database tables")

    create = commands.add_parser("create", help="Register a recorded interview")
    create.add_argument("audio", help="Path to the interview recording")
    create.add_argument("--job-description", required=True, help="Job description file (.txt, .md, .docx)")
    create.add_argument("--resume", help="Candidate résumé file (.txt, .md, .docx)")
    create.add_argument("--recruiter-name", help="Recruiter name, if known")

    process = commands.add_parser("process", help="Process an interview and wait for the result")
    process.add_argument("interview_id", type=UUID)
    process.add_argument("--baseline", action="store_true", help="Run the baseline pipeline instead of the enhanced one")

    status = commands.add_parser("status", help="Show processing steps of an interview")
    status.add_argument("interview_id", type=UUID)

    monitoring = commands.add_parser("monitoring", help="Show pipeline monitoring records of an interview")
    monitoring.add_argument("interview_id", type=UUID)

    return parser


def _print_status(status: PipelineStatus) -> None:
    print(f"Interview {status.interview_id}: {status.processing_status.value}")
    for step in status.steps:
        duration = f" ({step.duration_ms}ms)" if step.duration_ms is not None else ""
        print(f"  [{step.status.value:>10}] {step.name}{duration} - {step.message}")
    if status.api_usage_metrics:
        usage = status.api_usage_metrics
        print(f"  API calls: {usage.total_api_calls}, tokens: ~{usage.total_tokens}")


def _print_monitoring(records: list[PipelineMonitoringRecord]) -> None:
    if not records:
        print("No monitoring records")
        return
    for record in records:
        line = (
            f"{record.start_time.isoformat()} {record.status.value:<7} stage={record.stage} "
            f"duration={record.duration_ms}ms calls={record.api_calls} tokens={record.tokens_used}"
        )
        if record.error_details:
            line += f" error={record.error_details.get('error')}"
        print(line)


async def _wait_for(service: PipelineService, task: asyncio.Task[None], interview_id: UUID) -> None:
    last_step = None
    while not task.done():
        status = await service.get_status(interview_id)
        current = status.current_step
        if current is not None and current.name != last_step:
            print(f"-> {current.name}: {current.message}")
            last_step = current.name
        await asyncio.wait({task}, timeout=POLL_INTERVAL_SECONDS)
    await task


async def run(argv: list[str] | None = None) -> int:
    """
    Run one CLI command.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()

    engine = create_engine()
    store = SQLInterviewStore(create_session_factory(engine))
    try:
        if args.command == "init-db":
            await init_db(engine)
            print("Database ready")
            return 0

        if args.command == "create":
            record = InterviewRecord(
                file_path=args.audio,
                job_description=read_document(args.job_description),
                resume_text=read_document(args.resume) if args.resume else None,
                recruiter_name=args.recruiter_name,
            )
            created = await store.create_interview(record)
            print(created.id)
            return 0

        if args.command == "monitoring":
            _print_monitoring(await store.list_monitoring(args.interview_id))
            return 0

        llm_client = LLMClient(model=settings.llm_model_name, timeout=settings.llm_timeout)
        services = AnalysisServices.from_settings(settings, llm_client)
        orchestrator = PipelineOrchestrator(
            store=store,
            services=services,
            cipher=TranscriptCipher.from_settings(settings),
            settings=settings,
        )
        service = PipelineService(orchestrator, store)

        if args.command == "status":
            _print_status(await service.get_status(args.interview_id))
            return 0

        if args.baseline:
            task = await service.process_interview(args.interview_id)
        else:
            task = await service.process_enhanced_interview(args.interview_id)
        try:
            await _wait_for(service, task, args.interview_id)
        finally:
            await services.close()
            _print_status(await service.get_status(args.interview_id))
        report = await store.get_analysis_report(args.interview_id)
        if report is not None:
            print(
                f"JD match {report.jd_match_score:.0f}, flow {report.flow_continuity_score:.0f}, "
                f"engagement {report.candidate_engagement:.0f}"
            )
        return 0
    finally:
        await engine.dispose()


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        sys.exit(asyncio.run(run(sys.argv[1:])))
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        sys.exit(130)
    except (PipelineError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
