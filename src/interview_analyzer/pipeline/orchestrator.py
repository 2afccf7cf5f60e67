"""
Interview processing orchestrator.

Drives one pipeline run for one interview: composes the analysis stages into
serial stages and parallel groups, moves the step tracker through every
transition, writes each snapshot through to the store, and emits exactly one
monitoring record when the run ends.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from datetime import datetime, timezone
from typing import Any, TypeVar
from uuid import UUID

from interview_analyzer.config import Settings, get_settings
from interview_analyzer.db.store import InterviewStore
from interview_analyzer.models.usage import UsageMeter, metered
from interview_analyzer.pipeline import flow_graph
from interview_analyzer.pipeline.aggregation import (
    build_baseline_report,
    build_enhanced_report,
    build_recruiter_metrics,
    generate_training_recommendations,
)
from interview_analyzer.pipeline.errors import (
    InterviewBusyError,
    InterviewNotFoundError,
    InvalidInputError,
    StepTransitionError,
)
from interview_analyzer.pipeline.monitor import PipelineMonitor, RunOutcome
from interview_analyzer.pipeline.schemas import (
    ApiUsageMetrics,
    ContentAnalysis,
    ContentType,
    EmbeddingAnalysis,
    ExplainabilityData,
    InterviewRecord,
    JDRelevance,
    MonitoringStatus,
    PipelineRun,
    ProcessingStatus,
    RunKind,
    StepStatus,
    Transcription,
    TranscriptSegment,
)
from interview_analyzer.pipeline.step_tracker import StepTracker
from interview_analyzer.stages.base import AnalysisServices
from interview_analyzer.stages.encryption import TranscriptCipher
from interview_analyzer.stages.pii import redact_pii

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Enhanced pipeline steps
TRANSCRIPTION = "Audio Transcription"
PARALLEL_ANALYSIS = "Parallel Analysis"
ENCRYPTION = "Encryption"
ADVANCED_ANALYSIS = "Advanced Analysis"
EMBEDDING_GENERATION = "Embedding Generation"
EXPLAINABILITY = "Explainability & Reports"
MONITORING = "Pipeline Monitoring"

# Baseline pipeline steps
TRANSCRIBING = "Transcribing Interview"
VALIDATING = "Validating Format"
ANALYZING = "Analyzing Conversation"
COMPARING_RESUME = "Comparing Resume"
GENERATING_INSIGHTS = "Generating Insights"

EMBEDDING_WEIGHT = 0.3

SINGLE_SPEAKER_MESSAGE = (
    "Invalid Audio Format: a two-person interview is required for analysis. "
    "This audio contains only one speaker."
)


def enhanced_steps(use_embeddings: bool) -> list[tuple[str, str]]:
    """Step names and initial messages of the enhanced pipeline."""
    steps = [
        (TRANSCRIPTION, "Transcribing audio with speaker labels..."),
        (PARALLEL_ANALYSIS, "Running content classification and PII detection in parallel..."),
        (ENCRYPTION, "Encrypting redacted transcript..."),
        (ADVANCED_ANALYSIS, "Running JD relevance, flow and report analysis in parallel..."),
    ]
    if use_embeddings:
        steps.append((EMBEDDING_GENERATION, "Generating semantic embeddings..."))
    steps += [
        (EXPLAINABILITY, "Generating explainability and reports..."),
        (MONITORING, "Recording pipeline metrics..."),
    ]
    return steps


def baseline_steps(has_resume: bool) -> list[tuple[str, str]]:
    """Step names and initial messages of the baseline pipeline."""
    steps = [
        (TRANSCRIBING, "Converting audio to text transcript"),
        (VALIDATING, "Checking interview structure and participants"),
        (ANALYZING, "Evaluating tone, job requirement match and conversation flow"),
    ]
    if has_resume:
        steps.append((COMPARING_RESUME, "Cross-checking resume with interview responses"))
    steps.append((GENERATING_INSIGHTS, "Creating comprehensive analysis report"))
    return steps


async def gather_required(*aws: Awaitable[Any]) -> list[Any]:
    """
    Run awaitables concurrently and wait for all of them.

    Every member runs to completion before the first failure, in argument
    order, is raised.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


async def _resolved(value: T) -> T:
    return value


def blend_jd_score(jd: JDRelevance, embeddings: EmbeddingAnalysis) -> JDRelevance:
    """Blend the embedding similarity into the JD score when it is available."""
    if embeddings.available:
        combined = jd.overall_score * (1 - EMBEDDING_WEIGHT) + embeddings.overall_similarity * EMBEDDING_WEIGHT
        return jd.model_copy(update={"embedding_score": embeddings.overall_similarity, "combined_score": combined})
    return jd.model_copy(update={"embedding_score": 0.0, "combined_score": jd.overall_score})


class RunContext:
    """Step state, usage and write-through persistence for one run."""

    def __init__(
        self,
        store: InterviewStore,
        interview_id: UUID,
        kind: RunKind,
        steps: Sequence[tuple[str, str]],
        meter: UsageMeter,
    ) -> None:
        self._store = store
        self._meter = meter
        self._mark = (0, 0)
        self.tracker = StepTracker([name for name, _ in steps], [message for _, message in steps])
        self.run = PipelineRun(interview_id=interview_id, kind=kind, steps=self.tracker.snapshot)
        self.last_started: str | None = None
        self.monitored = False

    @property
    def interview_id(self) -> UUID:
        return self.run.interview_id

    @property
    def meter(self) -> UsageMeter:
        return self._meter

    @property
    def active_step(self) -> str | None:
        index = self.tracker.processing_index
        return None if index is None else self.tracker.snapshot[index].name

    async def persist(self, **changes: Any) -> None:
        """Write the current step snapshot, plus any other fields, to the store."""
        self.run = self.run.model_copy(
            update={
                "steps": self.tracker.snapshot,
                "api_call_count": self._meter.api_calls,
                "token_count": self._meter.tokens,
            }
        )
        await self._store.update_interview(self.interview_id, processing_steps=list(self.tracker.snapshot), **changes)

    async def begin(self, name: str, message: str | None = None) -> None:
        self._mark = (self._meter.api_calls, self._meter.tokens)
        self.tracker.advance(self.tracker.index_of(name), StepStatus.PROCESSING, message)
        self.last_started = name
        await self.persist()

    async def finish(self, name: str, message: str | None = None, **changes: Any) -> None:
        calls = self._meter.api_calls - self._mark[0]
        tokens = self._meter.tokens - self._mark[1]
        self.tracker.advance(
            self.tracker.index_of(name),
            StepStatus.COMPLETE,
            message,
            api_calls=calls,
            tokens_used=tokens,
        )
        await self.persist(**changes)

    async def settle(self, name: str, status: StepStatus, message: str, usage: UsageMeter) -> None:
        """Resolve a step that ran inside another step's group."""
        self.tracker.advance(
            self.tracker.index_of(name),
            status,
            message,
            api_calls=usage.api_calls,
            tokens_used=usage.tokens,
        )
        await self.persist()

    async def fail(self, error: BaseException) -> None:
        self.tracker.fail_active(str(error) or type(error).__name__)
        self.run = self.run.model_copy(update={"status": ProcessingStatus.ERROR})
        await self.persist(processing_status=ProcessingStatus.ERROR)

    async def complete(self, message: str, monitor: PipelineMonitor, embeddings_enabled: bool) -> None:
        """
        Settle the final step and mark the run complete.

        The final step stays `processing` until one store call has written
        the settled snapshot, the `complete` status and the success monitoring
        record. If that call fails, the failure path still finds the step
        processing and marks it `error`.
        """
        index = self.tracker.processing_index
        if index is None:
            raise StepTransitionError("Run finished without a processing step to settle")
        steps = self.tracker.preview(
            index,
            StepStatus.COMPLETE,
            message,
            api_calls=self._meter.api_calls - self._mark[0],
            tokens_used=self._meter.tokens - self._mark[1],
        )
        run = self.run.model_copy(
            update={
                "steps": steps,
                "status": ProcessingStatus.COMPLETE,
                "api_call_count": self._meter.api_calls,
                "token_count": self._meter.tokens,
            }
        )
        await monitor.record_completion(
            RunOutcome(run=run, status=MonitoringStatus.SUCCESS),
            processing_steps=list(steps),
            processing_status=ProcessingStatus.COMPLETE,
            api_usage_metrics=self.usage_metrics(embeddings_enabled),
        )
        self.tracker.commit(steps)
        self.run = run
        self.monitored = True

    def usage_metrics(self, embeddings_enabled: bool) -> ApiUsageMetrics:
        elapsed = datetime.now(timezone.utc) - self.run.started_at
        return ApiUsageMetrics(
            total_api_calls=self._meter.api_calls,
            total_tokens=self._meter.tokens,
            total_duration_ms=int(elapsed.total_seconds() * 1000),
            embeddings_enabled=embeddings_enabled,
        )


class PipelineOrchestrator:
    """
    Runs the interview processing pipeline.

    All collaborators are injected. A required stage's failure marks the
    running step `error`, persists the partial state, records an error
    monitoring entry and propagates; only the embedding stage may degrade.
    """

    def __init__(
        self,
        store: InterviewStore,
        services: AnalysisServices,
        cipher: TranscriptCipher,
        monitor: PipelineMonitor | None = None,
        settings: Settings | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            store: Interview persistence.
            services: Analysis stage implementations.
            cipher: Transcript cipher.
            monitor: Monitoring emitter (created over `store` if None).
            settings: Application settings (uses config if not provided).
        """
        self._store = store
        self._services = services
        self._cipher = cipher
        self._monitor = monitor or PipelineMonitor(store)
        self._settings = settings or get_settings()

    async def process_enhanced_interview(self, interview_id: UUID) -> None:
        """
        Run the enhanced pipeline for one interview.

        Raises:
            InterviewNotFoundError: If the interview does not exist.
            InterviewBusyError: If another run holds the interview.
            InvalidInputError: If the recording is not a two-person job interview.
            StageError: If a required stage fails.
        """
        interview = await self._load(interview_id)
        use_embeddings = self._settings.use_embeddings
        await self._execute(
            interview,
            RunKind.ENHANCED,
            enhanced_steps(use_embeddings),
            self._run_enhanced,
            use_embeddings,
        )

    async def process_interview(self, interview_id: UUID) -> None:
        """
        Run the baseline pipeline for one interview.

        Raises:
            InterviewNotFoundError: If the interview does not exist.
            InterviewBusyError: If another run holds the interview.
            InvalidInputError: If the recording is not a two-person job interview.
            StageError: If a required stage fails.
        """
        interview = await self._load(interview_id)
        await self._execute(
            interview,
            RunKind.BASELINE,
            baseline_steps(bool(interview.resume_text)),
            self._run_baseline,
            False,
        )

    async def _load(self, interview_id: UUID) -> InterviewRecord:
        interview = await self._store.get_interview(interview_id)
        if interview is None:
            raise InterviewNotFoundError(interview_id)
        return interview

    async def _execute(
        self,
        interview: InterviewRecord,
        kind: RunKind,
        steps: Sequence[tuple[str, str]],
        body: Any,
        embeddings_enabled: bool,
    ) -> None:
        with metered() as meter:
            ctx = RunContext(self._store, interview.id, kind, steps, meter)
            run_id = ctx.run.run_id

            acquired = await self._store.acquire_lease(interview.id, run_id, self._settings.pipeline_lease_seconds)
            if not acquired:
                raise InterviewBusyError(interview.id)

            logger.info(f"Starting {kind.value} run {run_id} for interview {interview.id}")
            try:
                ctx.run = ctx.run.model_copy(update={"status": ProcessingStatus.PROCESSING})
                await ctx.persist(processing_status=ProcessingStatus.PROCESSING)
                final_message = await body(ctx, interview)
                await ctx.complete(final_message, self._monitor, embeddings_enabled)
                logger.info(f"Run {run_id} complete: {meter.api_calls} API calls, ~{meter.tokens} tokens")
            except Exception as e:
                await self._handle_failure(ctx, e)
                raise
            finally:
                await self._store.release_lease(interview.id, run_id)

    async def _handle_failure(self, ctx: RunContext, error: Exception) -> None:
        stage = ctx.active_step or ctx.last_started or "setup"
        logger.error(f"Run {ctx.run.run_id} failed at '{stage}': {error}")
        try:
            await ctx.fail(error)
        except Exception as persist_error:
            logger.error(f"Could not persist failure state for interview {ctx.interview_id}: {persist_error}")
        if ctx.monitored:
            logger.error(f"Run {ctx.run.run_id} was already recorded as successful; not recording '{stage}' failure")
            return
        try:
            await self._monitor.record(
                RunOutcome(run=ctx.run, status=MonitoringStatus.ERROR, failed_stage=stage, error=error)
            )
            ctx.monitored = True
        except Exception as monitor_error:
            logger.error(f"Could not record monitoring for run {ctx.run.run_id}: {monitor_error}")

    # ------------------------------------------------------------------
    # Validation gate
    # ------------------------------------------------------------------

    @staticmethod
    def _check_speakers(transcript: Transcription) -> None:
        if len(transcript.speakers) < 2:
            raise InvalidInputError(SINGLE_SPEAKER_MESSAGE)

    @staticmethod
    def _check_content(content: ContentAnalysis) -> None:
        if content.speaker_count < 2:
            raise InvalidInputError(SINGLE_SPEAKER_MESSAGE)
        if content.content_type != ContentType.INTERVIEW or not content.is_job_related:
            raise InvalidInputError(
                f"Cannot analyze: content is not a job interview (detected: {content.content_type.value}). "
                "A two-person job interview is required for analysis."
            )

    # ------------------------------------------------------------------
    # Enhanced pipeline
    # ------------------------------------------------------------------

    async def _embed(
        self,
        job_description: str,
        answers: Sequence[TranscriptSegment],
    ) -> tuple[EmbeddingAnalysis, UsageMeter]:
        """Run the optional embedding stage under its own meter; never raises."""
        with metered() as meter:
            try:
                result = await self._services.embedder.analyze(job_description, answers)
            except Exception as e:
                logger.warning(f"Embedding stage failed, continuing without it: {e}")
                result = EmbeddingAnalysis(available=False, error=str(e) or type(e).__name__)
        return result, meter

    async def _run_enhanced(self, ctx: RunContext, interview: InterviewRecord) -> str:
        services = self._services
        use_embeddings = ctx.tracker.has(EMBEDDING_GENERATION)

        # Stage 1
        await ctx.begin(TRANSCRIPTION)
        transcript = await services.transcriber.transcribe(interview.file_path)
        await ctx.finish(
            TRANSCRIPTION,
            f"Transcribed {len(transcript.segments)} segments",
            transcript=transcript,
        )

        # Stage 2: validation gate, then sentiment and redaction
        await ctx.begin(PARALLEL_ANALYSIS)
        self._check_speakers(transcript)
        dialogue = transcript.as_dialogue()
        content, entities = await gather_required(
            services.classifier.classify(transcript),
            services.pii_detector.detect(dialogue),
        )
        self._check_content(content)
        sentiment = await services.sentiment.analyze(transcript, content)
        redacted = redact_pii(dialogue, entities)
        await ctx.finish(
            PARALLEL_ANALYSIS,
            f"Parallel processing complete: {len(entities)} PII entities detected, content analyzed",
            content_analysis=content,
            pii_redacted=True,
            pii_entities=entities,
            sentiment_analysis=sentiment,
        )

        # Stage 3
        await ctx.begin(ENCRYPTION)
        encrypted = await self._cipher.encrypt_async(redacted)
        await ctx.finish(ENCRYPTION, "Redacted transcript encrypted", encrypted_transcript=encrypted)

        # Stage 4: local flow graph, then the network fan-out
        await ctx.begin(ADVANCED_ANALYSIS)
        questions, answers = flow_graph.questions_and_answers(transcript.segments)
        graph = flow_graph.analyze(questions, answers, self._settings.missed_follow_up_window)
        candidate_segments = [s for s in transcript.segments if s.speaker == "Candidate"]

        if interview.resume_text:
            alignment_call = services.alignment.align_resume(
                transcript, interview.resume_text, interview.job_description
            )
        else:
            alignment_call = services.alignment.assess_interview(transcript, interview.job_description)
        if interview.recruiter_name:
            name_call = _resolved(interview.recruiter_name)
        else:
            name_call = services.alignment.recruiter_name(transcript)

        members: list[Awaitable[Any]] = [
            services.jd_relevance.analyze(transcript, interview.job_description),
            services.flow.analyze(transcript),
            alignment_call,
            name_call,
        ]
        if use_embeddings:
            members.append(self._embed(interview.job_description, candidate_segments))

        results = await asyncio.gather(*members, return_exceptions=True)
        for result in results[:4]:
            if isinstance(result, BaseException):
                raise result
        jd_result, flow_result, alignment, recruiter_name = results[:4]

        if use_embeddings:
            embedding_analysis, embedding_usage = results[4]
        else:
            embedding_analysis, embedding_usage = EmbeddingAnalysis(), UsageMeter()

        jd = blend_jd_score(jd_result, embedding_analysis)
        graph = graph.model_copy(
            update={
                "base_flow_score": flow_result.continuity_score,
                "enhanced_score": round((graph.logical_connection_score + flow_result.continuity_score) / 2, 2),
            }
        )

        changes: dict[str, Any] = {
            "jd_analysis": jd,
            "flow_analysis": flow_result,
            "graph_flow_model": graph,
            "embedding_analysis": embedding_analysis,
            "candidate_report": alignment.candidate_report,
            "recruiter_report": alignment.recruiter_report,
        }
        if alignment.resume_analysis is not None:
            changes["resume_analysis"] = alignment.resume_analysis
        if recruiter_name and not interview.recruiter_name:
            changes["recruiter_name"] = recruiter_name

        await ctx.finish(
            ADVANCED_ANALYSIS,
            f"Parallel analysis complete: JD, flow, {'resume' if interview.resume_text else 'interview'} reports; "
            f"{len(graph.missed_follow_ups)} missed follow-ups",
            **changes,
        )

        if use_embeddings:
            ctx.meter.record(embedding_usage.api_calls, embedding_usage.tokens)
            if embedding_analysis.available:
                await ctx.settle(
                    EMBEDDING_GENERATION,
                    StepStatus.COMPLETE,
                    f"Embeddings: {embedding_usage.api_calls} API calls",
                    embedding_usage,
                )
            else:
                await ctx.settle(
                    EMBEDDING_GENERATION,
                    StepStatus.ERROR,
                    f"Embeddings skipped: {embedding_analysis.error}",
                    embedding_usage,
                )

        # Stage 5
        await ctx.begin(EXPLAINABILITY)
        jd_explain, flow_explain, sentiment_explain = await gather_required(
            services.explainer.explain(
                "JD Relevance Score",
                jd.effective_score,
                {"llm_score": jd.overall_score, "embedding_score": jd.embedding_score},
            ),
            services.explainer.explain(
                "Flow Continuity Score",
                graph.enhanced_score,
                {
                    "logical_connections": graph.logical_connection_score,
                    "base_flow": flow_result.continuity_score,
                    "missed_follow_ups": len(graph.missed_follow_ups),
                },
            ),
            services.explainer.explain(
                "Sentiment Analysis",
                sentiment.candidate_sentiment.overall_score,
                {"text_sentiment": sentiment.model_dump(mode="json")},
            ),
        )
        explanations = ExplainabilityData(
            jd_relevance=jd_explain,
            flow_continuity=flow_explain,
            sentiment=sentiment_explain,
        )
        training = generate_training_recommendations(jd, flow_result, sentiment, graph.missed_follow_ups)

        report = build_enhanced_report(
            interview.id,
            transcript.segments,
            jd,
            sentiment,
            flow_result,
            graph,
            embedding_analysis,
            len(questions),
            training,
            explanations,
        )
        metrics = build_recruiter_metrics(
            interview.id,
            interview.recruiter_name or recruiter_name,
            jd,
            sentiment,
            graph,
            len(questions),
            training,
        )
        await gather_required(
            self._store.create_analysis_report(report),
            self._store.create_recruiter_metrics(metrics),
        )
        await ctx.finish(
            EXPLAINABILITY,
            f"Reports generated ({len(training.recommendations)} training recommendations)",
            explainability_data=explanations,
        )

        # Stage 6: settled together with the monitoring record by `RunContext.complete`
        await ctx.begin(MONITORING)
        return f"{ctx.meter.api_calls} API calls, ~{ctx.meter.tokens} tokens"

    # ------------------------------------------------------------------
    # Baseline pipeline
    # ------------------------------------------------------------------

    async def _run_baseline(self, ctx: RunContext, interview: InterviewRecord) -> str:
        services = self._services

        await ctx.begin(TRANSCRIBING, "Transcribing audio...")
        transcript = await services.transcriber.transcribe(interview.file_path)
        await ctx.finish(TRANSCRIBING, f"Transcribed {len(transcript.segments)} segments", transcript=transcript)

        await ctx.begin(VALIDATING)
        self._check_speakers(transcript)
        content = await services.classifier.classify(transcript)
        logger.info(f"Content classified as {content.content_type.value} with {content.speaker_count} speakers")
        self._check_content(content)
        await ctx.finish(VALIDATING, "Two-person job interview confirmed", content_analysis=content)

        await ctx.begin(ANALYZING)
        sentiment, jd, flow = await gather_required(
            services.sentiment.analyze(transcript, content),
            services.jd_relevance.analyze(transcript, interview.job_description),
            services.flow.analyze(transcript),
        )
        await ctx.finish(
            ANALYZING,
            "Tone, job match and flow analyzed",
            sentiment_analysis=sentiment,
            jd_analysis=jd,
            flow_analysis=flow,
        )

        if interview.resume_text:
            await ctx.begin(COMPARING_RESUME)
            alignment = await services.alignment.align_resume(
                transcript, interview.resume_text, interview.job_description
            )
            await ctx.finish(
                COMPARING_RESUME,
                "Resume comparison completed",
                resume_analysis=alignment.resume_analysis,
                candidate_report=alignment.candidate_report,
                recruiter_report=alignment.recruiter_report,
            )

        await ctx.begin(GENERATING_INSIGHTS)
        report = build_baseline_report(interview.id, transcript.segments, jd, sentiment, flow)
        await self._store.create_analysis_report(report)
        return "Comprehensive insights ready"
