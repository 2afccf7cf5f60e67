"""
Report aggregation.

Pure helpers that turn stage outputs into the persisted analysis report,
recruiter metrics and training recommendations.
"""

from collections.abc import Sequence
from uuid import UUID

from interview_analyzer.pipeline.schemas import (
    AnalysisReport,
    EmbeddingAnalysis,
    ExplainabilityData,
    FlowAnalysis,
    FlowGraphModel,
    JDRelevance,
    MissedFollowUp,
    PerformanceGap,
    PerformanceRating,
    QAAnswer,
    QAPair,
    RecruiterMetrics,
    SentimentAnalysis,
    SpeakerSentiment,
    TrainingRecommendation,
    TrainingRecommendations,
    TranscriptSegment,
    format_timestamp,
)

# Per-category coverage prompts used when a JD category was never discussed.
CATEGORY_QUESTIONS: dict[str, tuple[str, tuple[str, ...]]] = {
    "technical_skills": (
        "Technical Skills",
        (
            "Ask about specific technologies mentioned in the JD",
            "Request hands-on experience examples with required tools",
            "Probe technical problem-solving scenarios",
        ),
    ),
    "experience_level": (
        "Experience Level",
        (
            "Ask about years of experience in relevant roles",
            "Inquire about progression and growth in their career",
            "Discuss specific projects that match the role's seniority",
        ),
    ),
    "cultural_fit": (
        "Cultural Fit",
        (
            "Ask about work style preferences and team collaboration",
            "Inquire about values alignment and company culture fit",
            "Discuss how they handle workplace challenges",
        ),
    ),
    "leadership": (
        "Leadership",
        (
            "Ask about team management and mentoring experience",
            "Inquire about decision-making and conflict resolution",
            "Discuss examples of leading projects or initiatives",
        ),
    ),
    "education_qualifications": (
        "Education & Qualifications",
        (
            "Ask about relevant degrees and certifications",
            "Inquire about specialized training and courses",
            "Discuss how their education applies to the role",
        ),
    ),
    "soft_skills": (
        "Soft Skills",
        (
            "Ask about communication and interpersonal skills",
            "Inquire about adaptability and problem-solving",
            "Discuss examples of teamwork and collaboration",
        ),
    ),
    "communication": (
        "Communication",
        (
            "Ask about presentation and documentation skills",
            "Inquire about cross-functional collaboration",
            "Discuss examples of explaining complex topics",
        ),
    ),
    "problem_solving": (
        "Problem Solving",
        (
            "Ask about analytical and critical thinking approach",
            "Inquire about handling complex challenges",
            "Discuss specific problem-solving methodologies used",
        ),
    ),
    "industry_knowledge": (
        "Industry Knowledge",
        (
            "Ask about domain expertise and market understanding",
            "Inquire about industry trends and best practices",
            "Discuss relevant sector-specific experience",
        ),
    ),
    "motivation_fit": (
        "Motivation & Career Goals",
        (
            "Ask about career aspirations and growth plans",
            "Inquire about why they're interested in this role",
            "Discuss long-term goals and role alignment",
        ),
    ),
}

_NOT_DISCUSSED = ("not discussed", "not mentioned")


def _is_question(segment: TranscriptSegment) -> bool:
    return segment.speaker == "Recruiter" and "?" in segment.text


def calculate_engagement_score(segments: Sequence[TranscriptSegment], candidate_sentiment: SpeakerSentiment) -> int:
    """
    Score candidate engagement from 10 to 100 (0 when the candidate never spoke).

    Combines sentiment (50%), average answer length (30%) and how many
    questions drew an answer (20%).
    """
    answers = [s for s in segments if s.speaker == "Candidate"]
    if not answers:
        return 0

    average_length = sum(len(s.text) for s in answers) / len(answers)
    if average_length > 150:
        length_score = 90
    elif average_length > 100:
        length_score = 80
    elif average_length > 50:
        length_score = 70
    elif average_length > 20:
        length_score = 50
    else:
        length_score = 30

    questions = sum(1 for s in segments if _is_question(s))
    participation = min(100.0, len(answers) / questions * 70) if questions else 70.0

    score = round(candidate_sentiment.overall_score * 10 * 0.5 + length_score * 0.3 + participation * 0.2)
    return max(10, min(100, score))


def _tone(sentiment: SentimentAnalysis | None) -> str:
    if sentiment is None:
        return "Neutral"
    candidate = sentiment.candidate_sentiment
    if candidate.positive > 50:
        return "Positive"
    if candidate.negative > 50:
        return "Negative"
    return "Neutral"


def extract_qa_analysis(
    segments: Sequence[TranscriptSegment],
    jd: JDRelevance,
    sentiment: SentimentAnalysis | None = None,
) -> list[QAPair]:
    """Group candidate answers under the recruiter question they follow."""
    pairs: list[QAPair] = []
    current: QAPair | None = None
    tone = _tone(sentiment)

    for segment in segments:
        if _is_question(segment):
            if current is not None:
                pairs.append(current)
            match = next(
                (q for q in jd.question_relevance if q.question and q.question[:30] in segment.text),
                None,
            )
            current = QAPair(
                question=segment.text,
                timestamp=segment.timestamp,
                relevance=match.relevance_score if match else 50.0,
                reasoning=match.reasoning if match else "",
            )
        elif segment.speaker == "Candidate" and current is not None:
            match = next(
                (a for a in jd.answer_alignment if a.answer and a.answer[:30] in segment.text),
                None,
            )
            current.answers.append(
                QAAnswer(
                    text=segment.text,
                    timestamp=segment.timestamp,
                    tone=match.tone if match else tone,
                    jd_match=match.alignment_score if match else 50.0,
                    reasoning=match.reasoning if match else "",
                )
            )

    if current is not None:
        pairs.append(current)
    return pairs


def _rating(average: float) -> PerformanceRating:
    if average >= 85:
        return "excellent"
    if average >= 70:
        return "good"
    if average >= 50:
        return "needs_improvement"
    return "poor"


def generate_training_recommendations(
    jd: JDRelevance | None,
    flow: FlowAnalysis | None,
    sentiment: SentimentAnalysis | None,
    missed_follow_ups: Sequence[MissedFollowUp] = (),
) -> TrainingRecommendations:
    """
    Derive recruiter coaching advice from the analysis results.

    Args:
        jd: JD relevance result.
        flow: Flow result (uses the continuity score).
        sentiment: Sentiment result (uses the recruiter score).
        missed_follow_ups: Missed follow-ups from the flow graph.

    Returns:
        Recommendations, performance gaps, strengths and an overall rating.
    """
    recommendations: list[TrainingRecommendation] = []
    gaps: list[PerformanceGap] = []
    strengths: list[str] = []

    if jd is not None:
        score = jd.overall_score
        if score < 60:
            gaps.append(
                PerformanceGap(
                    metric="JD Relevance",
                    current_score=score,
                    target_score=80,
                    gap=80 - score,
                    severity="critical" if score < 40 else "moderate",
                )
            )
            recommendations.append(
                TrainingRecommendation(
                    area="Job Description Alignment",
                    priority="critical" if score < 40 else "high",
                    issue="Questions are not well-aligned with job requirements",
                    recommendation=(
                        "Study the job description before interviews and prepare targeted "
                        "questions for each requirement"
                    ),
                    resources=[
                        "JD Analysis Training Module",
                        "Competency-Based Interviewing Guide",
                        "Technical Skills Assessment Framework",
                    ],
                    expected_improvement="Increase JD relevance score by 20-30 points",
                )
            )
        elif score >= 80:
            strengths.append("Strong job description alignment")

        for key, category in jd.category_breakdown.items():
            details = category.details.lower()
            if category.score != 0 or not any(marker in details for marker in _NOT_DISCUSSED):
                continue
            if key not in CATEGORY_QUESTIONS:
                continue
            name, examples = CATEGORY_QUESTIONS[key]
            recommendations.append(
                TrainingRecommendation(
                    area=f"Missing Coverage: {name}",
                    priority="high",
                    issue=f"No questions asked about {name.lower()}",
                    recommendation=f"Include questions to assess {name.lower()}. {examples[0]}",
                    resources=list(examples[1:]),
                    expected_improvement=f"Cover {name.lower()} to improve JD alignment by 10-15 points",
                )
            )

    if flow is not None:
        score = flow.continuity_score
        if score < 70:
            gaps.append(
                PerformanceGap(
                    metric="Flow Continuity",
                    current_score=score,
                    target_score=85,
                    gap=85 - score,
                    severity="critical" if score < 50 else "moderate",
                )
            )
            recommendations.append(
                TrainingRecommendation(
                    area="Conversation Flow",
                    priority="critical" if score < 50 else "high",
                    issue="Questions lack logical flow and follow-up",
                    recommendation=(
                        "Practice active listening and ask follow-up questions based on "
                        "candidate responses"
                    ),
                    resources=[
                        "Active Listening Techniques",
                        "Follow-up Question Framework",
                        "Interview Flow Best Practices",
                    ],
                    expected_improvement="Improve flow continuity by 15-20 points",
                )
            )
        elif score >= 85:
            strengths.append("Excellent conversation flow and continuity")

    high_missed = [m for m in missed_follow_ups if m.importance.value == "high"]
    if high_missed:
        recommendations.append(
            TrainingRecommendation(
                area="Follow-up Questioning",
                priority="high" if len(high_missed) > 1 else "medium",
                issue=f"{len(high_missed)} high-value answer(s) were not followed up",
                recommendation=(
                    "When a candidate mentions team size, metrics or specific technologies, "
                    "ask at least one clarifying question before changing topic"
                ),
                resources=[m.suggested_questions[0] for m in high_missed if m.suggested_questions][:3],
                expected_improvement="Fewer missed follow-ups and deeper evidence per claim",
            )
        )

    recruiter_score = sentiment.recruiter_sentiment.overall_score * 10 if sentiment else 0.0
    if sentiment is not None and recruiter_score < 60:
        recommendations.append(
            TrainingRecommendation(
                area="Interview Tone",
                priority="medium",
                issue="Recruiter tone could be more positive and engaging",
                recommendation=(
                    "Practice maintaining a welcoming demeanor and show genuine interest in "
                    "candidate responses"
                ),
                resources=[
                    "Positive Interview Techniques",
                    "Building Rapport with Candidates",
                ],
                expected_improvement="Increase candidate comfort and engagement",
            )
        )

    average = (
        (jd.overall_score if jd else 0.0) + (flow.continuity_score if flow else 0.0) + recruiter_score
    ) / 3

    return TrainingRecommendations(
        recommendations=recommendations,
        performance_gaps=gaps,
        strength_areas=strengths,
        overall_rating=_rating(average),
    )


def follow_up_quality(missed_count: int) -> float:
    """100 minus 10 points per missed follow-up, floored at 0."""
    return float(max(0, 100 - missed_count * 10))


def build_recruiter_metrics(
    interview_id: UUID,
    recruiter_name: str | None,
    jd: JDRelevance,
    sentiment: SentimentAnalysis,
    graph: FlowGraphModel,
    question_count: int,
    training: TrainingRecommendations,
) -> RecruiterMetrics:
    return RecruiterMetrics(
        interview_id=interview_id,
        recruiter_name=recruiter_name or "Recruiter",
        average_sentiment=sentiment.recruiter_sentiment.overall_score,
        question_relevance_score=jd.overall_score,
        flow_continuity_score=graph.enhanced_score,
        follow_up_quality=follow_up_quality(len(graph.missed_follow_ups)),
        logical_connections_score=graph.logical_connection_score,
        missed_follow_ups=len(graph.missed_follow_ups),
        total_questions=question_count,
        performance_rating=training.overall_rating,
        strengths=training.strength_areas,
        weaknesses=training.performance_gaps,
    )


def build_enhanced_report(
    interview_id: UUID,
    segments: Sequence[TranscriptSegment],
    jd: JDRelevance,
    sentiment: SentimentAnalysis,
    flow: FlowAnalysis,
    graph: FlowGraphModel,
    embeddings: EmbeddingAnalysis,
    question_count: int,
    training: TrainingRecommendations,
    explanations: ExplainabilityData,
) -> AnalysisReport:
    """Aggregate the enhanced pipeline's outputs into one report."""
    duration = segments[-1].timestamp if segments else 0.0
    return AnalysisReport(
        interview_id=interview_id,
        recruiter_sentiment=sentiment.recruiter_sentiment.overall_score,
        candidate_engagement=calculate_engagement_score(segments, sentiment.candidate_sentiment),
        jd_match_score=jd.effective_score,
        embedding_match_score=embeddings.overall_similarity,
        flow_continuity_score=graph.enhanced_score,
        voice_tone_score=sentiment.candidate_sentiment.overall_score * 10,
        insights=flow.insights,
        qa_analysis=extract_qa_analysis(segments, jd, sentiment),
        report_data={
            "summary": {
                "interview_length": format_timestamp(duration) if segments else "Unknown",
                "questions_asked": question_count,
                "missed_follow_ups": len(graph.missed_follow_ups),
                "branches": len(graph.branches),
            },
        },
        training_recommendations=training,
        score_explanations=explanations,
    )


def build_baseline_report(
    interview_id: UUID,
    segments: Sequence[TranscriptSegment],
    jd: JDRelevance,
    sentiment: SentimentAnalysis,
    flow: FlowAnalysis,
) -> AnalysisReport:
    """Aggregate the baseline pipeline's outputs into one report."""
    question_count = sum(1 for s in segments if _is_question(s))
    return AnalysisReport(
        interview_id=interview_id,
        recruiter_sentiment=sentiment.recruiter_sentiment.overall_score,
        candidate_engagement=calculate_engagement_score(segments, sentiment.candidate_sentiment),
        jd_match_score=jd.overall_score,
        flow_continuity_score=flow.continuity_score,
        voice_tone_score=sentiment.candidate_sentiment.overall_score * 10,
        insights=flow.insights,
        qa_analysis=extract_qa_analysis(segments, jd, sentiment),
        report_data={
            "summary": {
                "interview_length": format_timestamp(segments[-1].timestamp) if segments else "Unknown",
                "questions_asked": question_count,
                "recommended_action": jd.recommended_action,
            },
            "skill_gaps": jd.skill_gap_analysis.model_dump(),
            "flow_breaks": [b.model_dump() for b in flow.flow_breaks],
        },
        training_recommendations=generate_training_recommendations(jd, flow, sentiment),
    )
