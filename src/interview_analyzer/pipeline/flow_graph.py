"""
Conversation flow graph.

Builds a directed question/answer graph from an interview transcript and
derives a logical-continuity score, missed follow-up opportunities and topic
branches from it. Everything here is pure and deterministic; no I/O.

Graph shape:
    response edges   question -> answer (each answer has at most one)
    follow_up edges  question -> later question, annotated with the answer
                     (`via`) whose content the later question builds on
"""

import re
from collections import Counter
from collections.abc import Sequence

from interview_analyzer.pipeline.schemas import (
    ConversationBranch,
    EdgeKind,
    FlowEdge,
    FlowGraph,
    FlowGraphModel,
    FlowNode,
    FollowUpType,
    Importance,
    MissedFollowUp,
    NodeType,
    QAItem,
    TranscriptSegment,
)

NEUTRAL_SCORE = 50.0
FOLLOW_UP_MIN_OVERLAP = 2
DEFAULT_LOOKAHEAD = 2
EXCERPT_LENGTH = 150

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9+#]*")

_STOPWORDS = frozenset(
    """
    a about above after again all also am an and any are as at be because been before
    being below between both but by can could did do does doing done down during each
    else ever few for from further get got had has have having he her here hers him his
    how i if in into is it its itself just like me mentioned more most my myself no nor
    not now of off on once only or other our ours out over own really said same say she
    should so some such tell than that the their theirs them then there these they this
    those through to too under until up us very was we were what when where which while
    who whom why will with would yes yeah you your yours yourself okay ok um uh well
    thing things lot kind sort maybe describe explain share walk give example
    """.split()
)

_CUE_RE = re.compile(
    r"\b(you mentioned|you said|tell me more|more about that|elaborate|expand on|"
    r"dig into|go deeper|follow up|following up|earlier you|back to)\b",
    re.IGNORECASE,
)

_TECH_TERMS = frozenset(
    """
    python java javascript typescript golang rust c++ c# ruby php scala kotlin
    sql nosql postgres postgresql mysql mongodb redis kafka spark hadoop airflow dbt
    aws azure gcp kubernetes k8s docker terraform ansible jenkins linux
    react angular vue node django flask fastapi graphql grpc
    tensorflow pytorch pandas numpy tableau salesforce jira
    microservices api apis ci/cd devops etl ml llm
    """.split()
)

# (pattern, label, importance, follow-up type, suggested questions)
_CLAIM_RULES: tuple[tuple[re.Pattern[str], str, Importance, FollowUpType, tuple[str, ...]], ...] = (
    (
        re.compile(
            r"\b(team of \d+|\d+[- ]?(?:person|people|member|engineer|developer|report)s?\b|"
            r"(?:led|lead|managed|manage|ran|built) (?:a |the |my |our )?(?:\w+ )?team|"
            r"direct reports?|manag(?:ed|ing) \d+)",
            re.IGNORECASE,
        ),
        "team size or leadership",
        Importance.HIGH,
        FollowUpType.TEAM_COLLABORATION,
        (
            "How was that team structured, and what was your specific role in leading it?",
            "How did you handle disagreements or underperformance within the team?",
            "How did you coordinate work and communication across the team?",
        ),
    ),
    (
        re.compile(
            r"(\d+(?:\.\d+)?\s*(?:%|percent\b|x\b|k\b|million\b|billion\b|users\b|customers\b|"
            r"requests\b|transactions\b|ms\b|milliseconds\b|hours\b)|[$€£]\s?\d)",
            re.IGNORECASE,
        ),
        "metrics",
        Importance.HIGH,
        FollowUpType.QUANTIFICATION,
        (
            "How did you measure that number, and what was the baseline before your work?",
            "What was your personal contribution to that result compared to the team's?",
            "What trade-offs did you make to reach that figure?",
        ),
    ),
    (
        re.compile(
            r"\b(project|developed|built|created|implemented|designed|launched|migrat\w*|rewrote)\b",
            re.IGNORECASE,
        ),
        "project work",
        Importance.MEDIUM,
        FollowUpType.PROJECT_DETAILS,
        (
            "Can you walk me through that project from start to finish?",
            "What were the biggest challenges in that project and how did you overcome them?",
        ),
    ),
    (
        re.compile(
            r"\b(result\w*|outcome\w*|achiev\w*|improv\w*|increas\w*|reduc\w*|saved|success\w*)\b",
            re.IGNORECASE,
        ),
        "results",
        Importance.MEDIUM,
        FollowUpType.BEHAVIORAL,
        (
            "What was the situation and the specific challenge you faced?",
            "What actions did you personally take, and how did you know you succeeded?",
        ),
    ),
    (
        re.compile(r"\b\d+\+?\s*(?:years?|yrs?|months?)\b", re.IGNORECASE),
        "tenure",
        Importance.LOW,
        FollowUpType.CLARIFICATION,
        ("How has your role changed over that period?",),
    ),
)

_TECH_SUGGESTIONS = (
    "Can you walk me through a specific problem you solved with {tech}?",
    "What were the limitations of {tech} in that setup and how did you work around them?",
    "How would you judge your depth with {tech} compared to other tools you have used?",
)


def _stem(token: str) -> str:
    for suffix in ("ing", "ed", "es", "s"):
        if len(token) > len(suffix) + 3 and token.endswith(suffix):
            return token[: -len(suffix)]
    return token


def keywords(text: str) -> set[str]:
    """Content keywords of a text: lower-cased, stemmed, stop-words removed."""
    result: set[str] = set()
    for token in _TOKEN_RE.findall(text.lower()):
        if token in _STOPWORDS:
            continue
        if token.isdigit() or len(token) >= 3:
            result.add(_stem(token))
    return result


def _tech_mentions(text: str) -> list[str]:
    found: list[str] = []
    for token in re.findall(r"[a-z0-9+#/]+", text.lower()):
        if token in _TECH_TERMS and token not in found:
            found.append(token)
    return found


def questions_and_answers(segments: Sequence[TranscriptSegment]) -> tuple[list[QAItem], list[QAItem]]:
    """
    Split a transcript into flow-graph questions and answers.

    Questions are recruiter segments containing a question mark; answers are
    candidate segments. When the transcript carries no usable timing
    (timestamps missing or out of order), segment positions are used instead.
    """
    stamps = [s.timestamp for s in segments]
    ordered = all(a <= b for a, b in zip(stamps, stamps[1:]))
    informative = ordered and len(set(stamps)) == len(stamps)

    questions: list[QAItem] = []
    answers: list[QAItem] = []
    for position, segment in enumerate(segments):
        timestamp = segment.timestamp if informative else float(position)
        if segment.speaker == "Recruiter" and "?" in segment.text:
            questions.append(QAItem(text=segment.text, timestamp=timestamp))
        elif segment.speaker == "Candidate":
            answers.append(QAItem(text=segment.text, timestamp=timestamp))
    return questions, answers


def _sorted_nodes(questions: Sequence[QAItem], answers: Sequence[QAItem]) -> list[FlowNode]:
    nodes = [
        FlowNode(id=f"q{i}", type=NodeType.QUESTION, speaker="Recruiter", text=q.text, timestamp=q.timestamp, index=i)
        for i, q in enumerate(questions)
    ] + [
        FlowNode(id=f"a{i}", type=NodeType.ANSWER, speaker="Candidate", text=a.text, timestamp=a.timestamp, index=i)
        for i, a in enumerate(answers)
    ]
    # Questions sort before answers that share their timestamp.
    return sorted(nodes, key=lambda n: (n.timestamp, 0 if n.type == NodeType.QUESTION else 1, n.index))


def _response_edges(questions: Sequence[QAItem], answers: Sequence[QAItem]) -> list[FlowEdge]:
    edges: list[FlowEdge] = []
    for j, answer in enumerate(answers):
        best: int | None = None
        for i, question in enumerate(questions):
            if question.timestamp <= answer.timestamp and (
                best is None or question.timestamp >= questions[best].timestamp
            ):
                best = i
        if best is not None:
            edges.append(FlowEdge(source=f"q{best}", target=f"a{j}", kind=EdgeKind.RESPONSE, weight=1.0))
    return edges


def _overlap_weight(shared: set[str], left: set[str], right: set[str]) -> float:
    smaller = min(len(left), len(right))
    if smaller == 0:
        return 0.0
    return round(min(1.0, len(shared) / smaller), 3)


def _follow_up_edges(
    questions: Sequence[QAItem],
    answers: Sequence[QAItem],
    responses: Sequence[FlowEdge],
) -> list[FlowEdge]:
    answered_by: dict[int, int] = {int(e.target[1:]): int(e.source[1:]) for e in responses}
    answer_keywords = [keywords(a.text) for a in answers]
    edges: list[FlowEdge] = []

    for k, later in enumerate(questions):
        later_keywords = keywords(later.text)
        has_cue = bool(_CUE_RE.search(later.text))

        # Answers that precede the later question and respond to an earlier one.
        candidates = [
            j
            for j, answer in enumerate(answers)
            if j in answered_by and answered_by[j] < k and answer.timestamp <= later.timestamp
        ]
        latest = max(candidates, key=lambda j: (answers[j].timestamp, j), default=None)

        best_per_source: dict[int, tuple[float, int]] = {}
        for j in candidates:
            shared = later_keywords & answer_keywords[j]
            threshold = 1 if (has_cue and j == latest) else FOLLOW_UP_MIN_OVERLAP
            if len(shared) < threshold:
                continue
            weight = _overlap_weight(shared, later_keywords, answer_keywords[j])
            if has_cue and j == latest:
                weight = max(weight, 0.5)
            source = answered_by[j]
            if source not in best_per_source or weight > best_per_source[source][0]:
                best_per_source[source] = (weight, j)

        for source in sorted(best_per_source):
            weight, j = best_per_source[source]
            edges.append(
                FlowEdge(source=f"q{source}", target=f"q{k}", kind=EdgeKind.FOLLOW_UP, weight=weight, via=f"a{j}")
            )
    return edges


def build(questions: Sequence[QAItem], answers: Sequence[QAItem]) -> FlowGraph:
    """
    Build the conversation flow graph.

    Args:
        questions: Recruiter questions in source order.
        answers: Candidate answers in source order.

    Returns:
        Nodes ordered by timestamp and the response/follow-up edges between them.
    """
    if not questions and not answers:
        return FlowGraph()

    responses = _response_edges(questions, answers)
    follow_ups = _follow_up_edges(questions, answers, responses)
    return FlowGraph(nodes=_sorted_nodes(questions, answers), edges=responses + follow_ups)


def calculate_logical_score(edges: Sequence[FlowEdge], question_count: int | None = None) -> float:
    """
    Score logical continuity from 0 to 100.

    Rewards a high ratio of follow-up edges to questions and penalizes orphan
    questions (questions no answer responds to).

    Args:
        edges: Graph edges.
        question_count: Number of questions in the graph. Inferred from the
            edges when omitted, which cannot see questions with no edges.

    Returns:
        The score; `NEUTRAL_SCORE` when there are no questions.
    """
    answered = {e.source for e in edges if e.kind == EdgeKind.RESPONSE}
    if question_count is None:
        referenced = answered | {e.source for e in edges if e.kind == EdgeKind.FOLLOW_UP}
        referenced |= {e.target for e in edges if e.kind == EdgeKind.FOLLOW_UP}
        question_count = len(referenced)
    if question_count <= 0:
        return NEUTRAL_SCORE

    follow_ups = sum(1 for e in edges if e.kind == EdgeKind.FOLLOW_UP)
    orphans = max(0, question_count - len(answered))

    possible = question_count - 1
    continuity = 60.0 * min(1.0, follow_ups / possible) if possible > 0 else 30.0
    penalty = 30.0 * orphans / question_count
    return round(max(0.0, min(100.0, 40.0 + continuity - penalty)), 2)


def _excerpt(text: str) -> str:
    if len(text) <= EXCERPT_LENGTH:
        return text
    return text[:EXCERPT_LENGTH] + "..."


def _claims(text: str) -> list[tuple[str, Importance, FollowUpType, list[str]]]:
    found: list[tuple[str, Importance, FollowUpType, list[str]]] = []
    for pattern, label, importance, follow_up_type, suggestions in _CLAIM_RULES:
        if pattern.search(text):
            found.append((label, importance, follow_up_type, list(suggestions)))

    techs = _tech_mentions(text)
    if techs:
        found.append(
            (
                f"technology ({', '.join(techs[:3])})",
                Importance.HIGH,
                FollowUpType.TECHNICAL_DEPTH,
                [s.format(tech=techs[0]) for s in _TECH_SUGGESTIONS],
            )
        )
    return found


def detect_missed_follow_ups(
    questions: Sequence[QAItem],
    answers: Sequence[QAItem],
    edges: Sequence[FlowEdge],
    window: int = DEFAULT_LOOKAHEAD,
) -> list[MissedFollowUp]:
    """
    Find answers whose claims were never followed up.

    An answer is considered followed up when one of the next `window`
    questions after it has a follow-up edge from the question it answered,
    whichever sibling answer that edge was built on. Answers with no
    subsequent question at all (end of the interview) are not reported.

    Args:
        questions: Recruiter questions in source order.
        answers: Candidate answers in source order.
        edges: Edges produced by `build` for the same input.
        window: Number of subsequent questions searched.

    Returns:
        At most one entry per answer, in answer order.
    """
    responded_to = {e.target: e.source for e in edges if e.kind == EdgeKind.RESPONSE}
    followed_from: dict[str, set[str]] = {}
    for e in edges:
        if e.kind == EdgeKind.FOLLOW_UP:
            followed_from.setdefault(e.source, set()).add(e.target)

    missed: list[MissedFollowUp] = []
    for j, answer in enumerate(answers):
        answer_id = f"a{j}"
        source = responded_to.get(answer_id)
        source_index = int(source[1:]) if source else -1
        upcoming = [
            f"q{i}" for i, q in enumerate(questions) if i > source_index and q.timestamp >= answer.timestamp
        ][: max(0, window)]
        if not upcoming:
            continue
        if source and followed_from.get(source, set()) & set(upcoming):
            continue

        claims = _claims(answer.text)
        if not claims:
            continue

        top = max(claims, key=lambda c: c[1].rank)
        suggestions: list[str] = []
        for _, _, _, claim_suggestions in sorted(claims, key=lambda c: -c[1].rank):
            for suggestion in claim_suggestions:
                if suggestion not in suggestions:
                    suggestions.append(suggestion)
        labels = ", ".join(c[0] for c in claims)
        missed.append(
            MissedFollowUp(
                after_node=answer_id,
                question_node=source,
                suggested_questions=suggestions[:4],
                importance=top[1],
                reasoning=(
                    f"The candidate mentioned {labels} but none of the next "
                    f"{len(upcoming)} question(s) explored it."
                ),
                follow_up_type=top[2],
                answer_excerpt=_excerpt(answer.text),
            )
        )
    return missed


def identify_conversation_branches(nodes: Sequence[FlowNode], edges: Sequence[FlowEdge]) -> list[ConversationBranch]:
    """
    Group questions into topic threads.

    A branch is a connected component (two or more questions) of the
    follow-up subgraph, together with the answers to its questions.
    """
    order = {node.id: position for position, node in enumerate(nodes)}
    by_id = {node.id: node for node in nodes}
    parent: dict[str, str] = {}

    def find(x: str) -> str:
        parent.setdefault(x, x)
        while parent[x] != x:
            parent[x] = parent[parent[x]]
            x = parent[x]
        return x

    follow_ups = [e for e in edges if e.kind == EdgeKind.FOLLOW_UP]
    for e in follow_ups:
        left, right = find(e.source), find(e.target)
        if left != right:
            parent[max(left, right, key=lambda n: order.get(n, 0))] = min(
                left, right, key=lambda n: order.get(n, 0)
            )

    components: dict[str, list[str]] = {}
    for question_id in parent:
        components.setdefault(find(question_id), []).append(question_id)

    answers_of: dict[str, list[str]] = {}
    for e in edges:
        if e.kind == EdgeKind.RESPONSE:
            answers_of.setdefault(e.source, []).append(e.target)

    branches: list[ConversationBranch] = []
    ordered = sorted(
        (sorted(members, key=lambda n: order.get(n, 0)) for members in components.values() if len(members) >= 2),
        key=lambda members: order.get(members[0], 0),
    )
    for number, question_ids in enumerate(ordered):
        member_set = set(question_ids)
        node_ids = sorted(
            question_ids + [a for q in question_ids for a in answers_of.get(q, [])],
            key=lambda n: order.get(n, 0),
        )
        counts: Counter[str] = Counter()
        for node_id in node_ids:
            if node_id in by_id:
                counts.update(keywords(by_id[node_id].text))
        branches.append(
            ConversationBranch(
                id=f"b{number}",
                question_ids=question_ids,
                node_ids=node_ids,
                topic_keywords=[word for word, _ in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:5]],
                depth=sum(1 for e in follow_ups if e.source in member_set and e.target in member_set),
            )
        )
    return branches


def analyze(
    questions: Sequence[QAItem],
    answers: Sequence[QAItem],
    window: int = DEFAULT_LOOKAHEAD,
) -> FlowGraphModel:
    """Build the graph and every derived measure in one pass."""
    graph = build(questions, answers)
    return FlowGraphModel(
        nodes=graph.nodes,
        edges=graph.edges,
        missed_follow_ups=detect_missed_follow_ups(questions, answers, graph.edges, window),
        logical_connection_score=calculate_logical_score(graph.edges, len(questions)),
        branches=identify_conversation_branches(graph.nodes, graph.edges),
    )
