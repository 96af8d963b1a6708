"""Readiness assessor: scores a question against the dimension model.

Both entry points are pure. ``refine`` appends bracketed annotations to the
original text and re-scores it with ``analyze``.
"""

import logging
from dataclasses import replace

from quorum.dimensions import (
    DEBATE_TYPES,
    DIMENSION_KEYWORDS,
    QUESTION_OPTIONS,
    TYPE_KEYWORDS,
    Dimension,
    assumption_text,
    dimensions_for,
    question_text,
)
from quorum.errors import InvalidInput
from quorum.models import (
    Assumption,
    ClarifyingQuestion,
    DimensionScore,
    ReadinessAssessment,
    RefinementResult,
)

logger = logging.getLogger(__name__)

MIN_INPUT_LENGTH = 10
PRESENT_SCORE = 80
PARTIAL_SCORE = 40
CRITICAL_WEIGHT = 0.15

_PARTIAL_CONFIDENCE = 0.6
_MISSING_CONFIDENCE = 0.3


def readiness_level(score: int) -> str:
    if score >= 75:
        return "excellent"
    if score >= 50:
        return "good"
    if score >= 30:
        return "basic"
    return "insufficient"


def recommended_action(score: int, has_critical: bool) -> str:
    if score >= 70 and not has_critical:
        return "proceed"
    if score >= 40 or has_critical:
        return "clarify"
    return "refine"


def infer_debate_type(text: str) -> str:
    lowered = text.lower()
    for debate_type, keywords in TYPE_KEYWORDS.items():
        if any(kw in lowered for kw in keywords):
            return debate_type
    return "general"


def _score_dimension(dimension: Dimension, lowered: str) -> DimensionScore:
    matched = [kw for kw in DIMENSION_KEYWORDS.get(dimension.id, ()) if kw in lowered]
    if len(matched) >= 2:
        score, status = PRESENT_SCORE, "present"
    elif len(matched) == 1:
        score, status = PARTIAL_SCORE, "partial"
    else:
        score, status = 0, "missing"
    return DimensionScore(
        id=dimension.id,
        name=dimension.name,
        weight=dimension.weight,
        score=score,
        status=status,
        matched=[kw.strip() for kw in matched],
    )


def _summary(overall: int, missing: int) -> str:
    if overall >= 70:
        return "The context is fairly complete. The experts can give you valuable perspectives."
    if overall >= 50:
        return f"Good starting point. {missing} area(s) could be clarified for better results."
    if overall >= 30:
        return f"Basic context detected. Add more detail in {missing} key area(s)."
    return "More context is needed before the experts can help effectively."


def analyze(user_input: str, debate_type: str | None = None) -> ReadinessAssessment:
    """Score free text against the dimension model of its debate type.

    Args:
        user_input: The question plus any context the user typed.
        debate_type: One of DEBATE_TYPES; inferred from keywords when omitted.

    Raises:
        InvalidInput: Input shorter than 10 characters or unknown debate type.
    """
    text = (user_input or "").strip()
    if len(text) < MIN_INPUT_LENGTH:
        raise InvalidInput(f"Input must be at least {MIN_INPUT_LENGTH} characters")
    if debate_type is None:
        debate_type = infer_debate_type(text)
    elif debate_type not in DEBATE_TYPES:
        raise InvalidInput(f"Unknown debate type: {debate_type}")

    lowered = text.lower()
    dimensions = dimensions_for(debate_type)
    scores = [_score_dimension(d, lowered) for d in dimensions]
    overall = round(sum(s.score * s.weight for s in scores))

    assumptions: list[Assumption] = []
    questions: list[ClarifyingQuestion] = []
    for dimension, scored in zip(dimensions, scores):
        if scored.score >= PRESENT_SCORE:
            continue
        assumptions.append(
            Assumption(
                id=f"assumption-{dimension.id}",
                dimension=dimension.id,
                text=assumption_text(dimension),
                confidence=_PARTIAL_CONFIDENCE if scored.score > 0 else _MISSING_CONFIDENCE,
            )
        )
        critical = dimension.weight > CRITICAL_WEIGHT
        if critical or scored.score == 0:
            options = QUESTION_OPTIONS.get(dimension.id)
            questions.append(
                ClarifyingQuestion(
                    id=f"question-{dimension.id}",
                    dimension=dimension.id,
                    text=question_text(dimension),
                    priority="critical" if critical else "important",
                    options=list(options) if options else None,
                )
            )

    has_critical = any(q.priority == "critical" for q in questions)
    missing = sum(1 for s in scores if s.status == "missing")

    logger.debug(
        "Readiness %s: score=%d, %d assumptions, %d questions",
        debate_type,
        overall,
        len(assumptions),
        len(questions),
    )

    return ReadinessAssessment(
        debate_type=debate_type,
        dimensions=scores,
        overall_score=overall,
        readiness_level=readiness_level(overall),
        recommended_action=recommended_action(overall, has_critical),
        assumptions=assumptions,
        questions=questions,
        summary=_summary(overall, missing),
    )


def refine(
    original_input: str,
    assumption_responses: dict[str, bool],
    question_responses: dict[str, str | list[str]],
    additional_context: str | None = None,
    debate_type: str | None = None,
) -> RefinementResult:
    """Append confirmations and answers to the input, then re-score it.

    Ids are resolved against ``analyze(original_input)``. Unknown ids and
    empty answers are ignored. Annotations follow the order of the original
    assessment, so the result does not depend on mapping order.

    Answered questions are removed from the re-scored assessment and no longer
    count as critical for the recommended action. Assumptions the caller
    responded to carry ``confirmed`` True or False; confirmed texts are also
    listed on the result for seeding a debate.
    """
    baseline = analyze(original_input, debate_type)
    lines = [original_input.strip()]

    for assumption in baseline.assumptions:
        if assumption_responses.get(assumption.id) is True:
            lines.append(f"[Confirmed: {assumption.text}]")

    answered: set[str] = set()
    for question in baseline.questions:
        answer = question_responses.get(question.id)
        if isinstance(answer, (list, tuple)):
            answer = ", ".join(str(a).strip() for a in answer if str(a).strip())
        if answer and str(answer).strip():
            lines.append(f"[{question.dimension}: {str(answer).strip()}]")
            answered.add(question.id)

    known = {a.id for a in baseline.assumptions} | {q.id for q in baseline.questions}
    unknown = (set(assumption_responses) | set(question_responses)) - known
    if unknown:
        logger.debug("Ignoring unknown readiness ids: %s", ", ".join(sorted(unknown)))

    if additional_context and additional_context.strip():
        lines.append(f"[Additional context: {additional_context.strip()}]")

    enhanced = "\n".join(lines)
    rescored = analyze(enhanced, baseline.debate_type)

    questions = [q for q in rescored.questions if q.id not in answered]
    assumptions = [
        replace(a, confirmed=assumption_responses[a.id])
        if isinstance(assumption_responses.get(a.id), bool) else a
        for a in rescored.assumptions
    ]
    has_critical = any(q.priority == "critical" for q in questions)
    return RefinementResult(
        enhanced_context=enhanced,
        confirmed_assumptions=[
            a.text for a in baseline.assumptions if assumption_responses.get(a.id) is True
        ],
        assessment=replace(
            rescored,
            questions=questions,
            assumptions=assumptions,
            recommended_action=recommended_action(rescored.overall_score, has_critical),
        ),
    )
