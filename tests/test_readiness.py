"""Tests for quorum/readiness.py and quorum/dimensions.py."""

import pytest

from quorum.dimensions import DEBATE_TYPES, DIMENSION_TEMPLATES
from quorum.errors import InvalidInput
from quorum.readiness import analyze, infer_debate_type, readiness_level, recommended_action, refine

RICH_INPUT = (
    "We need to decide whether to expand to Germany or France. Our goal is to achieve "
    "10% revenue growth. Budget is limited to $200k maximum. The board and the team are "
    "involved and our customers are affected. Currently we sell only at home; so far "
    "growth is slow. We consider either option as an alternative. Success is measured by "
    "revenue and a KPI on retention. The main risk is a threat from local competitors and "
    "the downside of a failed launch. The deadline is next quarter, decision in one month."
)


@pytest.mark.parametrize("debate_type", DEBATE_TYPES)
def test_dimension_weights_sum_to_one(debate_type):
    assert sum(d.weight for d in DIMENSION_TEMPLATES[debate_type]) == pytest.approx(1.0)


@pytest.mark.parametrize(
    "score, level",
    [(0, "insufficient"), (29, "insufficient"), (30, "basic"), (49, "basic"),
     (50, "good"), (74, "good"), (75, "excellent"), (100, "excellent")],
)
def test_readiness_level_boundaries(score, level):
    assert readiness_level(score) == level


@pytest.mark.parametrize(
    "score, critical, action",
    [(80, False, "proceed"), (70, False, "proceed"), (80, True, "clarify"),
     (50, False, "clarify"), (20, True, "clarify"), (20, False, "refine")],
)
def test_recommended_action_table(score, critical, action):
    assert recommended_action(score, critical) == action


def test_infer_debate_type_priority():
    # "decide" and "strategy" both hit; business_decision is checked first
    assert infer_debate_type("We must decide on our strategy") == "business_decision"
    assert infer_debate_type("What is our long-term strategy?") == "strategy"
    assert infer_debate_type("Which feature goes in the product?") == "product"
    assert infer_debate_type("Hiring a CFO next year") == "general"


def test_analyze_rejects_short_input():
    with pytest.raises(InvalidInput):
        analyze("too short")


def test_analyze_rejects_unknown_type():
    with pytest.raises(InvalidInput):
        analyze("A perfectly valid question text", debate_type="astrology")


def test_analyze_bare_question_needs_refinement():
    result = analyze("Should we hire a designer?")
    assert result.debate_type == "general"
    assert result.overall_score < 30
    assert result.readiness_level == "insufficient"
    # objective, context and constraints weigh more than 0.15
    critical = {q.dimension for q in result.questions if q.priority == "critical"}
    assert critical == {"objective", "context", "constraints"}
    assert result.recommended_action == "clarify"


def test_analyze_rich_input_scores_high():
    result = analyze(RICH_INPUT)
    assert result.debate_type == "business_decision"
    assert result.overall_score >= 75
    assert result.readiness_level == "excellent"
    present = {d.id for d in result.dimensions if d.status == "present"}
    assert {"objective", "constraints", "risks"} <= present


def test_analyze_scores_are_bucketed():
    result = analyze(RICH_INPUT)
    assert {d.score for d in result.dimensions} <= {0, 40, 80}
    assert 0 <= result.overall_score <= 100


def test_analyze_assumptions_only_for_incomplete_dimensions():
    result = analyze("Should we decide to raise prices for customers?")
    incomplete = {d.id for d in result.dimensions if d.score < 80}
    assert {a.dimension for a in result.assumptions} == incomplete
    for a in result.assumptions:
        expected = 0.6 if next(d for d in result.dimensions if d.id == a.dimension).score else 0.3
        assert a.confidence == expected


def test_analyze_question_options_for_timeline():
    result = analyze("Should we decide to open an office abroad?")
    timeline = next(q for q in result.questions if q.dimension == "timeline")
    assert timeline.priority == "important"
    assert timeline.options and "No specific rush" in timeline.options


def test_analyze_is_deterministic():
    assert analyze(RICH_INPUT) == analyze(RICH_INPUT)


def test_refine_appends_annotations_in_assessment_order():
    text = "Should we decide to open an office in Berlin?"
    baseline = analyze(text)
    first, second = baseline.assumptions[0], baseline.assumptions[1]
    question = baseline.questions[0]

    result = refine(
        text,
        {second.id: True, first.id: True},
        {question.id: "Grow revenue 10%"},
        additional_context="We have 12 staff.",
    )
    lines = result.enhanced_context.splitlines()
    assert lines[0] == text
    assert lines[1] == f"[Confirmed: {first.text}]"
    assert lines[2] == f"[Confirmed: {second.text}]"
    assert f"[{question.dimension}: Grow revenue 10%]" in lines
    assert lines[-1] == "[Additional context: We have 12 staff.]"


def test_refine_rejected_and_unknown_ids_are_ignored():
    text = "Should we decide to open an office in Berlin?"
    baseline = analyze(text)
    result = refine(text, {baseline.assumptions[0].id: False, "assumption-bogus": True}, {"question-bogus": "x"})
    assert result.enhanced_context == text


def test_refine_joins_multi_select_answers():
    text = "Should we decide to open an office in Berlin?"
    result = refine(text, {}, {"question-stakeholders": ["My direct team", "Customers or external parties"]})
    assert "[stakeholders: My direct team, Customers or external parties]" in result.enhanced_context


def test_refine_is_pure_and_order_independent():
    text = "Should we decide to open an office in Berlin?"
    baseline = analyze(text)
    ids = [a.id for a in baseline.assumptions[:3]]
    forward = refine(text, {i: True for i in ids}, {})
    backward = refine(text, {i: True for i in reversed(ids)}, {})
    assert forward == backward
    assert refine(text, {i: True for i in ids}, {}) == forward


def test_refine_keeps_baseline_debate_type():
    text = "Should we decide to open an office in Berlin?"
    result = refine(text, {}, {}, additional_context="Our product roadmap is full.")
    assert result.assessment.debate_type == "business_decision"


def test_refine_does_not_lower_score():
    text = "Should we decide to open an office in Berlin?"
    baseline = analyze(text)
    result = refine(text, {a.id: True for a in baseline.assumptions}, {})
    assert result.assessment.overall_score >= baseline.overall_score


# Scores 70 as "general": every dimension present except context, which is partial.
NEARLY_READY = (
    "We want to reach our goal of opening a Berlin office versus a Paris one or staying home. "
    "Budget is $150k maximum. Success is measured by revenue. Today we sell only at home."
)


def test_answering_the_only_critical_question_allows_proceed():
    baseline = analyze(NEARLY_READY)
    assert baseline.debate_type == "general"
    assert baseline.overall_score == 70
    assert [q.id for q in baseline.questions] == ["question-context"]
    assert baseline.recommended_action == "clarify"

    result = refine(NEARLY_READY, {}, {"question-context": "We have sold in the UK for two years with 40 staff"})
    assert result.assessment.overall_score == 70
    assert "question-context" not in {q.id for q in result.assessment.questions}
    assert result.assessment.recommended_action == "proceed"


def test_refine_unanswered_critical_question_still_blocks_proceed():
    result = refine(NEARLY_READY, {}, {}, additional_context="Nothing else to add.")
    assert [q.id for q in result.assessment.questions] == ["question-context"]
    assert result.assessment.recommended_action == "clarify"


def test_refine_marks_responded_assumptions():
    text = "Should we decide to open an office in Berlin?"
    baseline = analyze(text)
    kept, dropped = baseline.assumptions[-2], baseline.assumptions[-1]
    result = refine(text, {kept.id: True, dropped.id: False}, {})
    assert result.confirmed_assumptions == [kept.text]
    by_id = {a.id: a for a in result.assessment.assumptions}
    if dropped.id in by_id:
        assert by_id[dropped.id].confirmed is False
