"""Tests for quorum/orchestrator.py: lifecycle, guards and the round loop."""

import asyncio

import pytest

from quorum.errors import (
    ConcurrentStartConflict,
    DebateNotFound,
    InvalidInput,
    InvalidTransition,
    OwnershipViolation,
    RoundInFlight,
)
from quorum.models import DebateStatus
from quorum.moderator import NullModerator
from quorum.providers.base import ProviderError
from quorum.providers.scripted import ScriptedPort
from quorum.readiness import analyze, refine
from tests.conftest import OWNER

QUESTION = "Should we expand to Germany or France first?"


async def _ready(orchestrator, **configure):
    debate = await orchestrator.create(OWNER, QUESTION, background="B2B software vendor")
    return await orchestrator.configure(OWNER, debate.id, **configure)


async def _run(orchestrator, **configure):
    debate = await _ready(orchestrator, **configure)
    await orchestrator.start(OWNER, debate.id)
    return await orchestrator.wait(debate.id)


# create / configure ------------------------------------------------------

async def test_create_starts_in_draft(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await orchestrator.create(OWNER, QUESTION, constraints=["No new hires"])
    assert debate.status == DebateStatus.DRAFT
    assert debate.owner_id == OWNER
    assert debate.context.constraints == ["No new hires"]
    assert debate.max_rounds == 3


async def test_create_rejects_short_question(make_orchestrator):
    with pytest.raises(InvalidInput):
        await make_orchestrator(ScriptedPort()).create(OWNER, "Why?")


async def test_configure_moves_to_pending_with_default_panel(make_orchestrator):
    debate = await _ready(make_orchestrator(ScriptedPort()))
    assert debate.status == DebateStatus.PENDING
    assert [e.id for e in debate.experts] == ["a", "b", "c"]


async def test_configure_dynamic_mode_matches_specializations(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await orchestrator.create(OWNER, "How should we change our pricing for finance teams?")
    debate = await orchestrator.configure(OWNER, debate.id, mode="dynamic")
    assert debate.experts[0].id == "b"
    assert len(debate.experts) == 3


async def test_configure_rejects_bad_input(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await orchestrator.create(OWNER, QUESTION)
    with pytest.raises(InvalidInput):
        await orchestrator.configure(OWNER, debate.id, max_rounds=0)
    with pytest.raises(InvalidInput):
        await orchestrator.configure(OWNER, debate.id, expert_ids=["a", "zzz"])
    with pytest.raises(InvalidInput):
        await orchestrator.configure(OWNER, debate.id, expert_ids=["a", "a"])
    with pytest.raises(InvalidInput):
        await orchestrator.configure(OWNER, debate.id, mode="chaos")


async def test_configure_stores_readiness_seed(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await orchestrator.create(OWNER, QUESTION)
    debate = await orchestrator.configure(
        OWNER, debate.id, seed_context="[timeline: 1 month]", assumptions=["Budget is fixed"],
    )
    assert debate.context.seed == "[timeline: 1 month]"
    assert debate.context.assumptions == ["Budget is fixed"]


async def test_readiness_refinement_reaches_first_round_prompt(make_orchestrator):
    baseline = analyze(QUESTION)
    assumption = baseline.assumptions[0]
    question = baseline.questions[0]
    refinement = refine(QUESTION, {assumption.id: True}, {question.id: "Within one quarter"})

    port = ScriptedPort()
    orchestrator = make_orchestrator(port)
    debate = await orchestrator.create(OWNER, QUESTION)
    await orchestrator.apply_readiness(OWNER, debate.id, refinement)
    await orchestrator.configure(OWNER, debate.id, max_rounds=1)
    await orchestrator.start(OWNER, debate.id)
    await orchestrator.wait(debate.id)

    prompt = port.calls_for("a")[0].prompt
    assert "CONFIRMED ASSUMPTIONS:" in prompt
    assert f"- {assumption.text}" in prompt
    assert f"[{question.dimension}: Within one quarter]" in prompt


async def test_apply_readiness_rejected_once_started(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await _run(orchestrator)
    with pytest.raises(InvalidTransition):
        await orchestrator.apply_readiness(OWNER, debate.id, refine(QUESTION, {}, {}))


# run loop ----------------------------------------------------------------

async def test_debate_completes_with_early_consensus(make_orchestrator):
    sealed = []
    orchestrator = make_orchestrator(ScriptedPort(), on_round_sealed=lambda d, r: sealed.append(r.number))
    debate = await _run(orchestrator)

    assert debate.status == DebateStatus.COMPLETED
    # dry-run experts converge in round 2, and 2 is the minimum
    assert len(debate.rounds) == 2
    assert sealed == [1, 2]
    assert all(r.sealed_at is not None for r in debate.rounds)
    assert debate.consensus_score == 1.0
    assert debate.rounds[-1].consensus_score == 1.0
    assert debate.final_ranking[0].option == "Run a staged pilot"
    assert debate.final_ranking[0].supporters == ["a", "b", "c"]
    assert debate.quality is not None
    assert debate.total_cost_usd == pytest.approx(0.006)
    assert debate.completed_at is not None


async def test_debate_runs_to_max_rounds_without_consensus(make_orchestrator):
    port = ScriptedPort({
        "a": ["POSITION: Germany\nCONFIDENCE: 0.8"] * 3,
        "b": ["POSITION: France\nCONFIDENCE: 0.8"] * 3,
        "c": ["POSITION: Spain\nCONFIDENCE: 0.8"] * 3,
    })
    debate = await _run(make_orchestrator(port, moderator=NullModerator()))
    assert debate.status == DebateStatus.COMPLETED
    assert len(debate.rounds) == 3
    assert [e.option for e in debate.final_ranking] == ["Germany", "France", "Spain"]


async def test_round_messages_follow_assignment_order(make_orchestrator):
    port = ScriptedPort(delays={"a": 0.03, "b": 0.0, "c": 0.01})
    debate = await _run(make_orchestrator(port, moderator=NullModerator()), max_rounds=1)
    assert [m.author_id for m in debate.rounds[0].messages] == ["a", "b", "c"]


async def test_skipped_expert_does_not_fail_round(make_orchestrator):
    port = ScriptedPort({"b": [ProviderError("mock", "down")] * 3})
    debate = await _run(make_orchestrator(port, moderator=NullModerator()))
    assert debate.status == DebateStatus.COMPLETED
    assert [s.expert_id for s in debate.rounds[0].skipped] == ["b"]


async def test_round_with_no_replies_fails_debate(make_orchestrator):
    port = ScriptedPort({e: [ProviderError("mock", "down")] for e in "abc"})
    debate = await _run(make_orchestrator(port))
    assert debate.status == DebateStatus.FAILED
    assert "No expert responded in round 1" in debate.error
    assert debate.final_ranking is None
    assert debate.rounds == []


async def test_debate_without_positions_fails(make_orchestrator):
    port = ScriptedPort(default=lambda expert, n: "There are many angles to consider here.")
    debate = await _run(make_orchestrator(port, moderator=NullModerator()), max_rounds=2)
    assert debate.status == DebateStatus.FAILED
    assert "final ranking" in debate.error
    assert len(debate.rounds) == 2


async def test_unexpected_error_fails_debate(make_orchestrator):
    port = ScriptedPort({"a": [RuntimeError("adapter bug")]})
    debate = await _run(make_orchestrator(port))
    assert debate.status == DebateStatus.FAILED
    assert "adapter bug" in debate.error


# start / pause / resume / context ---------------------------------------

async def test_start_requires_pending(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await orchestrator.create(OWNER, QUESTION)
    with pytest.raises(InvalidTransition):
        await orchestrator.start(OWNER, debate.id)


async def test_second_start_conflicts(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort(delays={"a": 0.02}))
    debate = await _ready(orchestrator)
    await orchestrator.start(OWNER, debate.id)
    with pytest.raises(ConcurrentStartConflict):
        await orchestrator.start(OWNER, debate.id)
    await orchestrator.wait(debate.id)


async def test_concurrent_starts_only_one_wins(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort(delays={"a": 0.02}))
    debate = await _ready(orchestrator)
    results = await asyncio.gather(
        orchestrator.start(OWNER, debate.id),
        orchestrator.start(OWNER, debate.id),
        return_exceptions=True,
    )
    assert sum(isinstance(r, ConcurrentStartConflict) for r in results) == 1
    await orchestrator.wait(debate.id)


async def test_pause_stops_at_round_boundary_and_resume_finishes(make_orchestrator):
    port = ScriptedPort(delays={e: 0.02 for e in "abc"})
    orchestrator = make_orchestrator(port)
    debate = await _ready(orchestrator)
    await orchestrator.start(OWNER, debate.id)

    assert await orchestrator.pause(OWNER, debate.id) is True
    assert await orchestrator.pause(OWNER, debate.id) is False
    paused = await orchestrator.wait(debate.id)
    assert paused.status == DebateStatus.IN_PROGRESS
    assert paused.metadata["paused"] is True
    assert len(paused.rounds) <= 1

    await orchestrator.add_context(OWNER, debate.id, "A competitor just entered France.")
    await orchestrator.resume(OWNER, debate.id)
    finished = await orchestrator.wait(debate.id)
    assert finished.status == DebateStatus.COMPLETED
    assert finished.metadata["paused"] is False
    last_prompt = port.calls_for("a")[-1].prompt
    assert "A competitor just entered France." in last_prompt


async def test_pause_requires_in_progress(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await _ready(orchestrator)
    with pytest.raises(InvalidTransition):
        await orchestrator.pause(OWNER, debate.id)


async def test_add_context_guards(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await _ready(orchestrator)
    with pytest.raises(InvalidTransition):
        await orchestrator.add_context(OWNER, debate.id, "More detail")
    with pytest.raises(InvalidInput):
        await orchestrator.add_context(OWNER, debate.id, "   ")


async def test_configure_after_start_is_rejected(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await _run(orchestrator)
    with pytest.raises(InvalidTransition):
        await orchestrator.configure(OWNER, debate.id, max_rounds=5)


async def test_force_fail_cancels_running_round(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort(delays={e: 0.5 for e in "abc"}))
    debate = await _ready(orchestrator)
    await orchestrator.start(OWNER, debate.id)
    await asyncio.sleep(0.01)
    failed = await orchestrator.force_fail(OWNER, debate.id, "user cancelled")
    assert failed.status == DebateStatus.FAILED
    assert failed.error == "user cancelled"
    assert failed.rounds == []


# ownership / delete / list -----------------------------------------------

async def test_other_callers_are_rejected(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await _ready(orchestrator)
    with pytest.raises(OwnershipViolation):
        await orchestrator.get_state("mallory", debate.id)
    with pytest.raises(OwnershipViolation):
        await orchestrator.start("mallory", debate.id)
    assert await orchestrator.list("mallory") == []
    assert [d.id for d in await orchestrator.list(OWNER)] == [debate.id]


async def test_custom_authorizer_grants_access(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort(), authorizer=lambda caller, d: caller in (d.owner_id, "admin"))
    debate = await _ready(orchestrator)
    assert (await orchestrator.get_state("admin", debate.id)).id == debate.id


async def test_list_filters_by_status(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    draft = await orchestrator.create(OWNER, QUESTION)
    done = await _run(orchestrator)
    assert [d.id for d in await orchestrator.list(OWNER, DebateStatus.DRAFT)] == [draft.id]
    assert [d.id for d in await orchestrator.list(OWNER, DebateStatus.COMPLETED)] == [done.id]


async def test_delete_while_running_is_rejected(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort(delays={"a": 0.05}))
    debate = await _ready(orchestrator)
    await orchestrator.start(OWNER, debate.id)
    with pytest.raises(RoundInFlight):
        await orchestrator.delete(OWNER, debate.id)
    await orchestrator.wait(debate.id)
    assert await orchestrator.delete(OWNER, debate.id) is True
    with pytest.raises(DebateNotFound):
        await orchestrator.get_state(OWNER, debate.id)


async def test_delete_missing_returns_false(make_orchestrator):
    assert await make_orchestrator(ScriptedPort()).delete(OWNER, "nope") is False


# graph / credits ---------------------------------------------------------

async def test_argument_graph_is_cached_until_next_round(make_orchestrator, store):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await _run(orchestrator)
    graph = await orchestrator.get_argument_graph(OWNER, debate.id)
    assert graph.rounds_covered == 2
    assert graph.nodes
    assert await orchestrator.get_argument_graph(OWNER, debate.id) is graph
    assert (await store.load_graph(debate.id)).rounds_covered == 2


async def test_argument_graph_loaded_from_store_by_new_orchestrator(make_orchestrator, store):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await _run(orchestrator, max_rounds=1)
    graph = await orchestrator.get_argument_graph(OWNER, debate.id)
    assert graph.rounds_covered == 1

    fresh = make_orchestrator(ScriptedPort())
    assert (await fresh.get_argument_graph(OWNER, debate.id)) == graph


async def test_credits_use_margin_and_unit_price(make_orchestrator):
    orchestrator = make_orchestrator(ScriptedPort())
    debate = await _run(orchestrator)
    # 0.006 USD * 1.75 / 0.005 = 2.1 -> 3 credits
    assert await orchestrator.credits(OWNER, debate.id) == 3
