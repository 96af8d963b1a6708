"""Debate orchestrator: lifecycle state machine and the round loop.

Status moves draft -> pending -> in_progress -> completed | failed. ``paused``
is a metadata side-flag honoured only while in_progress; the loop checks it
at every round boundary. One loop task runs per debate id at a time.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from config.config_loader import AppConfig
from quorum.billing import CreditPolicy, debate_credits
from quorum.debate import DEFAULT_ROUND_TEMPLATE, append_intervention, run_round
from quorum.errors import (
    ConcurrentStartConflict,
    DebateNotFound,
    InvalidInput,
    InvalidTransition,
    OrchestratorFatal,
    OwnershipViolation,
    RoundInFlight,
)
from quorum.graph import GraphCache, build_argument_graph, sealed_rounds
from quorum.moderator import ModeratorPolicy, ThresholdModerator, compute_signals
from quorum.models import (
    ArgumentGraph,
    ContextEntry,
    Debate,
    DebateContext,
    DebateStatus,
    RefinementResult,
    Round,
)
from quorum.panel import MODES, ExpertPanel
from quorum.providers.base import AgentPort
from quorum.ranking import build_final_ranking
from quorum.scoring import consensus_score, quality_metrics
from quorum.store import DebateStore

logger = logging.getLogger(__name__)

MIN_QUESTION_LENGTH = 10
PAUSED_FLAG = "paused"

Authorizer = Callable[[str, Debate], bool]
RoundCallback = Callable[[Debate, Round], None]


def owner_only(caller_id: str, debate: Debate) -> bool:
    return caller_id == debate.owner_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class DebateOrchestrator:
    """Command surface over a DebateStore. Every command checks ownership."""

    def __init__(
        self,
        store: DebateStore,
        port: AgentPort,
        panel: ExpertPanel,
        config: AppConfig,
        moderator: ModeratorPolicy | None = None,
        authorizer: Authorizer = owner_only,
        credit_policy: CreditPolicy | None = None,
        graph_cache: GraphCache | None = None,
        on_round_sealed: RoundCallback | None = None,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self._store = store
        self._port = port
        self._panel = panel
        self._config = config
        self._moderator = moderator or ThresholdModerator(config.moderator, config.prompts.interventions)
        self._authorize = authorizer
        self._credit_policy = credit_policy or CreditPolicy.from_config(config.billing)
        self._graphs = graph_cache or GraphCache()
        self._on_round_sealed = on_round_sealed
        self._new_id = id_factory
        self._tasks: dict[str, asyncio.Task] = {}
        self._starting: set[str] = set()

    # Helpers -------------------------------------------------------------

    async def _owned(self, caller_id: str, debate_id: str) -> Debate:
        debate = await self._store.get(debate_id)
        if not self._authorize(caller_id, debate):
            logger.warning("Ownership check failed: %s on %s", caller_id, debate_id)
            raise OwnershipViolation(caller_id, debate_id)
        return debate

    @staticmethod
    def _require(debate: Debate, command: str, *allowed: DebateStatus) -> None:
        if debate.status not in allowed:
            raise InvalidTransition(debate.id, debate.status.value, command)

    def _running(self, debate_id: str) -> bool:
        task = self._tasks.get(debate_id)
        return task is not None and not task.done()

    def _spawn(self, debate_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._run_loop(debate_id), name=f"debate-{debate_id}")
        self._tasks[debate_id] = task
        return task

    # Commands ------------------------------------------------------------

    async def create(
        self,
        owner_id: str,
        question: str,
        background: str = "",
        constraints: list[str] | None = None,
        visibility: str = "private",
    ) -> Debate:
        if len((question or "").strip()) < MIN_QUESTION_LENGTH:
            raise InvalidInput(f"Question must be at least {MIN_QUESTION_LENGTH} characters")
        debate = Debate(
            id=self._new_id(),
            owner_id=owner_id,
            question=question.strip(),
            context=DebateContext(background=background, constraints=list(constraints or [])),
            visibility=visibility,
            max_rounds=self._config.defaults.max_rounds,
            mode=self._config.defaults.mode,
            created_at=_utcnow(),
        )
        await self._store.put(debate)
        logger.info("Debate %s created (draft)", debate.id)
        return debate

    async def configure(
        self,
        caller_id: str,
        debate_id: str,
        expert_ids: list[str] | None = None,
        max_rounds: int | None = None,
        category: str | None = None,
        mode: str | None = None,
        seed_context: str | None = None,
        assumptions: list[str] | None = None,
    ) -> Debate:
        """Attach panel, round limit and readiness seed. Allowed in draft or pending."""
        debate = await self._owned(caller_id, debate_id)
        self._require(debate, "configure", DebateStatus.DRAFT, DebateStatus.PENDING)

        mode = mode or debate.mode
        if mode not in MODES:
            raise InvalidInput(f"Unknown mode: {mode}")
        rounds = max_rounds if max_rounds is not None else debate.max_rounds
        if rounds < 1:
            raise InvalidInput("max_rounds must be at least 1")
        experts = self._panel.select(mode, debate.question, expert_ids, category=category)
        if not experts:
            raise InvalidInput("A debate needs at least one expert")

        def _apply(d: Debate) -> None:
            d.mode = mode
            d.max_rounds = rounds
            d.category = category if category is not None else d.category
            d.experts = experts
            if seed_context is not None:
                d.context.seed = seed_context
            if assumptions is not None:
                d.context.assumptions = list(assumptions)
            d.status = DebateStatus.PENDING

        debate = await self._store.update(debate_id, _apply)
        logger.info(
            "Debate %s configured (pending): %d experts, %d rounds, %s mode",
            debate_id, len(experts), rounds, mode,
        )
        return debate

    async def apply_readiness(self, caller_id: str, debate_id: str, refinement: RefinementResult) -> Debate:
        """Seed the debate with a readiness refinement. Allowed in draft or pending.

        The enhanced context becomes the seed and the confirmed assumptions are
        listed separately in every round prompt.
        """
        debate = await self._owned(caller_id, debate_id)
        self._require(debate, "seed", DebateStatus.DRAFT, DebateStatus.PENDING)

        def _apply(d: Debate) -> None:
            d.context.seed = refinement.enhanced_context
            d.context.assumptions = list(refinement.confirmed_assumptions)

        debate = await self._store.update(debate_id, _apply)
        logger.info(
            "Debate %s seeded from readiness (score %d, %d confirmed assumptions)",
            debate_id, refinement.assessment.overall_score, len(refinement.confirmed_assumptions),
        )
        return debate

    async def start(self, caller_id: str, debate_id: str) -> asyncio.Task:
        """Move pending -> in_progress and spawn the round loop.

        Raises:
            ConcurrentStartConflict: A loop is already running or starting, or
                the debate is already in progress.
        """
        if debate_id in self._starting or self._running(debate_id):
            raise ConcurrentStartConflict(debate_id)
        self._starting.add(debate_id)
        try:
            debate = await self._owned(caller_id, debate_id)
            if debate.status == DebateStatus.IN_PROGRESS:
                raise ConcurrentStartConflict(debate_id)
            self._require(debate, "start", DebateStatus.PENDING)

            def _apply(d: Debate) -> None:
                d.status = DebateStatus.IN_PROGRESS
                d.started_at = _utcnow()
                d.metadata[PAUSED_FLAG] = False

            await self._store.update(debate_id, _apply)
            logger.info("Debate %s started", debate_id)
            return self._spawn(debate_id)
        finally:
            self._starting.discard(debate_id)

    async def pause(self, caller_id: str, debate_id: str) -> bool:
        """Request a pause at the next round boundary. Returns False if already paused."""
        debate = await self._owned(caller_id, debate_id)
        self._require(debate, "pause", DebateStatus.IN_PROGRESS)
        if debate.metadata.get(PAUSED_FLAG):
            return False
        await self._store.update(debate_id, lambda d: d.metadata.__setitem__(PAUSED_FLAG, True))
        logger.info("Debate %s paused", debate_id)
        return True

    async def resume(self, caller_id: str, debate_id: str) -> asyncio.Task | None:
        """Clear the pause flag and restart the loop if it has exited."""
        debate = await self._owned(caller_id, debate_id)
        self._require(debate, "resume", DebateStatus.IN_PROGRESS)
        await self._store.update(debate_id, lambda d: d.metadata.__setitem__(PAUSED_FLAG, False))
        if self._running(debate_id):
            return self._tasks[debate_id]
        logger.info("Debate %s resumed", debate_id)
        return self._spawn(debate_id)

    async def add_context(self, caller_id: str, debate_id: str, text: str) -> Debate:
        """Append context. Applies from the next round's prompt onwards."""
        if not (text or "").strip():
            raise InvalidInput("Context text cannot be empty")
        debate = await self._owned(caller_id, debate_id)
        self._require(debate, "add context to", DebateStatus.IN_PROGRESS)
        entry = ContextEntry(text=text.strip(), added_at=_utcnow())
        debate = await self._store.update(debate_id, lambda d: d.context.additional.append(entry))
        logger.info("Debate %s: context added (%d entries)", debate_id, len(debate.context.additional))
        return debate

    async def get_state(self, caller_id: str, debate_id: str) -> Debate:
        return await self._owned(caller_id, debate_id)

    async def get_argument_graph(self, caller_id: str, debate_id: str) -> ArgumentGraph:
        debate = await self._owned(caller_id, debate_id)
        sealed = len(sealed_rounds(debate.rounds))

        graph = self._graphs.get(debate_id, sealed)
        if graph is not None:
            return graph
        graph = await self._store.load_graph(debate_id)
        if graph is None or graph.rounds_covered != sealed:
            graph = build_argument_graph(debate.rounds, debate.experts, self._config.graph)
            await self._store.save_graph(debate_id, graph)
        self._graphs.put(debate_id, graph)
        return graph

    async def list(self, caller_id: str, status: DebateStatus | None = None) -> list[Debate]:
        debates = await self._store.list(status=status)
        return [d for d in debates if self._authorize(caller_id, d)]

    async def delete(self, caller_id: str, debate_id: str) -> bool:
        """Delete a debate. Returns False when it does not exist.

        Raises:
            RoundInFlight: The round loop is running; wait for it or force-fail.
        """
        try:
            await self._owned(caller_id, debate_id)
        except DebateNotFound:
            return False
        if self._running(debate_id) or debate_id in self._starting:
            raise RoundInFlight(debate_id)
        self._graphs.invalidate(debate_id)
        deleted = await self._store.delete(debate_id)
        logger.info("Debate %s deleted", debate_id)
        return deleted

    async def force_fail(self, caller_id: str, debate_id: str, reason: str = "Stopped by owner") -> Debate:
        """Cancel the loop (discarding the unsealed round) and mark the debate failed."""
        debate = await self._owned(caller_id, debate_id)
        if debate.status == DebateStatus.FAILED:
            return debate
        self._require(debate, "force-fail", DebateStatus.PENDING, DebateStatus.IN_PROGRESS)

        task = self._tasks.get(debate_id)
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info("Debate %s loop cancelled", debate_id)
        return await self._fail(debate_id, reason)

    async def wait(self, debate_id: str) -> Debate:
        """Wait for the running loop (if any) to exit and return the stored debate."""
        task = self._tasks.get(debate_id)
        if task is not None:
            await asyncio.shield(task)
        return await self._store.get(debate_id)

    async def credits(self, caller_id: str, debate_id: str) -> int:
        debate = await self._owned(caller_id, debate_id)
        return debate_credits(debate, self._credit_policy)

    # Round loop ----------------------------------------------------------

    async def _run_loop(self, debate_id: str) -> None:
        try:
            await self._loop(debate_id)
        except OrchestratorFatal as exc:
            await self._fail(debate_id, str(exc))
        except Exception as exc:
            logger.exception("Debate %s: unexpected error in round loop", debate_id)
            await self._fail(debate_id, f"Unexpected error: {exc}")
        finally:
            if self._tasks.get(debate_id) is asyncio.current_task():
                del self._tasks[debate_id]

    def _stop_early(self, debate: Debate) -> bool:
        if not debate.rounds or len(debate.rounds) < self._config.defaults.min_rounds:
            return False
        last = debate.rounds[-1].consensus_score or 0.0
        return last >= self._config.orchestrator.early_stop_consensus

    async def _loop(self, debate_id: str) -> None:
        cfg = self._config.orchestrator
        template = self._config.prompts.round or DEFAULT_ROUND_TEMPLATE

        while True:
            debate = await self._store.get(debate_id)
            if debate.status != DebateStatus.IN_PROGRESS:
                return
            if debate.metadata.get(PAUSED_FLAG):
                logger.info("Debate %s paused at round boundary after %d rounds", debate_id, len(debate.rounds))
                return
            if len(debate.rounds) >= debate.max_rounds:
                break
            if self._stop_early(debate):
                logger.info(
                    "Debate %s: consensus %.2f reached, stopping early",
                    debate_id, debate.rounds[-1].consensus_score,
                )
                break

            rnd = await run_round(debate, self._port, cfg, template)
            if not rnd.messages:
                raise OrchestratorFatal(f"No expert responded in round {rnd.number}")

            transcript = [m for r in debate.rounds for m in r.messages] + rnd.messages
            expected = len(debate.experts)
            score = consensus_score(transcript, expected)
            history = [r.consensus_score or 0.0 for r in debate.rounds] + [score]

            signals = compute_signals(debate.question, rnd.number, rnd.messages, transcript, history, expected)
            intervention = self._moderator.decide(signals, cfg.early_stop_consensus)
            if intervention is not None:
                append_intervention(rnd, intervention)
                logger.info("Debate %s round %d: moderator %s (%s)", debate_id, rnd.number, intervention.type, intervention.reason)

            rnd.consensus_score = score
            rnd.sealed_at = _utcnow()
            debate = await self._store.append_round(debate_id, rnd)
            debate = await self._store.update(debate_id, lambda d: setattr(d, "consensus_score", score))
            self._graphs.invalidate(debate_id)
            logger.info("Debate %s round %d sealed: consensus %.2f", debate_id, rnd.number, score)

            if self._on_round_sealed is not None:
                self._on_round_sealed(debate, rnd)

        await self._complete(debate_id)

    async def _complete(self, debate_id: str) -> None:
        debate = await self._store.get(debate_id)
        transcript = [m for r in debate.rounds for m in r.messages]
        names = {e.id: e.name for e in debate.experts}
        ranking = build_final_ranking(transcript, len(debate.experts), names)
        if ranking is None:
            raise OrchestratorFatal("No expert stated a position; final ranking cannot be derived")

        final_score = consensus_score(transcript, len(debate.experts))
        quality = quality_metrics(transcript, self._config.scoring)

        def _apply(d: Debate) -> None:
            if d.status != DebateStatus.IN_PROGRESS:
                return
            d.final_ranking = ranking
            d.consensus_score = final_score
            d.quality = quality
            d.status = DebateStatus.COMPLETED
            d.completed_at = _utcnow()
            d.metadata[PAUSED_FLAG] = False

        await self._store.update(debate_id, _apply)
        logger.info(
            "Debate %s completed after %d rounds: top option '%s', consensus %.2f",
            debate_id, len(debate.rounds), ranking[0].option, final_score,
        )

    async def _fail(self, debate_id: str, error: str) -> Debate:
        def _apply(d: Debate) -> None:
            if d.status in (DebateStatus.COMPLETED, DebateStatus.FAILED):
                return
            d.status = DebateStatus.FAILED
            d.error = error
            d.completed_at = _utcnow()
            d.final_ranking = None
            d.metadata[PAUSED_FLAG] = False

        debate = await self._store.update(debate_id, _apply)
        logger.warning("Debate %s failed: %s", debate_id, error)
        return debate
