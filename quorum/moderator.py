"""Meta-moderator: decides whether a round needs an intervention before sealing."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from itertools import combinations
from statistics import mean

from config.config_loader import ModeratorConfig
from quorum.claims import jaccard, tokenize
from quorum.models import Intervention, Message, QualityReport
from quorum.scoring import assess_quality, expert_messages

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS = {
    "redirect": "MODERATOR: Return to the decision being asked and evaluate the concrete options only.",
    "deepen": "MODERATOR: Bring new evidence and challenge the option you currently favour.",
    "request_evidence": "MODERATOR: Back each argument with numbers, examples or a causal chain.",
    "challenge_assumptions": "MODERATOR: Name the assumptions behind the leading option.",
}


@dataclass
class RoundSignals:
    round_number: int
    pairwise_overlap: float          # mean Jaccard between expert messages of this round
    topic_overlap: float             # mean share of question terms each message uses
    consensus_history: list[float]   # one score per round, current round last
    quality: QualityReport


def compute_signals(
    question: str,
    round_number: int,
    round_messages: list[Message],
    transcript: list[Message],
    consensus_history: list[float],
    expected_experts: int,
) -> RoundSignals:
    """Collect the moderator's inputs for one round.

    Args:
        round_messages: Messages of the round being decided.
        transcript: All messages so far, the current round included.
        consensus_history: Consensus per round, the current round last.
    """
    spoken = expert_messages(round_messages)
    token_sets = [tokenize(m.content) for m in spoken]

    pairs = list(combinations(token_sets, 2))
    pairwise = mean(jaccard(a, b) for a, b in pairs) if pairs else 0.0

    question_terms = tokenize(question)
    if question_terms and token_sets:
        topic = mean(len(tokens & question_terms) / len(question_terms) for tokens in token_sets)
    else:
        topic = 1.0

    return RoundSignals(
        round_number=round_number,
        pairwise_overlap=round(pairwise, 4),
        topic_overlap=round(topic, 4),
        consensus_history=list(consensus_history),
        quality=assess_quality(transcript, expected_experts=expected_experts),
    )


class ModeratorPolicy(ABC):
    """Pluggable moderation policy. Returns at most one intervention per round."""

    @abstractmethod
    def decide(self, signals: RoundSignals, early_stop_consensus: float) -> Intervention | None:
        ...


class NullModerator(ModeratorPolicy):
    """Never intervenes."""

    def decide(self, signals: RoundSignals, early_stop_consensus: float) -> Intervention | None:
        return None


class ThresholdModerator(ModeratorPolicy):
    """Rule-based moderator driven by the ``moderator:`` settings."""

    def __init__(self, config: ModeratorConfig | None = None, prompts: dict[str, str] | None = None) -> None:
        self._config = config or ModeratorConfig()
        self._prompts = {**DEFAULT_PROMPTS, **(prompts or {})}

    def _intervention(self, kind: str, reason: str) -> Intervention:
        return Intervention(type=kind, reason=reason, prompt=self._prompts[kind].strip())

    def _stalled(self, history: list[float], early_stop_consensus: float) -> bool:
        if len(history) < 3 or history[-1] >= early_stop_consensus:
            return False
        movement = max(abs(history[-1] - history[-2]), abs(history[-2] - history[-3]))
        return movement < self._config.min_score_movement

    def decide(self, signals: RoundSignals, early_stop_consensus: float) -> Intervention | None:
        cfg = self._config

        if signals.topic_overlap < cfg.off_topic_overlap:
            return self._intervention(
                "redirect",
                f"topic overlap {signals.topic_overlap:.2f} below {cfg.off_topic_overlap:.2f}",
            )

        if signals.pairwise_overlap > cfg.stagnation_overlap:
            return self._intervention(
                "deepen",
                f"pairwise overlap {signals.pairwise_overlap:.2f} above {cfg.stagnation_overlap:.2f}",
            )
        if self._stalled(signals.consensus_history, early_stop_consensus):
            return self._intervention(
                "deepen",
                f"consensus stuck at {signals.consensus_history[-1]:.2f} for two rounds",
            )

        quality = signals.quality
        if quality.needs_moderation or quality.overall < cfg.min_quality * 100:
            kinds = {issue.type for issue in quality.issues}
            if "shallow" in kinds:
                return self._intervention("request_evidence", f"shallow arguments (quality {quality.overall})")
            return self._intervention("challenge_assumptions", f"low debate quality ({quality.overall})")

        return None
