"""Final ranking: turn the option tally of a finished debate into ranked entries."""

import logging

from quorum.models import FinalRankingEntry, Message
from quorum.scoring import OptionTally, tally_options

logger = logging.getLogger(__name__)

_WEIGHT_SHARE = 0.8
_ARGUMENT_SHARE = 0.2


def _score(tally: OptionTally, total_weight: float) -> float:
    weight_share = tally.weight / total_weight if total_weight > 0 else 0.0
    arguments = len(tally.pros) + len(tally.cons)
    argument_share = len(tally.pros) / arguments if arguments else 0.5
    return round(100 * (_WEIGHT_SHARE * weight_share + _ARGUMENT_SHARE * argument_share), 1)


def _reasoning(tally: OptionTally, expected_experts: int, names: dict[str, str]) -> str:
    if tally.supporters:
        backers = ", ".join(names.get(e, e) for e in tally.supporters)
        head = f"Backed by {backers} ({len(tally.supporters)} of {expected_experts} experts)"
    else:
        head = f"Raised {tally.mentions} time(s) but no expert holds it at the end"
    return f"{head}; {len(tally.pros)} argument(s) for, {len(tally.cons)} against."


def build_final_ranking(
    messages: list[Message],
    expected_experts: int,
    names: dict[str, str] | None = None,
) -> list[FinalRankingEntry] | None:
    """Rank every option stated during the debate.

    Args:
        messages: Full transcript, moderator messages included.
        expected_experts: Size of the panel.
        names: expert id -> display name, used in the reasoning text.

    Returns:
        Entries sorted by score (ties by first mention), or None when no
        expert ever stated a position.
    """
    tallies = tally_options(messages)
    if not tallies:
        logger.warning("No stated positions in transcript; ranking not derivable")
        return None

    names = names or {}
    total = sum(t.weight for t in tallies)
    scored = [(t, _score(t, total)) for t in tallies]
    scored.sort(key=lambda pair: (-pair[1], pair[0].first_index))

    return [
        FinalRankingEntry(
            option=tally.option,
            score=score,
            supporters=list(tally.supporters),
            pros=list(tally.pros),
            cons=list(tally.cons),
            confidence=round(sum(tally.supporters.values()) / len(tally.supporters), 3)
            if tally.supporters else 0.0,
            reasoning=_reasoning(tally, expected_experts, names),
        )
        for tally, score in scored
    ]
