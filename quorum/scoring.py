"""Consensus and quality scoring over a debate transcript.

All functions are pure and idempotent: they read messages, never mutate
them, and return the same numbers for the same transcript.
"""

import re
from dataclasses import dataclass, field
from statistics import mean

from config.config_loader import ScoringConfig
from quorum.claims import (
    Stance,
    classify_sentence,
    has_evidence,
    parse_stance,
    similarity,
    split_sentences,
    tokenize,
)
from quorum.models import MODERATOR_ID, Message, QualityIssue, QualityMetrics, QualityReport

# Floor on stance weight so a stated "CONFIDENCE: 0" still counts as a vote
_MIN_WEIGHT = 0.05


@dataclass
class OptionTally:
    key: str
    option: str                      # label as first stated
    first_index: int                 # position of first mention in the transcript
    supporters: dict[str, float] = field(default_factory=dict)   # expert id -> weight
    pros: list[str] = field(default_factory=list)
    cons: list[str] = field(default_factory=list)
    mentions: int = 0

    @property
    def weight(self) -> float:
        return sum(self.supporters.values())


def expert_messages(messages: list[Message]) -> list[Message]:
    return [m for m in messages if m.author_id != MODERATOR_ID]


def latest_stances(messages: list[Message]) -> dict[str, Stance]:
    """Latest stated stance per expert, in order of first appearance."""
    latest: dict[str, Stance] = {}
    for message in expert_messages(messages):
        stance = parse_stance(message.content)
        if stance is not None:
            latest[message.author_id] = stance
    return latest


def tally_options(messages: list[Message]) -> list[OptionTally]:
    """Group stated options and weigh each by its current supporters.

    Each expert backs only its latest option, weighted by the highest
    confidence it has ever expressed for that option. Sorted by weight
    descending, ties broken by first mention.
    """
    tallies: dict[str, OptionTally] = {}
    best_confidence: dict[tuple[str, str], float] = {}
    latest: dict[str, str] = {}

    for index, message in enumerate(expert_messages(messages)):
        stance = parse_stance(message.content)
        if stance is None:
            continue
        tally = tallies.get(stance.key)
        if tally is None:
            tally = tallies[stance.key] = OptionTally(
                key=stance.key, option=stance.option, first_index=index
            )
        tally.mentions += 1
        for pro in stance.pros:
            if pro not in tally.pros:
                tally.pros.append(pro)
        for con in stance.cons:
            if con not in tally.cons:
                tally.cons.append(con)

        pair = (message.author_id, stance.key)
        best_confidence[pair] = max(best_confidence.get(pair, 0.0), max(stance.confidence, _MIN_WEIGHT))
        latest[message.author_id] = stance.key

    for expert_id, key in latest.items():
        tallies[key].supporters[expert_id] = best_confidence[(expert_id, key)]

    return sorted(tallies.values(), key=lambda t: (-t.weight, t.first_index))


def consensus_score(messages: list[Message], expected_experts: int) -> float:
    """Agreement on the leading option scaled by stance coverage, in [0, 1].

    agreement = weight on the top option / total weight
    coverage  = experts with a stance / expected experts
    """
    if expected_experts <= 0:
        return 0.0
    tallies = tally_options(messages)
    total = sum(t.weight for t in tallies)
    if total <= 0:
        return 0.0
    with_stance = sum(len(t.supporters) for t in tallies)
    agreement = tallies[0].weight / total
    coverage = min(1.0, with_stance / expected_experts)
    return round(agreement * coverage, 4)


def _sentence_types(text: str) -> list[str]:
    return [t for t in (classify_sentence(s) for s in split_sentences(text)) if t]


def quality_metrics(messages: list[Message], config: ScoringConfig | None = None) -> QualityMetrics:
    """Depth, balance and originality of the expert messages, each in [0, 1]."""
    config = config or ScoringConfig()
    spoken = expert_messages(messages)
    if not spoken:
        return QualityMetrics(overall=0.5, depth=0.0, balance=0.5, originality=1.0)

    ratios: list[float] = []
    objections = supports = 0
    for message in spoken:
        types = _sentence_types(message.content)
        conclusions = types.count("conclusion")
        if conclusions:
            ratios.append(types.count("premise") / conclusions)
        objections += types.count("objection")
        supports += types.count("support")

    reasoning = min(1.0, (mean(ratios) if ratios else 0.0) / max(config.depth_target, 1))
    evidence = sum(1 for m in spoken if has_evidence(m.content)) / len(spoken)
    depth = 0.7 * reasoning + 0.3 * evidence

    if objections + supports == 0:
        balance = 0.5
    else:
        ratio = objections / (objections + supports)
        balance = 1.0 - abs(ratio - 0.5) * 2

    duplicates = 0
    for message in spoken:
        peers = [
            m for m in spoken
            if m.round_number == message.round_number and m.author_id != message.author_id
        ]
        if any(similarity(message.content, p.content) >= config.near_duplicate_threshold for p in peers):
            duplicates += 1
    originality = 1.0 - duplicates / len(spoken)

    return QualityMetrics(
        overall=round((depth + balance + originality) / 3, 4),
        depth=round(depth, 4),
        balance=round(balance, 4),
        originality=round(originality, 4),
    )


# Quality monitor ---------------------------------------------------------

_NUMBERS_RE = re.compile(r"\d+\s*%|[$€£]\s*\d|\d+\s*[$€£]|\d+(?:\.\d+)?x\b", re.IGNORECASE)
_CONTRAST_RE = re.compile(r"\bversus\b|\bvs\.?\b|\bcompared (?:to|with)\b|\bin contrast\b|\bon the other hand\b", re.IGNORECASE)
_CAUSAL_RE = re.compile(r"\bbecause\b|\bdue to\b|\btherefore\b|\bthis means\b|\bimplies\b|\bresults in\b", re.IGNORECASE)
_EXAMPLE_RE = re.compile(r"\bfor example\b|\bfor instance\b|\bsuch as\b|\bspecifically\b|\bin the case of\b", re.IGNORECASE)

_PERSPECTIVES = {
    "risk": ("risk", "problem", "threat"),
    "opportunity": ("opportunity", "benefit", "upside"),
    "data": ("data", "evidence", "numbers"),
    "customer": ("customer", "user", "client"),
}

_RECOMMENDATIONS = {
    "shallow": "Ask experts to back claims with data, examples and causal reasoning",
    "repetitive": "Push experts to bring new angles instead of restating earlier points",
    "lack_of_diversity": "Invite perspectives on risk, opportunity, data and customers",
}


def message_depth(text: str) -> int:
    """Heuristic 0-100 depth of a single message."""
    score = min(30.0, len(text.split()) / 5)
    if _NUMBERS_RE.search(text):
        score += 15
    if _CONTRAST_RE.search(text):
        score += 15
    if _CAUSAL_RE.search(text):
        score += 20
    if _EXAMPLE_RE.search(text):
        score += 20
    return int(min(100.0, score))


def assess_quality(
    messages: list[Message],
    expected_experts: int = 4,
    min_quality: int = 60,
    min_messages: int = 3,
) -> QualityReport:
    """Report quality issues the moderator can react to.

    Transcripts shorter than ``min_messages`` are reported as perfect.
    """
    spoken = expert_messages(messages)
    if len(spoken) < min_messages:
        return QualityReport(overall=100, depth=100, diversity=100, originality=100)

    issues: list[QualityIssue] = []

    depths = [message_depth(m.content) for m in spoken]
    shallow = [m.id for m, d in zip(spoken, depths) if d < 30]
    depth_score = round(mean(depths))
    if len(shallow) / len(spoken) > 0.4:
        issues.append(QualityIssue(
            type="shallow",
            severity=8,
            description=f"{len(shallow)} messages lack argumentative depth",
            affected_messages=shallow,
        ))

    authors = {m.author_id for m in spoken}
    agent_diversity = min(1.0, len(authors) / max(expected_experts, 1)) * 100
    perspectives = {
        name for m in spoken for name, words in _PERSPECTIVES.items()
        if any(w in m.content.lower() for w in words)
    }
    perspective_diversity = len(perspectives) / len(_PERSPECTIVES) * 100
    diversity_score = round((agent_diversity + perspective_diversity) / 2)
    if diversity_score < 50:
        issues.append(QualityIssue(
            type="lack_of_diversity",
            severity=7,
            description="The debate lacks diversity of perspectives",
        ))

    seen: set[str] = set()
    repetitive: list[str] = []
    for message in spoken:
        concepts = tokenize(message.content)
        repeated = len(concepts & seen)
        seen |= concepts
        if concepts and repeated / len(concepts) > 0.7:
            repetitive.append(message.id)
    originality_score = round(100 - len(repetitive) / len(spoken) * 100)
    if len(repetitive) / len(spoken) > 0.3:
        issues.append(QualityIssue(
            type="repetitive",
            severity=6,
            description=f"{len(repetitive)} messages repeat concepts already discussed",
            affected_messages=repetitive,
        ))

    overall = round((depth_score + diversity_score + originality_score) / 3)
    return QualityReport(
        overall=overall,
        depth=depth_score,
        diversity=diversity_score,
        originality=originality_score,
        issues=issues,
        recommendations=[_RECOMMENDATIONS[i.type] for i in issues],
        needs_moderation=overall < min_quality or any(i.severity >= 7 for i in issues),
    )
