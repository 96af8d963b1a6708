"""Shared text signals extracted from free-form expert messages.

Everything here is a pure function of its input text. The scorer, the
moderator, the ranking and the argument graph all read messages through
this module so they agree on what a stance or an objection is.
"""

import re
from dataclasses import dataclass, field

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+|\n+")
_WORD_RE = re.compile(r"[a-z0-9][a-z0-9'\-]*")

_POSITION_RE = re.compile(r"^\s*\**\s*POSITION\s*\**\s*:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_CONFIDENCE_RE = re.compile(r"^\s*\**\s*CONFIDENCE\s*\**\s*:\s*([0-9]*\.?[0-9]+)\s*(%?)", re.IGNORECASE | re.MULTILINE)
_PRO_RE = re.compile(r"^\s*\**\s*PRO\s*\**\s*:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_CON_RE = re.compile(r"^\s*\**\s*CON\s*\**\s*:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_RECOMMEND_RE = re.compile(r"\bI (?:strongly )?recommend(?:ing)?\s+([^.;\n]+)", re.IGNORECASE)
_MARKER_RE = re.compile(r"^\s*\**\s*(POSITION|CONFIDENCE|PRO|CON)\s*\**\s*:", re.IGNORECASE)

_EVIDENCE_RE = re.compile(
    r"\d+(?:\.\d+)?\s*(?:%|x\b|k\b|m\b)|[$€£]\s*\d|\bfor example\b|\bfor instance\b|"
    r"\bdata\b|\bstudy\b|\bsurvey\b|\bbenchmark\b|\bin the case of\b|\bspecifically\b",
    re.IGNORECASE,
)

STOPWORDS = frozenset(
    """
    a about above after again against all also am an and any are as at be because been
    before being below between both but by can could did do does doing down during each
    few for from further had has have having he her here hers him his how i if in into is
    it its itself just me more most my no nor not now of off on once only or other our
    ours out over own same she should so some such than that the their theirs them then
    there these they this those through to too under until up very was we were what when
    where which while who whom why will with would you your yours
    """.split()
)

OBJECTION_MARKERS = (
    "however", "but ", "disagree", "i doubt", "on the contrary", "the problem is",
    "the risk is", "fails to", "overlooks", "ignores", "downside", "not convinced",
)
SUPPORT_MARKERS = (
    "i agree", "agree with", "builds on", "reinforces", "in support of", "adding to",
    "backs up", "confirms", "echo ", "right that",
)
CONCLUSION_MARKERS = (
    "therefore", "this means", "thus", "hence", "we should", "i recommend",
    "the best option", "in conclusion", "so the answer", "my recommendation",
)
PREMISE_MARKERS = (
    "because", "since ", "if ", "given that", "due to", "assuming", "as long as",
    "provided that", "when ", "unless",
)
AGREE_MARKERS = ("i agree", "agree with", "concur", "same conclusion", "aligned with", "right that")
DISAGREE_MARKERS = ("disagree", "i doubt", "not convinced", "on the contrary", "wrong about", "push back")
CITATION_MARKERS = ("according to", "as noted by", "as mentioned by", "as pointed out")
_AS_SAID_RE = re.compile(r"\bas\s+(?:[\w\-]+\s+){1,3}(?:said|noted|argued|pointed out|mentioned)\b", re.IGNORECASE)

DEFAULT_CONFIDENCE = 0.5


@dataclass(frozen=True)
class Stance:
    option: str            # display label as first stated
    key: str               # normalized label used for matching
    confidence: float
    pros: tuple[str, ...] = field(default_factory=tuple)
    cons: tuple[str, ...] = field(default_factory=tuple)


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.split(text or "") if s and s.strip()]


def tokenize(text: str) -> set[str]:
    """Content words of a text: lowercased, stopwords and short tokens removed."""
    return {w for w in _WORD_RE.findall((text or "").lower()) if len(w) > 2 and w not in STOPWORDS}


def jaccard(a: set[str], b: set[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def similarity(text_a: str, text_b: str) -> float:
    return jaccard(tokenize(text_a), tokenize(text_b))


def normalize_option(label: str) -> str:
    cleaned = re.sub(r"[^\w\s\-]", " ", label.lower())
    cleaned = re.sub(r"^\s*(?:the|a|an|option|to)\s+", "", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def _clean_label(raw: str) -> str:
    return raw.strip().strip("*_`\"'").rstrip(".").strip()


def _parse_confidence(text: str) -> float:
    match = _CONFIDENCE_RE.search(text)
    if not match:
        return DEFAULT_CONFIDENCE
    value = float(match.group(1))
    if match.group(2) == "%" or value > 1.0:
        value /= 100.0
    return max(0.0, min(1.0, value))


def parse_stance(text: str) -> Stance | None:
    """Extract the stated option from a message.

    Reads the last ``POSITION:`` line, falling back to an ``I recommend ...``
    phrase. Returns None when the message takes no position.
    """
    positions = _POSITION_RE.findall(text or "")
    label = _clean_label(positions[-1]) if positions else ""
    if not label:
        recommend = _RECOMMEND_RE.search(text or "")
        label = _clean_label(recommend.group(1)) if recommend else ""
    key = normalize_option(label)
    if not key:
        return None
    return Stance(
        option=label,
        key=key,
        confidence=_parse_confidence(text),
        pros=tuple(_clean_label(p) for p in _PRO_RE.findall(text) if _clean_label(p)),
        cons=tuple(_clean_label(c) for c in _CON_RE.findall(text) if _clean_label(c)),
    )


def classify_sentence(sentence: str) -> str | None:
    """Classify a sentence as premise, conclusion, objection or support.

    Structured marker lines win over phrasing. CONFIDENCE lines and plain
    sentences yield None.
    """
    marker = _MARKER_RE.match(sentence)
    if marker:
        return {
            "position": "conclusion",
            "pro": "support",
            "con": "objection",
        }.get(marker.group(1).lower())

    lowered = f" {sentence.lower()} "
    if any(m in lowered for m in OBJECTION_MARKERS):
        return "objection"
    if any(m in lowered for m in SUPPORT_MARKERS):
        return "support"
    if any(m in lowered for m in CONCLUSION_MARKERS):
        return "conclusion"
    if any(m in lowered for m in PREMISE_MARKERS):
        return "premise"
    return None


def strip_marker(sentence: str) -> str:
    return _MARKER_RE.sub("", sentence).strip()


def has_evidence(text: str) -> bool:
    return bool(_EVIDENCE_RE.search(text or ""))


def expresses_agreement(text: str) -> bool:
    lowered = (text or "").lower()
    return any(m in lowered for m in AGREE_MARKERS)


def expresses_disagreement(text: str) -> bool:
    lowered = (text or "").lower()
    return any(m in lowered for m in DISAGREE_MARKERS)


def has_citation_phrase(text: str) -> bool:
    lowered = (text or "").lower()
    return any(m in lowered for m in CITATION_MARKERS) or bool(_AS_SAID_RE.search(text or ""))


def mentioned_names(text: str, names: dict[str, str]) -> list[str]:
    """Return ids (in ``names`` order) whose display name appears in the text.

    Args:
        names: expert id -> display name.
    """
    lowered = (text or "").lower()
    return [
        expert_id
        for expert_id, name in names.items()
        if name and re.search(rf"\b{re.escape(name.lower())}\b", lowered)
    ]


def first_sentence(text: str, limit: int = 160) -> str:
    for sentence in split_sentences(text):
        if not _MARKER_RE.match(sentence):
            return sentence[:limit]
    return (text or "").strip()[:limit]
