"""Pure dataclasses for the Quorum debate pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

MODERATOR_ID = "moderator"


class DebateStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Expert:
    id: str
    name: str
    specializations: list[str] = field(default_factory=list)
    persona: str = ""
    model: str = ""        # key into the configured models
    temperature: float = 0.5


@dataclass
class AgentReply:
    text: str
    tokens_used: int
    cost_usd: float
    latency_sec: float = 0.0


@dataclass
class Message:
    id: str                # "r{round}.{seq}", stable across reruns
    round_number: int
    author_id: str         # expert id or MODERATOR_ID
    content: str
    tokens_used: int = 0
    cost_usd: float = 0.0
    intervention_type: str | None = None
    created_at: datetime | None = None


@dataclass
class SkippedTurn:
    expert_id: str
    reason: str            # "timeout", "transient", "content_rejected", "error"
    detail: str = ""


@dataclass
class Round:
    number: int
    messages: list[Message] = field(default_factory=list)
    skipped: list[SkippedTurn] = field(default_factory=list)
    consensus_score: float | None = None
    sealed_at: datetime | None = None


@dataclass
class ContextEntry:
    text: str
    added_at: datetime


@dataclass
class DebateContext:
    background: str = ""
    constraints: list[str] = field(default_factory=list)
    additional: list[ContextEntry] = field(default_factory=list)
    seed: str = ""                                          # readiness-refined text
    assumptions: list[str] = field(default_factory=list)    # confirmed readiness assumptions


@dataclass
class FinalRankingEntry:
    option: str
    score: float           # 0-100
    supporters: list[str] = field(default_factory=list)
    pros: list[str] = field(default_factory=list)
    cons: list[str] = field(default_factory=list)
    confidence: float = 0.0
    reasoning: str = ""


@dataclass
class QualityMetrics:
    overall: float
    depth: float
    balance: float
    originality: float


@dataclass
class Debate:
    id: str
    owner_id: str
    question: str
    context: DebateContext = field(default_factory=DebateContext)
    mode: str = "static"                # "static" or "dynamic"
    status: DebateStatus = DebateStatus.DRAFT
    visibility: str = "private"
    max_rounds: int = 5
    category: str | None = None
    experts: list[Expert] = field(default_factory=list)
    rounds: list[Round] = field(default_factory=list)
    final_ranking: list[FinalRankingEntry] | None = None
    consensus_score: float = 0.0
    quality: QualityMetrics | None = None
    total_cost_usd: float = 0.0
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)   # holds the "paused" side-flag
    error: str | None = None


@dataclass
class Intervention:
    type: str              # "redirect", "deepen", "request_evidence", "challenge_assumptions"
    reason: str
    prompt: str


@dataclass
class ArgumentNode:
    id: str
    type: str              # "premise", "conclusion", "objection", "support"
    expert_id: str
    round: int
    content: str
    strength: float
    message_id: str


@dataclass
class ArgumentEdge:
    source: str
    target: str
    type: str              # "supports", "attacks", "cites", "agrees_with", "disagrees_with"
    strength: float
    round: int


@dataclass
class ArgumentGraph:
    nodes: list[ArgumentNode] = field(default_factory=list)
    edges: list[ArgumentEdge] = field(default_factory=list)
    rounds_covered: int = 0
    strongest_node: str | None = None
    most_contested_node: str | None = None


@dataclass
class DimensionScore:
    id: str
    name: str
    weight: float
    score: int             # 0, 40 or 80
    status: str            # "present", "partial", "missing"
    matched: list[str] = field(default_factory=list)


@dataclass
class Assumption:
    id: str
    dimension: str
    text: str
    confidence: float
    confirmed: bool | None = None


@dataclass
class ClarifyingQuestion:
    id: str
    dimension: str
    text: str
    priority: str          # "critical" or "important"
    options: list[str] | None = None


@dataclass
class ReadinessAssessment:
    debate_type: str
    dimensions: list[DimensionScore]
    overall_score: int
    readiness_level: str   # "insufficient", "basic", "good", "excellent"
    recommended_action: str  # "proceed", "clarify", "refine"
    assumptions: list[Assumption] = field(default_factory=list)
    questions: list[ClarifyingQuestion] = field(default_factory=list)
    summary: str = ""


@dataclass
class RefinementResult:
    enhanced_context: str
    assessment: ReadinessAssessment
    confirmed_assumptions: list[str] = field(default_factory=list)


@dataclass
class QualityIssue:
    type: str              # "shallow", "repetitive", "lack_of_diversity"
    severity: int          # 1-10
    description: str
    affected_messages: list[str] = field(default_factory=list)


@dataclass
class QualityReport:
    overall: int           # 0-100
    depth: int
    diversity: int
    originality: int
    issues: list[QualityIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    needs_moderation: bool = False
