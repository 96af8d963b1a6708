"""Static dimension model for readiness assessment.

Each debate type has a fixed list of weighted dimensions (weights sum to 1.0).
Keyword tables drive both type inference and per-dimension scoring. Everything
here is read-only module state.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Dimension:
    id: str
    name: str
    description: str
    weight: float


DEBATE_TYPES = ("business_decision", "strategy", "product", "general")

DIMENSION_TEMPLATES: dict[str, tuple[Dimension, ...]] = {
    "business_decision": (
        Dimension("objective", "Objective", "What you want to achieve", 0.20),
        Dimension("constraints", "Constraints", "Budget, time, resources", 0.15),
        Dimension("stakeholders", "Stakeholders", "Who is involved or affected", 0.10),
        Dimension("context", "Context", "Current situation and background", 0.15),
        Dimension("options", "Options", "Alternatives under consideration", 0.15),
        Dimension("criteria", "Criteria", "How success will be measured", 0.10),
        Dimension("risks", "Risks", "What could go wrong", 0.10),
        Dimension("timeline", "Timeline", "Deadlines and urgency", 0.05),
    ),
    "strategy": (
        Dimension("vision", "Vision", "Where you want to go", 0.20),
        Dimension("current_state", "Current state", "Where you are now", 0.15),
        Dimension("market", "Market", "Competition and trends", 0.15),
        Dimension("resources", "Resources", "What you have available", 0.15),
        Dimension("differentiators", "Differentiators", "Your competitive advantage", 0.15),
        Dimension("risks", "Risks", "Threats and weaknesses", 0.10),
        Dimension("timeline", "Horizon", "Short, medium or long term", 0.10),
    ),
    "product": (
        Dimension("problem", "Problem", "Which problem you solve", 0.20),
        Dimension("user", "User", "Who it is for", 0.20),
        Dimension("solution", "Solution", "How you solve it", 0.15),
        Dimension("market", "Market", "Size and competition", 0.15),
        Dimension("mvp", "MVP", "Minimum viable version", 0.10),
        Dimension("metrics", "Metrics", "How you measure success", 0.10),
        Dimension("resources", "Resources", "Team and budget", 0.10),
    ),
    "general": (
        Dimension("objective", "Objective", "What you want to achieve", 0.25),
        Dimension("context", "Context", "Situation and background", 0.25),
        Dimension("constraints", "Constraints", "Limits to take into account", 0.20),
        Dimension("options", "Options", "Possible alternatives", 0.15),
        Dimension("criteria", "Criteria", "How to evaluate results", 0.15),
    ),
}

# Checked in this order; first type with a hit wins, "general" is the fallback.
TYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "business_decision": ("decision", "decide", "choose", "option", "alternative", "whether"),
    "strategy": ("strategy", "strategic", "vision", "long term", "long-term", "competition"),
    "product": ("product", "feature", "mvp", "launch", "roadmap"),
}

DIMENSION_KEYWORDS: dict[str, tuple[str, ...]] = {
    "objective": ("want", "need", "goal", "objective", "achieve", "aim"),
    "constraints": ("budget", "limit", "constraint", "maximum", "minimum", "$", "€", "cannot"),
    "stakeholders": ("team", "customer", "client", "board", "investor", "partner", "employee"),
    "context": ("currently", "situation", "right now", "so far", "history", "today"),
    "options": ("option", "alternative", "either", "consider", "versus", " or "),
    "criteria": ("success", "measure", "kpi", "metric", "outcome"),
    "risks": ("risk", "problem", "danger", "threat", "could fail", "downside"),
    "timeline": ("deadline", "date", "month", "week", "quarter", "urgent"),
    "vision": ("vision", "future", "aspiration", "long term", "long-term"),
    "current_state": ("currently", "today", "current state", "at the moment"),
    "market": ("market", "competition", "competitor", "industry", "sector"),
    "resources": ("resource", "team", "money", "funding", "talent", "tool", "runway"),
    "differentiators": ("different", "unique", "advantage", "better than", "moat"),
    "problem": ("problem", "pain", "need", "frustration"),
    "user": ("user", "customer", "persona", "target", "audience"),
    "solution": ("solution", "solve", "build", "service"),
    "mvp": ("mvp", "minimum", "first version", "prototype", "pilot"),
    "metrics": ("metric", "kpi", "measure", "tracking", "retention", "conversion"),
}

DEFAULT_ASSUMPTIONS: dict[str, str] = {
    "objective": "The goal is to reach an informed decision on this topic",
    "constraints": "There are no critical budget constraints",
    "stakeholders": "The decision is made by you or your direct team",
    "context": "This is a relatively new situation without much history",
    "options": "You are open to exploring several alternatives",
    "criteria": "Success is measured mainly in business results",
    "risks": "The main risk is making the wrong call",
    "timeline": "There is no immediate critical urgency",
    "market": "You operate in a standard competitive market",
    "resources": "Resources are limited but sufficient",
    "user": "Your user is a professional or a company",
    "problem": "The problem is relevant and recurring for your audience",
}

QUESTIONS: dict[str, str] = {
    "objective": "What specific outcome do you want from this decision?",
    "constraints": "What limits do you have in budget, time or resources?",
    "stakeholders": "Who is involved in or affected by this decision?",
    "context": "What is the current situation? What has happened so far?",
    "options": "Which alternatives have you considered so far?",
    "criteria": "How will you know the decision was a success? Which metrics matter?",
    "risks": "What could go wrong? What are your main concerns?",
    "timeline": "When do you need to decide? Is there a deadline?",
    "vision": "What does the ideal long-term outcome look like?",
    "current_state": "Where do you stand today on this topic?",
    "market": "Who are your main competitors and what is your market like?",
    "resources": "Which team, budget and tools do you have?",
    "problem": "Which specific problem are you trying to solve?",
    "user": "Who is your ideal user or customer?",
    "solution": "How do you plan to solve the problem?",
}

# Dimensions with a natural closed answer set
QUESTION_OPTIONS: dict[str, tuple[str, ...]] = {
    "timeline": ("Urgent (this week)", "1-2 weeks", "1 month", "No specific rush"),
    "stakeholders": ("Just me", "My direct team", "Several departments", "Customers or external parties"),
    "constraints": ("Limited budget", "Limited time", "Limited resources", "No major constraints"),
}


def dimensions_for(debate_type: str) -> tuple[Dimension, ...]:
    """Return the dimension list for a debate type. Raises KeyError if unknown."""
    return DIMENSION_TEMPLATES[debate_type]


def assumption_text(dimension: Dimension) -> str:
    return DEFAULT_ASSUMPTIONS.get(
        dimension.id, f"{dimension.name} follows common practice for this kind of decision"
    )


def question_text(dimension: Dimension) -> str:
    return QUESTIONS.get(
        dimension.id, f"Can you give more detail about {dimension.name.lower()}?"
    )
