"""Agent Invocation Port: the abstract capability every model adapter implements."""

from abc import ABC, abstractmethod

from quorum.models import AgentReply, Expert, Message

DEFAULT_SYSTEM_TEMPLATE = (
    "{persona}\n"
    "You are one of several experts on a decision panel. Argue from your "
    "specialization ({specializations}) and respond to the other experts."
)


class ProviderError(Exception):
    """Raised when a provider call fails and should not be retried."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AgentTransientFailure(ProviderError):
    """Network, timeout, rate-limit or 5xx failure. Safe to retry."""


class AgentContentRejected(ProviderError):
    """The model refused or a content filter blocked the turn. Not retried."""


class AgentPort(ABC):
    """Abstract base for anything that can speak for an expert."""

    @abstractmethod
    def name(self) -> str:
        """Return the short port name (e.g. 'claude', 'scripted')."""
        ...

    @abstractmethod
    async def invoke(
        self,
        expert: Expert,
        prompt_context: str,
        history: list[Message],
    ) -> AgentReply:
        """Produce one debate turn for the given expert.

        Args:
            expert: The expert whose turn this is (persona, model, temperature).
            prompt_context: Fully assembled round prompt, history included.
            history: Verbatim messages of the most recent rounds, for adapters
                that keep native multi-turn state.

        Returns:
            AgentReply with text, token usage and USD cost.

        Raises:
            AgentTransientFailure: Retryable failure.
            AgentContentRejected: The turn was refused; record it as skipped.
            ProviderError: Any other permanent failure.
        """
        ...


def render_system_prompt(expert: Expert, template: str = DEFAULT_SYSTEM_TEMPLATE) -> str:
    return template.format(
        persona=expert.persona or f"You are {expert.name}.",
        specializations=", ".join(expert.specializations) or "general",
        name=expert.name,
    ).strip()
