"""Deterministic, offline agent port for tests and ``--dry-run``."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

from quorum.models import AgentReply, Expert, Message
from quorum.providers.base import AgentPort

ScriptItem = str | AgentReply | Exception

_DRY_RUN_OPTIONS = ("Run a staged pilot", "Commit fully now", "Defer the decision")


def dry_run_reply(expert: Expert, call_number: int) -> str:
    """Plausible turn text: spread opinions in round one, converge afterwards."""
    if call_number == 1:
        option = _DRY_RUN_OPTIONS[sum(map(ord, expert.id)) % len(_DRY_RUN_OPTIONS)]
        confidence = 0.6
    else:
        option = _DRY_RUN_OPTIONS[0]
        confidence = 0.8
    focus = expert.specializations[0] if expert.specializations else "the business"
    return (
        f"Looking at this through {focus}, the evidence is mixed. "
        f"If we limit the initial commitment, we keep the option to scale later. "
        f"However, the risk is that a half-hearted attempt produces weak data. "
        f"This means we should {option.lower()}.\n"
        f"POSITION: {option}\n"
        f"CONFIDENCE: {confidence}\n"
        f"PRO: Keeps downside bounded while we learn\n"
        f"CON: Slower than a full commitment"
    )


@dataclass
class ScriptedCall:
    expert_id: str
    prompt: str
    history: list[Message] = field(default_factory=list)


class ScriptedPort(AgentPort):
    """Replays per-expert scripts.

    Each script item is returned (str / AgentReply) or raised (Exception) on
    successive calls for that expert. Once a script runs out, ``default``
    generates the text. Delays let tests control completion order.
    """

    def __init__(
        self,
        scripts: dict[str, list[ScriptItem]] | None = None,
        default: Callable[[Expert, int], str] = dry_run_reply,
        delays: dict[str, float] | None = None,
        tokens_per_call: int = 120,
        cost_per_call: float = 0.001,
    ) -> None:
        self._scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self._default = default
        self._delays = delays or {}
        self._tokens = tokens_per_call
        self._cost = cost_per_call
        self._counts: dict[str, int] = {}
        self.calls: list[ScriptedCall] = []

    def name(self) -> str:
        return "scripted"

    def calls_for(self, expert_id: str) -> list[ScriptedCall]:
        return [c for c in self.calls if c.expert_id == expert_id]

    async def invoke(self, expert: Expert, prompt_context: str, history: list[Message]) -> AgentReply:
        self.calls.append(ScriptedCall(expert.id, prompt_context, list(history)))
        count = self._counts[expert.id] = self._counts.get(expert.id, 0) + 1

        delay = self._delays.get(expert.id, 0.0)
        if delay:
            await asyncio.sleep(delay)

        script = self._scripts.get(expert.id, [])
        item: ScriptItem = script.pop(0) if script else self._default(expert, count)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, AgentReply):
            return item
        return AgentReply(text=item, tokens_used=self._tokens, cost_usd=self._cost, latency_sec=delay)
