"""Round engine: prompt assembly and concurrent expert calls for one round."""

import asyncio
import logging
from datetime import datetime, timezone

from config.config_loader import OrchestratorConfig
from quorum.claims import first_sentence, parse_stance
from quorum.models import (
    MODERATOR_ID,
    AgentReply,
    Debate,
    Expert,
    Intervention,
    Message,
    Round,
    SkippedTurn,
)
from quorum.providers.base import AgentContentRejected, AgentPort, AgentTransientFailure, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_ROUND_TEMPLATE = (
    "DECISION QUESTION:\n{question}\n\n{context}\n\n"
    "ROUND {round} of at most {max_rounds}.\n{history}\n\n"
    "End with POSITION:, CONFIDENCE:, PRO: and CON: lines."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _author_name(author_id: str, names: dict[str, str]) -> str:
    if author_id == MODERATOR_ID:
        return "Moderator"
    return names.get(author_id, author_id)


def render_context(debate: Debate) -> str:
    """Background, constraints, seed, confirmed assumptions and added context."""
    ctx = debate.context
    parts: list[str] = []
    if ctx.background.strip():
        parts.append(f"BACKGROUND:\n{ctx.background.strip()}")
    if ctx.constraints:
        parts.append("CONSTRAINTS:\n" + "\n".join(f"- {c}" for c in ctx.constraints))
    if ctx.seed.strip():
        parts.append(f"REFINED CONTEXT:\n{ctx.seed.strip()}")
    if ctx.assumptions:
        parts.append("CONFIRMED ASSUMPTIONS:\n" + "\n".join(f"- {a}" for a in ctx.assumptions))
    if ctx.additional:
        parts.append("ADDITIONAL CONTEXT:\n" + "\n".join(f"- {e.text}" for e in ctx.additional))
    return "\n\n".join(parts)


def _verbatim(rnd: Round, names: dict[str, str]) -> str:
    lines = [f"--- Round {rnd.number} ---"]
    for message in rnd.messages:
        lines.append(f"[{_author_name(message.author_id, names)}]\n{message.content.strip()}")
    return "\n\n".join(lines)


def _compressed(rnd: Round, names: dict[str, str]) -> str:
    lines = [f"--- Round {rnd.number} (summary) ---"]
    for message in rnd.messages:
        line = f"- {_author_name(message.author_id, names)}: {first_sentence(message.content)}"
        stance = parse_stance(message.content)
        if stance is not None:
            line += f" (position: {stance.option})"
        lines.append(line)
    return "\n".join(lines)


def render_history(rounds: list[Round], names: dict[str, str], window: int, char_limit: int) -> str:
    """Render prior rounds for the prompt.

    The newest ``window`` rounds stay verbatim. Older rounds are compressed to
    one line per message once the full verbatim rendering exceeds
    ``char_limit``. No round is ever dropped.
    """
    if not rounds:
        return "No previous rounds. Give your opening analysis."
    verbatim = "\n\n".join(_verbatim(r, names) for r in rounds)
    if len(verbatim) <= char_limit or len(rounds) <= window:
        return f"PREVIOUS ROUNDS:\n{verbatim}"
    split = len(rounds) - window
    older, recent = rounds[:split], rounds[split:]
    blocks = [_compressed(r, names) for r in older] + [_verbatim(r, names) for r in recent]
    logger.debug("Compressed %d older rounds in prompt history", len(older))
    return "PREVIOUS ROUNDS:\n" + "\n\n".join(blocks)


def build_round_prompt(
    debate: Debate,
    round_number: int,
    config: OrchestratorConfig,
    template: str = DEFAULT_ROUND_TEMPLATE,
) -> str:
    names = {e.id: e.name for e in debate.experts}
    return template.format(
        question=debate.question.strip(),
        context=render_context(debate),
        round=round_number,
        max_rounds=debate.max_rounds,
        history=render_history(debate.rounds, names, config.history_window, config.history_char_limit),
    ).strip()


def recent_messages(debate: Debate, window: int) -> list[Message]:
    rounds = debate.rounds[-window:] if window else []
    return [m for r in rounds for m in r.messages]


async def call_expert(
    port: AgentPort,
    expert: Expert,
    prompt: str,
    history: list[Message],
    config: OrchestratorConfig,
    round_number: int,
) -> AgentReply | SkippedTurn:
    """Invoke one expert with timeout, retry and backoff.

    Timeouts and transient failures are retried ``max_retries`` times with
    exponential backoff. Content rejection and other provider errors are not
    retried. Returns a SkippedTurn instead of raising for all provider
    failures; any other exception propagates.
    """
    attempts = config.max_retries + 1
    last_reason, last_detail = "error", ""
    for attempt in range(attempts):
        try:
            return await asyncio.wait_for(
                port.invoke(expert, prompt, history),
                timeout=config.call_timeout_sec,
            )
        except TimeoutError:
            last_reason, last_detail = "timeout", f"no reply within {config.call_timeout_sec}s"
        except AgentContentRejected as exc:
            logger.warning("Expert %s turn rejected in round %d: %s", expert.id, round_number, exc)
            return SkippedTurn(expert_id=expert.id, reason="content_rejected", detail=str(exc))
        except AgentTransientFailure as exc:
            last_reason, last_detail = "transient", str(exc)
        except ProviderError as exc:
            logger.warning("Expert %s failed in round %d: %s", expert.id, round_number, exc)
            return SkippedTurn(expert_id=expert.id, reason="error", detail=str(exc))

        if attempt + 1 < attempts:
            delay = config.backoff_base_sec * 2 ** attempt
            logger.warning(
                "Expert %s %s in round %d (attempt %d/%d), retrying in %.1fs",
                expert.id, last_reason, round_number, attempt + 1, attempts, delay,
            )
            await asyncio.sleep(delay)

    logger.warning(
        "Expert %s skipped in round %d after %d attempts: %s",
        expert.id, round_number, attempts, last_detail,
    )
    return SkippedTurn(expert_id=expert.id, reason=last_reason, detail=last_detail)


async def run_round(
    debate: Debate,
    port: AgentPort,
    config: OrchestratorConfig,
    template: str = DEFAULT_ROUND_TEMPLATE,
) -> Round:
    """Run one round for every assigned expert concurrently.

    Messages are appended in expert assignment order, whatever order the
    replies arrive in. The returned round is not sealed.
    """
    round_number = len(debate.rounds) + 1
    prompt = build_round_prompt(debate, round_number, config, template)
    history = recent_messages(debate, config.history_window)

    logger.info("Starting round %d with %d experts", round_number, len(debate.experts))

    tasks = [
        asyncio.create_task(
            call_expert(port, expert, prompt, history, config, round_number),
            name=f"round-{round_number}-{expert.id}",
        )
        for expert in debate.experts
    ]
    try:
        results = await asyncio.gather(*tasks)
    except BaseException:
        # No expert call outlives a failed or cancelled round
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    rnd = Round(number=round_number)
    for expert, result in zip(debate.experts, results):
        if isinstance(result, SkippedTurn):
            rnd.skipped.append(result)
            continue
        rnd.messages.append(Message(
            id=f"r{round_number}.{len(rnd.messages) + 1}",
            round_number=round_number,
            author_id=expert.id,
            content=result.text,
            tokens_used=result.tokens_used,
            cost_usd=result.cost_usd,
            created_at=_utcnow(),
        ))

    logger.info(
        "Round %d complete: %d/%d experts responded",
        round_number, len(rnd.messages), len(debate.experts),
    )
    return rnd


def append_intervention(rnd: Round, intervention: Intervention) -> Message:
    message = Message(
        id=f"r{rnd.number}.{len(rnd.messages) + 1}",
        round_number=rnd.number,
        author_id=MODERATOR_ID,
        content=intervention.prompt,
        intervention_type=intervention.type,
        created_at=_utcnow(),
    )
    rnd.messages.append(message)
    return message
