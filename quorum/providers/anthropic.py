"""Anthropic Claude adapter using anthropic SDK with native async."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from quorum.billing import estimate_cost_usd
from quorum.models import AgentReply, Expert, Message
from quorum.providers.base import (
    DEFAULT_SYSTEM_TEMPLATE,
    AgentContentRejected,
    AgentPort,
    AgentTransientFailure,
    ProviderError,
    render_system_prompt,
)

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    anthropic_sdk.APIConnectionError,   # includes APITimeoutError
    anthropic_sdk.RateLimitError,
    anthropic_sdk.InternalServerError,
)


class AnthropicProvider(AgentPort):
    """Anthropic Claude adapter via anthropic SDK."""

    def __init__(self, config: ModelConfig, system_template: str = DEFAULT_SYSTEM_TEMPLATE) -> None:
        self._config = config
        self._system_template = system_template
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    async def invoke(self, expert: Expert, prompt_context: str, history: list[Message]) -> AgentReply:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(
                    model=self._config.model,
                    max_tokens=self._config.max_tokens,
                    temperature=expert.temperature,
                    system=render_system_prompt(expert, self._system_template),
                    messages=[{"role": "user", "content": prompt_context}],
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise AgentTransientFailure(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s"
            ) from exc
        except _TRANSIENT_ERRORS as exc:
            raise AgentTransientFailure(self._config.name, f"API call failed: {exc}") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if response.stop_reason == "refusal":
            raise AgentContentRejected(self._config.name, "Model refused the turn")

        text_blocks = [b.text for b in response.content or [] if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        input_tokens = response.usage.input_tokens if response.usage else 0
        output_tokens = response.usage.output_tokens if response.usage else 0

        logger.info(
            "Anthropic %s: %.2fs, %d tokens",
            expert.id,
            latency,
            input_tokens + output_tokens,
        )

        return AgentReply(
            text="\n".join(text_blocks),
            tokens_used=input_tokens + output_tokens,
            cost_usd=estimate_cost_usd(self._config, input_tokens, output_tokens),
            latency_sec=latency,
        )
