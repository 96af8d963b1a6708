"""OpenAI adapter using openai SDK with native async."""

import asyncio
import logging
import os
import time

import openai
from openai import AsyncOpenAI

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
    openai.APIConnectionError,   # includes APITimeoutError
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIProvider(AgentPort):
    """OpenAI adapter via openai SDK."""

    def __init__(self, config: ModelConfig, system_template: str = DEFAULT_SYSTEM_TEMPLATE) -> None:
        self._config = config
        self._system_template = system_template
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    async def invoke(self, expert: Expert, prompt_context: str, history: list[Message]) -> AgentReply:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._config.model,
                    messages=[
                        {"role": "system", "content": render_system_prompt(expert, self._system_template)},
                        {"role": "user", "content": prompt_context},
                    ],
                    max_tokens=self._config.max_tokens,
                    temperature=expert.temperature,
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

        choice = response.choices[0] if response.choices else None
        if choice is not None and choice.finish_reason == "content_filter":
            raise AgentContentRejected(self._config.name, "Response blocked by content filter")
        if choice is not None and getattr(choice.message, "refusal", None):
            raise AgentContentRejected(self._config.name, f"Model refused: {choice.message.refusal}")
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        input_tokens = response.usage.prompt_tokens if response.usage else 0
        output_tokens = response.usage.completion_tokens if response.usage else 0

        logger.info(
            "OpenAI-compatible %s (%s): %.2fs, %d tokens",
            self._config.name,
            expert.id,
            latency,
            input_tokens + output_tokens,
        )

        return AgentReply(
            text=choice.message.content,
            tokens_used=input_tokens + output_tokens,
            cost_usd=estimate_cost_usd(self._config, input_tokens, output_tokens),
            latency_sec=latency,
        )
