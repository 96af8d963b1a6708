"""Gemini adapter using google-genai SDK with native async."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

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

_BLOCKED_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII", "RECITATION"}


class GeminiProvider(AgentPort):
    """Google Gemini adapter via google-genai SDK."""

    def __init__(self, config: ModelConfig, system_template: str = DEFAULT_SYSTEM_TEMPLATE) -> None:
        self._config = config
        self._system_template = system_template
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    async def invoke(self, expert: Expert, prompt_context: str, history: list[Message]) -> AgentReply:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._config.model,
                    contents=prompt_context,
                    config=genai_types.GenerateContentConfig(
                        system_instruction=render_system_prompt(expert, self._system_template),
                        max_output_tokens=self._config.max_tokens,
                        temperature=expert.temperature,
                    ),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise AgentTransientFailure(
                self._config.name, f"Request timed out after {self._config.timeout_sec}s"
            ) from exc
        except genai_errors.ServerError as exc:
            raise AgentTransientFailure(self._config.name, f"API call failed: {exc}") from exc
        except genai_errors.ClientError as exc:
            if exc.code == 429:
                raise AgentTransientFailure(self._config.name, f"Rate limited: {exc}") from exc
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        feedback = response.prompt_feedback
        if feedback is not None and feedback.block_reason:
            raise AgentContentRejected(self._config.name, f"Prompt blocked: {feedback.block_reason}")
        if response.candidates:
            finish_reason = response.candidates[0].finish_reason
            if finish_reason is not None and getattr(finish_reason, "name", str(finish_reason)) in _BLOCKED_FINISH_REASONS:
                raise AgentContentRejected(self._config.name, f"Response blocked: {finish_reason}")

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        usage = response.usage_metadata
        input_tokens = (usage.prompt_token_count or 0) if usage else 0
        output_tokens = (usage.candidates_token_count or 0) if usage else 0

        logger.info(
            "Gemini %s: %.2fs, %d tokens",
            expert.id,
            latency,
            input_tokens + output_tokens,
        )

        return AgentReply(
            text=response.text,
            tokens_used=input_tokens + output_tokens,
            cost_usd=estimate_cost_usd(self._config, input_tokens, output_tokens),
            latency_sec=latency,
        )
