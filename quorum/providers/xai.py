"""xAI Grok adapter using openai SDK (OpenAI-compatible API)."""

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from quorum.providers.base import DEFAULT_SYSTEM_TEMPLATE, ProviderError
from quorum.providers.openai_provider import OpenAIProvider


class XAIProvider(OpenAIProvider):
    """xAI Grok adapter via OpenAI-compatible API."""

    def __init__(self, config: ModelConfig, system_template: str = DEFAULT_SYSTEM_TEMPLATE) -> None:
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for xAI provider")
        super().__init__(config, system_template)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url)
