"""Dispatch each expert's turn to the adapter serving its configured model."""

import logging

from config.config_loader import AppConfig
from quorum.models import AgentReply, Expert, Message
from quorum.providers.anthropic import AnthropicProvider
from quorum.providers.base import AgentPort, ProviderError
from quorum.providers.gemini import GeminiProvider
from quorum.providers.openai_provider import OpenAIProvider
from quorum.providers.xai import XAIProvider

logger = logging.getLogger(__name__)

PORT_CLASSES: dict[str, type[AgentPort]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "xai": XAIProvider,
    "gemini": GeminiProvider,
}


def build_ports(config: AppConfig) -> dict[str, AgentPort]:
    """Instantiate an adapter for every model with an API key. Keyed by model name."""
    ports: dict[str, AgentPort] = {}
    for name in sorted(config.available_models):
        model_cfg = config.models[name]
        port_class = PORT_CLASSES.get(model_cfg.sdk)
        if port_class is None:
            logger.warning("Model '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            ports[name] = port_class(model_cfg, config.prompts.system)
        except ProviderError as exc:
            logger.warning("Failed to instantiate model '%s': %s", name, exc)
    return ports


class RoutingPort(AgentPort):
    """Routes by ``expert.model``; falls back to ``fallback`` when set."""

    def __init__(self, ports: dict[str, AgentPort], fallback: str | None = None) -> None:
        self._ports = dict(ports)
        self._fallback = fallback

    def name(self) -> str:
        return "routing"

    @property
    def ports(self) -> dict[str, AgentPort]:
        return dict(self._ports)

    def _port_for(self, expert: Expert) -> AgentPort:
        port = self._ports.get(expert.model)
        if port is None and self._fallback is not None:
            port = self._ports.get(self._fallback)
        if port is None:
            raise ProviderError(self.name(), f"No model '{expert.model}' available for expert {expert.id}")
        return port

    async def invoke(self, expert: Expert, prompt_context: str, history: list[Message]) -> AgentReply:
        return await self._port_for(expert).invoke(expert, prompt_context, history)
