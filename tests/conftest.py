"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    ExpertConfig,
    ModelConfig,
    OrchestratorConfig,
    PromptsConfig,
)
from quorum.models import AgentReply, Expert, Message, Round
from quorum.orchestrator import DebateOrchestrator
from quorum.panel import ExpertPanel
from quorum.providers.base import AgentPort
from quorum.providers.scripted import ScriptedPort
from quorum.store import InMemoryDebateStore

OWNER = "alice"


def make_expert(expert_id: str, name: str | None = None, specializations: list[str] | None = None) -> Expert:
    return Expert(
        id=expert_id,
        name=name or expert_id.title(),
        specializations=specializations or [],
        model="claude",
    )


def make_message(author_id: str, content: str, round_number: int = 1, seq: int = 1) -> Message:
    return Message(
        id=f"r{round_number}.{seq}",
        round_number=round_number,
        author_id=author_id,
        content=content,
        tokens_used=10,
        cost_usd=0.001,
    )


def turn(option: str, confidence: float = 0.7, body: str = "", pro: str = "", con: str = "") -> str:
    """Expert turn text in the POSITION / CONFIDENCE / PRO / CON format."""
    lines = [body or f"After weighing the numbers, I recommend we {option.lower()} because the evidence supports it."]
    lines.append(f"POSITION: {option}")
    lines.append(f"CONFIDENCE: {confidence}")
    if pro:
        lines.append(f"PRO: {pro}")
    if con:
        lines.append(f"CON: {con}")
    return "\n".join(lines)


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
        input_usd_per_mtok=3.0,
        output_usd_per_mtok=15.0,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        system="{persona} Specializations: {specializations}.",
        round="Q: {question}\n{context}\nRound {round}/{max_rounds}\n{history}",
        interventions={},
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        max_rounds=3,
        output_dir=tmp_path / "output",
        min_rounds=2,
        panel_size=3,
        mode="static",
        default_panel=["a", "b", "c"],
        store_dir=tmp_path / "store",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    model_cfg = ModelConfig(
        name="claude",
        sdk="anthropic",
        model="claude-sonnet-4-5",
        api_key_env="ANTHROPIC_API_KEY",
        timeout_sec=60,
        max_tokens=1024,
    )
    experts = [
        ExpertConfig(id="a", name="Alpha", specializations=["strategy", "market"], model="claude"),
        ExpertConfig(id="b", name="Bravo", specializations=["finance", "pricing"], model="claude"),
        ExpertConfig(id="c", name="Charlie", specializations=["risk", "compliance"], model="claude"),
        ExpertConfig(id="d", name="Delta", specializations=["hiring", "culture"], model="claude"),
    ]
    return AppConfig(
        defaults=sample_defaults_config,
        models={"claude": model_cfg},
        prompts=sample_prompts_config,
        experts=experts,
        orchestrator=OrchestratorConfig(call_timeout_sec=5.0, max_retries=2, backoff_base_sec=0.0),
        available_models={"claude"},
    )


@pytest.fixture
def sample_round() -> Round:
    return Round(
        number=1,
        messages=[
            make_message("a", turn("Expand to Germany", 0.8), seq=1),
            make_message("b", turn("Expand to France", 0.6), seq=2),
        ],
        consensus_score=0.5,
    )


class MockPort(AgentPort):
    """Test double AgentPort with an AsyncMock invoke."""

    def __init__(self, port_name: str = "mock", reply_text: str = "Mock reply") -> None:
        self._name = port_name
        self._reply_text = reply_text
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because invoke is defined in the class body below.
        self.invoke = AsyncMock(  # type: ignore[assignment]
            return_value=AgentReply(text=reply_text, tokens_used=10, cost_usd=0.001, latency_sec=0.1)
        )

    def name(self) -> str:
        return self._name

    async def invoke(self, expert, prompt_context, history) -> AgentReply:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return AgentReply(text=self._reply_text, tokens_used=10, cost_usd=0.001)


@pytest.fixture
def mock_port() -> MockPort:
    return MockPort()


@pytest.fixture
def scripted_port() -> ScriptedPort:
    return ScriptedPort()


@pytest.fixture
def store() -> InMemoryDebateStore:
    return InMemoryDebateStore()


@pytest.fixture
def make_orchestrator(sample_app_config, store):
    """Factory: orchestrator over the in-memory store with a given port."""

    def _make(port: AgentPort, **kwargs) -> DebateOrchestrator:
        return DebateOrchestrator(
            store=store,
            port=port,
            panel=ExpertPanel(sample_app_config),
            config=sample_app_config,
            **kwargs,
        )

    return _make
