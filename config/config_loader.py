"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

# Environment overrides for the billing constants
_MARGIN_ENV = "QUORUM_MARGIN_MULTIPLIER"
_UNIT_PRICE_ENV = "QUORUM_CREDIT_UNIT_PRICE"


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None
    input_usd_per_mtok: float = 0.0
    output_usd_per_mtok: float = 0.0


@dataclass
class ExpertConfig:
    id: str
    name: str
    specializations: list[str] = field(default_factory=list)
    persona: str = ""
    model: str = ""
    temperature: float = 0.5


@dataclass
class PromptsConfig:
    system: str
    round: str
    interventions: dict[str, str] = field(default_factory=dict)


@dataclass
class DefaultsConfig:
    max_rounds: int
    output_dir: Path
    min_rounds: int = 2
    panel_size: int = 3
    mode: str = "static"
    default_panel: list[str] = field(default_factory=list)
    store_dir: Path = Path(".quorum/debates")


@dataclass
class OrchestratorConfig:
    call_timeout_sec: float = 90.0
    max_retries: int = 2
    backoff_base_sec: float = 1.0
    early_stop_consensus: float = 0.9
    history_window: int = 2
    history_char_limit: int = 6000


@dataclass
class ModeratorConfig:
    stagnation_overlap: float = 0.6
    min_score_movement: float = 0.02
    off_topic_overlap: float = 0.05
    min_quality: float = 0.35


@dataclass
class ScoringConfig:
    near_duplicate_threshold: float = 0.8
    depth_target: int = 3


@dataclass
class GraphConfig:
    similarity_threshold: float = 0.15


@dataclass
class BillingConfig:
    margin_multiplier: float = 1.75
    credit_unit_price: float = 0.005


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    experts: list[ExpertConfig] = field(default_factory=list)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    moderator: ModeratorConfig = field(default_factory=ModeratorConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    graph: GraphConfig = field(default_factory=GraphConfig)
    billing: BillingConfig = field(default_factory=BillingConfig)
    available_models: set[str] = field(default_factory=set)


def _load_billing(raw: dict) -> BillingConfig:
    billing = BillingConfig(
        margin_multiplier=float(raw.get("margin_multiplier", 1.75)),
        credit_unit_price=float(raw.get("credit_unit_price", 0.005)),
    )
    margin = os.environ.get(_MARGIN_ENV, "").strip()
    if margin:
        billing.margin_multiplier = float(margin)
        logger.info("Margin multiplier overridden from %s: %s", _MARGIN_ENV, margin)
    unit_price = os.environ.get(_UNIT_PRICE_ENV, "").strip()
    if unit_price:
        billing.credit_unit_price = float(unit_price)
        logger.info("Credit unit price overridden from %s: %s", _UNIT_PRICE_ENV, unit_price)
    if billing.credit_unit_price <= 0:
        raise ValueError("billing.credit_unit_price must be positive")
    return billing


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing.
    Logs warnings for missing API keys but does not raise; callers check
    available_models count.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        max_rounds=int(defaults_raw["max_rounds"]),
        min_rounds=int(defaults_raw.get("min_rounds", 2)),
        panel_size=int(defaults_raw.get("panel_size", 3)),
        mode=str(defaults_raw.get("mode", "static")),
        output_dir=Path(defaults_raw["output_dir"]),
        default_panel=list(defaults_raw.get("default_panel", [])),
        store_dir=Path(defaults_raw.get("store_dir", ".quorum/debates")),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        system=prompts_raw["system"],
        round=prompts_raw["round"],
        interventions={k: str(v) for k, v in prompts_raw.get("interventions", {}).items()},
    )

    experts = [
        ExpertConfig(
            id=str(e["id"]),
            name=str(e.get("name", e["id"])),
            specializations=[str(s) for s in e.get("specializations", [])],
            persona=str(e.get("persona", "")),
            model=str(e.get("model", "")),
            temperature=float(e.get("temperature", 0.5)),
        )
        for e in raw.get("experts", [])
    ]

    orchestrator = OrchestratorConfig(**raw.get("orchestrator", {}))
    moderator = ModeratorConfig(**raw.get("moderator", {}))
    scoring = ScoringConfig(**raw.get("scoring", {}))
    graph = GraphConfig(**raw.get("graph", {}))
    billing = _load_billing(raw.get("billing", {}))

    models: dict[str, ModelConfig] = {}
    available_models: set[str] = set()

    for model_name, model_raw in raw.get("models", {}).items():
        model_cfg = ModelConfig(
            name=model_name,
            sdk=model_raw["sdk"],
            model=model_raw["model"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
            input_usd_per_mtok=float(model_raw.get("input_usd_per_mtok", 0.0)),
            output_usd_per_mtok=float(model_raw.get("output_usd_per_mtok", 0.0)),
        )
        models[model_name] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_models.add(model_name)
            logger.info("Model available: %s", model_name)
        else:
            logger.info(
                "Model skipped (no API key): %s (set %s in .env)",
                model_name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        defaults=defaults,
        models=models,
        prompts=prompts,
        experts=experts,
        orchestrator=orchestrator,
        moderator=moderator,
        scoring=scoring,
        graph=graph,
        billing=billing,
        available_models=available_models,
    )
