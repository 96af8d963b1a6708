"""Expert panel: static default panel or dynamic selection by specialization."""

import logging

from config.config_loader import AppConfig, ExpertConfig
from quorum.claims import tokenize
from quorum.errors import InvalidInput
from quorum.models import Expert

logger = logging.getLogger(__name__)

MODES = ("static", "dynamic")


def expert_from_config(cfg: ExpertConfig) -> Expert:
    return Expert(
        id=cfg.id,
        name=cfg.name,
        specializations=list(cfg.specializations),
        persona=cfg.persona,
        model=cfg.model,
        temperature=cfg.temperature,
    )


class ExpertPanel:
    """Read-only catalogue of configured experts."""

    def __init__(self, config: AppConfig) -> None:
        self._experts = {e.id: expert_from_config(e) for e in config.experts}
        self._default = list(config.defaults.default_panel)
        self._size = config.defaults.panel_size

    def all(self) -> list[Expert]:
        return list(self._experts.values())

    def get(self, expert_id: str) -> Expert:
        try:
            return self._experts[expert_id]
        except KeyError:
            raise InvalidInput(f"Unknown expert: {expert_id}") from None

    def resolve(self, expert_ids: list[str]) -> list[Expert]:
        """Experts for explicit ids, in the given order. Rejects duplicates."""
        if len(set(expert_ids)) != len(expert_ids):
            raise InvalidInput(f"Duplicate experts in panel: {', '.join(expert_ids)}")
        return [self.get(i) for i in expert_ids]

    def default_panel(self) -> list[Expert]:
        ids = self._default or list(self._experts)[: self._size]
        return self.resolve(ids)

    def match(self, question: str, size: int | None = None, category: str | None = None) -> list[Expert]:
        """Rank experts by specialization hits in the question.

        Ties keep configuration order. Slots left after the matches are
        filled from the default panel.
        """
        size = size or self._size
        terms = tokenize(f"{question} {category or ''}")
        lowered = f"{question} {category or ''}".lower()

        scored: list[tuple[int, int, Expert]] = []
        for order, expert in enumerate(self._experts.values()):
            hits = sum(
                1 for tag in expert.specializations
                if tag.lower() in terms or (" " in tag and tag.lower() in lowered)
            )
            if hits:
                scored.append((-hits, order, expert))
        scored.sort(key=lambda item: (item[0], item[1]))

        chosen = [expert for _, _, expert in scored[:size]]
        for expert in self.default_panel():
            if len(chosen) >= size:
                break
            if expert not in chosen:
                chosen.append(expert)

        logger.info("Dynamic panel: %s", ", ".join(e.id for e in chosen))
        return chosen

    def select(
        self,
        mode: str,
        question: str,
        expert_ids: list[str] | None = None,
        size: int | None = None,
        category: str | None = None,
    ) -> list[Expert]:
        """Explicit ids win, then the mode decides."""
        if mode not in MODES:
            raise InvalidInput(f"Unknown panel mode: {mode}")
        if expert_ids:
            return self.resolve(expert_ids)
        if mode == "dynamic":
            return self.match(question, size, category)
        return self.default_panel()
