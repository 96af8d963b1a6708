"""Persistence boundary for debates and their argument graphs.

Stores hand out copies. The orchestrator mutates debates only through
``update`` (read-modify-write under a per-debate lock) and ``append_round``.
"""

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from quorum.errors import DebateNotFound
from quorum.models import (
    ArgumentEdge,
    ArgumentGraph,
    ArgumentNode,
    ContextEntry,
    Debate,
    DebateContext,
    DebateStatus,
    Expert,
    FinalRankingEntry,
    Message,
    QualityMetrics,
    Round,
    SkippedTurn,
)

logger = logging.getLogger(__name__)


class DebateStore(ABC):
    """Abstract debate repository."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock(self, debate_id: str) -> asyncio.Lock:
        lock = self._locks.get(debate_id)
        if lock is None:
            lock = self._locks[debate_id] = asyncio.Lock()
        return lock

    @abstractmethod
    async def _read(self, debate_id: str) -> Debate | None:
        ...

    @abstractmethod
    async def _write(self, debate: Debate) -> None:
        ...

    @abstractmethod
    async def _remove(self, debate_id: str) -> bool:
        ...

    @abstractmethod
    async def _all(self) -> list[Debate]:
        ...

    @abstractmethod
    async def save_graph(self, debate_id: str, graph: ArgumentGraph) -> None:
        ...

    @abstractmethod
    async def load_graph(self, debate_id: str) -> ArgumentGraph | None:
        ...

    async def get(self, debate_id: str) -> Debate:
        debate = await self._read(debate_id)
        if debate is None:
            raise DebateNotFound(debate_id)
        return debate

    async def put(self, debate: Debate) -> None:
        async with self._lock(debate.id):
            await self._write(debate)

    async def delete(self, debate_id: str) -> bool:
        async with self._lock(debate_id):
            removed = await self._remove(debate_id)
        self._locks.pop(debate_id, None)
        return removed

    async def list(self, owner_id: str | None = None, status: DebateStatus | None = None) -> list[Debate]:
        debates = await self._all()
        return [
            d for d in sorted(debates, key=lambda d: (d.created_at or datetime.min, d.id))
            if (owner_id is None or d.owner_id == owner_id) and (status is None or d.status == status)
        ]

    async def update(self, debate_id: str, mutate: Callable[[Debate], None]) -> Debate:
        """Apply ``mutate`` to a fresh copy and persist it atomically."""
        async with self._lock(debate_id):
            debate = await self.get(debate_id)
            mutate(debate)
            await self._write(debate)
            return debate

    async def append_round(self, debate_id: str, rnd: Round) -> Debate:
        """Append a sealed round. Round numbers must be contiguous."""
        def _append(debate: Debate) -> None:
            expected = len(debate.rounds) + 1
            if rnd.number != expected:
                raise ValueError(f"Round {rnd.number} out of order for {debate_id}; expected {expected}")
            debate.rounds.append(copy.deepcopy(rnd))
            debate.total_cost_usd += sum(m.cost_usd for m in rnd.messages)

        return await self.update(debate_id, _append)


class InMemoryDebateStore(DebateStore):
    def __init__(self) -> None:
        super().__init__()
        self._debates: dict[str, Debate] = {}
        self._graphs: dict[str, ArgumentGraph] = {}

    async def _read(self, debate_id: str) -> Debate | None:
        debate = self._debates.get(debate_id)
        return copy.deepcopy(debate) if debate is not None else None

    async def _write(self, debate: Debate) -> None:
        self._debates[debate.id] = copy.deepcopy(debate)

    async def _remove(self, debate_id: str) -> bool:
        self._graphs.pop(debate_id, None)
        return self._debates.pop(debate_id, None) is not None

    async def _all(self) -> list[Debate]:
        return [copy.deepcopy(d) for d in self._debates.values()]

    async def save_graph(self, debate_id: str, graph: ArgumentGraph) -> None:
        self._graphs[debate_id] = copy.deepcopy(graph)

    async def load_graph(self, debate_id: str) -> ArgumentGraph | None:
        graph = self._graphs.get(debate_id)
        return copy.deepcopy(graph) if graph is not None else None


class JsonDebateStore(DebateStore):
    """One JSON file per debate under ``directory``."""

    def __init__(self, directory: Path) -> None:
        super().__init__()
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)

    def _path(self, debate_id: str) -> Path:
        return self._dir / f"{debate_id}.json"

    def _graph_path(self, debate_id: str) -> Path:
        return self._dir / f"{debate_id}.graph.json"

    def _dump(self, path: Path, payload: dict[str, Any]) -> None:
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)

    @staticmethod
    def _load(path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _unlink(self, debate_id: str) -> bool:
        self._graph_path(debate_id).unlink(missing_ok=True)
        path = self._path(debate_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _scan(self) -> list[Debate]:
        debates = []
        for path in sorted(self._dir.glob("*.json")):
            if path.name.endswith(".graph.json"):
                continue
            try:
                debates.append(debate_from_dict(json.loads(path.read_text(encoding="utf-8"))))
            except (json.JSONDecodeError, KeyError, ValueError) as exc:
                logger.warning("Skipping unreadable debate file %s: %s", path.name, exc)
        return debates

    # File I/O runs in worker threads

    async def _read(self, debate_id: str) -> Debate | None:
        payload = await asyncio.to_thread(self._load, self._path(debate_id))
        return debate_from_dict(payload) if payload is not None else None

    async def _write(self, debate: Debate) -> None:
        await asyncio.to_thread(self._dump, self._path(debate.id), to_dict(debate))

    async def _remove(self, debate_id: str) -> bool:
        return await asyncio.to_thread(self._unlink, debate_id)

    async def _all(self) -> list[Debate]:
        return await asyncio.to_thread(self._scan)

    async def save_graph(self, debate_id: str, graph: ArgumentGraph) -> None:
        await asyncio.to_thread(self._dump, self._graph_path(debate_id), to_dict(graph))

    async def load_graph(self, debate_id: str) -> ArgumentGraph | None:
        payload = await asyncio.to_thread(self._load, self._graph_path(debate_id))
        return graph_from_dict(payload) if payload is not None else None


# Serialization -----------------------------------------------------------

def _plain(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def to_dict(obj: Any) -> dict[str, Any]:
    return _plain(asdict(obj))


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _message(raw: dict) -> Message:
    return Message(**{**raw, "created_at": _dt(raw.get("created_at"))})


def _round(raw: dict) -> Round:
    return Round(
        number=raw["number"],
        messages=[_message(m) for m in raw.get("messages", [])],
        skipped=[SkippedTurn(**s) for s in raw.get("skipped", [])],
        consensus_score=raw.get("consensus_score"),
        sealed_at=_dt(raw.get("sealed_at")),
    )


def debate_from_dict(raw: dict) -> Debate:
    ctx = raw.get("context") or {}
    quality = raw.get("quality")
    ranking = raw.get("final_ranking")
    return Debate(
        id=raw["id"],
        owner_id=raw["owner_id"],
        question=raw["question"],
        context=DebateContext(
            background=ctx.get("background", ""),
            constraints=list(ctx.get("constraints", [])),
            additional=[ContextEntry(text=e["text"], added_at=_dt(e["added_at"])) for e in ctx.get("additional", [])],
            seed=ctx.get("seed", ""),
            assumptions=list(ctx.get("assumptions", [])),
        ),
        mode=raw.get("mode", "static"),
        status=DebateStatus(raw.get("status", "draft")),
        visibility=raw.get("visibility", "private"),
        max_rounds=raw.get("max_rounds", 5),
        category=raw.get("category"),
        experts=[Expert(**e) for e in raw.get("experts", [])],
        rounds=[_round(r) for r in raw.get("rounds", [])],
        final_ranking=[FinalRankingEntry(**e) for e in ranking] if ranking is not None else None,
        consensus_score=raw.get("consensus_score", 0.0),
        quality=QualityMetrics(**quality) if quality else None,
        total_cost_usd=raw.get("total_cost_usd", 0.0),
        created_at=_dt(raw.get("created_at")),
        started_at=_dt(raw.get("started_at")),
        completed_at=_dt(raw.get("completed_at")),
        metadata=dict(raw.get("metadata", {})),
        error=raw.get("error"),
    )


def graph_from_dict(raw: dict) -> ArgumentGraph:
    return ArgumentGraph(
        nodes=[ArgumentNode(**n) for n in raw.get("nodes", [])],
        edges=[ArgumentEdge(**e) for e in raw.get("edges", [])],
        rounds_covered=raw.get("rounds_covered", 0),
        strongest_node=raw.get("strongest_node"),
        most_contested_node=raw.get("most_contested_node"),
    )
