"""Argument graph builder: claims and relations extracted from sealed rounds.

Deterministic. The same sealed transcript always yields the same nodes and
edges, so the result is cached per debate until another round is sealed.
"""

import logging
from dataclasses import dataclass, field

from config.config_loader import GraphConfig
from quorum.claims import (
    classify_sentence,
    expresses_disagreement,
    has_citation_phrase,
    has_evidence,
    jaccard,
    mentioned_names,
    normalize_option,
    parse_stance,
    split_sentences,
    strip_marker,
    tokenize,
)
from quorum.models import (
    MODERATOR_ID,
    ArgumentEdge,
    ArgumentGraph,
    ArgumentNode,
    Expert,
    Message,
    Round,
)

logger = logging.getLogger(__name__)

_CITE_STRENGTH = 0.6


@dataclass
class _NodeInfo:
    node: ArgumentNode
    tokens: set[str]
    option_key: str | None = None      # set for position nodes only


@dataclass
class _BuildState:
    infos: list[_NodeInfo] = field(default_factory=list)
    edges: list[ArgumentEdge] = field(default_factory=list)


def sealed_rounds(rounds: list[Round]) -> list[Round]:
    return [r for r in rounds if r.sealed_at is not None]


def _node_strength(sentence: str, confidence: float | None) -> float:
    if confidence is not None:
        return round(confidence, 3)
    strength = 0.5
    if has_evidence(sentence):
        strength += 0.3
    if len(sentence.split()) >= 12:
        strength += 0.1
    return round(min(1.0, strength), 3)


def _extract_nodes(message: Message, round_number: int) -> list[_NodeInfo]:
    stance = parse_stance(message.content)
    infos: list[_NodeInfo] = []
    for sentence in split_sentences(message.content):
        node_type = classify_sentence(sentence)
        if node_type is None:
            continue
        content = strip_marker(sentence)
        if not content:
            continue
        is_position = sentence.lstrip("* ").upper().startswith("POSITION")
        node = ArgumentNode(
            id=f"{message.id}:n{len(infos)}",
            type=node_type,
            expert_id=message.author_id,
            round=round_number,
            content=content,
            strength=_node_strength(sentence, stance.confidence if is_position and stance else None),
            message_id=message.id,
        )
        infos.append(_NodeInfo(
            node=node,
            tokens=tokenize(content),
            option_key=normalize_option(content) if is_position else None,
        ))
    return infos


def _link_within_message(infos: list[_NodeInfo], round_number: int, edges: list[ArgumentEdge]) -> None:
    for i, info in enumerate(infos):
        if info.node.type != "premise":
            continue
        target = next((later for later in infos[i + 1:] if later.node.type == "conclusion"), None)
        if target is not None:
            edges.append(ArgumentEdge(
                source=info.node.id,
                target=target.node.id,
                type="supports",
                strength=info.node.strength,
                round=round_number,
            ))


def _latest_by_expert(earlier: list[_NodeInfo], positions_only: bool) -> dict[str, _NodeInfo]:
    latest: dict[str, _NodeInfo] = {}
    for info in earlier:
        if positions_only and info.option_key is None:
            continue
        latest[info.node.expert_id] = info
    return latest


def _most_similar(info: _NodeInfo, earlier: list[_NodeInfo], threshold: float) -> tuple[_NodeInfo, float] | None:
    best: tuple[_NodeInfo, float] | None = None
    for candidate in earlier:
        score = jaccard(info.tokens, candidate.tokens)
        if score >= threshold and (best is None or score > best[1]):
            best = (candidate, score)
    return best


def _link_across_messages(
    infos: list[_NodeInfo],
    earlier: list[_NodeInfo],
    message_text: str,
    names: dict[str, str],
    threshold: float,
    round_number: int,
    edges: list[ArgumentEdge],
) -> None:
    if not infos or not earlier:
        return
    author = infos[0].node.expert_id
    others = [e for e in earlier if e.node.expert_id != author]
    if not others:
        return

    latest_positions = _latest_by_expert(others, positions_only=True)
    latest_any = _latest_by_expert(others, positions_only=False)
    named_in_message = set(mentioned_names(message_text, names))

    for info in infos:
        node = info.node

        if info.option_key is not None:
            for expert_id, prior in latest_positions.items():
                if prior.option_key == info.option_key:
                    edge_type = "agrees_with"
                elif expert_id in named_in_message or expresses_disagreement(message_text):
                    edge_type = "disagrees_with"
                else:
                    continue
                edges.append(ArgumentEdge(
                    source=node.id,
                    target=prior.node.id,
                    type=edge_type,
                    strength=round(min(node.strength, prior.node.strength), 3),
                    round=round_number,
                ))

        cited = [e for e in mentioned_names(node.content, names) if e != author and e in latest_any]
        if cited:
            for expert_id in cited:
                edges.append(ArgumentEdge(
                    source=node.id,
                    target=latest_any[expert_id].node.id,
                    type="cites",
                    strength=_CITE_STRENGTH,
                    round=round_number,
                ))
        elif has_citation_phrase(node.content):
            match = _most_similar(info, others, threshold)
            if match is not None:
                edges.append(ArgumentEdge(
                    source=node.id,
                    target=match[0].node.id,
                    type="cites",
                    strength=_CITE_STRENGTH,
                    round=round_number,
                ))

        if node.type in ("support", "objection"):
            match = _most_similar(info, others, threshold)
            if match is not None:
                target, score = match
                edges.append(ArgumentEdge(
                    source=node.id,
                    target=target.node.id,
                    type="supports" if node.type == "support" else "attacks",
                    strength=round(min(1.0, 0.5 + score), 3),
                    round=round_number,
                ))


def _with_metadata(nodes: list[ArgumentNode], edges: list[ArgumentEdge], rounds_covered: int) -> ArgumentGraph:
    strongest = None
    for node in nodes:
        if strongest is None or node.strength > strongest.strength:
            strongest = node

    contested_counts: dict[str, int] = {}
    for edge in edges:
        if edge.type in ("attacks", "disagrees_with"):
            contested_counts[edge.target] = contested_counts.get(edge.target, 0) + 1
    most_contested = None
    best = 0
    for node in nodes:
        count = contested_counts.get(node.id, 0)
        if count > best:
            most_contested, best = node.id, count

    return ArgumentGraph(
        nodes=nodes,
        edges=edges,
        rounds_covered=rounds_covered,
        strongest_node=strongest.id if strongest else None,
        most_contested_node=most_contested,
    )


def build_argument_graph(
    rounds: list[Round],
    experts: list[Expert],
    config: GraphConfig | None = None,
) -> ArgumentGraph:
    """Build the argument graph of all sealed rounds.

    Moderator messages contribute no nodes. Cross-message edges only point
    from a later round to an earlier one and never between an expert's own
    messages.
    """
    config = config or GraphConfig()
    names = {e.id: e.name for e in experts}
    sealed = sealed_rounds(rounds)
    state = _BuildState()

    for rnd in sealed:
        earlier = list(state.infos)
        for message in rnd.messages:
            if message.author_id == MODERATOR_ID:
                continue
            infos = _extract_nodes(message, rnd.number)
            _link_within_message(infos, rnd.number, state.edges)
            _link_across_messages(
                infos, earlier, message.content, names,
                config.similarity_threshold, rnd.number, state.edges,
            )
            state.infos.extend(infos)

    nodes = [info.node for info in state.infos]
    logger.debug("Argument graph: %d nodes, %d edges over %d rounds", len(nodes), len(state.edges), len(sealed))
    return _with_metadata(nodes, state.edges, len(sealed))


def _filtered(graph: ArgumentGraph, keep: list[ArgumentNode]) -> ArgumentGraph:
    kept_ids = {n.id for n in keep}
    edges = [e for e in graph.edges if e.source in kept_ids and e.target in kept_ids]
    return _with_metadata(keep, edges, graph.rounds_covered)


def filter_by_expert(graph: ArgumentGraph, expert_id: str) -> ArgumentGraph:
    return _filtered(graph, [n for n in graph.nodes if n.expert_id == expert_id])


def filter_by_type(graph: ArgumentGraph, node_type: str) -> ArgumentGraph:
    return _filtered(graph, [n for n in graph.nodes if n.type == node_type])


def filter_by_strength(graph: ArgumentGraph, min_strength: float) -> ArgumentGraph:
    return _filtered(graph, [n for n in graph.nodes if n.strength >= min_strength])


class GraphCache:
    """Per-debate graph cache, invalidated when the sealed round count changes."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[int, ArgumentGraph]] = {}

    def get(self, debate_id: str, sealed_count: int) -> ArgumentGraph | None:
        entry = self._entries.get(debate_id)
        if entry is None or entry[0] != sealed_count:
            return None
        return entry[1]

    def put(self, debate_id: str, graph: ArgumentGraph) -> None:
        self._entries[debate_id] = (graph.rounds_covered, graph)

    def invalidate(self, debate_id: str) -> None:
        self._entries.pop(debate_id, None)
