"""Tests for quorum/graph.py."""

from datetime import datetime, timezone

import pytest

from config.config_loader import GraphConfig
from quorum.graph import (
    GraphCache,
    build_argument_graph,
    filter_by_expert,
    filter_by_strength,
    filter_by_type,
)
from quorum.models import MODERATOR_ID, ArgumentGraph, Round
from tests.conftest import make_expert, make_message

SEALED = datetime(2026, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def experts():
    return [make_expert("a", "Alpha"), make_expert("b", "Bravo")]


@pytest.fixture
def rounds():
    return [
        Round(
            number=1,
            messages=[
                make_message("a", "POSITION: Expand to Germany\nCONFIDENCE: 0.8", 1, 1),
                make_message("b", "POSITION: Expand to France\nCONFIDENCE: 0.6", 1, 2),
            ],
            sealed_at=SEALED,
        ),
        Round(
            number=2,
            messages=[
                make_message("a", "I disagree with Bravo on France.\nPOSITION: Expand to Germany", 2, 1),
                make_message("b", "I agree with Alpha now.\nPOSITION: Expand to Germany", 2, 2),
                make_message(MODERATOR_ID, "MODERATOR: Because time is short, conclude.", 2, 3),
            ],
            sealed_at=SEALED,
        ),
    ]


def _edge(graph: ArgumentGraph, source: str, target: str, edge_type: str) -> bool:
    return any(e.source == source and e.target == target and e.type == edge_type for e in graph.edges)


def test_graph_nodes_skip_moderator(rounds, experts):
    graph = build_argument_graph(rounds, experts)
    assert graph.rounds_covered == 2
    assert all(n.expert_id != MODERATOR_ID for n in graph.nodes)
    assert {n.id for n in graph.nodes} == {"r1.1:n0", "r1.2:n0", "r2.1:n0", "r2.1:n1", "r2.2:n0", "r2.2:n1"}


def test_graph_node_types(rounds, experts):
    graph = build_argument_graph(rounds, experts)
    types = {n.id: n.type for n in graph.nodes}
    assert types["r1.1:n0"] == "conclusion"
    assert types["r2.1:n0"] == "objection"
    assert types["r2.2:n0"] == "support"


def test_graph_position_edges(rounds, experts):
    graph = build_argument_graph(rounds, experts)
    assert _edge(graph, "r2.1:n1", "r1.2:n0", "disagrees_with")
    assert _edge(graph, "r2.2:n1", "r1.1:n0", "agrees_with")


def test_graph_citation_and_attack_edges(rounds, experts):
    graph = build_argument_graph(rounds, experts)
    assert _edge(graph, "r2.1:n0", "r1.2:n0", "cites")
    assert _edge(graph, "r2.1:n0", "r1.2:n0", "attacks")
    assert _edge(graph, "r2.2:n0", "r1.1:n0", "cites")


def test_graph_edges_never_link_own_messages_or_go_forward(rounds, experts):
    graph = build_argument_graph(rounds, experts)
    by_id = {n.id: n for n in graph.nodes}
    for edge in graph.edges:
        source, target = by_id[edge.source], by_id[edge.target]
        if source.message_id != target.message_id:
            assert source.expert_id != target.expert_id
            assert target.round < source.round


def test_graph_metadata(rounds, experts):
    graph = build_argument_graph(rounds, experts)
    assert graph.strongest_node == "r1.1:n0"
    assert graph.most_contested_node == "r1.2:n0"


def test_graph_premise_supports_conclusion_in_same_message(experts):
    rnd = Round(
        number=1,
        messages=[make_message("a", "Because demand is rising, margins hold. Therefore we should expand.", 1, 1)],
        sealed_at=SEALED,
    )
    graph = build_argument_graph([rnd], experts)
    assert _edge(graph, "r1.1:n0", "r1.1:n1", "supports")


def test_graph_ignores_unsealed_rounds(rounds, experts):
    rounds[1].sealed_at = None
    graph = build_argument_graph(rounds, experts)
    assert graph.rounds_covered == 1
    assert all(n.round == 1 for n in graph.nodes)


def test_graph_is_deterministic(rounds, experts):
    assert build_argument_graph(rounds, experts) == build_argument_graph(rounds, experts, GraphConfig())


def test_graph_empty():
    graph = build_argument_graph([], [])
    assert graph.nodes == [] and graph.edges == []
    assert graph.strongest_node is None and graph.most_contested_node is None


def test_filter_by_expert_keeps_internal_edges_only(rounds, experts):
    graph = filter_by_expert(build_argument_graph(rounds, experts), "a")
    assert {n.expert_id for n in graph.nodes} == {"a"}
    ids = {n.id for n in graph.nodes}
    assert all(e.source in ids and e.target in ids for e in graph.edges)


def test_filter_by_type_and_strength(rounds, experts):
    graph = build_argument_graph(rounds, experts)
    assert {n.type for n in filter_by_type(graph, "conclusion").nodes} == {"conclusion"}
    strong = filter_by_strength(graph, 0.6)
    assert {n.id for n in strong.nodes} == {"r1.1:n0", "r1.2:n0"}


def test_graph_cache_invalidates_on_round_count(rounds, experts):
    cache = GraphCache()
    graph = build_argument_graph(rounds, experts)
    cache.put("d1", graph)
    assert cache.get("d1", 2) is graph
    assert cache.get("d1", 3) is None
    cache.invalidate("d1")
    assert cache.get("d1", 2) is None
