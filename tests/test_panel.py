"""Tests for quorum/panel.py."""

import pytest

from quorum.errors import InvalidInput
from quorum.panel import ExpertPanel


@pytest.fixture
def panel(sample_app_config) -> ExpertPanel:
    return ExpertPanel(sample_app_config)


def test_all_keeps_config_order(panel):
    assert [e.id for e in panel.all()] == ["a", "b", "c", "d"]


def test_get_unknown_expert(panel):
    with pytest.raises(InvalidInput):
        panel.get("zzz")


def test_resolve_keeps_given_order(panel):
    assert [e.id for e in panel.resolve(["c", "a"])] == ["c", "a"]


def test_resolve_rejects_duplicates(panel):
    with pytest.raises(InvalidInput):
        panel.resolve(["a", "a"])


def test_default_panel(panel):
    assert [e.id for e in panel.default_panel()] == ["a", "b", "c"]


def test_default_panel_falls_back_to_first_experts(sample_app_config):
    sample_app_config.defaults.default_panel = []
    sample_app_config.defaults.panel_size = 2
    assert [e.id for e in ExpertPanel(sample_app_config).default_panel()] == ["a", "b"]


def test_match_ranks_by_specialization_hits(panel):
    chosen = panel.match("Will hiring slow down our culture and our pricing?", size=2)
    assert [e.id for e in chosen] == ["d", "b"]


def test_match_pads_from_default_panel(panel):
    chosen = panel.match("Is compliance a blocker here?", size=3)
    assert [e.id for e in chosen] == ["c", "a", "b"]


def test_match_uses_category(panel):
    chosen = panel.match("What should we do next year?", size=1, category="finance")
    assert [e.id for e in chosen] == ["b"]


def test_select_explicit_ids_win(panel):
    assert [e.id for e in panel.select("dynamic", "pricing question", ["d"])] == ["d"]


def test_select_static_uses_default(panel):
    assert [e.id for e in panel.select("static", "pricing question")] == ["a", "b", "c"]


def test_select_unknown_mode(panel):
    with pytest.raises(InvalidInput):
        panel.select("random", "pricing question")
