"""Tests for quorum/output.py."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from quorum.models import (
    MODERATOR_ID,
    Debate,
    DebateContext,
    DebateStatus,
    FinalRankingEntry,
    QualityMetrics,
    Round,
    SkippedTurn,
)
from quorum.output import _preview, _slug, render_transcript, save_to_file
from tests.conftest import make_expert, make_message, turn


def test_slug_basic():
    assert _slug("Should we use YAML or JSON?") == "should-we-use-yaml-or-json"


def test_slug_max_len():
    long_text = "a" * 100
    assert len(_slug(long_text)) <= 40


def test_slug_special_chars():
    result = _slug("API vs. SDK (2024)")
    assert "." not in result
    assert "(" not in result
    assert ")" not in result


def test_preview_truncates():
    assert _preview("one two three", words=2) == "one two..."
    assert _preview("one two", words=2) == "one two"


@pytest.fixture
def completed_debate() -> Debate:
    rnd = Round(
        number=1,
        messages=[
            make_message("a", turn("Expand to Germany", 0.8), 1, 1),
            make_message("b", turn("Expand to Germany", 0.6), 1, 2),
        ],
        skipped=[SkippedTurn("c", "timeout", "no reply within 90s")],
        consensus_score=0.67,
        sealed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    moderator = make_message(MODERATOR_ID, "MODERATOR: Go deeper.", 1, 3)
    moderator.intervention_type = "deepen"
    rnd.messages.append(moderator)
    return Debate(
        id="abc123",
        owner_id="alice",
        question="Should we expand to Germany or France first?",
        context=DebateContext(background="B2B vendor", constraints=["No new hires"]),
        status=DebateStatus.COMPLETED,
        max_rounds=3,
        experts=[make_expert("a", "Alpha"), make_expert("b", "Bravo"), make_expert("c", "Charlie")],
        rounds=[rnd],
        final_ranking=[FinalRankingEntry(
            option="Expand to Germany", score=90.0, supporters=["a", "b"],
            pros=["Bigger market"], cons=["Costly"], confidence=0.7, reasoning="Backed by Alpha, Bravo",
        )],
        consensus_score=0.67,
        quality=QualityMetrics(overall=0.6, depth=0.4, balance=0.8, originality=0.6),
        total_cost_usd=0.01,
    )


def test_render_transcript_sections(completed_debate):
    content = render_transcript(completed_debate, credits=4)
    assert "# Quorum Debate:" in content
    assert "**Panel:** Alpha, Bravo, Charlie" in content
    assert "**Mode:** static" in content
    assert "(4 credits)" in content
    assert "## Background" in content
    assert "- No new hires" in content
    assert "## Round 1 (consensus 0.67)" in content
    assert "### Alpha" in content
    assert "> **Moderator (deepen):** MODERATOR: Go deeper." in content
    assert "*Charlie skipped: timeout*" in content
    assert "1. **Expand to Germany** (90.0)" in content
    assert "   - Pro: Bigger market" in content
    assert "## Quality" in content


def test_render_transcript_failed_debate(completed_debate):
    completed_debate.status = DebateStatus.FAILED
    completed_debate.final_ranking = None
    completed_debate.error = "No expert responded in round 2"
    content = render_transcript(completed_debate)
    assert "## Failure" in content
    assert "No expert responded in round 2" in content
    assert "## Final Ranking" not in content


def test_save_to_file_creates_file(tmp_path: Path, completed_debate):
    saved = save_to_file(completed_debate, tmp_path / "output")
    assert saved.exists()
    assert saved.suffix == ".md"


def test_save_to_file_creates_output_dir(tmp_path: Path, completed_debate):
    output_dir = tmp_path / "nested" / "output"
    assert not output_dir.exists()
    save_to_file(completed_debate, output_dir)
    assert output_dir.exists()


def test_save_to_file_filename_has_slug(tmp_path: Path, completed_debate):
    saved = save_to_file(completed_debate, tmp_path)
    assert "germany" in saved.name


def test_save_to_file_slug_override(tmp_path: Path, completed_debate):
    saved = save_to_file(completed_debate, tmp_path, slug_override="custom")
    assert saved.name.endswith("_custom.md")
