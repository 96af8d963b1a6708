"""Rich console output and markdown file save for debates."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from quorum.models import (
    MODERATOR_ID,
    ArgumentGraph,
    Debate,
    Message,
    ReadinessAssessment,
    Round,
)

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLES = {
    "draft": "dim",
    "pending": "yellow",
    "in_progress": "cyan",
    "completed": "green",
    "failed": "red",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 50) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def _names(debate: Debate) -> dict[str, str]:
    names = {e.id: e.name for e in debate.experts}
    names[MODERATOR_ID] = "Moderator"
    return names


def print_assessment(assessment: ReadinessAssessment) -> None:
    """Print a readiness assessment: dimension table, assumptions, questions."""
    console.print(Rule(f"[bold cyan]Readiness: {assessment.debate_type}[/bold cyan]"))
    table = Table(show_header=True, header_style="bold")
    table.add_column("Dimension")
    table.add_column("Weight", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Matched", style="dim")
    for dim in assessment.dimensions:
        style = {"present": "green", "partial": "yellow"}.get(dim.status, "red")
        table.add_row(
            dim.name,
            f"{dim.weight:.2f}",
            f"[{style}]{dim.score}[/{style}]",
            ", ".join(dim.matched),
        )
    console.print(table)
    console.print(
        f"Overall: [bold]{assessment.overall_score}[/bold] "
        f"({assessment.readiness_level}) -> [bold]{assessment.recommended_action}[/bold]"
    )
    console.print(Text(assessment.summary, style="italic"))

    if assessment.assumptions:
        console.print("\n[bold]Assumptions[/bold]")
        for a in assessment.assumptions:
            console.print(f"  [dim]{a.id}[/dim] {a.text} (confidence {a.confidence:.1f})")
    if assessment.questions:
        console.print("\n[bold]Questions[/bold]")
        for q in assessment.questions:
            marker = "[red]![/red]" if q.priority == "critical" else " "
            console.print(f" {marker}[dim]{q.id}[/dim] {q.text}")
            if q.options:
                console.print(f"      options: {' | '.join(q.options)}", style="dim")


def print_round_summary(rnd: Round, names: dict[str, str]) -> None:
    """Print a brief summary of one sealed round."""
    score = f"consensus {rnd.consensus_score:.2f}" if rnd.consensus_score is not None else ""
    console.print(Rule(f"[bold cyan]Round {rnd.number}[/bold cyan] [dim]{score}[/dim]"))
    for message in rnd.messages:
        moderator = message.author_id == MODERATOR_ID
        console.print(
            Panel(
                Text(_preview(message.content)),
                title=f"[bold]{names.get(message.author_id, message.author_id)}[/bold]"
                + (f" ({message.intervention_type})" if moderator else ""),
                subtitle=f"{message.tokens_used} tokens" if not moderator else None,
                border_style="magenta" if moderator else "dim",
            )
        )
    for skipped in rnd.skipped:
        console.print(
            f"  [yellow]skipped[/yellow] {names.get(skipped.expert_id, skipped.expert_id)}: "
            f"{skipped.reason} {escape(skipped.detail[:100])}"
        )


def print_ranking(debate: Debate, credits: int | None = None) -> None:
    """Print the final ranking and scores of a finished debate."""
    names = _names(debate)
    console.print(Rule("[bold green]Final Ranking[/bold green]"))
    if debate.final_ranking:
        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("Option")
        table.add_column("Score", justify="right")
        table.add_column("Supporters")
        table.add_column("Confidence", justify="right")
        for i, entry in enumerate(debate.final_ranking, start=1):
            table.add_row(
                str(i),
                escape(entry.option),
                f"{entry.score:.1f}",
                ", ".join(names.get(s, s) for s in entry.supporters),
                f"{entry.confidence:.2f}",
            )
        console.print(table)
    else:
        console.print(f"[red]No ranking[/red] {debate.error or ''}")

    quality = debate.quality
    parts = [
        f"Status: {debate.status.value}",
        f"Rounds: {len(debate.rounds)}",
        f"Consensus: {debate.consensus_score:.2f}",
    ]
    if quality is not None:
        parts.append(
            f"Quality: {quality.overall:.2f} (depth {quality.depth:.2f}, "
            f"balance {quality.balance:.2f}, originality {quality.originality:.2f})"
        )
    parts.append(f"Cost: ${debate.total_cost_usd:.4f}")
    if credits is not None:
        parts.append(f"Credits: {credits}")
    console.print(Text(" | ".join(parts), style="dim"))


def print_debate_list(debates: list[Debate]) -> None:
    if not debates:
        console.print("No debates.")
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", no_wrap=True)
    table.add_column("Status")
    table.add_column("Rounds", justify="right")
    table.add_column("Consensus", justify="right")
    table.add_column("Question")
    for d in debates:
        style = _STATUS_STYLES.get(d.status.value, "")
        status = d.status.value + (" (paused)" if d.metadata.get("paused") else "")
        table.add_row(
            d.id,
            f"[{style}]{status}[/{style}]" if style else status,
            f"{len(d.rounds)}/{d.max_rounds}",
            f"{d.consensus_score:.2f}",
            escape(d.question[:60]) + ("..." if len(d.question) > 60 else ""),
        )
    console.print(table)


def print_graph(graph: ArgumentGraph, names: dict[str, str], limit: int = 20) -> None:
    """Print argument graph counts, key nodes and the first edges."""
    by_id = {n.id: n for n in graph.nodes}
    console.print(Rule("[bold cyan]Argument Graph[/bold cyan]"))
    console.print(
        f"{len(graph.nodes)} nodes, {len(graph.edges)} edges over {graph.rounds_covered} rounds"
    )
    for label, node_id in (("Strongest", graph.strongest_node), ("Most contested", graph.most_contested_node)):
        node = by_id.get(node_id) if node_id else None
        if node is not None:
            console.print(
                f"[bold]{label}:[/bold] {names.get(node.expert_id, node.expert_id)} "
                f"(round {node.round}, {node.type}) {escape(node.content[:100])}"
            )
    if graph.edges:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Source")
        table.add_column("Relation")
        table.add_column("Target")
        table.add_column("Strength", justify="right")
        for edge in graph.edges[:limit]:
            table.add_row(edge.source, edge.type, edge.target, f"{edge.strength:.2f}")
        console.print(table)


def _message_block(message: Message, names: dict[str, str]) -> list[str]:
    if message.author_id == MODERATOR_ID:
        return [f"> **Moderator ({message.intervention_type}):** {message.content}", ""]
    return [
        f"### {names.get(message.author_id, message.author_id)}",
        "",
        message.content.strip(),
        "",
        f"*Tokens: {message.tokens_used} | Cost: ${message.cost_usd:.4f}*",
        "",
    ]


def render_transcript(debate: Debate, credits: int | None = None) -> str:
    """Full debate transcript as markdown."""
    names = _names(debate)
    lines: list[str] = [
        f"# Quorum Debate: {debate.question[:80]}",
        "",
        f"**ID:** {debate.id}",
        f"**Status:** {debate.status.value}",
        f"**Panel:** {', '.join(e.name for e in debate.experts)}",
        f"**Mode:** {debate.mode}",
        f"**Rounds:** {len(debate.rounds)} of {debate.max_rounds}",
        f"**Consensus:** {debate.consensus_score:.2f}",
        f"**Cost:** ${debate.total_cost_usd:.4f}" + (f" ({credits} credits)" if credits is not None else ""),
        "",
        "## Question",
        "",
        debate.question,
        "",
    ]
    if debate.context.background:
        lines += ["## Background", "", debate.context.background, ""]
    if debate.context.constraints:
        lines += ["## Constraints", ""] + [f"- {c}" for c in debate.context.constraints] + [""]
    lines += ["---", ""]

    for rnd in debate.rounds:
        score = f" (consensus {rnd.consensus_score:.2f})" if rnd.consensus_score is not None else ""
        lines += [f"## Round {rnd.number}{score}", ""]
        for message in rnd.messages:
            lines += _message_block(message, names)
        for skipped in rnd.skipped:
            lines += [f"*{names.get(skipped.expert_id, skipped.expert_id)} skipped: {skipped.reason}*", ""]

    if debate.final_ranking:
        lines += ["## Final Ranking", ""]
        for i, entry in enumerate(debate.final_ranking, start=1):
            lines.append(f"{i}. **{entry.option}** ({entry.score:.1f}) - {entry.reasoning}")
            lines += [f"   - Pro: {p}" for p in entry.pros]
            lines += [f"   - Con: {c}" for c in entry.cons]
        lines.append("")
    elif debate.error:
        lines += ["## Failure", "", debate.error, ""]

    if debate.quality is not None:
        q = debate.quality
        lines += [
            "## Quality",
            "",
            f"Overall {q.overall:.2f} | Depth {q.depth:.2f} | Balance {q.balance:.2f} | Originality {q.originality:.2f}",
            "",
        ]
    return "\n".join(lines)


def save_to_file(
    debate: Debate,
    output_dir: Path,
    credits: int | None = None,
    slug_override: str | None = None,
) -> Path:
    """Save the full debate transcript as a markdown file.

    Args:
        debate: The debate to save, finished or not.
        output_dir: Directory to save the file in.
        credits: Billed credits to show next to the USD cost.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the question text.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(debate.question)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    filepath.write_text(render_transcript(debate, credits), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
