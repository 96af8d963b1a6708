"""Click CLI: readiness checks, running debates and inspecting stored ones."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from quorum.billing import CreditPolicy, debate_credits
from quorum.dimensions import DEBATE_TYPES
from quorum.errors import QuorumError
from quorum.graph import filter_by_expert, filter_by_strength, filter_by_type
from quorum.healthcheck import run_health_checks
from quorum.models import Debate, DebateStatus, RefinementResult, Round
from quorum.orchestrator import DebateOrchestrator
from quorum.output import (
    print_assessment,
    print_debate_list,
    print_graph,
    print_ranking,
    print_round_summary,
    save_to_file,
)
from quorum.panel import MODES, ExpertPanel
from quorum.providers.base import AgentPort
from quorum.providers.routing import RoutingPort, build_ports
from quorum.providers.scripted import ScriptedPort
from quorum.questions import parse_question_file
from quorum.readiness import analyze, refine
from quorum.store import JsonDebateStore

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _fail(message: str, code: int = 1) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    sys.exit(code)


def _orchestrator(config: AppConfig, port: AgentPort | None = None, on_round_sealed=None) -> DebateOrchestrator:
    return DebateOrchestrator(
        store=JsonDebateStore(config.defaults.store_dir),
        port=port or RoutingPort({}),
        panel=ExpertPanel(config),
        config=config,
        on_round_sealed=on_round_sealed,
    )


def _check_and_filter_ports(ports: dict[str, AgentPort]) -> dict[str, AgentPort]:
    """Run health checks, print results, and ask what to do on failures.

    Returns the working ports. Exits if the user declines to continue or no
    model passes.
    """
    console.print("\n[bold]Checking models...[/bold]")
    results: dict[str, tuple[bool, str]] = asyncio.run(run_health_checks(ports))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {escape(short_err)}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return ports

    working = {n: p for n, p in ports.items() if n not in failed_names}
    if not working:
        _fail("No models passed the health check.")

    console.print(f"\n[yellow]{len(failed_names)} model(s) failed:[/yellow] {', '.join(failed_names)}")
    console.print(f"Working models: {', '.join(sorted(working))}")
    if not click.confirm("Continue with working models only?", default=True):
        sys.exit(0)

    console.print()
    return working


def _parse_answers(pairs: tuple[str, ...]) -> dict[str, str | list[str]]:
    answers: dict[str, str | list[str]] = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected ID=VALUE, got '{pair}'", param_hint="--answer")
        key, value = (part.strip() for part in pair.split("=", 1))
        previous = answers.get(key)
        if previous is None:
            answers[key] = value
        elif isinstance(previous, list):
            previous.append(value)
        else:
            answers[key] = [previous, value]
    return answers


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Path to settings.yaml (default: bundled config)")
@click.option("--owner", envvar="QUORUM_OWNER", default="local", show_default=True,
              help="Owner id used for debates (env: QUORUM_OWNER)")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: str | None, owner: str) -> None:
    """Quorum -- expert panel debates for business decisions.

    \b
    Examples:
      quorum analyze "Should we raise prices for our SaaS product next quarter?"
      quorum debate "Should we expand to Germany or France first?" --rounds 3
      quorum debate --file question.md --dry-run
      quorum list --status completed
      quorum show 3f2a9c1b7d4e
    """
    # Reconfigure stdout/stderr to UTF-8 on Windows so model responses containing
    # Unicode chars don't crash the ANSI render path.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(Path(config_path)) if config_path else load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {escape(str(exc))}")
        sys.exit(1)

    ctx.obj = {"config": config, "owner": owner}


@cli.command("analyze")
@click.argument("text")
@click.option("--type", "debate_type", type=click.Choice(DEBATE_TYPES), default=None,
              help="Debate type (default: inferred from keywords)")
def analyze_cmd(text: str, debate_type: str | None) -> None:
    """Score how ready TEXT is for a debate."""
    try:
        assessment = analyze(text, debate_type)
    except QuorumError as exc:
        _fail(str(exc))
    print_assessment(assessment)


@cli.command("refine")
@click.argument("text")
@click.option("--confirm", "confirmed", multiple=True, help="Assumption id to confirm")
@click.option("--reject", "rejected", multiple=True, help="Assumption id to reject")
@click.option("--answer", "answers", multiple=True, help="Question answer as ID=VALUE (repeatable)")
@click.option("--context", "additional", default=None, help="Free-text additional context")
@click.option("--type", "debate_type", type=click.Choice(DEBATE_TYPES), default=None)
def refine_cmd(
    text: str,
    confirmed: tuple[str, ...],
    rejected: tuple[str, ...],
    answers: tuple[str, ...],
    additional: str | None,
    debate_type: str | None,
) -> None:
    """Add confirmations and answers to TEXT and re-score it."""
    responses = {a: True for a in confirmed}
    responses.update({a: False for a in rejected})
    try:
        result = refine(text, responses, _parse_answers(answers), additional, debate_type)
    except QuorumError as exc:
        _fail(str(exc))
    console.print("[bold]Enhanced context[/bold]")
    console.print(result.enhanced_context, markup=False)
    console.print()
    print_assessment(result.assessment)


async def _run_debate(
    config: AppConfig,
    owner: str,
    port: AgentPort,
    question: str,
    background: str,
    constraints: list[str],
    expert_ids: list[str] | None,
    rounds: int,
    mode: str,
    refinement: RefinementResult | None = None,
) -> Debate:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:

        def on_round_sealed(debate: Debate, rnd: Round) -> None:
            progress.print(
                f"[green]OK[/green] Round {rnd.number} sealed "
                f"({len(rnd.messages)} messages, consensus {rnd.consensus_score:.2f})"
            )

        orchestrator = _orchestrator(config, port, on_round_sealed)
        debate = await orchestrator.create(owner, question, background=background, constraints=constraints)
        if refinement is not None:
            await orchestrator.apply_readiness(owner, debate.id, refinement)
        debate = await orchestrator.configure(owner, debate.id, expert_ids=expert_ids, max_rounds=rounds, mode=mode)

        console.print(f"\n[bold cyan]Quorum[/bold cyan] -- {len(debate.experts)} experts, up to {rounds} rounds ({mode} mode)")
        console.print(f"Panel: {escape(', '.join(e.name for e in debate.experts))}")
        console.print(f"Question: [italic]{escape(question[:80])}{'...' if len(question) > 80 else ''}[/italic]\n")

        progress.add_task("Running debate rounds...", total=None)
        await orchestrator.start(owner, debate.id)
        return await orchestrator.wait(debate.id)


@cli.command("debate")
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True, dir_okay=False),
              help="Read question from .md file (frontmatter: rounds, experts, mode, background, constraints, confirm, answers)")
@click.option("--experts", default=None, help="Comma-separated expert ids, overrides panel selection")
@click.option("--rounds", default=None, type=int, help="Maximum rounds (default: from config)")
@click.option("--mode", type=click.Choice(MODES), default=None, help="Panel mode (default: from config)")
@click.option("--background", default=None, help="Background context for the experts")
@click.option("--confirm", "confirmed", multiple=True, help="Readiness assumption id to confirm (repeatable)")
@click.option("--answer", "answers", multiple=True, help="Readiness answer as ID=VALUE (repeatable)")
@click.option("--dry-run", is_flag=True, default=False, help="Use scripted offline experts, no API calls")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.pass_context
def debate_cmd(
    ctx: click.Context,
    question: str | None,
    question_file: str | None,
    experts: str | None,
    rounds: int | None,
    mode: str | None,
    background: str | None,
    confirmed: tuple[str, ...],
    answers: tuple[str, ...],
    dry_run: bool,
    skip_health_check: bool,
    output_path: str | None,
) -> None:
    """Run a full debate on QUESTION and save the transcript."""
    config: AppConfig = ctx.obj["config"]
    owner: str = ctx.obj["owner"]

    meta = None
    if question_file:
        try:
            meta = parse_question_file(Path(question_file))
        except QuorumError as exc:
            _fail(str(exc))
        question_text = meta.question
    elif question:
        question_text = question
    else:
        _fail("Provide a QUESTION argument or --file.")

    # CLI flags win; frontmatter only fills in when the flag is not set
    effective_rounds = rounds if rounds is not None else (meta.rounds if meta and meta.rounds else config.defaults.max_rounds)
    effective_mode = mode or (meta.mode if meta and meta.mode else config.defaults.mode)
    expert_ids = [e.strip() for e in experts.split(",") if e.strip()] if experts else (meta.experts if meta else None)
    effective_background = background if background is not None else (meta.background if meta else "")
    constraints = meta.constraints if meta else []
    effective_output = Path(output_path) if output_path else config.defaults.output_dir

    # Readiness responses seed the debate context; CLI values extend frontmatter ones
    confirm_ids = list(meta.confirm if meta else []) + list(confirmed)
    answer_map = dict(meta.answers if meta else {})
    answer_map.update(_parse_answers(answers))
    refinement = None
    if confirm_ids or answer_map:
        try:
            refinement = refine(question_text, {a: True for a in confirm_ids}, answer_map)
        except QuorumError as exc:
            _fail(str(exc))
        console.print(
            f"Readiness after refinement: {refinement.assessment.overall_score}/100 "
            f"({refinement.assessment.recommended_action})"
        )

    if dry_run:
        port: AgentPort = ScriptedPort()
    else:
        ports = build_ports(config)
        if not ports:
            _fail("No models available. Check API keys in .env or use --dry-run.")
        if not skip_health_check:
            ports = _check_and_filter_ports(ports)
        port = RoutingPort(ports, fallback=sorted(ports)[0])

    try:
        result = asyncio.run(_run_debate(
            config=config,
            owner=owner,
            port=port,
            question=question_text,
            background=effective_background,
            constraints=constraints,
            expert_ids=expert_ids,
            rounds=effective_rounds,
            mode=effective_mode,
            refinement=refinement,
        ))
    except QuorumError as exc:
        _fail(str(exc))

    names = {e.id: e.name for e in result.experts}
    for rnd in result.rounds:
        print_round_summary(rnd, names)
    credits = debate_credits(result, CreditPolicy.from_config(config.billing))
    print_ranking(result, credits)

    saved_path = save_to_file(result, effective_output, credits)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    if result.status == DebateStatus.FAILED:
        sys.exit(2)


@cli.command("list")
@click.option("--status", type=click.Choice([s.value for s in DebateStatus]), default=None)
@click.pass_context
def list_cmd(ctx: click.Context, status: str | None) -> None:
    """List stored debates."""
    orchestrator = _orchestrator(ctx.obj["config"])
    debates = asyncio.run(orchestrator.list(ctx.obj["owner"], DebateStatus(status) if status else None))
    print_debate_list(debates)


@cli.command("show")
@click.argument("debate_id")
@click.pass_context
def show_cmd(ctx: click.Context, debate_id: str) -> None:
    """Show rounds and ranking of a stored debate."""
    config: AppConfig = ctx.obj["config"]
    orchestrator = _orchestrator(config)
    try:
        debate = asyncio.run(orchestrator.get_state(ctx.obj["owner"], debate_id))
    except QuorumError as exc:
        _fail(str(exc))
    names = {e.id: e.name for e in debate.experts}
    for rnd in debate.rounds:
        print_round_summary(rnd, names)
    print_ranking(debate, debate_credits(debate, CreditPolicy.from_config(config.billing)))


@cli.command("graph")
@click.argument("debate_id")
@click.option("--expert", "expert_id", default=None, help="Only nodes from this expert id")
@click.option("--type", "node_type", type=click.Choice(["premise", "conclusion", "objection", "support"]),
              default=None)
@click.option("--min-strength", type=float, default=None, help="Only nodes at or above this strength")
@click.option("--limit", type=int, default=20, show_default=True, help="Edges to print")
@click.pass_context
def graph_cmd(
    ctx: click.Context,
    debate_id: str,
    expert_id: str | None,
    node_type: str | None,
    min_strength: float | None,
    limit: int,
) -> None:
    """Show the argument graph of a stored debate."""
    orchestrator = _orchestrator(ctx.obj["config"])
    owner = ctx.obj["owner"]

    async def _load():
        debate = await orchestrator.get_state(owner, debate_id)
        return debate, await orchestrator.get_argument_graph(owner, debate_id)

    try:
        debate, graph = asyncio.run(_load())
    except QuorumError as exc:
        _fail(str(exc))

    if expert_id:
        graph = filter_by_expert(graph, expert_id)
    if node_type:
        graph = filter_by_type(graph, node_type)
    if min_strength is not None:
        graph = filter_by_strength(graph, min_strength)
    print_graph(graph, {e.id: e.name for e in debate.experts}, limit)


if __name__ == "__main__":
    cli()
