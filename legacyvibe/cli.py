"""Typer-based CLI for LegacyVibe blueprint analysis."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Tuple

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__, config_manager
from .chunker import create_repository_chunks
from .cli_setup import config_app
from .llm import LLMResponseError
from .models import BlueprintValidationError, DriftReport, ImpactReport
from .onboarding import USER_LEVELS, LearningPathError
from .orchestrator import BlueprintNotFoundError, BlueprintOrchestrator
from .providers import GitHubProvider, LocalRepositoryProvider, RepositoryError
from .storage import BlueprintStore
from .synthesizer import SynthesisError

console = Console()

app = typer.Typer(
    help="🧭 LegacyVibe: business-logic blueprints, impact, drift, and debt trends for your repositories.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(config_app, name="config")

RISK_STYLE = {"High": "red", "Med": "yellow", "Low": "green", "Critical": "bold red", "Medium": "yellow"}
TREND_STYLE = {"increasing": "red", "decreasing": "green", "stable": "white", "new": "cyan"}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"LegacyVibe v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """LegacyVibe: turn a repository into a graph of business features."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _split_repo(full_name: str) -> Tuple[str, str]:
    parts = full_name.strip().strip("/").split("/")
    if len(parts) != 2 or not all(parts):
        raise typer.BadParameter(f"Expected OWNER/REPO, got '{full_name}'.")
    return parts[0], parts[1]


def _fail(message: str) -> None:
    console.print(f"[red]✗ {message}[/red]")
    raise typer.Exit(code=1)


def _risk(value: str) -> str:
    style = RISK_STYLE.get(value, "white")
    return f"[{style}]{value}[/{style}]"


def _open(provider=None) -> Tuple[BlueprintOrchestrator, str]:
    settings = config_manager.load_settings()
    store = BlueprintStore()
    return BlueprintOrchestrator(store, provider=provider, settings=settings), settings.analysis.default_user


# ---------------------------------------------------------------------------
# analyze / chunks
# ---------------------------------------------------------------------------

@app.command("analyze")
def analyze(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    path: Optional[Path] = typer.Option(
        None, "--path", "-p", exists=True, file_okay=False, help="Analyze a local checkout instead of GitHub."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Re-analyze even if a snapshot exists."),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id to store the snapshot under."),
):
    """Synthesize a business-logic blueprint and store it as a new snapshot."""
    owner, name = _split_repo(repo)
    settings = config_manager.load_settings()
    provider = LocalRepositoryProvider(path) if path else GitHubProvider(settings.github)
    orchestrator, default_user = _open(provider)
    user_id = user or default_user

    def progress(step: str, message: str) -> None:
        console.print(f"[dim]{step:>10}[/dim]  {message}")

    try:
        result = orchestrator.analyze(user_id, owner, name, force=force, progress=progress)
    except (RepositoryError, SynthesisError, BlueprintValidationError, LLMResponseError) as exc:
        _fail(str(exc))
    finally:
        orchestrator.store.close()

    blueprint = result.blueprint
    table = Table(title=f"Blueprint for {owner}/{name}" + (" (cached)" if result.cached else ""))
    table.add_column("Feature", style="bold")
    table.add_column("Risk")
    table.add_column("Files", justify="right")
    table.add_column("Description")
    for node in blueprint.nodes:
        table.add_row(node.label, _risk(node.risk), str(len(node.files)), node.description)
    console.print(table)
    console.print(f"{len(blueprint.nodes)} features, {len(blueprint.edges)} connections "
                  f"[dim](analyzed {result.snapshot.analyzed_at})[/dim]")

    if result.drift is not None and not result.drift.is_empty():
        _print_drift(result.drift)


@app.command("chunks")
def chunks(
    path: Path = typer.Argument(..., exists=True, file_okay=False, help="Local repository checkout."),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", help="Token budget per chunk."),
):
    """Preview how a repository would be split for analysis (no LLM calls)."""
    settings = config_manager.load_settings()
    budget = max_tokens or settings.analysis.max_tokens_per_chunk
    files = LocalRepositoryProvider(path).list_files()
    result = create_repository_chunks(files, budget)

    if not result:
        console.print("[yellow]No analyzable files found.[/yellow]")
        return

    table = Table(title=f"{len(result)} chunks (budget {budget:,} tokens)")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Files", justify="right")
    table.add_column("Tokens", justify="right")
    for c in result:
        table.add_row(c.id, c.name, str(len(c.files)), f"{c.estimated_tokens:,}")
    console.print(table)


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------

def _print_impact(report: ImpactReport, cached: bool) -> None:
    header = (
        f"Risk score [bold]{report.risk_score}[/bold]/100  {_risk(report.risk_level)}"
        f"   affected features: {report.total_affected}" + ("  [dim](cached)[/dim]" if cached else "")
    )
    console.print(Panel(header, title=f"Impact of {report.target_file}"))

    for title, nodes in (
        ("Direct", report.direct_impact),
        ("Indirect", report.indirect_impact),
        ("Downstream", report.downstream_impact),
    ):
        if not nodes:
            continue
        table = Table(title=title, title_justify="left")
        table.add_column("Feature", style="bold")
        table.add_column("Risk")
        table.add_column("Reason")
        for node in nodes:
            table.add_row(node.label, _risk(node.risk), node.reason)
        console.print(table)

    console.print("[bold]Recommendations[/bold]")
    for line in report.recommendations:
        console.print(f"  {line}")


@app.command("impact")
def impact(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    file: str = typer.Argument(..., help="File path to evaluate."),
    exact: bool = typer.Option(False, "--exact", help="Match file paths exactly instead of by substring."),
    enhance: bool = typer.Option(False, "--enhance", help="Ask the LLM for technical reasons per feature."),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore the cached report."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
    user: Optional[str] = typer.Option(None, "--user", "-u"),
):
    """Show which features a change to FILE would touch."""
    _split_repo(repo)
    orchestrator, default_user = _open()
    try:
        result = orchestrator.impact(
            user or default_user,
            repo,
            file,
            enhance=enhance,
            match_mode="exact" if exact else "substring",
            refresh=refresh,
        )
    except BlueprintNotFoundError as exc:
        _fail(str(exc))
    finally:
        orchestrator.store.close()

    if as_json:
        typer.echo(json.dumps({**result.report.to_dict(), "cached": result.cached}, indent=2))
        return
    _print_impact(result.report, result.cached)


def _print_drift(report: DriftReport) -> None:
    if report.is_empty():
        console.print("[green]No architectural drift detected.[/green]")
        return
    console.print("[bold]Architectural drift[/bold]")
    for node in report.added_nodes:
        console.print(f"  [green]+[/green] {node.label} ({_risk(node.risk)})")
    for node in report.removed_nodes:
        console.print(f"  [red]-[/red] {node.label}")
    for change in report.modified_nodes:
        console.print(f"  [yellow]~[/yellow] {change.new.label}")
    for change in report.risk_changes:
        console.print(f"    risk {change.node}: {_risk(change.old_risk)} → {_risk(change.new_risk)}")
    for edge in report.added_edges:
        console.print(f"  [green]+[/green] {edge.source} → {edge.target}")
    for edge in report.removed_edges:
        console.print(f"  [red]-[/red] {edge.source} → {edge.target}")


@app.command("drift")
def drift(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    user: Optional[str] = typer.Option(None, "--user", "-u"),
):
    """Compare the two most recent snapshots of a repository."""
    _split_repo(repo)
    orchestrator, default_user = _open()
    try:
        report = orchestrator.drift(user or default_user, repo)
    except BlueprintNotFoundError as exc:
        _fail(str(exc))
    finally:
        orchestrator.store.close()
    _print_drift(report)


@app.command("heatmap")
def heatmap(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Number of snapshots to include."),
    user: Optional[str] = typer.Option(None, "--user", "-u"),
):
    """Technical-debt trends across recent snapshots."""
    _split_repo(repo)
    orchestrator, default_user = _open()
    try:
        data = orchestrator.heatmap(user or default_user, repo, limit=limit)
    finally:
        orchestrator.store.close()

    summary = data.summary
    if summary.total_scans == 0:
        console.print("[yellow]No snapshots yet. Run 'lv analyze' first.[/yellow]")
        return

    console.print(Panel(
        f"Scans: {summary.total_scans}   Overall: [bold]{summary.overall_trend}[/bold]   "
        f"Score delta: {summary.risk_score_delta:+d}\n"
        f"High risk added: {summary.high_risk_added}   removed: {summary.high_risk_removed}",
        title=f"Debt heatmap for {repo}",
    ))

    table = Table()
    table.add_column("Feature", style="bold")
    table.add_column("Current")
    table.add_column("Previous")
    table.add_column("Trend")
    for trend in data.trends:
        style = TREND_STYLE[trend.trend]
        table.add_row(
            trend.node_label,
            _risk(trend.current_risk),
            _risk(trend.previous_risk) if trend.previous_risk else "-",
            f"[{style}]{trend.trend}[/{style}]",
        )
    console.print(table)

    if summary.most_degraded_nodes:
        console.print(f"Most degraded: {', '.join(summary.most_degraded_nodes)}")
    if summary.most_improved_nodes:
        console.print(f"Most improved: {', '.join(summary.most_improved_nodes)}")


@app.command("history")
def history(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    limit: int = typer.Option(10, "--limit", "-n", min=1),
    user: Optional[str] = typer.Option(None, "--user", "-u"),
):
    """List stored snapshots, most recent first."""
    _split_repo(repo)
    orchestrator, default_user = _open()
    try:
        data = orchestrator.heatmap(user or default_user, repo, limit=limit)
    finally:
        orchestrator.store.close()

    if not data.snapshots:
        console.print("[yellow]No snapshots yet.[/yellow]")
        return

    table = Table(title=f"Snapshots of {repo}")
    table.add_column("Analyzed at")
    table.add_column("Features", justify="right")
    table.add_column("High", justify="right", style="red")
    table.add_column("Med", justify="right", style="yellow")
    table.add_column("Low", justify="right", style="green")
    table.add_column("Score", justify="right")
    for snap in data.snapshots:
        table.add_row(
            snap.analyzed_at,
            str(snap.total_nodes),
            str(snap.high_risk_count),
            str(snap.med_risk_count),
            str(snap.low_risk_count),
            str(snap.risk_score),
        )
    console.print(table)


@app.command("onboard")
def onboard(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    level: str = typer.Option("intermediate", "--level", "-l", help="beginner, intermediate, or advanced."),
    focus: Optional[str] = typer.Option(None, "--focus", help="Area to focus the path on."),
    force: bool = typer.Option(False, "--force", "-f", help="Regenerate even if cached."),
    user: Optional[str] = typer.Option(None, "--user", "-u"),
):
    """Generate a step-by-step learning path through the latest blueprint."""
    _split_repo(repo)
    if level not in USER_LEVELS:
        raise typer.BadParameter(f"--level must be one of {', '.join(USER_LEVELS)}")

    orchestrator, default_user = _open()
    try:
        result = orchestrator.onboarding(user or default_user, repo, level, focus, force=force)
    except (BlueprintNotFoundError, LearningPathError, LLMResponseError) as exc:
        _fail(str(exc))
    finally:
        orchestrator.store.close()

    path = result.path
    console.print(Panel(
        path.overview,
        title=f"Onboarding: {repo} ({path.user_level})" + (" [cached]" if result.cached else ""),
        subtitle=f"{path.total_steps} steps, ~{path.estimated_total_time} min",
    ))
    for step in sorted(path.learning_path, key=lambda s: s.order):
        console.print(f"[bold]{step.order}. {step.title}[/bold] [dim]({step.type}, {step.estimated_time} min, "
                      f"{step.node_name})[/dim]")
        if step.description:
            console.print(f"   {step.description}")
        for objective in step.objectives:
            console.print(f"   • {objective}")
    if path.key_takeaways:
        console.print("\n[bold]Key takeaways[/bold]")
        for item in path.key_takeaways:
            console.print(f"  ✓ {item}")


# ---------------------------------------------------------------------------
# Repository management
# ---------------------------------------------------------------------------

@app.command("repos")
def repos(
    remote: bool = typer.Option(False, "--remote", help="List repositories visible to the GitHub token."),
    user: Optional[str] = typer.Option(None, "--user", "-u"),
):
    """List analyzed repositories (or GitHub repositories with --remote)."""
    if remote:
        settings = config_manager.load_settings()
        if not settings.github.token:
            _fail("No GitHub token configured. Use 'lv config set-github' or GITHUB_TOKEN.")
        try:
            listing = GitHubProvider(settings.github).list_repositories()
        except RepositoryError as exc:
            _fail(str(exc))
        for item in listing:
            lock = "🔒 " if item["private"] else ""
            console.print(f"{lock}{item['full_name']}")
        return

    orchestrator, default_user = _open()
    try:
        rows = orchestrator.store.list_repositories(user or default_user)
    finally:
        orchestrator.store.close()

    if not rows:
        console.print("No repositories analyzed yet.")
        return

    table = Table()
    table.add_column("Repository", style="bold")
    table.add_column("Scans", justify="right")
    table.add_column("Last analyzed")
    for row in rows:
        table.add_row(row["repo_full_name"], str(row["scans"]), row["last_analyzed"])
    console.print(table)


@app.command("forget")
def forget(
    repo: str = typer.Argument(..., help="Repository as OWNER/REPO."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
    user: Optional[str] = typer.Option(None, "--user", "-u"),
):
    """Delete every snapshot and cached report for a repository."""
    _split_repo(repo)
    if not yes and not typer.confirm(f"Delete all snapshots of {repo}?", default=False):
        console.print("[dim]Cancelled.[/dim]")
        return

    orchestrator, default_user = _open()
    try:
        deleted = orchestrator.store.delete_repository(user or default_user, repo)
    finally:
        orchestrator.store.close()

    if not deleted:
        _fail(f"No snapshots stored for {repo}.")
    console.print(f"[green]✓[/green] Removed {deleted} snapshot(s) of {repo}.")
