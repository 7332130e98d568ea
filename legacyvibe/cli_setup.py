"""Configuration commands: ``lv config show|set-llm|set-github|set-analysis|reset``."""

from __future__ import annotations

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import config, config_manager

console = Console()

ALL_PROVIDERS = list(config_manager.DEFAULT_CONFIGS)

config_app = typer.Typer(
    help="⚙️  Configuration: LLM provider, GitHub token, and analysis limits.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def print_success(message: str):
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str):
    console.print(f"[red]✗ {message}[/red]")


@config_app.command("show")
def show_config(
    reveal: bool = typer.Option(False, "--reveal", help="Print secrets unmasked."),
):
    """Show the effective configuration (file values plus environment fallbacks)."""
    settings = config_manager.load_settings()
    sections = config_manager.settings_as_dict(settings, redact=not reveal)

    for name, values in sections.items():
        table = Table(title=f"[{name}]", show_header=False, title_justify="left")
        table.add_column("key", style="cyan")
        table.add_column("value")
        for key, value in values.items():
            table.add_row(key, str(value) if value != "" else "[dim](not set)[/dim]")
        console.print(table)

    exists = "" if config.CONFIG_FILE.exists() else " [dim](not created yet)[/dim]"
    console.print(f"Config file: {config.CONFIG_FILE}{exists}")


@config_app.command("set-llm")
def set_llm(
    provider: str = typer.Argument(..., help="LLM provider: anthropic, openai, openrouter, groq, ollama"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name (uses provider default if not set)."),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-k", help="API key for cloud providers."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", "-e", help="Custom endpoint URL."),
):
    """Switch LLM provider.

    Examples:
        lv config set-llm anthropic -k YOUR_API_KEY
        lv config set-llm openrouter -k YOUR_API_KEY -m anthropic/claude-sonnet-4.5
        lv config set-llm ollama -m qwen2.5-coder:7b
    """
    provider = provider.lower().strip()
    if provider not in ALL_PROVIDERS:
        print_error(f"Unknown provider '{provider}'. Choose from: {', '.join(ALL_PROVIDERS)}")
        raise typer.Exit(code=1)

    current = config_manager.load_config()
    defaults = config_manager.get_provider_config(provider)
    resolved_model = model or defaults.get("model", "")
    resolved_endpoint = endpoint or defaults.get("endpoint", "")

    resolved_api_key = api_key or ""
    if not resolved_api_key and current.get("provider") == provider and current.get("api_key"):
        resolved_api_key = current["api_key"]
        console.print(f"[dim]Reusing existing API key for {provider}[/dim]")

    if not config_manager.save_config(provider, resolved_model, resolved_api_key, resolved_endpoint):
        print_error("Failed to save configuration!")
        raise typer.Exit(code=1)

    print_success(f"LLM provider set to: {provider}")
    console.print(f"  Model:    [cyan]{resolved_model}[/cyan]")
    if resolved_endpoint:
        console.print(f"  Endpoint: {resolved_endpoint}")
    if provider != "ollama" and not resolved_api_key:
        console.print("[yellow]No API key stored; ANTHROPIC_API_KEY is used for anthropic.[/yellow]")


@config_app.command("set-github")
def set_github(
    token: str = typer.Option(..., "--token", "-t", prompt=True, hide_input=True, help="GitHub personal access token."),
    api_url: str = typer.Option(config.DEFAULT_GITHUB_API, "--api-url", help="GitHub API base URL (for GHES)."),
):
    """Store the GitHub token used to list and read repositories."""
    if not config_manager.save_section("github", {"token": token, "api_url": api_url}):
        print_error("Failed to save configuration!")
        raise typer.Exit(code=1)
    print_success("GitHub credentials saved.")


@config_app.command("set-analysis")
def set_analysis(
    max_tokens_per_chunk: Optional[int] = typer.Option(None, help="Token budget per repository chunk."),
    max_key_files: Optional[int] = typer.Option(None, help="Key files sampled per chunk."),
    max_file_size_kb: Optional[int] = typer.Option(None, help="Skip sampled files larger than this."),
    max_workers: Optional[int] = typer.Option(None, help="Parallel chunk analyses."),
    default_user: Optional[str] = typer.Option(None, help="User id snapshots are stored under."),
):
    """Update analysis limits; unspecified values are left unchanged."""
    section = dict(config_manager.load_full_config().get("analysis", {}))
    updates = {
        "max_tokens_per_chunk": max_tokens_per_chunk,
        "max_key_files": max_key_files,
        "max_file_size_kb": max_file_size_kb,
        "max_workers": max_workers,
        "default_user": default_user,
    }
    section.update({k: v for k, v in updates.items() if v is not None})
    if not config_manager.save_section("analysis", section):
        print_error("Failed to save configuration!")
        raise typer.Exit(code=1)
    print_success("Analysis settings saved.")


@config_app.command("reset")
def reset_config(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
):
    """Delete the configuration file and fall back to defaults."""
    if not config.CONFIG_FILE.exists():
        console.print("[yellow]No configuration file to remove.[/yellow]")
        return
    if not yes and not typer.confirm(f"Remove {config.CONFIG_FILE}?", default=False):
        console.print("[dim]Cancelled.[/dim]")
        return
    config.CONFIG_FILE.unlink()
    print_success("Configuration reset to defaults.")
