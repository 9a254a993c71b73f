"""
message-clearance CLI - Screen a message before you send it.

Commands:
    message-clearance analyze [TEXT]        Analyze text (or --file, or stdin)
    message-clearance key set|show|clear    Manage the OpenRouter API key
    message-clearance model list|set        Choose the model
    message-clearance history list|show|remove|clear

Ctrl-C during an analysis cancels the in-flight request.
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import AVAILABLE_MODELS, PipelineConfig, load_config
from .llm.client import RequestExecutor
from .llm.retry import RetryOrchestrator
from .models import AnalysisResult, Verdict
from .security.sensitive_info import detect_sensitive_info
from .security.validators import ValidationError, validate_not_empty
from .session import AnalysisSession, SubmissionRejected
from .storage.history import HistoryStore
from .storage.settings import SettingsStore

app = typer.Typer(help="Check a message's tone before you hit send.")
key_app = typer.Typer(help="Manage the OpenRouter API key.")
model_app = typer.Typer(help="Choose which model analyzes your messages.")
history_app = typer.Typer(help="Browse past analyses.")
app.add_typer(key_app, name="key")
app.add_typer(model_app, name="model")
app.add_typer(history_app, name="history")

console = Console()
err_console = Console(stderr=True)

# Replaced in tests with an httpx.MockTransport.
_transport: httpx.AsyncBaseTransport | None = None

VERDICT_STYLES = {
    Verdict.GOOD_TO_SEND: (
        "green", "CLEARED", "Your message looks good! It reads clearly and professionally."
    ),
    Verdict.NEEDS_EDIT: (
        "yellow", "REVIEW", "Your message could use some adjustments. Check the suggestions below."
    ),
    Verdict.HIGH_RISK: (
        "red", "FLAGGED", "Caution! This message has potential issues that could cause misunderstandings."
    ),
}


def _configure_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else os.environ.get("MESSAGE_CLEARANCE_LOG_LEVEL", "WARNING")
    level = getattr(logging, level_name.upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Check a message's tone before you hit send."""
    _configure_logging(verbose)


def _stores(config: PipelineConfig) -> tuple[SettingsStore, HistoryStore]:
    return SettingsStore(config.db_path), HistoryStore(config.db_path)


class _ModelOverride:
    """Stored settings with a one-run model, leaving the saved choice alone."""

    def __init__(self, settings: SettingsStore, model: str):
        self._settings = settings
        self.model = model

    @property
    def api_key(self) -> str:
        return self._settings.api_key


# =============================================================================
# RENDERING
# =============================================================================


def _render_result(result: AnalysisResult, warnings: list[str]) -> None:
    color, stamp, blurb = VERDICT_STYLES[result.verdict]
    body = f"[bold {color}]{stamp}[/bold {color}]\n{blurb}"
    if result.verdict_reason:
        body += f"\n\n{result.verdict_reason}"
    console.print(Panel(body, title="Verdict", border_style=color))

    if warnings:
        console.print("[bold yellow]Sensitive info detected:[/bold yellow]")
        for warning in warnings:
            console.print(f"  - {warning}")

    if result.risks:
        table = Table(title="Risks")
        table.add_column("Phrase", style="bold")
        table.add_column("Issue")
        table.add_column("Why")
        for risk in result.risks:
            table.add_row(risk.text, risk.issue, risk.why)
        console.print(table)

    if result.missing:
        console.print("[bold]Missing:[/bold]")
        for item in result.missing:
            console.print(f"  - {item}")

    for style in ("short", "warm", "confident"):
        console.print(
            Panel(getattr(result.rewrites, style), title=f"Rewrite: {style}", border_style="blue")
        )

    if result.suggested_opener:
        console.print(f"[bold]Suggested opener:[/bold] {result.suggested_opener}")


# =============================================================================
# ANALYZE
# =============================================================================


async def _run_analysis(session: AnalysisSession, text: str) -> AnalysisResult | None:
    try:
        with console.status("Scanning message..."):
            return await session.submit(text)
    except asyncio.CancelledError:
        session.cancel()
        raise


def _read_text(text: str | None, file: Path | None) -> str:
    if file is not None:
        return file.read_text(encoding="utf-8")
    if text is not None:
        return text
    if not sys.stdin.isatty():
        return sys.stdin.read()
    return ""


@app.command()
def analyze(
    text: str = typer.Argument(None, help="Message to analyze (reads stdin if omitted)"),
    file: Path = typer.Option(None, "--file", "-f", exists=True, dir_okay=False, help="Read the message from a file"),
    model: str = typer.Option(None, "--model", "-m", help="Override the selected model for this run"),
    safety_check: bool = typer.Option(True, "--safety-check/--no-safety-check", help="Scan for personal data"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw analysis as JSON"),
):
    """Analyze a message's tone and get three rewrites."""
    config = load_config()
    settings, history = _stores(config)
    source = settings
    if model is not None:
        try:
            source = _ModelOverride(settings, validate_not_empty(model, field_name="model"))
        except ValidationError as e:
            err_console.print(f"[bold red]Error:[/bold red] {e}")
            raise typer.Exit(1)

    message = _read_text(text, file)
    warnings = detect_sensitive_info(message) if safety_check else []

    orchestrator = RetryOrchestrator(RequestExecutor(config, transport=_transport))
    session = AnalysisSession(source, orchestrator, history=history, config=config)

    try:
        result = asyncio.run(_run_analysis(session, message))
    except SubmissionRejected as e:
        err_console.print(f"[bold red]Error:[/bold red] {e.error.message}")
        if e.error.type == "NO_API_KEY":
            err_console.print("Run: message-clearance key set sk-or-...")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        session.cancel()
        err_console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(130)
    finally:
        session.close()

    if session.has_error:
        err_console.print(f"[bold red]Error:[/bold red] {session.error.message}")
        if session.error.needs_new_key:
            err_console.print("Update your key: message-clearance key set sk-or-...")
        raise typer.Exit(1)

    if not session.has_result:
        err_console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(130)

    if as_json:
        console.print_json(json.dumps(result.to_wire()))
    else:
        _render_result(result, warnings)


# =============================================================================
# KEY
# =============================================================================


@key_app.command("set")
def key_set(key: str = typer.Argument(..., help="OpenRouter API key (sk-or-...)")):
    """Store the API key locally."""
    settings, _ = _stores(load_config())
    settings.set_api_key(key)
    if not settings.has_api_key:
        console.print("[yellow]Empty key given; stored key removed.[/yellow]")
        return
    if not settings.is_valid_format:
        console.print("[yellow]Warning: key does not look like an OpenRouter key (sk-or-...). Saved anyway.[/yellow]")
    console.print(f"[green]Saved[/green] {settings.masked_key}")


@key_app.command("show")
def key_show():
    """Show the stored key, masked."""
    settings, _ = _stores(load_config())
    if not settings.has_api_key:
        console.print("No API key configured.")
        raise typer.Exit(1)
    console.print(settings.masked_key)


@key_app.command("clear")
def key_clear():
    """Remove the stored key."""
    settings, _ = _stores(load_config())
    if settings.clear_api_key():
        console.print("[green]API key removed.[/green]")
    else:
        console.print("No stored API key.")


# =============================================================================
# MODEL
# =============================================================================


@model_app.command("list")
def model_list():
    """List the recommended models."""
    settings, _ = _stores(load_config())
    current = settings.model

    table = Table(title="Models")
    table.add_column("", width=1)
    table.add_column("Id", style="bold", no_wrap=True)
    table.add_column("Name")
    table.add_column("Tier")
    table.add_column("Description")
    for model_id, info in AVAILABLE_MODELS.items():
        marker = "*" if model_id == current else ""
        table.add_row(marker, model_id, info["name"], info["tier"], info["description"])
    console.print(table)

    if current not in AVAILABLE_MODELS:
        console.print(f"Current (custom): {current}")


@model_app.command("set")
def model_set(
    model: str = typer.Argument(..., help="Model id, e.g. openai/gpt-4o"),
    custom: bool = typer.Option(False, "--custom", help="Allow ids not in the recommended list"),
):
    """Select the model used for analysis."""
    settings, _ = _stores(load_config())
    try:
        settings.set_model(model, allow_custom=custom)
    except ValidationError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Model set to[/green] {settings.model}")


# =============================================================================
# HISTORY
# =============================================================================


@history_app.command("list")
def history_list():
    """List past analyses, newest first."""
    _, history = _stores(load_config())
    entries = history.list()
    if not entries:
        console.print("No history yet.")
        return

    table = Table(title=f"History ({len(entries)}/{history.max_items})")
    table.add_column("Id", style="bold", no_wrap=True)
    table.add_column("When")
    table.add_column("Verdict")
    table.add_column("Message")
    for entry in reversed(entries):
        preview = entry.original_message.replace("\n", " ")
        if len(preview) > 60:
            preview = preview[:57] + "..."
        color = VERDICT_STYLES[entry.result.verdict][0]
        table.add_row(
            entry.id,
            entry.timestamp[:19],
            f"[{color}]{entry.result.verdict.value}[/{color}]",
            preview,
        )
    console.print(table)


@history_app.command("show")
def history_show(entry_id: str = typer.Argument(..., help="History entry id")):
    """Show a past analysis."""
    config = load_config()
    settings, history = _stores(config)
    orchestrator = RetryOrchestrator(RequestExecutor(config, transport=_transport))
    session = AnalysisSession(settings, orchestrator, history=history, config=config)
    try:
        if not session.load_from_history(entry_id):
            err_console.print(f"[bold red]Error:[/bold red] No history entry {entry_id}")
            raise typer.Exit(1)
        console.print(Panel(session.current_text, title="Original message"))
        _render_result(session.result, [])
    finally:
        session.close()


@history_app.command("remove")
def history_remove(entry_id: str = typer.Argument(..., help="History entry id")):
    """Delete one past analysis."""
    _, history = _stores(load_config())
    if not history.remove(entry_id):
        err_console.print(f"[bold red]Error:[/bold red] No history entry {entry_id}")
        raise typer.Exit(1)
    console.print(f"[green]Removed[/green] {entry_id}")


@history_app.command("clear")
def history_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete all past analyses."""
    if not yes and not typer.confirm("Delete all history?"):
        raise typer.Exit(1)
    _, history = _stores(load_config())
    count = history.clear()
    console.print(f"[green]Cleared {count} entries.[/green]")


if __name__ == "__main__":
    app()
