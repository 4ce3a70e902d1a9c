"""auracle command line."""

from __future__ import annotations

import asyncio
import json
import uuid
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from auracle.config import AGENT_MODES, ConfigManager
from auracle.core.brain import Brain
from auracle.core.types import DEFAULT_SESSION_ID, Request, Response
from auracle.errors import AuracleError, InterventionRequiredError
from auracle.logging_utils import configure_logging
from auracle.status import ConsoleStatusReporter

app = typer.Typer(name="auracle", help="Terminal-resident AI coding assistant.", add_completion=False)
console = Console()


def _load_brain(config: Path | None, *, workspace: Path | None = None, autodetect: bool | None = False) -> Brain:
    return Brain(
        config_manager=ConfigManager(config),
        reporter=ConsoleStatusReporter(),
        workspace=workspace,
        autodetect=autodetect,
    )


def _fail(message: str) -> NoReturn:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    raise typer.Exit(1)


async def _run_once(brain: Brain, request: Request, session_id: str, mode: str | None = None) -> Response:
    try:
        return await brain.process(request, session_id=session_id, mode=mode)
    finally:
        await brain.shutdown()


@app.callback()
def main() -> None:
    configure_logging(profile="cli")


@app.command()
def run(
    message: str = typer.Argument(..., help="What you want done"),
    session: str = typer.Option(DEFAULT_SESSION_ID, "--session", "-s", help="Session id"),
    mode: str | None = typer.Option(None, "--mode", "-m", help="Agent mode for this run: vibe, sdk or custom"),
    approve: list[str] = typer.Option([], "--approve", help="Tool names approved to run without intervention"),  # noqa: B008
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace root"),  # noqa: B008
    config: Path | None = typer.Option(None, "--config", help="Config file path"),  # noqa: B008
) -> None:
    """Process one request and print the answer."""
    try:
        brain = _load_brain(config, workspace=workspace, autodetect=None)
        if mode is not None and mode not in AGENT_MODES:
            _fail(f"invalid agent mode: {mode} (must be 'vibe', 'sdk', or 'custom')")
        guard = brain.tools.guard
        if guard is not None:
            for name in approve:
                guard.approve(name)

        request = Request(id=uuid.uuid4().hex, content=message)
        response = asyncio.run(_run_once(brain, request, session, mode))
    except InterventionRequiredError as exc:
        console.print(f"[bold yellow]Approval required:[/bold yellow] {escape(str(exc))}")
        console.print(f"Re-run with [bold]--approve {escape(exc.tool)}[/bold] to allow it.")
        raise typer.Exit(1) from None
    except AuracleError as exc:
        _fail(str(exc))
    typer.echo(response.content)


@app.command()
def models(config: Path | None = typer.Option(None, "--config", help="Config file path")) -> None:  # noqa: B008
    """List models offered by reachable providers."""
    brain = _load_brain(config)
    discoveries = asyncio.run(brain.discover_models())
    if not discoveries:
        console.print("[dim](no models found)[/dim]")
        return
    active = (brain.config.model.provider, brain.config.model.name)
    table = Table("provider", "model", "")
    for discovery in discoveries:
        marker = "*" if (discovery.provider, discovery.name) == active else ""
        table.add_row(discovery.provider, discovery.name, marker)
    console.print(table)


@app.command()
def use(
    provider: str = typer.Argument(..., help="Provider name, e.g. ollama or openai"),
    name: str = typer.Argument(..., help="Model name"),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),  # noqa: B008
) -> None:
    """Switch the active model."""
    brain = _load_brain(config)
    try:
        brain.set_model(provider, name)
    except AuracleError as exc:
        _fail(str(exc))
    if brain.provider is None:
        _fail(f"provider '{provider}' could not be initialized")
    console.print(f"Model set to [magenta]{escape(provider)}:{escape(name)}[/magenta]")


@app.command()
def pull(
    name: str = typer.Argument(..., help="Ollama model to download"),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),  # noqa: B008
) -> None:
    """Download a model through the local Ollama daemon."""
    brain = _load_brain(config)
    try:
        asyncio.run(brain.pull_model(name))
    except AuracleError as exc:
        _fail(str(exc))
    console.print(f"Pulled [magenta]{escape(name)}[/magenta]")


@app.command()
def mode(
    value: str = typer.Argument(..., help="vibe, sdk or custom"),
    config: Path | None = typer.Option(None, "--config", help="Config file path"),  # noqa: B008
) -> None:
    """Switch the agent runtime."""
    brain = _load_brain(config)
    try:
        brain.set_agent_mode(value)
    except AuracleError as exc:
        _fail(str(exc))
    console.print(f"Agent mode set to [cyan]{escape(value)}[/cyan]")


@app.command("config")
def show_config(config: Path | None = typer.Option(None, "--config", help="Config file path")) -> None:  # noqa: B008
    """Print the effective configuration as JSON."""
    settings = ConfigManager(config).load()
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2, ensure_ascii=False))
