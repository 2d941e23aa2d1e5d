"""Command-line entry point for Corex."""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from corex_agent.autonomy import (
    AutonomyConfigStore,
    describe_level,
    level_warning,
    recommend_level,
)
from corex_agent.config import Config, get_config, set_config
from corex_agent.exceptions import (
    BackendError,
    BackendTimeoutError,
    BackendUnreachableError,
    ConfigurationError,
    NoActiveModelError,
    SessionBusyError,
)
from corex_agent.logging import configure_logging, get_logger
from corex_agent.orchestrator import Orchestrator, TurnState
from corex_agent.tools import ToolResult

log = get_logger(__name__)
console = Console()

app = typer.Typer(help="Corex - AI pair programmer with a bounded tool loop")
autonomy_app = typer.Typer(help="Show or change the autonomy level")
app.add_typer(autonomy_app, name="autonomy")


def _setup(config: str = "", model: str = "", verbose: bool = False) -> Config:
    if verbose:
        os.environ["COREX_LOGGING__LEVEL"] = "DEBUG"

    cfg = Config.load(Path(config) if config else None)
    if model:
        cfg.model.model = model
    set_config(cfg)
    configure_logging()
    return cfg


def _describe_backend_error(error: BackendError) -> str:
    if isinstance(error, NoActiveModelError):
        return "No active model. Load a model in your inference server or set model.model in the config."
    if isinstance(error, BackendUnreachableError):
        return f"Could not reach the model server ({error.base_url}). Is it running?"
    if isinstance(error, BackendTimeoutError):
        return f"The model did not answer within {error.timeout_seconds:g}s. Try again."
    return f"Model error: {error}"


async def _confirm_tool(tool_name: str, parameters: dict[str, Any]) -> bool:
    body = "\n".join(f"[bold]{key}[/bold]: {value}" for key, value in parameters.items()) or "(no parameters)"
    console.print(Panel(body, title=f"Approve tool: {tool_name}", border_style="yellow"))
    return await asyncio.to_thread(Confirm.ask, "Run it?", default=False)


def _print_tool_event(tool_name: str, status: str, result: ToolResult | None) -> None:
    style = {
        "running": "cyan",
        "completed": "green",
        "failed": "red",
        "rejected": "yellow",
    }.get(status, "white")
    line = f"[{style}]• {tool_name}: {status}[/{style}]"
    if result is not None and not result.success:
        line += f" [dim]{result.error}[/dim]"
    console.print(line)


def _print_status(state: TurnState) -> None:
    if state is TurnState.AWAITING_MODEL:
        console.print("[dim]thinking...[/dim]")


def _build_orchestrator() -> Orchestrator:
    # Confirm.ask runs in a worker thread that cannot be cancelled, so the
    # terminal prompt waits for an answer instead of timing out.
    return Orchestrator(
        approval_callback=_confirm_tool,
        approval_timeout=0,
        tool_event_callback=_print_tool_event,
        status_callback=_print_status,
    )


async def _chat_loop(orchestrator: Orchestrator) -> None:
    level = orchestrator.autonomy_store.get().level
    console.print(Panel(
        f"Autonomy: {describe_level(level)}\n"
        "Type /reset to clear the conversation, /exit to quit.",
        title="Corex",
    ))
    warning = level_warning(level)
    if warning:
        console.print(f"[bold red]{warning}[/bold red]")

    while True:
        try:
            user_input = await asyncio.to_thread(console.input, "[bold green]you>[/bold green] ")
        except (EOFError, KeyboardInterrupt):
            break

        text = user_input.strip()
        if not text:
            continue
        if text in ("/exit", "/quit"):
            break
        if text == "/reset":
            orchestrator.reset()
            console.print("[dim]Conversation cleared.[/dim]")
            continue

        try:
            result = await orchestrator.run_turn(text)
        except BackendError as e:
            console.print(f"[red]{_describe_backend_error(e)}[/red]")
            continue
        except SessionBusyError as e:
            console.print(f"[yellow]{e}[/yellow]")
            continue
        console.print(Markdown(result.text))


@app.command()
def chat(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start an interactive session."""
    _setup(config, model, verbose)
    orchestrator = _build_orchestrator()

    async def _run() -> None:
        try:
            await _chat_loop(orchestrator)
        finally:
            await orchestrator.provider.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        log.info("Shutting down...")


@app.command()
def ask(
    message: str = typer.Argument(..., help="Message to send"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    model: str = typer.Option("", "-m", "--model", help="Override model"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Run a single turn and print the answer."""
    _setup(config, model, verbose)
    orchestrator = _build_orchestrator()

    async def _run():
        try:
            return await orchestrator.run_turn(message)
        finally:
            await orchestrator.provider.close()

    try:
        result = asyncio.run(_run())
    except BackendError as e:
        console.print(f"[red]{_describe_backend_error(e)}[/red]")
        raise typer.Exit(code=1)
    console.print(Markdown(result.text))


def _store(config: str) -> AutonomyConfigStore:
    _setup(config)
    return AutonomyConfigStore(get_config().autonomy.store_path)


@autonomy_app.command("show")
def autonomy_show(
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
) -> None:
    """Show the current autonomy record."""
    record = _store(config).get()
    table = Table(title="Autonomy")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("level", f"{record.level} - {describe_level(record.level)}")
    table.add_row("auto_approve_tools", ", ".join(record.auto_approve_tools) or "-")
    table.add_row("require_approval_tools", ", ".join(record.require_approval_tools) or "-")
    table.add_row("dangerous_patterns", ", ".join(record.dangerous_patterns) or "-")
    console.print(table)


@autonomy_app.command("set")
def autonomy_set(
    level: int = typer.Argument(..., min=1, max=5, help="Autonomy level 1-5"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
) -> None:
    """Change the autonomy level."""
    try:
        record = _store(config).update(level=level)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Autonomy set to {record.level}: {describe_level(record.level)}")
    warning = level_warning(record.level)
    if warning:
        console.print(f"[bold red]{warning}[/bold red]")


@autonomy_app.command("recommend")
def autonomy_recommend(
    context_size: int = typer.Option(..., "--context", help="Model context window in tokens"),
    parameters: float = typer.Option(0.0, "--params", help="Model size in billions of parameters"),
) -> None:
    """Suggest an autonomy level for a model."""
    level, reason = recommend_level(context_size, parameters or None)
    console.print(f"Recommended level {level} ({describe_level(level)}): {reason}")


@app.command()
def version() -> None:
    """Show version information."""
    from corex_agent import __version__
    console.print(f"Corex v{__version__}")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()
