"""CLI commands for lingoworker.

Single entry point: interactive chat, one-shot questions, native module checks,
resilient fetch diagnostics, and the worker subprocess itself.
"""

import asyncio
from pathlib import Path

import httpx
import typer
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.table import Table

from lingoworker import __logo__, __version__
from lingoworker.cli.shared.logging_utils import configure_console_logging, ensure_rotating_log_file
from lingoworker.config.access import get_settings, resolve_config_path
from lingoworker.config.loader import load_settings
from lingoworker.config.schema import Settings
from lingoworker.orchestrator import AppContext, ChatTurn, language_name
from lingoworker.utils.exceptions import LingoWorkerError, format_error
from lingoworker.utils.helpers import ensure_dir, get_data_path

app = typer.Typer(
    name="lingoworker",
    help=f"{__logo__} lingoworker - multilingual chat with an out-of-process model",
    no_args_is_help=True,
)

console = Console()
EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit", ":q"}


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} lingoworker v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """lingoworker - multilingual chat."""
    pass


def _settings(config: Path | None) -> Settings:
    if config is not None:
        return load_settings(config)
    return get_settings()


def _setup_logging(name: str, settings: Settings, verbose: bool) -> None:
    configure_console_logging(verbose)
    if settings.logging.file:
        ensure_rotating_log_file(name, level=settings.logging.level)


def _print_turn(turn: ChatTurn) -> None:
    if turn.stats is not None:
        console.print(
            f"[dim]Detected: {turn.language.upper()} ({language_name(turn.language)}) | "
            f"Words: {turn.stats.word_count} | Chars: {turn.stats.character_count}[/dim]"
        )
    console.print()
    console.print(f"[cyan]{__logo__} lingoworker[/cyan]")
    console.print(turn.reply)
    console.print()


def _fail(exc: Exception) -> None:
    console.print(f"[red]{format_error(exc, include_details=True)}[/red]")


# ============================================================================
# Chat
# ============================================================================


@app.command()
def ask(
    message: str = typer.Argument(..., help="Message to send"),
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    verbose: bool = typer.Option(False, "--verbose", help="Show runtime logs"),
):
    """Send one message and print the reply."""
    settings = _settings(config)
    _setup_logging("ask", settings, verbose)

    async def run_once() -> None:
        async with AppContext(settings, config_path=config) as ctx:
            with console.status("[dim]Thinking...[/dim]", spinner="dots"):
                turn = await ctx.chat(message)
            _print_turn(turn)

    try:
        asyncio.run(run_once())
    except LingoWorkerError as e:
        _fail(e)
        raise typer.Exit(1)


@app.command()
def chat(
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    verbose: bool = typer.Option(False, "--verbose", help="Show runtime logs"),
):
    """Interactive chat; the reply language follows the detected input language."""
    settings = _settings(config)
    _setup_logging("chat", settings, verbose)

    history_file = ensure_dir(get_data_path() / "history") / "chat_history"
    session = PromptSession(history=FileHistory(str(history_file)), multiline=False)

    async def run_interactive() -> None:
        async with AppContext(settings, config_path=config) as ctx:
            console.print(f"{__logo__} Language module ready. Loading chat model...")
            await ctx.ensure_model()
            console.print("[green]Chat model loaded.[/green] Type 'exit' to quit.\n")
            while True:
                try:
                    with patch_stdout():
                        text = await session.prompt_async(HTML("<b fg='ansiblue'>You:</b> "))
                except (EOFError, KeyboardInterrupt):
                    break
                text = text.strip()
                if not text:
                    continue
                if text.lower() in EXIT_COMMANDS:
                    break
                try:
                    with console.status("[dim]Thinking...[/dim]", spinner="dots"):
                        turn = await ctx.chat(text)
                except LingoWorkerError as e:
                    _fail(e)
                    continue
                _print_turn(turn)
        console.print("Goodbye!")

    try:
        asyncio.run(run_interactive())
    except LingoWorkerError as e:
        _fail(e)
        raise typer.Exit(1)


# ============================================================================
# Diagnostics
# ============================================================================


@app.command()
def modules(
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """Load both native modules and check them against their contracts."""
    settings = _settings(config)
    configure_console_logging(False)
    ctx = AppContext(settings, config_path=config)

    table = Table(title="Native modules")
    table.add_column("Contract", style="cyan")
    table.add_column("Module")
    table.add_column("Status")
    table.add_column("Operations")

    failed = False
    for loader, module_name in (
        (ctx.language_loader, settings.modules.language),
        (ctx.preprocess_loader, settings.modules.preprocess),
    ):
        try:
            handle = asyncio.run(loader.load())
        except LingoWorkerError as e:
            failed = True
            table.add_row(loader.name, module_name, "[red]failed[/red]", e.message)
            continue
        table.add_row(loader.name, module_name, "[green]ok[/green]", ", ".join(sorted(handle.operations)))

    console.print(table)
    if failed:
        raise typer.Exit(1)


@app.command()
def fetch(
    url: str = typer.Argument(..., help="Resource URL"),
    output: Path = typer.Option(None, "--output", "-o", help="Write the body to this file"),
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    verbose: bool = typer.Option(False, "--verbose", help="Show each route attempted"),
):
    """Fetch a resource through the proxy fallback chain."""
    from lingoworker.fetch import ResilientFetcher

    settings = _settings(config)
    configure_console_logging(verbose)

    async def run_fetch() -> None:
        async with ResilientFetcher(settings.fetch) as fetcher:
            route = "proxied" if fetcher.needs_proxy(url) else "direct"
            console.print(f"Route: [cyan]{route}[/cyan]")
            if output is not None:
                await fetcher.download(url, output)
                console.print(f"[green]✓[/green] Saved to {output}")
                return
            response = await fetcher.fetch(url)
            console.print(f"Status: {response.status_code} ({len(response.content)} bytes) from {response.url}")

    try:
        asyncio.run(run_fetch())
    except (LingoWorkerError, httpx.HTTPError) as e:
        _fail(e)
        raise typer.Exit(1)


@app.command()
def config_path():
    """Print the config file location in effect (LINGOWORKER_CONFIG or the default)."""
    console.print(str(resolve_config_path()))


@app.command()
def worker(
    config: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    log_level: str = typer.Option(None, "--log-level", help="Log level for stderr output"),
):
    """Run the inference worker on stdio (normally spawned by the chat commands)."""
    from lingoworker.worker.__main__ import serve

    serve(config, log_level)


if __name__ == "__main__":
    app()
