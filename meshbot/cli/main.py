"""meshbot command line.

Commands:
- meshbot serve
- meshbot chat
- meshbot stats
- meshbot profile <user_id>
"""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from meshbot import __logo__, __version__
from meshbot.config.loader import load_config
from meshbot.config.schema import Config
from meshbot.utils.logging import configure_logging

console = Console()

app = typer.Typer(
    name="meshbot",
    help=f"{__logo__} meshbot - MESH, assistente de BPO financeiro",
    no_args_is_help=True,
)


def _version_callback(value: bool):
    if value:
        console.print(f"{__logo__} meshbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-v", callback=_version_callback, is_eager=True, help="Show version"
    ),
):
    """MESH - financial BPO assistant."""


def _load(config_path: Optional[Path], verbose: bool, level: Optional[str] = None) -> Config:
    config = load_config(config_path)
    configure_logging(config.logging, verbose=verbose, level=level)
    return config


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging on the console"),
):
    """Run the HTTP server."""
    from meshbot.app import MeshApplication

    config = _load(config_path, verbose)
    if host:
        config.server.host = host
    if port:
        config.server.port = port

    console.print(f"{__logo__} Starting {config.bot.name} on {config.server.host}:{config.server.port}")
    try:
        asyncio.run(MeshApplication(config).run_forever())
    except KeyboardInterrupt:
        console.print("Stopped.")
    except Exception as e:
        logger.exception(f"Server crashed: {e}")
        raise typer.Exit(1)


@app.command()
def chat(
    user_id: str = typer.Option("cli-user", "--user", "-u", help="User id for this session"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Send one message and exit"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging on the console"),
):
    """Talk to MESH from the terminal."""
    from meshbot.app import MeshApplication

    config = _load(config_path, verbose, level="WARNING")

    async def run():
        mesh = MeshApplication(config)
        await mesh.start(serve_http=False)
        try:
            if message is not None:
                response = await mesh.router.handle_message(user_id, message, "cli")
                console.print(response.text)
                return

            console.print(f"{__logo__} {config.bot.name} pronto. Digite 'sair' para encerrar.\n")
            while True:
                text = await asyncio.to_thread(console.input, "[bold blue]Você:[/bold blue] ")
                if text.strip().lower() in ("sair", "exit", "quit"):
                    break
                response = await mesh.router.handle_message(user_id, text, "cli")
                label = response.skill_name or response.source
                console.print(f"[bold green]{config.bot.name}[/bold green] [dim]({label})[/dim]: {response.text}\n")
        finally:
            await mesh.stop()

    try:
        asyncio.run(run())
    except (KeyboardInterrupt, EOFError):
        console.print("\nAté logo!")


def _open_store(config: Config):
    from meshbot.memory.store import create_memory_store

    if config.memory.backend != "sqlite":
        console.print("[yellow]Memory backend is 'memory'; stored data only lives inside a running server.[/yellow]")
        console.print("[dim]Set memory.backend to 'sqlite' to inspect it from the CLI.[/dim]")
    return create_memory_store(config.memory)


@app.command()
def stats(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Show memory statistics."""
    config = _load(config_path, False, level="WARNING")
    store = _open_store(config)
    try:
        data = store.get_stats()
    finally:
        store.close()

    table = Table(title="Memory Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Users", f"{data['users']:,}")
    table.add_row("Conversation turns", f"{data['conversations']:,}")
    table.add_row("Learning events", f"{data['learning_events']:,}")
    table.add_row("Pending events", f"{data['pending_events']:,}")
    console.print(table)


@app.command()
def profile(
    user_id: str = typer.Argument(..., help="User id"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Config file"),
):
    """Show a user's derived profile."""
    config = _load(config_path, False, level="WARNING")
    store = _open_store(config)
    try:
        data = store.get_profile(user_id).to_dict()
        data["conversations_this_week"] = store.count_recent_turns(user_id, days=7)
    finally:
        store.close()

    table = Table(title=f"Profile: {user_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in data.items():
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value) or "-"
        elif isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in value.items()) or "-"
        elif isinstance(value, float):
            value = f"{value:.2f}"
        table.add_row(key, str(value) if value is not None else "-")
    console.print(table)


if __name__ == "__main__":
    app()
