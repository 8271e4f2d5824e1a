"""WorkChat CLI.

Entry point for running the API server and for local administration.

Usage:
    workchat serve                 Start the API server
    workchat create-user EMAIL     Create a user and print a session token
    workchat worker check          Start a tool worker and report readiness
    workchat config show           Show the resolved configuration
"""

import asyncio
import os
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from src.cli.config import WorkChatConfig, load_config, resolve_config

app = typer.Typer(
    name="workchat",
    help="Tool-augmented chat over Google Workspace",
    no_args_is_help=True,
)
worker_app = typer.Typer(help="Inspect the tool worker")
config_app = typer.Typer(help="Configuration management")

app.add_typer(worker_app, name="worker")
app.add_typer(config_app, name="config")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to workchat.yaml config file"
    ),
):
    """WorkChat CLI."""
    global _config_path
    _config_path = config


def _resolve() -> WorkChatConfig:
    try:
        return resolve_config(_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)


# --- Version ---


@app.command()
def version():
    """Show WorkChat version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version
    try:
        v = pkg_version("workchat")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]WorkChat[/bold] v{v}")


# --- Server ---


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Start the WorkChat API server."""
    import uvicorn

    cfg = _resolve()
    final_host = host or cfg.server.host
    final_port = port or cfg.server.port

    # The lifespan reads the same file the CLI resolved.
    if _config_path:
        os.environ["WORKCHAT_CONFIG_PATH"] = str(_config_path)

    console.print(f"[bold]Starting WorkChat on {final_host}:{final_port}[/bold]")
    uvicorn.run(
        "src.api.main:app",
        host=final_host,
        port=final_port,
        log_level=cfg.server.log_level,
        reload=reload,
        lifespan="on",
    )


# --- Users ---


@app.command("create-user")
def create_user(
    email: str = typer.Argument(..., help="User email address"),
    name: str = typer.Option("", "--name", help="Display name"),
    ttl_days: int = typer.Option(7, "--ttl-days", help="Session token lifetime in days"),
):
    """Create (or update) a user and print a bearer session token."""
    from src.api.middleware.auth import SessionConfigError, issue_session_token
    from src.db.connection import get_db_context, init_db
    from src.errors.domain import InvalidInputError
    from src.services.user_service import UserService

    init_db()
    try:
        with get_db_context() as db:
            user = UserService(db).upsert_user(email, name)
            user_id, user_email = user.id, user.email
        token = issue_session_token(user_id, ttl_seconds=ttl_days * 24 * 3600)
    except InvalidInputError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except SessionConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]User ready:[/green] {user_email} ({user_id})")
    console.print(token, soft_wrap=True, highlight=False)


# --- Worker ---


async def _check_worker(cfg: WorkChatConfig, timeout: float, user_id: str | None) -> tuple:
    from src.services.credential_provider import CredentialProvider
    from src.services.tool_invoker import ToolInvoker
    from src.services.tool_worker_supervisor import (
        ToolWorkerSupervisor,
        default_worker_command,
    )

    supervisor = ToolWorkerSupervisor(
        credential_provider=CredentialProvider() if user_id else None,
        command=default_worker_command(cfg.worker.python, cfg.worker.module),
        ready_sentinel=cfg.worker.ready_sentinel,
        terminate_grace_seconds=cfg.worker.terminate_grace_seconds,
    )
    try:
        await supervisor.start(user_id)
        ready = await supervisor.wait_until_ready(timeout)
        status = supervisor.status()
        tools = None
        if ready:
            result = await ToolInvoker(supervisor, default_timeout=timeout).invoke("list_tools")
            tools = result.result if result.ok else None
        return status, tools
    finally:
        await supervisor.shutdown()


@worker_app.command("check")
def worker_check(
    timeout: float = typer.Option(10.0, "--timeout", help="Seconds to wait for readiness"),
    user_id: Optional[str] = typer.Option(None, "--user-id", help="Inject this user's tokens"),
):
    """Start a throwaway worker, wait for readiness, list its tools, stop it."""
    from src.errors.domain import WorkerSpawnError

    cfg = _resolve()
    try:
        status, tools = asyncio.run(_check_worker(cfg, timeout, user_id))
    except WorkerSpawnError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Tool Worker")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("ready", "[green]yes[/green]" if status.ready else "[red]no[/red]")
    table.add_row("pid", str(status.pid))
    table.add_row("user", status.user_id or "-")
    console.print(table)

    if tools:
        tool_table = Table(title="Worker Tools")
        tool_table.add_column("Name")
        tool_table.add_column("Description")
        for tool in tools.get("tools", []):
            tool_table.add_row(tool["name"], tool["description"])
        console.print(tool_table)

    if not status.ready:
        raise typer.Exit(1)


# --- Config commands ---


@config_app.command("show")
def config_show():
    """Display the resolved configuration."""
    cfg = _resolve()
    if _config_path is None and load_config() is None:
        console.print("[yellow]No config file found; showing defaults.[/yellow]")

    console.print("[bold]Server:[/bold]")
    console.print(f"  host: {cfg.server.host}")
    console.print(f"  port: {cfg.server.port}")
    console.print(f"  log_level: {cfg.server.log_level}")

    console.print("\n[bold]Worker:[/bold]")
    console.print(f"  module: {cfg.worker.module}")
    console.print(f"  python: {cfg.worker.python or '(current interpreter)'}")
    console.print(f"  invoke_timeout_seconds: {cfg.worker.invoke_timeout_seconds}")
    console.print(f"  autostart: {cfg.worker.autostart}")

    console.print("\n[bold]Completion:[/bold]")
    console.print(f"  model: {cfg.completion.model}")
    console.print(f"  max_tokens: {cfg.completion.max_tokens}")
    console.print(f"  temperature: {cfg.completion.temperature}")


@config_app.command("validate")
def config_validate(
    config: Optional[str] = typer.Option(None, "--config", help="Config file path"),
):
    """Validate a config file without starting the server."""
    path = config or _config_path
    try:
        cfg = load_config(config_path=path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except (ValueError, TypeError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    if cfg is None:
        console.print("[red]No config file found.[/red]")
        raise typer.Exit(1)
    console.print("[green]Config is valid.[/green]")
    console.print(f"  Server: {cfg.server.host}:{cfg.server.port}")
    console.print(f"  Model: {cfg.completion.model}")
