"""
persona-council CLI.

Commands:
    persona-council serve                 Run the HTTP gateway
    persona-council personas              List available personas
    persona-council summon <name>         Show one persona
    persona-council collaborate <query>   Run a collaboration session
    persona-council stats                 Tool usage and repository stats
    persona-council configs               List remote persona configs
    persona-council sync <config-id>      Apply a remote persona config
    persona-council set-key <key>         Save the config API user key
"""

import asyncio
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table

from .bootstrap import build_service
from .errors import PersonaCouncilError
from .settings import Settings
from .sync.config_sync import DEFAULT_CONFIG_PATH, ConfigSynchronizer
from .tools.schemas import ToolResponse

app = typer.Typer(help="Summon AI personas and run them as a collaborating team")
console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    log_level: str = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
):
    """Configure logging for every command."""
    _configure_logging(log_level or Settings.from_env().log_level)


def _print_error(response: ToolResponse) -> None:
    error = response.error
    console.print(f"\n[bold red]Error ({error.kind}):[/bold red] {error.message}")
    for hint in error.hints:
        console.print(f"  [dim]- {hint}[/dim]")


def _run_tool(tool_name: str, arguments: dict | None = None) -> ToolResponse:
    """Run one tool on a fresh service; exit 1 on failure."""
    service = build_service(warm_up=False)
    response = asyncio.run(service.call(tool_name, arguments or {}))
    if not response.ok:
        _print_error(response)
        raise typer.Exit(1)
    return response


# =============================================================================
# SERVE
# =============================================================================


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Run the HTTP gateway under uvicorn."""
    import uvicorn

    console.print(f"\n[bold blue]persona-council serve[/bold blue] on http://{host}:{port}\n")
    uvicorn.run(
        "persona_council.api.gateway:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# =============================================================================
# PERSONAS
# =============================================================================


@app.command()
def personas(
    category: str = typer.Option(None, help="Filter by category or tag"),
    source: str = typer.Option(None, help="local, remote or default"),
):
    """List available personas grouped by source."""
    response = _run_tool("list_personas", {"category": category, "source": source})
    if not response.data:
        console.print(f"[yellow]{response.text}[/yellow]")
        return

    table = Table(title="Personas")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Category")
    table.add_column("Source")
    table.add_column("Description")
    for source_name, items in response.data.items():
        for item in items:
            table.add_row(
                item["id"], item["name"], item["category"], source_name, item["description"]
            )
    console.print(table)


@app.command()
def summon(name: str = typer.Argument(..., help="Persona id or name")):
    """Show one persona's goal and rules."""
    persona = _run_tool("summon_persona", {"name": name}).data
    console.print(f"\n[bold green]{persona['name']}[/bold green] ({persona['id']}, {persona['source']})")
    console.print(f"[bold]Goal:[/bold] {persona['goal']}\n")
    console.print(persona["rule"])


# =============================================================================
# COLLABORATE
# =============================================================================


@app.command()
def collaborate(
    query: str = typer.Argument(..., help="The question to put to the team"),
    mode: str = typer.Option(None, help="parallel, sequential or intelligent"),
    persona: list[str] = typer.Option(None, "--persona", "-p", help="Persona id (repeatable)"),
):
    """Run a collaboration session and print the report."""
    console.print("\n[bold blue]persona-council collaborate[/bold blue]\n")
    response = _run_tool(
        "start_collaboration",
        {"query": query, "persona_ids": persona or [], "mode": mode},
    )
    console.print(Markdown(response.text))


# =============================================================================
# STATS
# =============================================================================


@app.command()
def stats():
    """Persona repository and cache statistics."""
    service = build_service(warm_up=False)
    repo_stats = asyncio.run(_repository_stats(service))

    table = Table(title="Persona Repository")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    for key in ("total_personas", "local_personas", "cached_personas", "cache_valid"):
        table.add_row(key, str(repo_stats[key]))
    for source_name, count in repo_stats["by_source"].items():
        table.add_row(f"source: {source_name}", str(count))
    cache = repo_stats["cache_stats"]
    table.add_row("cache entries", f"{cache['valid_count']}/{cache['max_size']}")
    console.print(table)

    sync_status = service.synchronizer.get_sync_status()
    console.print(
        f"\nConfig: {sync_status['current_config_name'] or '[dim]none[/dim]'}"
        f"  |  user key: {'set' if sync_status['has_user_key'] else 'missing'}"
        f"  |  last sync: {sync_status['last_sync_time'] or 'never'}"
    )


async def _repository_stats(service) -> dict:
    await service.repository.get_all()
    return service.repository.stats()


# =============================================================================
# CONFIG SYNC
# =============================================================================


@app.command()
def configs():
    """List persona configs available to your user key."""
    response = _run_tool("list_persona_configs")
    if not response.data:
        console.print(f"[yellow]{response.text}[/yellow]")
        return
    table = Table(title="Remote Persona Configs")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Personas", justify="right")
    for item in response.data:
        table.add_row(item["id"], item["name"], item["version"], str(item["persona_count"]))
    console.print(table)


@app.command()
def sync(config_id: str = typer.Argument(..., help="Config id from `configs`")):
    """Download a remote config and make it the active persona set."""
    response = _run_tool("sync_persona_config", {"config_id": config_id})
    console.print(f"[bold green]{response.text}[/bold green]")


@app.command("set-key")
def set_key(key: str = typer.Argument(..., help="Config API user key")):
    """Save the config API user key to the local config file."""
    settings = Settings.from_env()
    synchronizer = ConfigSynchronizer(config_path=settings.config_path or DEFAULT_CONFIG_PATH)
    try:
        synchronizer.set_user_key(key)
    except PersonaCouncilError as e:
        console.print(f"[bold red]Error:[/bold red] {e.message}")
        raise typer.Exit(1)
    console.print("[bold green]User key saved.[/bold green]")


if __name__ == "__main__":
    app()
