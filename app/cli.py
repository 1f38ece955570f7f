import asyncio

import typer
from rich.console import Console
from rich.table import Table

from app.core.exceptions import PortalError
from app.core.migrations import SchemaStateError

console = Console()
cli_app = typer.Typer(name="portal-keys", help="Portal API key administrative CLI")


def _run_async(coro):
    """Run async code from sync CLI context."""
    return asyncio.run(coro)


async def _ensure_db():
    from app.core.database import init_db
    await init_db()


def _run_service(method: str, *args, **kwargs):
    async def _call():
        await _ensure_db()
        from app.services.api_keys import ApiKeyService
        service = ApiKeyService()
        return await getattr(service, method)(*args, **kwargs)

    try:
        return _run_async(_call())
    except SchemaStateError as exc:
        console.print(f"[bold red]schema_refused:[/bold red] {exc}")
        raise typer.Exit(code=1)
    except PortalError as exc:
        console.print(f"[bold red]{exc.code}:[/bold red] {exc.message}")
        raise typer.Exit(code=1)


@cli_app.command("create-key")
def create_key(
    owner: str = typer.Option(..., "--owner", help="Owner (user id) the key belongs to"),
    name: str = typer.Option(..., "--name", help="Human-readable name for this key"),
):
    """Create a new API key. The key is printed once and never stored."""
    raw_key, key_row = _run_service("create_key", owner, name)

    console.print(f"\n[bold green]API key created successfully![/bold green]\n")
    console.print(f"  Id:     {key_row.id}")
    console.print(f"  Name:   {key_row.key_name}")
    console.print(f"  Prefix: {key_row.key_prefix}")
    console.print(f"\n  [bold yellow]Key: {raw_key}[/bold yellow]")
    console.print(f"\n  [dim]Save this key now — it cannot be retrieved later.[/dim]\n")


@cli_app.command("list-keys")
def list_keys(
    owner: str = typer.Option(..., "--owner", help="Owner (user id) whose keys to list"),
):
    """List an owner's API keys, newest first."""
    from app.core.security import mask_api_key

    keys = _run_service("list_keys", owner)

    if not keys:
        console.print("[dim]No API keys found.[/dim]")
        return

    table = Table(title=f"API Keys for {owner}")
    table.add_column("Id", style="dim")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Active", style="green")
    table.add_column("Created")

    for key in keys:
        created = key.created_at.strftime("%Y-%m-%d %H:%M") if key.created_at else "—"
        table.add_row(key.id, mask_api_key(key.key_prefix), key.key_name, "yes" if key.is_active else "no", created)

    console.print(table)


@cli_app.command("enable-key")
def enable_key(
    key_id: str = typer.Argument(help="Id of the key to enable"),
    owner: str = typer.Option(..., "--owner", help="Owner (user id) of the key"),
):
    """Mark an API key active."""
    _run_service("set_active", owner, key_id, True)
    console.print(f"[bold green]Key {key_id} enabled.[/bold green]")


@cli_app.command("disable-key")
def disable_key(
    key_id: str = typer.Argument(help="Id of the key to disable"),
    owner: str = typer.Option(..., "--owner", help="Owner (user id) of the key"),
):
    """Mark an API key inactive without deleting it."""
    _run_service("set_active", owner, key_id, False)
    console.print(f"[yellow]Key {key_id} disabled.[/yellow]")


@cli_app.command("delete-key")
def delete_key(
    key_id: str = typer.Argument(help="Id of the key to delete"),
    owner: str = typer.Option(..., "--owner", help="Owner (user id) of the key"),
):
    """Permanently delete an API key. Rotation is delete + create."""
    _run_service("delete_key", owner, key_id)
    console.print(f"[bold red]Key deleted.[/bold red]")


def main():
    cli_app()


if __name__ == "__main__":
    main()
