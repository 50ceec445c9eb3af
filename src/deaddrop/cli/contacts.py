"""CLI: deaddrop contacts add|list|remove"""

import json

import click
from rich.console import Console
from rich.table import Table

from deaddrop.models.contact import Contact

console = Console()


def _load_config():
    from deaddrop.cli.main import _load_config
    return _load_config()


def _save_config(cfg) -> None:
    from deaddrop.cli.main import _save_config
    _save_config(cfg)


def _get_client():
    from deaddrop.cli.main import _get_client
    return _get_client()


def _run(coro):
    from deaddrop.cli.main import _run
    return _run(coro)


@click.group()
def contacts():
    """Roster management."""


@contacts.command("add")
@click.argument("contact_id")
@click.argument("public_key")
@click.option("--title", default="", help="Display name")
def contacts_add(contact_id: str, public_key: str, title: str):
    """Add or update a contact."""
    cfg = _load_config()
    roster = [c for c in cfg.contacts if c.id != contact_id]
    roster.append(Contact(id=contact_id, public_key=public_key, title=title))
    _save_config(cfg.model_copy(update={"contacts": roster}))
    console.print(f"[green]Contact {contact_id} saved.[/green]")


@contacts.command("list")
@click.option("--json-output", "--json", is_flag=True)
def contacts_list(json_output: bool):
    """List contacts."""
    cfg = _load_config()
    if json_output:
        click.echo(json.dumps([c.model_dump(by_alias=True) for c in cfg.contacts], indent=2))
        return
    table = Table(title=f"Contacts ({len(cfg.contacts)})")
    table.add_column("ID", style="bold")
    table.add_column("Title")
    table.add_column("Public key")
    for c in cfg.contacts:
        key = c.public_key or ""
        table.add_row(c.id, c.title, f"{key[:16]}…" if len(key) > 16 else key or "[red]none[/red]")
    console.print(table)


@contacts.command("remove")
@click.argument("contact_id")
@click.option("--purge", is_flag=True, help="Also delete messages and heartbeat left for them")
def contacts_remove(contact_id: str, purge: bool):
    """Remove a contact."""
    cfg = _load_config()
    if cfg.get_contact(contact_id) is None:
        console.print(f"[yellow]No contact {contact_id}.[/yellow]")
        raise SystemExit(1)

    if purge:
        client = _get_client()

        async def _purge():
            try:
                tasks = client.remove_contact(contact_id)
                with console.status("Deleting stored artifacts..."):
                    for task in tasks:
                        await task
            finally:
                await client.close()

        _run(_purge())

    roster = [c for c in cfg.contacts if c.id != contact_id]
    _save_config(cfg.model_copy(update={"contacts": roster}))
    console.print(f"[green]Contact {contact_id} removed.[/green]")
