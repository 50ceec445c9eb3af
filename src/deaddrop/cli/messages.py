"""CLI: deaddrop send, deaddrop watch"""

import asyncio
import json
from datetime import datetime
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from deaddrop.errors import ValidationError

console = Console()


def _get_client():
    from deaddrop.cli.main import _get_client
    return _get_client()


def _run(coro):
    from deaddrop.cli.main import _run
    return _run(coro)


def _format_ms(ms: Optional[int]) -> str:
    if not ms:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


@click.command("send")
@click.argument("contact_id")
@click.argument("text")
@click.option("--json-output", "--json", is_flag=True)
def send_cmd(contact_id: str, text: str, json_output: bool):
    """Queue a message for a contact and deliver it to the store."""
    client = _get_client()

    async def _send():
        try:
            message = client.send_text(contact_id, text)
            if json_output:
                sent = await client.messaging.drain_once()
            else:
                with console.status("Delivering..."):
                    sent = await client.messaging.drain_once()
        finally:
            await client.close()
        return message, sent

    try:
        message, sent = _run(_send())
    except ValidationError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    if json_output:
        click.echo(json.dumps({"message": message.to_wire(), "sent": sent}))
    elif sent:
        console.print(f"[green]Delivered message {message.id} to {contact_id}'s drop.[/green]")
    else:
        console.print("[yellow]Message not delivered; storage unavailable.[/yellow]")
        raise SystemExit(1)


@click.command("watch")
@click.option("--duration", type=float, default=None, help="Stop after this many seconds")
def watch_cmd(duration: Optional[float]):
    """Poll for offline messages and presence until interrupted."""
    client = _get_client()

    async def _watch():
        seen: set[tuple[str, str]] = set()

        def on_messages(messages):
            # Payload is the full list; print only what is new to us.
            for m in messages:
                if (m.from_, m.id) in seen:
                    continue
                seen.add((m.from_, m.id))
                console.print(f"[dim]{_format_ms(m.time)}[/dim] [green]{m.from_}[/green]: {m.payload}")

        def on_presence(heartbeats):
            table = Table(title="Presence")
            table.add_column("Contact", style="bold")
            table.add_column("Last seen")
            for contact_id, record in sorted(heartbeats.items()):
                table.add_row(contact_id, _format_ms(record.timestamp) if record else "-")
            console.print(table)

        client.new_messages.subscribe(on_messages)
        client.presence_updated.subscribe(on_presence)
        client.start()
        console.print(f"[cyan]Watching as {client.user_id} (Ctrl+C to exit)[/cyan]")
        try:
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
        finally:
            client.stop()
            await client.close()

    try:
        _run(_watch())
    except KeyboardInterrupt:
        pass
