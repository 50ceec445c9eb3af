"""
deaddrop CLI — `deaddrop` command.

Commands:
  deaddrop init              Generate a keypair and save config
  deaddrop whoami            Show user id and public key
  deaddrop contacts <cmd>    Roster management
  deaddrop send <id> <text>  Queue and deliver one offline message
  deaddrop watch             Poll for offline messages and presence
"""

import asyncio
import logging
from typing import Optional

try:
    import click
    from rich.console import Console
    from rich.logging import RichHandler
except ImportError:
    raise SystemExit("CLI requires extras: pip install deaddrop[cli]")

from deaddrop.client import AsyncDeadDrop
from deaddrop.config import ClientConfig, config_path, load_config, save_config
from deaddrop.crypto import SealedBoxCodec

console = Console()


def _load_config() -> ClientConfig:
    return load_config()


def _save_config(cfg: ClientConfig) -> None:
    save_config(cfg)


def _get_client() -> AsyncDeadDrop:
    cfg = _load_config()
    if not cfg.user_id or (cfg.encryption and not cfg.private_key):
        console.print("[red]Not initialised. Run `deaddrop init` first.[/red]")
        raise SystemExit(1)
    return AsyncDeadDrop(cfg)


def _run(coro):
    return asyncio.run(coro)


@click.group()
@click.version_option("0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Log delivery activity")
def main(verbose: bool):
    """deaddrop — offline chat delivery over a shared blob store."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(name)s: %(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


@main.command("init")
@click.option("--user-id", prompt="User id", help="Your identity in the store")
@click.option("--base-url", default=None, help="Blob store base URL")
@click.option("--token", default=None, help="Bearer token for the blob store")
@click.option("--forbids-dots", is_flag=True, help="Backend rejects '.' in keys")
@click.option("--no-encryption", is_flag=True, help="Store artifacts in plaintext")
@click.option("--force", is_flag=True, help="Replace an existing keypair")
def init_cmd(user_id: str, base_url: Optional[str], token: Optional[str],
             forbids_dots: bool, no_encryption: bool, force: bool):
    """Generate a keypair and save config."""
    cfg = _load_config()
    if cfg.private_key and not force:
        console.print("[yellow]Already initialised. Use --force to replace the keypair.[/yellow]")
        raise SystemExit(1)
    private_key, public_key = SealedBoxCodec.generate_keypair()
    updates = {
        "user_id": user_id,
        "private_key": private_key,
        "public_key": public_key,
        "forbids_dots": forbids_dots,
        "encryption": not no_encryption,
    }
    if base_url:
        updates["base_url"] = base_url
    if token:
        updates["token"] = token
    _save_config(cfg.model_copy(update=updates))
    console.print(f"[green]Initialised {user_id}[/green]")
    console.print(f"Public key: [bold]{public_key}[/bold]")
    console.print(f"[dim]Config saved to {config_path()}[/dim]")


@main.command("whoami")
def whoami_cmd():
    """Show user id and public key."""
    cfg = _load_config()
    if not cfg.user_id:
        console.print("[yellow]Not initialised. Run `deaddrop init`.[/yellow]")
        return
    console.print(f"User id:    [bold]{cfg.user_id}[/bold]")
    console.print(f"Public key: {cfg.public_key or '-'}")
    console.print(f"Store:      {cfg.base_url} ({cfg.app_name})")


# Register subcommands from separate modules
from deaddrop.cli.contacts import contacts
from deaddrop.cli.messages import send_cmd, watch_cmd

main.add_command(contacts)
main.add_command(send_cmd)
main.add_command(watch_cmd)


if __name__ == "__main__":
    main()
