"""CLI for blossomd.

Commands:
    serve                     - Start the Blossom server
    version                   - Print the server version
    whitelist add <pubkey>    - Allow a pubkey to upload (hex or npub)
    whitelist remove <pubkey> - Revoke a pubkey
    whitelist list            - List allowed pubkeys
    npub <hex> / hex <npub>   - Convert between pubkey formats
    sign <file>               - Print a signed Authorization header for a file
"""

import asyncio
import hashlib
from pathlib import Path
from typing import Annotated, Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from . import __version__
from .allowlist import AllowList
from .app import configure_logging, create_app
from .auth import build_auth_header, load_private_key
from .config import get_settings
from .db import Database
from .errors import BlossomError
from .pubkey import hex_to_npub, normalize_pubkey

app = typer.Typer(
    name="blossomd",
    help="Blossom blob server with Nostr authorization",
    no_args_is_help=True,
)
whitelist_app = typer.Typer(help="Manage pubkeys allowed to upload in allow-list mode", no_args_is_help=True)
app.add_typer(whitelist_app, name="whitelist")
console = Console()


def run_async(coro):
    """Run an async coroutine in sync context."""
    return asyncio.run(coro)


@app.command()
def serve(
    port: Annotated[Optional[int], typer.Option(help="HTTP port (overrides PORT)")] = None,
    host: Annotated[Optional[str], typer.Option(help="Listen address (overrides HOST)")] = None,
) -> None:
    """Start the Blossom server."""
    settings = get_settings()
    if port is not None:
        settings = settings.model_copy(update={"port": port})
    if host is not None:
        settings = settings.model_copy(update={"host": host})
    configure_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        access_log=False,
    )


@app.command()
def version() -> None:
    """Print the tool version."""
    console.print(f"blossomd version: {__version__}")


async def _with_allow_list(action):
    settings = get_settings()
    Path(settings.working_dir).mkdir(parents=True, exist_ok=True)
    database = Database(settings.resolved_database_url, echo=settings.database_echo)
    try:
        await database.init()
        return await action(AllowList(database))
    finally:
        await database.dispose()


@whitelist_app.command("add")
def whitelist_add(
    pubkey: Annotated[str, typer.Argument(help="Pubkey in hex or npub format")],
) -> None:
    """Add pubkey to whitelist."""
    try:
        hex_key = run_async(_with_allow_list(lambda allow_list: allow_list.add(pubkey)))
    except BlossomError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Added[/green] {hex_key}")


@whitelist_app.command("remove")
def whitelist_remove(
    pubkey: Annotated[str, typer.Argument(help="Pubkey in hex or npub format")],
) -> None:
    """Remove pubkey from whitelist."""
    try:
        removed = run_async(_with_allow_list(lambda allow_list: allow_list.remove(pubkey)))
    except BlossomError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    if not removed:
        console.print(f"[yellow]Not in whitelist:[/yellow] {pubkey}")
        raise typer.Exit(1)
    console.print(f"[green]Removed[/green] {pubkey}")


@whitelist_app.command("list")
def whitelist_list() -> None:
    """List all whitelisted pubkeys."""
    pubkeys = run_async(_with_allow_list(lambda allow_list: allow_list.list()))
    if not pubkeys:
        console.print("No pubkeys in whitelist")
        return
    table = Table(title="Whitelisted pubkeys")
    table.add_column("Pubkey")
    table.add_column("npub")
    for pubkey in pubkeys:
        table.add_row(pubkey, hex_to_npub(pubkey))
    console.print(table)
    console.print(f"Total: {len(pubkeys)} pubkey{'' if len(pubkeys) == 1 else 's'}")


@app.command()
def npub(pubkey: Annotated[str, typer.Argument(help="Pubkey in hex or npub format")]) -> None:
    """Print the npub form of a pubkey."""
    try:
        console.print(hex_to_npub(normalize_pubkey(pubkey)))
    except BlossomError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command("hex")
def to_hex(pubkey: Annotated[str, typer.Argument(help="Pubkey in hex or npub format")]) -> None:
    """Print the hex form of a pubkey."""
    try:
        console.print(normalize_pubkey(pubkey))
    except BlossomError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def sign(
    path: Annotated[Path, typer.Argument(help="File that will be uploaded or deleted")],
    key: Annotated[str, typer.Option("--key", "-k", envvar="BLOSSOM_NSEC", help="nsec or hex private key")],
    media_type: Annotated[Optional[str], typer.Option("--type", "-t", help="Media type for the m tag")] = None,
    expiration: Annotated[int, typer.Option(help="Seconds until the event expires")] = 3600,
) -> None:
    """Print a signed Authorization header authorizing ``path``."""
    if not path.is_file():
        console.print(f"[red]Error:[/red] Path does not exist: {path}")
        raise typer.Exit(1)
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1 << 20), b""):
            sha256.update(chunk)
    try:
        private_key = load_private_key(key)
    except BlossomError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    header = build_auth_header(
        private_key,
        x_hashes=[sha256.hexdigest()],
        media_type=media_type,
        expiration_seconds=expiration,
        content=f"Upload {path.name}",
    )
    # Plain print so the header is not wrapped
    print(header)


if __name__ == "__main__":
    app()
