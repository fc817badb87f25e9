"""CLI for Baintwallet - run the SMS wallet service from the terminal."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from baintwallet.config import WalletServiceConfig, get_root_dir, load_config, save_config
from baintwallet.errors import ConfigError, GatewayError, NotProvisioned

app = typer.Typer(
    name="baintwallet",
    help="Custodial EVM wallet controlled by SMS commands.",
    no_args_is_help=True,
)
console = Console()

_base_dir: Path | None = None


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"baintwallet {version('baintwallet')}")
        raise typer.Exit()


@app.callback()
def main(
    base: Path = typer.Option(
        None,
        "--dir",
        "-d",
        help="Directory containing .baintwallet/ (default: current directory)",
        envvar="BAINT_HOME",
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l", help="Logging level"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Custodial EVM wallet controlled by SMS commands."""
    global _base_dir
    _base_dir = base
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


async def _load_service():
    from baintwallet.service import WalletService

    try:
        return await WalletService.load(base=_base_dir)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)


@app.command()
def init(
    chain: str = typer.Option("ethereum", "--chain", "-c", help="Chain to operate on"),
    rpc_url: str = typer.Option(None, "--rpc-url", help="Override the chain's RPC endpoint"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config"),
):
    """Write a starter .baintwallet/config.yaml."""
    from baintwallet.wallet.chains import get_chain

    try:
        selected = get_chain(chain)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    config_path = get_root_dir(_base_dir) / "config.yaml"
    if config_path.exists() and not force:
        console.print(f"[yellow]Config already exists at {config_path}.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)

    config = WalletServiceConfig()
    config.chain.name = selected.name
    config.chain.rpc_url = rpc_url
    save_config(config, config_path)

    console.print(Panel(
        f"[bold green]Config written![/bold green]\n\n"
        f"Path: [cyan]{config_path}[/cyan]\n"
        f"Chain: [cyan]{selected.name}[/cyan] (chain id {selected.chain_id})\n\n"
        f"[dim]Export BAINT_MASTER_SECRET before running 'baintwallet serve'.\n"
        f"Losing it makes every stored wallet unrecoverable.[/dim]",
        title="Baintwallet",
    ))


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from config)"),
    port: int = typer.Option(None, "--port", "-p", help="Port (default from config)"),
):
    """Run the SMS webhook server."""
    import uvicorn

    from baintwallet.api.server import create_app

    config = load_config(get_root_dir(_base_dir) / "config.yaml")
    try:
        config.custody.require_secret()
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    web_app = create_app(
        base=_base_dir,
        messages_per_minute=config.server.messages_per_minute,
        wallet_api=config.server.wallet_api,
        api_requests=config.server.api_requests,
        api_window_seconds=config.server.api_window_seconds,
    )
    host = host or config.server.host
    port = port or config.server.port
    console.print(f"[bold]Baintwallet webhook on http://{host}:{port}/sms/webhook[/bold]")
    uvicorn.run(web_app, host=host, port=port)


@app.command()
def chat(
    identity: str = typer.Argument(help="Identity (phone number) to act as"),
):
    """Send SMS commands through the interpreter from the terminal."""

    async def _chat():
        service = await _load_service()
        console.print(f"[dim]Chatting as {identity} on {service.gateway.chain.name}. "
                      f"Type 'exit' to quit.[/dim]")
        try:
            while True:
                text = await asyncio.to_thread(console.input, "[bold cyan]> [/bold cyan]")
                if text.strip().lower() in ("exit", "quit"):
                    break
                reply = await service.interpreter.handle(identity, text)
                console.print(Panel(reply, border_style="green"))
        finally:
            await service.shutdown()

    try:
        _run(_chat())
    except (EOFError, KeyboardInterrupt):
        console.print()


@app.command()
def wallet(
    identity: str = typer.Argument(help="Identity (phone number) to look up"),
):
    """Show an identity's wallet address and balance."""

    async def _describe():
        service = await _load_service()
        try:
            return await service.interpreter.describe_wallet(identity)
        finally:
            await service.shutdown()

    try:
        snapshot = _run(_describe())
    except NotProvisioned:
        console.print("[yellow]No wallet found for this number.[/yellow]")
        raise typer.Exit(1)
    except GatewayError as e:
        console.print(f"[red]Balance unavailable: {e.cause}[/red]")
        raise typer.Exit(1)

    from baintwallet.wallet.chains import get_chain

    console.print(Panel(
        f"[cyan]{snapshot.address}[/cyan]\n\n"
        f"Balance: [bold]{snapshot.balance:.4f} {snapshot.symbol}[/bold]\n"
        f"[dim]Chain: {snapshot.chain}\n"
        f"{get_chain(snapshot.chain).address_url(snapshot.address)}[/dim]",
        title="Wallet",
    ))


@app.command()
def chains():
    """List supported chains."""
    from baintwallet.wallet.chains import CHAINS

    table = Table(title="Supported Chains")
    table.add_column("Name", style="cyan")
    table.add_column("Chain ID", justify="right")
    table.add_column("Symbol")
    table.add_column("Network")
    table.add_column("Explorer", style="dim")
    for chain in CHAINS.values():
        table.add_row(
            chain.name,
            str(chain.chain_id),
            chain.native_symbol,
            "testnet" if chain.testnet else "mainnet",
            chain.explorer_url,
        )
    console.print(table)


if __name__ == "__main__":
    app()
