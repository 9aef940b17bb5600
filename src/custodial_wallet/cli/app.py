"""CLI for the custodial wallet - operate user wallets from the terminal."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from custodial_wallet.config import DEFAULT_CONFIG_NAME, WalletConfig, load_config, write_default_config
from custodial_wallet.errors import WalletError

app = typer.Typer(
    name="custodial-wallet",
    help="Custodial EVM wallet service: create wallets, send, track and reconcile transfers.",
    no_args_is_help=True,
)
console = Console()

_config_path: Path = Path(DEFAULT_CONFIG_NAME)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"custodial-wallet {version('custodial-wallet')}")
        raise typer.Exit()


@app.callback()
def main(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_NAME),
        "--config",
        "-c",
        help="Path to the service config file",
        envvar="CUSTODIAL_WALLET_CONFIG",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Custodial EVM wallet service."""
    global _config_path
    _config_path = config
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _run(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


def _load() -> WalletConfig:
    try:
        return load_config(_config_path)
    except FileNotFoundError:
        console.print(
            f"[red]No config at {_config_path}.[/red] Run 'custodial-wallet init' first."
        )
        raise typer.Exit(1)
    except ValidationError as e:
        console.print(f"[red]Invalid config {_config_path}:[/red]\n{e}")
        raise typer.Exit(1)


def _explorer_link(tx_hash: str) -> str:
    from custodial_wallet.wallet.chains import get_chain

    try:
        return get_chain(_load().chain.network).tx_url(tx_hash)
    except KeyError:
        return ""


def _with_service(op, *, wait: bool = True):
    """Open the service, run ``op(service)``, and always close it."""
    from custodial_wallet.wallet.manager import WalletService

    config = _load()

    async def _go():
        service = await WalletService.open(config)
        try:
            return await op(service)
        finally:
            await service.close(wait=wait)

    try:
        return _run(_go())
    except WalletError as e:
        console.print(f"[red]{e.message}[/red]")
        raise typer.Exit(1)


# ------------------------------------------------------------------
# init / serve
# ------------------------------------------------------------------


@app.command()
def init(
    force: bool = typer.Option(False, "--force", help="Overwrite an existing config"),
):
    """Write a starter config file."""
    if _config_path.exists() and not force:
        console.print(f"[yellow]{_config_path} already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    write_default_config(_config_path)
    console.print(Panel(
        f"[bold green]Config written to {_config_path}[/bold green]\n\n"
        f"[dim]Set WALLET_ENCRYPTION_KEY to 64 hex characters (32 bytes)\n"
        f"before running any wallet command.[/dim]",
        title="Custodial Wallet",
    ))


@app.command()
def serve():
    """Run the HTTP API."""
    from custodial_wallet.api.server import run_server

    config = _load()
    console.print(
        f"[bold green]Starting wallet API at http://{config.server.host}:{config.server.port}[/bold green]"
    )
    run_server(config)


# ------------------------------------------------------------------
# wallet sub-commands
# ------------------------------------------------------------------

wallet_app = typer.Typer(
    name="wallet",
    help="Manage user wallets.",
    no_args_is_help=True,
)
app.add_typer(wallet_app, name="wallet")

_USER = typer.Option(..., "--user", "-u", help="Owning user id")


@wallet_app.command("create")
def wallet_create(user: str = _USER):
    """Create the wallet for a user."""
    wallet = _with_service(lambda s: s.create_wallet(user))
    console.print(Panel(
        f"[bold green]Wallet created![/bold green]\n\n"
        f"Address: [cyan]{wallet.address}[/cyan]\n"
        f"Network: {wallet.network}\n"
        f"Balance: {wallet.balance} ETH",
        title=f"Wallet for {user}",
    ))


@wallet_app.command("show")
def wallet_show(user: str = _USER):
    """Show a user's wallet and balance."""
    wallet = _with_service(lambda s: s.get_wallet(user))
    console.print(Panel(
        f"Address: [cyan]{wallet.address}[/cyan]\n"
        f"Network: {wallet.network}\n"
        f"Balance: [bold]{wallet.balance} ETH[/bold]\n"
        f"[dim]Created {wallet.created_at:%Y-%m-%d %H:%M} UTC[/dim]",
        title=f"Wallet for {user}",
    ))


@wallet_app.command("send")
def wallet_send(
    amount: str = typer.Argument(help="Amount to send in ETH (e.g. 0.01)"),
    to: str = typer.Option(..., "--to", "-t", help="Recipient address (0x...)"),
    user: str = _USER,
    no_wait: bool = typer.Option(
        False, "--no-wait", help="Exit right after broadcast; settle later with 'refresh'"
    ),
):
    """Send ETH from a user's wallet."""
    console.print(f"\n[bold]Send {amount} ETH[/bold] from {user}")
    console.print(f"  To: {to}\n")
    typer.confirm("Confirm this transaction?", abort=True)

    receipt = _with_service(lambda s: s.send_transaction(user, to, amount), wait=not no_wait)
    link = _explorer_link(receipt.tx_hash)
    console.print(Panel(
        f"[bold green]Transaction sent![/bold green]\n\n"
        f"Tx: [cyan]{receipt.tx_hash}[/cyan]\n"
        + (f"[dim]{link}[/dim]\n" if link else "")
        + f"Nonce: {receipt.nonce}\n"
        f"Status at submission: {receipt.status.value}",
        title="Transaction Sent",
    ))


@wallet_app.command("history")
def wallet_history(
    user: str = _USER,
    limit: int = typer.Option(50, "--limit", "-n", min=1, max=500),
):
    """Show a user's transactions, newest first."""
    txs = _with_service(lambda s: s.get_transactions(user, limit))
    if not txs:
        console.print("[dim]No transactions.[/dim]")
        return

    table = Table(title=f"Transactions for {user} ({len(txs)})")
    table.add_column("When", style="dim")
    table.add_column("Type")
    table.add_column("Amount", justify="right")
    table.add_column("Counterparty", style="cyan")
    table.add_column("Status")
    table.add_column("Tx", style="dim")

    colors = {"completed": "green", "pending": "yellow", "failed": "red"}
    for tx in txs:
        other = tx.to_address if tx.type.value == "send" else tx.from_address
        table.add_row(
            f"{tx.created_at:%Y-%m-%d %H:%M}",
            tx.type.value,
            tx.amount,
            f"{other[:10]}...",
            f"[{colors[tx.status.value]}]{tx.status.value}[/{colors[tx.status.value]}]",
            f"{tx.tx_hash[:14]}..." if tx.tx_hash else "-",
        )
    console.print(table)


@wallet_app.command("sync")
def wallet_sync(user: str = _USER):
    """Backfill incoming transfers from chain history."""
    result = _with_service(lambda s: s.sync_incoming_transactions(user))
    console.print(
        f"[bold green]Sync complete:[/bold green] {result.new_transactions} new, "
        f"{result.total_incoming} incoming total for [cyan]{result.wallet}[/cyan]"
    )


@wallet_app.command("refresh")
def wallet_refresh(tx_hash: str = typer.Argument(help="Transaction hash (0x...)")):
    """Re-read a transaction receipt and settle its status."""
    receipt = _with_service(lambda s: s.refresh_transaction(tx_hash))
    if receipt is None:
        console.print("[yellow]Not mined yet.[/yellow]")
        return
    state = "[green]success[/green]" if receipt.success else "[red]reverted[/red]"
    console.print(
        f"{tx_hash[:14]}... {state} in block {receipt.block_number} "
        f"(gas {receipt.gas_used} @ {receipt.effective_gas_price} wei)"
    )
