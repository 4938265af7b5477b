"""CLI for printr-signer - run the signing broker and manage local wallets."""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from printr_signer.config import load_config
from printr_signer.wallet.chains import CHAINS

app = typer.Typer(
    name="printr-signer",
    help="Local signing broker and wallet keystore for Printr token launches.",
    no_args_is_help=True,
)
console = Console()


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        console.print(f"printr-signer {version('printr-signer')}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log debug output",
        envvar="VERBOSE",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """Local signing broker and wallet keystore for Printr token launches."""
    _configure_logging(verbose)


def _run(coro):
    """Run an async function synchronously."""
    return asyncio.run(coro)


def _load_signer():
    from printr_signer.core.signer import Signer

    return Signer(load_config())


def _fail(result: dict) -> None:
    console.print(f"[red]{result.get('error', 'Unknown error')}[/red]")
    raise typer.Exit(1)


# ------------------------------------------------------------------
# serve
# ------------------------------------------------------------------


@app.command()
def serve():
    """Start the session broker and keep it running until interrupted."""
    signer = _load_signer()

    async def _serve():
        port = await signer.broker.start()
        console.print(Panel(
            f"[bold green]Session broker running[/bold green]\n\n"
            f"API: [cyan]http://localhost:{port}[/cyan]\n"
            f"Keystore: [dim]{signer.keystore.path}[/dim]\n"
            f"Mode: {'agent' if signer.config.agent_mode else 'interactive'}\n\n"
            f"[dim]Press Ctrl+C to stop.[/dim]",
            title="printr-signer",
        ))
        try:
            await signer.broker.serve_forever()
        finally:
            await signer.shutdown()

    try:
        _run(_serve())
    except KeyboardInterrupt:
        console.print("\n[yellow]Broker stopped.[/yellow]")


# ------------------------------------------------------------------
# chains
# ------------------------------------------------------------------


@app.command()
def chains():
    """List the networks the broker knows about."""
    table = Table(title="Supported Chains")
    table.add_column("CAIP-2", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Family")
    table.add_column("Symbol")
    table.add_column("Default RPC", style="dim")

    for chain in CHAINS.values():
        table.add_row(
            chain.caip2,
            chain.name,
            chain.family,
            chain.symbol,
            chain.default_rpc or "[yellow]none[/yellow]",
        )
    console.print(table)


# ------------------------------------------------------------------
# wallet sub-commands
# ------------------------------------------------------------------

wallet_app = typer.Typer(
    name="wallet",
    help="Manage wallets in the local encrypted keystore.",
    no_args_is_help=True,
)
app.add_typer(wallet_app, name="wallet")


def _prompt_new_password() -> str:
    password = console.input("[bold]Set wallet password: [/bold]", password=True)
    confirm = console.input("[bold]Confirm password: [/bold]", password=True)
    if not password:
        console.print("[red]Password must not be empty.[/red]")
        raise typer.Exit(1)
    if password != confirm:
        console.print("[red]Passwords do not match.[/red]")
        raise typer.Exit(1)
    return password


@wallet_app.command("list")
def wallet_list(
    chain: str = typer.Option(None, "--chain", "-c", help="Filter by CAIP-2 chain ID"),
):
    """List stored wallets. Private keys are never shown."""
    signer = _load_signer()
    result = _run(signer.wallet_tools.wallet_list(chain or ""))
    wallets = result["wallets"]

    if not wallets:
        console.print("[dim]No wallets stored yet.[/dim] Run 'printr-signer wallet new' to create one.")
        return

    table = Table(title=f"Wallets ({len(wallets)})")
    table.add_column("ID", style="dim")
    table.add_column("Label", style="bold")
    table.add_column("Chain", style="cyan")
    table.add_column("Address")

    for w in wallets:
        chain_info = CHAINS.get(w["chain"])
        table.add_row(
            w["id"],
            w["label"],
            chain_info.name if chain_info else w["chain"],
            w["address"],
        )
    console.print(table)


@wallet_app.command("new")
def wallet_new(
    chain: str = typer.Option(..., "--chain", "-c", help="CAIP-2 chain ID, e.g. eip155:8453"),
    label: str = typer.Option(..., "--label", "-l", help="Human-readable label"),
):
    """Generate a new wallet and save it encrypted to the keystore."""
    password = _prompt_new_password()
    signer = _load_signer()
    result = _run(signer.wallet_tools.wallet_new(chain, label, password))
    if not result["ok"]:
        _fail(result)

    chain_info = CHAINS.get(chain)
    symbol = chain_info.symbol if chain_info else "native tokens"
    console.print(Panel(
        f"[bold green]Wallet created![/bold green]\n\n"
        f"Address: [cyan]{result['address']}[/cyan]\n"
        f"ID: [dim]{result['wallet_id']}[/dim]\n\n"
        f"[dim]The private key is encrypted with your password.\n"
        f"Fund the address with {symbol} before signing.[/dim]",
        title="New Wallet",
    ))


@wallet_app.command("import")
def wallet_import(
    chain: str = typer.Option(..., "--chain", "-c", help="CAIP-2 chain ID, e.g. eip155:8453"),
    label: str = typer.Option(..., "--label", "-l", help="Human-readable label"),
):
    """Encrypt an existing private key into the keystore."""
    private_key = console.input("[bold]Private key: [/bold]", password=True).strip()
    if not private_key:
        console.print("[red]No private key entered.[/red]")
        raise typer.Exit(1)
    password = _prompt_new_password()

    signer = _load_signer()
    result = _run(signer.wallet_tools.wallet_import(chain, private_key, label, password))
    if not result["ok"]:
        _fail(result)
    console.print(
        f"[green]Imported[/green] [cyan]{result['address']}[/cyan] "
        f"as [bold]{label}[/bold] [dim]({result['wallet_id']})[/dim]"
    )


@wallet_app.command("remove")
def wallet_remove(
    wallet_id: str = typer.Argument(..., help="Wallet ID from 'printr-signer wallet list'"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Remove a wallet from the keystore."""
    if not yes:
        answer = console.input(
            f"Remove wallet [bold]{wallet_id}[/bold]? The key cannot be recovered "
            f"without a backup. [y/N]: "
        ).strip().lower()
        if answer not in ("y", "yes"):
            console.print("[dim]Cancelled.[/dim]")
            raise typer.Exit()

    signer = _load_signer()
    result = _run(signer.wallet_tools.wallet_remove(wallet_id))
    if not result["ok"]:
        _fail(result)
    console.print(f"[green]Removed wallet {wallet_id}.[/green]")


@wallet_app.command("path")
def wallet_path():
    """Show where the keystore file lives."""
    config = load_config()
    console.print(str(config.wallet_store))
