"""Command-line interface for tradeadvisor."""

import asyncio
import sys
from contextlib import closing
from datetime import datetime
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tradeadvisor.broker.client import BrokerClient
from tradeadvisor.broker.exceptions import BrokerError
from tradeadvisor.broker.models import Provider
from tradeadvisor.config import get_settings
from tradeadvisor.inference.transport import HttpTransport
from tradeadvisor.market.client import BinanceClient
from tradeadvisor.market.exceptions import MarketDataError
from tradeadvisor.market.snapshot import MarketSnapshot
from tradeadvisor.orchestration.models import AnalysisRequest, Failure, Outcome, ProgressEvent
from tradeadvisor.orchestration.orchestrator import Orchestrator
from tradeadvisor.utils.helpers import format_price, format_units
from tradeadvisor.utils.logger import setup_logger

console = Console()

DISCLAIMER = (
    "Disclaimer: the suggestion above is for reference only and is not investment advice. "
    "Crypto trading is risky; decide carefully."
)

LEVEL_STYLES = {
    "info": "dim",
    "success": "green",
    "warning": "yellow",
    "error": "red",
}


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool):
    """tradeadvisor - AI trading suggestions paid through a broker sub-account."""
    setup_logger(log_level="DEBUG" if verbose else None)
    if verbose:
        console.print("[dim]Verbose mode enabled[/dim]")


@cli.command("prices")
@click.option("--symbol", "symbols", multiple=True, help="Symbol to show (repeatable)")
@click.option("--watch", is_flag=True, help="Keep refreshing at the configured interval")
@click.option("--count", type=int, help="Stop after this many refreshes (with --watch)")
def prices(symbols: Tuple[str, ...], watch: bool, count: Optional[int]):
    """Show latest prices for tracked symbols."""
    wanted = list(symbols) or None

    with closing(BinanceClient()) as client:
        if watch:
            try:
                asyncio.run(_watch_prices(client, wanted, count))
            except KeyboardInterrupt:
                console.print("[dim]Stopped[/dim]")
            return

        try:
            tickers = client.get_ticker_prices(wanted)
        except MarketDataError as e:
            console.print(f"[red]✗ Market data error: {escape(str(e))}[/red]")
            sys.exit(1)

    _print_price_table([(ticker.symbol, ticker.price) for ticker in tickers])


async def _watch_prices(client: BinanceClient, symbols: Optional[List[str]], count: Optional[int]):
    settings = get_settings()
    snapshot = MarketSnapshot(max_age=settings.price_max_age)

    def render(snap: MarketSnapshot):
        # Stale prices show as N/A
        rows = [(ticker.symbol, snap.latest_price(ticker.symbol)) for ticker in snap.tickers()]
        _print_price_table(rows, title=f"Prices at {datetime.now().strftime('%H:%M:%S')}")

    await snapshot.refresh_periodically(
        client,
        interval=settings.price_refresh_interval,
        symbols=symbols,
        on_refresh=render,
        limit=count,
    )


def _print_price_table(rows: List[Tuple[str, Optional[str]]], title: Optional[str] = None):
    if not rows:
        console.print("[dim]No data[/dim]")
        return

    table = Table(title=title, show_header=True, header_style="bold magenta")
    table.add_column("Symbol", style="cyan")
    table.add_column("Price (USDT)", style="white", justify="right")

    for symbol, price in rows:
        table.add_row(symbol, format_price(price))

    console.print(table)


@cli.command("status")
@click.argument("provider_address")
def status(provider_address: str):
    """Show acknowledgment and balances for a provider."""
    try:
        with closing(BrokerClient()) as client:
            acknowledged, ledger, account = asyncio.run(_fetch_status(client, provider_address))
    except BrokerError as e:
        console.print(f"[red]✗ Broker error: {escape(str(e))}[/red]")
        sys.exit(1)

    table = Table(show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Provider", provider_address)
    table.add_row("Acknowledged", "yes" if acknowledged else "no")
    table.add_row(
        "Primary balance",
        format_units(ledger.total_balance) if ledger.ledger_info else "N/A",
    )
    table.add_row(
        "Sub-account balance",
        format_units(account.balance) if account is not None else "not created",
    )
    if account is not None and account.pending_refund:
        table.add_row("Pending refund", format_units(account.pending_refund))
    console.print(table)


async def _fetch_status(client: BrokerClient, provider_address: str):
    acknowledged = await client.is_acknowledged(provider_address)
    ledger = await client.get_ledger_detail()
    account = await client.get_sub_account(provider_address)
    return acknowledged, ledger, account


@cli.command("analyze")
@click.argument("provider_address")
@click.option("--symbol", default="BTCUSDT", show_default=True, help="Trading pair to analyze")
@click.option("--name", help="Provider display name")
@click.option("--model", help="Provider model id, for display")
@click.option("--json", "as_json", is_flag=True, help="Print the outcome as JSON")
def analyze(
    provider_address: str,
    symbol: str,
    name: Optional[str],
    model: Optional[str],
    as_json: bool,
):
    """Get a funded, verified AI trading suggestion from a provider."""
    settings = get_settings()

    try:
        request = AnalysisRequest(symbol=symbol)
    except ValueError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        sys.exit(1)

    snapshot = MarketSnapshot(max_age=settings.price_max_age)
    try:
        with closing(BinanceClient()) as market:
            snapshot.refresh(market, [request.symbol])
    except MarketDataError as e:
        console.print(f"[yellow]⚠ Failed to fetch market data, price will be N/A: {escape(str(e))}[/yellow]")

    try:
        broker = BrokerClient()
    except BrokerError as e:
        console.print(f"[red]✗ Broker error: {escape(str(e))}[/red]")
        sys.exit(1)

    provider = Provider(address=provider_address, name=name, model=model)
    if not as_json:
        console.print(f"[bold]Selected pair:[/bold] {request.symbol}")
        console.print(f"[bold]AI service:[/bold] {provider.label}\n")

    transport = HttpTransport()
    try:
        orchestrator = Orchestrator(
            ledger=broker,
            registry=broker,
            verifier=broker,
            transport=transport,
            caller=settings.caller_address,
            snapshot=snapshot,
        )
        outcome = asyncio.run(_run_with_progress(orchestrator, provider, request, quiet=as_json))
    finally:
        transport.close()
        broker.close()

    if as_json:
        click.echo(outcome.model_dump_json(indent=2))
    else:
        _display_outcome(outcome)

    if isinstance(outcome, Failure):
        sys.exit(1)


async def _run_with_progress(
    orchestrator: Orchestrator,
    provider: Provider,
    request: AnalysisRequest,
    quiet: bool = False,
) -> Outcome:
    outcome = None
    async for event in orchestrator.iter_run(provider, request):
        if not quiet:
            _display_event(event)
        if event.outcome is not None:
            outcome = event.outcome
    return outcome


def _display_event(event: ProgressEvent):
    style = LEVEL_STYLES.get(event.level, "white")
    marker = {"success": "✓", "warning": "⚠", "error": "✗"}.get(event.level, "·")
    console.print(f"[{style}]{marker} {escape(event.message)}[/{style}]")


def _display_outcome(outcome: Outcome):
    if isinstance(outcome, Failure):
        console.print(f"\n[red]Failure kind:[/red] {outcome.kind.value}")
        if outcome.status_code:
            console.print(f"[red]HTTP status:[/red] {outcome.status_code}")
        return

    title = "AI trading suggestion" + (" (verified)" if outcome.verified else "")
    console.print()
    console.print(Panel(Text(outcome.content), title=title, border_style="green"))
    if outcome.transferred:
        console.print(f"[dim]Sub-account funded with {format_units(outcome.transferred)}[/dim]")
    console.print(f"[italic red]{DISCLAIMER}[/italic red]")


if __name__ == "__main__":
    cli()
