"""Click-based CLI for stockbook.

Thin wrapper around library modules. Every operation delegates to the
resolver, the price store, or the seeder.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from stockbook.core.exceptions import StockbookError

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code.

    Library errors and rejected arguments are reported on the console and
    exit with status 1.
    """
    try:
        return asyncio.run(coro)
    except (StockbookError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from stockbook.core import load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except StockbookError as e:
            raise click.UsageError(str(e))
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from stockbook.prices import create_store

    return await create_store(config.storage)


@asynccontextmanager
async def _open_resolver(config):
    """Resolver wired to the configured store and Yahoo Finance."""
    from stockbook.resolver import open_resolver

    async with open_resolver(config) as resolver:
        yield resolver


def _parse_symbols(symbols: tuple[str, ...]) -> list[str]:
    """Accept ``AAPL MSFT`` as well as ``AAPL,MSFT``."""
    parsed = [
        s.strip().upper() for arg in symbols for s in arg.split(",") if s.strip()
    ]
    if not parsed:
        raise click.UsageError("At least one symbol is required")
    return parsed


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="STOCKBOOK_CONFIG",
    default=None,
    help="Path to stockbook.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.version_option(package_name="stockbook")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Stockbook: cached stock prices, charts, and symbol search."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    _configure_logging(verbose)


# ---------------------------------------------------------------------------
# price / update
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbols", nargs=-1, required=True)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def price(ctx: click.Context, symbols: tuple[str, ...], output_format: str) -> None:
    """Show the current price of one or more symbols."""
    config = _load_config(ctx)
    symbol_list = _parse_symbols(symbols)

    async def _run():
        async with _open_resolver(config) as resolver:
            prices = await resolver.get_portfolio_prices(symbol_list)

        if output_format == "json":
            click.echo(json.dumps({s: str(p) for s, p in prices.items()}, indent=2))
            return

        table = Table(title="Current Prices")
        table.add_column("Symbol", style="bold")
        table.add_column("Price", justify="right")
        for symbol, value in prices.items():
            table.add_row(symbol, str(value))
        console.print(table)

    _run_async(_run())


@cli.command()
@click.argument("symbols", nargs=-1, required=True)
@click.pass_context
def update(ctx: click.Context, symbols: tuple[str, ...]) -> None:
    """Fetch and store today's price for symbols not yet updated today."""
    config = _load_config(ctx)
    symbol_list = _parse_symbols(symbols)

    async def _run():
        async with _open_resolver(config) as resolver:
            updated = await resolver.update_prices(symbol_list)

        skipped = len(symbol_list) - len(updated)
        console.print(
            f"[green]\u2713[/green] Updated {len(updated)} of {len(symbol_list)} symbols"
            + (f" ({skipped} skipped or failed)" if skipped else "")
        )

    _run_async(_run())


# ---------------------------------------------------------------------------
# chart
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("symbol")
@click.option(
    "--period",
    "-p",
    type=str,
    default="1M",
    show_default=True,
    help="1D, 1W, 1M, 3M, 6M, 1Y, 2Y, 5Y, 10Y or MAX.",
)
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def chart(ctx: click.Context, symbol: str, period: str, output_format: str) -> None:
    """Show the price series of SYMBOL over a period."""
    config = _load_config(ctx)

    async def _run():
        async with _open_resolver(config) as resolver:
            points = await resolver.get_chart_data(symbol, period)

        if output_format == "json":
            click.echo(
                json.dumps([p.model_dump(mode="json") for p in points], indent=2)
            )
            return

        if not points:
            console.print(f"[yellow]No chart data for {symbol.upper()}.[/yellow]")
            return

        table = Table(title=f"{symbol.upper()} ({period.upper()})")
        table.add_column("Date")
        table.add_column("Price", justify="right")
        table.add_column("Volume", justify="right")
        for p in points:
            table.add_row(
                p.date.isoformat(),
                str(p.price),
                f"{p.volume:,}" if p.volume is not None else "-",
            )
        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("query")
@click.option("--limit", "-n", type=int, default=None, help="Maximum results.")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"], case_sensitive=False),
    default="table",
    help="Output format.",
)
@click.pass_context
def search(ctx: click.Context, query: str, limit: int | None, output_format: str) -> None:
    """Search symbols by ticker prefix or company name."""
    config = _load_config(ctx)

    async def _run():
        async with _open_resolver(config) as resolver:
            suggestions = await resolver.search_symbols(query, limit)

        if output_format == "json":
            click.echo(json.dumps([s.model_dump() for s in suggestions], indent=2))
            return

        if not suggestions:
            console.print(f"[yellow]No symbols match {query!r}.[/yellow]")
            return

        table = Table(title=f"Symbols matching {query!r}")
        table.add_column("Symbol", style="bold")
        table.add_column("Name")
        table.add_column("Exchange")
        table.add_column("Type")
        for s in suggestions:
            table.add_row(s.symbol, s.name, s.exchange, s.asset_type)
        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# seed / clear / cleanup
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--days",
    "-d",
    type=click.IntRange(min=0),
    default=365,
    show_default=True,
    help="Days of history.",
)
@click.option(
    "--seed",
    "random_seed",
    type=int,
    default=None,
    help="Random seed for reproducible data.",
)
@click.pass_context
def seed(ctx: click.Context, days: int, random_seed: int | None) -> None:
    """Fill the database with synthetic price history for AAPL, MSFT and GOOGL."""
    import random

    from stockbook.seed import seed_store

    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            written = await seed_store(store, days=days, rng=random.Random(random_seed))
        finally:
            await store.close()

        for symbol, count in written.items():
            console.print(f"  {symbol}: {count} records")
        console.print(
            f"[green]\u2713[/green] Seeded {sum(written.values())} records "
            f"for {len(written)} symbols"
        )

    _run_async(_run())


@cli.command()
@click.confirmation_option(prompt="Delete all stored price data?")
@click.pass_context
def clear(ctx: click.Context) -> None:
    """Delete every stored price record."""
    from stockbook.seed import clear_store

    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            deleted = await clear_store(store)
        finally:
            await store.close()
        console.print(f"[green]\u2713[/green] Deleted {deleted} records")

    _run_async(_run())


@cli.command()
@click.option(
    "--days",
    "-d",
    "days_to_keep",
    type=click.IntRange(min=0),
    required=True,
    help="Keep records from the last N days (0 deletes everything).",
)
@click.pass_context
def cleanup(ctx: click.Context, days_to_keep: int) -> None:
    """Delete stored price records older than N days."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            deleted = await store.delete_older_than(days_to_keep)
        finally:
            await store.close()
        console.print(
            f"[green]\u2713[/green] Deleted {deleted} records older than {days_to_keep} days"
        )

    _run_async(_run())


# ---------------------------------------------------------------------------
# import-csv
# ---------------------------------------------------------------------------


@cli.command("import-csv")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--symbol", "-s", type=str, required=True, help="Symbol the rows belong to.")
@click.pass_context
def import_csv(ctx: click.Context, path: str, symbol: str) -> None:
    """Import daily prices for one symbol from a CSV file."""
    from stockbook.prices import load_csv_prices

    config = _load_config(ctx)
    try:
        points = load_csv_prices(path)
    except ValueError as e:
        raise click.UsageError(str(e))

    async def _run():
        store = await _create_store_async(config)
        try:
            records = await store.upsert_many(symbol, points)
        finally:
            await store.close()
        console.print(
            f"[green]\u2713[/green] Imported {len(records)} records for {symbol.upper()}"
        )

    _run_async(_run())


# ---------------------------------------------------------------------------
# missing-dates
# ---------------------------------------------------------------------------


@cli.command("missing-dates")
@click.argument("symbol")
@click.option("--start", "-s", type=str, required=True, help="Start date (YYYY-MM-DD).")
@click.option("--end", "-e", type=str, required=True, help="End date (YYYY-MM-DD).")
@click.pass_context
def missing_dates(ctx: click.Context, symbol: str, start: str, end: str) -> None:
    """List calendar dates with no stored price for SYMBOL."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            gaps = await store.missing_dates(symbol, start, end)
        finally:
            await store.close()

        for day in gaps:
            click.echo(day.isoformat())
        console.print(f"{len(gaps)} missing dates for {symbol.upper()}")

    _run_async(_run())


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show storage status and data coverage."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            healthy = await store.health_check()
            stats = await store.get_statistics()
            symbols = await store.distinct_symbols()
            latest = {s: await store.latest_date_for(s) for s in symbols}
        finally:
            await store.close()

        table = Table(title="Stockbook Status")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")

        table.add_row("Storage backend", config.storage.backend.value)
        table.add_row("Database path", config.storage.sqlite_path)
        table.add_row("Healthy", "yes" if healthy else "no")
        table.add_section()
        table.add_row("Total records", str(stats["total_records"]))
        table.add_row("Symbols", str(stats["symbols_count"]))
        for symbol, day in latest.items():
            table.add_row(f"  {symbol} latest", str(day) if day else "N/A")

        console.print(table)

    _run_async(_run())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
