"""Click-based CLI for tibber-exporter.

Thin wrapper around library modules. Zero business logic: every operation
delegates to the exporter or the state stores.
"""

from __future__ import annotations

import asyncio
import logging

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console(stderr=True)

logger = logging.getLogger("tibber_exporter.cli")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from tibber_exporter.core import ConfigError, load_config

        try:
            ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
        except ConfigError as exc:
            console.print(f"[red]Invalid configuration: {escape(str(exc))}[/red]")
            raise SystemExit(2) from exc
    return ctx.obj["config"]


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="TIBBER_EXPORTER_CONFIG",
    default=None,
    help="Path to tibber-exporter.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="tibber-price-exporter")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Tibber price exporter: day-ahead spot prices into your warehouse."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run one export: fetch prices, write new ones, advance the cursor."""
    from tibber_exporter.core import ExporterError
    from tibber_exporter.core.log import configure_logging
    from tibber_exporter.exporter import create_exporter

    config = _load_config(ctx)
    configure_logging(config.logging, verbose=ctx.obj["verbose"])

    async def _run():
        async with create_exporter(config) as exporter:
            return await exporter.run()

    try:
        summary = _run_async(_run())
    except ExporterError as exc:
        logger.error("Export failed: %s", exc, extra={"context": exc.context}, exc_info=True)
        raise SystemExit(1) from exc

    cursor = summary.cursor.isoformat() if summary.cursor else "none"
    console.print(
        f"[green]✓[/green] Wrote {summary.written} of {summary.fetched} prices "
        f"(cursor: {cursor})"
    )


# ---------------------------------------------------------------------------
# state
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def state(ctx: click.Context) -> None:
    """Show the persisted export state."""
    from tibber_exporter.state import create_state_store

    config = _load_config(ctx)

    async def _read():
        store = create_state_store(config.state)
        try:
            return await store.read()
        finally:
            await store.close()

    current = _run_async(_read())
    if current is None:
        console.print("[yellow]No state stored (or state persistence disabled).[/yellow]")
        return

    console.print(f"Cursor: [bold]{current.cursor.isoformat()}[/bold]")

    table = Table(title="Cached future prices")
    table.add_column("From")
    table.add_column("Till")
    table.add_column("Market price", justify="right")
    table.add_column("Tax", justify="right")
    for record in current.cached_future_records:
        table.add_row(
            record.window_start.isoformat(),
            record.window_end.isoformat(),
            f"{record.market_price:.4f}",
            f"{record.market_price_tax:.4f}",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
