"""Click-based CLI for bullion-rates.

Thin wrapper around library modules. Every operation delegates to the
sources, cache, pricing, storage or sync modules through ``RateService``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from decimal import Decimal, InvalidOperation

import click
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from bullion_rates.core import load_config

        config = load_config(config_path=ctx.obj.get("config_path"))
        if not ctx.obj.get("verbose"):
            logging.getLogger().setLevel(config.logging.level)
        ctx.obj["config"] = config
    return ctx.obj["config"]


async def _open_service(config):
    """Open the service and seed its cache."""
    from bullion_rates.service import RateService

    service = await RateService.open(config)
    await service.seed()
    return service


def _money(value) -> str:
    return f"{value:,.2f}" if value is not None else "N/A"


def _print_rates(rates, title: str) -> None:
    if not rates:
        console.print("[yellow]No rates available (no base rate held).[/yellow]")
        return
    table = Table(title=title)
    table.add_column("Product", style="bold")
    table.add_column("Purity")
    table.add_column("Weight", justify="right")
    table.add_column("Per gram", justify="right")
    table.add_column("Total", justify="right", style="green")
    table.add_column("Adj.", justify="right")
    for r in rates:
        table.add_row(
            r.product_name,
            r.purity,
            f"{r.weight_value} {r.weight_unit}",
            _money(r.rate_per_gram),
            _money(r.total_rate),
            f"{r.manual_adjustment:+}" if r.manual_adjustment else "",
        )
    console.print(table)


def _print_snapshot(snap, stale_after: float) -> None:
    from bullion_rates.cache.rate_cache import utcnow

    now = utcnow()
    age = snap.age_seconds(now)
    table = Table(title="Base Rate")
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Rate per gram", _money(snap.rate_per_gram))
    table.add_row("Rate per kg", _money(snap.rate_per_kg))
    table.add_row("Source", snap.source_name or "N/A")
    table.add_row("USD-INR", _money(snap.usd_inr_rate))
    table.add_section()
    table.add_row("Last updated", snap.last_updated_at.isoformat() if snap.last_updated_at else "N/A")
    table.add_row("Age", f"{age:.1f}s" if age is not None else "N/A")
    table.add_row("Stale", "yes" if snap.is_stale(now, stale_after) else "no")
    table.add_row("Consecutive failures", str(snap.consecutive_failure_count))
    console.print(table)


def _parse_offset(value: str) -> Decimal:
    from bullion_rates.pricing.adjustments import check_offset

    try:
        offset = Decimal(value)
    except InvalidOperation:
        raise click.BadParameter(f"not a number: {value!r}", param_hint="--offset")
    try:
        return check_offset(offset)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--offset")


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="BULLION_RATES_CONFIG",
    default=None,
    help="Path to bullion-rates.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="bullion-rates")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Bullion Rates: live silver base rate and derived catalog prices."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console

    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--source", "-s", type=str, default=None, help="Query only this source.")
@click.pass_context
def fetch(ctx: click.Context, source: str | None) -> None:
    """Resolve one reading from the live feeds without touching the cache."""
    from bullion_rates.core.exceptions import AllSourcesFailed
    from bullion_rates.sources import SourceResolver, build_adapters

    config = _load_config(ctx)

    async def _run():
        resolver = SourceResolver(
            build_adapters(config),
            selection=config.selection,
            adapter_timeout=config.refresh.adapter_timeout,
        )
        try:
            if source is not None:
                return await resolver.resolve_source(source)
            return await resolver.resolve()
        finally:
            await resolver.close()

    try:
        reading = _run_async(_run())
    except AllSourcesFailed as e:
        console.print(f"[red]No reading:[/red] {e}")
        for name, error in e.context.get("failures", {}).items():
            console.print(f"  [bold]{name}[/bold]: {error}")
        raise SystemExit(1)

    table = Table(title="Live Reading")
    table.add_column("Field", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Source", reading.source_name)
    table.add_row("Rate per gram", _money(reading.rate_per_gram))
    table.add_row("Rate per kg", _money(reading.rate_per_kg))
    table.add_row("USD-INR", _money(reading.usd_inr_rate))
    table.add_row("Observed at", reading.observed_at.isoformat())
    console.print(table)


# ---------------------------------------------------------------------------
# refresh / initialize
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Seed, run one forced refresh cycle, and sync the catalog."""
    from bullion_rates.core.models import RefreshOutcome

    config = _load_config(ctx)

    async def _run():
        service = await _open_service(config)
        try:
            outcome = await service.scheduler.force_refresh()
            await service.scheduler.drain()
            return outcome, service.cache.snapshot(), service.current_rates()
        finally:
            await service.close()

    outcome, snap, rates = _run_async(_run())
    color = "green" if outcome == RefreshOutcome.UPDATED else "red"
    console.print(f"Refresh outcome: [{color}]{outcome}[/{color}]")
    _print_snapshot(snap, config.refresh.stale_after)
    _print_rates(rates, f"Catalog ({config.catalog.location})")
    if outcome == RefreshOutcome.FAILED:
        raise SystemExit(1)


@cli.command()
@click.pass_context
def initialize(ctx: click.Context) -> None:
    """Write the full catalog to the store from the seeded base rate."""
    config = _load_config(ctx)

    async def _run():
        service = await _open_service(config)
        try:
            return await service.initialize_catalog()
        finally:
            await service.close()

    report = _run_async(_run())
    console.print(
        f"Initialized [bold]{len(report.persisted)}[/bold] rows for {report.location}"
    )
    for name, error in report.failed.items():
        console.print(f"  [red]{name}[/red]: {error}")
    if report.failed:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# adjust
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("product")
@click.option("--offset", type=str, default=None, help="Signed per-gram offset.")
@click.option("--clear", is_flag=True, default=False, help="Remove the adjustment.")
@click.pass_context
def adjust(ctx: click.Context, product: str, offset: str | None, clear: bool) -> None:
    """Set or clear a product's manual adjustment (PRODUCT is a name or id)."""
    if clear == (offset is not None):
        raise click.UsageError("Pass exactly one of --offset or --clear")
    value = None if clear else _parse_offset(offset)

    config = _load_config(ctx)

    async def _run():
        service = await _open_service(config)
        try:
            definition = service.catalog.get(product) or service.catalog.by_id(product)
            if definition is None:
                return None, None
            return definition, await service.set_adjustment(definition, value)
        finally:
            await service.close()

    definition, rate = _run_async(_run())
    if definition is None:
        console.print(f"[red]Unknown product:[/red] {product}")
        raise SystemExit(1)
    if value is None:
        console.print(f"Cleared adjustment for [bold]{definition.name}[/bold]")
    else:
        console.print(f"Set adjustment for [bold]{definition.name}[/bold] to {value:+}")
    if rate is not None:
        _print_rates([rate], "Adjusted Rate")


# ---------------------------------------------------------------------------
# products
# ---------------------------------------------------------------------------


@cli.command()
def products() -> None:
    """List the product catalog with product ids."""
    from bullion_rates.pricing import ProductCatalog, encode_product_id

    table = Table(title="Product Catalog")
    table.add_column("Product", style="bold")
    table.add_column("Kind")
    table.add_column("Weight", justify="right")
    table.add_column("Purity")
    table.add_column("Id", style="dim")
    for p in ProductCatalog():
        table.add_row(
            p.name, str(p.kind), f"{p.weight_value} {p.weight_unit}", str(p.purity),
            encode_product_id(p.name),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address.")
@click.option("--port", "-p", type=int, default=None, help="Port number.")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port
    if ctx.obj.get("config_path"):
        # The factory reloads config in the server process.
        os.environ["BULLION_RATES_CONFIG"] = ctx.obj["config_path"]

    console.print(f"Starting bullion-rates API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "bullion_rates.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the seeded base rate and stored catalog coverage."""
    config = _load_config(ctx)

    async def _run():
        service = await _open_service(config)
        try:
            healthy = await service.store.health_check()
            stored = await service.store.list_rates(config.catalog.location) if healthy else []
            return service.cache.snapshot(), healthy, stored, service.adjustments.snapshot()
        finally:
            await service.close()

    snap, healthy, stored, adjustments = _run_async(_run())
    _print_snapshot(snap, config.refresh.stale_after)

    table = Table(title="Bullion Rates Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Selection", config.selection)
    table.add_row("Enabled sources", ", ".join(s.name for s in config.enabled_sources))
    table.add_row("Location", config.catalog.location)
    table.add_section()
    table.add_row("Database path", config.storage.sqlite_path)
    table.add_row("Database reachable", "yes" if healthy else "no")
    table.add_row("Stored rows", str(len(stored)))
    table.add_row("Manual adjustments", str(len(adjustments)))
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
