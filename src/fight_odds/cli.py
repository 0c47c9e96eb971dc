"""CLI entrypoint for the MMA odds ingestion service."""

from __future__ import annotations

import asyncio
import signal
from contextlib import AsyncExitStack
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from fight_odds.adapters.odds_api import OddsAPIAdapter, SportsbookFilter
from fight_odds.config import THE_ODDS_API, Settings, get_settings, load_source_configs
from fight_odds.core.arbitrage import ArbitrageScanner
from fight_odds.core.ingestion import OddsIngestionJob
from fight_odds.core.movement import MovementDetector
from fight_odds.db import MemorySink, OddsSink, Repository
from fight_odds.errors import ConfigError, IngestionError
from fight_odds.events import RATE_LIMIT_HIT, RETRY_ATTEMPT, EventBus, EventRecorder
from fight_odds.models.alerts import ArbitrageOpportunity, MovementAlert, MovementType
from fight_odds.models.ingestion import IngestionResult
from fight_odds.observability.logging import setup_logging
from fight_odds.resilience.pipeline import PipelineRegistry

app = typer.Typer(
    name="fight-odds",
    help="MMA odds ingestion: movement alerts and arbitrage detection.",
    no_args_is_help=True,
)
console = Console()


_MOVEMENT_STYLE = {
    MovementType.STEAM: "bold red",
    MovementType.REVERSE: "yellow",
    MovementType.SIGNIFICANT: "cyan",
}


def _fmt_price(price: float) -> str:
    if price == 0:
        return "-"
    return f"{price:+.0f}"


def _render_alerts_table(alerts: list[MovementAlert], title: str = "Movement Alerts") -> None:
    if not alerts:
        console.print("[dim]No movement alerts[/]")
        return
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Time", style="dim")
    table.add_column("Fight", width=40)
    table.add_column("Book")
    table.add_column("Type")
    table.add_column("Move")
    table.add_column("F1")
    table.add_column("F2")
    for alert in alerts:
        style = _MOVEMENT_STYLE.get(alert.movement_type, "dim")
        table.add_row(
            alert.timestamp.strftime("%m-%d %H:%M"),
            alert.fight_id[:40],
            alert.bookmaker,
            f"[{style}]{alert.movement_type.value}[/]",
            f"{alert.percentage_change:.1f}%",
            f"{_fmt_price(alert.old_odds.fighter1_odds)} -> {_fmt_price(alert.new_odds.fighter1_odds)}",
            f"{_fmt_price(alert.old_odds.fighter2_odds)} -> {_fmt_price(alert.new_odds.fighter2_odds)}",
        )
    console.print(table)


def _render_opportunities_table(opportunities: list[ArbitrageOpportunity], title: str = "Arbitrage") -> None:
    if not opportunities:
        console.print("[dim]No arbitrage opportunities[/]")
        return
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Fight", width=40)
    table.add_column("Profit")
    table.add_column("Fighter 1")
    table.add_column("Fighter 2")
    table.add_column("Stakes")
    for opp in opportunities:
        stakes = ", ".join(f"{book} ${stake:.2f}" for book, stake in opp.stakes.items())
        table.add_row(
            opp.fight_id[:40],
            f"[green]{opp.profit_pct:.2f}%[/]",
            f"{opp.best_fighter1.bookmaker} {_fmt_price(opp.best_fighter1.odds)}",
            f"{opp.best_fighter2.bookmaker} {_fmt_price(opp.best_fighter2.odds)}",
            stakes,
        )
    console.print(table)


def _render_result(result: IngestionResult, recorder: Optional[EventRecorder] = None) -> None:
    summary = (
        f"[bold]{result.source_id}[/]  |  processed [cyan]{result.records_processed}[/]"
        f"  |  skipped [yellow]{result.records_skipped}[/]"
        f"  |  {result.processing_time_ms:.0f}ms"
    )
    if recorder is not None:
        retries = len(recorder.named(RETRY_ATTEMPT))
        throttled = len(recorder.named(RATE_LIMIT_HIT))
        if retries or throttled:
            summary += f"  |  retries {retries}  |  throttled {throttled}"
    console.print(summary)

    for finding in result.errors:
        console.print(f"[red]✗ {finding.field}: {finding.message}[/]")
    for finding in result.warnings:
        console.print(f"[yellow]⚠ {finding.field}: {finding.message}[/]")

    _render_alerts_table(result.movement_alerts)
    _render_opportunities_table(result.arbitrage_opportunities)


def _build_job(
    settings: Settings,
    registry: PipelineRegistry,
    sink: OddsSink,
    bus: EventBus,
) -> OddsIngestionJob:
    adapter = OddsAPIAdapter(
        registry.get(THE_ODDS_API),
        sportsbook_filter=SportsbookFilter(
            include=settings.include_bookmakers,
            exclude=settings.exclude_bookmakers,
            priority=settings.priority_bookmakers,
        ),
    )
    detector = MovementDetector(
        min_percentage_change=settings.min_percentage_change,
        steam_percentage=settings.steam_percentage,
        max_entries=settings.movement_cache_size,
        alert_cooldown_seconds=settings.alert_cooldown_seconds,
        minimum_odds_value=settings.minimum_odds_value,
        bus=bus,
    )
    scanner = ArbitrageScanner(
        min_profit_pct=settings.min_arbitrage_profit,
        reference_stake=settings.reference_stake,
        ttl_seconds=settings.arbitrage_ttl_seconds,
        bus=bus,
    )
    return OddsIngestionJob(
        adapter,
        sink,
        detector,
        scanner,
        bus=bus,
        enable_arbitrage=settings.enable_arbitrage_detection,
        next_sync_seconds=settings.poll_interval_seconds,
    )


def _load_configs(settings: Settings) -> dict:
    try:
        return load_source_configs(settings)
    except ConfigError as e:
        console.print(f"[red]✗ {e}[/]")
        raise typer.Exit(1)


def _require_odds_api(settings: Settings) -> None:
    if not settings.odds_api_configured:
        console.print("[red]✗ The Odds API not configured (set FIGHT_ODDS_ODDS_API_KEY)[/]")
        raise typer.Exit(1)


@app.command("sync")
def sync(
    event_id: Optional[str] = typer.Option(None, "--event", "-e", help="Sync a single event id"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Keep results in memory instead of the database"),
) -> None:
    """Run one sync cycle against The Odds API."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    _require_odds_api(settings)
    configs = _load_configs(settings)

    async def _run() -> None:
        bus = EventBus()
        recorder = EventRecorder(bus)
        registry = PipelineRegistry.from_configs(configs, bus=bus)

        async with AsyncExitStack() as stack:
            stack.push_async_callback(registry.close)
            if dry_run:
                sink: OddsSink = MemorySink()
            else:
                sink = await stack.enter_async_context(Repository(settings.database_path))

            job = _build_job(settings, registry, sink, bus)
            try:
                result = await job.sync(event_id=event_id)
            except IngestionError as e:
                console.print(f"[red]✗ {e}[/]")
                raise typer.Exit(1)

            _render_result(result, recorder)

    asyncio.run(_run())


@app.command("run")
def run(
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Poll interval in seconds"),
) -> None:
    """Start the continuous ingestion loop."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    _require_odds_api(settings)
    configs = _load_configs(settings)
    poll_interval = interval or settings.poll_interval_seconds

    console.print(f"[green]Starting ingestion (every {poll_interval:.0f}s)...[/]")

    async def _run() -> None:
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop.set)
            except NotImplementedError:
                # Not available on Windows event loops
                pass

        bus = EventBus()
        registry = PipelineRegistry.from_configs(configs, bus=bus, shutdown=stop)

        async with Repository(settings.database_path) as repo:
            try:
                job = _build_job(settings, registry, repo, bus)
                await job.run_forever(poll_interval, stop, on_result=_render_result)
            finally:
                await registry.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass
    console.print("\n[yellow]Stopped[/]")


@app.command("sources")
def sources() -> None:
    """List configured sources and any configuration problems."""
    settings = get_settings()
    configs = _load_configs(settings)

    table = Table(title="Sources", show_header=True, header_style="bold")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Base URL")
    table.add_column("Limits")
    table.add_column("Retries")
    table.add_column("Status")
    for config in configs.values():
        problems = config.validate_config()
        status = "[green]ok[/]" if not problems else f"[red]{'; '.join(problems)}[/]"
        table.add_row(
            config.source_id,
            config.name,
            config.base_url,
            f"{config.rate_limit.requests_per_minute}/min {config.rate_limit.requests_per_hour}/h",
            str(config.retry.max_retries),
            status,
        )
    console.print(table)


@app.command("status")
def status(
    ping: bool = typer.Option(True, "--ping/--no-ping", help="Send one request per source first"),
) -> None:
    """Show circuit breaker and rate limiter state per source."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    configs = _load_configs(settings)

    async def _run() -> list[dict]:
        registry = PipelineRegistry.from_configs(configs)
        try:
            if ping:
                for config in configs.values():
                    if "sports" not in config.endpoints or config.validate_config():
                        continue
                    try:
                        await registry.get(config.source_id).get_json("sports")
                        console.print(f"[green]✓[/] {config.source_id} reachable")
                    except Exception as e:
                        console.print(f"[red]✗ {config.source_id}: {e}[/]")
            return registry.statuses()
        finally:
            await registry.close()

    statuses = asyncio.run(_run())

    table = Table(title="Pipelines", show_header=True, header_style="bold")
    table.add_column("Source")
    table.add_column("Circuit")
    table.add_column("Failures")
    table.add_column("Req/min")
    table.add_column("Req/h")
    for entry in statuses:
        circuit = entry["circuit_state"]
        style = "green" if circuit == "closed" else "red"
        table.add_row(
            entry["source_id"],
            f"[{style}]{circuit}[/]",
            str(entry["failure_count"]),
            str(entry["rate_limiter"]["requests_this_minute"]),
            str(entry["rate_limiter"]["requests_this_hour"]),
        )
    console.print(table)


@app.command("usage")
def usage() -> None:
    """Show The Odds API quota usage."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    _require_odds_api(settings)
    configs = _load_configs(settings)

    async def _run() -> None:
        registry = PipelineRegistry.from_configs(configs)
        try:
            adapter = OddsAPIAdapter(registry.get(THE_ODDS_API))
            data = await adapter.get_usage()
        except Exception as e:
            console.print(f"[red]✗ Usage request failed: {e}[/]")
            raise typer.Exit(1)
        finally:
            await registry.close()

        console.print(f"Requests used: [cyan]{data.get('requests_used') or '?'}[/]")
        console.print(f"Requests remaining: [cyan]{data.get('requests_remaining') or '?'}[/]")

    asyncio.run(_run())


@app.command("show")
def show(
    last: int = typer.Option(20, "--last", "-n", help="Show last N alerts"),
) -> None:
    """Print recent movement alerts and live arbitrage from the database."""
    settings = get_settings()

    async def _run() -> None:
        async with Repository(settings.database_path) as repo:
            alerts = await repo.get_recent_alerts(limit=last)
            opportunities = await repo.get_active_opportunities()

        _render_alerts_table(alerts, title=f"Last {len(alerts)} Alerts")
        _render_opportunities_table(opportunities, title="Active Arbitrage")

    asyncio.run(_run())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
