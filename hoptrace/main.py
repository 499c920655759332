"""Command-line front end: run a live session or inspect a saved one."""

from __future__ import annotations

import argparse
import asyncio
import math
from typing import Optional, Sequence

from rich import box
from rich.live import Live
from rich.table import Table

from ._aggregate import INTERVALS, AggregatedBucket, aggregate
from ._codec import LoadedSession, SessionCodec
from ._config import (
    DISCOVERY_AGGREGATE,
    DISCOVERY_PER_TTL,
    EngineSettings,
    SessionConfig,
    TickPolicy,
)
from ._events import Event, SessionError
from ._exceptions import HoptraceError, PersistenceError
from ._hop import HopSnapshot
from ._log import console, setup_logging
from ._session import SessionController, SessionState


def _format_ms(value: Optional[float]) -> str:
    if value is None or not math.isfinite(value):
        return "-"
    return f"{value:.2f}"


def build_hop_table(
    title: str, snapshots: Sequence[HopSnapshot], caption: str = ""
) -> Table:
    table = Table(title=title, caption=caption, box=box.SQUARE, expand=True)
    table.add_column("Hop", justify="right", style="cyan", no_wrap=True)
    table.add_column("Address", style="magenta")
    table.add_column("Hostname", style="green")
    table.add_column("Sent", justify="right", style="yellow")
    table.add_column("Recv", justify="right", style="yellow")
    table.add_column("Loss %", justify="right", style="red")
    table.add_column("Last", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("Best", justify="right")
    table.add_column("Worst", justify="right")

    for hop in snapshots:
        stats = hop.stats
        table.add_row(
            str(hop.hop_number),
            hop.ip,
            hop.hostname or "",
            str(stats.sent),
            str(stats.received),
            f"{stats.loss_percent:.1f}",
            _format_ms(stats.rtt_last),
            _format_ms(stats.rtt_avg),
            _format_ms(stats.rtt_min),
            _format_ms(stats.rtt_max),
        )
    return table


def build_bucket_table(title: str, buckets: Sequence[AggregatedBucket]) -> Table:
    table = Table(title=title, box=box.SQUARE, expand=True)
    table.add_column("Start (ms)", justify="right", style="cyan")
    table.add_column("Pings", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Avg", justify="right")
    table.add_column("Min", justify="right")
    table.add_column("Max", justify="right")
    table.add_column("Timeout", justify="center")
    for bucket in buckets:
        table.add_row(
            str(bucket.bucket_start),
            str(bucket.total_count),
            str(bucket.failure_count),
            _format_ms(bucket.avg_rtt),
            _format_ms(bucket.min_rtt),
            _format_ms(bucket.max_rtt),
            "yes" if bucket.had_any_timeout else "",
        )
    return table


def _session_title(controller: SessionController) -> str:
    requested = controller.requested_target or "?"
    resolved = controller.config.target if controller.config else requested
    suffix = f" ({resolved})" if resolved != requested else ""
    return f"Route to {requested}{suffix}"


async def run_live(
    config: SessionConfig,
    settings: EngineSettings,
    duration: Optional[float] = None,
    save_path: Optional[str] = None,
) -> int:
    controller = SessionController(settings=settings)

    def render() -> Table:
        return build_hop_table(
            _session_title(controller),
            controller.snapshots(),
            caption=controller.state.value,
        )

    with Live(render(), console=console, refresh_per_second=4) as live:

        def on_event(event: Event) -> None:
            if isinstance(event, SessionError):
                console.print(f"[red]{event.message}[/red]")
            live.update(render())

        controller.subscribe(on_event)
        try:
            await controller.start(config)
            if duration is None:
                await controller.wait()
            else:
                await asyncio.wait_for(controller.wait(), timeout=duration)
        except asyncio.TimeoutError:
            pass
        except HoptraceError:
            return 1
        finally:
            if save_path and controller.state is SessionState.PROBING:
                SessionCodec().save(save_path, controller.config, controller.hops)
            live.update(render())
            await controller.stop()
    return 0


def show_saved(path: str, interval: Optional[str], hop_number: Optional[int]) -> int:
    try:
        loaded: LoadedSession = SessionCodec().load(path)
    except (OSError, PersistenceError) as exc:
        console.print(f"[red]{exc}[/red]")
        return 1

    controller = SessionController.from_snapshot(loaded)
    title = f"Route to {loaded.config.target} ({loaded.exported_at})"
    if hop_number is None:
        console.print(build_hop_table(title, controller.snapshots(), caption=path))
        return 0

    try:
        hop = controller.get_hop(hop_number)
    except HoptraceError as exc:
        console.print(f"[red]{exc}[/red]")
        return 1
    buckets = aggregate(hop.history, interval or "minute")
    console.print(
        build_bucket_table(f"{title} hop {hop.hop_number} {hop.ip}", buckets)
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hoptrace",
        description="Discover the route to a host and keep pinging every hop",
    )
    parser.add_argument("host", nargs="?", help="target host or IP")
    parser.add_argument("-m", "--max-hops", type=int, default=30, help="max hop TTL")
    parser.add_argument(
        "-t", "--timeout", type=int, default=1000, help="per-probe timeout in ms"
    )
    parser.add_argument(
        "-q", "--probes", type=int, default=3, help="traceroute probes per hop"
    )
    parser.add_argument(
        "-d",
        "--duration",
        type=float,
        default=None,
        help="stop after this many seconds (default: until interrupted)",
    )
    parser.add_argument("--save", metavar="FILE", help="save the session when done")
    parser.add_argument(
        "--skip-busy-ticks",
        action="store_true",
        help="skip a ping round while the previous one is still running",
    )
    parser.add_argument(
        "--aggregate-discovery",
        action="store_true",
        help="discover hops with one traceroute run instead of one per TTL",
    )
    parser.add_argument("--platform", choices=["unix", "darwin", "windows"])
    parser.add_argument("--load", metavar="FILE", help="show a saved session")
    parser.add_argument(
        "--interval",
        choices=list(INTERVALS),
        help="bucket width when showing a saved hop",
    )
    parser.add_argument("--hop", type=int, help="hop to aggregate with --load")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    return parser


def run(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging("DEBUG" if args.verbose > 1 else "INFO" if args.verbose else "WARNING")

    if args.load:
        return show_saved(args.load, args.interval, args.hop)
    if not args.host:
        parser.error("a target host is required unless --load is given")

    try:
        config = SessionConfig(
            target=args.host,
            max_hops=args.max_hops,
            timeout=args.timeout,
            probes_per_hop=args.probes,
        )
        settings = EngineSettings(
            tick_policy=TickPolicy.SKIP if args.skip_busy_ticks else TickPolicy.OVERLAP,
            discovery_mode=(
                DISCOVERY_AGGREGATE if args.aggregate_discovery else DISCOVERY_PER_TTL
            ),
            platform=args.platform,
        )
    except ValueError as exc:
        parser.error(str(exc))

    try:
        return asyncio.run(run_live(config, settings, args.duration, args.save))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130


if __name__ == "__main__":
    raise SystemExit(run())
