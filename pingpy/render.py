from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table

from .codec import (
    EchoOutcome,
    ForeignReply,
    Reply,
    TimeExceeded,
    Timeout,
    Unreachable,
    Unrecognized,
)
from .stats import StatsReport
from .util import ResolvedHost

HEADERS = ["Max", "Min", "Avg", "StdDev", "Total"]


def _fmt_ms(v: float) -> str:
    return f"{v:.3f}ms"


def format_outcome(outcome: EchoOutcome, target: ResolvedHost) -> str:
    """One status line per loop iteration."""
    if isinstance(outcome, Reply):
        ttl = "?" if outcome.ttl is None else outcome.ttl
        return (
            f"{outcome.size} bytes from {target.display}: "
            f"icmp_seq={outcome.sequence} ttl={ttl} time={outcome.rtt:.3f} ms"
        )
    if isinstance(outcome, Timeout):
        return f"Request timeout for icmp_seq {outcome.sequence}"
    if isinstance(outcome, ForeignReply):
        return f"{target.host}: Not our EchoReply (id={outcome.identifier})"
    if isinstance(outcome, Unreachable):
        return f"{target.host}: Destination Host Unreachable (code={outcome.code})."
    if isinstance(outcome, TimeExceeded):
        return f"{target.host}: TTL Exceeded."
    if isinstance(outcome, Unrecognized):
        return f"Unexpected ICMP message type {outcome.type} (code={outcome.code})."
    raise TypeError(f"not an echo outcome: {outcome!r}")


def format_summary(report: StatsReport) -> str:
    return (
        f"Packets sent: {report.sent}, Packets received: {report.received}, "
        f"Packet loss: {report.loss_pct:.2f}%"
    )


def build_stats_table(report: StatsReport, *, ascii_mode: bool = False) -> Table:
    """Create a Rich Table with the RTT figures of a finished session."""
    t = Table(
        box=box.ASCII if ascii_mode else box.ROUNDED,
        show_edge=True,
        show_lines=False,
        title="RTT",
        pad_edge=False,
    )
    for h in HEADERS:
        t.add_column(h, justify="right", no_wrap=True)

    t.add_row(
        _fmt_ms(report.max_ms),
        _fmt_ms(report.min_ms),
        _fmt_ms(report.avg_ms),
        _fmt_ms(report.stddev_ms),
        _fmt_ms(report.total_ms),
    )
    return t


def render_report(console: Console, target: ResolvedHost, report: StatsReport) -> None:
    console.print()
    console.print(f"=================== STATISTICS ({target.host}) ===================", markup=False)
    console.print(format_summary(report), markup=False)
    console.print(
        "Max/Min/Avg/StdDev/Total RTT ==> "
        + "/".join(_fmt_ms(v) for v in (report.max_ms, report.min_ms, report.avg_ms, report.stddev_ms, report.total_ms)),
        markup=False,
    )
    console.print(build_stats_table(report, ascii_mode=not console.is_terminal))
