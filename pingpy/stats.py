from __future__ import annotations
from dataclasses import dataclass
from math import sqrt
from typing import List

@dataclass(frozen=True)
class StatsReport:
    sent: int
    received: int
    min_ms: float
    max_ms: float
    avg_ms: float
    stddev_ms: float
    total_ms: float
    loss_pct: float

class StatisticsAccumulator:
    """
    Holds the RTT samples and counters of one ping session.

    Derived figures are only computed in report(); nothing is kept incrementally.
    """

    def __init__(self) -> None:
        self.rtts: List[float] = []
        self.sent = 0

    @property
    def received(self) -> int:
        return len(self.rtts)

    def mark_sent(self) -> None:
        self.sent += 1

    def record(self, rtt_ms: float) -> None:
        self.rtts.append(rtt_ms)

    def report(self) -> StatsReport:
        received = self.received
        if self.sent == 0:
            # nothing ever left the host
            loss_pct = 100.0
        else:
            loss_pct = 100.0 * (self.sent - received) / self.sent

        if not self.rtts:
            return StatsReport(self.sent, 0, 0.0, 0.0, 0.0, 0.0, 0.0, loss_pct)

        lo, hi = min(self.rtts), max(self.rtts)
        total = sum(self.rtts)
        # float rounding can push the mean a hair outside [lo, hi]
        avg = min(max(total / received, lo), hi)
        # population std-dev, not sample
        variance = sum((rtt - avg) ** 2 for rtt in self.rtts) / received
        return StatsReport(
            sent=self.sent,
            received=received,
            min_ms=lo,
            max_ms=hi,
            avg_ms=avg,
            stddev_ms=sqrt(variance),
            total_ms=total,
            loss_pct=loss_pct,
        )
