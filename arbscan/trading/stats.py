from __future__ import annotations

import asyncio
import logging
import math
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable

from arbscan.common import log_event

DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_TICK_SECONDS = 1.0


@dataclass(slots=True, frozen=True)
class StatsSnapshot:
    window_seconds: float
    spreads_seen: int
    candidates: int
    executed: int
    best_net: float
    average_net: float
    average_candidate_net: float
    near_miss: int
    errors: int

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        if not math.isfinite(self.best_net):
            payload["best_net"] = None
        return payload


class StatsAggregator:
    """Rolling counters shared by every pipeline invocation.

    Each update is a short synchronous critical section guarded by a lock,
    so concurrent writers never interleave a read-modify-write.
    """

    def __init__(
        self,
        *,
        logger: logging.Logger,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._logger = logger
        self._window_seconds = max(1.0, float(window_seconds))
        self._clock = clock
        self._lock = threading.Lock()
        self._window_started_at = clock()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self.spreads_seen = 0
        self.candidates = 0
        self.executed = 0
        self.best_net = -math.inf
        self.net_sum = 0.0
        self.candidate_net_sum = 0.0
        self.near_miss = 0
        self.errors = 0

    def record_opportunity(self, *, net_profit: float, candidate: bool, near_miss: bool) -> None:
        with self._lock:
            self.spreads_seen += 1
            self.net_sum += net_profit
            if net_profit > self.best_net:
                self.best_net = net_profit
            if candidate:
                self.candidates += 1
                self.candidate_net_sum += net_profit
            elif near_miss:
                self.near_miss += 1

    def record_execution(self) -> None:
        with self._lock:
            self.executed += 1

    def record_error(self) -> None:
        with self._lock:
            self.errors += 1

    def _build_snapshot(self, elapsed: float) -> StatsSnapshot:
        return StatsSnapshot(
            window_seconds=elapsed,
            spreads_seen=self.spreads_seen,
            candidates=self.candidates,
            executed=self.executed,
            best_net=self.best_net,
            average_net=self.net_sum / self.spreads_seen if self.spreads_seen else 0.0,
            average_candidate_net=(
                self.candidate_net_sum / self.candidates if self.candidates else 0.0
            ),
            near_miss=self.near_miss,
            errors=self.errors,
        )

    def peek(self) -> StatsSnapshot:
        with self._lock:
            return self._build_snapshot(self._clock() - self._window_started_at)

    def snapshot(self) -> StatsSnapshot | None:
        """Emit and reset once the window has elapsed; otherwise return None."""
        with self._lock:
            now = self._clock()
            elapsed = now - self._window_started_at
            if elapsed < self._window_seconds:
                return None
            summary = self._build_snapshot(elapsed)
            self._window_started_at = now
            self._reset_counters()

        log_event(
            self._logger,
            level="info",
            event="stats_snapshot",
            message=(
                f"SNAPSHOT spreads={summary.spreads_seen} candidates>=min={summary.candidates} "
                f"executed={summary.executed} bestNet={summary.best_net:.4f} "
                f"avgNet={summary.average_net:.4f} nearMiss={summary.near_miss} errors={summary.errors}"
            ),
            **summary.to_dict(),
        )
        return summary

    def flush(self) -> StatsSnapshot:
        """Log the partial window without resetting it; used on shutdown."""
        summary = self.peek()
        log_event(
            self._logger,
            level="info",
            event="stats_final",
            message=(
                f"FINAL spreads={summary.spreads_seen} candidates>=min={summary.candidates} "
                f"executed={summary.executed} nearMiss={summary.near_miss} errors={summary.errors}"
            ),
            **summary.to_dict(),
        )
        return summary


async def run_stats_reporter(
    *,
    stats: StatsAggregator,
    stop_event: asyncio.Event,
    tick_seconds: float = DEFAULT_TICK_SECONDS,
) -> None:
    while not stop_event.is_set():
        stats.snapshot()
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=tick_seconds)
        except asyncio.TimeoutError:
            pass
    stats.flush()
