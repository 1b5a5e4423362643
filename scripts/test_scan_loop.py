from __future__ import annotations

import asyncio
import logging
import unittest
from unittest.mock import AsyncMock

from arbscan.bot_runtime.loop import compute_scan_delay, run_scan_batch, run_scan_loop, wait_with_stop
from arbscan.trading.concurrency import ConcurrencyLimiter

LOGGER = logging.getLogger("test.loop")


class ScanDelayTests(unittest.TestCase):
    def test_sleeps_for_remaining_interval(self) -> None:
        self.assertAlmostEqual(compute_scan_delay(0.25, 0.06), 0.19)

    def test_slow_batch_starts_next_immediately(self) -> None:
        self.assertEqual(compute_scan_delay(0.25, 0.30), 0.0)
        self.assertEqual(compute_scan_delay(0.25, 0.25), 0.0)


class ScanLoopTests(unittest.IsolatedAsyncioTestCase):
    async def test_runs_every_asset_each_cycle(self) -> None:
        process = AsyncMock()

        cycles = await run_scan_loop(
            logger=LOGGER,
            stop_event=asyncio.Event(),
            assets=["a", "b", "c"],
            limiter=ConcurrencyLimiter(2),
            process=process,
            scan_interval_seconds=0.0,
            max_cycles=2,
        )

        self.assertEqual(cycles, 2)
        self.assertEqual(process.await_count, 6)

    async def test_failed_asset_does_not_abort_siblings(self) -> None:
        seen: list[str] = []

        async def process(asset: str) -> None:
            seen.append(asset)
            if asset == "b":
                raise ValueError("unexpected")

        failures = await run_scan_batch(
            logger=LOGGER,
            assets=["a", "b", "c"],
            limiter=ConcurrencyLimiter(1),
            process=process,
        )

        self.assertEqual(failures, 1)
        self.assertEqual(seen, ["a", "b", "c"])

    async def test_stop_event_interrupts_interval_wait(self) -> None:
        stop_event = asyncio.Event()

        async def process(asset: str) -> None:
            stop_event.set()

        cycles = await asyncio.wait_for(
            run_scan_loop(
                logger=LOGGER,
                stop_event=stop_event,
                assets=["a"],
                limiter=ConcurrencyLimiter(1),
                process=process,
                scan_interval_seconds=30.0,
            ),
            timeout=1.0,
        )

        self.assertEqual(cycles, 1)

    async def test_already_stopped_loop_does_not_scan(self) -> None:
        stop_event = asyncio.Event()
        stop_event.set()
        process = AsyncMock()

        cycles = await run_scan_loop(
            logger=LOGGER,
            stop_event=stop_event,
            assets=["a"],
            limiter=ConcurrencyLimiter(1),
            process=process,
            scan_interval_seconds=0.25,
        )

        self.assertEqual(cycles, 0)
        process.assert_not_awaited()

    async def test_wait_with_stop_returns_early(self) -> None:
        stop_event = asyncio.Event()
        stop_event.set()

        await asyncio.wait_for(wait_with_stop(stop_event, 30.0), timeout=1.0)


if __name__ == "__main__":
    unittest.main()
