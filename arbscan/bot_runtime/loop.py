from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from arbscan.common import log_event
from arbscan.trading import ConcurrencyLimiter


async def wait_with_stop(stop_event: asyncio.Event, timeout_seconds: float) -> None:
    if timeout_seconds <= 0:
        return

    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        pass


def compute_scan_delay(interval_seconds: float, elapsed_seconds: float) -> float:
    return max(0.0, interval_seconds - elapsed_seconds)


async def run_scan_batch(
    *,
    logger: logging.Logger,
    assets: Sequence[str],
    limiter: ConcurrencyLimiter,
    process: Callable[[str], Awaitable[Any]],
) -> int:
    """Fan every asset through the limiter and wait for all of them.

    Returns how many invocations raised; those never cancel their siblings.
    """
    outcomes = await asyncio.gather(
        *(limiter.run(lambda asset=asset: process(asset)) for asset in assets),
        return_exceptions=True,
    )

    failures = 0
    for asset, outcome in zip(assets, outcomes):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            failures += 1
            log_event(
                logger,
                level="error",
                event="pipeline_escaped_error",
                message="Asset pipeline raised outside its own error handling",
                asset=asset,
                error=str(outcome),
            )
    return failures


async def run_scan_loop(
    *,
    logger: logging.Logger,
    stop_event: asyncio.Event,
    assets: Sequence[str],
    limiter: ConcurrencyLimiter,
    process: Callable[[str], Awaitable[Any]],
    scan_interval_seconds: float,
    max_cycles: int | None = None,
) -> int:
    loop = asyncio.get_running_loop()
    cycles = 0

    while not stop_event.is_set():
        started = loop.time()
        await run_scan_batch(logger=logger, assets=assets, limiter=limiter, process=process)
        cycles += 1

        if max_cycles is not None and cycles >= max_cycles:
            break

        elapsed = loop.time() - started
        await wait_with_stop(stop_event, compute_scan_delay(scan_interval_seconds, elapsed))

    log_event(
        logger,
        level="info",
        event="scan_loop_stopped",
        message="Scan loop stopped",
        cycles=cycles,
    )
    return cycles
