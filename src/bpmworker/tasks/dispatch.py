"""Fetch-and-dispatch background task."""

import asyncio
import logging
import random
from typing import Optional

from bpmworker.config import settings
from bpmworker.worker.registry import DispatchRegistry

logger = logging.getLogger("bpmworker.dispatch")

_dispatch_task: Optional[asyncio.Task] = None
_shutdown_event: Optional[asyncio.Event] = None


async def fetch_loop(registry: DispatchRegistry) -> None:
    """
    Background loop that fetches leased tasks and starts their handlers.

    The engine long-polls, so a busy loop fetches back to back. After an
    empty batch or an error the loop backs off for `fetch_interval_seconds`
    with ±20% jitter.
    """
    base_interval = settings.fetch_interval_seconds
    logger.info(f"Fetch loop started. [workerId={settings.worker_id}, interval={base_interval}s]")

    while not _shutdown_event.is_set():
        fetched = 0
        try:
            fetched = await registry.fetch_and_dispatch()
        except Exception as e:
            logger.error(f"Fetch and lock has failed: {e}", exc_info=True)

        if fetched > 0:
            continue

        jittered_interval = base_interval * random.uniform(0.8, 1.2)
        try:
            await asyncio.wait_for(_shutdown_event.wait(), timeout=jittered_interval)
        except asyncio.TimeoutError:
            pass

    logger.info("Fetch loop stopped")


async def start_dispatch(registry: DispatchRegistry) -> None:
    """Start the fetch loop background task."""
    global _dispatch_task, _shutdown_event

    _shutdown_event = asyncio.Event()
    _dispatch_task = asyncio.create_task(fetch_loop(registry))


async def stop_dispatch(registry: DispatchRegistry, timeout: float = 30.0) -> None:
    """Stop fetching, then wait for in-flight handlers."""
    global _dispatch_task, _shutdown_event

    if _shutdown_event:
        _shutdown_event.set()

    if _dispatch_task:
        try:
            # An in-progress long poll returns within the engine timeout
            await asyncio.wait_for(_dispatch_task, timeout=settings.engine_timeout_ms / 1000 + 10)
        except asyncio.TimeoutError:
            logger.warning("Fetch loop did not stop gracefully, cancelling")
            _dispatch_task.cancel()
            try:
                await _dispatch_task
            except asyncio.CancelledError:
                pass

    await registry.drain(timeout)

    _dispatch_task = None
    _shutdown_event = None


def is_running() -> bool:
    return _dispatch_task is not None and not _dispatch_task.done()
