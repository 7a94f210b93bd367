from __future__ import annotations

"""Bridge between the background sweep thread and the server's asyncio loop.

Store coroutines must run on the loop that owns the database engine. The
FastAPI lifespan records that loop here; the sweep thread then submits its
coroutine with run_coroutine_threadsafe and waits for the result. Without a
captured loop (unit tests, scripts) the coroutine runs on a private loop.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Captured FastAPI server loop used for store operations from the sweep thread
_persistence_loop: Optional[asyncio.AbstractEventLoop] = None


def set_persistence_loop(loop: Optional[asyncio.AbstractEventLoop]) -> None:
    """Record (or clear, with None) the owning asyncio loop for store operations."""
    global _persistence_loop
    _persistence_loop = loop
    logger.debug(
        "persistence_loop_set",
        extra={
            "thread_name": threading.current_thread().name,
            "loop_id": id(loop) if loop is not None else None,
        },
    )


def get_persistence_loop() -> Optional[asyncio.AbstractEventLoop]:
    return _persistence_loop


def run_and_wait(coro: Coroutine[Any, Any, T], *, timeout: float, op: str = "") -> T:
    """Run ``coro`` to completion from a non-loop thread and return its result.

    Uses the captured persistence loop when it is running, otherwise
    asyncio.run on the calling thread. Raises TimeoutError (after cancelling
    the coroutine) when it does not finish within ``timeout`` seconds; other
    exceptions from the coroutine propagate unchanged.
    """
    loop = _persistence_loop
    if loop is None or loop.is_closed() or not loop.is_running():
        logger.debug("persistence_loop_missing for %s; running on private loop", op)
        return asyncio.run(asyncio.wait_for(coro, timeout))
    fut = asyncio.run_coroutine_threadsafe(coro, loop)
    logger.debug(
        "persistence_submit",
        extra={
            "op": op,
            "thread_name": threading.current_thread().name,
            "loop_id": id(loop),
        },
    )
    try:
        return fut.result(timeout=timeout)
    except TimeoutError:
        fut.cancel()
        raise


__all__ = ["set_persistence_loop", "get_persistence_loop", "run_and_wait"]
