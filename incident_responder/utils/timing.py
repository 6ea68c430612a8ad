"""
Incident Responder - Cancellable Waits
======================================

Every suspension point in the pipeline honours the shared stop event.
"""

import asyncio
from typing import Any, Optional


async def _race_stop(operation: asyncio.Future, stop_event: asyncio.Event) -> bool:
    """Await ``operation`` unless the stop event fires first; True if it completed."""
    stopper = asyncio.ensure_future(stop_event.wait())
    done, pending = await asyncio.wait(
        {operation, stopper},
        return_when=asyncio.FIRST_COMPLETED
    )
    for task in pending:
        task.cancel()
    return operation in done


async def put_or_stop(queue: asyncio.Queue, item: Any, stop_event: asyncio.Event) -> bool:
    """
    Put ``item`` on a bounded queue, blocking while it is full.

    Returns:
        True if the item was queued, False if a stop was requested first
    """
    if stop_event.is_set():
        return False
    try:
        queue.put_nowait(item)
        return True
    except asyncio.QueueFull:
        pass
    return await _race_stop(asyncio.ensure_future(queue.put(item)), stop_event)


async def get_or_stop(queue: asyncio.Queue, stop_event: asyncio.Event) -> Optional[Any]:
    """
    Take the next item from ``queue``.

    Returns:
        The item, or None if a stop was requested before one arrived
    """
    if stop_event.is_set():
        return None
    try:
        return queue.get_nowait()
    except asyncio.QueueEmpty:
        pass

    getter = asyncio.ensure_future(queue.get())
    if await _race_stop(getter, stop_event):
        return getter.result()
    return None


async def wait_or_stop(stop_event: Optional[asyncio.Event], seconds: float) -> bool:
    """
    Sleep for ``seconds`` unless the stop event fires first.

    Returns:
        True if the full interval elapsed, False if a stop was requested
    """
    if stop_event is None:
        if seconds > 0:
            await asyncio.sleep(seconds)
        return True

    if stop_event.is_set():
        return False

    if seconds <= 0:
        return True

    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return True
    return False
