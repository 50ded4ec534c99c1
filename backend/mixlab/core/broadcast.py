# backend/mixlab/core/broadcast.py
"""
Shared broadcast manager for real-time booking notifications.

One Broadcaster instance per worker process publishes to the ``admins`` and
``user:{id}`` channels. Booking services run in worker threads, so publishing
is scheduled onto the event loop captured at startup and never awaited.
"""
import asyncio
from concurrent.futures import Future
import functools
import json
import logging
from typing import Any, Dict, Optional, Set, Union

from broadcaster import Broadcast

from .config import settings

logger = logging.getLogger(__name__)

_broadcast: Optional[Broadcast] = None
_loop: Optional[asyncio.AbstractEventLoop] = None
_pending: Set[Any] = set()


def is_broadcast_initialized() -> bool:
    return _broadcast is not None


async def connect_broadcast(url: Optional[str] = None) -> bool:
    """
    Connect the shared Broadcaster.

    Call during application startup (in lifespan manager). Returns False and
    leaves real-time delivery disabled when no backend URL is configured.
    """
    global _broadcast, _loop

    broadcast_url = url or settings.broadcast_url
    if not broadcast_url:
        logger.info("[BROADCAST] No broadcast_url configured; real-time notifications disabled")
        return False

    _broadcast = Broadcast(broadcast_url)
    await _broadcast.connect()
    _loop = asyncio.get_running_loop()
    logger.info("[BROADCAST] Connected: %s", broadcast_url)
    return True


async def disconnect_broadcast() -> None:
    """Disconnect the shared Broadcaster. Call during application shutdown."""
    global _broadcast, _loop

    if _broadcast is not None:
        await _broadcast.disconnect()
        logger.info("[BROADCAST] Disconnected")
    _broadcast = None
    _loop = None


PublishFuture = Union["asyncio.Future[Any]", "Future[Any]"]


def _log_publish_failure(channel: str, future: PublishFuture) -> None:
    _pending.discard(future)
    if future.cancelled():
        logger.warning("Broadcast publish to %s was cancelled", channel)
        return
    exc = future.exception()
    if exc is not None:
        logger.warning("Broadcast publish to %s failed: %s", channel, exc)


def publish_threadsafe(channel: str, payload: Dict[str, Any]) -> bool:
    """
    Schedule a JSON payload for publishing without waiting for delivery.

    Works from worker threads and from the loop thread. Returns False when
    broadcasting is disabled; delivery failures are logged when they happen.
    """
    if _broadcast is None or _loop is None:
        logger.debug("Broadcast disabled; dropping message for channel %s", channel)
        return False

    message = json.dumps(payload, default=str)
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None

    future: PublishFuture
    if running is _loop:
        future = _loop.create_task(_broadcast.publish(channel=channel, message=message))
        # The loop only keeps weak references to tasks
        _pending.add(future)
    else:
        future = asyncio.run_coroutine_threadsafe(
            _broadcast.publish(channel=channel, message=message), _loop
        )
    future.add_done_callback(functools.partial(_log_publish_failure, channel))
    return True
