from typing import Any, Callable, Dict, List, Set
import asyncio
import inspect
import logging
logger = logging.getLogger(__name__)

# composer events
STATE_CHANGED = "state"          # (old_state, new_state)
UPLOAD_PROGRESS = "progress"     # (percent)
THUMBNAIL_READY = "thumbnail"    # (workflow)
WARNING_CHANGED = "warning"      # (assessment or None)
PUBLISHED = "published"          # (PublishResult)
FAILED = "failed"                # (PublishResult)


class EventEmitter:
    """
    Event emitter for composer events.

    Listeners run synchronously, in subscription order, at the point the
    event is emitted; coroutine listeners are scheduled on the running loop.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._pending: Set[asyncio.Task] = set()

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        listeners = self._listeners.setdefault(event_name, [])
        if callback not in listeners:
            listeners.append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        listeners = self._listeners.get(event_name, [])
        if callback in listeners:
            listeners.remove(callback)

    def emit(self, event_name: str, *args: Any) -> None:
        """Emit an event to all listeners."""
        for callback in list(self._listeners.get(event_name, ())):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    self._schedule(event_name, result)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")

    def _schedule(self, event_name: str, awaitable) -> None:
        async def runner():
            try:
                await awaitable
            except Exception as e:
                logger.error(f"Error in async event listener for {event_name}: {e}")

        task = asyncio.get_running_loop().create_task(runner())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for scheduled coroutine listeners to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
