"""
Event Plumbing

Listeners is the subscription point for one event of one entity (a
Topic's peer events, a session's close event, ...). WaitGroup joins a
fixed number of completions into one awaitable.
"""

import asyncio
import logging
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=Callable)


class Listeners(Generic[T]):
    """
    Subscribers for a single event.

    A subscriber that raises is logged and skipped; the others still run.
    """

    def __init__(self, name: str):
        self.name = name
        self._callbacks: List[T] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, callback: T) -> Callable[[], None]:
        """Subscribe. Returns a function that removes the subscription."""
        self._callbacks.append(callback)
        return lambda: self.remove(callback)

    def remove(self, callback: T):
        """Unsubscribe; unknown callbacks are ignored."""
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def clear(self):
        self._callbacks.clear()

    def emit(self, *args):
        """Call every subscriber in subscription order."""
        # Copy, so subscribers may unsubscribe while being called
        for callback in list(self._callbacks):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"{self.name} callback error: {e}")


class WaitGroup:
    """
    Waits for a known number of participants to finish.

    Each participant calls done() exactly once. wait() returns when the
    count reaches zero.
    """

    def __init__(self, count: int):
        if count < 0:
            raise ValueError("WaitGroup count cannot be negative")
        self._remaining = count
        self._event = asyncio.Event()
        if count == 0:
            self._event.set()

    def done(self, *_):
        """Mark one participant finished. Extra arguments are ignored."""
        if self._remaining == 0:
            raise RuntimeError("WaitGroup.done() called too many times")
        self._remaining -= 1
        if self._remaining == 0:
            self._event.set()

    async def wait(self):
        """Block until every participant has called done()."""
        await self._event.wait()
