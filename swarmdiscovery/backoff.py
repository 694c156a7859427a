"""
Retry Backoff

Design Decision: Two Retry Classes
==================================

Options Considered:
1. One fixed interval for everything
   - Simple, but either too chatty for the DHT or too slow for mDNS
2. Exponential backoff
   - Good for failures, wrong for periodic re-announcement
3. Two jittered classes (eager / lazy)
   - Eager: local multicast records have short TTLs and must be refreshed
   - Lazy: restarting a DHT announce/lookup is expensive for the network

Decision: two jittered classes
- Eager delays are drawn from [30s, 60s)
- Lazy delays are drawn from [300s, 600s)
- Jitter keeps a LAN full of nodes from querying in lockstep

Timers are plain asyncio TimerHandles. Nothing is persisted.
"""

import asyncio
import logging
import random
from typing import Callable, Optional, Tuple

logger = logging.getLogger(__name__)

# (low, high) bounds in seconds, high exclusive
EAGER_INTERVAL: Tuple[float, float] = (30.0, 60.0)
LAZY_INTERVAL: Tuple[float, float] = (300.0, 600.0)


class Backoff:
    """
    Produces jittered retry delays and schedules one-shot callbacks.
    """

    def __init__(self, eager: Tuple[float, float] = EAGER_INTERVAL,
                 lazy: Tuple[float, float] = LAZY_INTERVAL,
                 rng: Optional[random.Random] = None):
        """
        Initialize the backoff.

        Args:
            eager: (low, high) seconds for the fast retry class
            lazy: (low, high) seconds for the slow retry class
            rng: Random source (module random if not provided)
        """
        for low, high in (eager, lazy):
            if low < 0 or high < low:
                raise ValueError(f"Invalid backoff interval: ({low}, {high})")

        self.eager = tuple(eager)
        self.lazy = tuple(lazy)
        self._rng = rng or random.Random()

    def delay(self, eager: bool) -> float:
        """Draw one delay, in seconds, for the given retry class."""
        low, high = self.eager if eager else self.lazy
        return low + self._rng.random() * (high - low)

    def schedule(self, callback: Callable[[], None], eager: bool) -> asyncio.TimerHandle:
        """
        Run callback once after a jittered delay.

        Returns a handle whose cancel() guarantees the callback never runs.
        """
        wait = self.delay(eager)
        loop = asyncio.get_event_loop()
        logger.debug(f"Scheduling {'eager' if eager else 'lazy'} retry in {wait:.1f}s")
        return loop.call_later(wait, callback)


class RetryTimer:
    """
    A retry owned by a Topic.

    Holds at most one pending timer. reschedule() replaces the pending one,
    cancel() drops it. Once cancelled the callback cannot fire, because the
    event loop is single threaded and TimerHandle.cancel() is final.
    """

    def __init__(self, backoff: Backoff, callback: Callable[[], None], eager: bool):
        self.backoff = backoff
        self.eager = eager
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        """True while a retry is scheduled and has not fired yet."""
        return self._handle is not None

    def reschedule(self):
        """Schedule the callback, replacing any retry already pending."""
        self.cancel()
        self._handle = self.backoff.schedule(self._fire, self.eager)

    def cancel(self) -> bool:
        """Cancel the pending retry. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    def _fire(self):
        self._handle = None
        self._callback()
