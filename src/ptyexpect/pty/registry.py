"""Expectation registry: pending ``expect`` calls waiting on terminal output.

Each pending ``expect`` owns a :class:`Waiter`: its patterns plus a one-shot
``asyncio.Future`` that acts as the waiter's inbound channel.  The read
loop and the waiter's timeout timer both try to resolve it; whichever
removes the waiter from the registry first wins, the other finds it gone
and does nothing.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field

from ptyexpect.pty.matcher import find_match

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpectResult:
    """Outcome of an ``expect`` call.

    ``pattern`` is the pattern that matched (not the matched text), or
    ``None`` for no match.  ``text`` is the chunk the pattern matched in;
    it does not take part in equality.
    """

    pattern: str | None = None
    text: str = field(default="", compare=False)

    @classmethod
    def match(cls, pattern: str, text: str = "") -> ExpectResult:
        return cls(pattern=pattern, text=text)

    @property
    def matched(self) -> bool:
        return self.pattern is not None

    def __bool__(self) -> bool:
        return self.matched


NO_MATCH = ExpectResult()


@dataclass
class Waiter:
    """One pending expectation."""

    patterns: tuple[str, ...]
    future: asyncio.Future[ExpectResult]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timer: asyncio.TimerHandle | None = None

    def resolve(self, result: ExpectResult) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if not self.future.done():
            self.future.set_result(result)


class ExpectationRegistry:
    """Thread-safe mapping of waiter id -> :class:`Waiter`."""

    def __init__(self) -> None:
        self._waiters: dict[str, Waiter] = {}
        self._lock = threading.Lock()

    def add(self, waiter: Waiter) -> None:
        with self._lock:
            self._waiters[waiter.id] = waiter

    def take(self, waiter_id: str) -> Waiter | None:
        """Remove and return a waiter, or ``None`` if it is already gone.

        This is the only way a waiter leaves the registry, so each id is
        removed at most once.
        """
        with self._lock:
            return self._waiters.pop(waiter_id, None)

    def snapshot(self) -> list[Waiter]:
        with self._lock:
            return list(self._waiters.values())

    def offer(self, text: str) -> int:
        """Offer a chunk to every pending waiter.

        Matching waiters are removed and resolved.  Returns the number of
        waiters resolved.
        """
        resolved = 0
        for waiter in self.snapshot():
            pattern = find_match(text, waiter.patterns)
            if pattern is None:
                continue
            if self.take(waiter.id) is None:
                # Timed out or cancelled while we were matching
                continue
            logger.debug("Match found for %s: %r", waiter.id, pattern)
            waiter.resolve(ExpectResult.match(pattern, text))
            resolved += 1
        return resolved

    def expire(self, waiter_id: str) -> bool:
        """Resolve a waiter to ``NO_MATCH`` if it is still pending."""
        waiter = self.take(waiter_id)
        if waiter is None:
            return False
        logger.debug("Timeout reached for %s", waiter_id)
        waiter.resolve(NO_MATCH)
        return True

    def drain(self) -> int:
        """Resolve every pending waiter to ``NO_MATCH``. Returns the count."""
        with self._lock:
            waiters = list(self._waiters.values())
            self._waiters.clear()
        for waiter in waiters:
            waiter.resolve(NO_MATCH)
        return len(waiters)

    def __len__(self) -> int:
        with self._lock:
            return len(self._waiters)

    def __contains__(self, waiter_id: object) -> bool:
        with self._lock:
            return waiter_id in self._waiters
