"""Exclusive attachment of a process to a PTY's child side."""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
from typing import Callable

from ptyexpect.errors import AlreadyAttachedError, NotAttachedError

logger = logging.getLogger(__name__)


class Token:
    """Proof of ownership of the child side.

    Tokens are compared by identity: only the exact object handed out by
    :meth:`AttachmentGuard.attach` can detach.
    """

    __slots__ = ("value",)

    def __init__(self) -> None:
        self.value = secrets.randbits(128)

    def __repr__(self) -> str:
        return f"Token({self.value:032x})"


class AttachmentGuard:
    """Attach/detach state machine with detach notification.

    All state changes serialize on a single re-entrant lock.  Detach handlers
    run after the lock is released, in registration order.
    """

    def __init__(self, identifier: str = "terminal") -> None:
        self._identifier = identifier
        self._lock = threading.RLock()
        self._token: Token | None = None
        self._handlers: list[Callable[[], None]] = []

    @property
    def is_attached(self) -> bool:
        with self._lock:
            return self._token is not None

    def attach(self) -> Token:
        with self._lock:
            if self._token is not None:
                raise AlreadyAttachedError(self._identifier)
            self._token = Token()
            logger.debug("Process attached (%s)", self._identifier)
            return self._token

    def detach(self, token: Token) -> None:
        with self._lock:
            if self._token is None or token is not self._token:
                raise NotAttachedError(self._identifier)
            self._token = None
            handlers, self._handlers = self._handlers, []

        logger.debug("Calling process detach handlers (%s)", self._identifier)
        for handler in handlers:
            try:
                handler()
            except Exception:
                logger.exception("Error in detach handler (%s)", self._identifier)
        logger.debug("Process detached (%s)", self._identifier)

    def force_detach(self) -> bool:
        """Detach whoever is attached. Returns False if nothing was."""
        with self._lock:
            token = self._token
        if token is None:
            return False
        try:
            self.detach(token)
        except NotAttachedError:
            # Detached by its owner in the meantime
            return False
        return True

    def on_detach(self, handler: Callable[[], None]) -> bool:
        """Register a handler to run at the next detach.

        Returns False (and registers nothing) when no process is attached.
        """
        with self._lock:
            if self._token is None:
                return False
            self._handlers.append(handler)
            return True

    async def wait_for_detach(self) -> bool:
        """Suspend until the attached process detaches.

        Returns immediately with False if nothing is attached, True once a
        detach has happened.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[bool] = loop.create_future()

        def _resolve() -> None:
            if not future.done():
                future.set_result(True)

        def _handler() -> None:
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(_resolve)

        if not self.on_detach(_handler):
            return False
        return await future
