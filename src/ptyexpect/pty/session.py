"""PTY session: a pseudo-terminal you can type into and expect output from."""

from __future__ import annotations

import asyncio
import codecs
import enum
import errno
import fcntl
import logging
import math
import os
import struct
import termios
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from ptyexpect.errors import IoctlError, InvalidEncodingError, SessionClosedError
from ptyexpect.pty.allocator import PTYAllocator
from ptyexpect.pty.attachment import AttachmentGuard, Token
from ptyexpect.pty.matcher import find_match, validate_patterns
from ptyexpect.pty.registry import NO_MATCH, ExpectationRegistry, ExpectResult, Waiter

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ptyexpect.config import PTYExpectConfig

logger = logging.getLogger(__name__)

Listener = Callable[[str], None]

_WINSIZE = "HHHH"

# Control characters that are not simply letter - 0x60
_CONTROL_CHARS: dict[str, int] = {
    "@": 0,
    "`": 0,
    "[": 27,
    "\\": 28,
    "]": 29,
    "^": 30,
    "_": 31,
    "?": 127,
}


class NewlineMode(enum.Enum):
    """Line terminator appended by :meth:`PTYSession.send_line`."""

    DEFAULT = "default"  # "\n"
    ALTERNATE = "alternate"  # "\r", what ssh and raw-mode programs expect

    @property
    def terminator(self) -> str:
        return "\n" if self is NewlineMode.DEFAULT else "\r"


@dataclass(frozen=True)
class WindowSize:
    rows: int
    cols: int
    xpixel: int = 0
    ypixel: int = 0


class Channel:
    """Handle given to the process that attaches to a session.

    Carries the child descriptor and the attachment token.  ``disconnect()``
    is idempotent.
    """

    def __init__(self, session: PTYSession, token: Token) -> None:
        self._session = session
        self._token: Token | None = token
        session.on_detach(self._on_detached)

    def _on_detached(self) -> None:
        self._token = None

    @property
    def fd(self) -> int:
        return self._session.child_fd

    @property
    def connected(self) -> bool:
        return self._token is not None

    def disconnect(self) -> None:
        if self._token is None:
            return
        token, self._token = self._token, None
        self._session.detach(token)

    def __enter__(self) -> Channel:
        return self

    def __exit__(self, *exc: object) -> None:
        self.disconnect()


class PTYSession:
    """A pseudo-terminal pair plus an expect/listen engine on its output.

    Output arriving on the host side is read by a reader callback registered
    on the asyncio loop, decoded as UTF-8 and offered to:

    * every pending :meth:`expect` call (each with its own patterns and
      deadline), and then
    * the active :meth:`listen` callback, if any.

    The child side is lent to at most one process at a time via
    :meth:`connect` / :meth:`attach`.

    Must be created from within a running event loop (or given one), and
    the expect/listen machinery runs on that loop.
    """

    DEFAULT_READ_SIZE = 4096

    def __init__(
        self,
        identifier: str = "terminal",
        newline: NewlineMode = NewlineMode.DEFAULT,
        *,
        read_size: int = DEFAULT_READ_SIZE,
        allocator: PTYAllocator | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self.identifier = identifier
        self.newline = NewlineMode(newline)
        self._read_size = read_size
        self._log = log or logger

        self._guard = AttachmentGuard(identifier)
        self._expectations = ExpectationRegistry()
        self._listener: tuple[tuple[str, ...], Listener] | None = None
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._write_lock = threading.Lock()
        self._closed = False
        self._eof = False

        pair = (allocator or PTYAllocator()).allocate()
        self._host_fd = pair.host_fd
        self._child_fd = pair.child_fd
        self.child_path = pair.child_path

        try:
            self._loop.add_reader(self._host_fd, self._on_readable)
        except BaseException:
            os.close(self._child_fd)
            os.close(self._host_fd)
            raise

        self._log.info(
            "PTY opened: %s (%s - host=%d child=%d)",
            self.child_path,
            identifier,
            self._host_fd,
            self._child_fd,
        )

    @classmethod
    def from_config(
        cls, config: PTYExpectConfig, identifier: str | None = None
    ) -> PTYSession:
        """Create a session from loaded configuration and apply its window size."""
        term = config.terminal
        session = cls(
            identifier=identifier or term.identifier,
            newline=NewlineMode(term.newline),
            read_size=term.read_size,
        )
        if term.rows and term.cols:
            session.set_window_size(term.rows, term.cols)
        return session

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def host_fd(self) -> int:
        self._check_open()
        return self._host_fd

    @property
    def child_fd(self) -> int:
        self._check_open()
        return self._child_fd

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def at_eof(self) -> bool:
        return self._eof

    @property
    def is_attached(self) -> bool:
        return self._guard.is_attached

    @property
    def pending_expectations(self) -> int:
        return len(self._expectations)

    @property
    def is_listening(self) -> bool:
        return self._listener is not None

    def _check_open(self) -> None:
        if self._closed:
            raise SessionClosedError(f"PTY session {self.identifier} is closed")

    # ------------------------------------------------------------------
    # Attachment
    # ------------------------------------------------------------------

    def attach(self) -> Token:
        """Claim the child side. Raises AlreadyAttachedError if taken."""
        self._check_open()
        return self._guard.attach()

    def detach(self, token: Token) -> None:
        """Release the child side. Raises NotAttachedError on a wrong token."""
        self._guard.detach(token)

    def connect(self) -> Channel:
        """Claim the child side and wrap the token in a :class:`Channel`."""
        return Channel(self, self.attach())

    def on_detach(self, handler: Callable[[], None]) -> bool:
        return self._guard.on_detach(handler)

    async def wait_for_detach(self) -> bool:
        """Wait until the attached process detaches (immediately if none)."""
        return await self._guard.wait_for_detach()

    # ------------------------------------------------------------------
    # Window size
    # ------------------------------------------------------------------

    def get_window_size(self) -> WindowSize:
        self._check_open()
        buf = struct.pack(_WINSIZE, 0, 0, 0, 0)
        try:
            buf = fcntl.ioctl(self._child_fd, termios.TIOCGWINSZ, buf)
        except OSError as e:
            raise IoctlError(e.errno, e.strerror, "TIOCGWINSZ") from e
        rows, cols, xpixel, ypixel = struct.unpack(_WINSIZE, buf)
        return WindowSize(rows, cols, xpixel, ypixel)

    def set_window_size(self, rows: int, cols: int) -> None:
        """Set the window size on both the host and the child side."""
        self._check_open()
        if not (0 <= rows <= 0xFFFF and 0 <= cols <= 0xFFFF):
            raise ValueError(f"Window size out of range: {rows}x{cols}")
        buf = struct.pack(_WINSIZE, rows, cols, 0, 0)
        for fd in (self._host_fd, self._child_fd):
            try:
                fcntl.ioctl(fd, termios.TIOCSWINSZ, buf)
            except OSError as e:
                raise IoctlError(e.errno, e.strerror, "TIOCSWINSZ") from e
        self._log.debug("Window size set to %dx%d (%s)", rows, cols, self.identifier)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def send_line(self, content: str) -> None:
        self.send(content + self.newline.terminator)

    def send(self, content: str) -> None:
        """Write text to the terminal.

        Raises:
            InvalidEncodingError: If ``content`` cannot be encoded as UTF-8.
            SessionClosedError: If the session has been closed.
        """
        try:
            data = content.encode("utf-8")
        except UnicodeEncodeError as e:
            self._log.error(
                "Failed to get UTF-8 data for content: %r (%s)", content, self.identifier
            )
            raise InvalidEncodingError(
                "UTF-8 data could not be generated for string"
            ) from e
        self._log.debug("Sending: %r (%s)", content, self.identifier)
        self._write(data)

    def send_bytes(self, data: bytes) -> None:
        self._log.debug("Sending data: %d bytes (%s)", len(data), self.identifier)
        self._write(bytes(data))

    def send_control(self, char: str) -> None:
        """Send a control character, e.g. ``send_control("c")`` for Ctrl+C."""
        if len(char) != 1:
            raise ValueError(f"Expected a single character, got {char!r}")
        lowered = char.lower()
        if "a" <= lowered <= "z":
            code = ord(lowered) - 0x60
        elif char in _CONTROL_CHARS:
            code = _CONTROL_CHARS[char]
        else:
            raise ValueError(f"No control character for {char!r}")
        self._write(bytes([code]))

    def _write(self, data: bytes) -> None:
        with self._write_lock:
            self._check_open()
            view = memoryview(data)
            while view:
                written = os.write(self._host_fd, view)
                view = view[written:]

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def expect(
        self, patterns: str | Sequence[str], timeout: float | None = None
    ) -> ExpectResult:
        """Wait until received output matches one of ``patterns``.

        Args:
            patterns: One regex or a list of them, tried in order,
                case-insensitively.
            timeout: Seconds to wait. ``None`` or ``math.inf`` waits forever.

        Returns:
            ``ExpectResult.match(pattern)`` for the first pattern that
            matched, or ``NO_MATCH`` on timeout, end-of-stream or close.
        """
        patterns = validate_patterns(patterns)
        if self._closed or self._eof:
            return NO_MATCH

        waiter = Waiter(patterns=patterns, future=self._loop.create_future())
        self._log.debug(
            "Expecting: %s (%s - %s)", list(patterns), self.identifier, waiter.id
        )
        self._expectations.add(waiter)
        if timeout is not None and not math.isinf(timeout):
            waiter.timer = self._loop.call_later(
                max(timeout, 0.0), self._expectations.expire, waiter.id
            )

        try:
            return await waiter.future
        finally:
            if self._expectations.take(waiter.id) is not None:
                self._log.debug(
                    "Removing expectation %s (%s)", waiter.id, self.identifier
                )
            if waiter.timer is not None:
                waiter.timer.cancel()

    def listen(self, patterns: str | Sequence[str], handler: Listener) -> None:
        """Call ``handler(chunk)`` for every future chunk matching ``patterns``.

        Unlike :meth:`expect`, the handler receives the received text, not
        the pattern.  Replaces any previous listener.
        """
        self._listener = (validate_patterns(patterns), handler)

    def stop_listening(self) -> None:
        self._listener = None

    def _on_readable(self) -> None:
        try:
            data = os.read(self._host_fd, self._read_size)
        except BlockingIOError:
            return
        except OSError as e:
            # EIO: every child descriptor is gone (Linux)
            if e.errno != errno.EIO:
                self._log.warning(
                    "Read error on PTY (%s - %d): %s", self.identifier, self._host_fd, e
                )
            data = b""

        if not data:
            self._handle_eof()
            return

        try:
            content = self._decoder.decode(data)
        except UnicodeDecodeError:
            self._decoder.reset()
            self._log.error("Unable to read string data from terminal (%s)", self.identifier)
            return

        if content:
            self._dispatch(content)

    def _dispatch(self, content: str) -> None:
        self._log.debug(
            "Processing %d expects: %r (%s)",
            len(self._expectations),
            content,
            self.identifier,
        )
        self._expectations.offer(content)

        listener = self._listener
        if listener is None:
            return
        patterns, handler = listener
        if find_match(content, patterns) is None:
            return
        self._log.debug("Match found, calling listener (%s)", self.identifier)
        try:
            handler(content)
        except Exception:
            self._log.exception("Error in listener for %s", self.identifier)

    def _handle_eof(self) -> None:
        if self._eof:
            return
        self._eof = True
        self._loop.remove_reader(self._host_fd)
        resolved = self._expectations.drain()
        self._log.debug(
            "EOF received on PTY (%s - %d), %d expectations resolved",
            self.identifier,
            self._host_fd,
            resolved,
        )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Release both descriptors. Safe to call more than once; never raises."""
        if self._closed:
            return
        self._closed = True

        # Stop reading before the descriptor number can be reused
        self._loop.remove_reader(self._host_fd)
        self._listener = None
        self._expectations.drain()
        if self._guard.force_detach():
            self._log.debug("Detached process on close (%s)", self.identifier)

        with self._write_lock:
            for fd in (self._child_fd, self._host_fd):
                try:
                    os.close(fd)
                except OSError as e:
                    self._log.warning(
                        "Error encountered closing PTY (%s - %d): %s",
                        self.identifier,
                        fd,
                        e,
                    )
        self._log.info("PTY closed: %s (%s)", self.child_path, self.identifier)

    def __enter__(self) -> PTYSession:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
