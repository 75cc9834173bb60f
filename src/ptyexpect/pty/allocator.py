"""PTY allocation: open the host side, unlock it, open the child side."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from ptyexpect.errors import (
    AllocationError,
    GrantError,
    HandleCreationError,
    UnlockError,
)

logger = logging.getLogger(__name__)

# os.posix_openpt/grantpt/unlockpt/ptsname arrived in Python 3.13.
HAS_POSIX_PTY = all(
    hasattr(os, name) for name in ("posix_openpt", "grantpt", "unlockpt", "ptsname")
)


@dataclass(frozen=True)
class PTYPair:
    """Descriptors of a freshly allocated pseudo-terminal pair."""

    host_fd: int
    child_fd: int
    child_path: str


class PTYAllocator:
    """Allocates pseudo-terminal pairs. Holds no state of its own."""

    def open(self) -> int:
        """Open a new host (primary) descriptor."""
        try:
            fd = os.posix_openpt(os.O_RDWR | os.O_NOCTTY)
        except OSError as e:
            raise AllocationError(f"posix_openpt failed: {e}") from e
        os.set_inheritable(fd, False)
        return fd

    def grant_and_unlock(self, host_fd: int) -> str:
        """Grant and unlock the child side; return its device path."""
        try:
            os.grantpt(host_fd)
        except OSError as e:
            raise GrantError(f"PTY could not be granted: {e}") from e
        try:
            os.unlockpt(host_fd)
        except OSError as e:
            raise UnlockError(f"PTY could not be unlocked: {e}") from e
        try:
            return os.ptsname(host_fd)
        except OSError as e:
            raise HandleCreationError(f"ptsname failed: {e}") from e

    def open_secondary(self, path: str) -> int:
        """Open the child (secondary) side without making it our controlling tty."""
        try:
            return os.open(path, os.O_RDWR | os.O_NOCTTY)
        except OSError as e:
            raise HandleCreationError(
                f"PTY file handle could not be created for {path}: {e}"
            ) from e

    def allocate(self) -> PTYPair:
        """Allocate a complete pair.

        Either both descriptors are returned or nothing is left open.
        """
        if not HAS_POSIX_PTY:
            try:
                host_fd, child_fd = os.openpty()
            except OSError as e:
                raise AllocationError(f"openpty failed: {e}") from e
            try:
                path = os.ttyname(child_fd)
            except OSError as e:
                os.close(child_fd)
                os.close(host_fd)
                raise HandleCreationError(f"ttyname failed: {e}") from e
            return PTYPair(host_fd, child_fd, path)

        host_fd = self.open()
        try:
            path = self.grant_and_unlock(host_fd)
            child_fd = self.open_secondary(path)
        except BaseException:
            os.close(host_fd)
            raise
        logger.debug("PTY pair allocated: %s (host=%d child=%d)", path, host_fd, child_fd)
        return PTYPair(host_fd, child_fd, path)
