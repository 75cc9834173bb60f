"""Exceptions raised by ptyexpect.

"No match" is never an error: ``expect`` returns ``NO_MATCH`` instead.
"""

from __future__ import annotations


class PTYError(Exception):
    """Base class for every ptyexpect error."""


# ---------------------------------------------------------------------------
# Allocation
# ---------------------------------------------------------------------------


class AllocationError(PTYError):
    """The OS refused to create the pseudo-terminal pair."""


class GrantError(AllocationError):
    """grantpt() failed on the host descriptor."""


class UnlockError(AllocationError):
    """unlockpt() failed on the host descriptor."""


class HandleCreationError(AllocationError):
    """The secondary side of the pair could not be opened."""


# ---------------------------------------------------------------------------
# Attachment
# ---------------------------------------------------------------------------


class AlreadyAttachedError(PTYError):
    def __init__(self, identifier: str = "") -> None:
        super().__init__(f"PTY already has a process attached ({identifier})")
        self.identifier = identifier


class NotAttachedError(PTYError):
    def __init__(self, identifier: str = "") -> None:
        super().__init__(f"PTY isn't attached to this process ({identifier})")
        self.identifier = identifier


# ---------------------------------------------------------------------------
# Data / I/O
# ---------------------------------------------------------------------------


class InvalidEncodingError(PTYError, ValueError):
    """Text could not be encoded as UTF-8 for sending."""


class InvalidPatternError(PTYError, ValueError):
    """Empty pattern list or a pattern that is not a valid regex."""


class SessionClosedError(PTYError):
    """The session's descriptors have already been released."""


class IoctlError(PTYError):
    """A window-size ioctl failed. ``errno`` holds the OS error code."""

    def __init__(self, errno: int, strerror: str = "", request: str = "") -> None:
        super().__init__(f"{request} failed: [Errno {errno}] {strerror}")
        self.errno = errno
        self.strerror = strerror
        self.request = request
