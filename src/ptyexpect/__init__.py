"""ptyexpect: type into interactive programs and wait for their output."""

from ptyexpect.errors import PTYError
from ptyexpect.pty import (
    NO_MATCH,
    Channel,
    ExpectResult,
    NewlineMode,
    PTYSession,
    TerminalProcess,
)

__version__ = "0.1.0"

__all__ = [
    "Channel",
    "ExpectResult",
    "NO_MATCH",
    "NewlineMode",
    "PTYError",
    "PTYSession",
    "TerminalProcess",
]
