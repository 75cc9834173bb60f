"""PTY sessions: drive interactive programs through a pseudo-terminal.

A session owns a pseudo-terminal pair, lends its child side to one process
at a time, and fans its output out to any number of pending ``expect``
calls plus one persistent listener.
"""

from ptyexpect.pty.allocator import PTYAllocator, PTYPair
from ptyexpect.pty.attachment import AttachmentGuard, Token
from ptyexpect.pty.matcher import find_match
from ptyexpect.pty.process import ProcessStatus, TerminalProcess
from ptyexpect.pty.registry import NO_MATCH, ExpectResult
from ptyexpect.pty.session import Channel, NewlineMode, PTYSession, WindowSize

__all__ = [
    "AttachmentGuard",
    "Channel",
    "ExpectResult",
    "NO_MATCH",
    "NewlineMode",
    "PTYAllocator",
    "PTYPair",
    "PTYSession",
    "ProcessStatus",
    "TerminalProcess",
    "Token",
    "WindowSize",
    "find_match",
]
