"""Processes running on a PTY session's child side."""

from __future__ import annotations

import asyncio
import enum
import fcntl
import logging
import os
import signal
import subprocess
import termios
from collections.abc import Sequence
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from ptyexpect.pty.session import Channel, PTYSession

logger = logging.getLogger(__name__)


def _acquire_controlling_terminal() -> None:
    """Make stdin (the PTY child side) the controlling terminal.

    Runs in the forked child after Popen's setsid, so the new session
    has no controlling terminal yet.
    """
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class ProcessStatus(enum.Enum):
    """Lifecycle states for a terminal process."""

    PENDING = "pending"  # Created, run() not called yet
    RUNNING = "running"
    KILLING = "killing"  # Terminate requested, waiting for process to die
    KILLED = "killed"  # Stopped by us
    EXITED = "exited"  # Process exited on its own


class TerminalProcess:
    """A program whose stdin/stdout/stderr are a session's child side.

    ``run()`` attaches to the session for the lifetime of the process; the
    session is detached again (firing its detach handlers) when the process
    exits or is terminated.

    Spawned with subprocess.Popen in its own session/process group so the
    whole tree can be signalled at once. The child side becomes the
    session's controlling terminal, so control characters such as Ctrl+C
    written with :meth:`PTYSession.send_control` are delivered as signals.

    Constructing a process does not attach it; the session stays free for
    other users until ``run()`` is called.
    """

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        executable: str | os.PathLike[str],
        arguments: Sequence[str] = (),
        *,
        terminal: PTYSession,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.executable = os.fspath(executable)
        self.arguments = list(arguments)
        self.terminal = terminal
        self.cwd = cwd
        self.env = env or {}
        self._log = log or logger

        self._proc: subprocess.Popen[bytes] | None = None
        self._channel: Channel | None = None
        self._status = ProcessStatus.PENDING
        self._watch_task: asyncio.Task[None] | None = None
        self._on_exit: Callable[[TerminalProcess, int | None], None] | None = None

    def set_on_exit(
        self, callback: Callable[[TerminalProcess, int | None], None]
    ) -> None:
        """Set a callback invoked with (process, exit_code) when the process
        exits on its own. Not called after terminate()/kill().
        """
        self._on_exit = callback

    def run(self) -> None:
        """Attach to the terminal and start the process.

        Raises:
            AlreadyAttachedError: If another process holds the terminal.
        """
        if self._status is not ProcessStatus.PENDING:
            raise RuntimeError(f"Process {self.executable} already started")

        channel = self.terminal.connect()
        env = {**os.environ, **self.env}
        env.setdefault("TERM", "dumb")

        try:
            self._proc = subprocess.Popen(
                [self.executable, *self.arguments],
                stdin=channel.fd,
                stdout=channel.fd,
                stderr=channel.fd,
                start_new_session=True,
                preexec_fn=_acquire_controlling_terminal,
                env=env,
                cwd=self.cwd,
            )
        except BaseException:
            channel.disconnect()
            raise

        self._channel = channel
        self._status = ProcessStatus.RUNNING
        self._watch_task = asyncio.get_running_loop().create_task(self._watch())
        self._log.info(
            "Process started on %s: pid=%d cmd=%s",
            self.terminal.identifier,
            self._proc.pid,
            " ".join([self.executable, *self.arguments]),
        )

    async def _watch(self) -> None:
        """Poll for the process exiting on its own."""
        while self._status is ProcessStatus.RUNNING:
            assert self._proc is not None
            exit_code = self._proc.poll()
            if exit_code is not None:
                self._status = ProcessStatus.EXITED
                self._log.info("Process %d exited (code=%s)", self._proc.pid, exit_code)
                self._release()
                if self._on_exit:
                    try:
                        self._on_exit(self, exit_code)
                    except Exception:
                        self._log.exception(
                            "Error in on_exit callback for process %d", self._proc.pid
                        )
                return
            await asyncio.sleep(self.POLL_INTERVAL)

    def _release(self) -> None:
        if self._channel is not None:
            self._channel.disconnect()
            self._channel = None

    def terminate(self, grace_period: float = 2.0) -> None:
        """Hang up and SIGTERM the process group, SIGKILL after ``grace_period``.

        Interactive shells ignore SIGTERM but exit on SIGHUP.
        """
        if self._status not in (ProcessStatus.RUNNING, ProcessStatus.KILLING):
            return
        assert self._proc is not None

        self._status = ProcessStatus.KILLING
        self._signal_group(signal.SIGHUP)
        self._signal_group(signal.SIGTERM)
        try:
            self._proc.wait(timeout=grace_period)
        except subprocess.TimeoutExpired:
            self._log.warning(
                "Process %d ignored SIGTERM, sending SIGKILL", self._proc.pid
            )
            self._signal_group(signal.SIGKILL)
            self._proc.wait()
        self._finish_kill()

    def kill(self) -> None:
        """SIGKILL the process group immediately."""
        if self._status not in (ProcessStatus.RUNNING, ProcessStatus.KILLING):
            return
        assert self._proc is not None

        self._status = ProcessStatus.KILLING
        self._signal_group(signal.SIGKILL)
        self._proc.wait()
        self._finish_kill()

    def _signal_group(self, sig: signal.Signals) -> None:
        assert self._proc is not None
        try:
            os.killpg(self._proc.pid, sig)
        except ProcessLookupError:
            self._log.debug("Process group already gone: %d", self._proc.pid)

    def _finish_kill(self) -> None:
        self._status = ProcessStatus.KILLED
        self._release()
        if self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None
        self._log.info("Process on %s stopped", self.terminal.identifier)

    async def wait_for_exit(self, timeout: float | None = None) -> int | None:
        """Wait for the process to end. Returns the exit code, or None on timeout."""
        if self._proc is None:
            return None
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            exit_code = self._proc.poll()
            if exit_code is not None:
                return exit_code
            if deadline is not None and loop.time() >= deadline:
                return None
            await asyncio.sleep(self.POLL_INTERVAL)

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc is not None else None

    @property
    def status(self) -> ProcessStatus:
        return self._status

    @property
    def alive(self) -> bool:
        return self._status is ProcessStatus.RUNNING
