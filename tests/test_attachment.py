"""Tests for ptyexpect.pty.attachment (Token, AttachmentGuard)."""

from __future__ import annotations

import asyncio
import logging

import pytest

from ptyexpect.errors import AlreadyAttachedError, NotAttachedError
from ptyexpect.pty.attachment import AttachmentGuard, Token


# ---------------------------------------------------------------------------
# Token
# ---------------------------------------------------------------------------


class TestToken:
    def test_tokens_are_distinct(self) -> None:
        assert Token().value != Token().value

    def test_repr(self) -> None:
        assert repr(Token()).startswith("Token(")


# ---------------------------------------------------------------------------
# attach / detach
# ---------------------------------------------------------------------------


class TestAttachDetach:
    def test_starts_unattached(self) -> None:
        assert AttachmentGuard().is_attached is False

    def test_attach(self) -> None:
        guard = AttachmentGuard()
        token = guard.attach()
        assert isinstance(token, Token)
        assert guard.is_attached is True

    def test_attach_twice_raises(self) -> None:
        guard = AttachmentGuard("sh")
        guard.attach()
        with pytest.raises(AlreadyAttachedError, match="sh"):
            guard.attach()

    def test_detach(self) -> None:
        guard = AttachmentGuard()
        token = guard.attach()
        guard.detach(token)
        assert guard.is_attached is False

    def test_reattach_after_detach(self) -> None:
        guard = AttachmentGuard()
        first = guard.attach()
        guard.detach(first)
        second = guard.attach()
        assert second is not first

    def test_detach_wrong_token_raises(self) -> None:
        guard = AttachmentGuard()
        guard.attach()
        with pytest.raises(NotAttachedError):
            guard.detach(Token())
        assert guard.is_attached is True

    def test_detach_stale_token_raises(self) -> None:
        guard = AttachmentGuard()
        stale = guard.attach()
        guard.detach(stale)
        guard.attach()
        with pytest.raises(NotAttachedError):
            guard.detach(stale)

    def test_detach_unattached_raises(self) -> None:
        with pytest.raises(NotAttachedError):
            AttachmentGuard().detach(Token())

    def test_detach_twice_raises(self) -> None:
        guard = AttachmentGuard()
        token = guard.attach()
        guard.detach(token)
        with pytest.raises(NotAttachedError):
            guard.detach(token)

    def test_force_detach(self) -> None:
        guard = AttachmentGuard()
        guard.attach()
        assert guard.force_detach() is True
        assert guard.is_attached is False
        assert guard.force_detach() is False


# ---------------------------------------------------------------------------
# Detach handlers
# ---------------------------------------------------------------------------


class TestDetachHandlers:
    def test_on_detach_requires_attachment(self) -> None:
        guard = AttachmentGuard()
        calls: list[str] = []
        assert guard.on_detach(lambda: calls.append("x")) is False
        token = guard.attach()
        guard.detach(token)
        assert calls == []

    def test_handlers_run_in_order(self) -> None:
        guard = AttachmentGuard()
        token = guard.attach()
        calls: list[int] = []
        for i in range(3):
            assert guard.on_detach(lambda i=i: calls.append(i)) is True
        guard.detach(token)
        assert calls == [0, 1, 2]

    def test_handlers_run_once_then_cleared(self) -> None:
        guard = AttachmentGuard()
        calls: list[str] = []
        token = guard.attach()
        guard.on_detach(lambda: calls.append("first"))
        guard.detach(token)
        token = guard.attach()
        guard.detach(token)
        assert calls == ["first"]

    def test_handler_error_does_not_stop_others(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        guard = AttachmentGuard()
        token = guard.attach()
        calls: list[str] = []

        def _boom() -> None:
            raise RuntimeError("boom")

        guard.on_detach(_boom)
        guard.on_detach(lambda: calls.append("after"))
        with caplog.at_level(logging.ERROR, logger="ptyexpect.pty.attachment"):
            guard.detach(token)
        assert calls == ["after"]
        assert "Error in detach handler" in caplog.text

    def test_handler_may_reattach(self) -> None:
        """Handlers run outside the lock, so they can use the guard."""
        guard = AttachmentGuard()
        token = guard.attach()
        tokens: list[Token] = []
        guard.on_detach(lambda: tokens.append(guard.attach()))
        guard.detach(token)
        assert guard.is_attached is True
        assert len(tokens) == 1


# ---------------------------------------------------------------------------
# wait_for_detach
# ---------------------------------------------------------------------------


class TestWaitForDetach:
    async def test_returns_immediately_when_unattached(self) -> None:
        guard = AttachmentGuard()
        assert await asyncio.wait_for(guard.wait_for_detach(), timeout=1) is False

    async def test_resumes_on_detach(self) -> None:
        guard = AttachmentGuard()
        token = guard.attach()
        task = asyncio.create_task(guard.wait_for_detach())
        await asyncio.sleep(0.01)
        assert not task.done()
        guard.detach(token)
        assert await asyncio.wait_for(task, timeout=1) is True

    async def test_multiple_waiters(self) -> None:
        guard = AttachmentGuard()
        token = guard.attach()
        tasks = [asyncio.create_task(guard.wait_for_detach()) for _ in range(3)]
        await asyncio.sleep(0.01)
        guard.detach(token)
        results = await asyncio.wait_for(asyncio.gather(*tasks), timeout=1)
        assert results == [True, True, True]

    async def test_detach_from_other_thread(self) -> None:
        guard = AttachmentGuard()
        token = guard.attach()
        task = asyncio.create_task(guard.wait_for_detach())
        await asyncio.sleep(0.01)
        await asyncio.to_thread(guard.detach, token)
        assert await asyncio.wait_for(task, timeout=1) is True
