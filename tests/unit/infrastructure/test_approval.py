"""Unit tests for approval gates."""

from __future__ import annotations

import asyncio

import pytest

from deployer.domain.errors import ApprovalNotPendingError, ApprovalRejectedError
from deployer.infrastructure.approval import console
from deployer.infrastructure.approval.console import ConsoleApprovalGate
from deployer.infrastructure.approval.in_memory import InMemoryApprovalGate


async def _until_waiting(gate: InMemoryApprovalGate, run_id: str) -> None:
    while not gate.is_waiting(run_id):
        await asyncio.sleep(0)


class TestInMemoryApprovalGate:
    @pytest.mark.asyncio
    async def test_approve(self) -> None:
        gate = InMemoryApprovalGate()
        waiter = asyncio.create_task(gate.wait("run-1"))
        await _until_waiting(gate, "run-1")

        await gate.approve("run-1", "alice")

        assert await waiter == "alice"
        assert not gate.is_waiting("run-1")

    @pytest.mark.asyncio
    async def test_reject(self) -> None:
        gate = InMemoryApprovalGate()
        waiter = asyncio.create_task(gate.wait("run-1"))
        await _until_waiting(gate, "run-1")

        await gate.reject("run-1", "bob", "change freeze")

        with pytest.raises(ApprovalRejectedError, match="change freeze"):
            await waiter

    @pytest.mark.asyncio
    async def test_approve_unknown_run(self) -> None:
        gate = InMemoryApprovalGate()
        with pytest.raises(ApprovalNotPendingError):
            await gate.approve("run-9", "alice")

    @pytest.mark.asyncio
    async def test_cancelled_wait_is_cleared(self) -> None:
        gate = InMemoryApprovalGate()
        waiter = asyncio.create_task(gate.wait("run-1"))
        await _until_waiting(gate, "run-1")
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert not gate.is_waiting("run-1")


class TestConsoleApprovalGate:
    @pytest.mark.asyncio
    async def test_pregranted(self) -> None:
        gate = ConsoleApprovalGate(approver="release-bot")
        assert await gate.wait("run-1") == "release-bot"

    @pytest.mark.asyncio
    async def test_prompt_accepted(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(console.click, "confirm", lambda *args, **kwargs: True)
        gate = ConsoleApprovalGate(operator="ops")
        assert await gate.wait("run-1") == "ops"

    @pytest.mark.asyncio
    async def test_prompt_declined(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(console.click, "confirm", lambda *args, **kwargs: False)
        gate = ConsoleApprovalGate()
        with pytest.raises(ApprovalRejectedError):
            await gate.wait("run-1")
        assert not gate.is_waiting("run-1")

    @pytest.mark.asyncio
    async def test_remote_approval_not_supported(self) -> None:
        gate = ConsoleApprovalGate()
        with pytest.raises(ApprovalNotPendingError):
            await gate.approve("run-1", "alice")
