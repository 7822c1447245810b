"""Approval gate for interactive command-line runs."""

from __future__ import annotations

import asyncio

import click
import structlog

from deployer.domain.errors import ApprovalNotPendingError, ApprovalRejectedError
from deployer.domain.ports.services import ApprovalGate


logger = structlog.get_logger(__name__)


class ConsoleApprovalGate(ApprovalGate):
    """Asks the operator at the terminal, or uses a pre-granted approver.

    With ``approver`` set the gate opens immediately; this is how
    unattended callers record who signed off.
    """

    def __init__(self, approver: str | None = None, operator: str = "console") -> None:
        self._approver = approver
        self._operator = operator
        self._waiting: set[str] = set()

    async def wait(self, run_id: str) -> str:
        if self._approver:
            logger.info("approval_pregranted", run_id=run_id, approver=self._approver)
            return self._approver

        self._waiting.add(run_id)
        try:
            approved = await asyncio.to_thread(
                click.confirm, f"Run {run_id} is waiting for production approval. Deploy?",
                default=False,
            )
        finally:
            self._waiting.discard(run_id)
        if not approved:
            raise ApprovalRejectedError(f"Rejected by {self._operator} at the console")
        return self._operator

    async def approve(self, run_id: str, approver: str) -> None:
        raise ApprovalNotPendingError("Console runs are approved at the prompt")

    async def reject(self, run_id: str, approver: str, reason: str = "") -> None:
        raise ApprovalNotPendingError("Console runs are rejected at the prompt")

    def is_waiting(self, run_id: str) -> bool:
        return run_id in self._waiting
