"""In-process approval gate."""

from __future__ import annotations

import asyncio

import structlog

from deployer.domain.errors import ApprovalNotPendingError, ApprovalRejectedError
from deployer.domain.ports.services import ApprovalGate


logger = structlog.get_logger(__name__)


class InMemoryApprovalGate(ApprovalGate):
    """Suspends runs on a future until an operator decides.

    Waiting has no deadline; a production run stays at the gate until it
    is approved or rejected.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[str]] = {}

    async def wait(self, run_id: str) -> str:
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._pending[run_id] = future
        logger.info("approval_waiting", run_id=run_id)
        try:
            return await future
        finally:
            self._pending.pop(run_id, None)

    async def approve(self, run_id: str, approver: str) -> None:
        future = self._take(run_id)
        logger.info("approval_given", run_id=run_id, approver=approver)
        future.set_result(approver)

    async def reject(self, run_id: str, approver: str, reason: str = "") -> None:
        future = self._take(run_id)
        logger.info("approval_rejected", run_id=run_id, approver=approver, reason=reason)
        message = f"Rejected by {approver}" + (f": {reason}" if reason else "")
        future.set_exception(ApprovalRejectedError(message))

    def is_waiting(self, run_id: str) -> bool:
        future = self._pending.get(run_id)
        return future is not None and not future.done()

    def _take(self, run_id: str) -> asyncio.Future[str]:
        if not self.is_waiting(run_id):
            raise ApprovalNotPendingError(f"Run {run_id} is not awaiting approval")
        return self._pending[run_id]
