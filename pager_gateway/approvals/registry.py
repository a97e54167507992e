"""
Approval Registry

Tracks hook invocations that are blocked waiting for a remote decision.

Architecture:
┌─────────────────────┐        ┌─────────────────────┐
│ Hook ingestion      │        │ Operator client     │
│ register() → Future │        │ approve() / deny()  │
└──────────┬──────────┘        └──────────┬──────────┘
           │ awaits                       │ resolves
           ▼                              ▼
        ┌────────────────────────────────────┐
        │ _pending: request_id → entry       │ ◄── timer: timeout
        └────────────────────────────────────┘ ◄── cancel_session()

Resolution is first-writer-wins: every resolver pops the entry from
``_pending`` before completing its Future, so a second approve/deny/timeout
finds nothing and returns False. All methods must be called from the event
loop that owns the registry.
"""

import asyncio
import time
from dataclasses import dataclass, field
from functools import partial

from loguru import logger

from ..constants import (
    HOOK_EXIT_ALLOWED,
    HOOK_EXIT_BLOCKED,
    MAX_PENDING_PER_SESSION,
    REASON_DENIED,
    REASON_SESSION_TERMINATED,
    REASON_TIMED_OUT,
    REASON_TOO_MANY_PENDING,
)


class DuplicateApprovalError(ValueError):
    """Raised when a request_id is registered while still pending."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Approval request already pending: {request_id}")
        self.request_id = request_id


@dataclass(frozen=True)
class ApprovalOutcome:
    """
    Final decision for one approval request.

    blocked=False means approved (hook exits 0); blocked=True covers denial,
    timeout and session teardown (hook exits 2) and always carries a reason.
    """

    blocked: bool
    reason: str | None = None

    @classmethod
    def approved(cls) -> "ApprovalOutcome":
        return cls(blocked=False)

    @classmethod
    def denied(cls, reason: str) -> "ApprovalOutcome":
        return cls(blocked=True, reason=reason)

    @property
    def exit_code(self) -> int:
        return HOOK_EXIT_BLOCKED if self.blocked else HOOK_EXIT_ALLOWED


@dataclass
class PendingApproval:
    request_id: str
    session_id: str
    future: asyncio.Future[ApprovalOutcome]
    timer: asyncio.TimerHandle
    created_at: float = field(default_factory=time.time)


class ApprovalRegistry:
    """Table of outstanding approval requests, each with its own timeout."""

    def __init__(self, max_pending_per_session: int = MAX_PENDING_PER_SESSION) -> None:
        self._pending: dict[str, PendingApproval] = {}
        self._max_pending_per_session = max_pending_per_session

    def register(
        self, request_id: str, session_id: str, timeout: float
    ) -> asyncio.Future[ApprovalOutcome]:
        """
        Register a blocking request and return the Future its caller awaits.

        The Future completes exactly once: with the operator's decision, with
        REASON_TIMED_OUT after ``timeout`` seconds, or with
        REASON_SESSION_TERMINATED when the session is cancelled. Cancelling
        the Future (the waiter went away) drops the entry.

        Args:
            request_id: Caller-supplied id, unique among pending requests
            session_id: Agent session the request belongs to
            timeout: Seconds before the registry denies on its own

        Raises:
            DuplicateApprovalError: If request_id is already pending
        """
        if request_id in self._pending:
            raise DuplicateApprovalError(request_id)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[ApprovalOutcome] = loop.create_future()

        if len(self.pending_for_session(session_id)) >= self._max_pending_per_session:
            logger.warning(
                f"[ApprovalRegistry] Session {session_id} has too many pending approvals, "
                f"rejecting {request_id}"
            )
            future.set_result(ApprovalOutcome.denied(REASON_TOO_MANY_PENDING))
            return future

        timer = loop.call_later(timeout, self._expire, request_id)
        entry = PendingApproval(
            request_id=request_id,
            session_id=session_id,
            future=future,
            timer=timer,
        )
        self._pending[request_id] = entry
        future.add_done_callback(partial(self._on_waiter_done, entry))

        logger.info(
            f"[ApprovalRegistry] Registered {request_id} (session={session_id}, timeout={timeout}s)"
        )
        return future

    async def wait_for_approval(
        self, request_id: str, session_id: str, timeout: float
    ) -> ApprovalOutcome:
        """Register and await the outcome in one call."""
        return await self.register(request_id, session_id, timeout)

    def approve(self, request_id: str) -> bool:
        """Approve a pending request. Returns False if it is not pending."""
        return self._resolve(request_id, ApprovalOutcome.approved())

    def deny(self, request_id: str, reason: str | None = None) -> bool:
        """Deny a pending request. Returns False if it is not pending."""
        return self._resolve(request_id, ApprovalOutcome.denied(reason or REASON_DENIED))

    def cancel_session(self, session_id: str) -> int:
        """
        Deny every pending request of a session with REASON_SESSION_TERMINATED.

        Returns:
            Number of requests that were resolved
        """
        request_ids = self.pending_for_session(session_id)
        outcome = ApprovalOutcome.denied(REASON_SESSION_TERMINATED)
        resolved = sum(1 for request_id in request_ids if self._resolve(request_id, outcome))
        if resolved:
            logger.info(
                f"[ApprovalRegistry] Cancelled {resolved} pending request(s) for session {session_id}"
            )
        return resolved

    def is_pending(self, request_id: str) -> bool:
        return request_id in self._pending

    def count(self) -> int:
        return len(self._pending)

    def pending_for_session(self, session_id: str) -> list[str]:
        return [
            request_id
            for request_id, entry in self._pending.items()
            if entry.session_id == session_id
        ]

    def get(self, request_id: str) -> PendingApproval | None:
        return self._pending.get(request_id)

    def entries(self) -> list[PendingApproval]:
        """Pending entries, oldest first."""
        return list(self._pending.values())

    def _resolve(self, request_id: str, outcome: ApprovalOutcome) -> bool:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            logger.debug(f"[ApprovalRegistry] {request_id} is not pending")
            return False

        entry.timer.cancel()
        if not entry.future.done():
            entry.future.set_result(outcome)

        if outcome.blocked:
            logger.info(f"[ApprovalRegistry] Blocked {request_id}: {outcome.reason}")
        else:
            logger.info(f"[ApprovalRegistry] Approved {request_id}")
        return True

    def _expire(self, request_id: str) -> None:
        logger.warning(f"[ApprovalRegistry] Approval timed out: {request_id}")
        self._resolve(request_id, ApprovalOutcome.denied(REASON_TIMED_OUT))

    def _on_waiter_done(self, entry: PendingApproval, future: asyncio.Future) -> None:
        if not future.cancelled():
            return
        # Only drop the entry if it is still the one this Future belongs to
        if self._pending.get(entry.request_id) is entry:
            del self._pending[entry.request_id]
            entry.timer.cancel()
            logger.warning(
                f"[ApprovalRegistry] Waiter for {entry.request_id} went away, dropped entry"
            )
