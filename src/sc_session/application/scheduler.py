"""ProposalScheduler — one cancellable auto-close timer per open proposal.

A timer is pending while it sleeps until end_time; cancel() only reaches
pending timers. Once a timer wakes up it leaves the pending table and runs
its callback under asyncio.shield, so closing the session at that moment
cannot interrupt a close/settle that already started.
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from src.sc_common.datetime_utils import seconds_until, utc_now

logger = logging.getLogger(__name__)

AutoCloseCallback = Callable[[str], Awaitable[Any]]


class ProposalScheduler:
    def __init__(self, now_fn: Callable[[], datetime] = utc_now) -> None:
        self._now = now_fn
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._firing: set[asyncio.Future[Any]] = set()

    def schedule(self, proposal_id: str, end_time: datetime, callback: AutoCloseCallback) -> None:
        """Arm (or re-arm) the timer for `proposal_id`. Overdue timers fire immediately."""
        self.cancel(proposal_id)
        delay = seconds_until(end_time, self._now())
        self._pending[proposal_id] = asyncio.create_task(
            self._run(proposal_id, delay, callback), name=f"auto-close:{proposal_id}"
        )
        logger.debug("Auto-close for %s armed in %.1fs", proposal_id, delay)

    def cancel(self, proposal_id: str) -> bool:
        """Cancel a pending timer. False if none is pending (never armed or already fired)."""
        task = self._pending.pop(proposal_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def is_pending(self, proposal_id: str) -> bool:
        return proposal_id in self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def shutdown(self) -> None:
        """Cancel pending timers and wait for callbacks already in flight."""
        pending = list(self._pending.values())
        self._pending.clear()
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, *self._firing, return_exceptions=True)

    async def _run(self, proposal_id: str, delay: float, callback: AutoCloseCallback) -> None:
        await asyncio.sleep(delay)
        if self._pending.get(proposal_id) is asyncio.current_task():
            del self._pending[proposal_id]

        fired = asyncio.ensure_future(callback(proposal_id))
        self._firing.add(fired)
        fired.add_done_callback(self._on_fired_done(proposal_id))
        # Failures are logged by the done callback
        with contextlib.suppress(Exception):
            await asyncio.shield(fired)

    def _on_fired_done(self, proposal_id: str) -> Callable[[asyncio.Future[Any]], None]:
        def done(fut: asyncio.Future[Any]) -> None:
            self._firing.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error(
                    "Auto-close of proposal %s failed", proposal_id, exc_info=exc
                )

        return done
