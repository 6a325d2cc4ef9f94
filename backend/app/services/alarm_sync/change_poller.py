"""ChangeLogPoller — fixed-interval loop over the external change log.

Idle -> Polling -> (Idle | Triggering) -> Idle. Every CHANGE_POLL_INTERVAL
seconds: count unprocessed entries, run IncrementalSync when there are
any. A failing tick is logged and retried after CHANGE_ERROR_BACKOFF
seconds; errors never end the loop. ``stop()`` wakes the loop out of its
sleep so shutdown is not delayed by a full interval; cancelling the task
raises CancelledError in the awaiting caller.
"""
from __future__ import annotations

import asyncio
import enum
import logging

from config import settings
from services.alarm_sync.external_source import ChangeLogSource
from services.alarm_sync.incremental_sync import IncrementalSync, IncrementalSyncResult
from services.alarm_sync.initial_sync import InitialSync
from services.alarm_sync.sync_status import SyncStatus

logger = logging.getLogger("sms.alarm_sync.poller")


class PollerState(str, enum.Enum):
    IDLE = "idle"
    POLLING = "polling"
    TRIGGERING = "triggering"


class ChangeLogPoller:

    def __init__(
        self,
        changes: ChangeLogSource,
        initial_sync: InitialSync,
        incremental_sync: IncrementalSync,
        status: SyncStatus,
        *,
        interval: float | None = None,
        error_backoff: float | None = None,
        retry_initial: bool | None = None,
    ):
        self.changes = changes
        self.initial_sync = initial_sync
        self.incremental_sync = incremental_sync
        self.status = status
        self.interval = interval if interval is not None else settings.CHANGE_POLL_INTERVAL
        self.error_backoff = (
            error_backoff if error_backoff is not None else settings.CHANGE_ERROR_BACKOFF
        )
        self.retry_initial = (
            retry_initial if retry_initial is not None else settings.INITIAL_SYNC_RETRY
        )
        self.state = PollerState.IDLE
        self._running = False
        self._wakeup = asyncio.Event()

    async def start(self) -> None:
        self._running = True
        self._wakeup.clear()
        logger.info(
            "ChangeLogPoller started (every %.0fs, error backoff %.0fs)",
            self.interval, self.error_backoff,
        )

        while self._running:
            delay = self.interval
            try:
                await self.poll_once()
            except Exception as exc:
                logger.error("ChangeLogPoller cycle error: %s", exc, exc_info=True)
                delay = self.error_backoff
            finally:
                self.state = PollerState.IDLE
            await self._sleep(delay)

        logger.info("ChangeLogPoller loop exited")

    async def stop(self) -> None:
        self._running = False
        self._wakeup.set()
        logger.info("ChangeLogPoller stopped")

    async def poll_once(self) -> IncrementalSyncResult | None:
        """One tick. Returns the incremental result when a sync was triggered."""
        if not self.status.completed:
            await self._retry_initial_sync()
            if not self.status.completed:
                logger.debug("Initial sync not completed (%s), tick skipped",
                             self.status.state.value)
                return None

        self.state = PollerState.POLLING
        if not await self.changes.has_unprocessed_changes():
            logger.debug("No change log entries, sync skipped")
            self.state = PollerState.IDLE
            return None

        self.state = PollerState.TRIGGERING
        result = await self.incremental_sync.run()
        self.state = PollerState.IDLE
        return result

    # ------------------------------------------------------------------

    async def _retry_initial_sync(self) -> None:
        if not self.status.can_start():
            return
        # A never-attempted sync always runs; re-running after FAILED can be switched off
        if self.status.attempts > 0 and not self.retry_initial:
            return
        logger.info("Retrying initial sync (previous state: %s)", self.status.state.value)
        await self.initial_sync.run()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
