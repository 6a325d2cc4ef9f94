"""FullResync — periodic upsert of the whole deduplicated catalog.

Deployment variant for catalogs without change log triggers. Runs every
FULL_RESYNC_INTERVAL seconds once the initial sync has completed. Never
deletes: removals only arrive through DELETE change log entries.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from services.alarm_sync.events import SyncEventPublisher
from services.alarm_sync.external_source import ExternalSource
from services.alarm_sync.mapping import to_alarm_point
from services.alarm_sync.registry import AlarmPointRegistry
from services.alarm_sync.sync_status import SyncStatus

logger = logging.getLogger("sms.alarm_sync.full_resync")


@dataclass
class FullResyncResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class FullResync:

    def __init__(
        self,
        source: ExternalSource,
        session_factory: async_sessionmaker[AsyncSession],
        status: SyncStatus,
        events: SyncEventPublisher | None = None,
        *,
        interval: float | None = None,
        error_backoff: float | None = None,
    ):
        self.source = source
        self.session_factory = session_factory
        self.status = status
        self.events = events or SyncEventPublisher(None)
        self.interval = interval if interval is not None else settings.FULL_RESYNC_INTERVAL
        self.error_backoff = (
            error_backoff if error_backoff is not None else settings.FULL_RESYNC_ERROR_BACKOFF
        )
        self._running = False
        self._wakeup = asyncio.Event()

    async def run_periodic(self) -> None:
        """Resync every ``interval`` seconds until stopped."""
        self._running = True
        self._wakeup.clear()
        logger.info("FullResync started (every %ds)", self.interval)
        while self._running:
            await self._sleep(self.interval)
            if not self._running:
                break
            try:
                await self.resync_once()
            except Exception as exc:
                logger.error("FullResync error: %s", exc, exc_info=True)
                await self._sleep(self.error_backoff)

    async def stop(self) -> None:
        self._running = False
        self._wakeup.set()
        logger.info("FullResync stopped")

    async def resync_once(self) -> FullResyncResult | None:
        if not self.status.completed:
            logger.debug("Initial sync not completed, full resync skipped")
            return None

        group_id = self.status.default_group_id
        external_points = await self.source.get_distinct_points()
        result = FullResyncResult()

        async with self.session_factory() as session:
            points = AlarmPointRegistry(session)
            for ext in external_points:
                if not ext.name:
                    result.skipped += 1
                    continue
                try:
                    async with session.begin_nested():
                        _, created = await points.upsert_by_name(to_alarm_point(ext, group_id))
                except Exception as exc:
                    logger.error("Full resync failed for '%s': %s", ext.name, exc)
                    result.failed += 1
                    continue
                if created:
                    result.created += 1
                else:
                    result.updated += 1
            await session.commit()

        logger.info(
            "Full resync done: %d created, %d updated, %d skipped, %d failed",
            result.created, result.updated, result.skipped, result.failed,
        )
        self.status.record_full_resync(result.as_dict())
        await self.events.publish("full_resync", result.as_dict(), self.status.snapshot())
        return result

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._wakeup.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
