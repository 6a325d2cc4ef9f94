"""Alarm point sync module.

Entry point: AlarmSyncModule. Keeps the internal alarm point registry in
line with the external monitoring catalog: one initial import at start-up,
then change-log-driven incremental sync (and optionally a periodic full
resync).
"""
from __future__ import annotations

import asyncio
import logging

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from config import settings
from services.alarm_sync.change_poller import ChangeLogPoller
from services.alarm_sync.errors import AlarmSyncError
from services.alarm_sync.events import SyncEventPublisher
from services.alarm_sync.external_source import ChangeLogSource, ExternalSource
from services.alarm_sync.full_resync import FullResync
from services.alarm_sync.incremental_sync import IncrementalSync
from services.alarm_sync.initial_sync import InitialSync
from services.alarm_sync.sync_status import SyncStatus

logger = logging.getLogger("sms.alarm_sync")


class AlarmSyncModule:
    """Main orchestrator. Creates and coordinates all sync sub-services."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        external_engine: AsyncEngine,
        redis: Redis | None = None,
        *,
        full_resync_enabled: bool | None = None,
    ):
        if external_engine is None:
            raise AlarmSyncError("External catalog engine is required")

        self.session_factory = session_factory
        self.external_engine = external_engine
        self._owns_engine = False

        self.status = SyncStatus()
        self.events = SyncEventPublisher(redis)
        self.source = ExternalSource(external_engine)
        self.changes = ChangeLogSource(external_engine)

        self.initial_sync = InitialSync(
            self.source, session_factory, self.status, self.events,
        )
        self.incremental_sync = IncrementalSync(
            self.source, self.changes, session_factory, self.status, self.events,
        )
        self.poller = ChangeLogPoller(
            self.changes, self.initial_sync, self.incremental_sync, self.status,
        )

        if full_resync_enabled is None:
            full_resync_enabled = settings.FULL_RESYNC_ENABLED
        self.full_resync = (
            FullResync(self.source, session_factory, self.status, self.events)
            if full_resync_enabled else None
        )

        self._tasks: list[asyncio.Task] = []

    @classmethod
    def from_settings(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        redis: Redis | None = None,
    ) -> "AlarmSyncModule":
        """Build the module with an external engine from EXTERNAL_DATABASE_URL."""
        if not settings.EXTERNAL_DATABASE_URL:
            raise AlarmSyncError("EXTERNAL_DATABASE_URL is not configured")
        engine = create_async_engine(settings.EXTERNAL_DATABASE_URL, pool_pre_ping=True)
        module = cls(session_factory, engine, redis)
        module._owns_engine = True
        return module

    async def start(self) -> None:
        """Run the initial import, then start the background loops."""
        logger.info("Alarm sync module starting...")

        await self.initial_sync.run()

        self._tasks = [
            asyncio.create_task(self.poller.start(), name="alarm_sync_change_poller"),
        ]
        if self.full_resync is not None:
            self._tasks.append(
                asyncio.create_task(self.full_resync.run_periodic(), name="alarm_sync_full_resync")
            )

        logger.info(
            "Alarm sync module started: initial sync %s, %d background task(s)",
            self.status.state.value, len(self._tasks),
        )

    async def stop(self) -> None:
        """Stop all sub-services; in-flight batches are abandoned, not marked."""
        logger.info("Alarm sync module stopping...")
        await self.poller.stop()
        if self.full_resync is not None:
            await self.full_resync.stop()

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        if self._owns_engine:
            await self.external_engine.dispose()
        logger.info("Alarm sync module stopped")


__all__ = ["AlarmSyncModule", "AlarmSyncError"]
