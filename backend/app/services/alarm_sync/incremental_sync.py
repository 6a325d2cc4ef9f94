"""IncrementalSync — applies external change log entries to the registry.

INSERT/UPDATE re-read the point from the catalog and upsert it by name,
DELETE removes the alarm point correlated by external_seq. Each entry runs
on its own savepoint; the batch is marked processed after the internal
commit, so a crash in between replays the batch (at-least-once).
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models.alarm_point import AlarmPoint
from services.alarm_sync.events import SyncEventPublisher
from services.alarm_sync.external_source import (
    ChangeLogEntry,
    ChangeLogSource,
    ChangeType,
    ExternalSource,
)
from services.alarm_sync.initial_sync import ensure_default_group
from services.alarm_sync.mapping import to_alarm_point
from services.alarm_sync.registry import AlarmPointRegistry, MessageGroupRegistry
from services.alarm_sync.sync_status import SyncStatus

logger = logging.getLogger("sms.alarm_sync.incremental")


@dataclass
class IncrementalSyncResult:
    total: int = 0
    completed: int = 0
    skipped: int = 0
    failed: int = 0
    marked: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class IncrementalSync:

    def __init__(
        self,
        source: ExternalSource,
        changes: ChangeLogSource,
        session_factory: async_sessionmaker[AsyncSession],
        status: SyncStatus,
        events: SyncEventPublisher | None = None,
        *,
        delete_name_fallback: bool | None = None,
        retain_failed: bool | None = None,
    ):
        self.source = source
        self.changes = changes
        self.session_factory = session_factory
        self.status = status
        self.events = events or SyncEventPublisher(None)
        self.delete_name_fallback = (
            settings.SYNC_DELETE_NAME_FALLBACK
            if delete_name_fallback is None else delete_name_fallback
        )
        self.retain_failed = (
            settings.SYNC_RETAIN_FAILED_ENTRIES if retain_failed is None else retain_failed
        )

    async def run(self) -> IncrementalSyncResult:
        result = IncrementalSyncResult()
        if not self.status.completed:
            logger.debug("Initial sync not completed, incremental sync skipped")
            return result

        entries = await self.changes.get_unprocessed()
        if not entries:
            logger.info("No unprocessed change log entries")
            return result

        result.total = len(entries)
        logger.info("Processing %d change log entries", len(entries))
        failed_ids: set[int] = set()

        async with self.session_factory() as session:
            points = AlarmPointRegistry(session)
            group_id = self.status.default_group_id
            if group_id is None:
                group_id = await ensure_default_group(MessageGroupRegistry(session))

            for entry in entries:
                try:
                    async with session.begin_nested():
                        applied = await self._apply(points, entry, group_id)
                except Exception as exc:
                    logger.error(
                        "Change log entry failed: log_id=%d type=%s: %s",
                        entry.log_id, entry.change_type, exc,
                    )
                    result.failed += 1
                    failed_ids.add(entry.log_id)
                    continue

                if applied:
                    result.completed += 1
                else:
                    result.skipped += 1

            await session.commit()

        if self.retain_failed:
            to_mark = [e.log_id for e in entries if e.log_id not in failed_ids]
        else:
            # Observed behaviour: the whole batch is consumed, failures included
            to_mark = [e.log_id for e in entries]
        result.marked = await self.changes.mark_processed(to_mark)

        logger.info(
            "Incremental sync done: %d applied, %d skipped, %d failed, %d marked",
            result.completed, result.skipped, result.failed, result.marked,
        )
        self.status.record_incremental(result.as_dict())
        await self.events.publish("incremental", result.as_dict(), self.status.snapshot())
        return result

    # ------------------------------------------------------------------
    # Per-entry handlers
    # ------------------------------------------------------------------

    async def _apply(
        self, points: AlarmPointRegistry, entry: ChangeLogEntry, group_id: int
    ) -> bool:
        """Apply one entry. True when an insert/update/delete actually happened."""
        if entry.change_type in (ChangeType.INSERT, ChangeType.UPDATE):
            return await self._upsert(points, entry, group_id)
        if entry.change_type == ChangeType.DELETE:
            return await self._delete(points, entry)

        logger.warning(
            "Unknown change type '%s' (log_id=%d), skipping",
            entry.change_type, entry.log_id,
        )
        return False

    async def _upsert(
        self, points: AlarmPointRegistry, entry: ChangeLogEntry, group_id: int
    ) -> bool:
        ext = await self.source.get_point_by_keys(
            entry.object_seq, entry.system_id, entry.device_id,
        )
        if ext is None:
            logger.warning(
                "Changed point not found in catalog: object_seq=%s system_id=%s device_id=%s",
                entry.object_seq, entry.system_id, entry.device_id,
            )
            return False
        if not ext.name:
            logger.warning("Skipping point with empty name: object_seq=%d", ext.object_seq)
            return False

        point, created = await points.upsert_by_name(to_alarm_point(ext, group_id))
        logger.info(
            "Alarm point %s: '%s' (log_id=%d)",
            "created" if created else "updated", point.name, entry.log_id,
        )
        return True

    async def _delete(self, points: AlarmPointRegistry, entry: ChangeLogEntry) -> bool:
        target = await self._find_delete_target(points, entry)
        if target is None:
            logger.info(
                "No alarm point matches DELETE: object_seq=%s system_id=%s (log_id=%d)",
                entry.object_seq, entry.system_id, entry.log_id,
            )
            return False

        deleted = await points.delete(target.id)
        if deleted:
            logger.info("Alarm point deleted: '%s' (log_id=%d)", target.name, entry.log_id)
        return deleted

    async def _find_delete_target(
        self, points: AlarmPointRegistry, entry: ChangeLogEntry
    ) -> AlarmPoint | None:
        if entry.object_seq is not None:
            match = await points.get_by_external_seq(entry.object_seq)
            if match is None:
                match = await points.get_by_external_id(str(entry.object_seq))
            if match is not None:
                return match

        if self.delete_name_fallback and entry.system_id is not None:
            needle = str(entry.system_id)
            for point in await points.get_all():
                if needle in point.name:
                    return point
        return None
