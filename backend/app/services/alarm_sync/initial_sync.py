"""InitialSync — one-time full import of the external catalog.

1. Ensures a default message group exists (fail closed: no group, no import)
2. Loads the deduplicated external catalog
3. Preloads existing alarm point names (case-insensitive)
4. Inserts every unseen point; a failing row is rolled back on its own
   savepoint and the batch continues
5. Marks the sync status COMPLETED, which unlocks incremental sync
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models.message_group import MessageGroup
from services.alarm_sync.errors import DefaultGroupError
from services.alarm_sync.events import SyncEventPublisher
from services.alarm_sync.external_source import ExternalSource
from services.alarm_sync.mapping import to_alarm_point
from services.alarm_sync.registry import AlarmPointRegistry, MessageGroupRegistry
from services.alarm_sync.sync_status import SyncStatus

logger = logging.getLogger("sms.alarm_sync.initial")


@dataclass
class InitialSyncResult:
    added: int = 0
    skipped: int = 0
    failed: int = 0
    group_id: int | None = None

    def as_dict(self) -> dict:
        return asdict(self)


async def ensure_default_group(groups: MessageGroupRegistry) -> int:
    """Return the id of the first message group, creating one if none exist."""
    try:
        group = await groups.get_first()
        if group is None:
            logger.info("No message group found, creating '%s'", settings.DEFAULT_GROUP_NAME)
            await groups.add(
                MessageGroup(
                    name=settings.DEFAULT_GROUP_NAME,
                    description=settings.DEFAULT_GROUP_DESCRIPTION,
                    is_active=True,
                )
            )
            await groups.session.commit()
            group = await groups.get_first()
    except Exception as exc:
        raise DefaultGroupError(f"Default message group lookup failed: {exc}") from exc

    if group is None or not group.id or group.id <= 0:
        raise DefaultGroupError("No usable message group id after creation")

    logger.info("Default message group id: %d", group.id)
    return group.id


class InitialSync:

    def __init__(
        self,
        source: ExternalSource,
        session_factory: async_sessionmaker[AsyncSession],
        status: SyncStatus,
        events: SyncEventPublisher | None = None,
    ):
        self.source = source
        self.session_factory = session_factory
        self.status = status
        self.events = events or SyncEventPublisher(None)

    async def run(self) -> InitialSyncResult | None:
        """Run the import if it has not completed yet. Never raises."""
        if not self.status.can_start():
            logger.debug("Initial sync is %s, not starting", self.status.state.value)
            return None

        self.status.begin()
        logger.info("Initial alarm point sync starting (attempt %d)", self.status.attempts)
        try:
            result = await self._sync()
        except DefaultGroupError as exc:
            logger.error("Initial sync aborted: %s", exc)
            self.status.fail(str(exc))
            return None
        except Exception as exc:
            logger.error("Initial sync failed: %s", exc, exc_info=True)
            self.status.fail(str(exc))
            return None

        self.status.complete(result.group_id)
        logger.info(
            "Initial sync done: %d added, %d skipped, %d failed (group=%d)",
            result.added, result.skipped, result.failed, result.group_id,
        )
        await self.events.publish("initial", result.as_dict(), self.status.snapshot())
        return result

    async def _sync(self) -> InitialSyncResult:
        async with self.session_factory() as session:
            points = AlarmPointRegistry(session)
            points.clear_cache()

            group_id = await ensure_default_group(MessageGroupRegistry(session))
            result = InitialSyncResult(group_id=group_id)

            external_points = await self.source.get_distinct_points()
            if not external_points:
                logger.warning("External catalog returned no alarm points, nothing to import")
                return result

            existing = await points.get_names()

            for ext in external_points:
                if not ext.name:
                    logger.warning("Skipping point with empty name: object_seq=%d", ext.object_seq)
                    result.skipped += 1
                    continue

                key = ext.name.lower()
                if key in existing:
                    logger.debug("Alarm point '%s' already exists, skipping", ext.name)
                    result.skipped += 1
                    continue

                try:
                    async with session.begin_nested():
                        await points.add_without_duplicate_check(to_alarm_point(ext, group_id))
                except Exception as exc:
                    logger.error("Failed to add alarm point '%s': %s", ext.name, exc)
                    result.failed += 1
                    continue

                existing.add(key)
                result.added += 1

            await session.commit()
            return result
