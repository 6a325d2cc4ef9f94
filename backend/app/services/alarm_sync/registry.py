"""Internal registry — alarm points and message groups.

Both registries are bound to one AsyncSession, i.e. one unit of work per
sync tick. Writes are flushed, not committed: the orchestrator owns the
transaction and commits once per batch.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.alarm_point import AlarmPoint
from models.message_group import MessageGroup
from services.alarm_sync.errors import DuplicateAlarmPointError

logger = logging.getLogger("sms.alarm_sync.registry")


def utcnow() -> datetime:
    # DB columns are TIMESTAMP WITHOUT TIME ZONE
    return datetime.now(timezone.utc).replace(tzinfo=None)


class AlarmPointRegistry:

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all(self) -> list[AlarmPoint]:
        result = await self.session.execute(select(AlarmPoint).order_by(AlarmPoint.id))
        return list(result.scalars().all())

    async def get_all_no_tracking(self) -> list[AlarmPoint]:
        """Detached snapshot: rows are expunged so later writes in this
        session never collide with them."""
        points = await self.get_all()
        for point in points:
            self.session.expunge(point)
        return points

    async def get_by_id(self, point_id: int) -> AlarmPoint | None:
        return await self.session.get(AlarmPoint, point_id)

    async def get_by_name(self, name: str) -> AlarmPoint | None:
        stmt = select(AlarmPoint).where(func.lower(AlarmPoint.name) == name.lower())
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_external_id(self, external_id: str) -> AlarmPoint | None:
        stmt = (
            select(AlarmPoint)
            .where(AlarmPoint.external_id == external_id)
            .order_by(AlarmPoint.id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_by_external_seq(self, object_seq: int) -> AlarmPoint | None:
        stmt = (
            select(AlarmPoint)
            .where(AlarmPoint.external_seq == object_seq)
            .order_by(AlarmPoint.id)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_active(self) -> list[AlarmPoint]:
        stmt = (
            select(AlarmPoint)
            .where(AlarmPoint.is_active == True)  # noqa: E712
            .order_by(AlarmPoint.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_by_group(self, group_id: int) -> list[AlarmPoint]:
        stmt = (
            select(AlarmPoint)
            .where(AlarmPoint.group_id == group_id)
            .order_by(AlarmPoint.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_names(self) -> set[str]:
        """Case-folded set of every existing name."""
        result = await self.session.execute(select(AlarmPoint.name))
        return {name.lower() for name in result.scalars().all()}

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(self, point: AlarmPoint) -> AlarmPoint:
        if await self.get_by_name(point.name) is not None:
            raise DuplicateAlarmPointError(point.name)
        return await self.add_without_duplicate_check(point)

    async def add_without_duplicate_check(self, point: AlarmPoint) -> AlarmPoint:
        """Insert as-is. Callers guarantee uniqueness (e.g. preloaded name set)."""
        now = utcnow()
        if point.created_at is None:
            point.created_at = now
        point.updated_at = now
        self.session.add(point)
        await self.session.flush()
        return point

    async def update(self, point: AlarmPoint) -> AlarmPoint:
        point.updated_at = utcnow()
        await self.session.flush()
        return point

    async def upsert_by_name(self, point: AlarmPoint) -> tuple[AlarmPoint, bool]:
        """Update the row with the same name (case-insensitive) or insert.

        On update only description, condition, is_active and updated_at
        change; id, name, group_id and created_at are preserved. Catalog
        correlation keys are filled in only while still empty.
        Returns ``(row, created)``.
        """
        existing = await self.get_by_name(point.name)
        if existing is None:
            return await self.add_without_duplicate_check(point), True

        existing.description = point.description
        existing.condition = point.condition
        existing.is_active = point.is_active
        if existing.external_id is None:
            existing.external_id = point.external_id
        if existing.external_seq is None:
            existing.external_seq = point.external_seq
        return await self.update(existing), False

    async def delete(self, point_id: int) -> bool:
        result = await self.session.execute(
            delete(AlarmPoint).where(AlarmPoint.id == point_id)
        )
        return result.rowcount > 0

    def clear_cache(self) -> None:
        """Drop every tracked instance so a bulk comparison starts clean."""
        self.session.expunge_all()


class MessageGroupRegistry:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_all(self) -> list[MessageGroup]:
        result = await self.session.execute(select(MessageGroup).order_by(MessageGroup.id))
        return list(result.scalars().all())

    async def get_first(self) -> MessageGroup | None:
        result = await self.session.execute(
            select(MessageGroup).order_by(MessageGroup.id).limit(1)
        )
        return result.scalars().first()

    async def add(self, group: MessageGroup) -> MessageGroup:
        now = utcnow()
        group.created_at = now
        group.updated_at = now
        self.session.add(group)
        await self.session.flush()
        return group
