"""External monitoring catalog access — points and the change log.

Read-only except ``mark_processed``. Every call opens its own connection
from the engine pool and releases it on exit. Errors are logged with
context and re-raised: retry policy belongs to the caller.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from config import settings
from models.external import change_log_table, code_table, point_table
from services.alarm_sync.config import MARK_PROCESSED_CHUNK

logger = logging.getLogger("sms.alarm_sync.external")


class ChangeType(str, enum.Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ExternalPoint:
    object_seq: int
    object_id: int
    server_id: int
    system_id: int
    device_id: int
    name: str
    description: str
    alarm_level: int
    threshold_above: int
    threshold_below: int
    system_name: str

    @property
    def key(self) -> tuple[int, int, int, int, int]:
        return (self.object_seq, self.object_id, self.server_id, self.system_id, self.device_id)


@dataclass(frozen=True)
class ChangeLogEntry:
    log_id: int
    change_type: str
    table_name: str
    object_seq: int | None
    system_id: int | None
    device_id: int | None
    changed_at: datetime
    processed: bool = False


def _int(val) -> int:
    return int(val) if val is not None else 0


def _str(val) -> str:
    return str(val) if val is not None else ""


class ExternalSource:
    """Deduplicating reader over the point table joined to the code table."""

    def __init__(self, engine: AsyncEngine, *, alarm_level: int | None = None):
        self.engine = engine
        self.alarm_level = (
            alarm_level if alarm_level is not None else settings.EXTERNAL_ALARM_LEVEL
        )

    async def get_distinct_points(self) -> list[ExternalPoint]:
        """All points at the configured alarm level, one row per composite key."""
        points = await self._fetch(self._distinct_query())
        logger.info(
            "Fetched %d distinct alarm points (ALARM_LV=%d)", len(points), self.alarm_level,
        )
        return points

    async def get_points_by_scope_and_parent(
        self, scope_code: int, parent_id: int
    ) -> list[ExternalPoint]:
        """Same dedup rule, restricted to one scope/parent on the code table."""
        stmt = self._distinct_query(
            code_table.c.CODENO == scope_code,
            code_table.c.PARENT_ID == parent_id,
        )
        points = await self._fetch(stmt)
        logger.info(
            "Fetched %d distinct alarm points for scope=%d parent=%d",
            len(points), scope_code, parent_id,
        )
        return points

    async def get_point_by_keys(
        self,
        object_seq: int | None,
        system_id: int | None,
        device_id: int | None,
    ) -> ExternalPoint | None:
        """Single point by change-log correlation keys, None when absent."""
        if object_seq is None or system_id is None or device_id is None:
            return None
        stmt = self._distinct_query(
            point_table.c.OBJECT_SEQ == object_seq,
            point_table.c.SYSTEM_ID == system_id,
            point_table.c.DEVICE_ID == device_id,
        ).limit(1)
        points = await self._fetch(stmt)
        return points[0] if points else None

    # ------------------------------------------------------------------
    # Query building
    # ------------------------------------------------------------------

    def _distinct_query(self, *conditions):
        """ROW_NUMBER() over the composite key, ordered by system name; keep rank 1.

        The point/code relationship is not strictly 1:1, so the join yields
        duplicate rows per physical point. Ranking by CODE_NAME makes the
        representative stable across runs.
        """
        p, c = point_table, code_table
        row_num = func.row_number().over(
            partition_by=(
                p.c.OBJECT_SEQ, p.c.OBJECT_ID, p.c.SERVER_ID, p.c.SYSTEM_ID,
                p.c.DEVICE_ID, p.c.OBJ_ABOVE, p.c.OBJ_BELOW,
            ),
            order_by=(c.c.CODE_NAME, p.c.OBJ_NAME),
        ).label("row_num")

        ranked = (
            select(
                p.c.OBJECT_SEQ, p.c.OBJECT_ID, p.c.SERVER_ID, p.c.SYSTEM_ID,
                p.c.DEVICE_ID, p.c.OBJ_ABOVE, p.c.OBJ_BELOW, p.c.OBJ_NAME,
                p.c.OBJ_DESC, p.c.ALARM_LV,
                c.c.CODE_NAME.label("SystemName"),
                row_num,
            )
            .select_from(p.join(c, p.c.SYSTEM_ID == c.c.SYSTEM_CODE))
            .where(
                c.c.CODE_NAME.is_not(None),
                p.c.ALARM_LV == self.alarm_level,
                *conditions,
            )
            .cte("ranked_points")
        )
        return (
            select(*[col for col in ranked.c if col.name != "row_num"])
            .where(ranked.c.row_num == 1)
            .order_by(ranked.c.OBJECT_SEQ)
        )

    async def _fetch(self, stmt) -> list[ExternalPoint]:
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.mappings().all()
        except SQLAlchemyError as exc:
            logger.error("External catalog query failed: %s", exc)
            raise
        return [self._to_point(row) for row in rows]

    @staticmethod
    def _to_point(row) -> ExternalPoint:
        return ExternalPoint(
            object_seq=_int(row["OBJECT_SEQ"]),
            object_id=_int(row["OBJECT_ID"]),
            server_id=_int(row["SERVER_ID"]),
            system_id=_int(row["SYSTEM_ID"]),
            device_id=_int(row["DEVICE_ID"]),
            name=_str(row["OBJ_NAME"]),
            description=_str(row["OBJ_DESC"]),
            alarm_level=_int(row["ALARM_LV"]),
            threshold_above=_int(row["OBJ_ABOVE"]),
            threshold_below=_int(row["OBJ_BELOW"]),
            system_name=_str(row["SystemName"]),
        )


class ChangeLogSource:
    """Append-only change log written by triggers on the external catalog."""

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        batch_size: int | None = None,
        chunk_size: int = MARK_PROCESSED_CHUNK,
    ):
        self.engine = engine
        self.batch_size = batch_size if batch_size is not None else settings.CHANGE_BATCH_SIZE
        self.chunk_size = chunk_size

    async def count_unprocessed(self) -> int:
        t = change_log_table
        stmt = select(func.count()).select_from(t).where(t.c.Processed == False)  # noqa: E712
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                return result.scalar() or 0
        except SQLAlchemyError as exc:
            logger.error("Change log count failed: %s", exc)
            raise

    async def has_unprocessed_changes(self) -> bool:
        return await self.count_unprocessed() > 0

    async def get_unprocessed(self) -> list[ChangeLogEntry]:
        """Oldest unprocessed entries, at most ``batch_size``, so edits apply
        in causal order and a large backlog drains over several ticks."""
        t = change_log_table
        stmt = (
            select(t)
            .where(t.c.Processed == False)  # noqa: E712
            .order_by(t.c.ChangeDate.asc(), t.c.LogId.asc())
            .limit(self.batch_size)
        )
        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(stmt)
                rows = result.mappings().all()
        except SQLAlchemyError as exc:
            logger.error("Change log read failed: %s", exc)
            raise

        return [
            ChangeLogEntry(
                log_id=row["LogId"],
                change_type=_str(row["ChangeType"]).strip().upper(),
                table_name=_str(row["TableName"]),
                object_seq=row["ObjectSeq"],
                system_id=row["SystemId"],
                device_id=row["DeviceId"],
                changed_at=row["ChangeDate"],
                processed=bool(row["Processed"]),
            )
            for row in rows
        ]

    async def mark_processed(self, log_ids: Iterable[int]) -> int:
        """Flag the given entries processed, in one transaction.

        Ids go out in chunks of ``chunk_size`` per UPDATE to stay under the
        driver's bound-parameter limit.
        """
        ids = list(log_ids)
        if not ids:
            return 0
        t = change_log_table
        marked = 0
        try:
            async with self.engine.begin() as conn:
                for start in range(0, len(ids), self.chunk_size):
                    chunk = ids[start:start + self.chunk_size]
                    result = await conn.execute(
                        update(t).where(t.c.LogId.in_(chunk)).values(Processed=True)
                    )
                    marked += result.rowcount
        except SQLAlchemyError as exc:
            logger.error("Change log update failed (%d entries): %s", len(ids), exc)
            raise
        logger.info("Marked %d change log entries processed", marked)
        return marked
