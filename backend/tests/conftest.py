"""
Shared fixtures: file-backed SQLite databases standing in for the internal
registry and the external monitoring catalog.
"""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import create_async_engine

from models import AlarmPoint, Base, MessageGroup, make_session_factory
from models.external import change_log_table, code_table, external_metadata, point_table
from services.alarm_sync.external_source import ChangeLogSource, ExternalSource
from services.alarm_sync.sync_status import SyncStatus


def _sqlite_engine(path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")

    # pysqlite transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


# ---------------------------------------------------------------------------
# Internal registry
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def internal_engine(tmp_path):
    engine = _sqlite_engine(tmp_path / "internal.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(internal_engine):
    return make_session_factory(internal_engine)


@pytest_asyncio.fixture
async def group_id(session_factory):
    """An existing message group, as created by the group CRUD side."""
    async with session_factory() as session:
        group = MessageGroup(name="Operators", description="Shift operators", is_active=True)
        session.add(group)
        await session.commit()
        return group.id


@pytest.fixture
def completed_status(group_id):
    status = SyncStatus()
    status.begin()
    status.complete(group_id)
    return status


class Rows:
    """Reads the internal tables back for assertions."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def points(self) -> list[AlarmPoint]:
        async with self.session_factory() as session:
            result = await session.execute(select(AlarmPoint).order_by(AlarmPoint.id))
            return list(result.scalars().all())

    async def groups(self) -> list[MessageGroup]:
        async with self.session_factory() as session:
            result = await session.execute(select(MessageGroup).order_by(MessageGroup.id))
            return list(result.scalars().all())


@pytest.fixture
def rows(session_factory):
    return Rows(session_factory)


# ---------------------------------------------------------------------------
# External catalog
# ---------------------------------------------------------------------------


class Catalog:
    """Seeds the external catalog tables."""

    def __init__(self, engine):
        self.engine = engine
        self._clock = datetime(2025, 4, 3, 9, 0, 0)

    @staticmethod
    def point(
        object_seq,
        name,
        *,
        object_id=None,
        server_id=1,
        system_id=7,
        device_id=1,
        above=100,
        below=0,
        desc="",
        alarm_level=1,
    ) -> dict:
        return {
            "OBJECT_SEQ": object_seq,
            "OBJECT_ID": object_id if object_id is not None else object_seq * 100 + 1,
            "SERVER_ID": server_id,
            "SYSTEM_ID": system_id,
            "DEVICE_ID": device_id,
            "OBJ_ABOVE": above,
            "OBJ_BELOW": below,
            "OBJ_NAME": name,
            "OBJ_DESC": desc,
            "ALARM_LV": alarm_level,
        }

    async def add_points(self, *rows: dict) -> None:
        async with self.engine.begin() as conn:
            await conn.execute(point_table.insert(), list(rows))

    async def add_codes(self, *codes) -> None:
        """codes: (system_code, code_name) or (system_code, code_name, code_no, parent_id)."""
        rows = []
        for code in codes:
            system_code, code_name, *rest = code
            code_no, parent_id = rest if rest else (None, None)
            rows.append({
                "SYSTEM_CODE": system_code,
                "CODE_NAME": code_name,
                "CODENO": code_no,
                "PARENT_ID": parent_id,
            })
        async with self.engine.begin() as conn:
            await conn.execute(code_table.insert(), rows)

    async def add_change(
        self,
        change_type,
        *,
        object_seq=None,
        system_id=None,
        device_id=None,
        changed_at=None,
        table_name="P_OBJECT",
    ) -> int:
        if changed_at is None:
            self._clock += timedelta(seconds=1)
            changed_at = self._clock
        async with self.engine.begin() as conn:
            result = await conn.execute(
                change_log_table.insert().values(
                    ChangeType=change_type,
                    TableName=table_name,
                    ObjectSeq=object_seq,
                    SystemId=system_id,
                    DeviceId=device_id,
                    ChangeDate=changed_at,
                    Processed=False,
                )
            )
            return result.inserted_primary_key[0]

    async def processed(self) -> dict[int, bool]:
        async with self.engine.connect() as conn:
            result = await conn.execute(
                select(change_log_table.c.LogId, change_log_table.c.Processed)
            )
            return {row.LogId: bool(row.Processed) for row in result}


@pytest_asyncio.fixture
async def external_engine(tmp_path):
    engine = _sqlite_engine(tmp_path / "external.db")
    async with engine.begin() as conn:
        await conn.run_sync(external_metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def catalog(external_engine):
    return Catalog(external_engine)


@pytest.fixture
def source(external_engine):
    return ExternalSource(external_engine, alarm_level=1)


@pytest.fixture
def changes(external_engine):
    return ChangeLogSource(external_engine)
