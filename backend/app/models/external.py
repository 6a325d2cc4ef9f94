"""External monitoring catalog — table declarations only.

These tables belong to the third-party monitoring database. They are
declared on a separate MetaData and are never created or migrated by this
service; the sync reads the point/code tables and only flips
``Processed`` on the change log.
"""
from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
)

from config import settings

external_metadata = MetaData()

# Point table: one row per monitored object. The relationship to the code
# table is not strictly 1:1, so the join can yield several rows per point.
point_table = Table(
    settings.EXTERNAL_POINT_TABLE,
    external_metadata,
    Column("OBJECT_SEQ", BigInteger),
    Column("OBJECT_ID", BigInteger),
    Column("SERVER_ID", Integer),
    Column("SYSTEM_ID", Integer),
    Column("DEVICE_ID", Integer),
    Column("OBJ_ABOVE", Integer),
    Column("OBJ_BELOW", Integer),
    Column("OBJ_NAME", String(200)),
    Column("OBJ_DESC", String(500)),
    Column("ALARM_LV", Integer),
)

# Code/lookup table, joined on SYSTEM_ID = SYSTEM_CODE
code_table = Table(
    settings.EXTERNAL_CODE_TABLE,
    external_metadata,
    Column("SYSTEM_CODE", Integer),
    Column("CODE_NAME", String(200)),
    Column("CODENO", Integer),
    Column("PARENT_ID", Integer),
)

change_log_table = Table(
    settings.EXTERNAL_CHANGE_LOG_TABLE,
    external_metadata,
    Column("LogId", Integer, primary_key=True, autoincrement=True),
    Column("ChangeType", String(10), nullable=False),   # INSERT | UPDATE | DELETE
    Column("TableName", String(100), nullable=False),
    Column("ObjectSeq", BigInteger),
    Column("SystemId", Integer),
    Column("DeviceId", Integer),
    Column("ChangeDate", DateTime, nullable=False),
    Column("Processed", Boolean, nullable=False, default=False),
)
