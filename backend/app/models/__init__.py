from models.base import Base, async_session, engine, make_session_factory
from models.message_group import MessageGroup
from models.alarm_point import AlarmPoint
from models.external import (
    external_metadata,
    point_table,
    code_table,
    change_log_table,
)

__all__ = [
    "Base",
    "async_session",
    "engine",
    "make_session_factory",
    "MessageGroup",
    "AlarmPoint",
    "external_metadata",
    "point_table",
    "code_table",
    "change_log_table",
]
