"""Exceptions raised by the alarm point sync."""


class AlarmSyncError(Exception):
    """Base class for alarm point sync errors."""


class DefaultGroupError(AlarmSyncError):
    """No usable message group id could be obtained or created."""


class DuplicateAlarmPointError(AlarmSyncError):
    """An alarm point with the same name (case-insensitive) already exists."""

    def __init__(self, name: str):
        super().__init__(f"Alarm point '{name}' already exists")
        self.name = name
