"""SyncStatus — explicit lifecycle of the one-time initial sync.

NOT_STARTED -> RUNNING -> COMPLETED | FAILED, and FAILED -> RUNNING as an
explicit retry. Incremental sync runs only once the state is COMPLETED.
Single synchronizer per process, so no lock.
"""
from __future__ import annotations

import enum
from datetime import datetime, timezone


class SyncState(str, enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncStatus:

    def __init__(self) -> None:
        self.state = SyncState.NOT_STARTED
        self.default_group_id: int | None = None
        self.attempts = 0
        self.last_error: str | None = None
        self.initial_synced_at: str | None = None
        self.last_incremental_at: str | None = None
        self.last_full_resync_at: str | None = None
        self.last_result: dict | None = None

    @property
    def completed(self) -> bool:
        return self.state == SyncState.COMPLETED

    def can_start(self) -> bool:
        return self.state in (SyncState.NOT_STARTED, SyncState.FAILED)

    def begin(self) -> None:
        if not self.can_start():
            raise RuntimeError(f"Initial sync cannot start from state {self.state.value}")
        self.state = SyncState.RUNNING
        self.attempts += 1
        self.last_error = None

    def complete(self, default_group_id: int) -> None:
        self.state = SyncState.COMPLETED
        self.default_group_id = default_group_id
        self.initial_synced_at = _now_iso()

    def fail(self, error: str) -> None:
        self.state = SyncState.FAILED
        self.last_error = error

    def record_incremental(self, result: dict) -> None:
        self.last_incremental_at = _now_iso()
        self.last_result = result

    def record_full_resync(self, result: dict) -> None:
        self.last_full_resync_at = _now_iso()
        self.last_result = result

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "default_group_id": self.default_group_id,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "initial_synced_at": self.initial_synced_at,
            "last_incremental_at": self.last_incremental_at,
            "last_full_resync_at": self.last_full_resync_at,
            "last_result": self.last_result,
        }


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
