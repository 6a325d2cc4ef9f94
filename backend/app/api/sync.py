"""Read-only view of the alarm point sync status."""
from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter(prefix="/api/sync", tags=["sync"])


class SyncStatusOut(BaseModel):
    enabled: bool
    state: str
    poller_state: str | None = None
    default_group_id: int | None = None
    attempts: int = 0
    last_error: str | None = None
    initial_synced_at: str | None = None
    last_incremental_at: str | None = None
    last_full_resync_at: str | None = None
    last_result: dict | None = None


@router.get("/status", response_model=SyncStatusOut)
async def get_sync_status(request: Request) -> SyncStatusOut:
    module = getattr(request.app.state, "alarm_sync", None)
    if module is None:
        return SyncStatusOut(enabled=False, state="disabled")
    return SyncStatusOut(
        enabled=True,
        poller_state=module.poller.state.value,
        **module.status.snapshot(),
    )
