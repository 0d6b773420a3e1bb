"""Models for sync progress and job results"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SyncMode = Literal["full", "updates"]


class SyncProgress(BaseModel):
    """Aggregate progress of one sync invocation"""

    total_repos: int = Field(default=0, ge=0)
    processed_repos: int = Field(default=0, ge=0)
    skipped_repos: int = Field(default=0, ge=0)
    current_repo: str | None = None
    errors: list[str] = Field(default_factory=list)
    updated_repos: list[str] = Field(default_factory=list)


class RepoSyncResult(BaseModel):
    """Immutable outcome of syncing one repository"""

    model_config = ConfigDict(frozen=True)

    name: str
    success: bool
    error: str | None = None
    unavailable: bool = Field(
        default=False, description="Archive was unavailable and the record was removed"
    )


class SyncJobResult(BaseModel):
    """Result of a sync job run"""

    mode: SyncMode = Field(description="full (sync_all) or updates (sync_updates)")
    success: bool = Field(description="Whether the sync completed")
    start_time: datetime = Field(description="When the job started")
    end_time: datetime = Field(description="When the job ended")
    duration_seconds: float = Field(description="Duration in seconds")
    progress: SyncProgress | None = Field(default=None, description="Final progress snapshot")
    error: str | None = Field(default=None, description="Error message if failed")
