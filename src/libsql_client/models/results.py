"""Result models for engine calls that report more than a status."""

from pydantic import BaseModel, Field


class SyncResult(BaseModel):
    """Outcome of one replica synchronization cycle."""

    frame_no: int = Field(ge=0)
    frames_synced: int = Field(ge=0)


class ConnectionInfo(BaseModel):
    """Change counters reported for a connection."""

    last_insert_rowid: int
    total_changes: int = Field(ge=0)
