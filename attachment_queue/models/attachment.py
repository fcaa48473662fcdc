from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel, Field


class AttachmentState(IntEnum):
    """
    Lifecycle state of an attachment record.

    Every state ordered before SYNCED still has work pending.
    """
    QUEUED_DOWNLOAD = 0  # referenced remotely, local file not confirmed
    QUEUED_UPLOAD = 1  # local file exists, remote copy not confirmed
    QUEUED_DELETE = 2  # supersedes any other pending state
    SYNCED = 3
    ARCHIVED = 4  # terminal, never retried

    @classmethod
    def queued_states(cls) -> tuple[AttachmentState, ...]:
        return tuple(state for state in cls if state < cls.SYNCED)


class Attachment(BaseModel):
    """
    A binary asset tracked by the attachment queue.

    The record is passive: its state is only ever written by the queue and
    the syncing service, never inferred from what is on disk.
    """
    id: str = Field(min_length=1)
    filename: str
    local_uri: str | None = None
    media_type: str | None = None
    size: int | None = Field(default=None, ge=0)
    state: AttachmentState = AttachmentState.QUEUED_DOWNLOAD
    timestamp: int = 0

    @property
    def is_queued(self) -> bool:
        return self.state < AttachmentState.SYNCED
