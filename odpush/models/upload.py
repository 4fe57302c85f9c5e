"""Upload session models for odpush."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SessionStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ChunkRange:
    """A contiguous byte range ``[start, end)`` of the source file."""

    index: int
    start: int
    end: int
    attempt_count: int = 0

    @property
    def length(self) -> int:
        return self.end - self.start

    def content_range(self, total_size: int) -> str:
        """Value of the Content-Range header for this chunk."""
        return f"bytes {self.start}-{self.end - 1}/{total_size}"


@dataclass
class UploadSession:
    """A server-allocated resumable upload context."""

    session_url: str
    total_size: int
    chunk_size: int
    expiration: Optional[str] = None
    status: SessionStatus = SessionStatus.PENDING
    last_acknowledged_offset: int = 0

    def acknowledge(self, chunk: ChunkRange):
        self.last_acknowledged_offset = chunk.end
