"""Events emitted by acquisition and project tasks.

Every long-running operation is an async generator of ``Event`` values so a
caller can render progress while the work is under way. Completion is the
stream ending; failure is the stream raising.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Tuple

from common.aio import merge_streams


class EventKind(Enum):
    """Kinds of progress events."""

    READ_FILE = "read_file"
    WRITE_FILE = "write_file"
    TOUCH_FILE = "touch_file"
    DELETE_FILE = "delete_file"
    CREATE_DIRECTORY = "create_directory"
    DOWNLOAD_STARTED = "download_started"
    DOWNLOAD_PROGRESS = "download_progress"
    DOWNLOAD_COMPLETE = "download_complete"
    FILE_HASH = "file_hash"
    FILE_UNZIP = "file_unzip"
    RESOLVED_DEPENDENCIES = "resolved_dependencies"
    READ_CONFIG_FILE = "read_config_file"


@dataclass(frozen=True)
class Event:
    """A single progress notification; unused fields stay None."""

    kind: EventKind
    path: Optional[Path] = None
    target: Optional[Path] = None
    url: Optional[str] = None
    sha256: Optional[str] = None
    downloaded: Optional[int] = None
    content_length: Optional[int] = None
    content: Optional[str] = None
    dependencies: Optional[Tuple[Any, ...]] = None
    config: Optional[Any] = None

    @property
    def progress(self) -> Optional[float]:
        """Fraction downloaded in [0, 1], when the length is known."""
        if self.downloaded is None or not self.content_length:
            return None
        return min(1.0, self.downloaded / self.content_length)


EventStream = AsyncIterator[Event]


async def drain(stream: EventStream) -> None:
    """Consume a stream, discarding its events."""
    async for _ in stream:
        pass


__all__ = ["Event", "EventKind", "EventStream", "drain", "merge_streams"]
