"""Render acquisition events as log lines."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from acquisition.events import Event, EventKind, EventStream
from common.logging_utils import safe_url

logger = logging.getLogger(__name__)


class EventReporter:
    """Turns an event stream into progress messages.

    Download progress is reported at DEBUG in 25% steps per target so large
    archives do not flood the console.
    """

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger
        self._progress: Dict[str, int] = {}

    def report(self, event: Event) -> None:
        kind = event.kind
        if kind is EventKind.DOWNLOAD_STARTED:
            self.log.info("Downloading %s", safe_url(event.url or ""))
        elif kind is EventKind.DOWNLOAD_PROGRESS:
            self._report_progress(event)
        elif kind is EventKind.DOWNLOAD_COMPLETE:
            self._progress.pop(str(event.target), None)
            self.log.info("Downloaded %s", event.target)
        elif kind is EventKind.FILE_HASH:
            self.log.debug("SHA-256 of %s is %s", event.path, event.sha256)
        elif kind is EventKind.FILE_UNZIP:
            self.log.info("Extracted %s", event.target)
        elif kind is EventKind.WRITE_FILE:
            self.log.info("Wrote %s", event.path)
        elif kind is EventKind.TOUCH_FILE:
            self.log.info("Touched %s", event.path)
        elif kind is EventKind.DELETE_FILE:
            self.log.info("Deleted %s", event.path)
        elif kind is EventKind.CREATE_DIRECTORY:
            self.log.debug("Created %s", event.path)
        elif kind is EventKind.RESOLVED_DEPENDENCIES:
            for identifier, (version, _) in event.dependencies or ():
                self.log.info("Resolved %s@%s", identifier, version)
        elif kind in (EventKind.READ_FILE, EventKind.READ_CONFIG_FILE):
            self.log.debug("Read %s", event.path)

    def _report_progress(self, event: Event) -> None:
        fraction = event.progress
        if fraction is None:
            return
        key = str(event.target)
        step = int(fraction * 4)
        if step > self._progress.get(key, 0):
            self._progress[key] = step
            self.log.debug("%s: %d%%", event.target, step * 25)

    async def consume(self, stream: EventStream) -> None:
        """Report every event of ``stream`` until it ends."""
        async for event in stream:
            self.report(event)
