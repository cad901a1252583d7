"""Download remote files and archives with hash verification.

Downloads stream into ``<target>.part`` and are renamed into place only once
complete, so an interrupted or failed transfer never leaves a partial target.
A target that already exists is not fetched again; it is only re-hashed.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from common.errors import HashMismatchError, TransportError
from common.http_client import TRANSIENT_ERRORS, HttpClient
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from versioning.models import RemoteArchive, RemoteFile

from .events import Event, EventKind, EventStream
from .files import hash_file, unzip

logger = logging.getLogger(__name__)


def _part_path(target: Path) -> Path:
    return target.with_name(target.name + ".part")


def archive_path(target_directory: Path) -> Path:
    """Where the zip for ``target_directory`` is kept: ``<target_directory>.zip``."""
    target_directory = Path(target_directory)
    return target_directory.with_name(target_directory.name + ".zip")


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


async def ensure_hash(path: Path, expected: Optional[str]) -> EventStream:
    """Hash ``path`` and compare with ``expected``.

    Emits FILE_HASH with the actual digest. When ``expected`` is None the
    comparison is skipped with a warning; callers that keep a lock record
    the digest from the event so later runs verify against it.

    Raises:
        HashMismatchError: If the digests differ. The file is left in place.
    """
    path = Path(path)
    actual = await hash_file(path)
    yield Event(EventKind.FILE_HASH, path=path, sha256=actual)
    if expected is None:
        logger.warning("No SHA-256 recorded for %s; accepting it unverified", path)
        return
    if actual != expected.lower():
        raise HashMismatchError(expected.lower(), actual, path)


async def _transfer(http: HttpClient, url: str, target: Path) -> EventStream:
    part = _part_path(target)
    await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
    yield Event(EventKind.DOWNLOAD_STARTED, url=url, target=target)

    for attempt in range(http.retries):
        try:
            async for written, total in http.iter_download(url, part):
                yield Event(
                    EventKind.DOWNLOAD_PROGRESS,
                    url=url,
                    target=target,
                    downloaded=written,
                    content_length=total,
                )
            break
        except TRANSIENT_ERRORS as exc:
            await asyncio.to_thread(_discard, part)
            reason = str(exc) or type(exc).__name__
            logger.debug(
                "Download attempt failed",
                extra=extra_context(
                    event="download_exception",
                    component="download",
                    action="GET",
                    outcome=reason,
                    attempt=attempt + 1,
                    target=safe_url(url),
                ),
            )
            if attempt + 1 >= http.retries:
                raise TransportError(url, reason, http.retries) from exc
            await asyncio.sleep(http.backoff_delay(attempt))
        except BaseException:
            await asyncio.to_thread(_discard, part)
            raise

    await asyncio.to_thread(os.replace, part, target)
    yield Event(EventKind.DOWNLOAD_COMPLETE, url=url, target=target)


async def download_remote_file(http: HttpClient, remote: RemoteFile, target: Path) -> EventStream:
    """Make ``target`` hold the content of ``remote`` and verify its hash.

    Raises:
        TransportError: When the transfer fails after the client's retries.
        HashMismatchError: When the content does not hash to ``remote.sha256``.
    """
    target = Path(target)
    if await asyncio.to_thread(target.exists):
        if is_debug_enabled(logger):
            logger.debug(
                "Download skipped",
                extra=extra_context(
                    event="download",
                    component="download",
                    action="skip",
                    outcome="exists",
                    path=str(target),
                ),
            )
    else:
        async for event in _transfer(http, remote.url, target):
            yield event

    async for event in ensure_hash(target, remote.sha256):
        yield event


async def download_remote_archive(http: HttpClient, archive: RemoteArchive, target_directory: Path) -> EventStream:
    """Download a zip next to ``target_directory`` and extract it there.

    The archive is kept as ``<target_directory>.zip`` so a repeated install
    verifies it instead of downloading again. Only ``archive.sub_path`` is
    extracted when it is set.
    """
    target_directory = Path(target_directory)
    zip_path = archive_path(target_directory)

    async for event in download_remote_file(http, archive.as_remote_file(), zip_path):
        yield event
    async for event in unzip(zip_path, target_directory, archive.sub_path):
        yield event
