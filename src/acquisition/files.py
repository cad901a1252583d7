"""Filesystem primitives that report what they do as events.

Blocking filesystem calls run in worker threads so many dependencies can be
installed concurrently on one event loop.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import shutil
import zipfile
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from constants import Constants
from common.errors import ArchiveError, FileConflictError

from .events import Event, EventKind, EventStream

logger = logging.getLogger(__name__)


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)


def _delete(path: Path) -> bool:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
        return True
    if path.exists() or path.is_symlink():
        path.unlink()
        return True
    return False


def _sha256(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for block in iter(lambda: handle.read(Constants.HASH_CHUNK_SIZE), b""):
            digest.update(block)
    return digest.hexdigest()


async def read_file(path: Path) -> EventStream:
    """Read a UTF-8 text file; the content travels on the READ_FILE event."""
    content = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
    yield Event(EventKind.READ_FILE, path=Path(path), content=content)


async def write_file(content: str, path: Path, overwrite: bool = False) -> EventStream:
    """Write ``content`` to ``path``, creating parent folders.

    Raises:
        FileConflictError: If ``path`` exists and ``overwrite`` is False, or
            if ``path`` is a directory.
    """
    path = Path(path)
    if await asyncio.to_thread(path.is_dir):
        raise FileConflictError(path, "directory")
    if not overwrite and await asyncio.to_thread(path.exists):
        raise FileConflictError(path)
    await asyncio.to_thread(_write_text, path, content)
    yield Event(EventKind.WRITE_FILE, path=path, content=content)


async def touch_file(path: Path) -> EventStream:
    """Create an empty file unless one exists."""
    path = Path(path)
    await asyncio.to_thread(_touch, path)
    yield Event(EventKind.TOUCH_FILE, path=path)


async def delete_if_exists(path: Path) -> EventStream:
    """Delete a file or folder tree; emits nothing when there was nothing to delete."""
    path = Path(path)
    if await asyncio.to_thread(_delete, path):
        yield Event(EventKind.DELETE_FILE, path=path)


async def create_directory(path: Path) -> EventStream:
    path = Path(path)
    if await asyncio.to_thread(path.is_file):
        raise FileConflictError(path)
    await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)
    yield Event(EventKind.CREATE_DIRECTORY, path=path)


async def hash_file(path: Path) -> str:
    """Return the lower-case hex SHA-256 of a file."""
    return await asyncio.to_thread(_sha256, Path(path))


def _members(archive: zipfile.ZipFile, sub_path: Optional[str]) -> List[Tuple[zipfile.ZipInfo, PurePosixPath]]:
    prefix = PurePosixPath(sub_path.strip("/")) if sub_path else None
    selected = []
    for info in archive.infolist():
        name = PurePosixPath(info.filename)
        if prefix is not None:
            try:
                name = name.relative_to(prefix)
            except ValueError:
                continue
        if name == PurePosixPath("."):
            continue
        selected.append((info, name))
    return selected


def _extract(source: Path, target: Path, sub_path: Optional[str]) -> int:
    try:
        archive = zipfile.ZipFile(source)
    except (zipfile.BadZipFile, OSError) as exc:
        raise ArchiveError(source, str(exc)) from exc

    with archive:
        members = _members(archive, sub_path)
        if sub_path and not members:
            raise ArchiveError(source, f"no entries under '{sub_path}'")

        root = target.resolve()
        root.mkdir(parents=True, exist_ok=True)
        count = 0
        for info, relative in members:
            if relative.is_absolute() or ".." in relative.parts:
                raise ArchiveError(source, f"unsafe entry '{info.filename}'")
            destination = root.joinpath(*relative.parts)
            if info.is_dir():
                destination.mkdir(parents=True, exist_ok=True)
                continue
            destination.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(info) as src, open(destination, "wb") as dst:
                shutil.copyfileobj(src, dst)
            mode = (info.external_attr >> 16) & 0o777
            if mode & 0o111:
                destination.chmod(mode)
            count += 1
        return count


async def unzip(source: Path, target: Path, sub_path: Optional[str] = None) -> EventStream:
    """Extract ``source`` (optionally only ``sub_path``) into ``target``.

    Existing files in ``target`` are overwritten.

    Raises:
        ArchiveError: If the archive is unreadable, contains entries escaping
            ``target``, or has nothing under ``sub_path``.
    """
    source, target = Path(source), Path(target)
    count = await asyncio.to_thread(_extract, source, target, sub_path)
    logger.debug("Extracted %d file(s) from %s into %s", count, source, target)
    yield Event(EventKind.FILE_UNZIP, path=source, target=target)
