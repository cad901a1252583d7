"""Building blocks shared by the project workflows."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterable, List, Optional

from acquisition.events import Event, EventKind, EventStream
from acquisition.files import read_file
from cli_config import load_or_init_config
from constants import Constants
from serialization import parse_dependency_locks
from versioning.models import DependencyLocks, ResolvedDependencyReference

DEPS_HEADER = (
    "# Generated by depforge, do not edit!\n"
    "# This file should not be tracked in source-control.\n"
)


def project_file_path(project_directory: Path) -> Path:
    return Path(project_directory) / Constants.PROJECT_FILE


def lock_file_path(project_directory: Path) -> Path:
    return Path(project_directory) / Constants.LOCK_FILE


def dependencies_folder(project_directory: Path) -> Path:
    return Path(project_directory) / Constants.DEPENDENCIES_FOLDER


async def read_config_file(path: Optional[Path] = None) -> EventStream:
    """Load (or generate) the user configuration; the Config rides on the event."""
    config = await asyncio.to_thread(load_or_init_config, path)
    yield Event(EventKind.READ_CONFIG_FILE, path=config.path, config=config)


async def read_locks(project_directory: Path, sink: List[DependencyLocks]) -> EventStream:
    """Read the lock file, appending the parsed locks to ``sink``."""
    async for event in read_file(lock_file_path(project_directory)):
        yield event
        sink.append(parse_dependency_locks(event.content or ""))


async def read_existing_locks(project_directory: Path, sink: List[DependencyLocks]) -> EventStream:
    """Like read_locks, but leaves ``sink`` empty when there is no lock file."""
    if await asyncio.to_thread(lock_file_path(project_directory).exists):
        async for event in read_locks(project_directory, sink):
            yield event


def generate_deps_file(references: Iterable[ResolvedDependencyReference]) -> str:
    """Render the Buck include listing the project's direct dependencies."""
    labels = [ref.encode() for ref in references]
    if not labels:
        return f"{DEPS_HEADER}{Constants.DEPS_VARIABLE} = []\n"
    body = "".join(f"  '{label}',\n" for label in labels)
    return f"{DEPS_HEADER}{Constants.DEPS_VARIABLE} = [\n{body}]\n"
