"""Create a new project in a directory."""

from __future__ import annotations

from pathlib import Path

from acquisition.events import EventStream
from acquisition.files import touch_file, write_file
from constants import Constants
from serialization import serialize_project
from versioning.models import Project

from .common import project_file_path


def project_for_directory(path: Path) -> Project:
    """An empty project named after the directory."""
    name = Path(path).resolve().name
    return Project(name=name or None)


async def init(project_directory: Path) -> EventStream:
    """Write a skeleton project file and touch ``.buckconfig``.

    Raises:
        FileConflictError: If a project file already exists.
    """
    project_directory = Path(project_directory)
    async for event in write_file(
        serialize_project(project_for_directory(project_directory)),
        project_file_path(project_directory),
        overwrite=False,
    ):
        yield event
    async for event in touch_file(project_directory / Constants.BUCKCONFIG_FILE):
        yield event
