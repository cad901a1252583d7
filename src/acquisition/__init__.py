"""Event-emitting acquisition pipeline: file primitives and downloads."""

from .download import archive_path, download_remote_archive, download_remote_file, ensure_hash
from .events import Event, EventKind, EventStream, drain, merge_streams
from .files import (
    create_directory,
    delete_if_exists,
    hash_file,
    read_file,
    touch_file,
    unzip,
    write_file,
)

__all__ = [
    "Event",
    "EventKind",
    "EventStream",
    "drain",
    "merge_streams",
    "archive_path",
    "create_directory",
    "delete_if_exists",
    "download_remote_archive",
    "download_remote_file",
    "ensure_hash",
    "hash_file",
    "read_file",
    "touch_file",
    "unzip",
    "write_file",
]
