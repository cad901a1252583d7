"""Resolve a project's dependencies and write the lock file."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Mapping, Optional

from acquisition.events import Event, EventKind, EventStream
from acquisition.files import read_file, write_file
from common.errors import DocumentError
from constants import Constants
from resolver import AsyncDependencyResolver, ResolvedDependencies
from serialization import parse_project, serialize_dependency_locks
from sources.base import RecipeSource
from versioning.models import (
    DependencyLock,
    DependencyLocks,
    RecipeIdentifier,
    RemoteArchive,
    SemanticVersion,
)

from .common import lock_file_path, project_file_path, read_existing_locks

logger = logging.getLogger(__name__)


def _carry_pin(
    identifier: RecipeIdentifier,
    version: SemanticVersion,
    source: Optional[RemoteArchive],
    previous: Optional[DependencyLocks],
) -> Optional[RemoteArchive]:
    if previous is None or source is None or source.sha256 is not None:
        return source
    old = previous.get(identifier)
    if old is None or old.version != version or old.source is None or not old.source.sha256:
        return source
    if (old.source.url, old.source.sub_path) != (source.url, source.sub_path):
        return source
    return replace(source, sha256=old.source.sha256)


def locks_from_resolution(
    resolved: ResolvedDependencies,
    previous: Optional[DependencyLocks] = None,
) -> DependencyLocks:
    """Lock entries in resolution order, carrying everything install needs.

    Archives without a published SHA-256 keep the digest recorded in
    ``previous`` as long as their version and url are unchanged.
    """
    return DependencyLocks.of(
        DependencyLock(
            identifier=identifier,
            version=version,
            source=_carry_pin(identifier, version, recipe_version.source, previous),
            target=recipe_version.target or str(identifier.recipe),
        )
        for identifier, (version, recipe_version) in resolved.items()
    )


async def resolve_dependencies(
    project_directory: Path,
    source: RecipeSource,
    max_reopens: int = Constants.RESOLVER_MAX_REOPENS,
    fetch_timeout: Optional[float] = None,
    preferred: Optional[Mapping[RecipeIdentifier, SemanticVersion]] = None,
) -> EventStream:
    """Read the project file, resolve it against ``source`` and write the lock.

    Emits READ_FILE for the project (and for the previous lock, when there
    is one), RESOLVED_DEPENDENCIES and WRITE_FILE. The lock file is only
    written once resolution has succeeded.
    """
    project = None
    async for event in read_file(project_file_path(project_directory)):
        yield event
        project = parse_project(event.content or "")
    assert project is not None

    previous: List[DependencyLocks] = []
    try:
        async for event in read_existing_locks(project_directory, previous):
            yield event
    except DocumentError as exc:
        logger.warning("Ignoring unreadable %s: %s", Constants.LOCK_FILE, exc)

    logger.info("Resolving %d direct dependencies", len(project.dependencies))
    resolver = AsyncDependencyResolver(source, max_reopens=max_reopens, fetch_timeout=fetch_timeout)
    resolved = await resolver.resolve(project.dependencies, preferred=preferred)
    yield Event(EventKind.RESOLVED_DEPENDENCIES, dependencies=tuple(resolved.items()))

    locks = locks_from_resolution(resolved, previous[0] if previous else None)
    async for event in write_file(
        serialize_dependency_locks(locks), lock_file_path(project_directory), overwrite=True
    ):
        yield event
