"""Install locked dependencies and edit the project's dependency list.

Every locked dependency is acquired concurrently into
``depforge/<folder name>``; the Buck include ``depforge/DEPFORGE_DEPS`` is
rewritten afterwards. Re-running an install with the same lock downloads
nothing: existing archives are only re-verified and re-extracted.

Archives whose recipe publishes no SHA-256 are hashed on first download and
the digest is written back into the lock, so every later install verifies
them.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from acquisition.download import archive_path, download_remote_archive
from acquisition.events import EventKind, EventStream, merge_streams
from acquisition.files import delete_if_exists, read_file, write_file
from common.errors import DocumentError
from common.http_client import HttpClient
from constants import Constants
from serialization import parse_project, serialize_dependency_locks, serialize_project
from sources.base import RecipeSource
from versioning.models import (
    DependencyLock,
    DependencyLocks,
    Project,
    RecipeIdentifier,
    ResolvedDependencyReference,
    SemanticVersion,
)
from versioning.requirement import SemanticVersionRequirement

from .common import (
    dependencies_folder,
    generate_deps_file,
    lock_file_path,
    project_file_path,
    read_existing_locks,
    read_locks,
)
from .resolve import resolve_dependencies

logger = logging.getLogger(__name__)


async def install_dependency(http: HttpClient, lock: DependencyLock, folder: Path) -> EventStream:
    """Download and extract one locked dependency into ``folder``."""
    if lock.source is None:
        raise DocumentError(
            f"Lock entry {lock.identifier} has no download url; run 'depforge resolve' first"
        )
    logger.debug("Installing %s@%s into %s", lock.identifier, lock.version, folder)
    async for event in download_remote_archive(http, lock.source, folder):
        yield event


def _unique_by_folder(locks: Iterable[DependencyLock]) -> List[DependencyLock]:
    seen: Dict[str, DependencyLock] = {}
    for lock in locks:
        name = lock.identifier.folder_name()
        if name in seen:
            logger.warning("Skipping %s: folder %s is already used by %s", lock.identifier, name, seen[name].identifier)
            continue
        seen[name] = lock
    return list(seen.values())


def references_for(project: Project, locks: DependencyLocks) -> List[ResolvedDependencyReference]:
    """Build labels for the project's direct dependencies, in lock order."""
    return [
        ResolvedDependencyReference(lock.identifier, lock.target or str(lock.identifier.recipe))
        for lock in locks
        if lock.identifier in project.dependencies
    ]


def lock_satisfies(project: Project, locks: DependencyLocks) -> bool:
    """True when every direct dependency is locked at a version it accepts."""
    for identifier, requirement in project.dependencies.items():
        entry = locks.get(identifier)
        if entry is None or not requirement.match(entry.version):
            return False
    return True


def pin_digests(locks: DependencyLocks, digests: Mapping[RecipeIdentifier, str]) -> DependencyLocks:
    """Record observed archive digests on the matching lock entries."""
    return DependencyLocks.of(
        replace(lock, source=replace(lock.source, sha256=digests[lock.identifier]))
        if lock.identifier in digests and lock.source is not None
        else lock
        for lock in locks
    )


async def install_locked(
    project_directory: Path,
    http: HttpClient,
    project: Project,
    locks: DependencyLocks,
) -> EventStream:
    """Acquire every locked dependency concurrently, then write DEPFORGE_DEPS.

    The first failing acquisition cancels the others; files already
    completed stay on disk. Digests of archives the lock had no SHA-256 for
    are written back into the lock file.
    """
    folder = dependencies_folder(project_directory)
    unique = _unique_by_folder(locks)
    unpinned = {
        archive_path(folder / lock.identifier.folder_name()): lock.identifier
        for lock in unique
        if lock.source is not None and lock.source.sha256 is None
    }
    digests: Dict[RecipeIdentifier, str] = {}

    streams = [install_dependency(http, lock, folder / lock.identifier.folder_name()) for lock in unique]
    if streams:
        async for event in merge_streams(*streams):
            if event.kind is EventKind.FILE_HASH and event.path in unpinned:
                digests[unpinned[event.path]] = event.sha256
            yield event
    logger.info("Installed %d dependencies", len(unique))

    if digests:
        logger.info("Recording SHA-256 of %d archive(s) in %s", len(digests), Constants.LOCK_FILE)
        async for event in write_file(
            serialize_dependency_locks(pin_digests(locks, digests)),
            lock_file_path(project_directory),
            overwrite=True,
        ):
            yield event

    async for event in write_file(
        generate_deps_file(references_for(project, locks)),
        folder / Constants.DEPS_FILE,
        overwrite=True,
    ):
        yield event


async def _read_project(project_directory: Path, sink: List[Project]) -> EventStream:
    async for event in read_file(project_file_path(project_directory)):
        yield event
        sink.append(parse_project(event.content or ""))


async def remove_stale(project_directory: Path, previous: DependencyLocks, current: DependencyLocks) -> EventStream:
    """Delete installed folders (and archives) whose lock entry went away or changed."""
    current_by_folder = {lock.identifier.folder_name(): lock for lock in current}
    folder = dependencies_folder(project_directory)
    for lock in previous:
        name = lock.identifier.folder_name()
        if current_by_folder.get(name) == lock:
            continue
        async for event in delete_if_exists(folder / name):
            yield event
        async for event in delete_if_exists(archive_path(folder / name)):
            yield event


async def relock(
    project_directory: Path,
    source: RecipeSource,
    max_reopens: int = Constants.RESOLVER_MAX_REOPENS,
    fetch_timeout: Optional[float] = None,
    preferred: Optional[Mapping[RecipeIdentifier, SemanticVersion]] = None,
) -> EventStream:
    """Re-resolve the project and delete what the new lock no longer uses."""
    previous: List[DependencyLocks] = []
    async for event in read_existing_locks(project_directory, previous):
        yield event

    async for event in resolve_dependencies(project_directory, source, max_reopens, fetch_timeout, preferred):
        yield event

    if previous:
        current: List[DependencyLocks] = []
        async for event in read_locks(project_directory, current):
            yield event
        async for event in remove_stale(project_directory, previous[0], current[0]):
            yield event


async def install(
    project_directory: Path,
    source: RecipeSource,
    http: HttpClient,
    max_reopens: int = Constants.RESOLVER_MAX_REOPENS,
    fetch_timeout: Optional[float] = None,
) -> EventStream:
    """Install from the lock file.

    Resolves first when there is no lock, and again when the project file
    asks for a dependency the lock does not satisfy (locked versions are
    kept where they still fit).
    """
    project_directory = Path(project_directory)
    projects: List[Project] = []
    async for event in _read_project(project_directory, projects):
        yield event
    project = projects[0]

    existing: List[DependencyLocks] = []
    async for event in read_existing_locks(project_directory, existing):
        yield event

    if not existing:
        logger.info("No %s found; resolving first", Constants.LOCK_FILE)
        async for event in resolve_dependencies(project_directory, source, max_reopens, fetch_timeout):
            yield event
    elif not lock_satisfies(project, existing[0]):
        logger.info("%s does not match %s; resolving again", Constants.LOCK_FILE, Constants.PROJECT_FILE)
        preferred = {lock.identifier: lock.version for lock in existing[0]}
        async for event in relock(project_directory, source, max_reopens, fetch_timeout, preferred):
            yield event

    locks: List[DependencyLocks] = []
    if existing and lock_satisfies(project, existing[0]):
        locks = existing
    else:
        async for event in read_locks(project_directory, locks):
            yield event

    async for event in install_locked(project_directory, http, project, locks[0]):
        yield event


async def _resolve_and_install(
    project_directory: Path,
    source: RecipeSource,
    http: HttpClient,
    max_reopens: int,
    fetch_timeout: Optional[float],
    preferred: Optional[Mapping[RecipeIdentifier, SemanticVersion]] = None,
) -> EventStream:
    async for event in relock(project_directory, source, max_reopens, fetch_timeout, preferred):
        yield event
    async for event in install(project_directory, source, http, max_reopens, fetch_timeout):
        yield event


async def _rewrite_project(project_directory: Path, project: Project) -> EventStream:
    async for event in write_file(serialize_project(project), project_file_path(project_directory), overwrite=True):
        yield event


async def add_dependencies(
    project_directory: Path,
    additions: Iterable[Tuple[RecipeIdentifier, SemanticVersionRequirement]],
    source: RecipeSource,
    http: HttpClient,
    max_reopens: int = Constants.RESOLVER_MAX_REOPENS,
    fetch_timeout: Optional[float] = None,
) -> EventStream:
    """Add or replace direct dependencies, then re-resolve and install."""
    project_directory = Path(project_directory)
    projects: List[Project] = []
    async for event in _read_project(project_directory, projects):
        yield event
    project = projects[0]

    dependencies = dict(project.dependencies)
    for identifier, requirement in additions:
        if identifier in dependencies:
            logger.info("Replacing %s %s with %s", identifier, dependencies[identifier], requirement)
        dependencies[identifier] = requirement
    async for event in _rewrite_project(
        project_directory, Project(name=project.name, license=project.license, dependencies=dependencies)
    ):
        yield event

    async for event in _resolve_and_install(project_directory, source, http, max_reopens, fetch_timeout):
        yield event


async def uninstall(
    project_directory: Path,
    identifiers: Iterable[RecipeIdentifier],
    source: RecipeSource,
    http: HttpClient,
    max_reopens: int = Constants.RESOLVER_MAX_REOPENS,
    fetch_timeout: Optional[float] = None,
) -> EventStream:
    """Remove direct dependencies, re-resolve, install and delete stale folders."""
    project_directory = Path(project_directory)
    projects: List[Project] = []
    async for event in _read_project(project_directory, projects):
        yield event
    project = projects[0]

    dependencies = dict(project.dependencies)
    for identifier in identifiers:
        if dependencies.pop(identifier, None) is None:
            logger.warning("%s is not a dependency of this project", identifier)
    async for event in _rewrite_project(
        project_directory, Project(name=project.name, license=project.license, dependencies=dependencies)
    ):
        yield event

    async for event in _resolve_and_install(project_directory, source, http, max_reopens, fetch_timeout):
        yield event


async def update(
    project_directory: Path,
    source: RecipeSource,
    http: HttpClient,
    max_reopens: int = Constants.RESOLVER_MAX_REOPENS,
    fetch_timeout: Optional[float] = None,
    identifiers: Optional[Iterable[RecipeIdentifier]] = None,
) -> EventStream:
    """Re-resolve to the newest compatible versions and install.

    With ``identifiers``, only those packages move; every other package
    keeps its locked version unless the new selection rules it out.
    """
    project_directory = Path(project_directory)
    preferred: Optional[Dict[RecipeIdentifier, SemanticVersion]] = None
    if identifiers is not None:
        wanted = set(identifiers)
        existing: List[DependencyLocks] = []
        async for event in read_existing_locks(project_directory, existing):
            yield event
        locked = existing[0] if existing else DependencyLocks()
        for identifier in sorted(wanted):
            if locked.get(identifier) is None:
                logger.warning("%s is not in %s", identifier, Constants.LOCK_FILE)
        preferred = {lock.identifier: lock.version for lock in locked if lock.identifier not in wanted}

    async for event in _resolve_and_install(project_directory, source, http, max_reopens, fetch_timeout, preferred):
        yield event
