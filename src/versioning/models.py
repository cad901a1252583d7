"""Data models for identifiers, versions, recipes and lock entries."""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, Iterator, Optional, Tuple

import semantic_version

from constants import Constants

if TYPE_CHECKING:
    from versioning.requirement import SemanticVersionRequirement

# SemVer 2.0 precedence (numeric identifiers compare numerically, pre-release < release).
SemanticVersion = semantic_version.Version

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,30}$")
COMMIT_HASH_PATTERN = re.compile(r"^[0-9a-f]{40}$")
VERSION_PATTERN = re.compile(
    r"^(\d+)(\.\d+)?(\.\d+)?(-[0-9A-Za-z.-]+)?(\+[0-9A-Za-z.-]+)?$"
)


def parse_version(text: str) -> SemanticVersion:
    """Parse a version, coercing missing minor/patch parts to zero.

    Raises:
        ValueError: If ``text`` is not a (possibly partial) semantic version.
    """
    s = text.strip()
    if not VERSION_PATTERN.match(s):
        raise ValueError(f"Invalid semantic version: {text!r}")
    return semantic_version.Version.coerce(s)


@dataclass(frozen=True, order=True)
class Identifier:
    """A validated name token: 3-30 characters of letters, digits, '-' or '_'."""

    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not IDENTIFIER_PATTERN.match(self.name):
            raise ValueError(f"Invalid identifier: {self.name!r}")

    def __str__(self) -> str:
        return self.name


@functools.total_ordering
@dataclass(frozen=True)
class RecipeIdentifier:
    """Fully-qualified package name: optional source tag, organization, recipe."""

    organization: Identifier
    recipe: Identifier
    source: Optional[Identifier] = None

    @classmethod
    def of(cls, organization: str, recipe: str, source: Optional[str] = None) -> "RecipeIdentifier":
        return cls(
            organization=Identifier(organization),
            recipe=Identifier(recipe),
            source=Identifier(source) if source is not None else None,
        )

    def __str__(self) -> str:
        prefix = f"{self.source}+" if self.source is not None else ""
        return f"{prefix}{self.organization}/{self.recipe}"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RecipeIdentifier):
            return NotImplemented
        return str(self) < str(other)

    def folder_name(self) -> str:
        """Folder under the dependencies directory, e.g. ``github.njlr.test-lib-c``."""
        prefix = f"{self.source}." if self.source is not None else ""
        return f"{prefix}{self.organization}.{self.recipe}"


@dataclass(frozen=True)
class GitCommitHash:
    """A 40 hex-character commit hash."""

    sha: str

    def __post_init__(self) -> None:
        if not isinstance(self.sha, str) or not COMMIT_HASH_PATTERN.match(self.sha):
            raise ValueError(f"Invalid commit hash: {self.sha!r}")

    def __str__(self) -> str:
        return self.sha


@dataclass(frozen=True)
class RemoteFile:
    """A URL and the SHA-256 its content must hash to."""

    url: str
    sha256: Optional[str] = None


@dataclass(frozen=True)
class RemoteArchive:
    """A zip archive; ``sub_path`` selects the folder to extract from its root."""

    url: str
    sha256: Optional[str] = None
    sub_path: Optional[str] = None

    def as_remote_file(self) -> RemoteFile:
        return RemoteFile(url=self.url, sha256=self.sha256)


@dataclass(frozen=True)
class RecipeVersion:
    """Metadata for one concrete version of a recipe."""

    source: RemoteArchive
    target: Optional[str] = None
    buck_url: Optional[str] = None
    dependencies: Dict[RecipeIdentifier, "SemanticVersionRequirement"] = field(default_factory=dict)


@dataclass(frozen=True)
class Recipe:
    """A package's version catalog; one entry per published version."""

    name: str
    url: str
    versions: Dict[SemanticVersion, RecipeVersion] = field(default_factory=dict)

    def sorted_versions(self) -> Tuple[SemanticVersion, ...]:
        return tuple(sorted(self.versions))


@dataclass(frozen=True)
class DependencyLock:
    """The version chosen for one dependency, plus where to fetch it."""

    identifier: RecipeIdentifier
    version: SemanticVersion
    source: Optional[RemoteArchive] = None
    target: Optional[str] = None


@dataclass(frozen=True)
class DependencyLocks:
    """Ordered lock entries; order is the resolution order."""

    entries: Tuple[DependencyLock, ...] = ()

    @classmethod
    def of(cls, entries: Iterable[DependencyLock]) -> "DependencyLocks":
        return cls(entries=tuple(entries))

    def __iter__(self) -> Iterator[DependencyLock]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, identifier: RecipeIdentifier) -> Optional[DependencyLock]:
        for entry in self.entries:
            if entry.identifier == identifier:
                return entry
        return None


@dataclass(frozen=True)
class ResolvedDependencyReference:
    """A resolved dependency as seen by the generated build glue."""

    identifier: RecipeIdentifier
    target: str

    @property
    def folder_name(self) -> str:
        return self.identifier.folder_name()

    def encode(self) -> str:
        return f"//{Constants.DEPENDENCIES_FOLDER}/{self.folder_name}:{self.target}"


@dataclass(frozen=True)
class Project:
    """A parsed project file."""

    name: Optional[str] = None
    license: Optional[str] = None
    dependencies: Dict[RecipeIdentifier, "SemanticVersionRequirement"] = field(default_factory=dict)
