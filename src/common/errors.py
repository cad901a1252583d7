"""Error taxonomy shared by the resolver, recipe sources and acquisition tasks.

Errors carry identifying data (identifiers, versions, hashes, paths) as
attributes; formatting for humans is left to the CLI.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence, Tuple

if TYPE_CHECKING:
    from versioning.models import RecipeIdentifier


class DepforgeError(Exception):
    """Base class for all errors raised by depforge."""


class TransportError(DepforgeError):
    """A network operation failed after exhausting its retries."""

    def __init__(self, url: str, reason: str, attempts: int = 1):
        super().__init__(f"{url}: {reason} (after {attempts} attempt(s))")
        self.url = url
        self.reason = reason
        self.attempts = attempts


class FetchRecipeError(DepforgeError):
    """A recipe could not be fetched for an identifier."""

    def __init__(
        self,
        identifier: "RecipeIdentifier",
        reason: str,
        causes: Sequence[BaseException] = (),
    ):
        super().__init__(f"Could not fetch recipe {identifier}: {reason}")
        self.identifier = identifier
        self.reason = reason
        self.causes = tuple(causes)


class RecipeUnavailableError(FetchRecipeError):
    """The source answered, but has no usable recipe for the identifier.

    Raised for repositories without tags, without a parseable project file,
    or missing recipe files. Never retried.
    """


class UnsatisfiableVersionError(DepforgeError):
    """No candidate version satisfies the merged requirement of a package."""

    def __init__(
        self,
        identifier: "RecipeIdentifier",
        requirement: Any,
        origins: Dict[str, Any],
        candidates: Sequence[Any],
    ):
        origin_text = ", ".join(f"{k} requires {v}" for k, v in origins.items())
        available = ", ".join(str(c) for c in candidates) or "none"
        super().__init__(
            f"No version of {identifier} satisfies {requirement} "
            f"({origin_text}); available: {available}"
        )
        self.identifier = identifier
        self.requirement = requirement
        self.origins = dict(origins)
        self.candidates = tuple(candidates)


class ResolutionDidNotConvergeError(DepforgeError):
    """A package was re-opened too many times while resolving."""

    def __init__(self, identifier: "RecipeIdentifier", reopens: int, limit: int):
        super().__init__(
            f"Resolution did not converge: {identifier} re-opened {reopens} times "
            f"(limit {limit})"
        )
        self.identifier = identifier
        self.reopens = reopens
        self.limit = limit


class HashMismatchError(DepforgeError):
    """The SHA-256 of a downloaded file differs from the expected value."""

    def __init__(self, expected: str, actual: str, path: Optional[Path] = None):
        location = f" for {path}" if path is not None else ""
        super().__init__(f"Hash mismatch{location}: expected {expected}, actual {actual}")
        self.expected = expected
        self.actual = actual
        self.path = path


class FileConflictError(DepforgeError):
    """A target path already exists and overwriting was not requested."""

    def __init__(self, path: Path, kind: str = "file"):
        super().__init__(f"There is already a {kind} at {path}")
        self.path = path
        self.kind = kind


class DocumentError(DepforgeError, ValueError):
    """A JSON or YAML document could not be parsed or failed validation."""

    def __init__(self, message: str, location: Optional[Tuple[str, ...]] = None):
        super().__init__(message)
        self.location = location or ()


class ArchiveError(DepforgeError):
    """A downloaded archive is unreadable or cannot be extracted as asked."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"Could not extract {path}: {reason}")
        self.path = path
        self.reason = reason
