"""Semantic-version requirements (predicates over versions).

Requirements are evaluated against enumerated candidates; combining two
requirements keeps both clauses and never tries to simplify them, so an
impossible combination is only discovered when no candidate matches.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple

import semantic_version

from versioning.models import VERSION_PATTERN, SemanticVersion, parse_version

_ANY_TOKENS = ("", "*", "x", "latest", "any")
_INTERVAL = re.compile(r"^([\[(])\s*([^,\s]*)\s*,\s*([^\])\s]*)\s*([\])])$")
_FULL_VERSION = re.compile(r"^\d+\.\d+\.\d+([-+].*)?$")
# every release, no pre-releases
_ANY_CLAUSE = semantic_version.NpmSpec(">=0.0.0")


class RequirementKind(Enum):
    """Shape of a requirement as written by the user."""
    ANY = "any"
    EXACT = "exact"
    RANGE = "range"
    ALL = "all"


def _interval_to_simple(match: "re.Match[str]") -> str:
    """Translate a bracket interval like ``[1.0, 2.0)`` into SimpleSpec syntax."""
    opening, lower, upper, closing = match.groups()
    parts = []
    if lower:
        parts.append((">=" if opening == "[" else ">") + str(parse_version(lower)))
    if upper:
        parts.append(("<=" if closing == "]" else "<") + str(parse_version(upper)))
    if not parts:
        return "*"
    return ",".join(parts)


def _compile_range(text: str) -> semantic_version.BaseSpec:
    """Compile a range, preferring npm grammar and falling back to SimpleSpec.

    Comma-separated comparators are joined with spaces first so they get
    npm's pre-release rules too.
    """
    try:
        return semantic_version.NpmSpec(" ".join(part.strip() for part in text.split(",")))
    except ValueError:
        pass
    try:
        return semantic_version.SimpleSpec(text)
    except ValueError as exc:
        raise ValueError(f"Invalid version requirement {text!r}: {exc}") from exc


@dataclass(frozen=True)
class SemanticVersionRequirement:
    """A predicate over SemanticVersion.

    ``raw`` is the user-facing text (serialized back verbatim); ``clauses`` are
    the compiled specs, all of which must match.
    """

    raw: str
    kind: RequirementKind
    clauses: Tuple[semantic_version.BaseSpec, ...] = field(default=(), compare=False, repr=False)

    @classmethod
    def any(cls) -> "SemanticVersionRequirement":
        return cls(raw="*", kind=RequirementKind.ANY, clauses=(_ANY_CLAUSE,))

    @classmethod
    def exactly(cls, version: SemanticVersion) -> "SemanticVersionRequirement":
        return cls(
            raw=str(version),
            kind=RequirementKind.EXACT,
            clauses=(semantic_version.SimpleSpec(f"=={version}"),),
        )

    @classmethod
    def parse(cls, text: str) -> "SemanticVersionRequirement":
        """Parse a requirement string.

        Accepted forms: ``*``/``latest`` (any), ``1.2.3`` or ``=1.2.3``
        (exact), npm ranges (``^1.2``, ``~1.2``, ``1.x``, ``1.2.3 - 1.4.0``,
        ``>=1.0 <2``), comma-separated comparators (``>=1.0,<2.0``) and
        bracket intervals (``[1.0, 2.0)``).

        Raises:
            ValueError: If the text is not a valid requirement.
        """
        s = text.strip()
        if s.lower() in _ANY_TOKENS:
            return cls(raw=s or "*", kind=RequirementKind.ANY, clauses=(_ANY_CLAUSE,))

        exact = s.lstrip("=").lstrip("vV") if s.startswith("=") else s
        if _FULL_VERSION.match(exact) or (s.startswith("=") and VERSION_PATTERN.match(exact)):
            version = parse_version(exact)
            return cls(
                raw=s,
                kind=RequirementKind.EXACT,
                clauses=(semantic_version.SimpleSpec(f"=={version}"),),
            )

        interval = _INTERVAL.match(s)
        if interval:
            return cls(
                raw=s,
                kind=RequirementKind.RANGE,
                clauses=(_compile_range(_interval_to_simple(interval)),),
            )

        return cls(raw=s, kind=RequirementKind.RANGE, clauses=(_compile_range(s),))

    def __str__(self) -> str:
        return self.raw

    def __and__(self, other: "SemanticVersionRequirement") -> "SemanticVersionRequirement":
        if not isinstance(other, SemanticVersionRequirement):
            return NotImplemented
        if other.kind == RequirementKind.ANY or other == self:
            return self
        if self.kind == RequirementKind.ANY:
            return other
        return SemanticVersionRequirement(
            raw=f"{self.raw} and {other.raw}",
            kind=RequirementKind.ALL,
            clauses=self.clauses + other.clauses,
        )

    def match(self, version: SemanticVersion) -> bool:
        return all(clause.match(version) for clause in self.clauses)

    def filter(self, candidates: Iterable[SemanticVersion]) -> List[SemanticVersion]:
        """Return the satisfying candidates in ascending order."""
        return sorted(v for v in candidates if self.match(v))

    def select(self, candidates: Iterable[SemanticVersion]) -> Optional[SemanticVersion]:
        """Return the highest satisfying candidate, or None."""
        matching = self.filter(candidates)
        return matching[-1] if matching else None


def combine(requirements: Iterable[SemanticVersionRequirement]) -> SemanticVersionRequirement:
    """AND together any number of requirements."""
    merged = SemanticVersionRequirement.any()
    for requirement in requirements:
        merged = merged & requirement
    return merged
