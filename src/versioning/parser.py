"""Token parsing utilities for identifiers, requirements and repository tags."""

import re
from typing import Optional, Tuple

from .models import Identifier, RecipeIdentifier, SemanticVersion, parse_version
from .requirement import SemanticVersionRequirement

_RECIPE_IDENTIFIER = re.compile(
    r"^(?:(?P<source>[A-Za-z0-9_-]+)\+)?(?P<organization>[A-Za-z0-9_-]+)/(?P<recipe>[A-Za-z0-9_-]+)$"
)


def tokenize_rightmost_at(s: str) -> Tuple[str, Optional[str]]:
    """Return (identifier, requirement or None) using the rightmost-'@' rule.

    ``github+njlr/test-lib-c@^1.0`` -> (``github+njlr/test-lib-c``, ``^1.0``).
    """
    s = s.strip()
    if "@" not in s:
        return s, None
    identifier, _, spec_part = s.rpartition("@")
    spec = spec_part.strip() or None
    return identifier.strip(), spec


def parse_identifier(text: str) -> Identifier:
    """Parse a bare identifier token."""
    return Identifier(text.strip())


def parse_recipe_identifier(text: str) -> RecipeIdentifier:
    """Parse ``[source+]organization/recipe``.

    Raises:
        ValueError: If the token is malformed or a part is not a valid Identifier.
    """
    m = _RECIPE_IDENTIFIER.match(text.strip())
    if not m:
        raise ValueError(f"Invalid recipe identifier: {text!r}")
    return RecipeIdentifier.of(
        organization=m.group("organization"),
        recipe=m.group("recipe"),
        source=m.group("source"),
    )


def parse_requirement(text: Optional[str]) -> SemanticVersionRequirement:
    """Parse a requirement; None or blank means any version."""
    if text is None:
        return SemanticVersionRequirement.any()
    return SemanticVersionRequirement.parse(text)


def parse_dependency_token(token: str) -> Tuple[RecipeIdentifier, SemanticVersionRequirement]:
    """Parse a CLI dependency token such as ``njlr/test-lib-c@^1.0``."""
    id_part, spec = tokenize_rightmost_at(token)
    return parse_recipe_identifier(id_part), parse_requirement(spec)


def version_from_tag(tag: str) -> Optional[SemanticVersion]:
    """Extract the semantic version embedded in a tag name.

    A leading ``v``/``V`` is stripped. Tags that are not versions return None
    rather than raising, so callers can simply skip them.
    """
    name = tag.strip()
    if name[:1] in ("v", "V"):
        name = name[1:]
    try:
        return parse_version(name)
    except ValueError:
        return None
