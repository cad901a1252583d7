"""The recipe-lookup capability consumed by the resolver."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from versioning.models import Recipe, RecipeIdentifier


@runtime_checkable
class RecipeSource(Protocol):
    """Anything that can look up the full Recipe for an identifier.

    Implementations raise ``FetchRecipeError`` (or its subclass
    ``RecipeUnavailableError``) on failure and are not required to cache.
    """

    async def fetch(self, identifier: RecipeIdentifier) -> Recipe:
        ...
