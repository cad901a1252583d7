"""List the recipes available from local cookbooks."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List, Set

from sources.cookbook import CookbookRecipeSource
from versioning.models import RecipeIdentifier


async def list_recipes(cookbooks: Iterable[Path]) -> List[RecipeIdentifier]:
    """Recipe identifiers across ``cookbooks``, sorted and without duplicates."""
    found: Set[RecipeIdentifier] = set()
    for root in cookbooks:
        found.update(await CookbookRecipeSource(root).identifiers())
    return sorted(found)
