"""Recipe source reading recipe files from a local cookbook folder.

A cookbook is laid out as ``<root>/recipes/<organization>/<recipe>.json``.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from common.errors import DocumentError, FetchRecipeError, RecipeUnavailableError
from serialization import parse_recipe
from versioning.models import Recipe, RecipeIdentifier

logger = logging.getLogger(__name__)


def _read_text(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


def _recipe_files(root: Path) -> List[Tuple[str, str]]:
    recipes = root / "recipes"
    if not recipes.is_dir():
        return []
    return sorted(
        (organization.name, path.stem)
        for organization in recipes.iterdir()
        if organization.is_dir()
        for path in organization.glob("*.json")
    )


class CookbookRecipeSource:
    """RecipeSource over a folder of recipe JSON files."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def recipe_path(self, identifier: RecipeIdentifier) -> Path:
        return self.root / "recipes" / str(identifier.organization) / f"{identifier.recipe}.json"

    async def fetch(self, identifier: RecipeIdentifier) -> Recipe:
        path = self.recipe_path(identifier)
        try:
            text = await asyncio.to_thread(_read_text, path)
        except OSError as exc:
            raise FetchRecipeError(identifier, f"could not read {path}: {exc}", [exc]) from exc
        if text is None:
            raise RecipeUnavailableError(identifier, f"no recipe file in cookbook {self.root}")
        try:
            recipe = parse_recipe(text)
        except DocumentError as exc:
            raise RecipeUnavailableError(identifier, f"invalid recipe file {path}: {exc}", [exc]) from exc
        if not recipe.versions:
            raise RecipeUnavailableError(identifier, f"recipe file {path} lists no versions")
        logger.debug("Read recipe %s from %s", identifier, path)
        return recipe

    async def identifiers(self) -> List[RecipeIdentifier]:
        """Every recipe in the cookbook, sorted; files with invalid names are skipped."""
        found = []
        for organization, name in await asyncio.to_thread(_recipe_files, self.root):
            try:
                found.append(RecipeIdentifier.of(organization, name))
            except ValueError:
                logger.debug("Skipping %s/%s.json in %s: not a valid identifier", organization, name, self.root)
        return found
