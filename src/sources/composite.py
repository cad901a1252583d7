"""Composite recipe source: source-tag routing plus ordered fallback."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional, Sequence

from common.errors import FetchRecipeError, RecipeUnavailableError
from common.http_client import HttpClient
from constants import RecipeSourceTypes
from versioning.models import Recipe, RecipeIdentifier

from .base import RecipeSource
from .cookbook import CookbookRecipeSource
from .github import GitHubClient, GitHubRecipeSource

if TYPE_CHECKING:
    from cli_config import Config

logger = logging.getLogger(__name__)


class CompositeRecipeSource:
    """Ask several sources for a recipe.

    Identifiers carrying a source tag (``github+org/name``) go straight to the
    source registered for that tag. Untagged identifiers try ``sources`` in
    order and the first success wins; if every source fails the errors are
    aggregated.
    """

    def __init__(
        self,
        sources: Sequence[RecipeSource],
        routes: Optional[Mapping[str, RecipeSource]] = None,
    ):
        self.sources = list(sources)
        self.routes: Dict[str, RecipeSource] = dict(routes or {})

    async def fetch(self, identifier: RecipeIdentifier) -> Recipe:
        if identifier.source is not None:
            routed = self.routes.get(str(identifier.source))
            if routed is None:
                raise FetchRecipeError(identifier, f"unknown recipe source '{identifier.source}'")
            return await routed.fetch(identifier)

        if not self.sources:
            raise RecipeUnavailableError(identifier, "no recipe sources configured")

        errors: List[FetchRecipeError] = []
        for source in self.sources:
            try:
                return await source.fetch(identifier)
            except FetchRecipeError as exc:
                logger.debug("%s could not provide %s: %s", type(source).__name__, identifier, exc)
                errors.append(exc)

        reason = "; ".join(e.reason for e in errors)
        if all(isinstance(e, RecipeUnavailableError) for e in errors):
            raise RecipeUnavailableError(identifier, reason, errors)
        raise FetchRecipeError(identifier, reason, errors)


def standard(config: "Config", http: HttpClient) -> CompositeRecipeSource:
    """Build the default source: configured cookbooks first, then GitHub."""
    github = GitHubRecipeSource(
        GitHubClient(http, api_base=config.github_api_base, raw_base=config.github_raw_base),
        codeload_base=config.github_codeload_base,
    )
    cookbooks: List[RecipeSource] = [CookbookRecipeSource(path) for path in config.cookbooks]
    return CompositeRecipeSource(
        sources=[*cookbooks, github],
        routes={RecipeSourceTypes.GITHUB.value: github},
    )
