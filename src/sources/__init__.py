"""Recipe sources: the capability the resolver uses to look up recipes.

- base.py: the RecipeSource protocol
- github.py: tags + per-commit project files on GitHub
- cookbook.py: recipe JSON files in a local folder
- composite.py: source-tag routing and ordered fallback
"""

from .base import RecipeSource
from .composite import CompositeRecipeSource, standard
from .cookbook import CookbookRecipeSource
from .github import GitHubClient, GitHubRecipeSource

__all__ = [
    "RecipeSource",
    "CompositeRecipeSource",
    "CookbookRecipeSource",
    "GitHubClient",
    "GitHubRecipeSource",
    "standard",
]
