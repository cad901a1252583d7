"""Project workflows: init, resolve, install, uninstall, update and recipes.

Each project workflow is an async generator of acquisition Events.
"""

from .init import init
from .install import add_dependencies, install, uninstall, update
from .recipes import list_recipes
from .resolve import resolve_dependencies

__all__ = [
    "init",
    "resolve_dependencies",
    "install",
    "add_dependencies",
    "uninstall",
    "update",
    "list_recipes",
]
