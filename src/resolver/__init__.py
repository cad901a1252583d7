"""Dependency resolution over recipe sources."""

from .resolver import AsyncDependencyResolver, ResolvedDependencies

__all__ = ["AsyncDependencyResolver", "ResolvedDependencies"]
