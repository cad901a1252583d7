"""Asynchronous dependency resolver.

Turns root requirements into one concrete version per package reachable from
the roots. Works in rounds over a frontier of packages that still need a
selection:

1. recipes missing for the frontier are fetched concurrently (one task per
   package, no artificial cap) and cached for the rest of the run;
2. frontier packages are processed in identifier order: the highest version
   satisfying every requirement placed on the package is selected (or the
   caller's preferred version, while it still satisfies them) and the
   selected version's own requirements are recorded;
3. a new requirement that an earlier selection no longer satisfies re-opens
   that package for the next round, dropping the requirements it had placed;
4. packages no longer reachable from the roots are pruned.

The run stops when a round leaves the frontier empty. Processing order never
depends on network completion order, so identical inputs always produce the
same assignment in the same order.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from constants import Constants
from common.aio import gather_or_cancel
from common.errors import (
    FetchRecipeError,
    ResolutionDidNotConvergeError,
    UnsatisfiableVersionError,
)
from common.logging_utils import extra_context, is_debug_enabled
from sources.base import RecipeSource
from versioning.models import Recipe, RecipeIdentifier, RecipeVersion, SemanticVersion
from versioning.requirement import SemanticVersionRequirement, combine

logger = logging.getLogger(__name__)

ROOT_ORIGIN = "<project>"

Requirements = Union[
    Mapping[RecipeIdentifier, SemanticVersionRequirement],
    Iterable[Tuple[RecipeIdentifier, SemanticVersionRequirement]],
]
# identifier -> (selected version, its recipe version), in first-selection order
ResolvedDependencies = Dict[RecipeIdentifier, Tuple[SemanticVersion, RecipeVersion]]


class _Resolution:
    """Mutable state of a single resolution run."""

    def __init__(
        self,
        roots: Dict[RecipeIdentifier, SemanticVersionRequirement],
        max_reopens: int,
        preferred: Optional[Mapping[RecipeIdentifier, SemanticVersion]] = None,
    ):
        self.roots = roots
        self.max_reopens = max_reopens
        self.preferred = dict(preferred or {})
        # target -> {requirer (None for the project) -> requirement}
        self.contributions: Dict[RecipeIdentifier, Dict[Optional[RecipeIdentifier], SemanticVersionRequirement]] = {
            identifier: {None: requirement} for identifier, requirement in roots.items()
        }
        self.recipes: Dict[RecipeIdentifier, Recipe] = {}
        self.selected: Dict[RecipeIdentifier, SemanticVersion] = {}
        self.order: "OrderedDict[RecipeIdentifier, None]" = OrderedDict()
        self.reopens: Dict[RecipeIdentifier, int] = {}
        self.frontier: Set[RecipeIdentifier] = set(roots)

    def _origin(self, requirer: Optional[RecipeIdentifier]) -> str:
        if requirer is None:
            return ROOT_ORIGIN
        version = self.selected.get(requirer)
        return f"{requirer}@{version}" if version is not None else str(requirer)

    def origins(self, identifier: RecipeIdentifier) -> Dict[str, str]:
        reqs = self.contributions.get(identifier, {})
        return {
            self._origin(k): str(reqs[k])
            for k in sorted(reqs, key=lambda r: "" if r is None else str(r))
        }

    def merged(self, identifier: RecipeIdentifier) -> SemanticVersionRequirement:
        reqs = self.contributions.get(identifier, {})
        return combine(reqs[k] for k in sorted(reqs, key=lambda r: "" if r is None else str(r)))

    def _drop_requirements_from(self, requirer: RecipeIdentifier) -> None:
        for target in list(self.contributions):
            reqs = self.contributions[target]
            reqs.pop(requirer, None)
            if not reqs:
                del self.contributions[target]

    def _reopen(self, identifier: RecipeIdentifier, next_frontier: Set[RecipeIdentifier]) -> None:
        count = self.reopens.get(identifier, 0) + 1
        self.reopens[identifier] = count
        if count > self.max_reopens:
            requirement = self.merged(identifier)
            candidates = self.recipes[identifier].sorted_versions()
            if requirement.select(candidates) is None:
                raise UnsatisfiableVersionError(identifier, requirement, self.origins(identifier), candidates)
            raise ResolutionDidNotConvergeError(identifier, count, self.max_reopens)
        logger.debug("Re-opening %s (was %s)", identifier, self.selected[identifier])
        del self.selected[identifier]
        self._drop_requirements_from(identifier)
        next_frontier.add(identifier)

    def select(
        self,
        identifier: RecipeIdentifier,
        pending: Set[RecipeIdentifier],
        next_frontier: Set[RecipeIdentifier],
    ) -> None:
        requirement = self.merged(identifier)
        recipe = self.recipes[identifier]
        candidates = recipe.sorted_versions()
        version = self.preferred.get(identifier)
        if version is None or version not in recipe.versions or not requirement.match(version):
            version = requirement.select(candidates)
        if version is None:
            raise UnsatisfiableVersionError(identifier, requirement, self.origins(identifier), candidates)

        self.selected[identifier] = version
        self.order.setdefault(identifier, None)
        recipe_version = recipe.versions[version]

        for dependency in sorted(recipe_version.dependencies):
            self.contributions.setdefault(dependency, {})[identifier] = recipe_version.dependencies[dependency]
            current = self.selected.get(dependency)
            if current is not None:
                if not self.merged(dependency).match(current):
                    self._reopen(dependency, next_frontier)
            elif dependency not in pending:
                next_frontier.add(dependency)

    def prune(self) -> None:
        """Forget packages that are no longer reachable from the roots."""
        reachable: Set[RecipeIdentifier] = set()
        stack: List[RecipeIdentifier] = list(self.roots)
        while stack:
            identifier = stack.pop()
            if identifier in reachable:
                continue
            reachable.add(identifier)
            version = self.selected.get(identifier)
            if version is not None:
                stack.extend(self.recipes[identifier].versions[version].dependencies)

        for identifier in [i for i in self.selected if i not in reachable]:
            logger.debug("Pruning %s, no longer required", identifier)
            del self.selected[identifier]
            self._drop_requirements_from(identifier)
        self.frontier &= reachable

    def result(self) -> ResolvedDependencies:
        resolved: ResolvedDependencies = OrderedDict()
        for identifier in self.order:
            version = self.selected.get(identifier)
            if version is not None:
                resolved[identifier] = (version, self.recipes[identifier].versions[version])
        return resolved


class AsyncDependencyResolver:
    """Resolve requirements against a RecipeSource."""

    def __init__(
        self,
        source: RecipeSource,
        max_reopens: int = Constants.RESOLVER_MAX_REOPENS,
        fetch_timeout: Optional[float] = None,
    ):
        """Initialize the resolver.

        Args:
            source: Recipe lookup capability.
            max_reopens: How many times one package may be re-opened before
                the run is declared non-convergent.
            fetch_timeout: Optional deadline in seconds for each recipe fetch.
        """
        self.source = source
        self.max_reopens = max_reopens
        self.fetch_timeout = fetch_timeout

    @staticmethod
    def _roots(requirements: Requirements) -> Dict[RecipeIdentifier, SemanticVersionRequirement]:
        items = requirements.items() if isinstance(requirements, Mapping) else requirements
        roots: Dict[RecipeIdentifier, SemanticVersionRequirement] = {}
        for identifier, requirement in items:
            if identifier in roots:
                raise ValueError(f"Duplicate requirement for {identifier}")
            roots[identifier] = requirement
        return roots

    async def _fetch(self, identifier: RecipeIdentifier) -> Recipe:
        if self.fetch_timeout is None:
            return await self.source.fetch(identifier)
        try:
            return await asyncio.wait_for(self.source.fetch(identifier), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise FetchRecipeError(
                identifier, f"timed out after {self.fetch_timeout} seconds", [exc]
            ) from exc

    async def resolve(
        self,
        requirements: Requirements,
        preferred: Optional[Mapping[RecipeIdentifier, SemanticVersion]] = None,
    ) -> ResolvedDependencies:
        """Resolve ``requirements`` to one version per reachable package.

        Args:
            requirements: Mapping or pairs of identifier -> requirement.
            preferred: Versions to keep where they still satisfy every
                requirement (typically the current lock); other packages
                get their highest satisfying version.

        Returns:
            Ordered mapping identifier -> (version, recipe version), in the
            order packages were first selected.

        Raises:
            ValueError: If an identifier appears twice in ``requirements``.
            FetchRecipeError: If a recipe cannot be fetched.
            UnsatisfiableVersionError: If a package's requirements exclude every version.
            ResolutionDidNotConvergeError: If a package keeps being re-opened.
        """
        state = _Resolution(self._roots(requirements), self.max_reopens, preferred)
        rounds = 0
        while state.frontier:
            rounds += 1
            missing = sorted(i for i in state.frontier if i not in state.recipes)
            if missing:
                fetched = await gather_or_cancel(*(self._fetch(i) for i in missing))
                state.recipes.update(zip(missing, fetched))

            if is_debug_enabled(logger):
                logger.debug(
                    "Resolution round",
                    extra=extra_context(
                        event="resolve_round",
                        component="resolver",
                        action="round",
                        attempt=rounds,
                        count=len(state.frontier),
                    ),
                )

            pending = set(state.frontier)
            next_frontier: Set[RecipeIdentifier] = set()
            for identifier in sorted(state.frontier):
                pending.discard(identifier)
                if identifier not in state.contributions:
                    continue
                state.select(identifier, pending, next_frontier)
            state.frontier = next_frontier
            state.prune()

        resolved = state.result()
        logger.info("Resolved %d dependencies in %d round(s)", len(resolved), rounds)
        return resolved
