"""GitHub-hosted recipe source.

Versions are discovered from repository tags: every tag whose name embeds a
semantic version (optionally prefixed with ``v``) becomes one RecipeVersion,
built from the project file committed at that tag.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Dict, Optional

from constants import Constants
from common.aio import gather_or_cancel
from common.errors import (
    DocumentError,
    FetchRecipeError,
    RecipeUnavailableError,
    TransportError,
)
from common.http_client import HttpClient
from common.logging_utils import extra_context, is_debug_enabled
from serialization import parse_project
from versioning.models import (
    GitCommitHash,
    Recipe,
    RecipeIdentifier,
    RecipeVersion,
    RemoteArchive,
    SemanticVersion,
)
from versioning.parser import version_from_tag

logger = logging.getLogger(__name__)

_LINK_NEXT = re.compile(r'<([^>]+)>;\s*rel="next"')


class GitHubClient:
    """Lightweight async REST client for the GitHub operations we need.

    Supports optional authentication via the GITHUB_TOKEN environment variable.
    """

    def __init__(
        self,
        http: HttpClient,
        api_base: Optional[str] = None,
        raw_base: Optional[str] = None,
        token: Optional[str] = None,
    ):
        """Initialize GitHub client.

        Args:
            http: Shared HTTP client.
            api_base: Base URL for the REST API (defaults to Constants.GITHUB_API_BASE)
            raw_base: Base URL for raw file contents (defaults to Constants.GITHUB_RAW_BASE)
            token: Personal access token (defaults to GITHUB_TOKEN env var)
        """
        self.http = http
        self.api_base = (api_base or Constants.GITHUB_API_BASE).rstrip("/")
        self.raw_base = (raw_base or Constants.GITHUB_RAW_BASE).rstrip("/")
        self.token = token or os.environ.get(Constants.ENV_GITHUB_TOKEN)

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def fetch_tags(self, owner: str, repo: str) -> Optional[Dict[str, GitCommitHash]]:
        """Map every tag of a repository to the commit it points at.

        Args:
            owner: Repository owner
            repo: Repository name

        Returns:
            Dict of tag name to commit hash, or None if the repository does not exist.

        Raises:
            TransportError: On network failure or an unexpected HTTP status.
        """
        url: Optional[str] = f"{self.api_base}/repos/{owner}/{repo}/tags?per_page={Constants.REPO_API_PER_PAGE}"
        tags: Dict[str, GitCommitHash] = {}
        while url:
            status, headers, data = await self.http.get_json(url, headers=self._get_headers())
            if status == 404:
                return None
            if status != 200 or not isinstance(data, list):
                raise TransportError(url, f"HTTP {status}")
            for tag in data:
                name = tag.get("name") if isinstance(tag, dict) else None
                sha = (tag.get("commit") or {}).get("sha") if isinstance(tag, dict) else None
                if not name or not sha:
                    continue
                try:
                    tags[name] = GitCommitHash(sha)
                except ValueError:
                    logger.debug("Ignoring tag %s with malformed commit %s", name, sha)
            url = self._next_page(headers)
        return tags

    async def fetch_file(self, owner: str, repo: str, commit: GitCommitHash, path: str) -> Optional[str]:
        """Fetch a file's text at a commit; None when the file is absent."""
        url = f"{self.raw_base}/{owner}/{repo}/{commit}/{path}"
        status, _, text = await self.http.robust_get(url, headers=self._get_headers())
        if status == 200:
            return text
        if status == 404:
            return None
        raise TransportError(url, f"HTTP {status}")

    @staticmethod
    def _next_page(headers: Dict[str, str]) -> Optional[str]:
        """Extract the ``rel="next"`` URL from a Link header."""
        link = headers.get("link")
        if not link:
            return None
        m = _LINK_NEXT.search(link)
        return m.group(1) if m else None


class GitHubRecipeSource:
    """RecipeSource backed by GitHub tags and per-commit project files."""

    def __init__(
        self,
        client: GitHubClient,
        codeload_base: Optional[str] = None,
        web_base: Optional[str] = None,
        project_file: str = Constants.PROJECT_FILE,
    ):
        self.client = client
        self.codeload_base = (codeload_base or Constants.GITHUB_CODELOAD_BASE).rstrip("/")
        self.web_base = (web_base or Constants.GITHUB_WEB_BASE).rstrip("/")
        self.project_file = project_file

    async def fetch(self, identifier: RecipeIdentifier) -> Recipe:
        owner, repo = str(identifier.organization), str(identifier.recipe)
        try:
            tags = await self.client.fetch_tags(owner, repo)
        except TransportError as exc:
            raise FetchRecipeError(identifier, f"could not list tags: {exc.reason}", [exc]) from exc
        if tags is None:
            raise RecipeUnavailableError(identifier, "repository not found")

        commits: Dict[SemanticVersion, GitCommitHash] = {}
        for tag in sorted(tags):
            version = version_from_tag(tag)
            if version is None:
                logger.debug("Skipping non-version tag %s of %s", tag, identifier)
                continue
            if version in commits:
                logger.debug("Tag %s duplicates version %s of %s; keeping the first", tag, version, identifier)
                continue
            commits[version] = tags[tag]

        if not commits:
            raise RecipeUnavailableError(identifier, "no releases")

        ordered = sorted(commits)
        try:
            fetched = await gather_or_cancel(
                *(self._fetch_version(identifier, v, commits[v]) for v in ordered)
            )
        except TransportError as exc:
            raise FetchRecipeError(identifier, f"could not read project file: {exc.reason}", [exc]) from exc

        versions = {v: rv for v, rv in zip(ordered, fetched) if rv is not None}
        if not versions:
            raise RecipeUnavailableError(identifier, f"no release has a readable {self.project_file}")

        if is_debug_enabled(logger):
            logger.debug(
                "Fetched recipe",
                extra=extra_context(
                    event="fetch_recipe",
                    component="github",
                    action="fetch",
                    identifier=str(identifier),
                    count=len(versions),
                ),
            )
        return Recipe(name=repo, url=f"{self.web_base}/{owner}/{repo}", versions=versions)

    async def _fetch_version(
        self,
        identifier: RecipeIdentifier,
        version: SemanticVersion,
        commit: GitCommitHash,
    ) -> Optional[RecipeVersion]:
        owner, repo = str(identifier.organization), str(identifier.recipe)
        text = await self.client.fetch_file(owner, repo, commit, self.project_file)
        if text is None:
            logger.debug("%s@%s has no %s", identifier, version, self.project_file)
            return None
        try:
            project = parse_project(text)
        except DocumentError as exc:
            logger.warning("Ignoring %s@%s: invalid %s (%s)", identifier, version, self.project_file, exc)
            return None
        return RecipeVersion(
            source=RemoteArchive(
                url=f"{self.codeload_base}/{owner}/{repo}/zip/{commit}",
                sub_path=f"{repo}-{commit}",
            ),
            target=project.name or repo,
            dependencies=dict(project.dependencies),
        )
