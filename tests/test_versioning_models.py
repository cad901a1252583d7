"""Tests for identifier, version and recipe models."""

import pytest

from versioning.models import (
    DependencyLock,
    DependencyLocks,
    GitCommitHash,
    Identifier,
    Recipe,
    RecipeIdentifier,
    RecipeVersion,
    RemoteArchive,
    ResolvedDependencyReference,
    SemanticVersion,
    parse_version,
)


class TestIdentifier:
    """Identifier validation."""

    @pytest.mark.parametrize("name", ["abc", "test-lib-c", "under_score", "A1b2C3", "x" * 30])
    def test_valid(self, name):
        assert str(Identifier(name)) == name

    @pytest.mark.parametrize("name", ["ab", "x" * 31, "has space", "dot.ted", "slash/ed", ""])
    def test_invalid(self, name):
        with pytest.raises(ValueError):
            Identifier(name)


class TestRecipeIdentifier:
    """RecipeIdentifier rendering and ordering."""

    def test_str_without_source(self):
        assert str(RecipeIdentifier.of("njlr", "test-lib-c")) == "njlr/test-lib-c"

    def test_str_with_source(self):
        assert str(RecipeIdentifier.of("njlr", "test-lib-c", "github")) == "github+njlr/test-lib-c"

    def test_folder_name(self):
        assert RecipeIdentifier.of("njlr", "test-lib-c", "github").folder_name() == "github.njlr.test-lib-c"
        assert RecipeIdentifier.of("njlr", "test-lib-c").folder_name() == "njlr.test-lib-c"

    def test_equality_and_hash(self):
        a = RecipeIdentifier.of("org", "abc")
        b = RecipeIdentifier.of("org", "abc")
        assert a == b
        assert len({a, b}) == 1
        assert a != RecipeIdentifier.of("org", "abc", "github")

    def test_sorting_is_by_text(self):
        ids = [RecipeIdentifier.of("org", "zzz"), RecipeIdentifier.of("org", "aaa"), RecipeIdentifier.of("abc", "zzz")]
        assert [str(i) for i in sorted(ids)] == ["abc/zzz", "org/aaa", "org/zzz"]


class TestVersions:
    """SemanticVersion parsing and precedence."""

    def test_partial_versions_are_coerced(self):
        assert parse_version("2") == SemanticVersion("2.0.0")
        assert parse_version("1.2") == SemanticVersion("1.2.0")

    def test_prerelease_sorts_before_release(self):
        assert parse_version("1.0.0-rc1") < parse_version("1.0.0")

    def test_numeric_components_compare_numerically(self):
        assert parse_version("1.10.0") > parse_version("1.9.0")

    @pytest.mark.parametrize("text", ["", "v1.0.0", "1.0.0.0", "one"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_version(text)


class TestGitCommitHash:
    """Commit hash validation."""

    def test_valid(self):
        sha = "138252fac310b976a5ee55ffaa8e9180cf44112b"
        assert str(GitCommitHash(sha)) == sha

    @pytest.mark.parametrize("sha", ["abc", "138252FAC310B976A5EE55FFAA8E9180CF44112B", "g" * 40])
    def test_invalid(self, sha):
        with pytest.raises(ValueError):
            GitCommitHash(sha)


class TestRecipeModels:
    """Recipe, lock and reference helpers."""

    def test_sorted_versions(self):
        archive = RemoteArchive(url="https://example.com/a.zip")
        recipe = Recipe(
            name="abc",
            url="https://example.com",
            versions={
                parse_version("2.0.0"): RecipeVersion(source=archive),
                parse_version("1.0.0"): RecipeVersion(source=archive),
                parse_version("1.10.0"): RecipeVersion(source=archive),
            },
        )
        assert [str(v) for v in recipe.sorted_versions()] == ["1.0.0", "1.10.0", "2.0.0"]

    def test_archive_as_remote_file(self):
        archive = RemoteArchive(url="https://example.com/a.zip", sha256="ab" * 32, sub_path="a-1")
        remote = archive.as_remote_file()
        assert remote.url == archive.url
        assert remote.sha256 == archive.sha256

    def test_locks_lookup_and_order(self):
        a = DependencyLock(RecipeIdentifier.of("org", "bbb"), parse_version("1.0.0"))
        b = DependencyLock(RecipeIdentifier.of("org", "aaa"), parse_version("2.0.0"))
        locks = DependencyLocks.of([a, b])
        assert len(locks) == 2
        assert list(locks) == [a, b]
        assert locks.get(RecipeIdentifier.of("org", "aaa")) == b
        assert locks.get(RecipeIdentifier.of("org", "ccc")) is None

    def test_reference_encode(self):
        ref = ResolvedDependencyReference(RecipeIdentifier.of("njlr", "test-lib-c", "github"), "test-lib-c")
        assert ref.encode() == "//depforge/github.njlr.test-lib-c:test-lib-c"
