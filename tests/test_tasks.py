"""Tests for the init / resolve / install workflows."""

import asyncio
import hashlib
import io
import json
import zipfile
from pathlib import Path

import pytest

from acquisition.events import EventKind
from common.errors import FetchRecipeError, FileConflictError, HashMismatchError, UnsatisfiableVersionError
from common.http_client import HttpClient
from tasks import add_dependencies, init, install, list_recipes, resolve_dependencies, uninstall, update
from tasks.common import generate_deps_file
from versioning.models import (
    Recipe,
    RecipeIdentifier,
    RecipeVersion,
    RemoteArchive,
    ResolvedDependencyReference,
    parse_version,
)
from versioning.parser import parse_requirement


def collect(stream):
    async def run():
        return [event async for event in stream]

    return asyncio.run(run())


def make_zip(entries):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buf.getvalue()


def rid(name):
    return RecipeIdentifier.of("org", name)


class Registry:
    """Recipes plus the archives their versions point at."""

    def __init__(self):
        self.recipes = {}
        self.archives = {}

    def add(self, name, version, deps=None, target=None, pinned=True):
        url = f"https://example.com/{name}-{version}.zip"
        data = make_zip({f"{name}-{version}/BUCK": f"{name} {version}".encode()})
        self.archives[url] = data
        rv = RecipeVersion(
            source=RemoteArchive(url, hashlib.sha256(data).hexdigest() if pinned else None, f"{name}-{version}"),
            target=target,
            dependencies={rid(d): parse_requirement(r) for d, r in (deps or {}).items()},
        )
        existing = self.recipes.get(rid(name))
        versions = dict(existing.versions) if existing else {}
        versions[parse_version(version)] = rv
        self.recipes[rid(name)] = Recipe(name=name, url=f"https://example.com/{name}", versions=versions)

    async def fetch(self, identifier):
        return self.recipes[identifier]


class FakeHttp(HttpClient):
    def __init__(self, archives):
        super().__init__(retries=1, backoff=0)
        self.archives = archives
        self.requested = []

    async def iter_download(self, url, dest, *, chunk_size=1024):
        self.requested.append(url)
        data = self.archives[url]
        Path(dest).write_bytes(data)
        yield len(data), len(data)


def write_project(directory, dependencies):
    (directory / "depforge.json").write_text(json.dumps({"name": "app", "dependencies": dependencies}))


class TestInit:
    """Project skeleton."""

    def test_init_writes_project_and_buckconfig(self, tmp_path):
        project_dir = tmp_path / "my-app"
        project_dir.mkdir()
        events = collect(init(project_dir))
        assert [e.kind for e in events] == [EventKind.WRITE_FILE, EventKind.TOUCH_FILE]
        assert json.loads((project_dir / "depforge.json").read_text()) == {"name": "my-app", "dependencies": {}}
        assert (project_dir / ".buckconfig").exists()

    def test_init_refuses_existing_project(self, tmp_path):
        (tmp_path / "depforge.json").write_text("{}")
        with pytest.raises(FileConflictError):
            collect(init(tmp_path))
        assert (tmp_path / "depforge.json").read_text() == "{}"


class TestDepsFile:
    """Generated Buck include."""

    def test_lists_labels(self):
        text = generate_deps_file([
            ResolvedDependencyReference(RecipeIdentifier.of("njlr", "test-lib-c", "github"), "test-lib-c"),
        ])
        assert text.startswith("# Generated by depforge")
        assert "DEPFORGE_DEPS = [\n  '//depforge/github.njlr.test-lib-c:test-lib-c',\n]\n" in text

    def test_empty(self):
        assert generate_deps_file([]).endswith("DEPFORGE_DEPS = []\n")


class TestResolve:
    """Resolve and lock."""

    def test_writes_lock_in_resolution_order(self, tmp_path):
        registry = Registry()
        registry.add("aaa", "1.0.0", {"bbb": "^1.0"}, target="aaa-lib")
        registry.add("bbb", "1.0.0")
        registry.add("bbb", "1.2.0")
        write_project(tmp_path, {"org/aaa": "*"})

        events = collect(resolve_dependencies(tmp_path, registry))

        assert [e.kind for e in events] == [
            EventKind.READ_FILE,
            EventKind.RESOLVED_DEPENDENCIES,
            EventKind.WRITE_FILE,
        ]
        lock = json.loads((tmp_path / "depforge.lock.json").read_text())
        assert [(e["id"], e["version"], e["target"]) for e in lock["dependencies"]] == [
            ("org/aaa", "1.0.0", "aaa-lib"),
            ("org/bbb", "1.2.0", "bbb"),
        ]
        assert lock["dependencies"][1]["sub-path"] == "bbb-1.2.0"

    def test_failed_resolution_writes_no_lock(self, tmp_path):
        registry = Registry()
        registry.add("aaa", "1.0.0")
        write_project(tmp_path, {"org/aaa": "^2.0"})
        with pytest.raises(UnsatisfiableVersionError):
            collect(resolve_dependencies(tmp_path, registry))
        assert not (tmp_path / "depforge.lock.json").exists()

    def test_fetch_timeout_reaches_resolver(self, tmp_path):
        class SlowRegistry(Registry):
            async def fetch(self, identifier):
                await asyncio.sleep(1.0)
                return await super().fetch(identifier)

        registry = SlowRegistry()
        registry.add("aaa", "1.0.0")
        write_project(tmp_path, {"org/aaa": "*"})
        with pytest.raises(FetchRecipeError, match="timed out"):
            collect(resolve_dependencies(tmp_path, registry, fetch_timeout=0.01))
        assert not (tmp_path / "depforge.lock.json").exists()

    def test_missing_project_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            collect(resolve_dependencies(tmp_path, Registry()))


class TestInstall:
    """Install, add, remove and update."""

    def _setup(self, tmp_path):
        registry = Registry()
        registry.add("aaa", "1.0.0", {"bbb": "*"})
        registry.add("bbb", "1.0.0")
        write_project(tmp_path, {"org/aaa": "*"})
        return registry, FakeHttp(registry.archives)

    def test_install_resolves_then_extracts(self, tmp_path):
        registry, http = self._setup(tmp_path)
        events = collect(install(tmp_path, registry, http))

        assert (tmp_path / "depforge.lock.json").exists()
        assert (tmp_path / "depforge" / "org.aaa" / "BUCK").read_text() == "aaa 1.0.0"
        assert (tmp_path / "depforge" / "org.bbb" / "BUCK").read_text() == "bbb 1.0.0"
        deps = (tmp_path / "depforge" / "DEPFORGE_DEPS").read_text()
        assert "'//depforge/org.aaa:aaa'," in deps
        assert "org.bbb" not in deps
        assert sum(1 for e in events if e.kind is EventKind.FILE_UNZIP) == 2

    def test_reinstall_downloads_nothing(self, tmp_path):
        registry, http = self._setup(tmp_path)
        collect(install(tmp_path, registry, http))
        first = list(http.requested)
        collect(install(tmp_path, registry, http))
        assert http.requested == first
        assert sorted(first) == sorted(registry.archives)

    def test_install_uses_existing_lock(self, tmp_path):
        registry, http = self._setup(tmp_path)
        collect(resolve_dependencies(tmp_path, registry))
        registry.add("bbb", "1.5.0")
        collect(install(tmp_path, registry, http))
        assert (tmp_path / "depforge" / "org.bbb" / "BUCK").read_text() == "bbb 1.0.0"

    def test_update_moves_to_newest_and_replaces_folder(self, tmp_path):
        registry, http = self._setup(tmp_path)
        collect(install(tmp_path, registry, http))
        registry.add("bbb", "1.5.0")
        collect(update(tmp_path, registry, http))
        assert (tmp_path / "depforge" / "org.bbb" / "BUCK").read_text() == "bbb 1.5.0"

    def test_add_dependency(self, tmp_path):
        registry, http = self._setup(tmp_path)
        registry.add("ccc", "2.0.0")
        collect(add_dependencies(tmp_path, [(rid("ccc"), parse_requirement("^2.0"))], registry, http))
        project = json.loads((tmp_path / "depforge.json").read_text())
        assert project["dependencies"] == {"org/aaa": "*", "org/ccc": "^2.0"}
        assert (tmp_path / "depforge" / "org.ccc" / "BUCK").exists()
        assert "'//depforge/org.ccc:ccc'," in (tmp_path / "depforge" / "DEPFORGE_DEPS").read_text()

    def test_uninstall_removes_stale_folders(self, tmp_path):
        registry, http = self._setup(tmp_path)
        collect(install(tmp_path, registry, http))
        collect(uninstall(tmp_path, [rid("aaa")], registry, http))
        assert json.loads((tmp_path / "depforge.json").read_text())["dependencies"] == {}
        assert not (tmp_path / "depforge" / "org.aaa").exists()
        assert not (tmp_path / "depforge" / "org.bbb").exists()
        assert not (tmp_path / "depforge" / "org.aaa.zip").exists()
        assert (tmp_path / "depforge" / "DEPFORGE_DEPS").read_text().endswith("DEPFORGE_DEPS = []\n")

    def test_install_relocks_after_project_edit(self, tmp_path):
        registry, http = self._setup(tmp_path)
        collect(install(tmp_path, registry, http))
        registry.add("bbb", "1.5.0")
        registry.add("ccc", "2.0.0")
        write_project(tmp_path, {"org/aaa": "*", "org/ccc": "^2.0"})

        collect(install(tmp_path, registry, http))

        assert "'//depforge/org.ccc:ccc'," in (tmp_path / "depforge" / "DEPFORGE_DEPS").read_text()
        assert (tmp_path / "depforge" / "org.ccc" / "BUCK").read_text() == "ccc 2.0.0"
        assert (tmp_path / "depforge" / "org.bbb" / "BUCK").read_text() == "bbb 1.0.0"

    def test_update_single_dependency(self, tmp_path):
        registry = Registry()
        registry.add("aaa", "1.0.0")
        registry.add("ccc", "1.0.0")
        write_project(tmp_path, {"org/aaa": "*", "org/ccc": "*"})
        http = FakeHttp(registry.archives)
        collect(install(tmp_path, registry, http))
        registry.add("aaa", "1.1.0")
        registry.add("ccc", "1.1.0")

        collect(update(tmp_path, registry, http, identifiers=[rid("ccc")]))

        lock = json.loads((tmp_path / "depforge.lock.json").read_text())
        assert {e["id"]: e["version"] for e in lock["dependencies"]} == {"org/aaa": "1.0.0", "org/ccc": "1.1.0"}
        assert (tmp_path / "depforge" / "org.ccc" / "BUCK").read_text() == "ccc 1.1.0"
        assert (tmp_path / "depforge" / "org.aaa" / "BUCK").read_text() == "aaa 1.0.0"


class TestUnpinnedArchives:
    """Archives whose recipe publishes no SHA-256."""

    def _install(self, tmp_path):
        registry = Registry()
        registry.add("aaa", "1.0.0", pinned=False)
        write_project(tmp_path, {"org/aaa": "*"})
        http = FakeHttp(registry.archives)
        collect(install(tmp_path, registry, http))
        return registry, http

    def test_first_install_records_digest(self, tmp_path):
        registry, _ = self._install(tmp_path)
        entry = json.loads((tmp_path / "depforge.lock.json").read_text())["dependencies"][0]
        expected = hashlib.sha256(registry.archives["https://example.com/aaa-1.0.0.zip"]).hexdigest()
        assert entry["sha256"] == expected

    def test_tampered_archive_detected(self, tmp_path):
        registry, http = self._install(tmp_path)
        (tmp_path / "depforge" / "org.aaa.zip").write_bytes(b"something else")
        with pytest.raises(HashMismatchError):
            collect(install(tmp_path, registry, http))

    def test_update_keeps_recorded_digest(self, tmp_path):
        registry, http = self._install(tmp_path)
        before = json.loads((tmp_path / "depforge.lock.json").read_text())
        downloads = list(http.requested)

        collect(update(tmp_path, registry, http))

        assert json.loads((tmp_path / "depforge.lock.json").read_text()) == before
        assert http.requested == downloads


class TestRecipes:
    """Listing cookbook contents."""

    def test_lists_sorted_unique_identifiers(self, tmp_path):
        for cookbook, names in (("one", ["zlib", "boost"]), ("two", ["zlib", "x"])):
            org = tmp_path / cookbook / "recipes" / "org"
            org.mkdir(parents=True)
            for name in names:
                (org / f"{name}.json").write_text("{}")
        (tmp_path / "one" / "recipes" / "README.md").write_text("not a recipe")

        recipes = asyncio.run(list_recipes([tmp_path / "one", tmp_path / "two", tmp_path / "missing"]))

        assert [str(r) for r in recipes] == ["org/boost", "org/zlib"]
