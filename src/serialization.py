"""JSON (de)serialization for project, lock, recipe and recipe-version documents.

Every document is validated against a Draft-07 JSON Schema before it is
turned into model objects, and ``parse_*(serialize_*(x)) == x`` holds for
every value these helpers produce. Field names (``name``, ``url``,
``versions``, ``target``, ``buck-url``, ...) are a compatibility contract.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

from jsonschema import Draft7Validator

from common.errors import DocumentError
from versioning.models import (
    DependencyLock,
    DependencyLocks,
    Project,
    Recipe,
    RecipeIdentifier,
    RecipeVersion,
    RemoteArchive,
    parse_version,
)
from versioning.parser import parse_recipe_identifier, parse_requirement
from versioning.requirement import SemanticVersionRequirement

_DEPENDENCIES_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": {"type": "string"},
}

RECIPE_VERSION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["url"],
    "properties": {
        "url": {"type": "string", "minLength": 1},
        "sha256": {"type": "string", "pattern": "^[0-9a-fA-F]{64}$"},
        "sub-path": {"type": "string"},
        "buck-url": {"type": "string"},
        "target": {"type": "string"},
        "dependencies": _DEPENDENCIES_SCHEMA,
    },
}

RECIPE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["name", "url", "versions"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "url": {"type": "string"},
        "versions": {
            "type": "object",
            "additionalProperties": RECIPE_VERSION_SCHEMA,
        },
    },
}

PROJECT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string"},
        "license": {"type": "string"},
        "dependencies": _DEPENDENCIES_SCHEMA,
    },
}

LOCK_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["dependencies"],
    "properties": {
        "dependencies": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "version"],
                "properties": {
                    "id": {"type": "string"},
                    "version": {"type": "string"},
                    "url": {"type": "string"},
                    "sha256": {"type": "string", "pattern": "^[0-9a-fA-F]{64}$"},
                    "sub-path": {"type": "string"},
                    "target": {"type": "string"},
                },
            },
        },
    },
}


def _reject_duplicates(pairs: List[Tuple[str, Any]]) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise DocumentError(f"Duplicate key {key!r}")
        result[key] = value
    return result


def _loads(text: str) -> Any:
    try:
        return json.loads(text, object_pairs_hook=_reject_duplicates)
    except json.JSONDecodeError as exc:
        raise DocumentError(f"Invalid JSON: {exc}") from exc


def _dumps(data: Any) -> str:
    return json.dumps(data, indent=2) + "\n"


def validate(schema: Dict[str, Any], data: Any, what: str) -> None:
    """Validate strictly and raise DocumentError on the first problem."""
    validator = Draft7Validator(schema)
    errs = sorted(validator.iter_errors(data), key=lambda e: list(e.path))
    if errs:
        first = errs[0]
        path = "/".join([str(p) for p in first.path])
        raise DocumentError(
            f"Invalid {what} at '{path}': {first.message}",
            tuple(str(p) for p in first.path),
        )


def _parse_dependencies(data: Mapping[str, str]) -> Dict[RecipeIdentifier, SemanticVersionRequirement]:
    dependencies: Dict[RecipeIdentifier, SemanticVersionRequirement] = {}
    for key, value in data.items():
        try:
            identifier = parse_recipe_identifier(key)
            requirement = parse_requirement(value)
        except ValueError as exc:
            raise DocumentError(f"Invalid dependency {key!r}: {exc}", ("dependencies", key)) from exc
        if identifier in dependencies:
            raise DocumentError(f"Duplicate dependency {identifier}", ("dependencies", key))
        dependencies[identifier] = requirement
    return dependencies


def _dependencies_to_dict(dependencies: Mapping[RecipeIdentifier, SemanticVersionRequirement]) -> Dict[str, str]:
    return {str(k): str(dependencies[k]) for k in sorted(dependencies)}


def recipe_version_from_dict(data: Dict[str, Any]) -> RecipeVersion:
    validate(RECIPE_VERSION_SCHEMA, data, "recipe version")
    return RecipeVersion(
        source=RemoteArchive(
            url=data["url"],
            sha256=data["sha256"].lower() if "sha256" in data else None,
            sub_path=data.get("sub-path"),
        ),
        target=data.get("target"),
        buck_url=data.get("buck-url"),
        dependencies=_parse_dependencies(data.get("dependencies", {})),
    )


def recipe_version_to_dict(recipe_version: RecipeVersion) -> Dict[str, Any]:
    data: Dict[str, Any] = {"url": recipe_version.source.url}
    if recipe_version.source.sha256 is not None:
        data["sha256"] = recipe_version.source.sha256
    if recipe_version.source.sub_path is not None:
        data["sub-path"] = recipe_version.source.sub_path
    if recipe_version.buck_url is not None:
        data["buck-url"] = recipe_version.buck_url
    if recipe_version.target is not None:
        data["target"] = recipe_version.target
    if recipe_version.dependencies:
        data["dependencies"] = _dependencies_to_dict(recipe_version.dependencies)
    return data


def parse_recipe_version(text: str) -> RecipeVersion:
    return recipe_version_from_dict(_loads(text))


def serialize_recipe_version(recipe_version: RecipeVersion) -> str:
    return _dumps(recipe_version_to_dict(recipe_version))


def parse_recipe(text: str) -> Recipe:
    """Parse a recipe document.

    Raises:
        DocumentError: On malformed JSON, schema violations, invalid version
            keys or two keys naming the same version.
    """
    data = _loads(text)
    validate(RECIPE_SCHEMA, data, "recipe")
    versions = {}
    for key, value in data["versions"].items():
        try:
            version = parse_version(key)
        except ValueError as exc:
            raise DocumentError(str(exc), ("versions", key)) from exc
        if version in versions:
            raise DocumentError(f"Duplicate version {version}", ("versions", key))
        versions[version] = recipe_version_from_dict(value)
    return Recipe(name=data["name"], url=data["url"], versions=versions)


def serialize_recipe(recipe: Recipe) -> str:
    return _dumps({
        "name": recipe.name,
        "url": recipe.url,
        "versions": {
            str(version): recipe_version_to_dict(recipe.versions[version])
            for version in recipe.sorted_versions()
        },
    })


def parse_project(text: str) -> Project:
    """Parse a project file; duplicate dependency keys are rejected."""
    data = _loads(text)
    validate(PROJECT_SCHEMA, data, "project")
    return Project(
        name=data.get("name"),
        license=data.get("license"),
        dependencies=_parse_dependencies(data.get("dependencies", {})),
    )


def serialize_project(project: Project) -> str:
    data: Dict[str, Any] = {}
    if project.name is not None:
        data["name"] = project.name
    if project.license is not None:
        data["license"] = project.license
    data["dependencies"] = _dependencies_to_dict(project.dependencies)
    return _dumps(data)


def _lock_from_dict(data: Dict[str, Any]) -> DependencyLock:
    try:
        identifier = parse_recipe_identifier(data["id"])
        version = parse_version(data["version"])
    except ValueError as exc:
        raise DocumentError(f"Invalid lock entry {data.get('id')!r}: {exc}") from exc
    source: Optional[RemoteArchive] = None
    if "url" in data:
        source = RemoteArchive(
            url=data["url"],
            sha256=data["sha256"].lower() if "sha256" in data else None,
            sub_path=data.get("sub-path"),
        )
    return DependencyLock(identifier=identifier, version=version, source=source, target=data.get("target"))


def _lock_to_dict(lock: DependencyLock) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": str(lock.identifier), "version": str(lock.version)}
    if lock.source is not None:
        data["url"] = lock.source.url
        if lock.source.sha256 is not None:
            data["sha256"] = lock.source.sha256
        if lock.source.sub_path is not None:
            data["sub-path"] = lock.source.sub_path
    if lock.target is not None:
        data["target"] = lock.target
    return data


def parse_dependency_locks(text: str) -> DependencyLocks:
    """Parse a lock file, keeping the entry order exactly as written."""
    data = _loads(text)
    validate(LOCK_SCHEMA, data, "lock file")
    locks = [_lock_from_dict(entry) for entry in data["dependencies"]]
    seen = set()
    for lock in locks:
        if lock.identifier in seen:
            raise DocumentError(f"Duplicate lock entry {lock.identifier}")
        seen.add(lock.identifier)
    return DependencyLocks.of(locks)


def serialize_dependency_locks(locks: DependencyLocks) -> str:
    return _dumps({"dependencies": [_lock_to_dict(lock) for lock in locks]})
