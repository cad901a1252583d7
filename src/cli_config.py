"""Process-wide configuration: YAML file load-or-init plus CLI overrides.

The configuration file lives at ``~/.depforge/config.yaml`` unless the
DEPFORGE_CONFIG environment variable points elsewhere. A missing file is
generated with defaults the first time it is read. CLI flags take precedence
over the file.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft7Validator

from constants import Constants
from common.errors import DocumentError

logger = logging.getLogger(__name__)

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "cookbooks": {"type": "array", "items": {"type": "string"}},
        "github": {
            "type": "object",
            "properties": {
                "api_base": {"type": "string"},
                "raw_base": {"type": "string"},
                "codeload_base": {"type": "string"},
            },
        },
        "http": {
            "type": "object",
            "properties": {
                "timeout": {"type": "number", "exclusiveMinimum": 0},
                "retries": {"type": "integer", "minimum": 1},
                "backoff": {"type": "number", "minimum": 0},
            },
        },
        "resolver": {
            "type": "object",
            "properties": {
                "max_reopens": {"type": "integer", "minimum": 0},
                "fetch_timeout": {"type": ["number", "null"], "exclusiveMinimum": 0},
            },
        },
    },
}


@dataclass
class Config:
    """Runtime tunables; defaults come from Constants."""

    cookbooks: List[Path] = field(default_factory=list)
    github_api_base: str = Constants.GITHUB_API_BASE
    github_raw_base: str = Constants.GITHUB_RAW_BASE
    github_codeload_base: str = Constants.GITHUB_CODELOAD_BASE
    http_timeout: float = Constants.REQUEST_TIMEOUT
    http_retries: int = Constants.HTTP_RETRY_MAX
    http_backoff: float = Constants.HTTP_RETRY_BASE_DELAY_SEC
    max_reopens: int = Constants.RESOLVER_MAX_REOPENS
    fetch_timeout: Optional[float] = None
    path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cookbooks": [str(p) for p in self.cookbooks],
            "github": {
                "api_base": self.github_api_base,
                "raw_base": self.github_raw_base,
                "codeload_base": self.github_codeload_base,
            },
            "http": {
                "timeout": self.http_timeout,
                "retries": self.http_retries,
                "backoff": self.http_backoff,
            },
            "resolver": {"max_reopens": self.max_reopens, "fetch_timeout": self.fetch_timeout},
        }


def default_config_path() -> Path:
    """Return the config path, honouring DEPFORGE_CONFIG."""
    override = os.environ.get(Constants.ENV_CONFIG)
    if override:
        return Path(override).expanduser()
    return Path.home() / Constants.CONFIG_DIR / Constants.CONFIG_FILE


def config_from_dict(data: Any, path: Optional[Path] = None) -> Config:
    """Build a Config from parsed YAML; missing keys keep their defaults.

    Raises:
        DocumentError: If the data does not match the config schema.
    """
    if data is None:
        data = {}
    errs = sorted(Draft7Validator(CONFIG_SCHEMA).iter_errors(data), key=lambda e: list(e.path))
    if errs:
        first = errs[0]
        where = "/".join(str(p) for p in first.path)
        raise DocumentError(
            f"Invalid config{f' {path}' if path else ''} at '{where}': {first.message}",
            tuple(str(p) for p in first.path),
        )

    github = data.get("github") or {}
    http = data.get("http") or {}
    resolver = data.get("resolver") or {}
    base = Path(path).parent if path is not None else Path.cwd()
    return Config(
        cookbooks=[(base / Path(p).expanduser()) for p in data.get("cookbooks") or []],
        github_api_base=github.get("api_base", Constants.GITHUB_API_BASE),
        github_raw_base=github.get("raw_base", Constants.GITHUB_RAW_BASE),
        github_codeload_base=github.get("codeload_base", Constants.GITHUB_CODELOAD_BASE),
        http_timeout=float(http.get("timeout", Constants.REQUEST_TIMEOUT)),
        http_retries=int(http.get("retries", Constants.HTTP_RETRY_MAX)),
        http_backoff=float(http.get("backoff", Constants.HTTP_RETRY_BASE_DELAY_SEC)),
        max_reopens=int(resolver.get("max_reopens", Constants.RESOLVER_MAX_REOPENS)),
        fetch_timeout=float(resolver["fetch_timeout"]) if resolver.get("fetch_timeout") is not None else None,
        path=path,
    )


def load_or_init_config(path: Optional[Path] = None) -> Config:
    """Read the YAML config, writing a default one first when it is missing.

    Raises:
        DocumentError: If the file is not valid YAML or fails validation.
        OSError: If the file cannot be read or created.
    """
    config_path = Path(path) if path is not None else default_config_path()
    if not config_path.exists():
        logger.info("Writing default configuration to %s", config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as fh:
            yaml.safe_dump(Config().to_dict(), fh, default_flow_style=False, sort_keys=False)

    with open(config_path, "r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise DocumentError(f"Invalid YAML in {config_path}: {exc}") from exc
    logger.debug("Loaded configuration from %s", config_path)
    return config_from_dict(data, config_path)


def apply_cli_overrides(config: Config, args) -> Config:
    """Apply CLI flags on top of the file configuration (highest precedence)."""
    if getattr(args, "TIMEOUT", None) is not None:
        config.http_timeout = float(args.TIMEOUT)
    if getattr(args, "RETRIES", None) is not None:
        config.http_retries = max(1, int(args.RETRIES))
    if getattr(args, "MAX_REOPENS", None) is not None:
        config.max_reopens = max(0, int(args.MAX_REOPENS))
    if getattr(args, "FETCH_TIMEOUT", None) is not None:
        config.fetch_timeout = float(args.FETCH_TIMEOUT)
    for cookbook in getattr(args, "COOKBOOKS", None) or []:
        config.cookbooks.insert(0, Path(cookbook).expanduser().resolve())
    return config
