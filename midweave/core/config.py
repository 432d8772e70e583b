#!/usr/bin/env python3
"""
config.py
--------------------
Runtime configuration for Midweave.

Settings come from three layers, later layers winning:
    1. Dataclass defaults
    2. An optional YAML file (paths.CONFIG_PATH or --config)
    3. Environment variables

YAML layout:
    remote:
      repository: owner/repo
      branch: main
      token: ghp_...
      max_attempts: 5
    cache:
      path: data/cache/midweave.db
      stale_after_seconds: 300
    analyzer:
      model: gpt-4o-mini
    admin_password: change-me

Environment variables:
    MIDWEAVE_GITHUB_TOKEN, MIDWEAVE_REPOSITORY, MIDWEAVE_BRANCH,
    MIDWEAVE_CACHE_PATH, MIDWEAVE_ADMIN_PASSWORD, OPENAI_API_KEY
"""
# --- Annotations ---
from __future__ import annotations

# --- Standard library imports ---
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

# --- Third party imports ---
import yaml

# --- Local imports ---
from .exceptions import ConfigurationError
from .paths import CACHE_DB_PATH, CONFIG_PATH

DEFAULT_REPOSITORY = "vikram-twodesign/midweave"


@dataclass
class RemoteConfig:
    """
    Connection settings for the remote file host.

    Attributes:
        owner: Repository owner
        repo: Repository name
        branch: Branch used as the system of record
        token: API token (required for writes)
        api_url: Base URL of the REST API
        raw_url: Base URL serving raw file contents
        max_attempts: Attempt cap for conflict retries
        backoff_base: First backoff delay in seconds (doubles per attempt)
        timeout: HTTP timeout in seconds
    """

    owner: str = "vikram-twodesign"
    repo: str = "midweave"
    branch: str = "main"
    token: str = ""
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"
    max_attempts: int = 5
    backoff_base: float = 0.5
    timeout: float = 30.0

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"

    def set_repository(self, repository: str) -> None:
        """
        Set owner and repo from an 'owner/repo' string.

        Raises:
            ConfigurationError: If the string is not of the form owner/repo
        """
        parts = [p for p in repository.strip().split("/") if p]
        if len(parts) != 2:
            raise ConfigurationError(
                f"Repository must look like 'owner/repo', got '{repository}'"
            )
        self.owner, self.repo = parts


@dataclass
class CacheConfig:
    """Local cache settings."""

    path: Path = CACHE_DB_PATH
    stale_after_seconds: float = 300.0


@dataclass
class AnalyzerConfig:
    """AI captioning settings."""

    api_key: str = ""
    model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.7


@dataclass
class MidweaveConfig:
    """Top-level configuration object passed to factories and the CLI."""

    remote: RemoteConfig = field(default_factory=RemoteConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    admin_password: str = "midweave-admin"

    @classmethod
    def load(
        cls,
        config_path: Optional[Union[str, Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> MidweaveConfig:
        """
        Build a configuration from defaults, YAML and the environment.

        Args:
            config_path: YAML file to read; defaults to paths.CONFIG_PATH
                and is skipped silently when that default does not exist
            environ: Mapping used instead of os.environ (for tests)

        Returns:
            Populated MidweaveConfig

        Raises:
            ConfigurationError: If an explicit config file is missing or invalid
        """
        config = cls()

        path = Path(config_path).expanduser() if config_path else CONFIG_PATH
        if path.exists():
            config._apply_yaml(path)
        elif config_path:
            raise ConfigurationError(f"Config file not found: {path}")

        config._apply_env(os.environ if environ is None else environ)
        return config

    def _apply_yaml(self, path: Path) -> None:
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config root must be a mapping: {path}")

        remote: Dict[str, Any] = data.get("remote") or {}
        if "repository" in remote:
            self.remote.set_repository(str(remote["repository"]))
        for key in ("branch", "token", "api_url", "raw_url"):
            if key in remote:
                setattr(self.remote, key, str(remote[key]))
        if "max_attempts" in remote:
            self.remote.max_attempts = int(remote["max_attempts"])
        if "backoff_base" in remote:
            self.remote.backoff_base = float(remote["backoff_base"])
        if "timeout" in remote:
            self.remote.timeout = float(remote["timeout"])

        cache: Dict[str, Any] = data.get("cache") or {}
        if "path" in cache:
            self.cache.path = Path(cache["path"]).expanduser()
        if "stale_after_seconds" in cache:
            self.cache.stale_after_seconds = float(cache["stale_after_seconds"])

        analyzer: Dict[str, Any] = data.get("analyzer") or {}
        for key in ("api_key", "model"):
            if key in analyzer:
                setattr(self.analyzer, key, str(analyzer[key]))
        if "max_tokens" in analyzer:
            self.analyzer.max_tokens = int(analyzer["max_tokens"])
        if "temperature" in analyzer:
            self.analyzer.temperature = float(analyzer["temperature"])

        if "admin_password" in data:
            self.admin_password = str(data["admin_password"])

    def _apply_env(self, environ: Mapping[str, str]) -> None:
        if environ.get("MIDWEAVE_GITHUB_TOKEN"):
            self.remote.token = environ["MIDWEAVE_GITHUB_TOKEN"]
        if environ.get("MIDWEAVE_REPOSITORY"):
            self.remote.set_repository(environ["MIDWEAVE_REPOSITORY"])
        if environ.get("MIDWEAVE_BRANCH"):
            self.remote.branch = environ["MIDWEAVE_BRANCH"]
        if environ.get("MIDWEAVE_CACHE_PATH"):
            self.cache.path = Path(environ["MIDWEAVE_CACHE_PATH"]).expanduser()
        if environ.get("MIDWEAVE_ADMIN_PASSWORD"):
            self.admin_password = environ["MIDWEAVE_ADMIN_PASSWORD"]
        if environ.get("OPENAI_API_KEY"):
            self.analyzer.api_key = environ["OPENAI_API_KEY"]

    def validate(self) -> None:
        """
        Check that the settings needed to talk to the remote are present.

        Raises:
            ConfigurationError: If the token or repository is missing
        """
        if not self.remote.token:
            raise ConfigurationError(
                "GitHub token is not configured. Set MIDWEAVE_GITHUB_TOKEN."
            )
        if not self.remote.owner or not self.remote.repo:
            raise ConfigurationError(
                "Repository is not configured. Set MIDWEAVE_REPOSITORY."
            )
