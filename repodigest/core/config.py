"""
Configuration management for repodigest.

Provides centralized configuration for ingestion limits, concurrency
and provider transport settings with sensible defaults.
"""

import os
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


DEFAULT_IGNORE_PATTERNS = [
    ".git", ".svn", ".hg", ".bzr",
    "__pycache__", "*.pyc", "*.pyo",
    "node_modules", "bower_components", ".venv", "venv",
    ".idea", ".vscode", ".DS_Store", "*.egg-info",
    ".tox", ".mypy_cache", ".pytest_cache", ".gradle",
    "*.min.js", "*.min.css", "*.map",
    "package-lock.json", "yarn.lock", "pnpm-lock.yaml",
    "Cargo.lock", "poetry.lock", "Gemfile.lock",
]


@dataclass
class IngestionConfig:
    """Configuration for the ingestion engine."""

    # Maximum size of a single file in the digest (in bytes)
    max_file_size: int = 1024 * 1024  # 1MB

    # Maximum size of the whole digest (in bytes)
    max_total_size: int = 10 * 1024 * 1024  # 10MB

    # Worker pool size for blob fetches
    fetch_concurrency: int = 8

    # Concurrent directory listings when walking a tree by hand
    listing_concurrency: int = 4

    # Timeout for a single blob fetch (seconds)
    fetch_timeout: float = 30.0

    # Total attempts for a throttled fetch, including the first one
    max_fetch_attempts: int = 3

    # Backoff used when a rate-limit response carries no hint (seconds)
    default_backoff: float = 1.0
    max_backoff: float = 60.0

    # Prefix inspected by the binary classifier
    binary_sample_size: int = 8192

    # Append ignore_patterns to every exclude list
    use_default_ignores: bool = True
    ignore_patterns: List[str] = field(
        default_factory=lambda: list(DEFAULT_IGNORE_PATTERNS)
    )


@dataclass
class ProviderConfig:
    """Transport and credential settings for hosted providers."""

    github_token: Optional[str] = None
    gitlab_token: Optional[str] = None

    github_api_url: str = "https://api.github.com"
    gitlab_url: str = "https://gitlab.com"

    # Timeout for a single HTTP request (seconds)
    request_timeout: float = 30.0

    user_agent: str = "repodigest/1.0"


@dataclass
class DigestConfig:
    """Master configuration combining all settings."""

    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    providers: ProviderConfig = field(default_factory=ProviderConfig)

    # Enable verbose logging
    verbose: bool = False


class Config:
    """
    Central configuration manager providing access to all settings.

    Supports loading from environment variables and configuration files.
    """

    _instance: Optional["Config"] = None
    _config: DigestConfig = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._config = DigestConfig()
        return cls._instance

    @classmethod
    def get(cls) -> DigestConfig:
        """Get the current configuration."""
        if cls._instance is None:
            cls()
        return cls._instance._config

    @classmethod
    def reset(cls) -> DigestConfig:
        """Restore the default configuration."""
        instance = cls()
        instance._config = DigestConfig()
        return instance._config

    @classmethod
    def load_from_file(cls, config_path: str) -> DigestConfig:
        """
        Load configuration from a JSON file.

        Args:
            config_path: Path to the configuration file.

        Returns:
            Loaded DigestConfig instance.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "r") as f:
            data = json.load(f)

        instance = cls()
        instance._config = cls._dict_to_config(data)
        return instance._config

    @classmethod
    def load_from_env(cls, dotenv_path: Optional[str] = None) -> DigestConfig:
        """
        Load configuration from environment variables.

        A .env file is read first when present. Tokens come from
        GITHUB_TOKEN and GITLAB_TOKEN, everything else is prefixed
        with REPODIGEST_.

        Returns:
            DigestConfig with environment overrides applied.
        """
        load_dotenv(dotenv_path)

        instance = cls()
        config = instance._config

        if os.getenv("GITHUB_TOKEN"):
            config.providers.github_token = os.getenv("GITHUB_TOKEN")

        if os.getenv("GITLAB_TOKEN"):
            config.providers.gitlab_token = os.getenv("GITLAB_TOKEN")

        if os.getenv("REPODIGEST_GITHUB_API_URL"):
            config.providers.github_api_url = os.getenv("REPODIGEST_GITHUB_API_URL")

        if os.getenv("REPODIGEST_GITLAB_URL"):
            config.providers.gitlab_url = os.getenv("REPODIGEST_GITLAB_URL")

        if os.getenv("REPODIGEST_MAX_FILE_SIZE"):
            config.ingestion.max_file_size = int(os.getenv("REPODIGEST_MAX_FILE_SIZE"))

        if os.getenv("REPODIGEST_MAX_TOTAL_SIZE"):
            config.ingestion.max_total_size = int(os.getenv("REPODIGEST_MAX_TOTAL_SIZE"))

        if os.getenv("REPODIGEST_FETCH_CONCURRENCY"):
            config.ingestion.fetch_concurrency = int(
                os.getenv("REPODIGEST_FETCH_CONCURRENCY")
            )

        if os.getenv("REPODIGEST_FETCH_TIMEOUT"):
            config.ingestion.fetch_timeout = float(os.getenv("REPODIGEST_FETCH_TIMEOUT"))

        if os.getenv("REPODIGEST_VERBOSE"):
            config.verbose = os.getenv("REPODIGEST_VERBOSE").lower() in ("true", "1", "yes")

        return config

    @staticmethod
    def _dict_to_config(data: dict) -> DigestConfig:
        """Convert a dictionary to DigestConfig."""
        config = DigestConfig()

        if "ingestion" in data:
            config.ingestion = IngestionConfig(**data["ingestion"])

        if "providers" in data:
            provider_data = dict(data["providers"])
            # Credentials only ever come from the environment or the caller
            provider_data.pop("github_token", None)
            provider_data.pop("gitlab_token", None)
            config.providers = ProviderConfig(**provider_data)

        if "verbose" in data:
            config.verbose = data["verbose"]

        return config

    @classmethod
    def save_to_file(cls, config_path: str) -> None:
        """
        Save current configuration to a JSON file.

        Tokens are never written.

        Args:
            config_path: Path to save the configuration file.
        """
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        config = cls.get()
        data = cls._config_to_dict(config)

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @staticmethod
    def _config_to_dict(config: DigestConfig) -> dict:
        """Convert DigestConfig to a dictionary."""
        return {
            "ingestion": {
                "max_file_size": config.ingestion.max_file_size,
                "max_total_size": config.ingestion.max_total_size,
                "fetch_concurrency": config.ingestion.fetch_concurrency,
                "listing_concurrency": config.ingestion.listing_concurrency,
                "fetch_timeout": config.ingestion.fetch_timeout,
                "max_fetch_attempts": config.ingestion.max_fetch_attempts,
                "default_backoff": config.ingestion.default_backoff,
                "max_backoff": config.ingestion.max_backoff,
                "binary_sample_size": config.ingestion.binary_sample_size,
                "use_default_ignores": config.ingestion.use_default_ignores,
                "ignore_patterns": config.ingestion.ignore_patterns,
            },
            "providers": {
                "github_api_url": config.providers.github_api_url,
                "gitlab_url": config.providers.gitlab_url,
                "request_timeout": config.providers.request_timeout,
                "user_agent": config.providers.user_agent,
            },
            "verbose": config.verbose,
        }
