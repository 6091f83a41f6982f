"""
Configuration management for sitemirror.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field


class GeneralConfig(BaseModel):
    """General configuration."""

    project_name: str = "sitemirror"
    version: str = "0.1.0"
    log_level: str = "INFO"
    logs_dir: str | None = "logs"


class EntryPageConfig(BaseModel):
    """A fixed page the crawl session navigates to.

    ``links`` selects which DOM query feeds the downloader:
    ``downloads`` for article download anchors, ``proofs`` for every
    anchor pointing at a non-HTML file.
    """

    model_config = ConfigDict(extra="forbid")

    path: str
    links: Literal["downloads", "proofs"] = "downloads"


class MirrorConfig(BaseModel):
    """Mirror layout configuration."""

    output_dir: str = "www"
    # Hostname stored reversed; the default site is https:// + reversed value
    default_site_coded: str = "bup.nonaq"
    entry_pages: list[EntryPageConfig] = Field(
        default_factory=lambda: [
            EntryPageConfig(path="/", links="downloads"),
            EntryPageConfig(path="/index2.html", links="downloads"),
            EntryPageConfig(path="/data/proofs/", links="proofs"),
        ]
    )


class DownloaderConfig(BaseModel):
    """Direct-download pool configuration."""

    concurrency: int = Field(default=6, ge=1)
    throttle_ms: int = Field(default=1000, ge=0)
    max_retries: int = Field(default=3, ge=1)
    timeout_ms: int = Field(default=15000, gt=0)
    temp_dir: str | None = None  # None = system temp directory
    user_agent: str = "sitemirror/0.1 (static site backup)"


class BrowserConfig(BaseModel):
    """Browser capture configuration."""

    headless: bool = True
    navigation_timeout_ms: int = Field(default=30000, gt=0)
    wait_until: list[str] = Field(default_factory=lambda: ["load", "networkidle"])
    blocked_path_prefixes: list[str] = Field(default_factory=lambda: ["/data/media/"])
    download_selector: str = "article a.download"
    proof_selector: str = "a"
    proof_link_pattern: str = r"\.(?!htm)[a-z0-9]{3,6}$"


class Settings(BaseModel):
    """Main settings container."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    mirror: MirrorConfig = Field(default_factory=MirrorConfig)
    downloader: DownloaderConfig = Field(default_factory=DownloaderConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries.

    Args:
        base: Base dictionary.
        override: Override dictionary.

    Returns:
        Merged dictionary.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _load_yaml_config(config_dir: Path) -> dict[str, Any]:
    """Load settings.yaml with local.yaml overrides.

    local.yaml keeps machine-specific overrides under a ``settings`` key:

        settings:
          downloader:
            concurrency: 2

    Args:
        config_dir: Configuration directory path.

    Returns:
        Merged configuration dictionary.
    """
    config = _read_yaml(config_dir / "settings.yaml")
    local_overrides = _read_yaml(config_dir / "local.yaml")

    if "settings" in local_overrides:
        config = _deep_merge(config, local_overrides["settings"])

    return config


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides.

    Environment variables should be prefixed with SITEMIRROR_ and use
    double underscores for nested keys.

    Example:
        SITEMIRROR_DOWNLOADER__CONCURRENCY=2

    Args:
        config: Configuration dictionary.

    Returns:
        Configuration with environment overrides.
    """
    prefix = "SITEMIRROR_"

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key == "SITEMIRROR_CONFIG_DIR":
            continue

        key_path = key[len(prefix) :].lower().split("__")

        current = config
        for part in key_path[:-1]:
            if part not in current:
                current[part] = {}
            current = current[part]

        final_key = key_path[-1]
        try:
            if value.lower() in ("true", "false"):
                current[final_key] = value.lower() == "true"
            elif "." in value:
                current[final_key] = float(value)
            else:
                current[final_key] = int(value)
        except ValueError:
            current[final_key] = value

    return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    Settings are loaded from:
    1. Default values
    2. YAML configuration files
    3. Environment variables (highest priority)

    Returns:
        Settings instance.
    """
    config_dir = Path(os.environ.get("SITEMIRROR_CONFIG_DIR", "config"))

    config = _load_yaml_config(config_dir)
    config = _apply_env_overrides(config)

    return Settings(**config)


def get_default_site(settings: Settings | None = None) -> str:
    """Decode the default site URL from its reversed hostname."""
    settings = settings or get_settings()
    return "https://" + settings.mirror.default_site_coded[::-1]
