"""Load the repository list and sync schedule from a sources YAML file"""

import logging
import os
from pathlib import Path

import yaml

from provider_index.models.sources_config import SourcesConfig

logger = logging.getLogger(__name__)

TRUTHY = ("true", "1", "yes")


def _env_flag(name: str) -> bool | None:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip().lower() in TRUTHY


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in sources configuration: {e}") from e

    if not data:
        raise ValueError("Sources configuration file is empty")
    if not isinstance(data, dict):
        raise ValueError("Sources configuration must be a mapping at the top level")
    return data


def _apply_env_overrides(sources: SourcesConfig) -> None:
    """REFRESH_ENABLED in the environment wins over refresh.enabled in the file"""
    refresh_enabled = _env_flag("REFRESH_ENABLED")
    if refresh_enabled is None or refresh_enabled == sources.refresh.enabled:
        return

    logger.info(
        f"REFRESH_ENABLED={refresh_enabled} overrides refresh.enabled "
        f"from file ({sources.refresh.enabled})"
    )
    sources.refresh.enabled = refresh_enabled


def load_sources_config(config_path: str | Path = "sources.yaml") -> SourcesConfig:
    """
    Load and validate a sources file

    Args:
        config_path: Path to the YAML file (default: sources.yaml in the working directory)

    Returns:
        SourcesConfig object

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the YAML or its contents are invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Sources configuration file not found: {path}\n"
            f"See sources.yaml.example for the expected layout."
        )

    data = _read_yaml(path)
    try:
        sources = SourcesConfig(**data)
    except Exception as e:
        raise ValueError(f"Failed to load sources configuration: {e}") from e

    _apply_env_overrides(sources)

    enabled = sources.get_enabled_repositories()
    logger.info(
        f"Loaded {path}: {len(enabled)}/{len(sources.repositories)} repositories enabled, "
        f"scheduled refresh {'on' if sources.refresh.enabled else 'off'}"
    )
    return sources
