# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for readalong.
Handles loading and saving settings from a YAML config file.
"""

from pathlib import Path
from typing import Any, TypedDict

import yaml

from .aligner import AlignerSettings

CONFIG_FILENAME: str = ".readalong.yaml"


class AlignerConfig(TypedDict):
    """Type definition for aligner configuration settings."""
    beam_width: int
    match_threshold: float
    advance_margin: float
    lookahead_window: int
    phonetic_enabled: bool
    phonetic_weight: float


class BacktrackConfig(TypedDict):
    """Type definition for auto-backtrack configuration settings."""
    window: int
    threshold: float


class Config(TypedDict):
    """Type definition for the complete configuration."""
    # Server settings
    host: str
    port: int
    # Number of decisions kept for backtracking
    history_size: int
    aligner: AlignerConfig
    backtrack: BacktrackConfig


# Default configuration values
DEFAULT_CONFIG: Config = {
    # Server settings
    "host": "127.0.0.1",
    "port": 8000,

    "history_size": 20,

    # Beam search alignment
    "aligner": {
        "beam_width": 4,
        "match_threshold": 0.8,
        "advance_margin": 0.1,
        "lookahead_window": 10,
        "phonetic_enabled": True,
        "phonetic_weight": 0.6,
    },

    # Auto-backtrack
    "backtrack": {
        "window": 8,
        "threshold": 2.0,
    },
}


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.

    Args:
        base: Base dictionary to merge from.
        override: Dictionary with values that take precedence over base.

    Returns:
        New dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, merged with defaults.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        Configuration dictionary with all values (defaults + overrides from file).
    """
    if config_path is None:
        config_path = get_config_path()

    # Start with defaults
    config: dict[str, Any] = _deep_merge({}, DEFAULT_CONFIG)

    # Load from file if it exists
    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: Any = yaml.safe_load(f)
                if isinstance(file_config, dict):
                    config = _deep_merge(config, file_config)
                elif file_config is not None:
                    print(f"Warning: Ignoring config in {config_path}: not a mapping")
        except (OSError, yaml.YAMLError) as e:
            print(f"Warning: Could not load config from {config_path}: {e}")

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Save configuration to file.

    Args:
        config: Configuration dictionary to save.
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config, f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        print(f"Error saving config to {config_path}: {e}")
        return False


def _section(config: Config, name: str) -> dict[str, Any]:
    """Return a config section, or its defaults when it isn't a mapping."""
    section: Any = config.get(name)
    if not isinstance(section, dict):
        section = DEFAULT_CONFIG[name]  # type: ignore[literal-required]
    return dict(section)


def get_aligner_settings(config: Config) -> AlignerSettings:
    """
    Build aligner settings from config.

    Out-of-range values are clamped and invalid ones fall back to defaults.

    Args:
        config: Configuration dictionary.

    Returns:
        AlignerSettings for a ReadingSession.
    """
    section: dict[str, Any] = _section(config, "aligner")
    settings = AlignerSettings()
    settings.update(**{k: v for k, v in section.items()
                       if k in AlignerSettings.__dataclass_fields__})
    return settings


def get_backtrack_settings(config: Config) -> BacktrackConfig:
    """
    Extract auto-backtrack settings from config.

    Args:
        config: Configuration dictionary.

    Returns:
        Backtrack settings dictionary.
    """
    return _section(config, "backtrack")  # type: ignore[return-value]


def update_config_section(config: Config, section: str, settings: dict[str, Any]) -> Config:
    """
    Update one section of the config with new settings.
    Returns a new config dict.

    Args:
        config: Current configuration.
        section: Section name, e.g. "aligner" or "backtrack".
        settings: New settings to merge in.

    Returns:
        New configuration with updated section.
    """
    new_config: dict[str, Any] = _deep_merge({}, config)
    current: Any = new_config.get(section)
    new_config[section] = _deep_merge(
        current if isinstance(current, dict) else {},
        settings
    )
    return new_config  # type: ignore[return-value]
