"""
config_loader.py
-----------------
Singleton config loader. Reads config.yaml once and caches it.
All modules access thresholds and rulebooks through this. No hardcoded values.

Sections are returned as read-only mappings so a detector cannot change a
threshold for every other caller. Tests that need different thresholds build
their own dict (see `merge_config`) and pass it to the detector.
"""

import os
from types import MappingProxyType
from typing import Any, Dict, Mapping

import yaml


_CONFIG_CACHE: Dict[str, Any] = {}


def _freeze(value: Any) -> Any:
    """Recursively converts dicts to MappingProxyType and lists to tuples."""
    if isinstance(value, dict):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def load_config(config_path: str | None = None) -> Mapping[str, Any]:
    """
    Load and cache the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to config/ relative to this file.

    Returns:
        Full (read-only) config mapping.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE:
        return _CONFIG_CACHE["frozen"]

    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    _CONFIG_CACHE = {"frozen": _freeze(raw)}
    return _CONFIG_CACHE["frozen"]


def get_section(name: str) -> Mapping[str, Any]:
    """
    Returns one top-level config block.

    Raises:
        KeyError: If the section is not in the config.
    """
    config = load_config()
    if name not in config:
        raise KeyError(
            f"No config section '{name}'. "
            f"Available: {list(config.keys())}"
        )
    return config[name]


def get_algorithm_version() -> str:
    return str(load_config()["algorithm_version"])


def get_confidence_config() -> Mapping[str, Any]:
    """Returns smoothing, decay and clamping bounds shared by all detectors."""
    return get_section("confidence")


def get_detector_config(behavior_type: str) -> Mapping[str, Any]:
    """Returns the threshold block for one detector (e.g. 'small_recurring')."""
    return get_section(behavior_type)


def get_comfort_categories() -> tuple[str, ...]:
    return tuple(get_section("comfort_categories"))


def get_rulebook(name: str) -> Mapping[str, Any]:
    """Returns a validator rulebook: 'message_rules' or 'ai_rules'."""
    return get_section(name)


def get_seasonality_config() -> Mapping[str, Any]:
    return get_section("seasonality")


def get_drift_monitoring_config() -> Mapping[str, Any]:
    """Returns drift monitoring config."""
    return get_section("drift_monitoring")


def merge_config(base: Mapping[str, Any], **overrides: Any) -> Dict[str, Any]:
    """
    Returns a plain dict copy of `base` with top-level keys replaced.

    Used to build per-test or per-locale threshold sets without touching
    the cached file config.
    """
    merged = dict(base)
    merged.update(overrides)
    return merged


def reset_config() -> None:
    """Clears cached config. Useful for testing."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = {}
