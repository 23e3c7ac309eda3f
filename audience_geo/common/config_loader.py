"""Configuration loading and validation."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from audience_geo.common.errors import ConfigError
from audience_geo.common.fs import read_yaml
from audience_geo.common.http import RetryConfig, TimeoutConfig
from audience_geo.common.schema import validate_aggregation_config, validate_store_config


@dataclass(frozen=True)
class ConfigBundle:
    store: dict
    aggregation: dict

    @property
    def page_size(self) -> int:
        return int(self.aggregation["pagination"]["page_size"])

    @property
    def max_rows(self) -> int:
        return int(self.aggregation["pagination"]["max_rows"])

    @property
    def default_resolution(self) -> int:
        return int(self.aggregation["hexagons"]["default_resolution"])

    def timeout(self) -> TimeoutConfig:
        http = self.store["http"]
        return TimeoutConfig(connect=float(http["connect_timeout"]), read=float(http["read_timeout"]))

    def retry(self) -> RetryConfig:
        return RetryConfig(max_attempts=int(self.store["http"]["max_attempts"]))

    def api_key(self) -> str | None:
        return os.environ.get(self.store["rest"]["api_key_env"]) or None


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path) or {}
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path) or {}
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    store = validate_store_config(
        _load_yaml_with_overlay(config_dir / "store.yml", _overlay("store.yml")),
        allow_unknown=allow_unknown,
    )
    aggregation = validate_aggregation_config(
        _load_yaml_with_overlay(config_dir / "aggregation.yml", _overlay("aggregation.yml")),
        allow_unknown=allow_unknown,
    )
    return ConfigBundle(store=store, aggregation=aggregation)
