"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from audience_geo.common.constants import MAX_HEX_RESOLUTION, MIN_HEX_RESOLUTION
from audience_geo.common.errors import ConfigError


def _assert_mapping(obj: object, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    _assert_mapping(obj, ctx)
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive_int(value: object, ctx: str) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive integer")


def validate_store_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"rest", "http", "tables"}
    _assert_required_keys(cfg, top_required, "store config")
    _assert_no_unknown_keys(cfg, top_required, "store config", allow_unknown)

    _assert_required_keys(cfg["rest"], {"base_url", "api_key_env"}, "rest")
    _assert_required_keys(cfg["http"], {"connect_timeout", "read_timeout", "max_attempts", "rate_per_sec"}, "http")

    tables = cfg["tables"]
    _assert_required_keys(tables, {"segment_metrics", "taxonomy", "geo_lookup", "campaign_events", "linear_spots"}, "tables")
    _assert_required_keys(tables["segment_metrics"], {"name", "sector_column"}, "tables.segment_metrics")
    _assert_required_keys(tables["taxonomy"], {"name", "id_column", "name_column", "path_column"}, "tables.taxonomy")
    _assert_required_keys(
        tables["geo_lookup"],
        {"name", "district_column", "lat_column", "lon_column", "region_column", "town_column", "epsg"},
        "tables.geo_lookup",
    )
    _assert_required_keys(
        tables["campaign_events"],
        {
            "name",
            "geo_column",
            "event_type_column",
            "date_column",
            "campaign_column",
            "organization_column",
            "order_column",
        },
        "tables.campaign_events",
    )
    _assert_required_keys(
        tables["linear_spots"],
        {"name", "postcode_column", "city_column", "duration_column", "advertiser_column", "order_column"},
        "tables.linear_spots",
    )
    return cfg


def validate_aggregation_config(cfg: dict, *, allow_unknown: bool = False) -> dict:
    top_required = {"pagination", "hexagons", "geo", "reach"}
    _assert_required_keys(cfg, top_required, "aggregation config")
    _assert_no_unknown_keys(cfg, top_required, "aggregation config", allow_unknown)

    _assert_required_keys(cfg["pagination"], {"page_size", "max_rows"}, "pagination")
    _assert_positive_int(cfg["pagination"]["page_size"], "pagination.page_size")
    _assert_positive_int(cfg["pagination"]["max_rows"], "pagination.max_rows")

    _assert_required_keys(cfg["hexagons"], {"default_resolution"}, "hexagons")
    resolution = cfg["hexagons"]["default_resolution"]
    if not isinstance(resolution, int) or not MIN_HEX_RESOLUTION <= resolution <= MAX_HEX_RESOLUTION:
        raise ConfigError(
            f"hexagons.default_resolution must be an integer in {MIN_HEX_RESOLUTION}..{MAX_HEX_RESOLUTION}"
        )

    _assert_required_keys(cfg["geo"], {"district_batch_size", "match_towns", "fallback_locations"}, "geo")
    _assert_positive_int(cfg["geo"]["district_batch_size"], "geo.district_batch_size")
    fallbacks = cfg["geo"]["fallback_locations"] or {}
    for name, entry in _assert_mapping(fallbacks, "geo.fallback_locations").items():
        _assert_required_keys(entry, {"lat", "lon", "region"}, f"geo.fallback_locations.{name}")

    _assert_required_keys(cfg["reach"], {"seconds_per_impression", "default_region"}, "reach")
    _assert_positive_int(cfg["reach"]["seconds_per_impression"], "reach.seconds_per_impression")
    default_region = cfg["reach"]["default_region"]
    if not isinstance(default_region, str) or not default_region.strip():
        raise ConfigError("reach.default_region must be a non-empty string")
    return cfg
