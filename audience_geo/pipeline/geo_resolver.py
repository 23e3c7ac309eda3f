"""District coordinate resolution for postcode sectors and location keys."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Iterable, Mapping, Protocol

from pyproj import CRS, Transformer

from audience_geo.common.deterministic import chunked, unique_in_order
from audience_geo.common.logging import log_event
from audience_geo.common.models import GeoCoordinate, GeoResolution
from audience_geo.common.postcode import district_for_sector


class CoordinateSource(Protocol):
    def fetch_district_coordinates(self, district_ids: list[str]) -> list[dict]:
        ...

    def fetch_town_coordinates(self, towns: list[str]) -> list[dict]:
        ...


DEFAULT_COLUMNS = {
    "district_column": "Postcode District",
    "lat_column": "Latitude",
    "lon_column": "Longitude",
    "region_column": "Region",
    "town_column": "Town/Area",
}


def _safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _valid_lat_lon(lat: float | None, lon: float | None) -> bool:
    if lat is None or lon is None:
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


@lru_cache(maxsize=8)
def _transformer(source_epsg: int) -> Transformer:
    return Transformer.from_crs(CRS.from_epsg(source_epsg), CRS.from_epsg(4326), always_xy=True)


def to_wgs84(y: float, x: float, source_epsg: int) -> tuple[float, float] | None:
    """Return ``(lat, lon)``; ``y``/``x`` are northing/easting for projected CRSs."""
    if source_epsg == 4326:
        return y, x
    try:
        lon, lat = _transformer(source_epsg).transform(x, y)
    except Exception:
        return None
    return lat, lon


def coordinate_from_row(
    row: Mapping[str, Any],
    *,
    key: str,
    columns: Mapping[str, str] = DEFAULT_COLUMNS,
    source_epsg: int = 4326,
) -> GeoCoordinate | None:
    y = _safe_float(row.get(columns["lat_column"]))
    x = _safe_float(row.get(columns["lon_column"]))
    if y is None or x is None:
        return None
    transformed = to_wgs84(y, x, source_epsg)
    if transformed is None:
        return None
    lat, lon = transformed
    # Zero is the lookup table's placeholder for a missing coordinate.
    if not _valid_lat_lon(lat, lon) or lat == 0 or lon == 0:
        return None
    return GeoCoordinate(
        district_id=key,
        latitude=lat,
        longitude=lon,
        region=row.get(columns["region_column"]) or None,
        town=row.get(columns["town_column"]) or None,
    )


def resolve_coordinates(
    store: CoordinateSource,
    keys: Iterable[str],
    *,
    columns: Mapping[str, str] = DEFAULT_COLUMNS,
    source_epsg: int = 4326,
    batch_size: int = 200,
    match_towns: bool = False,
    fallback_locations: Mapping[str, Mapping[str, Any]] | None = None,
    logger: logging.Logger | None = None,
) -> GeoResolution:
    """Resolve sector (or location) keys to coordinates at district granularity.

    Sectors sharing a district share one coordinate. Keys that match nothing
    are left out of ``coordinates`` and listed in ``unmatched``.
    """
    ordered_keys = unique_in_order(key for key in keys if key)
    districts = sorted({district_for_sector(key) for key in ordered_keys})
    coordinates: dict[str, GeoCoordinate] = {}

    for batch in chunked(districts, batch_size):
        for row in store.fetch_district_coordinates(batch):
            district = district_for_sector(str(row.get(columns["district_column"]) or ""))
            if not district or district in coordinates:
                continue
            coordinate = coordinate_from_row(row, key=district, columns=columns, source_epsg=source_epsg)
            if coordinate is not None:
                coordinates[district] = coordinate

    def _unresolved() -> list[str]:
        return [key for key in ordered_keys if district_for_sector(key) not in coordinates and key not in coordinates]

    remaining = _unresolved()
    if match_towns and remaining:
        towns_wanted = set(remaining)
        for batch in chunked(sorted(towns_wanted), batch_size):
            for row in store.fetch_town_coordinates(batch):
                town = row.get(columns["town_column"])
                if town not in towns_wanted or town in coordinates:
                    continue
                coordinate = coordinate_from_row(row, key=town, columns=columns, source_epsg=source_epsg)
                if coordinate is not None:
                    coordinates[town] = coordinate
        remaining = _unresolved()

    if fallback_locations and remaining:
        for key in remaining:
            entry = fallback_locations.get(key)
            if entry is None:
                continue
            coordinates[key] = GeoCoordinate(
                district_id=key,
                latitude=float(entry["lat"]),
                longitude=float(entry["lon"]),
                region=entry.get("region"),
                town=key,
            )
        remaining = _unresolved()

    unmatched = tuple(sorted(remaining))
    log_event(
        logger,
        f"resolved {len(ordered_keys) - len(unmatched)} of {len(ordered_keys)} keys",
        component="geo_resolver",
        event="GEO_RESOLVE",
        status="partial" if unmatched else "ok",
        rows_in=len(ordered_keys),
        rows_out=len(coordinates),
    )
    return GeoResolution(coordinates=coordinates, unmatched=unmatched)


def geo_options_from_config(store_config: dict, aggregation_config: dict) -> dict[str, Any]:
    table = store_config["tables"]["geo_lookup"]
    geo = aggregation_config["geo"]
    return {
        "columns": {name: table[name] for name in DEFAULT_COLUMNS},
        "source_epsg": int(table.get("epsg") or 4326),
        "batch_size": int(geo["district_batch_size"]),
        "match_towns": bool(geo["match_towns"]),
        "fallback_locations": geo.get("fallback_locations") or {},
    }
