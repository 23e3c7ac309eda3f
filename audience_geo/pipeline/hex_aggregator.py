"""H3 hexagon aggregation of segment counts."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable

import h3

from audience_geo.common.constants import MAX_HEX_RESOLUTION, MIN_HEX_RESOLUTION
from audience_geo.common.deterministic import unique_in_order
from audience_geo.common.errors import InputError
from audience_geo.common.logging import log_event
from audience_geo.common.models import GeoResolution, HexAggregation, HexCell, PostcodeMetricRow


def validate_resolution(resolution: object) -> int:
    if isinstance(resolution, bool) or not isinstance(resolution, int):
        raise InputError(f"Hex resolution must be an integer, got {resolution!r}")
    if not MIN_HEX_RESOLUTION <= resolution <= MAX_HEX_RESOLUTION:
        raise InputError(
            f"Hex resolution {resolution} outside {MIN_HEX_RESOLUTION}..{MAX_HEX_RESOLUTION}"
        )
    return resolution


def cell_for(latitude: float, longitude: float, resolution: int) -> str:
    return h3.latlng_to_cell(latitude, longitude, resolution)


def boundary_ring(h3_index: str) -> tuple[tuple[float, float], ...]:
    """Cell boundary as a closed ``(lat, lng)`` ring."""
    vertices = tuple((float(lat), float(lng)) for lat, lng in h3.cell_to_boundary(h3_index))
    if vertices and vertices[0] != vertices[-1]:
        vertices = vertices + (vertices[0],)
    return vertices


def aggregate_hexagons(
    rows: Iterable[PostcodeMetricRow],
    resolution_result: GeoResolution,
    segment_ids: Iterable[str],
    resolution: int,
    *,
    logger: logging.Logger | None = None,
) -> HexAggregation:
    """Bin sector rows into H3 cells and sum the selected segments per cell.

    Selecting several segments adds their counts, so a household present in
    two segments is counted twice. Rows whose district has no coordinate are
    skipped and listed in ``skipped_sectors``; cells summing to zero are
    dropped.
    """
    resolution = validate_resolution(resolution)
    selected = tuple(unique_in_order(segment_ids))
    rows = list(rows)
    if not selected or not rows:
        return HexAggregation(resolution=resolution, segment_ids=selected, cells=())

    values: dict[str, float] = defaultdict(float)
    members: dict[str, set[str]] = defaultdict(set)
    skipped: list[str] = []
    cell_cache: dict[tuple[float, float], str] = {}

    for row in rows:
        coordinate = resolution_result.lookup(row.sector_id)
        if coordinate is None:
            skipped.append(row.sector_id)
            continue
        point = (coordinate.latitude, coordinate.longitude)
        h3_index = cell_cache.get(point)
        if h3_index is None:
            h3_index = cell_for(coordinate.latitude, coordinate.longitude, resolution)
            cell_cache[point] = h3_index
        values[h3_index] += row.total_for(selected)
        members[h3_index].add(row.sector_id)

    cells = tuple(
        HexCell(
            h3_index=h3_index,
            boundary=boundary_ring(h3_index),
            value=values[h3_index],
            member_sectors=frozenset(members[h3_index]),
        )
        for h3_index in sorted(values)
        if values[h3_index] != 0
    )
    total_value = sum(cell.value for cell in cells)

    log_event(
        logger,
        f"aggregated {len(rows) - len(skipped)} sectors into {len(cells)} cells at resolution {resolution}",
        component="hex_aggregator",
        event="HEX_AGGREGATE",
        status="partial" if skipped else "ok",
        rows_in=len(rows),
        rows_out=len(cells),
    )
    return HexAggregation(
        resolution=resolution,
        segment_ids=selected,
        cells=cells,
        skipped_sectors=tuple(sorted(skipped)),
        total_value=total_value,
    )


def normalise_intensity(cells: Iterable[HexCell]) -> dict[str, float]:
    cells = list(cells)
    if not cells:
        return {}
    max_value = max(max(cell.value for cell in cells), 1)
    return {cell.h3_index: cell.value / max_value for cell in cells}


def hex_fill_colour(intensity: float) -> str:
    alpha = round(0.3 + max(0.0, min(1.0, intensity)) * 0.7, 3)
    return f"rgba(2, 179, 229, {alpha})"


def hexagons_to_render_model(cells: Iterable[HexCell]) -> list[dict[str, Any]]:
    cells = list(cells)
    intensity = normalise_intensity(cells)
    return [
        {
            "id": cell.h3_index,
            "boundary": [list(vertex) for vertex in cell.boundary],
            "value": cell.value,
            "memberSectors": sorted(cell.member_sectors),
            "intensity": intensity[cell.h3_index],
            "fill": hex_fill_colour(intensity[cell.h3_index]),
        }
        for cell in cells
    ]


def hexagons_to_geojson(cells: Iterable[HexCell]) -> dict[str, Any]:
    cells = list(cells)
    intensity = normalise_intensity(cells)
    features = []
    for cell in cells:
        # GeoJSON positions are lng/lat.
        ring = [[lng, lat] for lat, lng in cell.boundary]
        features.append(
            {
                "type": "Feature",
                "id": cell.h3_index,
                "geometry": {"type": "Polygon", "coordinates": [ring]},
                "properties": {
                    "value": cell.value,
                    "intensity": intensity[cell.h3_index],
                    "member_sectors": sorted(cell.member_sectors),
                },
            }
        )
    return {"type": "FeatureCollection", "features": features}
