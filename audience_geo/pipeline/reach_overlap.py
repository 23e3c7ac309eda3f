"""Linear-TV vs campaign overlap and incremental reach reporting."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable, Mapping

from audience_geo.common.config_loader import ConfigBundle
from audience_geo.common.errors import FetchError
from audience_geo.common.logging import log_event
from audience_geo.common.models import (
    INCREMENTAL,
    LINEAR_ONLY,
    NEITHER,
    OVERLAP,
    DateRange,
    GeoResolution,
    ReachFilters,
    ReachRecord,
    ReachReport,
    ReachSummary,
    RegionalBreakdown,
    derive_status,
)
from audience_geo.pipeline.geo_resolver import geo_options_from_config, resolve_coordinates
from audience_geo.pipeline.hex_aggregator import boundary_ring, cell_for, validate_resolution
from audience_geo.pipeline.reach_source import fetch_reach_source

UNKNOWN = "Unknown"


def classify_sector(linear_impressions: int, campaign_impressions: int) -> str:
    if campaign_impressions > 0 and linear_impressions == 0:
        return INCREMENTAL
    if campaign_impressions > 0 and linear_impressions > 0:
        return OVERLAP
    if linear_impressions > 0 and campaign_impressions == 0:
        return LINEAR_ONLY
    return NEITHER


def percentage(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator * 100


def make_record(
    postcode: str,
    *,
    linear_impressions: int,
    campaign_impressions: int,
    region: str | None = None,
    town: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    default_region: str = UNKNOWN,
) -> ReachRecord:
    linear = max(int(linear_impressions), 0)
    campaign = max(int(campaign_impressions), 0)
    return ReachRecord(
        postcode=postcode,
        region=region or default_region,
        town=town or UNKNOWN,
        latitude=latitude,
        longitude=longitude,
        linear_impressions=linear,
        campaign_impressions=campaign,
        is_incremental=classify_sector(linear, campaign) == INCREMENTAL,
    )


def build_reach_records(
    campaign_impressions: Mapping[str, int],
    linear_impressions: Mapping[str, int],
    resolution: GeoResolution,
    *,
    default_region: str = UNKNOWN,
) -> tuple[list[ReachRecord], list[str]]:
    """Join both sources over the union of location keys.

    Keys without a coordinate are not turned into records and are returned
    as the second element.
    """
    records: list[ReachRecord] = []
    unmatched: list[str] = []
    for key in sorted(set(campaign_impressions) | set(linear_impressions)):
        coordinate = resolution.lookup(key)
        if coordinate is None:
            unmatched.append(key)
            continue
        records.append(
            make_record(
                key,
                linear_impressions=linear_impressions.get(key, 0),
                campaign_impressions=campaign_impressions.get(key, 0),
                region=coordinate.region,
                town=coordinate.town,
                latitude=coordinate.latitude,
                longitude=coordinate.longitude,
                default_region=default_region,
            )
        )
    return records, unmatched


def summarise_reach(records: Iterable[ReachRecord]) -> ReachSummary:
    records = list(records)
    by_category = {INCREMENTAL: 0, OVERLAP: 0, LINEAR_ONLY: 0, NEITHER: 0}
    for record in records:
        by_category[record.category] += 1

    total_campaign_sectors = sum(1 for record in records if record.campaign_impressions > 0)
    total_linear_sectors = sum(1 for record in records if record.linear_impressions > 0)
    total_campaign_impressions = sum(record.campaign_impressions for record in records)
    total_linear_impressions = sum(record.linear_impressions for record in records)
    incremental_impressions = sum(record.incremental_impressions for record in records)
    incremental_sectors = by_category[INCREMENTAL]

    return ReachSummary(
        total_sectors=len(records),
        total_campaign_sectors=total_campaign_sectors,
        total_linear_sectors=total_linear_sectors,
        incremental_sectors=incremental_sectors,
        overlap_sectors=by_category[OVERLAP],
        linear_only_sectors=by_category[LINEAR_ONLY],
        neither_sectors=by_category[NEITHER],
        incremental_percentage=percentage(incremental_sectors, total_campaign_sectors),
        total_campaign_impressions=total_campaign_impressions,
        total_linear_impressions=total_linear_impressions,
        incremental_impressions=incremental_impressions,
        incremental_impressions_percentage=percentage(incremental_impressions, total_campaign_impressions),
        incremental_reach_efficiency=(incremental_impressions / incremental_sectors) if incremental_sectors else 0.0,
    )


def regional_breakdown(records: Iterable[ReachRecord]) -> list[RegionalBreakdown]:
    groups: dict[str, list[ReachRecord]] = defaultdict(list)
    for record in records:
        groups[record.region].append(record)

    breakdown = []
    for region, members in groups.items():
        total_sectors = len(members)
        incremental = [record for record in members if record.is_incremental]
        total_impressions = sum(record.campaign_impressions for record in members)
        breakdown.append(
            RegionalBreakdown(
                region=region,
                total_sectors=total_sectors,
                incremental_sectors=len(incremental),
                incremental_percentage=percentage(len(incremental), total_sectors),
                total_impressions=total_impressions,
                incremental_impressions=sum(record.incremental_impressions for record in incremental),
                audience_density=(total_impressions / total_sectors) if total_sectors else 0.0,
            )
        )
    return sorted(breakdown, key=lambda item: (-item.incremental_impressions, item.region))


def reach_hexagons(records: Iterable[ReachRecord], resolution: int) -> list[dict[str, Any]]:
    """Roll reach records up into H3 cells for the reach map."""
    resolution = validate_resolution(resolution)
    cells: dict[str, dict[str, Any]] = {}
    for record in records:
        if record.latitude is None or record.longitude is None:
            continue
        h3_index = cell_for(record.latitude, record.longitude, resolution)
        cell = cells.setdefault(
            h3_index,
            {
                "h3_index": h3_index,
                "postcodes": [],
                "campaign_impressions": 0,
                "linear_impressions": 0,
                "incremental_impressions": 0,
                "is_incremental": False,
            },
        )
        cell["postcodes"].append(record.postcode)
        cell["campaign_impressions"] += record.campaign_impressions
        cell["linear_impressions"] += record.linear_impressions
        cell["incremental_impressions"] += record.incremental_impressions
        cell["is_incremental"] = cell["is_incremental"] or record.is_incremental

    out = []
    for h3_index in sorted(cells):
        cell = cells[h3_index]
        cell["postcodes"] = sorted(cell["postcodes"])
        cell["boundary"] = [list(vertex) for vertex in boundary_ring(h3_index)]
        out.append(cell)
    return out


def build_reach_report(
    campaign_impressions: Mapping[str, int],
    linear_impressions: Mapping[str, int],
    resolution: GeoResolution,
    *,
    truncated: bool = False,
    default_region: str = UNKNOWN,
) -> ReachReport:
    """Join, classify and summarise.

    Unmatched locations or a source cut off at the row ceiling make the
    report partial.
    """
    records, unmatched = build_reach_records(
        campaign_impressions,
        linear_impressions,
        resolution,
        default_region=default_region,
    )
    return ReachReport(
        status=derive_status(has_data=bool(records), failed=False, partial=bool(unmatched) or truncated),
        records=tuple(records),
        summary=summarise_reach(records),
        regional_breakdown=tuple(regional_breakdown(records)),
        unmatched_locations=tuple(unmatched),
        truncated=truncated,
    )


def failed_reach_report(exc: FetchError) -> ReachReport:
    return ReachReport(
        status=derive_status(has_data=False, failed=True, partial=False),
        records=(),
        summary=summarise_reach([]),
        regional_breakdown=(),
        error_code=exc.error_code,
        error_message=str(exc),
    )


def calculate_incremental_reach(
    store,
    date_range: DateRange | None,
    filters: ReachFilters,
    config: ConfigBundle,
    *,
    logger: logging.Logger | None = None,
) -> ReachReport:
    """Point-in-time incremental reach report over a fixed date range.

    A failing source request aborts the computation: the report is empty and
    carries ``fetch_failed`` with the error code.
    """
    try:
        source = fetch_reach_source(
            store,
            date_range,
            filters,
            store_tables=config.store["tables"],
            seconds_per_impression=int(config.aggregation["reach"]["seconds_per_impression"]),
            page_size=config.page_size,
            max_rows=config.max_rows,
            logger=logger,
        )
        resolution = resolve_coordinates(
            store,
            sorted(set(source.campaign) | set(source.linear)),
            logger=logger,
            **geo_options_from_config(config.store, config.aggregation),
        )
    except FetchError as exc:
        log_event(
            logger,
            "incremental reach aborted",
            level=logging.ERROR,
            component="reach_overlap",
            event="REACH_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return failed_reach_report(exc)

    report = build_reach_report(
        source.campaign,
        source.linear,
        resolution,
        truncated=source.truncated,
        default_region=config.aggregation["reach"]["default_region"],
    )
    log_event(
        logger,
        f"incremental reach: {report.summary.incremental_sectors} of {report.summary.total_campaign_sectors} campaign sectors",
        component="reach_overlap",
        event="REACH_REPORT",
        status=report.status,
        rows_in=len(source.campaign) + len(source.linear),
        rows_out=len(report.records),
    )
    return report
