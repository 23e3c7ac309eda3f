"""Campaign (CTV) and linear-TV impression sources keyed by location."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Protocol

from audience_geo.common.constants import DEFAULT_MAX_ROWS, DEFAULT_PAGE_SIZE
from audience_geo.common.errors import InputError
from audience_geo.common.logging import log_event
from audience_geo.common.models import DateRange, ReachFilters
from audience_geo.common.postcode import normalise_sector
from audience_geo.common.time_utils import parse_iso_date
from audience_geo.pipeline.pagination import fetch_all_pages


@dataclass(frozen=True)
class ReachSource:
    campaign: dict[str, int] = field(default_factory=dict)
    linear: dict[str, int] = field(default_factory=dict)
    campaign_truncated: bool = False
    linear_truncated: bool = False

    @property
    def truncated(self) -> bool:
        return self.campaign_truncated or self.linear_truncated


class ReachSourceStore(Protocol):
    def fetch_campaign_events(self, date_range, filters, *, offset: int, limit: int) -> list[dict]:
        ...

    def fetch_linear_spots(self, date_range, filters, *, offset: int, limit: int) -> list[dict]:
        ...


def make_date_range(start: str, end: str) -> DateRange:
    start_iso = parse_iso_date(start, field="start")
    end_iso = parse_iso_date(end, field="end")
    if start_iso > end_iso:
        raise InputError(f"Date range start {start_iso} is after end {end_iso}")
    return DateRange(start=start_iso, end=end_iso)


def campaign_impressions_by_location(
    events: list[dict],
    *,
    geo_column: str = "geo",
    event_type_column: str = "event_type",
    impression_event: str = "impression",
) -> dict[str, int]:
    """Count impression events per location; locations with only other events count zero."""
    counts: Counter[str] = Counter()
    for event in events:
        key = normalise_sector(event.get(geo_column))
        if key is None:
            continue
        counts[key] += 1 if event.get(event_type_column) == impression_event else 0
    return dict(counts)


def linear_impressions_by_location(
    spots: list[dict],
    *,
    postcode_column: str = "postal_code",
    city_column: str = "city",
    duration_column: str = "duration",
    seconds_per_impression: int = 30,
) -> dict[str, int]:
    """Estimate linear impressions per location from spot durations.

    Spots without a postal code are keyed by city. A spot with no duration is
    treated as one impression slot.
    """
    counts: Counter[str] = Counter()
    for spot in spots:
        key = normalise_sector(spot.get(postcode_column)) or normalise_sector(spot.get(city_column))
        if key is None:
            continue
        try:
            duration = float(spot.get(duration_column) or seconds_per_impression)
        except (TypeError, ValueError):
            duration = float(seconds_per_impression)
        counts[key] += int(duration // seconds_per_impression)
    return dict(counts)


def fetch_reach_source(
    store: ReachSourceStore,
    date_range: DateRange | None,
    filters: ReachFilters,
    *,
    store_tables: dict,
    seconds_per_impression: int = 30,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_rows: int = DEFAULT_MAX_ROWS,
    logger: logging.Logger | None = None,
) -> ReachSource:
    """Fetch both impression sources; any failing page raises ``FetchError``.

    A source cut off at ``max_rows`` is flagged on the result rather than
    raised, so the report can be marked partial.
    """
    events = fetch_all_pages(
        lambda offset, limit: store.fetch_campaign_events(date_range, filters, offset=offset, limit=limit),
        page_size=page_size,
        max_rows=max_rows,
        component="reach_source.campaign",
        strict=True,
        logger=logger,
    )
    spots = fetch_all_pages(
        lambda offset, limit: store.fetch_linear_spots(date_range, filters, offset=offset, limit=limit),
        page_size=page_size,
        max_rows=max_rows,
        component="reach_source.linear",
        strict=True,
        logger=logger,
    )

    events_cfg = store_tables["campaign_events"]
    spots_cfg = store_tables["linear_spots"]
    campaign = campaign_impressions_by_location(
        events.rows,
        geo_column=events_cfg["geo_column"],
        event_type_column=events_cfg["event_type_column"],
        impression_event=events_cfg.get("impression_event", "impression"),
    )
    linear = linear_impressions_by_location(
        spots.rows,
        postcode_column=spots_cfg["postcode_column"],
        city_column=spots_cfg["city_column"],
        duration_column=spots_cfg["duration_column"],
        seconds_per_impression=seconds_per_impression,
    )
    log_event(
        logger,
        f"reach sources: {len(campaign)} campaign locations, {len(linear)} linear locations",
        component="reach_source",
        event="REACH_SOURCE",
        status="partial" if events.truncated or spots.truncated else "ok",
        rows_in=len(events.rows) + len(spots.rows),
        rows_out=len(campaign) + len(linear),
    )
    return ReachSource(
        campaign=campaign,
        linear=linear,
        campaign_truncated=events.truncated,
        linear_truncated=spots.truncated,
    )
