"""Recompute-on-change controllers for the audience map and reach report.

Controllers hold the current selection and call the pure aggregation
functions whenever it changes. Every recompute is tagged with an epoch; only
the newest one may publish its result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from audience_geo.common.config_loader import ConfigBundle
from audience_geo.common.deterministic import unique_in_order
from audience_geo.common.epoch import LatestResultSlot
from audience_geo.common.errors import FetchError
from audience_geo.common.logging import log_event
from audience_geo.common.models import (
    DateRange,
    FetchFailure,
    GeoResolution,
    HexAggregation,
    ReachFilters,
    ReachReport,
    SegmentFetchResult,
    derive_status,
)
from audience_geo.pipeline.geo_resolver import geo_options_from_config, resolve_coordinates
from audience_geo.pipeline.hex_aggregator import aggregate_hexagons, validate_resolution
from audience_geo.pipeline.reach_overlap import calculate_incremental_reach
from audience_geo.pipeline.segment_fetcher import fetch_segment_rows


@dataclass(frozen=True)
class AudienceMapState:
    status: str
    fetch: SegmentFetchResult
    geo: GeoResolution
    aggregation: HexAggregation


@dataclass(frozen=True)
class FetchedSegments:
    fetch: SegmentFetchResult
    geo: GeoResolution


class AudienceMapController:
    def __init__(self, store, config: ConfigBundle, *, logger: logging.Logger | None = None) -> None:
        self.store = store
        self.config = config
        self.logger = logger
        self.segment_ids: tuple[str, ...] = ()
        self.resolution = config.default_resolution
        self._rows = LatestResultSlot[FetchedSegments]()
        self._state = LatestResultSlot[AudienceMapState]()

    @property
    def state(self) -> AudienceMapState | None:
        return self._state.current

    def select_segments(self, segment_ids) -> AudienceMapState | None:
        self.segment_ids = tuple(unique_in_order(segment_ids))
        epoch = self._rows.begin()
        fetched = self._fetch(self.segment_ids)
        if not self._rows.apply(epoch, fetched):
            return self.state
        return self._recompute()

    def set_resolution(self, resolution: int) -> AudienceMapState | None:
        self.resolution = validate_resolution(resolution)
        return self._recompute()

    def refresh(self) -> AudienceMapState | None:
        return self.select_segments(self.segment_ids)

    def _fetch(self, segment_ids: tuple[str, ...]) -> FetchedSegments:
        fetch = fetch_segment_rows(
            self.store,
            segment_ids,
            sector_column=self.config.store["tables"]["segment_metrics"]["sector_column"],
            page_size=self.config.page_size,
            max_rows=self.config.max_rows,
            logger=self.logger,
        )
        if not fetch.rows:
            return FetchedSegments(fetch=fetch, geo=GeoResolution(coordinates={}))
        try:
            geo = resolve_coordinates(
                self.store,
                [row.sector_id for row in fetch.rows],
                logger=self.logger,
                **geo_options_from_config(self.config.store, self.config.aggregation),
            )
        except FetchError as exc:
            log_event(
                self.logger,
                f"geo lookup failed for {len(fetch.rows)} fetched sectors",
                level=logging.ERROR,
                component="controller",
                event="GEO_FAIL",
                status="error",
                rows_in=len(fetch.rows),
                error_code=exc.error_code,
            )
            geo = GeoResolution(
                coordinates={},
                failure=FetchFailure(error_code=exc.error_code, message=str(exc)),
            )
        return FetchedSegments(fetch=fetch, geo=geo)

    def _recompute(self) -> AudienceMapState | None:
        epoch = self._state.begin()
        fetched = self._rows.current
        if fetched is None:
            return self.state
        aggregation = aggregate_hexagons(
            fetched.fetch.rows,
            fetched.geo,
            fetched.fetch.segment_ids,
            self.resolution,
            logger=self.logger,
        )
        state = AudienceMapState(
            status=derive_status(
                has_data=bool(aggregation.cells),
                failed=fetched.fetch.failure is not None or fetched.geo.failure is not None,
                partial=fetched.fetch.truncated or bool(aggregation.skipped_sectors),
            ),
            fetch=fetched.fetch,
            geo=fetched.geo,
            aggregation=aggregation,
        )
        self._state.apply(epoch, state)
        return self.state


class ReachReportController:
    def __init__(self, store, config: ConfigBundle, *, logger: logging.Logger | None = None) -> None:
        self.store = store
        self.config = config
        self.logger = logger
        self._report = LatestResultSlot[ReachReport]()

    @property
    def report(self) -> ReachReport | None:
        return self._report.current

    @property
    def discarded(self) -> int:
        return self._report.discarded

    def update(self, date_range: DateRange | None, filters: ReachFilters) -> ReachReport | None:
        epoch = self._report.begin()
        report = calculate_incremental_reach(
            self.store,
            date_range,
            filters,
            self.config,
            logger=self.logger,
        )
        self._report.apply(epoch, report)
        return self.report
