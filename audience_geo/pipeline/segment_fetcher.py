"""Segment metric rows for the selected audience segments."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol

from audience_geo.common.constants import DEFAULT_MAX_ROWS, DEFAULT_PAGE_SIZE
from audience_geo.common.deterministic import unique_in_order
from audience_geo.common.logging import log_event
from audience_geo.common.models import PostcodeMetricRow, SegmentFetchResult
from audience_geo.common.postcode import normalise_sector
from audience_geo.pipeline.pagination import fetch_all_pages


class SegmentRowSource(Protocol):
    def fetch_segment_rows(self, segment_ids: list[str], *, offset: int, limit: int) -> list[dict]:
        ...


def _count(value: object) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        count = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(count, 0)


def parse_metric_rows(
    raw_rows: Iterable[dict],
    segment_ids: list[str],
    sector_column: str,
) -> tuple[list[PostcodeMetricRow], int]:
    """Build metric rows, keeping the first occurrence of each sector."""
    rows: list[PostcodeMetricRow] = []
    seen: set[str] = set()
    duplicates = 0
    for raw in raw_rows:
        sector = normalise_sector(raw.get(sector_column))
        if sector is None:
            continue
        if sector in seen:
            duplicates += 1
            continue
        seen.add(sector)
        counts = {segment_id: _count(raw.get(segment_id)) for segment_id in segment_ids}
        rows.append(PostcodeMetricRow(sector_id=sector, counts=counts))
    return rows, duplicates


def fetch_segment_rows(
    store: SegmentRowSource,
    segment_ids: Iterable[str],
    *,
    sector_column: str = "Postcode sector",
    page_size: int = DEFAULT_PAGE_SIZE,
    max_rows: int = DEFAULT_MAX_ROWS,
    strict: bool = False,
    logger: logging.Logger | None = None,
) -> SegmentFetchResult:
    selected = unique_in_order(str(segment_id) for segment_id in segment_ids)
    if not selected:
        return SegmentFetchResult(segment_ids=(), rows=(), pages_requested=0)

    paged = fetch_all_pages(
        lambda offset, limit: store.fetch_segment_rows(selected, offset=offset, limit=limit),
        page_size=page_size,
        max_rows=max_rows,
        component="segment_fetcher",
        strict=strict,
        logger=logger,
    )
    rows, duplicates = parse_metric_rows(paged.rows, selected, sector_column)

    log_event(
        logger,
        f"fetched {len(rows)} sectors for {len(selected)} segments",
        component="segment_fetcher",
        event="SEGMENT_FETCH",
        status="ok" if paged.failure is None and not paged.truncated else "partial",
        page=paged.pages_requested,
        rows_in=len(paged.rows),
        rows_out=len(rows),
        error_code=paged.failure.error_code if paged.failure else None,
    )

    return SegmentFetchResult(
        segment_ids=tuple(selected),
        rows=tuple(rows),
        pages_requested=paged.pages_requested,
        truncated=paged.truncated,
        duplicate_sectors=duplicates,
        failure=paged.failure,
    )
