"""Data models shared by the aggregation and reach stages."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

from audience_geo.common.constants import STATUS_FETCH_FAILED, STATUS_NO_DATA, STATUS_OK, STATUS_PARTIAL
from audience_geo.common.postcode import district_for_sector

INCREMENTAL = "incremental"
OVERLAP = "overlap"
LINEAR_ONLY = "linear_only"
NEITHER = "neither"
REACH_CATEGORIES = (INCREMENTAL, OVERLAP, LINEAR_ONLY, NEITHER)


@dataclass(frozen=True)
class PostcodeMetricRow:
    sector_id: str
    counts: Mapping[str, int]

    def total_for(self, segment_ids: list[str] | tuple[str, ...]) -> int:
        return sum(int(self.counts.get(segment_id, 0)) for segment_id in segment_ids)

    def to_dict(self) -> dict[str, Any]:
        return {"sector_id": self.sector_id, "counts": dict(self.counts)}


@dataclass(frozen=True)
class GeoCoordinate:
    district_id: str
    latitude: float
    longitude: float
    region: str | None = None
    town: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class HexCell:
    h3_index: str
    boundary: tuple[tuple[float, float], ...]
    value: float
    member_sectors: frozenset[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "h3_index": self.h3_index,
            "boundary": [list(vertex) for vertex in self.boundary],
            "value": self.value,
            "member_sectors": sorted(self.member_sectors),
        }


@dataclass(frozen=True)
class FetchFailure:
    error_code: str
    message: str
    page: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SegmentFetchResult:
    segment_ids: tuple[str, ...]
    rows: tuple[PostcodeMetricRow, ...]
    pages_requested: int
    truncated: bool = False
    duplicate_sectors: int = 0
    failure: FetchFailure | None = None

    @property
    def complete(self) -> bool:
        return self.failure is None and not self.truncated

    def to_dict(self) -> dict[str, Any]:
        return {
            "segment_ids": list(self.segment_ids),
            "row_count": len(self.rows),
            "pages_requested": self.pages_requested,
            "truncated": self.truncated,
            "duplicate_sectors": self.duplicate_sectors,
            "complete": self.complete,
            "failure": self.failure.to_dict() if self.failure else None,
        }


@dataclass(frozen=True)
class GeoResolution:
    coordinates: Mapping[str, GeoCoordinate]
    unmatched: tuple[str, ...] = ()
    failure: FetchFailure | None = None

    def lookup(self, key: str) -> GeoCoordinate | None:
        coordinate = self.coordinates.get(district_for_sector(key))
        if coordinate is None:
            coordinate = self.coordinates.get(key)
        return coordinate

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolved": len(self.coordinates),
            "unmatched_count": len(self.unmatched),
            "unmatched": list(self.unmatched),
            "failure": self.failure.to_dict() if self.failure else None,
        }


@dataclass(frozen=True)
class HexAggregation:
    resolution: int
    segment_ids: tuple[str, ...]
    cells: tuple[HexCell, ...]
    skipped_sectors: tuple[str, ...] = ()
    total_value: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "resolution": self.resolution,
            "segment_ids": list(self.segment_ids),
            "cell_count": len(self.cells),
            "total_value": self.total_value,
            "skipped_sector_count": len(self.skipped_sectors),
            "skipped_sectors": list(self.skipped_sectors),
        }


@dataclass(frozen=True)
class ReachRecord:
    postcode: str
    region: str
    town: str
    latitude: float | None
    longitude: float | None
    linear_impressions: int
    campaign_impressions: int
    is_incremental: bool

    @property
    def category(self) -> str:
        if self.campaign_impressions > 0 and self.linear_impressions == 0:
            return INCREMENTAL
        if self.campaign_impressions > 0 and self.linear_impressions > 0:
            return OVERLAP
        if self.linear_impressions > 0:
            return LINEAR_ONLY
        return NEITHER

    @property
    def incremental_impressions(self) -> int:
        return self.campaign_impressions if self.is_incremental else 0

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["category"] = self.category
        payload["incremental_impressions"] = self.incremental_impressions
        return payload


@dataclass(frozen=True)
class ReachSummary:
    total_sectors: int
    total_campaign_sectors: int
    total_linear_sectors: int
    incremental_sectors: int
    overlap_sectors: int
    linear_only_sectors: int
    neither_sectors: int
    incremental_percentage: float
    total_campaign_impressions: int
    total_linear_impressions: int
    incremental_impressions: int
    incremental_impressions_percentage: float
    incremental_reach_efficiency: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RegionalBreakdown:
    region: str
    total_sectors: int
    incremental_sectors: int
    incremental_percentage: float
    total_impressions: int
    incremental_impressions: int
    audience_density: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReachReport:
    status: str
    records: tuple[ReachRecord, ...]
    summary: ReachSummary
    regional_breakdown: tuple[RegionalBreakdown, ...]
    unmatched_locations: tuple[str, ...] = ()
    truncated: bool = False
    error_code: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "summary": self.summary.to_dict(),
            "regional_breakdown": [item.to_dict() for item in self.regional_breakdown],
            "record_count": len(self.records),
            "unmatched_locations": list(self.unmatched_locations),
            "truncated": self.truncated,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass(frozen=True)
class DateRange:
    start: str
    end: str


@dataclass(frozen=True)
class ReachFilters:
    organization_id: str | None = None
    advertiser: str | None = None
    campaign_id: str | None = None


@dataclass
class SegmentNode:
    name: str
    full_path: str
    segments: list[dict] = field(default_factory=list)
    children: dict[str, "SegmentNode"] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "full_path": self.full_path,
            "segments": list(self.segments),
            "children": {key: child.to_dict() for key, child in sorted(self.children.items())},
        }


def derive_status(*, has_data: bool, failed: bool, partial: bool) -> str:
    if failed and not has_data:
        return STATUS_FETCH_FAILED
    if not has_data:
        return STATUS_NO_DATA
    if partial or failed:
        return STATUS_PARTIAL
    return STATUS_OK
