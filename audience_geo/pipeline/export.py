"""CSV and JSON export of result sets."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

from audience_geo.common.errors import ContractError
from audience_geo.common.fs import csv_text, write_csv, write_json
from audience_geo.common.models import HexCell, PostcodeMetricRow, ReachRecord, RegionalBreakdown
from audience_geo.pipeline.hex_aggregator import normalise_intensity

REPORT_HEADERS: dict[str, list[str]] = {
    "hexagons": [
        "h3_index",
        "value",
        "intensity",
        "member_count",
        "member_sectors",
    ],
    "reach_records": [
        "postcode",
        "region",
        "town",
        "latitude",
        "longitude",
        "linear_impressions",
        "campaign_impressions",
        "category",
        "is_incremental",
        "incremental_impressions",
    ],
    "regional_breakdown": [
        "region",
        "total_sectors",
        "incremental_sectors",
        "incremental_percentage",
        "total_impressions",
        "incremental_impressions",
        "audience_density",
    ],
    "reach_hexagons": [
        "h3_index",
        "campaign_impressions",
        "linear_impressions",
        "incremental_impressions",
        "is_incremental",
        "postcodes",
    ],
}


def _serialize_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple, set, frozenset)):
        return ";".join(str(item) for item in sorted(value) if item is not None)
    return value


def _serialize_row(row: Mapping[str, Any], headers: list[str]) -> dict:
    return {key: _serialize_value(row.get(key)) for key in headers}


def headers_for(report_type: str, rows: list[Mapping[str, Any]] | None = None) -> list[str]:
    if report_type == "segment_rows":
        segments: list[str] = []
        for row in rows or []:
            segments.extend(key for key in row if key != "sector_id" and key not in segments)
        return ["sector_id", *segments]
    try:
        return list(REPORT_HEADERS[report_type])
    except KeyError as exc:
        raise ContractError(f"Unknown report type: {report_type}") from exc


def hex_rows(cells: Iterable[HexCell]) -> list[dict]:
    cells = list(cells)
    intensity = normalise_intensity(cells)
    return [
        {
            "h3_index": cell.h3_index,
            "value": cell.value,
            "intensity": round(intensity[cell.h3_index], 6),
            "member_count": len(cell.member_sectors),
            "member_sectors": cell.member_sectors,
        }
        for cell in cells
    ]


def reach_record_rows(records: Iterable[ReachRecord]) -> list[dict]:
    return [record.to_dict() for record in records]


def regional_rows(breakdown: Iterable[RegionalBreakdown]) -> list[dict]:
    return [item.to_dict() for item in breakdown]


def segment_rows(rows: Iterable[PostcodeMetricRow]) -> list[dict]:
    ordered = sorted(rows, key=lambda row: row.sector_id)
    return [{"sector_id": row.sector_id, **dict(row.counts)} for row in ordered]


def render_csv(report_type: str, rows: Iterable[Mapping[str, Any]]) -> str:
    rows = list(rows)
    headers = headers_for(report_type, rows)
    return csv_text(headers, [_serialize_row(row, headers) for row in rows])


def write_report_csv(path: Path, report_type: str, rows: Iterable[Mapping[str, Any]]) -> Path:
    rows = list(rows)
    headers = headers_for(report_type, rows)
    write_csv(path, headers, [_serialize_row(row, headers) for row in rows])
    return path


def write_report_json(path: Path, payload: Any) -> Path:
    write_json(path, payload)
    return path
