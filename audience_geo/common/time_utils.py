"""UTC-focused helpers for run metadata and report date ranges."""

from __future__ import annotations

from datetime import date, datetime, timezone

from audience_geo.common.errors import InputError


def parse_iso_date(value: str, *, field: str = "date") -> str:
    try:
        parsed = date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise InputError(f"Invalid ISO date for {field}: {value!r}") from exc
    return parsed.isoformat()


def utc_timestamp_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds")
