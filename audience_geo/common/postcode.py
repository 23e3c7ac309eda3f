"""UK postcode sector and district helpers."""

from __future__ import annotations

import re

UK_DISTRICT_RE = re.compile(r"^[A-Z]{1,2}\d[A-Z\d]?$")
UK_SECTOR_RE = re.compile(r"^([A-Z]{1,2}\d[A-Z\d]?)\s(\d)$")

_WHITESPACE_RE = re.compile(r"\s+")


def normalise_sector(raw: object) -> str | None:
    """Collapse whitespace and upper-case a sector key, keeping the first space.

    Keys that are not postcode-shaped (city names used by some sources) are
    returned trimmed but otherwise untouched.
    """
    if raw is None:
        return None
    cleaned = _WHITESPACE_RE.sub(" ", str(raw)).strip()
    if not cleaned:
        return None
    upper = cleaned.upper()
    if is_valid_sector(upper) or is_valid_district(upper):
        return upper
    return cleaned


def district_for_sector(sector: str) -> str:
    # The geo lookup table is keyed by district: everything before the first space.
    head, _, _ = sector.strip().partition(" ")
    return head.upper()


def is_valid_sector(value: str) -> bool:
    return bool(UK_SECTOR_RE.match(value))


def is_valid_district(value: str) -> bool:
    return bool(UK_DISTRICT_RE.match(value))
