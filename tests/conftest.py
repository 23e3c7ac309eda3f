from __future__ import annotations

from pathlib import Path

import pytest

from audience_geo.common.config_loader import load_all_configs
from audience_geo.common.errors import FetchError

REPO_ROOT = Path(__file__).resolve().parents[1]


class FakeStore:
    """In-memory stand-in for the REST store with PostgREST-like paging."""

    def __init__(
        self,
        *,
        metric_rows: list[dict] | None = None,
        geo_rows: list[dict] | None = None,
        taxonomy: list[dict] | None = None,
        campaign_events: list[dict] | None = None,
        linear_spots: list[dict] | None = None,
        fail_segment_page: int | None = None,
        fail_campaign: bool = False,
    ) -> None:
        self.metric_rows = metric_rows or []
        self.geo_rows = geo_rows or []
        self.taxonomy = taxonomy or []
        self.campaign_events = campaign_events or []
        self.linear_spots = linear_spots or []
        self.fail_segment_page = fail_segment_page
        self.fail_campaign = fail_campaign
        self.segment_calls: list[tuple[list[str], int, int]] = []
        self.district_calls: list[list[str]] = []
        self.town_calls: list[list[str]] = []
        self.closed = False

    def fetch_segment_rows(self, segment_ids, *, offset, limit):
        self.segment_calls.append((list(segment_ids), offset, limit))
        if self.fail_segment_page is not None and len(self.segment_calls) == self.fail_segment_page:
            raise FetchError("segment page unavailable")
        matching = [row for row in self.metric_rows if any((row.get(s) or 0) > 0 for s in segment_ids)]
        return matching[offset : offset + limit]

    def fetch_district_coordinates(self, district_ids):
        self.district_calls.append(list(district_ids))
        wanted = set(district_ids)
        return [row for row in self.geo_rows if row.get("Postcode District") in wanted]

    def fetch_town_coordinates(self, towns):
        self.town_calls.append(list(towns))
        wanted = set(towns)
        return [row for row in self.geo_rows if row.get("Town/Area") in wanted]

    def fetch_taxonomy(self):
        return list(self.taxonomy)

    def fetch_campaign_events(self, date_range, filters, *, offset, limit):
        if self.fail_campaign:
            raise FetchError("campaign events unavailable")
        events = self.campaign_events
        if filters.campaign_id:
            events = [event for event in events if event.get("campaign_id") == filters.campaign_id]
        if date_range is not None:
            events = [event for event in events if date_range.start <= event.get("event_date", "") <= date_range.end]
        return events[offset : offset + limit]

    def fetch_linear_spots(self, date_range, filters, *, offset, limit):
        spots = self.linear_spots
        if filters.advertiser:
            spots = [spot for spot in spots if spot.get("advertiser") == filters.advertiser]
        return spots[offset : offset + limit]

    def close(self):
        self.closed = True


def geo_row(district: str, lat: float, lon: float, region: str = "Greater London", town: str = "London") -> dict:
    return {
        "Postcode District": district,
        "Latitude": lat,
        "Longitude": lon,
        "Region": region,
        "Town/Area": town,
    }


@pytest.fixture
def fake_store_cls():
    return FakeStore


@pytest.fixture
def make_geo_row():
    return geo_row


@pytest.fixture
def config_bundle():
    return load_all_configs(REPO_ROOT / "config")


@pytest.fixture
def repo_config_dir() -> Path:
    return REPO_ROOT / "config"
