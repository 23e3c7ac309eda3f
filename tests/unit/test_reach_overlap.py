from __future__ import annotations

import pytest

from audience_geo.common.config_loader import ConfigBundle
from audience_geo.common.errors import FetchError
from audience_geo.common.models import GeoCoordinate, GeoResolution, ReachFilters
from audience_geo.pipeline.reach_overlap import (
    build_reach_records,
    build_reach_report,
    calculate_incremental_reach,
    classify_sector,
    failed_reach_report,
    make_record,
    reach_hexagons,
    regional_breakdown,
    summarise_reach,
)


@pytest.mark.parametrize(
    ("linear", "campaign", "category", "incremental"),
    [
        (0, 100, "incremental", True),
        (50, 100, "overlap", False),
        (50, 0, "linear_only", False),
        (0, 0, "neither", False),
    ],
)
def test_classification_rule(linear, campaign, category, incremental):
    record = make_record("E1", linear_impressions=linear, campaign_impressions=campaign)

    assert classify_sector(linear, campaign) == category
    assert record.category == category
    assert record.is_incremental is incremental
    assert record.is_incremental == (record.linear_impressions == 0 and record.campaign_impressions > 0)


def test_classification_partition_covers_every_record():
    records = [
        make_record(f"K{i}", linear_impressions=linear, campaign_impressions=campaign)
        for i, (linear, campaign) in enumerate([(0, 5), (0, 7), (3, 4), (9, 0), (0, 0), (2, 2)])
    ]

    summary = summarise_reach(records)

    assert summary.incremental_sectors == 2
    assert summary.overlap_sectors == 2
    assert summary.linear_only_sectors == 1
    assert summary.neither_sectors == 1
    assert (
        summary.incremental_sectors + summary.overlap_sectors + summary.linear_only_sectors + summary.neither_sectors
        == summary.total_sectors
        == len(records)
    )


def test_summary_percentages():
    records = [
        make_record("A", linear_impressions=0, campaign_impressions=100),
        make_record("B", linear_impressions=50, campaign_impressions=100),
        make_record("C", linear_impressions=50, campaign_impressions=0),
    ]

    summary = summarise_reach(records)

    assert summary.total_campaign_sectors == 2
    assert summary.total_linear_sectors == 2
    assert summary.incremental_percentage == 50.0
    assert summary.total_campaign_impressions == 200
    assert summary.incremental_impressions == 100
    assert summary.incremental_impressions_percentage == 50.0
    assert summary.incremental_reach_efficiency == 100.0


def test_summary_percentages_are_zero_for_empty_denominators():
    summary = summarise_reach([make_record("C", linear_impressions=10, campaign_impressions=0)])

    assert summary.incremental_percentage == 0
    assert summary.incremental_impressions_percentage == 0
    assert summary.incremental_reach_efficiency == 0

    empty = summarise_reach([])
    assert empty.total_sectors == 0
    assert empty.incremental_percentage == 0


def test_regional_rollup_percentages():
    records = [
        make_record("SW1A", region="London", linear_impressions=0, campaign_impressions=10),
        make_record("E1", region="London", linear_impressions=5, campaign_impressions=10),
        make_record("EH1", region="Scotland", linear_impressions=5, campaign_impressions=3),
    ]

    breakdown = {item.region: item for item in regional_breakdown(records)}

    assert breakdown["London"].incremental_percentage == 50.0
    assert breakdown["London"].total_sectors == 2
    assert breakdown["London"].incremental_impressions == 10
    assert breakdown["London"].audience_density == 10.0
    assert breakdown["Scotland"].incremental_percentage == 0.0
    assert breakdown["Scotland"].total_sectors == 1


def test_regional_rollup_sorted_by_incremental_impressions():
    records = [
        make_record("A", region="Wales", linear_impressions=0, campaign_impressions=1),
        make_record("B", region="North West", linear_impressions=0, campaign_impressions=9),
        make_record("C", region="Scotland", linear_impressions=1, campaign_impressions=1),
    ]

    assert [item.region for item in regional_breakdown(records)] == ["North West", "Wales", "Scotland"]


def test_build_reach_records_joins_sources_and_reports_unmatched():
    geo = GeoResolution(
        coordinates={
            "SW1A": GeoCoordinate("SW1A", 51.5, -0.1, region="Greater London", town="London"),
            "Leeds": GeoCoordinate("Leeds", 53.8, -1.55, region="Yorkshire and the Humber", town="Leeds"),
        }
    )

    records, unmatched = build_reach_records({"SW1A": 40, "ZZ9": 3}, {"Leeds": 12}, geo)

    assert unmatched == ["ZZ9"]
    by_key = {record.postcode: record for record in records}
    assert by_key["SW1A"].is_incremental is True
    assert by_key["SW1A"].region == "Greater London"
    assert by_key["Leeds"].category == "linear_only"


def test_reach_report_status_partial_when_locations_unmatched():
    geo = GeoResolution(coordinates={"SW1A": GeoCoordinate("SW1A", 51.5, -0.1)})

    report = build_reach_report({"SW1A": 1, "ZZ9": 1}, {}, geo)

    assert report.status == "partial"
    assert report.unmatched_locations == ("ZZ9",)
    assert report.records[0].region == "Unknown"


def test_reach_report_partial_when_source_truncated():
    geo = GeoResolution(coordinates={"SW1A": GeoCoordinate("SW1A", 51.5, -0.1)})

    report = build_reach_report({"SW1A 1": 5}, {}, geo, truncated=True)

    assert report.status == "partial"
    assert report.truncated is True
    assert report.to_dict()["truncated"] is True


def test_missing_region_uses_configured_label():
    geo = GeoResolution(coordinates={"SW1A": GeoCoordinate("SW1A", 51.5, -0.1)})

    records, _ = build_reach_records({"SW1A": 1}, {}, geo, default_region="Unassigned")

    assert records[0].region == "Unassigned"
    assert records[0].town == "Unknown"


def test_reach_report_no_data_and_fetch_failed_states():
    assert build_reach_report({}, {}, GeoResolution(coordinates={})).status == "no_data"

    failed = failed_reach_report(FetchError("down"))
    assert failed.status == "fetch_failed"
    assert failed.error_code == "FETCH_ERROR"
    assert failed.records == ()
    assert failed.summary.incremental_percentage == 0


def test_reach_hexagons_roll_up_records():
    records = [
        make_record("SW1A", latitude=51.5, longitude=-0.1, linear_impressions=0, campaign_impressions=10),
        make_record("SW1B", latitude=51.5, longitude=-0.1, linear_impressions=4, campaign_impressions=6),
        make_record("NOPE", linear_impressions=0, campaign_impressions=99),
    ]

    cells = reach_hexagons(records, 6)

    assert len(cells) == 1
    assert cells[0]["postcodes"] == ["SW1A", "SW1B"]
    assert cells[0]["campaign_impressions"] == 16
    assert cells[0]["incremental_impressions"] == 10
    assert cells[0]["is_incremental"] is True
    assert cells[0]["boundary"][0] == cells[0]["boundary"][-1]


def test_incremental_reach_cut_off_at_row_ceiling_is_partial(fake_store_cls, make_geo_row, config_bundle):
    aggregation = dict(config_bundle.aggregation)
    aggregation["pagination"] = {"page_size": 5, "max_rows": 5}
    config = ConfigBundle(store=config_bundle.store, aggregation=aggregation)
    events = [{"geo": "SW1A 1", "event_type": "impression"} for _ in range(5)]
    events += [{"geo": "B1 1", "event_type": "impression"} for _ in range(20)]
    store = fake_store_cls(
        geo_rows=[make_geo_row("SW1A", 51.501, -0.141), make_geo_row("B1", 52.48, -1.9, "West Midlands", "Birmingham")],
        campaign_events=events,
    )

    report = calculate_incremental_reach(store, None, ReachFilters(), config)

    assert [record.postcode for record in report.records] == ["SW1A 1"]
    assert report.truncated is True
    assert report.status == "partial"


def test_incremental_reach_uses_configured_default_region(fake_store_cls, config_bundle):
    aggregation = dict(config_bundle.aggregation)
    aggregation["reach"] = {**aggregation["reach"], "default_region": "Unassigned"}
    config = ConfigBundle(store=config_bundle.store, aggregation=aggregation)
    store = fake_store_cls(
        geo_rows=[{"Postcode District": "E1", "Latitude": 51.515, "Longitude": -0.06, "Region": None, "Town/Area": None}],
        campaign_events=[{"geo": "E1", "event_type": "impression"}],
    )

    report = calculate_incremental_reach(store, None, ReachFilters(), config)

    assert report.records[0].region == "Unassigned"
    assert report.regional_breakdown[0].region == "Unassigned"
