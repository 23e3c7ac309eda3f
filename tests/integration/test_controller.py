import pytest

from audience_geo.common.errors import FetchError
from audience_geo.common.models import DateRange, ReachFilters
from audience_geo.pipeline.controller import AudienceMapController, ReachReportController

METRIC_ROWS = [
    {"Postcode sector": "E1 1", "S1": 5, "S2": 1},
    {"Postcode sector": "SW1A 1", "S1": 2, "S2": 0},
]


def _geo_rows(make_geo_row):
    return [make_geo_row("E1", 51.515, -0.06), make_geo_row("SW1A", 51.501, -0.141)]


@pytest.mark.integration
def test_resolution_change_recomputes_without_refetching(fake_store_cls, make_geo_row, config_bundle):
    store = fake_store_cls(metric_rows=METRIC_ROWS, geo_rows=_geo_rows(make_geo_row))
    controller = AudienceMapController(store, config_bundle)

    fine = controller.select_segments(["S1"])
    calls_after_select = (len(store.segment_calls), len(store.district_calls))
    coarse = controller.set_resolution(3)

    assert (len(store.segment_calls), len(store.district_calls)) == calls_after_select
    assert fine.aggregation.resolution == config_bundle.default_resolution
    assert coarse.aggregation.resolution == 3
    assert coarse.aggregation.total_value == fine.aggregation.total_value == 7


@pytest.mark.integration
def test_duplicate_segment_ids_are_collapsed(fake_store_cls, make_geo_row, config_bundle):
    store = fake_store_cls(metric_rows=METRIC_ROWS, geo_rows=_geo_rows(make_geo_row))
    controller = AudienceMapController(store, config_bundle)

    state = controller.select_segments(["S1", "S1", "S2"])

    assert state.fetch.segment_ids == ("S1", "S2")
    assert store.segment_calls[0][0] == ["S1", "S2"]


@pytest.mark.integration
def test_empty_selection_yields_no_data_without_requests(fake_store_cls, config_bundle):
    store = fake_store_cls(metric_rows=METRIC_ROWS)
    controller = AudienceMapController(store, config_bundle)

    state = controller.select_segments([])

    assert state.status == "no_data"
    assert state.aggregation.cells == ()
    assert store.segment_calls == []


@pytest.mark.integration
def test_stale_selection_result_is_discarded(fake_store_cls, make_geo_row, config_bundle):
    class InterleavingStore(fake_store_cls):
        controller = None
        interleaved = False

        def fetch_segment_rows(self, segment_ids, *, offset, limit):
            if not self.interleaved:
                # A newer selection arrives while the first request is in flight.
                self.interleaved = True
                self.controller.select_segments(["S2"])
            return super().fetch_segment_rows(segment_ids, offset=offset, limit=limit)

    store = InterleavingStore(metric_rows=METRIC_ROWS, geo_rows=_geo_rows(make_geo_row))
    controller = AudienceMapController(store, config_bundle)
    store.controller = controller

    state = controller.select_segments(["S1"])

    assert state.fetch.segment_ids == ("S2",)
    assert state.aggregation.total_value == 1
    assert controller.state is state


@pytest.mark.integration
def test_reach_controller_discards_superseded_report(fake_store_cls, make_geo_row, config_bundle):
    events = [
        {"geo": "E1", "event_type": "impression", "event_date": "2024-06-02", "campaign_id": "c1"},
        {"geo": "SW1A", "event_type": "impression", "event_date": "2024-06-02", "campaign_id": "c2"},
    ]

    class InterleavingStore(fake_store_cls):
        controller = None
        interleaved = False

        def fetch_campaign_events(self, date_range, filters, *, offset, limit):
            if not self.interleaved:
                self.interleaved = True
                self.controller.update(date_range, ReachFilters(campaign_id="c2"))
            return super().fetch_campaign_events(date_range, filters, offset=offset, limit=limit)

    store = InterleavingStore(geo_rows=_geo_rows(make_geo_row), campaign_events=events)
    controller = ReachReportController(store, config_bundle)
    store.controller = controller

    report = controller.update(DateRange(start="2024-06-01", end="2024-06-30"), ReachFilters(campaign_id="c1"))

    assert [record.postcode for record in report.records] == ["SW1A"]
    assert controller.discarded == 1


@pytest.mark.integration
def test_geo_lookup_failure_publishes_failed_state(fake_store_cls, make_geo_row, config_bundle):
    class GeoDownStore(fake_store_cls):
        def fetch_district_coordinates(self, district_ids):
            raise FetchError("geo lookup unavailable")

    store = GeoDownStore(metric_rows=METRIC_ROWS, geo_rows=_geo_rows(make_geo_row))
    controller = AudienceMapController(store, config_bundle)

    state = controller.select_segments(["S1"])

    assert state is controller.state
    assert state.status == "fetch_failed"
    assert len(state.fetch.rows) == 2
    assert state.geo.failure.error_code == "FETCH_ERROR"
    assert state.geo.to_dict()["failure"]["message"] == "geo lookup unavailable"
