from __future__ import annotations

import pytest

from audience_geo.common.config_loader import ConfigBundle
from audience_geo.common.errors import FetchError
from audience_geo.common.models import DateRange, ReachFilters
from audience_geo.store.rest_store import RestStore, in_filter, positive_any_filter, quote_ident


class FakeHttpClient:
    def __init__(self, payload=None):
        self.payload = [] if payload is None else payload
        self.calls: list[dict] = []
        self.closed = False

    def get_json(self, url, *, params=None, headers=None, timeout=None):
        self.calls.append({"url": url, "params": list(params or []), "headers": headers, "timeout": timeout})
        return self.payload

    def close(self):
        self.closed = True


def _store(config_bundle, payload=None, api_key="anon-key"):
    client = FakeHttpClient(payload)
    return RestStore(config_bundle, http_client=client, api_key=api_key), client


def test_quoting_helpers():
    assert quote_ident("Postcode sector") == '"Postcode sector"'
    assert positive_any_filter(["A", "B"]) == '("A".gt.0,"B".gt.0)'
    assert in_filter(["SW1A", "E1"]) == 'in.("SW1A","E1")'


def test_segment_query_uses_any_positive_filter_and_paging(config_bundle):
    store, client = _store(config_bundle, payload=[{"Postcode sector": "E1 1", "S1": 2}])

    rows = store.fetch_segment_rows(["S1", "S2"], offset=1000, limit=500)

    assert rows == [{"Postcode sector": "E1 1", "S1": 2}]
    call = client.calls[0]
    assert call["url"] == "https://project-ref.supabase.co/rest/v1/experian_data"
    params = dict(call["params"])
    assert params["select"] == '"Postcode sector","S1","S2"'
    assert params["or"] == '("S1".gt.0,"S2".gt.0)'
    assert params["order"] == '"Postcode sector".asc'
    assert params["offset"] == 1000
    assert params["limit"] == 500


def test_auth_headers_sent_when_key_present(config_bundle):
    store, client = _store(config_bundle)
    store.fetch_taxonomy()
    assert client.calls[0]["headers"] == {"apikey": "anon-key", "Authorization": "Bearer anon-key"}

    anon, anon_client = _store(config_bundle, api_key="")
    anon.fetch_taxonomy()
    assert anon_client.calls[0]["headers"] == {}


def test_district_lookup_uses_in_filter(config_bundle):
    store, client = _store(config_bundle)

    store.fetch_district_coordinates(["E1", "SW1A"])

    params = dict(client.calls[0]["params"])
    assert params['"Postcode District"'] == 'in.("E1","SW1A")'
    assert client.calls[0]["url"].endswith("/Geo_lookup")


def test_empty_lookups_make_no_request(config_bundle):
    store, client = _store(config_bundle)

    assert store.fetch_district_coordinates([]) == []
    assert store.fetch_town_coordinates([]) == []
    assert client.calls == []


def test_campaign_query_applies_filters_and_date_bounds(config_bundle):
    store, client = _store(config_bundle)

    store.fetch_campaign_events(
        DateRange(start="2024-06-01", end="2024-06-30"),
        ReachFilters(organization_id="org-1", campaign_id="c1"),
        offset=0,
        limit=1000,
    )

    params = client.calls[0]["params"]
    assert ('"organization_id"', "eq.org-1") in params
    assert ('"campaign_id"', "eq.c1") in params
    assert ('"event_date"', "gte.2024-06-01") in params
    assert ('"event_date"', "lte.2024-06-30") in params
    assert ('"geo"', "not.is.null") in params


def test_linear_query_filters_advertiser_and_skips_missing_date_column(config_bundle):
    store, client = _store(config_bundle)

    store.fetch_linear_spots(
        DateRange(start="2024-06-01", end="2024-06-30"),
        ReachFilters(advertiser="Acme"),
        offset=0,
        limit=1000,
    )

    params = client.calls[0]["params"]
    assert ('"advertiser"', "eq.Acme") in params
    assert ('"city"', "not.is.null") in params
    assert not any(value.startswith("gte.") for _key, value in params if isinstance(value, str))


def test_error_object_payload_raises_fetch_error(config_bundle):
    store, _ = _store(config_bundle, payload={"code": "42703", "message": "column does not exist"})

    with pytest.raises(FetchError, match="column does not exist"):
        store.fetch_taxonomy()


def test_injected_client_is_not_closed(config_bundle):
    store, client = _store(config_bundle)
    with store:
        pass
    assert client.closed is False


def test_reach_queries_page_in_a_total_order(config_bundle):
    store, client = _store(config_bundle)

    store.fetch_campaign_events(None, ReachFilters(), offset=1000, limit=1000)
    store.fetch_linear_spots(None, ReachFilters(), offset=1000, limit=1000)

    campaign_params = dict(client.calls[0]["params"])
    linear_params = dict(client.calls[1]["params"])
    assert campaign_params["order"] == '"geo".asc,"id".asc'
    assert linear_params["order"] == '"id".asc'
    assert linear_params["offset"] == 1000


def test_order_tiebreaker_column_comes_from_config(config_bundle):
    tables = {
        **config_bundle.store["tables"],
        "linear_spots": {**config_bundle.store["tables"]["linear_spots"], "order_column": "spot_id"},
    }
    bundle = ConfigBundle(store={**config_bundle.store, "tables": tables}, aggregation=config_bundle.aggregation)
    store, client = _store(bundle)

    store.fetch_linear_spots(None, ReachFilters(), offset=0, limit=10)

    assert dict(client.calls[0]["params"])["order"] == '"spot_id".asc'
