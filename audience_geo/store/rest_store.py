"""Read-only access to the hosted Postgres REST surface (PostgREST / Supabase)."""

from __future__ import annotations

from typing import Any, Iterable

from audience_geo.common.config_loader import ConfigBundle
from audience_geo.common.errors import FetchError
from audience_geo.common.http import HttpClient, TimeoutConfig
from audience_geo.common.models import DateRange, ReachFilters


def quote_ident(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def quote_value(value: object) -> str:
    text = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{text}"'


def positive_any_filter(columns: Iterable[str]) -> str:
    """PostgREST ``or`` expression matching rows where any column is > 0."""
    return "(" + ",".join(f"{quote_ident(column)}.gt.0" for column in columns) + ")"


def in_filter(values: Iterable[object]) -> str:
    return "in.(" + ",".join(quote_value(value) for value in values) + ")"


class RestStore:
    def __init__(
        self,
        config: ConfigBundle,
        *,
        http_client: HttpClient | None = None,
        api_key: str | None = None,
    ) -> None:
        self.config = config
        self.tables = config.store["tables"]
        self.base_url = config.store["rest"]["base_url"].rstrip("/")
        self.api_key = api_key if api_key is not None else config.api_key()
        self.timeout: TimeoutConfig = config.timeout()
        self._owns_client = http_client is None
        self.client = http_client or HttpClient(
            timeout=self.timeout,
            retry=config.retry(),
            rate_per_sec=float(config.store["http"]["rate_per_sec"]),
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "RestStore":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"apikey": self.api_key, "Authorization": f"Bearer {self.api_key}"}

    def _select(self, table: str, params: list[tuple[str, Any]]) -> list[dict]:
        payload = self.client.get_json(
            f"{self.base_url}/{table}",
            params=params,
            headers=self._headers(),
            timeout=self.timeout,
        )
        if isinstance(payload, dict):
            # PostgREST reports query errors as an object with code/message.
            raise FetchError(f"Query against {table} failed: {payload.get('message') or payload}")
        if not isinstance(payload, list):
            raise FetchError(f"Unexpected payload type from {table}: {type(payload).__name__}")
        return payload

    def fetch_segment_rows(self, segment_ids: list[str], *, offset: int, limit: int) -> list[dict]:
        table = self.tables["segment_metrics"]
        sector_column = table["sector_column"]
        select = ",".join(quote_ident(column) for column in [sector_column, *segment_ids])
        params = [
            ("select", select),
            ("or", positive_any_filter(segment_ids)),
            ("order", f"{quote_ident(sector_column)}.asc"),
            ("offset", offset),
            ("limit", limit),
        ]
        return self._select(table["name"], params)

    def _geo_select(self) -> str:
        table = self.tables["geo_lookup"]
        columns = [
            table["district_column"],
            table["lat_column"],
            table["lon_column"],
            table["region_column"],
            table["town_column"],
        ]
        return ",".join(quote_ident(column) for column in columns)

    def fetch_district_coordinates(self, district_ids: list[str]) -> list[dict]:
        if not district_ids:
            return []
        table = self.tables["geo_lookup"]
        params = [
            ("select", self._geo_select()),
            (quote_ident(table["district_column"]), in_filter(district_ids)),
        ]
        return self._select(table["name"], params)

    def fetch_town_coordinates(self, towns: list[str]) -> list[dict]:
        if not towns:
            return []
        table = self.tables["geo_lookup"]
        params = [
            ("select", self._geo_select()),
            (quote_ident(table["town_column"]), in_filter(towns)),
        ]
        return self._select(table["name"], params)

    def fetch_taxonomy(self) -> list[dict]:
        table = self.tables["taxonomy"]
        columns = [table["id_column"], table["name_column"], table["path_column"]]
        params = [
            ("select", ",".join(quote_ident(column) for column in columns)),
            (quote_ident(table["id_column"]), "not.is.null"),
            ("order", f"{quote_ident(table['name_column'])}.asc"),
        ]
        return self._select(table["name"], params)

    def fetch_campaign_events(
        self,
        date_range: DateRange | None,
        filters: ReachFilters,
        *,
        offset: int,
        limit: int,
    ) -> list[dict]:
        table = self.tables["campaign_events"]
        geo = table["geo_column"]
        columns = [geo, table["event_type_column"], table["date_column"], table["campaign_column"]]
        params: list[tuple[str, Any]] = [
            ("select", ",".join(quote_ident(column) for column in columns)),
            (quote_ident(geo), "not.is.null"),
            (quote_ident(geo), "neq."),
        ]
        if filters.organization_id:
            params.append((quote_ident(table["organization_column"]), f"eq.{filters.organization_id}"))
        if filters.campaign_id:
            params.append((quote_ident(table["campaign_column"]), f"eq.{filters.campaign_id}"))
        if date_range is not None:
            params.append((quote_ident(table["date_column"]), f"gte.{date_range.start}"))
            params.append((quote_ident(table["date_column"]), f"lte.{date_range.end}"))
        order = f"{quote_ident(geo)}.asc,{quote_ident(table['order_column'])}.asc"
        params.extend([("order", order), ("offset", offset), ("limit", limit)])
        return self._select(table["name"], params)

    def fetch_linear_spots(
        self,
        date_range: DateRange | None,
        filters: ReachFilters,
        *,
        offset: int,
        limit: int,
    ) -> list[dict]:
        table = self.tables["linear_spots"]
        columns = [
            table["postcode_column"],
            table["city_column"],
            table["duration_column"],
            table["advertiser_column"],
        ]
        params: list[tuple[str, Any]] = [
            ("select", ",".join(quote_ident(column) for column in columns)),
            (quote_ident(table["city_column"]), "not.is.null"),
        ]
        if filters.advertiser:
            params.append((quote_ident(table["advertiser_column"]), f"eq.{filters.advertiser}"))
        date_column = table.get("date_column")
        if date_range is not None and date_column:
            params.append((quote_ident(date_column), f"gte.{date_range.start}"))
            params.append((quote_ident(date_column), f"lte.{date_range.end}"))
        params.extend(
            [
                ("order", f"{quote_ident(table['order_column'])}.asc"),
                ("offset", offset),
                ("limit", limit),
            ]
        )
        return self._select(table["name"], params)
