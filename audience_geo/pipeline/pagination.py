"""Strictly sequential range pagination over a capped-page backing store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from audience_geo.common.errors import PipelineError
from audience_geo.common.logging import log_event
from audience_geo.common.models import FetchFailure

PageFetcher = Callable[[int, int], list[dict]]


@dataclass(frozen=True)
class PagedRows:
    rows: list[dict]
    pages_requested: int
    truncated: bool
    failure: FetchFailure | None = None


def fetch_all_pages(
    fetch_page: PageFetcher,
    *,
    page_size: int,
    max_rows: int,
    component: str,
    strict: bool = False,
    logger: logging.Logger | None = None,
) -> PagedRows:
    """Request pages one after another until a short page or the row ceiling.

    With ``strict=False`` a failing page ends the loop and the rows gathered so
    far are returned together with the failure; ``strict=True`` re-raises.
    """
    if page_size <= 0:
        raise ValueError("page_size must be positive")

    rows: list[dict] = []
    pages = 0
    offset = 0
    truncated = False

    while len(rows) < max_rows:
        limit = min(page_size, max_rows - len(rows))
        pages += 1
        started = time.monotonic()
        try:
            page = fetch_page(offset, limit)
        except PipelineError as exc:
            log_event(
                logger,
                f"page request failed after {len(rows)} rows",
                level=logging.WARNING,
                component=component,
                event="PAGE_FAIL",
                status="error",
                page=pages,
                rows_out=len(rows),
                error_code=exc.error_code,
            )
            if strict:
                raise
            return PagedRows(
                rows=rows,
                pages_requested=pages,
                truncated=False,
                failure=FetchFailure(error_code=exc.error_code, message=str(exc), page=pages),
            )

        rows.extend(page)
        offset += len(page)
        log_event(
            logger,
            "page fetched",
            level=logging.DEBUG,
            component=component,
            event="PAGE_OK",
            status="ok",
            page=pages,
            rows_in=len(page),
            rows_out=len(rows),
            duration_ms=int((time.monotonic() - started) * 1000),
        )

        if len(page) < limit:
            break
    else:
        truncated = True
        log_event(
            logger,
            f"row ceiling of {max_rows} reached; result truncated",
            level=logging.WARNING,
            component=component,
            event="ROW_CEILING",
            status="partial",
            page=pages,
            rows_out=len(rows),
        )

    return PagedRows(rows=rows, pages_requested=pages, truncated=truncated)
