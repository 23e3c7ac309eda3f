"""CLI entrypoint for audience mapping and incremental reach reports."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from audience_geo.common.config_loader import ConfigBundle, load_all_configs
from audience_geo.common.constants import (
    COMMANDS,
    EXIT_HARD_FAIL,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
    STATUS_FETCH_FAILED,
    STATUS_NO_DATA,
    STATUS_OK,
    STATUS_PARTIAL,
)
from audience_geo.common.errors import PipelineError
from audience_geo.common.fs import write_json
from audience_geo.common.ids import generate_run_id
from audience_geo.common.logging import build_logger, log_event
from audience_geo.common.models import ReachFilters
from audience_geo.pipeline.controller import AudienceMapController
from audience_geo.pipeline.export import (
    hex_rows,
    reach_record_rows,
    regional_rows,
    segment_rows,
    write_report_csv,
    write_report_json,
)
from audience_geo.pipeline.hex_aggregator import hexagons_to_geojson
from audience_geo.pipeline.reach_overlap import calculate_incremental_reach, reach_hexagons
from audience_geo.pipeline.reach_source import make_date_range
from audience_geo.pipeline.reports import write_run_summary
from audience_geo.pipeline.taxonomy import build_segment_hierarchy, fetch_segment_taxonomy, hierarchy_to_dict
from audience_geo.store.rest_store import RestStore


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("--segment", action="append", default=[], dest="segments")
    parser.add_argument("--resolution", type=int, default=None)
    parser.add_argument("--start", default=None)
    parser.add_argument("--end", default=None)
    parser.add_argument("--organization", default=None)
    parser.add_argument("--advertiser", default=None)
    parser.add_argument("--campaign", default=None)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--config-dir", default="./config")
    parser.add_argument("--overlay-config-dir", default=None)
    parser.add_argument("--data-dir", default="./data")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--strict", action="store_true")
    return parser.parse_args(argv)


def _exit_code(status: str, strict: bool) -> int:
    if status == STATUS_FETCH_FAILED:
        return EXIT_HARD_FAIL
    if status == STATUS_PARTIAL:
        return EXIT_HARD_FAIL if strict else EXIT_PARTIAL
    return EXIT_SUCCESS


def run_segments(store, bundle: ConfigBundle, data_dir: Path, run_id: str) -> tuple[str, Path]:
    segments = fetch_segment_taxonomy(store, bundle.store["tables"]["taxonomy"])
    out_path = data_dir / "out" / "segments.json"
    write_json(
        out_path,
        {"segments": segments, "hierarchy": hierarchy_to_dict(build_segment_hierarchy(segments))},
    )
    status = STATUS_OK if segments else STATUS_NO_DATA
    write_run_summary(
        data_dir,
        command="segments",
        run_id=run_id,
        status=status,
        counts={"segments": len(segments)},
        diagnostics={},
        outputs=[out_path],
    )
    return status, out_path


def run_audience_map(
    store,
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> str:
    controller = AudienceMapController(store, bundle, logger=logger)
    if args.resolution is not None:
        controller.set_resolution(args.resolution)
    state = controller.select_segments(args.segments)

    out_dir = data_dir / "out"
    csv_path = write_report_csv(out_dir / "audience_hexagons.csv", "hexagons", hex_rows(state.aggregation.cells))
    geojson_path = write_report_json(out_dir / "audience_hexagons.geojson", hexagons_to_geojson(state.aggregation.cells))
    rows_path = write_report_csv(out_dir / "segment_rows.csv", "segment_rows", segment_rows(state.fetch.rows))

    warnings = []
    if state.fetch.truncated:
        warnings.append("ROW_CEILING_REACHED")
    if state.aggregation.skipped_sectors:
        warnings.append("UNMAPPED_SECTORS_PRESENT")
    errors = [failure.error_code for failure in (state.fetch.failure, state.geo.failure) if failure is not None]

    write_run_summary(
        data_dir,
        command="audience-map",
        run_id=run_id,
        status=state.status,
        counts={
            "rows": len(state.fetch.rows),
            "pages": state.fetch.pages_requested,
            "cells": len(state.aggregation.cells),
            "skipped_sectors": len(state.aggregation.skipped_sectors),
        },
        diagnostics={
            "fetch": state.fetch.to_dict(),
            "geo": state.geo.to_dict(),
            "aggregation": state.aggregation.to_dict(),
        },
        outputs=[csv_path, geojson_path, rows_path],
        warnings=warnings,
        errors=errors,
    )
    return state.status


def run_incremental_reach(
    store,
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    args: argparse.Namespace,
    logger: logging.Logger,
) -> str:
    date_range = make_date_range(args.start or "", args.end or "") if (args.start or args.end) else None
    filters = ReachFilters(
        organization_id=args.organization,
        advertiser=args.advertiser,
        campaign_id=args.campaign,
    )
    report = calculate_incremental_reach(store, date_range, filters, bundle, logger=logger)
    warnings = []
    if report.truncated:
        warnings.append("ROW_CEILING_REACHED")
    if report.unmatched_locations:
        warnings.append("UNMATCHED_LOCATIONS_PRESENT")
    resolution = args.resolution if args.resolution is not None else bundle.default_resolution

    out_dir = data_dir / "out"
    outputs = [
        write_report_csv(out_dir / "reach_records.csv", "reach_records", reach_record_rows(report.records)),
        write_report_csv(out_dir / "regional_breakdown.csv", "regional_breakdown", regional_rows(report.regional_breakdown)),
        write_report_csv(out_dir / "reach_hexagons.csv", "reach_hexagons", reach_hexagons(report.records, resolution)),
        write_report_json(out_dir / "incremental_reach.json", report.to_dict()),
    ]
    write_run_summary(
        data_dir,
        command="incremental-reach",
        run_id=run_id,
        status=report.status,
        counts={
            "records": len(report.records),
            "regions": len(report.regional_breakdown),
            "unmatched_locations": len(report.unmatched_locations),
        },
        diagnostics={
            "date_range": {"start": date_range.start, "end": date_range.end} if date_range else None,
            "unmatched_locations": list(report.unmatched_locations),
        },
        outputs=outputs,
        warnings=warnings,
        errors=[report.error_code] if report.error_code else [],
    )
    return report.status


def run_command(args: argparse.Namespace, store=None) -> int:
    run_id = args.run_id or generate_run_id()
    data_dir = Path(args.data_dir)
    overlay_config_dir = Path(args.overlay_config_dir) if args.overlay_config_dir else None

    logger = build_logger(run_id, data_dir=data_dir, level=args.log_level)
    bundle = load_all_configs(Path(args.config_dir), overlay_config_dir=overlay_config_dir)

    owns_store = store is None
    store = store or RestStore(bundle)
    log_event(logger, "command start", run_id=run_id, stage=args.command, event="COMMAND_START", status="ok")
    try:
        if args.command == "segments":
            status, _ = run_segments(store, bundle, data_dir, run_id)
        elif args.command == "audience-map":
            status = run_audience_map(store, bundle, data_dir, run_id, args, logger)
        else:
            status = run_incremental_reach(store, bundle, data_dir, run_id, args, logger)
    except PipelineError as exc:
        log_event(
            logger,
            f"command failed: {exc}",
            level=logging.ERROR,
            run_id=run_id,
            stage=args.command,
            event="COMMAND_FAIL",
            status="error",
            error_code=exc.error_code,
        )
        return EXIT_HARD_FAIL
    finally:
        if owns_store:
            store.close()

    log_event(logger, "command end", run_id=run_id, stage=args.command, event="COMMAND_END", status=status)
    return _exit_code(status, args.strict)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    try:
        return run_command(args)
    except PipelineError:
        return EXIT_HARD_FAIL
    except Exception:
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
