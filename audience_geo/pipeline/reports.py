"""Run summary reports."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from audience_geo.common.constants import STATUS_FETCH_FAILED, STATUS_NO_DATA, STATUS_OK, STATUS_PARTIAL
from audience_geo.common.fs import write_json


def status_to_run_status(status: str) -> str:
    if status == STATUS_FETCH_FAILED:
        return "error"
    if status == STATUS_PARTIAL:
        return "partial"
    if status in (STATUS_OK, STATUS_NO_DATA):
        return "success"
    return "error"


def write_run_summary(
    data_dir: Path,
    *,
    command: str,
    run_id: str,
    status: str,
    counts: dict[str, int],
    diagnostics: dict[str, Any],
    outputs: list[Path],
    warnings: list[str] | None = None,
    errors: list[str] | None = None,
) -> Path:
    summary_path = data_dir / "out" / "reports" / f"{command}_summary.json"
    payload = {
        "command": command,
        "run_id": run_id,
        "status": status,
        "run_status": status_to_run_status(status),
        "counts": counts,
        "warning_count": len(warnings or []),
        "error_count": len(errors or []),
        "warnings": warnings or [],
        "errors": errors or [],
        "outputs": [str(path) for path in outputs],
        "diagnostics": diagnostics,
    }
    write_json(summary_path, payload)
    return summary_path
