"""Application constants."""

USER_AGENT = "audience-geo/0.3 (+reach-analytics)"
COMMANDS = (
    "segments",
    "audience-map",
    "incremental-reach",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20

DEFAULT_PAGE_SIZE = 1000
DEFAULT_MAX_ROWS = 100_000
MIN_HEX_RESOLUTION = 0
MAX_HEX_RESOLUTION = 15

STATUS_OK = "ok"
STATUS_PARTIAL = "partial"
STATUS_NO_DATA = "no_data"
STATUS_FETCH_FAILED = "fetch_failed"

JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "component",
    "event",
    "status",
    "page",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
