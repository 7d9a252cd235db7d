"""Prometheus metrics for the retention engine.

Exposed by the ``/metrics`` endpoint of the API process. Worker processes
update the same names; scrape them through the Celery exporter of your choice.
"""

from prometheus_client import Counter, Histogram

# Record processing metrics
records_processed_total = Counter(
    "autodelete_records_processed_total",
    "Total number of records processed by cleanup runs",
    ["status"]  # status: success|warning|error|skipped
)

# File deletion metrics
files_deleted_total = Counter(
    "autodelete_files_deleted_total",
    "Total number of attached files physically deleted"
)

file_errors_total = Counter(
    "autodelete_file_errors_total",
    "Total number of file references that could not be deleted"
)

# Run metrics
runs_total = Counter(
    "autodelete_runs_total",
    "Total cleanup runs by trigger and terminal status",
    ["trigger", "status"]  # trigger: scheduled|manual
)

run_duration_seconds = Histogram(
    "autodelete_run_duration_seconds",
    "Wall-clock duration of one cleanup invocation in seconds",
    ["trigger"],
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0]
)
