"""Prometheus metrics for scorecard imports."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

IMPORT_ROWS = Counter(
    "scorecard_import_rows_total",
    "Scorecard import rows processed",
    ["scale", "status"],  # status: success or the failing row's error code
)

IMPORT_BATCH_SECONDS = Histogram(
    "scorecard_import_batch_seconds",
    "Time to process one scorecard import batch",
    ["scale"],
)

IMPORT_PARTITION_ROWS = Histogram(
    "scorecard_import_partition_rows",
    "Rows merged sequentially for one agent/month/year key",
    buckets=(1, 2, 5, 10, 20, 31, 62, 124),
)
