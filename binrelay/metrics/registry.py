from prometheus_client import Counter, Histogram

CAPTURED_CHANGES_TOTAL = Counter(
    "binrelay_captured_changes_total",
    "Row mutations normalized and queued",
    ["table", "action"],
)

DROPPED_CHANGES_TOTAL = Counter(
    "binrelay_dropped_changes_total",
    "Row mutations dropped before reaching a queue",
    ["table", "reason"],
)

QUEUE_APPEND_TOTAL = Counter(
    "binrelay_queue_append_total",
    "Task queue appends",
    ["status"],
)

QUEUE_DRAIN_TOTAL = Counter(
    "binrelay_queue_drain_total",
    "Task queue drains",
    ["status"],
)

QUEUE_DRAIN_BYTES = Histogram(
    "binrelay_queue_drain_bytes",
    "Size of drained task queue payloads",
    buckets=(0, 256, 1024, 8192, 65536, 524288, 4194304, 33554432),
)

POSITION_CHECKPOINTS_TOTAL = Counter(
    "binrelay_position_checkpoints_total",
    "Resume positions persisted",
)

REPLAY_APPLY_TOTAL = Counter(
    "binrelay_replay_apply_total",
    "Change records applied to the target database",
    ["table", "action", "status"],
)

REPLAY_APPLY_LATENCY_SECONDS = Histogram(
    "binrelay_replay_apply_latency_seconds",
    "Latency of applying one change record",
    ["table", "action"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

REPLAY_POLL_TOTAL = Counter(
    "binrelay_replay_poll_total",
    "Delivery endpoint polls",
    ["status"],
)
