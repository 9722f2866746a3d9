from ..metrics.registry import (
    REPLAY_APPLY_LATENCY_SECONDS,
    REPLAY_APPLY_TOTAL,
    REPLAY_POLL_TOTAL,
)


def observe_apply(table: str, action: str, status: str, latency_s: float | None = None) -> None:
    REPLAY_APPLY_TOTAL.labels(table=table, action=action, status=status).inc()
    if latency_s is not None:
        REPLAY_APPLY_LATENCY_SECONDS.labels(table=table, action=action).observe(latency_s)


def observe_poll(status: str) -> None:
    REPLAY_POLL_TOTAL.labels(status=status).inc()
