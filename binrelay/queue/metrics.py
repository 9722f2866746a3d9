from ..metrics.registry import QUEUE_APPEND_TOTAL, QUEUE_DRAIN_BYTES, QUEUE_DRAIN_TOTAL


def observe_append(status: str) -> None:
    QUEUE_APPEND_TOTAL.labels(status=status).inc()


def observe_drain(status: str, size: int = 0) -> None:
    QUEUE_DRAIN_TOTAL.labels(status=status).inc()
    if status == "success":
        QUEUE_DRAIN_BYTES.observe(size)
