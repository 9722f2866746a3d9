from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Query, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..errors import ConfigurationError, QueueStoreError
from ..models import TaskIdentity
from ..queue.base import TaskQueueStore

logger = logging.getLogger(__name__)

PAYLOAD_MEDIA_TYPE = "application/x-ndjson"


def get_store(request: Request) -> TaskQueueStore:
    return request.app.state.store


def create_app(store: TaskQueueStore) -> FastAPI:
    """
    Build the delivery endpoint around a task queue store.

    Route handlers are plain functions, so FastAPI runs each request on a
    worker thread; concurrent drains of different tasks do not share a lock.
    """
    app = FastAPI(title="binrelay delivery")
    app.state.store = store

    @app.get("/consume")
    def consume(
        request: Request,
        account: str = Query(..., description="Task account"),
        db: str = Query(..., description="Source database"),
        table: str = Query(..., description="Source table"),
    ) -> Response:
        """Drain the task's queue and return its records, one JSON object per line."""
        try:
            task = TaskIdentity(account=account, database=db, table=table)
        except ConfigurationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        try:
            data = get_store(request).drain_and_reset(task)
        except QueueStoreError as exc:
            logger.error("Drain of %s failed: %s", task, exc)
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        if data:
            logger.info("Delivered %d bytes to %s", len(data), task)
        return Response(content=data, media_type=PAYLOAD_MEDIA_TYPE)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
