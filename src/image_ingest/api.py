"""HTTP entry point for the ingestion pipeline."""

import json
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from .core.exceptions import ValidationError
from .core.factories import IngestionPipelineFactory
from .core.pipeline import IngestionPipeline
from .triggers import outcome_response, requests_from_payload, validation_response


def create_app(pipeline: Optional[IngestionPipeline] = None) -> FastAPI:
    """
    Build the FastAPI application.

    ``POST /`` accepts either a ``{"bucket", "name"}`` callback body or an S3
    event notification. When no pipeline is given one is built from the
    environment.
    """
    if pipeline is None:
        pipeline = IngestionPipelineFactory.create_pipeline()

    app = FastAPI(title="Image Ingest", version="0.1.0")
    app.state.pipeline = pipeline

    @app.get("/healthz")
    async def healthz() -> dict:
        return {"status": "ok"}

    @app.post("/", response_class=PlainTextResponse)
    async def ingest(request: Request) -> PlainTextResponse:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return PlainTextResponse("Request body must be JSON.", status_code=400)

        try:
            ingestion_requests = requests_from_payload(payload)
        except ValidationError as e:
            status_code, message = validation_response(e)
            return PlainTextResponse(message, status_code=status_code)

        status_code, messages = 200, []
        for ingestion_request in ingestion_requests:
            # Each invocation blocks on I/O and CPU; keep the event loop free.
            outcome = await run_in_threadpool(app.state.pipeline.run, ingestion_request)
            code, message = outcome_response(outcome)
            status_code = max(status_code, code)
            messages.append(message)
        return PlainTextResponse("\n".join(messages), status_code=status_code)

    return app
