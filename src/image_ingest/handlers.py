"""Storage-event entry point (AWS Lambda)."""

from functools import lru_cache
from typing import Any, Dict

from .core.exceptions import ImageIngestError, ValidationError
from .core.factories import IngestionPipelineFactory
from .core.logging_config import get_logger
from .core.pipeline import IngestionPipeline
from .triggers import outcome_response, requests_from_payload, validation_response

logger = get_logger("image_ingest.handlers")


@lru_cache(maxsize=1)
def default_pipeline() -> IngestionPipeline:
    """Pipeline built once per process from the environment."""
    return IngestionPipelineFactory.create_pipeline()


def handle_event(event: Any, pipeline: IngestionPipeline) -> Dict[str, Any]:
    """Run the pipeline for every record of a storage event."""
    try:
        ingestion_requests = requests_from_payload(event)
    except ValidationError as e:
        status_code, message = validation_response(e)
        logger.warning(message)
        return {"statusCode": status_code, "results": [{"message": message}]}

    status_code, results = 200, []
    for ingestion_request in ingestion_requests:
        outcome = pipeline.run(ingestion_request)
        code, message = outcome_response(outcome)
        status_code = max(status_code, code)
        results.append(
            {
                "bucket": ingestion_request.source_bucket,
                "key": ingestion_request.object_path,
                "outcome": outcome.kind.value,
                "message": message,
            }
        )
    return {"statusCode": status_code, "results": results}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda entry point for S3 event notifications.

    A failed invocation raises so the event source redelivers it; every step
    before the final commit is idempotent or self-cleaning.
    """
    response = handle_event(event, default_pipeline())
    if response["statusCode"] >= 500:
        raise ImageIngestError(f"Ingestion failed: {response['results']}")
    return response
