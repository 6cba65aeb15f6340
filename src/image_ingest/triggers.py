"""Mapping between inbound triggers, ingestion requests and responses."""

from typing import Any, List, Mapping, Tuple
from urllib.parse import unquote_plus

from .core.exceptions import ValidationError
from .core.models import IngestionRequest, OutcomeKind, PipelineOutcome


def requests_from_payload(payload: Any) -> List[IngestionRequest]:
    """
    Build ingestion requests from a trigger payload.

    Accepted shapes:

    * JSON callback body: ``{"bucket": ..., "name": ...}``
    * S3 event notification: ``{"Records": [{"s3": {"bucket": {"name": ...},
      "object": {"key": ...}}}]}`` (keys are URL-encoded by S3)

    Raises:
        ValidationError: If the payload is not an object or a field is missing
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Trigger payload must be a JSON object")

    if "Records" in payload:
        records = payload["Records"]
        if not isinstance(records, list) or not records:
            raise ValidationError("Storage event contains no records")
        requests = []
        for record in records:
            s3 = record.get("s3") if isinstance(record, Mapping) else None
            if not isinstance(s3, Mapping):
                raise ValidationError("Storage event record has no s3 section")
            bucket_info, object_info = s3.get("bucket"), s3.get("object")
            if not isinstance(bucket_info, Mapping) or not isinstance(object_info, Mapping):
                raise ValidationError("Storage event record is missing bucket or object")
            bucket = bucket_info.get("name")
            key = object_info.get("key")
            requests.append(
                IngestionRequest.create(bucket, unquote_plus(key) if isinstance(key, str) else key)
            )
        return requests

    return [IngestionRequest.create(payload.get("bucket"), payload.get("name"))]


def outcome_response(outcome: PipelineOutcome) -> Tuple[int, str]:
    """Coarse status code and message for a pipeline outcome."""
    name = outcome.request.object_path
    if outcome.kind is OutcomeKind.PROCESSED:
        return 200, f"Successfully processed {name}."
    if outcome.kind is OutcomeKind.REJECTED:
        return 200, f"Unsafe image {name} deleted."
    if outcome.kind is OutcomeKind.NOT_FOUND:
        return 404, f"No catalog record for {name}."
    return 500, f"Error processing {name}."


def validation_response(error: ValidationError) -> Tuple[int, str]:
    return 400, f"Invalid trigger payload: {error}"
