"""Core utilities and shared components for the image ingestion service."""

from .image_utils import (
    archive_key,
    extract_exif_data,
    parse_widths,
    rendition_key,
    select_widths,
    strip_binary_fields,
)
from .logging_config import get_logger, setup_logger
from .exceptions import (
    ImageIngestError,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    StorageError,
    ObjectNotFoundError,
    TransferError,
    TransientIOError,
    CatalogError,
    PartialFailureError,
)
from .models import (
    CatalogRecord,
    IngestionRequest,
    IngestionSettings,
    Likelihood,
    OutcomeKind,
    PipelineOutcome,
    RecordStatus,
    SafetyVerdict,
)

__all__ = [
    "CatalogRecord",
    "IngestionRequest",
    "IngestionSettings",
    "Likelihood",
    "OutcomeKind",
    "PipelineOutcome",
    "RecordStatus",
    "SafetyVerdict",
    "archive_key",
    "extract_exif_data",
    "parse_widths",
    "rendition_key",
    "select_widths",
    "strip_binary_fields",
    "setup_logger",
    "get_logger",
    "ImageIngestError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "StorageError",
    "ObjectNotFoundError",
    "TransferError",
    "TransientIOError",
    "CatalogError",
    "PartialFailureError",
]
