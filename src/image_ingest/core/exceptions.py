"""Exception taxonomy for the image ingestion service."""

from __future__ import annotations

from typing import Dict, Mapping


class ImageIngestError(Exception):
    """Base exception for all image ingestion errors."""


class ConfigurationError(ImageIngestError):
    """Error raised for invalid configuration options."""


class ValidationError(ImageIngestError):
    """Malformed trigger input (missing bucket or object path)."""


class NotFoundError(ImageIngestError):
    """A referenced entity does not exist."""


class TransientIOError(ImageIngestError):
    """Network or service failure that is safe to retry at the trigger layer."""


class StorageError(ImageIngestError):
    """Error raised for object storage failures."""


class ObjectNotFoundError(StorageError, NotFoundError):
    """The requested object does not exist in the bucket."""

    def __init__(self, bucket: str, key: str):
        super().__init__(f"Object s3://{bucket}/{key} does not exist")
        self.bucket = bucket
        self.key = key


class TransientStorageError(StorageError, TransientIOError):
    """Throttled, timed out or unreachable object storage."""


class TransferError(StorageError):
    """The source object could not be fetched to the local working area."""


class CatalogError(ImageIngestError):
    """Error raised by the catalog datastore."""


class CatalogUnavailableError(CatalogError, TransientIOError):
    """The catalog datastore could not be reached or timed out."""


class MetadataExtractionError(ImageIngestError):
    """Metadata could not be extracted from the source image."""


class ClassificationError(ImageIngestError):
    """The moderation classifier failed to return a verdict."""


class RenditionError(ImageIngestError):
    """Error raised when generating or storing a rendition fails."""


class PartialFailureError(RenditionError):
    """One or more rendition tasks failed while others may have succeeded."""

    def __init__(
        self,
        failures: Mapping[int, BaseException],
        succeeded: Mapping[int, str] | None = None,
    ):
        self.failures: Dict[int, BaseException] = dict(failures)
        self.succeeded: Dict[int, str] = dict(succeeded or {})
        widths = ", ".join(str(w) for w in sorted(self.failures))
        super().__init__(
            f"{len(self.failures)} rendition(s) failed (widths: {widths}); "
            f"{len(self.succeeded)} succeeded"
        )
