"""Protocol definitions for dependency injection and testability."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from .models import CatalogRecord, SafetyVerdict


class S3ClientProtocol(Protocol):
    """Protocol for the S3 client operations the service uses."""

    def get_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Get object from S3."""
        ...

    def put_object(
        self, Bucket: str, Key: str, Body: bytes, ContentType: str
    ) -> Dict[str, Any]:
        """Put object to S3."""
        ...

    def copy_object(
        self, Bucket: str, Key: str, CopySource: Dict[str, str]
    ) -> Dict[str, Any]:
        """Server-side copy of an object."""
        ...

    def delete_object(self, Bucket: str, Key: str) -> Dict[str, Any]:
        """Delete object from S3."""
        ...


class RekognitionClientProtocol(Protocol):
    """Protocol for the moderation API of the Rekognition client."""

    def detect_moderation_labels(self, **kwargs: Any) -> Dict[str, Any]:
        """Detect unsafe content labels."""
        ...


class LoggerProtocol(Protocol):
    """Protocol for logging operations."""

    def debug(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, context: Any = None, **kwargs: Any) -> None:
        """Log error message."""
        ...


class StorageGateway(ABC):
    """Object storage keyed by bucket and path."""

    @abstractmethod
    def download(self, bucket: str, key: str, destination: Path) -> Path:
        """Fetch an object to a local file. Raises ObjectNotFoundError if absent."""
        ...

    @abstractmethod
    def upload(self, bucket: str, key: str, data: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    def move(self, bucket: str, key: str, dest_bucket: str, dest_key: str) -> None:
        ...

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        ...


class CatalogGateway(ABC):
    """Catalog datastore tracking one record per logical image."""

    @abstractmethod
    def find_by_path(self, path: str) -> List[CatalogRecord]:
        """All records for a canonical path, in insertion order."""
        ...

    def find_by_checksum(self, checksum: str) -> List[CatalogRecord]:
        """Records matching the SHA-256 of the original bytes."""
        return []

    @abstractmethod
    def mark_processing(self, record_id: str) -> None:
        """Best-effort status write; implementations log and never raise."""
        ...

    @abstractmethod
    def mark_rejected(self, record_id: str) -> None:
        """Best-effort terminal write after a moderation rejection."""
        ...

    @abstractmethod
    def commit_results(
        self,
        record_id: str,
        metadata: Mapping[str, Any],
        renditions: Mapping[int, str],
        width: int,
        height: int,
    ) -> None:
        """Atomically store results and set status ``ready``. Idempotent."""
        ...


class MetadataExtractor(ABC):
    """Extracts a metadata mapping from a local file."""

    @abstractmethod
    def extract(self, path: Path) -> Dict[str, Any]:
        ...


class SafetyClassifier(ABC):
    """Moderation classifier returning per-category likelihoods."""

    @abstractmethod
    def classify(
        self,
        image_bytes: bytes,
        bucket: Optional[str] = None,
        key: Optional[str] = None,
    ) -> SafetyVerdict:
        ...


class RenditionGenerator(ABC):
    """Pure codec: source bytes plus target width gives encoded bytes."""

    extension: str = "webp"
    content_type: str = "image/webp"

    @abstractmethod
    def measure(self, image_bytes: bytes) -> Tuple[int, int]:
        """Return (width, height) of the source image."""
        ...

    @abstractmethod
    def render(self, image_bytes: bytes, width: int) -> bytes:
        ...
