"""Shared data models for the image ingestion service."""

import os
from enum import Enum, IntEnum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import ConfigurationError, ValidationError
from .image_utils import parse_widths


class RecordStatus(str, Enum):
    """Processing status of a catalog record."""

    PENDING = "pending"
    PROCESSING = "processing"
    READY = "ready"
    REJECTED = "rejected"


class Likelihood(IntEnum):
    """Ordinal likelihood reported by the moderation classifier."""

    UNKNOWN = 0
    VERY_UNLIKELY = 1
    UNLIKELY = 2
    POSSIBLE = 3
    LIKELY = 4
    VERY_LIKELY = 5

    @classmethod
    def parse(cls, value: Any) -> "Likelihood":
        """Parse ``"very-likely"``, ``"VERY_LIKELY"``, ``5`` or a Likelihood."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int):
            return cls(value)
        name = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown likelihood: {value!r}") from None


DEFAULT_UNSAFE_CATEGORIES: Tuple[str, ...] = ("adult", "violence", "racy")


class IngestionRequest(BaseModel):
    """One uploaded object to ingest."""

    model_config = ConfigDict(frozen=True)

    source_bucket: str
    object_path: str

    @classmethod
    def create(cls, source_bucket: Any, object_path: Any) -> "IngestionRequest":
        """Build a request from untrusted trigger input."""
        if not isinstance(source_bucket, str) or not source_bucket.strip():
            raise ValidationError("Missing bucket in trigger payload")
        if not isinstance(object_path, str) or not object_path.strip():
            raise ValidationError("Missing object name in trigger payload")
        return cls(source_bucket=source_bucket.strip(), object_path=object_path)


class CatalogRecord(BaseModel):
    """One logical image tracked by the catalog."""

    id: str
    storage_path: str
    status: RecordStatus = RecordStatus.PENDING
    metadata: Optional[Dict[str, Any]] = None
    renditions: Dict[int, str] = Field(default_factory=dict)
    width: Optional[int] = None
    height: Optional[int] = None
    checksum: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)

    @field_validator("renditions", mode="before")
    @classmethod
    def _coerce_renditions(cls, value: Any) -> Dict[int, str]:
        if value is None:
            return {}
        return {int(width): path for width, path in dict(value).items()}


class SafetyVerdict(BaseModel):
    """Per-category likelihoods returned by the moderation classifier."""

    adult: Likelihood = Likelihood.UNKNOWN
    violence: Likelihood = Likelihood.UNKNOWN
    racy: Likelihood = Likelihood.UNKNOWN
    medical: Likelihood = Likelihood.UNKNOWN
    spoof: Likelihood = Likelihood.UNKNOWN

    @field_validator("*", mode="before")
    @classmethod
    def _parse_likelihood(cls, value: Any) -> Likelihood:
        return Likelihood.parse(value)

    def flagged_categories(
        self,
        threshold: Likelihood = Likelihood.LIKELY,
        categories: Sequence[str] = DEFAULT_UNSAFE_CATEGORIES,
    ) -> List[str]:
        return [name for name in categories if getattr(self, name) >= threshold]

    def is_unsafe(
        self,
        threshold: Likelihood = Likelihood.LIKELY,
        categories: Sequence[str] = DEFAULT_UNSAFE_CATEGORIES,
    ) -> bool:
        return bool(self.flagged_categories(threshold, categories))


class RenditionTask(BaseModel):
    """A single resize job for one target width."""

    model_config = ConfigDict(frozen=True)

    target_width: int


class RenditionResult(BaseModel):
    """A rendition that was generated and uploaded."""

    target_width: int
    storage_path: str


class PipelineStage(str, Enum):
    """States of one pipeline invocation."""

    STARTED = "started"
    DOWNLOADED = "downloaded"
    RECORD_LOCATED = "record_located"
    STATUS_MARKED = "status_marked"
    METADATA_EXTRACTED = "metadata_extracted"
    CLASSIFICATION_PASSED = "classification_passed"
    RENDITIONS_COMPLETE = "renditions_complete"
    CATALOG_COMMITTED = "catalog_committed"
    ORIGINAL_RELOCATED = "original_relocated"


class OutcomeKind(str, Enum):
    """Terminal outcome categories."""

    PROCESSED = "processed"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class PipelineOutcome(BaseModel):
    """Terminal result of one pipeline invocation."""

    kind: OutcomeKind
    request: IngestionRequest
    stage: PipelineStage = PipelineStage.STARTED
    record: Optional[CatalogRecord] = None
    reason: str = ""
    relocated: bool = False

    @classmethod
    def processed(
        cls, request: IngestionRequest, record: CatalogRecord, relocated: bool
    ) -> "PipelineOutcome":
        stage = (
            PipelineStage.ORIGINAL_RELOCATED
            if relocated
            else PipelineStage.CATALOG_COMMITTED
        )
        return cls(
            kind=OutcomeKind.PROCESSED,
            request=request,
            record=record,
            stage=stage,
            relocated=relocated,
        )

    @classmethod
    def rejected(
        cls, request: IngestionRequest, stage: PipelineStage, reason: str = ""
    ) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.REJECTED, request=request, stage=stage, reason=reason)

    @classmethod
    def not_found(
        cls, request: IngestionRequest, stage: PipelineStage, reason: str = ""
    ) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.NOT_FOUND, request=request, stage=stage, reason=reason)

    @classmethod
    def failed(
        cls, request: IngestionRequest, stage: PipelineStage, reason: str
    ) -> "PipelineOutcome":
        return cls(kind=OutcomeKind.FAILED, request=request, stage=stage, reason=reason)


class IngestionSettings(BaseModel):
    """Configuration for the ingestion pipeline and its clients."""

    processed_bucket: str
    resize_widths: List[int] = Field(default_factory=lambda: [200, 400, 600, 1200])
    unsafe_threshold: Likelihood = Likelihood.LIKELY
    unsafe_categories: Tuple[str, ...] = DEFAULT_UNSAFE_CATEGORIES
    archive_prefix: str = "original-"
    rendition_quality: int = Field(default=90, ge=1, le=100)
    rendition_concurrency: int = Field(default=8, ge=1)
    rendition_timeout_seconds: float = Field(default=120.0, gt=0)
    storage_connect_timeout: float = Field(default=5.0, gt=0)
    storage_read_timeout: float = Field(default=60.0, gt=0)
    storage_max_attempts: int = Field(default=3, ge=1)
    database_url: Optional[str] = None
    database_connect_timeout: int = Field(default=10, ge=1)
    database_statement_timeout_ms: int = Field(default=15000, ge=0)
    moderation_min_confidence: float = Field(default=20.0, ge=0, le=100)
    aws_region: Optional[str] = None

    @field_validator("resize_widths", mode="before")
    @classmethod
    def _parse_widths(cls, value: Any) -> List[int]:
        return parse_widths(value)

    @field_validator("unsafe_threshold", mode="before")
    @classmethod
    def _parse_threshold(cls, value: Any) -> Likelihood:
        return Likelihood.parse(value)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "IngestionSettings":
        """Build settings from environment variables."""
        env = os.environ if environ is None else environ
        bucket = env.get("PROCESSED_BUCKET_NAME", "").strip()
        if not bucket:
            raise ConfigurationError("PROCESSED_BUCKET_NAME must be set")

        env_map = {
            "resize_widths": "RESIZE_DIMENSIONS",
            "unsafe_threshold": "UNSAFE_LIKELIHOOD_THRESHOLD",
            "archive_prefix": "ARCHIVE_PREFIX",
            "rendition_quality": "RENDITION_QUALITY",
            "rendition_concurrency": "RENDITION_CONCURRENCY",
            "rendition_timeout_seconds": "RENDITION_TIMEOUT_SECONDS",
            "storage_connect_timeout": "STORAGE_CONNECT_TIMEOUT",
            "storage_read_timeout": "STORAGE_READ_TIMEOUT",
            "storage_max_attempts": "STORAGE_MAX_ATTEMPTS",
            "database_url": "DATABASE_URL",
            "database_connect_timeout": "DATABASE_CONNECT_TIMEOUT",
            "database_statement_timeout_ms": "DATABASE_STATEMENT_TIMEOUT_MS",
            "moderation_min_confidence": "MODERATION_MIN_CONFIDENCE",
            "aws_region": "AWS_REGION",
        }
        values: Dict[str, Any] = {"processed_bucket": bucket}
        for field_name, var in env_map.items():
            raw = env.get(var)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()

        try:
            return cls(**values)
        except ValueError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc
