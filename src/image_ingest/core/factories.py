"""Factory classes for creating configured service instances."""

from typing import Any, Optional

import boto3
from botocore.config import Config

from .catalog import PostgresCatalogGateway
from .exceptions import ConfigurationError
from .models import IngestionSettings
from .observability import StructuredLogger
from .pipeline import IngestionPipeline
from .protocols import (
    CatalogGateway,
    LoggerProtocol,
    RekognitionClientProtocol,
    S3ClientProtocol,
)
from .services import (
    ExifMetadataExtractor,
    PillowRenditionGenerator,
    RekognitionSafetyClassifier,
    S3StorageGateway,
)


class LoggerFactory:
    """Factory for creating logger instances."""

    @staticmethod
    def create_logger(name: str, level: Optional[str] = None) -> LoggerProtocol:
        """Create a configured structured logger."""
        return StructuredLogger(name, level=level)


class AWSClientFactory:
    """Factory for boto3 clients with bounded timeouts."""

    @staticmethod
    def client_config(settings: IngestionSettings) -> Config:
        return Config(
            connect_timeout=settings.storage_connect_timeout,
            read_timeout=settings.storage_read_timeout,
            retries={"max_attempts": settings.storage_max_attempts, "mode": "standard"},
        )

    @classmethod
    def create_s3_client(cls, settings: IngestionSettings, **kwargs: Any) -> S3ClientProtocol:
        """Create S3 client with optional configuration."""
        session = boto3.Session(region_name=settings.aws_region)
        return session.client("s3", config=cls.client_config(settings), **kwargs)  # type: ignore

    @classmethod
    def create_rekognition_client(
        cls, settings: IngestionSettings, **kwargs: Any
    ) -> RekognitionClientProtocol:
        session = boto3.Session(region_name=settings.aws_region)
        return session.client("rekognition", config=cls.client_config(settings), **kwargs)  # type: ignore


class CatalogFactory:
    """Factory for the catalog gateway."""

    @staticmethod
    def create_catalog(
        settings: IngestionSettings, logger: LoggerProtocol
    ) -> PostgresCatalogGateway:
        if not settings.database_url:
            raise ConfigurationError("DATABASE_URL must be set to reach the catalog")
        return PostgresCatalogGateway(
            settings.database_url,
            logger,
            max_connections=max(2, settings.rendition_concurrency),
            connect_timeout=settings.database_connect_timeout,
            statement_timeout_ms=settings.database_statement_timeout_ms,
        )


class IngestionPipelineFactory:
    """Factory for creating the complete ingestion pipeline."""

    @staticmethod
    def create_pipeline(
        settings: Optional[IngestionSettings] = None,
        s3_client: Optional[S3ClientProtocol] = None,
        rekognition_client: Optional[RekognitionClientProtocol] = None,
        catalog: Optional[CatalogGateway] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> IngestionPipeline:
        """Create a fully configured pipeline; any client can be injected."""
        if settings is None:
            settings = IngestionSettings.from_env()

        if logger is None:
            logger = LoggerFactory.create_logger("image_ingest")

        if s3_client is None:
            s3_client = AWSClientFactory.create_s3_client(settings)

        if rekognition_client is None:
            rekognition_client = AWSClientFactory.create_rekognition_client(settings)

        if catalog is None:
            catalog = CatalogFactory.create_catalog(settings, logger)

        return IngestionPipeline(
            storage=S3StorageGateway(s3_client, logger),
            catalog=catalog,
            metadata_extractor=ExifMetadataExtractor(logger),
            classifier=RekognitionSafetyClassifier(
                rekognition_client, logger, settings.moderation_min_confidence
            ),
            rendition_generator=PillowRenditionGenerator(quality=settings.rendition_quality),
            settings=settings,
            logger=logger,
        )
