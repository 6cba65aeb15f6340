"""Testing utilities and fakes for the image ingestion service."""

from .fakes import (
    FakeS3Client,
    FakeRekognitionClient,
    FakeLogger,
    FakeRenditionGenerator,
    FakeSafetyClassifier,
    InMemoryCatalog,
    S3Object,
    S3Bucket,
    PROCESSED_BUCKET,
    SOURCE_BUCKET,
    build_test_pipeline,
    create_test_image,
    setup_test_s3_environment,
)

__all__ = [
    "FakeS3Client",
    "FakeRekognitionClient",
    "FakeLogger",
    "FakeRenditionGenerator",
    "FakeSafetyClassifier",
    "InMemoryCatalog",
    "S3Object",
    "S3Bucket",
    "PROCESSED_BUCKET",
    "SOURCE_BUCKET",
    "build_test_pipeline",
    "create_test_image",
    "setup_test_s3_environment",
]
