"""Tests for models.py data classes."""

import pytest

from image_ingest.core.exceptions import ConfigurationError, ValidationError
from image_ingest.core.models import (
    CatalogRecord,
    IngestionRequest,
    IngestionSettings,
    Likelihood,
    OutcomeKind,
    PipelineOutcome,
    PipelineStage,
    RecordStatus,
    SafetyVerdict,
)


class TestIngestionRequest:
    """Tests for IngestionRequest."""

    def test_create_valid(self):
        request = IngestionRequest.create(" uploads ", "photos/cat.jpg")

        assert request.source_bucket == "uploads"
        assert request.object_path == "photos/cat.jpg"

    @pytest.mark.parametrize("bucket", [None, "", "   ", 42])
    def test_create_rejects_missing_bucket(self, bucket):
        with pytest.raises(ValidationError, match="bucket"):
            IngestionRequest.create(bucket, "photos/cat.jpg")

    @pytest.mark.parametrize("name", [None, "", "  "])
    def test_create_rejects_missing_name(self, name):
        with pytest.raises(ValidationError, match="object name"):
            IngestionRequest.create("uploads", name)

    def test_request_is_immutable(self):
        request = IngestionRequest.create("uploads", "cat.jpg")

        with pytest.raises(Exception):
            request.object_path = "dog.jpg"


class TestLikelihood:
    """Tests for Likelihood parsing and ordering."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("VERY_LIKELY", Likelihood.VERY_LIKELY),
            ("very-likely", Likelihood.VERY_LIKELY),
            ("possible", Likelihood.POSSIBLE),
            (2, Likelihood.UNLIKELY),
            (Likelihood.LIKELY, Likelihood.LIKELY),
        ],
    )
    def test_parse(self, value, expected):
        assert Likelihood.parse(value) is expected

    def test_parse_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown likelihood"):
            Likelihood.parse("sometimes")

    def test_ordering(self):
        assert Likelihood.UNKNOWN < Likelihood.VERY_UNLIKELY < Likelihood.LIKELY
        assert Likelihood.VERY_LIKELY > Likelihood.LIKELY


class TestSafetyVerdict:
    """Tests for SafetyVerdict classification thresholds."""

    def test_defaults_are_unknown(self):
        verdict = SafetyVerdict()

        assert verdict.adult is Likelihood.UNKNOWN
        assert not verdict.is_unsafe()

    def test_threshold_is_inclusive(self):
        verdict = SafetyVerdict(adult="LIKELY")

        assert verdict.is_unsafe(Likelihood.LIKELY)
        assert verdict.flagged_categories() == ["adult"]

    def test_below_threshold_is_safe(self):
        verdict = SafetyVerdict(adult="POSSIBLE", violence="UNLIKELY", racy="VERY_UNLIKELY")

        assert not verdict.is_unsafe(Likelihood.LIKELY)

    def test_any_category_flags(self):
        verdict = SafetyVerdict(violence="VERY_LIKELY", racy="LIKELY")

        assert verdict.flagged_categories() == ["violence", "racy"]

    def test_medical_is_not_a_default_category(self):
        verdict = SafetyVerdict(medical="VERY_LIKELY")

        assert not verdict.is_unsafe()
        assert verdict.is_unsafe(categories=("medical",))

    def test_invalid_likelihood_rejected(self):
        with pytest.raises(ValueError):
            SafetyVerdict(adult="nope")


class TestCatalogRecord:
    """Tests for CatalogRecord coercion."""

    def test_renditions_keys_coerced_to_int(self):
        record = CatalogRecord(
            id=7, storage_path="a.jpg", renditions={"200": "a_w200.webp"}
        )

        assert record.id == "7"
        assert record.renditions == {200: "a_w200.webp"}
        assert record.status is RecordStatus.PENDING

    def test_none_renditions_become_empty(self):
        record = CatalogRecord(id="x", storage_path="a.jpg", renditions=None)

        assert record.renditions == {}


class TestPipelineOutcome:
    """Tests for PipelineOutcome constructors."""

    def setup_method(self):
        self.request = IngestionRequest.create("uploads", "cat.jpg")

    def test_processed_relocated(self):
        record = CatalogRecord(id="1", storage_path="cat.jpg", status="ready")

        outcome = PipelineOutcome.processed(self.request, record, relocated=True)

        assert outcome.kind is OutcomeKind.PROCESSED
        assert outcome.stage is PipelineStage.ORIGINAL_RELOCATED
        assert outcome.record is record

    def test_processed_not_relocated_stops_at_commit(self):
        record = CatalogRecord(id="1", storage_path="cat.jpg", status="ready")

        outcome = PipelineOutcome.processed(self.request, record, relocated=False)

        assert outcome.stage is PipelineStage.CATALOG_COMMITTED
        assert outcome.relocated is False

    def test_failed_keeps_stage_and_reason(self):
        outcome = PipelineOutcome.failed(
            self.request, PipelineStage.METADATA_EXTRACTED, "boom"
        )

        assert outcome.kind is OutcomeKind.FAILED
        assert outcome.stage is PipelineStage.METADATA_EXTRACTED
        assert outcome.reason == "boom"


class TestIngestionSettings:
    """Tests for IngestionSettings."""

    def test_defaults(self):
        settings = IngestionSettings(processed_bucket="out")

        assert settings.resize_widths == [200, 400, 600, 1200]
        assert settings.unsafe_threshold is Likelihood.LIKELY
        assert settings.archive_prefix == "original-"
        assert settings.rendition_concurrency == 8

    def test_from_env_requires_bucket(self):
        with pytest.raises(ConfigurationError, match="PROCESSED_BUCKET_NAME"):
            IngestionSettings.from_env({})

    def test_from_env_maps_variables(self):
        settings = IngestionSettings.from_env(
            {
                "PROCESSED_BUCKET_NAME": "processed",
                "RESIZE_DIMENSIONS": "600, 200,200,400",
                "UNSAFE_LIKELIHOOD_THRESHOLD": "very_likely",
                "RENDITION_CONCURRENCY": "2",
                "DATABASE_URL": "postgresql://localhost/images",
                "AWS_REGION": "",
            }
        )

        assert settings.processed_bucket == "processed"
        assert settings.resize_widths == [200, 400, 600]
        assert settings.unsafe_threshold is Likelihood.VERY_LIKELY
        assert settings.rendition_concurrency == 2
        assert settings.database_url == "postgresql://localhost/images"
        assert settings.aws_region is None

    def test_from_env_rejects_bad_width(self):
        with pytest.raises(ConfigurationError, match="rendition width"):
            IngestionSettings.from_env(
                {"PROCESSED_BUCKET_NAME": "p", "RESIZE_DIMENSIONS": "200,big"}
            )

    def test_from_env_rejects_bad_quality(self):
        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            IngestionSettings.from_env(
                {"PROCESSED_BUCKET_NAME": "p", "RENDITION_QUALITY": "150"}
            )
