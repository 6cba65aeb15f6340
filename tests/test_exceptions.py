import pytest

from image_ingest.core.exceptions import (
    CatalogError,
    CatalogUnavailableError,
    ConfigurationError,
    ImageIngestError,
    NotFoundError,
    ObjectNotFoundError,
    PartialFailureError,
    RenditionError,
    StorageError,
    TransferError,
    TransientIOError,
    TransientStorageError,
    ValidationError,
)


@pytest.mark.parametrize(
    "error_type",
    [
        ConfigurationError,
        ValidationError,
        StorageError,
        TransferError,
        CatalogError,
        RenditionError,
    ],
)
def test_errors_share_root(error_type) -> None:
    assert issubclass(error_type, ImageIngestError)


def test_object_not_found_is_storage_and_not_found() -> None:
    error = ObjectNotFoundError("uploads", "cat.jpg")

    assert isinstance(error, StorageError)
    assert isinstance(error, NotFoundError)
    assert error.bucket == "uploads"
    assert error.key == "cat.jpg"
    assert "s3://uploads/cat.jpg" in str(error)


def test_transient_errors_are_retryable_kind() -> None:
    assert issubclass(TransientStorageError, TransientIOError)
    assert issubclass(CatalogUnavailableError, TransientIOError)
    assert issubclass(CatalogUnavailableError, CatalogError)
    assert not issubclass(TransferError, TransientIOError)


def test_partial_failure_reports_widths() -> None:
    error = PartialFailureError(
        {600: RuntimeError("codec"), 400: RuntimeError("upload")},
        {200: "cat_w200.webp"},
    )

    assert isinstance(error, RenditionError)
    assert sorted(error.failures) == [400, 600]
    assert error.succeeded == {200: "cat_w200.webp"}
    assert str(error) == "2 rendition(s) failed (widths: 400, 600); 1 succeeded"


def test_partial_failure_without_successes() -> None:
    error = PartialFailureError({200: RuntimeError("x")})

    assert error.succeeded == {}
    assert str(error).endswith("0 succeeded")
