# tests/core/test_error_handling.py

import pytest
from unittest import mock

from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from image_ingest.core.exceptions import (
    ObjectNotFoundError,
    StorageError,
    TransientIOError,
    TransientStorageError,
    ValidationError,
)
from image_ingest.core.error_handling import (
    CompensationContext,
    retry_transient,
    translate_storage_errors,
)
from image_ingest.testing.fakes import FakeLogger


def _client_error(code):
    return ClientError({"Error": {"Code": code, "Message": "simulated"}}, "GetObject")


class _Storage:
    """Minimal storage adapter raising whatever it is told to."""

    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    @translate_storage_errors
    def fetch(self, bucket, key):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return f"{bucket}/{key}"


# --- Tests for @translate_storage_errors ---

def test_translate_passes_through_success():
    assert _Storage().fetch("uploads", "cat.jpg") == "uploads/cat.jpg"

@pytest.mark.parametrize("code", ["NoSuchKey", "NoSuchBucket", "404"])
def test_translate_not_found(code):
    with pytest.raises(ObjectNotFoundError) as exc_info:
        _Storage(_client_error(code)).fetch("uploads", "cat.jpg")
    assert exc_info.value.key == "cat.jpg"
    assert isinstance(exc_info.value.__cause__, ClientError)

@pytest.mark.parametrize("code", ["SlowDown", "InternalError", "ServiceUnavailable"])
def test_translate_retryable_codes(code):
    with pytest.raises(TransientStorageError):
        _Storage(_client_error(code)).fetch("uploads", "cat.jpg")

def test_translate_access_denied_is_permanent():
    with pytest.raises(StorageError) as exc_info:
        _Storage(_client_error("AccessDenied")).fetch("uploads", "cat.jpg")
    assert not isinstance(exc_info.value, TransientIOError)

def test_translate_connection_errors_are_transient():
    error = EndpointConnectionError(endpoint_url="https://s3.amazonaws.com")
    with pytest.raises(TransientStorageError):
        _Storage(error).fetch("uploads", "cat.jpg")

def test_translate_other_botocore_errors():
    with pytest.raises(StorageError) as exc_info:
        _Storage(NoCredentialsError()).fetch("uploads", "cat.jpg")
    assert not isinstance(exc_info.value, TransientIOError)


# --- Tests for @retry_transient decorator ---

@mock.patch("image_ingest.core.error_handling.time.sleep")
def test_retry_succeeds_after_transient_failures(mock_sleep):
    attempts = {"count": 0}

    @retry_transient(max_attempts=3, initial_delay=0.1, backoff_factor=2)
    def flaky():
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise TransientStorageError("throttled")
        return "ok"

    assert flaky() == "ok"
    assert attempts["count"] == 3
    assert mock_sleep.call_args_list == [mock.call(0.1), mock.call(0.2)]

@mock.patch("image_ingest.core.error_handling.time.sleep")
def test_retry_gives_up(mock_sleep):
    @retry_transient(max_attempts=2, initial_delay=0.1)
    def always_throttled():
        raise TransientStorageError("throttled")

    with pytest.raises(TransientStorageError):
        always_throttled()
    assert mock_sleep.call_count == 1

@mock.patch("image_ingest.core.error_handling.time.sleep")
def test_retry_does_not_retry_permanent_errors(mock_sleep):
    calls = {"count": 0}

    @retry_transient(max_attempts=5)
    def denied():
        calls["count"] += 1
        raise StorageError("access denied")

    with pytest.raises(StorageError):
        denied()
    assert calls["count"] == 1
    mock_sleep.assert_not_called()


# --- Tests for CompensationContext ---

def test_compensation_attempts_every_item():
    logger = FakeLogger()
    deleted = []

    def delete(key):
        if key == "b":
            raise StorageError("denied")
        deleted.append(key)

    with CompensationContext("Cleanup", logger=logger) as cleanup:
        results = [cleanup.attempt(key, delete, key) for key in ("a", "b", "c")]

    assert results == [True, False, True]
    assert deleted == ["a", "c"]
    assert cleanup.completed == ["a", "c"]
    assert cleanup.errors == [{"item": "b", "error": "denied"}]
    errors = logger.get_logs("ERROR")
    assert len(errors) == 1
    assert "'b'" in errors[0]["message"]

def test_compensation_success_logs_info():
    logger = FakeLogger()

    with CompensationContext("Cleanup", logger=logger) as cleanup:
        cleanup.attempt("a", lambda: None)

    assert not logger.get_logs("ERROR")
    assert "completed successfully" in logger.get_logs("INFO")[-1]["message"]

def test_compensation_does_not_suppress_exceptions():
    logger = FakeLogger()

    with pytest.raises(ValidationError):
        with CompensationContext("Cleanup", logger=logger):
            raise ValidationError("bad input")

    assert "aborted" in logger.get_logs("ERROR")[0]["message"]
