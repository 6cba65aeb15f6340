# src/image_ingest/core/error_handling.py

import functools
import logging
import time

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotocoreConnectionError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from .exceptions import (
    ObjectNotFoundError,
    StorageError,
    TransientIOError,
    TransientStorageError,
)

NOT_FOUND_ERROR_CODES = ("NoSuchKey", "NoSuchBucket", "404", "NotFound")
RETRYABLE_S3_ERROR_CODES = (
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "SlowDown",
    "RequestTimeout",
    "InternalError",
    "ServiceUnavailable",
    "503",
    "500",
)
TRANSIENT_BOTOCORE_ERRORS = (
    BotocoreConnectionError,
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
)


def translate_storage_errors(func):
    """
    Map botocore failures raised by a storage call onto the service taxonomy.

    The wrapped function must take ``bucket`` and ``key`` as its first two
    positional arguments after ``self``.
    """
    @functools.wraps(func)
    def wrapper(self, bucket, key, *args, **kwargs):
        logger = logging.getLogger(func.__module__ + '.' + func.__name__)
        try:
            return func(self, bucket, key, *args, **kwargs)
        except ClientError as e:
            error_code = str(e.response.get('Error', {}).get('Code', ''))
            if error_code in NOT_FOUND_ERROR_CODES:
                raise ObjectNotFoundError(bucket, key) from e
            logger.error(f"Error in '{func.__name__}' for s3://{bucket}/{key}: {e}")
            if error_code in RETRYABLE_S3_ERROR_CODES:
                raise TransientStorageError(
                    f"S3 operation {func.__name__} throttled or unavailable: {e}"
                ) from e
            raise StorageError(f"S3 operation {func.__name__} failed: {e}") from e
        except TRANSIENT_BOTOCORE_ERRORS as e:
            logger.error(f"Error in '{func.__name__}' for s3://{bucket}/{key}: {e}")
            raise TransientStorageError(
                f"S3 operation {func.__name__} could not reach the endpoint: {e}"
            ) from e
        except BotoCoreError as e:
            logger.error(f"Error in '{func.__name__}' for s3://{bucket}/{key}: {e}")
            raise StorageError(f"S3 operation {func.__name__} failed: {e}") from e
    return wrapper


def retry_transient(max_attempts=3, initial_delay=0.5, backoff_factor=2):
    """
    Decorator to retry an operation with exponential backoff.

    Only ``TransientIOError`` is retried; any other exception propagates on
    the first attempt.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = logging.getLogger(func.__module__ + '.' + func.__name__)
            attempts = 0
            delay = initial_delay
            while True:
                try:
                    return func(*args, **kwargs)
                except TransientIOError as e:
                    attempts += 1
                    if attempts >= max_attempts:
                        logger.error(
                            f"Operation '{func.__name__}' failed after {max_attempts} attempts. Error: {e}"
                        )
                        raise
                    logger.info(
                        f"Operation '{func.__name__}' failed. Attempt {attempts}/{max_attempts}. "
                        f"Retrying in {delay:.2f}s. Error: {e}"
                    )
                    time.sleep(delay)
                    delay *= backoff_factor
        return wrapper
    return decorator


class CompensationContext:
    """
    Context manager for compensating cleanup.

    Collects per-item cleanup failures so that every item is attempted and
    each failure is logged individually. It never suppresses the exception
    that triggered the compensation.
    """
    def __init__(self, operation_name="Compensating cleanup", logger=None):
        self.operation_name = operation_name
        self.errors = []
        self.completed = []
        self.logger = logger or logging.getLogger(
            self.__class__.__module__ + '.' + self.__class__.__name__
        )

    def __enter__(self):
        self.logger.info(f"Starting {self.operation_name}.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.errors:
            self.logger.warning(
                f"{self.operation_name} completed with {len(self.errors)} error(s)."
            )
            for i, error_detail in enumerate(self.errors):
                self.logger.error(
                    f"  Error {i+1}/{len(self.errors)} for item "
                    f"'{error_detail['item']}': {error_detail['error']}"
                )
        elif exc_type:
            self.logger.error(
                f"{self.operation_name} aborted due to an unhandled exception: {exc_val}"
            )
        else:
            self.logger.info(
                f"{self.operation_name} completed successfully "
                f"({len(self.completed)} item(s))."
            )
        return False

    def attempt(self, item_identifier, action, *args, **kwargs):
        """Run one cleanup action, recording rather than raising its failure."""
        try:
            action(*args, **kwargs)
        except Exception as e:  # noqa: BLE001
            self.add_error(e, item_identifier)
            return False
        self.completed.append(item_identifier)
        return True

    def add_error(self, error_message, item_identifier="Unknown item"):
        self.errors.append({"item": item_identifier, "error": str(error_message)})
