"""Postgres-backed catalog gateway."""

from __future__ import annotations

from contextlib import contextmanager
from importlib import resources
from typing import Any, Iterator, List, Mapping, Optional

import psycopg2
from psycopg2.extras import Json, RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from .exceptions import CatalogError, CatalogUnavailableError
from .models import CatalogRecord
from .protocols import CatalogGateway, LoggerProtocol

RECORD_COLUMNS = "id, storage_path, status, exif, processed_sizes, width, height, sha256"

SCHEMA_FILES = ("001_images.sql", "002_update_image_processing_results.sql")


def _row_to_record(row: Mapping[str, Any]) -> CatalogRecord:
    return CatalogRecord(
        id=row["id"],
        storage_path=row["storage_path"],
        status=row["status"],
        metadata=row.get("exif"),
        renditions=row.get("processed_sizes") or {},
        width=row.get("width"),
        height=row.get("height"),
        checksum=row.get("sha256"),
    )


class PostgresCatalogGateway(CatalogGateway):
    """
    Catalog stored in the ``images`` table of a Postgres database.

    Connections come from a ``ThreadedConnectionPool`` so one gateway can be
    shared by concurrent invocations. Results are committed through the
    ``update_image_processing_results`` stored procedure, which writes
    metadata, renditions, dimensions and status in a single statement.
    """

    def __init__(
        self,
        dsn: str,
        logger: LoggerProtocol,
        min_connections: int = 1,
        max_connections: int = 8,
        connect_timeout: int = 10,
        statement_timeout_ms: int = 15000,
        pool: Optional[ThreadedConnectionPool] = None,
    ):
        self._logger = logger
        if pool is None:
            try:
                pool = ThreadedConnectionPool(
                    min_connections,
                    max_connections,
                    dsn=dsn,
                    connect_timeout=connect_timeout,
                    options=f"-c statement_timeout={statement_timeout_ms}",
                )
            except psycopg2.OperationalError as e:
                raise CatalogUnavailableError(f"Could not connect to catalog: {e}") from e
        self._pool = pool

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def _transaction(self) -> Iterator[Any]:
        """Yield a dict cursor inside one transaction; commit or roll back."""
        try:
            conn = self._pool.getconn()
        except psycopg2.Error as e:
            raise CatalogUnavailableError(f"No catalog connection available: {e}") from e
        try:
            with conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    yield cur
        except psycopg2.OperationalError as e:
            raise CatalogUnavailableError(f"Catalog operation failed: {e}") from e
        except psycopg2.Error as e:
            raise CatalogError(f"Catalog operation failed: {e}") from e
        finally:
            self._pool.putconn(conn, close=bool(conn.closed))

    def ensure_schema(self) -> None:
        """Create the ``images`` table and the commit procedure if missing."""
        package = resources.files("image_ingest") / "sql"
        with self._transaction() as cur:
            for name in SCHEMA_FILES:
                cur.execute((package / name).read_text(encoding="utf-8"))
        self._logger.info("Catalog schema is up to date")

    def find_by_path(self, path: str) -> List[CatalogRecord]:
        with self._transaction() as cur:
            cur.execute(
                f"SELECT {RECORD_COLUMNS} FROM images "
                "WHERE storage_path = %s ORDER BY created_at, id",
                (path,),
            )
            rows = cur.fetchall()
        return [_row_to_record(row) for row in rows]

    def find_by_checksum(self, checksum: str) -> List[CatalogRecord]:
        with self._transaction() as cur:
            cur.execute(
                f"SELECT {RECORD_COLUMNS} FROM images "
                "WHERE sha256 = %s ORDER BY created_at, id",
                (checksum,),
            )
            rows = cur.fetchall()
        return [_row_to_record(row) for row in rows]

    def _set_status(self, record_id: str, status: str) -> None:
        try:
            with self._transaction() as cur:
                cur.execute(
                    "UPDATE images SET status = %s, updated_at = now() "
                    "WHERE id = %s AND status <> 'ready'",
                    (status, record_id),
                )
        except CatalogError as e:
            self._logger.warning(f"Could not mark record {record_id} as {status}: {e}")

    def mark_processing(self, record_id: str) -> None:
        self._set_status(record_id, "processing")

    def mark_rejected(self, record_id: str) -> None:
        self._set_status(record_id, "rejected")

    def commit_results(
        self,
        record_id: str,
        metadata: Mapping[str, Any],
        renditions: Mapping[int, str],
        width: int,
        height: int,
    ) -> None:
        processed_sizes = {str(w): path for w, path in sorted(renditions.items())}
        with self._transaction() as cur:
            cur.execute(
                "SELECT update_image_processing_results(%s, %s, %s, %s, %s)",
                (record_id, Json(dict(metadata)), Json(processed_sizes), width, height),
            )
        self._logger.debug(
            f"Committed record {record_id} with {len(processed_sizes)} rendition(s)"
        )
