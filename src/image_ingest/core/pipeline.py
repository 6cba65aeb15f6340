"""Ingestion pipeline: orchestration and partial-failure recovery."""

import hashlib
import tempfile
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from .error_handling import CompensationContext
from .exceptions import (
    ImageIngestError,
    PartialFailureError,
    RenditionError,
    StorageError,
    TransferError,
)
from .image_utils import archive_key, rendition_key, select_widths
from .models import (
    CatalogRecord,
    IngestionRequest,
    IngestionSettings,
    PipelineOutcome,
    PipelineStage,
    RecordStatus,
    RenditionResult,
    RenditionTask,
)
from .observability import LogContext
from .protocols import (
    CatalogGateway,
    LoggerProtocol,
    MetadataExtractor,
    RenditionGenerator,
    SafetyClassifier,
    StorageGateway,
)


@dataclass
class _Invocation:
    """Mutable working state of one pipeline run."""

    request: IngestionRequest
    log_context: LogContext
    stage: PipelineStage = PipelineStage.STARTED
    start_time: float = field(default_factory=time.time)

    def advance(self, stage: PipelineStage, logger: LoggerProtocol) -> None:
        self.stage = stage
        logger.debug(f"Reached stage {stage.value}", self.log_context)


class IngestionPipeline:
    """
    Ingests one uploaded image end to end.

    The pipeline downloads the original, locates its catalog record,
    extracts metadata, runs moderation, fans out rendition generation,
    commits the results atomically and finally archives the original.

    Every invocation ends in exactly one ``PipelineOutcome``:

    * ``rejected``: the image was unsafe and the original was deleted
    * ``not_found``: no catalog record exists; the original is untouched
    * ``processed``: renditions exist and the record is ``ready``
    * ``failed``: any other error; renditions uploaded by a failed fan-out
      are deleted before returning

    The local working copy is removed on every exit path.
    """

    def __init__(
        self,
        storage: StorageGateway,
        catalog: CatalogGateway,
        metadata_extractor: MetadataExtractor,
        classifier: SafetyClassifier,
        rendition_generator: RenditionGenerator,
        settings: IngestionSettings,
        logger: LoggerProtocol,
        work_dir: Optional[Union[str, Path]] = None,
    ):
        self._storage = storage
        self._catalog = catalog
        self._metadata_extractor = metadata_extractor
        self._classifier = classifier
        self._renditions = rendition_generator
        self._settings = settings
        self._logger = logger
        self._work_dir = str(work_dir) if work_dir is not None else None

    @property
    def settings(self) -> IngestionSettings:
        return self._settings

    def run(self, request: IngestionRequest) -> PipelineOutcome:
        """Process one request and map every failure to a single outcome."""
        log_context = LogContext(
            operation="ingest",
            component="ingestion_pipeline",
        ).with_metadata(
            bucket=request.source_bucket, object_path=request.object_path
        )
        invocation = _Invocation(request=request, log_context=log_context)
        self._logger.info("Starting ingestion", log_context)

        try:
            with tempfile.TemporaryDirectory(
                prefix="image-ingest-", dir=self._work_dir
            ) as work_dir:
                outcome = self._process(invocation, Path(work_dir))
        except ImageIngestError as e:
            self._logger.error(
                f"Ingestion failed at stage {invocation.stage.value}: "
                f"{type(e).__name__}: {e}",
                log_context,
            )
            outcome = PipelineOutcome.failed(request, invocation.stage, str(e))
        except Exception as e:  # noqa: BLE001
            self._logger.error(
                f"Unexpected error at stage {invocation.stage.value}: {e}",
                log_context,
                exc_info=True,
            )
            outcome = PipelineOutcome.failed(
                request, invocation.stage, f"{type(e).__name__}: {e}"
            )

        self._logger.info(
            "Finished ingestion",
            log_context,
            outcome=outcome.kind.value,
            duration_ms=round((time.time() - invocation.start_time) * 1000, 1),
        )
        return outcome

    def _process(self, invocation: _Invocation, work_dir: Path) -> PipelineOutcome:
        request = invocation.request
        ctx = invocation.log_context

        local_path = self._download(request, work_dir)
        source_bytes = local_path.read_bytes()
        checksum = hashlib.sha256(source_bytes).hexdigest()
        invocation.advance(PipelineStage.DOWNLOADED, self._logger)

        record = self._locate_record(request, checksum, ctx)
        if record is None:
            self._logger.warning("No catalog record for object; leaving it in place", ctx)
            return PipelineOutcome.not_found(
                request, invocation.stage, f"No catalog record for {request.object_path}"
            )
        invocation.advance(PipelineStage.RECORD_LOCATED, self._logger)

        self._catalog.mark_processing(record.id)
        invocation.advance(PipelineStage.STATUS_MARKED, self._logger)

        metadata = self._metadata_extractor.extract(local_path)
        invocation.advance(PipelineStage.METADATA_EXTRACTED, self._logger)

        verdict = self._classifier.classify(
            source_bytes, bucket=request.source_bucket, key=request.object_path
        )
        flagged = verdict.flagged_categories(
            self._settings.unsafe_threshold, self._settings.unsafe_categories
        )
        if flagged:
            self._logger.warning(
                f"Unsafe image detected ({', '.join(flagged)}); deleting original", ctx
            )
            self._storage.delete(request.source_bucket, request.object_path)
            self._catalog.mark_rejected(record.id)
            return PipelineOutcome.rejected(
                request, invocation.stage, f"Flagged categories: {', '.join(flagged)}"
            )
        invocation.advance(PipelineStage.CLASSIFICATION_PASSED, self._logger)

        width, height = self._renditions.measure(source_bytes)
        renditions = self._generate_renditions(request, source_bytes, width, ctx)
        invocation.advance(PipelineStage.RENDITIONS_COMPLETE, self._logger)

        # Renditions are kept if the commit fails: a retry re-uploads the same
        # keys and re-commits the same payload.
        self._catalog.commit_results(record.id, metadata, renditions, width, height)
        invocation.advance(PipelineStage.CATALOG_COMMITTED, self._logger)

        committed = record.model_copy(
            update={
                "status": RecordStatus.READY,
                "metadata": metadata,
                "renditions": dict(renditions),
                "width": width,
                "height": height,
                "checksum": record.checksum or checksum,
            }
        )

        relocated = self._relocate_original(request, ctx)
        if relocated:
            invocation.advance(PipelineStage.ORIGINAL_RELOCATED, self._logger)
        return PipelineOutcome.processed(request, committed, relocated)

    def _download(self, request: IngestionRequest, work_dir: Path) -> Path:
        filename = Path(request.object_path).name or "source"
        destination = work_dir / filename
        try:
            return self._storage.download(
                request.source_bucket, request.object_path, destination
            )
        except StorageError as e:
            raise TransferError(
                f"Could not download s3://{request.source_bucket}/{request.object_path}: {e}"
            ) from e

    def _locate_record(
        self, request: IngestionRequest, checksum: str, ctx: LogContext
    ) -> Optional[CatalogRecord]:
        matches = self._catalog.find_by_path(request.object_path)
        if not matches:
            matches = self._catalog.find_by_checksum(checksum)
            if matches:
                self._logger.info("Located catalog record by checksum", ctx, sha256=checksum)
        if not matches:
            return None
        if len(matches) > 1:
            self._logger.warning(
                f"{len(matches)} catalog records match; using the earliest",
                ctx,
                record_ids=",".join(m.id for m in matches),
            )
        return matches[0]

    def _render_and_upload(
        self, request: IngestionRequest, source_bytes: bytes, task: RenditionTask
    ) -> RenditionResult:
        key = rendition_key(
            request.object_path, task.target_width, self._renditions.extension
        )
        data = self._renditions.render(source_bytes, task.target_width)
        self._storage.upload(
            self._settings.processed_bucket, key, data, self._renditions.content_type
        )
        return RenditionResult(target_width=task.target_width, storage_path=key)

    def _generate_renditions(
        self,
        request: IngestionRequest,
        source_bytes: bytes,
        source_width: int,
        ctx: LogContext,
    ) -> Dict[int, str]:
        """
        Generate and upload every rendition concurrently.

        Short-circuits on the first failure (or the step timeout): tasks that
        have not started are cancelled, in-flight tasks are awaited, then all
        renditions uploaded by this call are deleted before the error is
        raised.

        Returns:
            Mapping of target width to destination key

        Raises:
            PartialFailureError: If any rendition task failed
        """
        widths = select_widths(self._settings.resize_widths, source_width)
        skipped = [w for w in self._settings.resize_widths if w not in widths]
        if skipped:
            self._logger.debug(
                f"Skipping widths {skipped} (source is {source_width}px wide)", ctx
            )
        if not widths:
            self._logger.info("No rendition widths below source width", ctx)
            return {}

        tasks = [RenditionTask(target_width=w) for w in widths]
        max_workers = min(self._settings.rendition_concurrency, len(tasks))
        succeeded: Dict[int, str] = {}
        failures: Dict[int, BaseException] = {}

        with ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="rendition"
        ) as executor:
            future_to_task: Dict[Future, RenditionTask] = {
                executor.submit(self._render_and_upload, request, source_bytes, task): task
                for task in tasks
            }
            done, pending = wait(
                future_to_task,
                timeout=self._settings.rendition_timeout_seconds,
                return_when=FIRST_EXCEPTION,
            )
            deadline_hit = bool(pending) and not any(
                f.exception() is not None for f in done
            )
            late: List[Future] = []
            if pending:
                for future in pending:
                    if not future.cancel():
                        late.append(future)
                # In-flight tasks must finish so their uploads can be cleaned up.
                wait(late)

            for future, task in future_to_task.items():
                width = task.target_width
                if future.cancelled():
                    failures[width] = RenditionError(
                        f"Rendition {width}px cancelled after a sibling failed"
                    )
                    continue
                error = future.exception()
                if error is not None:
                    failures[width] = error
                    continue
                succeeded[width] = future.result().storage_path
                if deadline_hit and future in late:
                    failures[width] = TimeoutError(
                        f"Rendition {width}px exceeded "
                        f"{self._settings.rendition_timeout_seconds}s"
                    )

        if not failures:
            self._logger.info(
                f"Created {len(succeeded)} rendition(s)", ctx, widths=sorted(succeeded)
            )
            return succeeded

        for width, error in sorted(failures.items()):
            self._logger.error(
                f"Rendition {width}px failed: {type(error).__name__}: {error}", ctx
            )
        self._compensate_renditions(request, succeeded, failures, ctx)
        raise PartialFailureError(
            failures, {w: p for w, p in succeeded.items() if w not in failures}
        )

    def _compensate_renditions(
        self,
        request: IngestionRequest,
        succeeded: Dict[int, str],
        failures: Dict[int, BaseException],
        ctx: LogContext,
    ) -> None:
        bucket = self._settings.processed_bucket
        keys = dict(succeeded)
        # A failed upload may still have landed; deleting a missing key is a no-op.
        for width, error in failures.items():
            if isinstance(error, StorageError):
                keys.setdefault(
                    width,
                    rendition_key(request.object_path, width, self._renditions.extension),
                )
        if not keys:
            return

        with CompensationContext(
            operation_name=f"Rendition cleanup for {request.object_path}",
            logger=self._logger,
        ) as cleanup:
            for width, key in sorted(keys.items()):
                cleanup.attempt(f"s3://{bucket}/{key}", self._storage.delete, bucket, key)
        self._logger.info(
            f"Removed {len(cleanup.completed)}/{len(keys)} rendition(s) after failure", ctx
        )

    def _relocate_original(self, request: IngestionRequest, ctx: LogContext) -> bool:
        """Archive the original. Best-effort: the committed record takes precedence."""
        dest_key = archive_key(request.object_path, self._settings.archive_prefix)
        try:
            self._storage.move(
                request.source_bucket,
                request.object_path,
                self._settings.processed_bucket,
                dest_key,
            )
        except ImageIngestError as e:
            self._logger.error(
                f"Could not relocate original to s3://{self._settings.processed_bucket}/{dest_key}; "
                f"original stays in s3://{request.source_bucket}, record remains ready: {e}",
                ctx,
            )
            return False
        self._logger.info(
            f"Relocated original to s3://{self._settings.processed_bucket}/{dest_key}", ctx
        )
        return True
