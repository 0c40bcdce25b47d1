"""Import job lifecycle: creation, scheduling, the worker loop and cancellation.

``ImportJobController`` is the only writer of ``import_jobs`` rows. The HTTP
layer calls :meth:`create_job`, :meth:`enqueue`, :meth:`get_job`,
:meth:`request_cancel` and :meth:`list_history`; the Celery task calls
:meth:`run`.

State machine::

    pending -> processing -> completed | failed | cancelled
    pending -> cancelled

Items are processed strictly in feed order, each in its own transaction. The
job row is updated after every item with a monotonic progress value and a
full stats snapshot.
"""
from __future__ import annotations

import logging
import time
from contextlib import closing
from pathlib import Path
from typing import Any
from uuid import UUID

from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import sessionmaker

from catalog_import.core.config import Settings, get_settings
from catalog_import.core.db import session_scope
from catalog_import.core.redis_manager import CancellationFlags, create_redis_client
from catalog_import.models.import_job import ImportStatus
from catalog_import.schemas.import_job import ImportJobResponse
from catalog_import.services.entity_resolver import CATEGORY, PRODUCER, UNIT, EntityResolver
from catalog_import.services.errors import (
    FatalParseError,
    ItemError,
    ItemPersistenceError,
    JobNotFoundError,
)
from catalog_import.services.feed_parser import GekoFeedParser, ParseComplete, RawItem
from catalog_import.services.import_repository import ImportRepository
from catalog_import.services.upsert_engine import CatalogUpsertEngine, UpsertOutcome

logger = logging.getLogger(__name__)

STAT_KEYS = (
    "totalProducts",
    "importedProducts",
    "productsCreated",
    "productsUpdated",
    "categoriesCount",
    "producersCount",
    "unitsCount",
    "variantsCount",
    "pricesCount",
    "imagesCount",
    "documentsCount",
    "propertiesCount",
    "errorsCount",
)

_REFERENCE_STATS = {CATEGORY: "categoriesCount", PRODUCER: "producersCount", UNIT: "unitsCount"}

INTERRUPTED_MESSAGE = "Import interrupted: the worker stopped while processing this job. Upload the file again."


def empty_stats(total: int = 0) -> dict[str, int]:
    stats = dict.fromkeys(STAT_KEYS, 0)
    stats["totalProducts"] = total
    return stats


def compute_progress(processed: int, total: int) -> int:
    """Percentage shown while processing; 100 is reserved for ``completed``."""

    if total <= 0:
        return 0
    return min(99, (100 * processed) // total)


def _to_uuid(job_id: UUID | str) -> UUID:
    return job_id if isinstance(job_id, UUID) else UUID(str(job_id))


class ImportJobController:
    """Owns every import job state change.

    Args:
        session_factory: Session factory for the catalog database
        cancellation: Out-of-band cancellation flags
        settings: Application settings (defaults to ``get_settings()``)
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        cancellation: CancellationFlags | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        if cancellation is None:
            cancellation = CancellationFlags(
                create_redis_client(self._settings.redis_url),
                ttl_seconds=self._settings.cancel_flag_ttl_seconds,
            )
        self._cancellation = cancellation

    def _scope(self):
        return session_scope(self._session_factory)

    # ------------------------------------------------------------------
    # HTTP-facing operations
    # ------------------------------------------------------------------

    def create_job(
        self,
        filename: str,
        *,
        file_size: int | None = None,
        options: dict[str, Any] | None = None,
    ) -> ImportJobResponse:
        """Create a ``pending`` job record for an accepted upload."""

        with self._scope() as session:
            job = ImportRepository(session).create(filename, file_size=file_size, options=options)
            snapshot = ImportJobResponse.model_validate(job)
        logger.info(f"Created import job {snapshot.id} for {filename!r} ({file_size} bytes)")
        return snapshot

    def enqueue(self, job_id: UUID | str, file_path: str | Path) -> str:
        """Publish the background task that will run the job.

        Returns:
            Celery task ID (equal to the job id)

        Raises:
            FileNotFoundError: If file_path does not exist
        """
        # Lazy import to avoid circular dependencies and allow testing without full setup
        from catalog_import.tasks.import_tasks import process_xml_import

        path = Path(file_path)
        if not path.exists():
            msg = f"XML file not found at {file_path}"
            raise FileNotFoundError(msg)

        task = process_xml_import.apply_async(args=[str(job_id), str(path)], task_id=str(job_id))
        logger.info(f"Enqueued import job {job_id} as task {task.id}")
        return task.id

    def get_job(self, job_id: UUID | str) -> ImportJobResponse:
        """Return the current job snapshot.

        Raises:
            JobNotFoundError: If no job has this id
        """
        with self._scope() as session:
            job = ImportRepository(session).get_by_id(_to_uuid(job_id))
            if job is None:
                raise JobNotFoundError(job_id)
            return ImportJobResponse.model_validate(job)

    def list_history(self, limit: int | None = None) -> list[ImportJobResponse]:
        with self._scope() as session:
            jobs = ImportRepository(session).get_recent(limit=limit or self._settings.history_limit)
            return [ImportJobResponse.model_validate(job) for job in jobs]

    def request_cancel(self, job_id: UUID | str) -> ImportStatus:
        """Cancel a job, idempotently.

        A pending job is cancelled immediately. A processing job gets a
        cancellation flag that the worker observes before its next item.
        Terminal jobs are left untouched.

        Returns:
            Status of the job after the request

        Raises:
            JobNotFoundError: If no job has this id
        """
        job_uuid = _to_uuid(job_id)
        with self._scope() as session:
            repo = ImportRepository(session)
            if repo.cancel_pending(job_uuid):
                logger.info(f"Cancelled pending import job {job_uuid}")
                return ImportStatus.CANCELLED
            job = repo.get_by_id(job_uuid)
            if job is None:
                raise JobNotFoundError(job_id)
            status = job.status

        if status == ImportStatus.PROCESSING:
            self._cancellation.request(job_uuid)
            logger.info(f"Cancellation requested for running import job {job_uuid}")
        else:
            logger.info(f"Ignoring cancellation for import job {job_uuid}: already {status.value}")
        return status

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    def run(self, job_id: UUID | str, file_path: str | Path) -> ImportStatus:
        """Process one job to a terminal state and delete its upload.

        Returns:
            Final status of the job

        Raises:
            JobNotFoundError: If the job record does not exist
            Exception: Engine-level failures, after the job was marked failed
        """
        job_uuid = _to_uuid(job_id)
        path = Path(file_path)
        try:
            return self._run(job_uuid, path)
        finally:
            self._cancellation.clear(job_uuid)
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning(f"Job {job_uuid}: failed to delete temp file {path}: {exc}")

    def _run(self, job_id: UUID, path: Path) -> ImportStatus:
        with self._scope() as session:
            repo = ImportRepository(session)
            started = repo.mark_processing(job_id)
            job = repo.get_by_id(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            status = job.status
            skip_images = job.skip_images

        if not started:
            if status == ImportStatus.PROCESSING:
                logger.error(f"Job {job_id} was already processing; treating redelivery as interrupted run")
                self._finalize(job_id, ImportStatus.FAILED, error_message=INTERRUPTED_MESSAGE)
                return ImportStatus.FAILED
            logger.info(f"Job {job_id} is {status.value}; nothing to process")
            return status

        logger.info(f"Job {job_id}: pending -> processing ({path.name})")
        clock = time.monotonic()

        try:
            return self._process(job_id, GekoFeedParser(path), skip_images=skip_images, clock=clock)
        except FatalParseError as exc:
            logger.error(f"Job {job_id}: fatal parse error: {exc}", exc_info=True)
            self._finalize(job_id, ImportStatus.FAILED, error_message=str(exc), clock=clock)
            return ImportStatus.FAILED
        except Exception as exc:
            logger.error(f"Job {job_id}: import aborted by engine error: {exc}", exc_info=True)
            try:
                self._finalize(
                    job_id,
                    ImportStatus.FAILED,
                    error_message=f"{type(exc).__name__}: {exc}",
                    clock=clock,
                )
            except Exception as finalize_exc:
                logger.error(f"Job {job_id}: could not record failure: {finalize_exc}")
            raise

    def _process(self, job_id: UUID, parser: GekoFeedParser, *, skip_images: bool, clock: float) -> ImportStatus:
        total = parser.count_items()
        stats = empty_stats(total)
        item_errors: list[dict[str, Any]] = []
        with self._scope() as session:
            ImportRepository(session).set_total_items(job_id, total, stats=stats)
        logger.info(f"Job {job_id}: feed contains {total} products")

        resolver = EntityResolver()
        processed = 0
        with closing(parser.iter_items()) as events:
            for event in events:
                if isinstance(event, ParseComplete):
                    break

                if self._cancellation.is_requested(job_id):
                    logger.info(f"Job {job_id}: cancellation observed after {processed} items")
                    self._finalize(job_id, ImportStatus.CANCELLED, clock=clock)
                    return ImportStatus.CANCELLED

                processed += 1
                if isinstance(event, ItemError):
                    self._record_item_error(job_id, event, processed, total, stats, item_errors)
                    continue
                self._import_item(job_id, event, resolver, processed, total, stats, item_errors, skip_images)

        # a stream that never produced ParseComplete would have raised FatalParseError
        self._finalize(job_id, ImportStatus.COMPLETED, clock=clock, progress=100)
        logger.info(
            f"Job {job_id}: completed, {stats['importedProducts']}/{total} products imported, "
            f"{stats['errorsCount']} errors"
        )
        return ImportStatus.COMPLETED

    def _import_item(
        self,
        job_id: UUID,
        raw: RawItem,
        resolver: EntityResolver,
        processed: int,
        total: int,
        stats: dict[str, int],
        item_errors: list[dict[str, Any]],
        skip_images: bool,
    ) -> None:
        try:
            entity_set = resolver.resolve(raw)
            with self._scope() as session:
                engine = CatalogUpsertEngine(session, skip_images=skip_images)
                try:
                    resolver.resolve_references(engine, entity_set)
                    outcome = engine.persist(entity_set)
                except (IntegrityError, DataError) as exc:
                    reason = str(getattr(exc, "orig", None) or exc).strip().splitlines()[0]
                    raise ItemPersistenceError(reason, position=raw.position, key=raw.code) from exc

                snapshot = self._apply_outcome(stats, outcome, resolver)
                ImportRepository(session).record_progress(
                    job_id,
                    processed_items=processed,
                    progress=compute_progress(processed, total),
                    stats=snapshot,
                )
        except ItemError as exc:
            resolver.cache.discard()
            self._record_item_error(job_id, exc, processed, total, stats, item_errors)
            return
        except Exception:
            resolver.cache.discard()
            raise

        resolver.cache.commit()
        stats.update(snapshot)

    @staticmethod
    def _apply_outcome(stats: dict[str, int], outcome: UpsertOutcome, resolver: EntityResolver) -> dict[str, int]:
        snapshot = dict(stats)
        snapshot["importedProducts"] += 1
        snapshot["productsCreated" if outcome.product_created else "productsUpdated"] += 1
        snapshot["variantsCount"] += outcome.variants
        snapshot["pricesCount"] += outcome.prices
        snapshot["imagesCount"] += outcome.images
        snapshot["documentsCount"] += outcome.documents
        snapshot["propertiesCount"] += outcome.properties
        for kind, count in resolver.cache.staged().items():
            snapshot[_REFERENCE_STATS[kind]] += count
        return snapshot

    def _record_item_error(
        self,
        job_id: UUID,
        error: ItemError,
        processed: int,
        total: int,
        stats: dict[str, int],
        item_errors: list[dict[str, Any]],
    ) -> None:
        stats["errorsCount"] += 1
        if len(item_errors) < self._settings.max_recorded_item_errors:
            item_errors.append(error.to_dict())
        logger.warning(f"Job {job_id}: skipped {error.label}: {error.reason}")

        with self._scope() as session:
            ImportRepository(session).record_progress(
                job_id,
                processed_items=processed,
                progress=compute_progress(processed, total),
                stats=stats,
                item_errors=item_errors,
            )

    def _finalize(
        self,
        job_id: UUID,
        status: ImportStatus,
        *,
        error_message: str | None = None,
        clock: float | None = None,
        progress: int | None = None,
    ) -> None:
        duration = round(time.monotonic() - clock, 3) if clock is not None else None
        with self._scope() as session:
            changed = ImportRepository(session).finalize(
                job_id,
                status,
                duration=duration,
                error_message=error_message,
                progress=progress,
            )
        if changed:
            logger.info(f"Job {job_id}: processing -> {status.value} in {duration}s")
        else:
            logger.warning(f"Job {job_id}: could not move to {status.value}, job is no longer processing")
