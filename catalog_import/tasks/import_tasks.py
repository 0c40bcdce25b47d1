"""Celery task running one XML feed import.

The task is a thin shell around :meth:`ImportJobController.run`: the
controller owns the job state machine, the task only wires the worker's
database and Redis connections and reports the outcome to Celery.
"""
from __future__ import annotations

import logging

from celery.exceptions import SoftTimeLimitExceeded

from catalog_import.core.config import get_settings
from catalog_import.core.redis_manager import CancellationFlags, create_redis_client
from catalog_import.services.errors import JobNotFoundError
from catalog_import.services.job_controller import ImportJobController
from catalog_import.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)


def build_controller() -> ImportJobController:
    """Create a controller with worker-side connections."""

    settings = get_settings()
    cancellation = CancellationFlags(
        create_redis_client(settings.redis_url),
        ttl_seconds=settings.cancel_flag_ttl_seconds,
    )
    return ImportJobController(cancellation=cancellation, settings=settings)


@celery_app.task(
    name="catalog_import.tasks.import_tasks.process_xml_import",
    bind=True,
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_xml_import(self, job_id: str, file_path: str) -> dict:
    """Process an uploaded feed in the background.

    Task Flow:
    1. Celery worker receives the task (message is ACKed only after return)
    2. The controller moves the job pending -> processing and pre-counts items
    3. Each product is resolved and upserted in its own transaction
    4. Progress and stats are written after every item
    5. The job ends completed, failed or cancelled; the upload is deleted

    Args:
        job_id: UUID string of the import job
        file_path: Absolute path to the stored XML upload

    Returns:
        dict with the job id and its final status

    Raises:
        SoftTimeLimitExceeded: If the job exceeded its time budget (job is marked failed)
        Exception: Engine-level errors, after the job was marked failed
    """
    logger.info(f"Starting XML import task for job {job_id} (task {self.request.id})")
    controller = build_controller()

    try:
        status = controller.run(job_id, file_path)
    except JobNotFoundError as exc:
        logger.error(f"Job {job_id}: {exc}")
        return {"status": "missing", "job_id": job_id}
    except SoftTimeLimitExceeded:
        logger.error(f"Job {job_id}: time limit exceeded")
        raise

    logger.info(f"Job {job_id}: task finished with status {status.value}")
    return {"status": status.value, "job_id": job_id}
