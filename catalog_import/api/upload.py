"""XML feed upload, job status, cancellation and history endpoints."""
from __future__ import annotations

import logging
import shutil
from functools import lru_cache
from pathlib import Path
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from redis.exceptions import RedisError

from catalog_import.core.config import get_settings
from catalog_import.schemas.import_job import (
    CancelResponse,
    HistoryItem,
    HistoryResponse,
    JobStatusPayload,
    JobStatusResponse,
    JobSummary,
    UploadResponse,
)
from catalog_import.services.errors import JobNotFoundError
from catalog_import.services.job_controller import ImportJobController

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/upload", tags=["upload"])

ALLOWED_EXTENSION = ".xml"


@lru_cache
def get_job_controller() -> ImportJobController:
    """Dependency returning the process-wide job controller."""
    return ImportJobController()


def _job_not_found(job_id: UUID) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Import job {job_id} not found")


@router.post(
    "/xml",
    response_model=UploadResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload an XML product feed for import",
    description=(
        "Stores the uploaded GEKO XML feed, creates a pending import job and schedules "
        "background processing. Returns immediately with the job id; poll "
        "GET /upload/jobs/{id} for progress."
    ),
)
async def upload_xml(
    xml_file: UploadFile = File(..., alias="xmlFile", description="XML feed to import"),
    skip_images: bool = Form(default=False, alias="skipImages"),
    controller: ImportJobController = Depends(get_job_controller),
) -> UploadResponse:
    """
    Accept an XML feed and start an asynchronous import.

    Steps:
    1. Validate extension and declared size
    2. Save to the upload directory
    3. Re-check the stored size
    4. Create the pending job record
    5. Enqueue the Celery task

    Raises:
        HTTPException: 400 for a non-XML file, 413 if the file is too large, 500 on unexpected errors
    """
    upload_dir = Path(settings.upload_tmp_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    temp_file_path = upload_dir / f"{uuid4()}{ALLOWED_EXTENSION}"
    max_mb = settings.max_upload_size_mb

    try:
        if not xml_file.filename:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename is required")

        if not xml_file.filename.lower().endswith(ALLOWED_EXTENSION):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid file type. Expected .xml, got {xml_file.filename}",
            )

        if xml_file.size is not None and xml_file.size > settings.max_upload_size_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File size ({xml_file.size / (1024 * 1024):.2f} MB) exceeds maximum allowed size ({max_mb} MB)",
            )

        logger.info(f"Saving uploaded feed to {temp_file_path}")
        with open(temp_file_path, "wb") as buffer:
            shutil.copyfileobj(xml_file.file, buffer)

        # Double-check file size after saving (in case client didn't provide size)
        actual_size = temp_file_path.stat().st_size
        if actual_size > settings.max_upload_size_bytes:
            temp_file_path.unlink()
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"File size ({actual_size / (1024 * 1024):.2f} MB) exceeds maximum allowed size ({max_mb} MB)",
            )

        job = controller.create_job(
            xml_file.filename,
            file_size=actual_size,
            options={"skipImages": skip_images},
        )
        try:
            controller.enqueue(job.id, temp_file_path)
        except Exception:
            # nobody will ever pick the job up; close it instead of leaving it pending
            controller.request_cancel(job.id)
            raise

        return UploadResponse(job=JobSummary(id=job.id, status=job.status))

    except HTTPException:
        raise

    except Exception as e:
        logger.exception(f"Unexpected error during XML upload: {e}")
        if temp_file_path.exists():
            temp_file_path.unlink()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to process upload: {str(e)}",
        )

    finally:
        await xml_file.close()


@router.get(
    "/jobs/{job_id}",
    response_model=JobStatusResponse,
    response_model_by_alias=True,
    summary="Get import job status",
)
async def get_job_status(
    job_id: UUID,
    controller: ImportJobController = Depends(get_job_controller),
) -> JobStatusResponse:
    """Polling endpoint; ``result`` is present only once the job has completed."""
    try:
        job = controller.get_job(job_id)
    except JobNotFoundError:
        raise _job_not_found(job_id) from None
    return JobStatusResponse(job=JobStatusPayload.from_job(job))


@router.delete(
    "/jobs/{job_id}",
    response_model=CancelResponse,
    response_model_by_alias=True,
    summary="Cancel an import job",
)
async def cancel_job(
    job_id: UUID,
    controller: ImportJobController = Depends(get_job_controller),
) -> CancelResponse:
    """Request cancellation. Repeating the request, or cancelling a finished job, changes nothing."""
    try:
        job_status = controller.request_cancel(job_id)
    except JobNotFoundError:
        raise _job_not_found(job_id) from None
    except RedisError as e:
        logger.error(f"Could not signal cancellation for job {job_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Cancellation service unavailable, try again",
        ) from e
    return CancelResponse(job=JobSummary(id=job_id, status=job_status))


@router.get(
    "/history",
    response_model=HistoryResponse,
    response_model_by_alias=True,
    summary="List recent import jobs",
)
async def import_history(
    limit: int | None = Query(default=None, ge=1, le=500, description="Maximum number of jobs"),
    controller: ImportJobController = Depends(get_job_controller),
) -> HistoryResponse:
    jobs = controller.list_history(limit)
    return HistoryResponse(history=[HistoryItem.from_job(job) for job in jobs])
