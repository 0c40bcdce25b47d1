"""Persistence of import job records.

Every state transition is a single conditional ``UPDATE`` so that the worker,
the polling API and cancellation requests never observe or produce a status
regression. The repository never commits; callers own the transaction.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from catalog_import.models.import_job import ImportJob, ImportStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportRepository:
    """Handles reads and guarded state changes for ImportJob entities."""

    def __init__(self, session: Session) -> None:
        """Initialize repository with a SQLAlchemy session.

        Args:
            session: Active database session for executing queries
        """
        self._session = session

    def create(self, filename: str, *, file_size: int | None = None, options: dict[str, Any] | None = None) -> ImportJob:
        """Insert a new ``pending`` job.

        Args:
            filename: Original filename supplied during upload
            file_size: Size of the stored upload in bytes
            options: Import options such as ``{"skipImages": True}``

        Returns:
            Newly created ImportJob instance with generated ID
        """
        job = ImportJob(
            filename=filename,
            file_size=file_size,
            options=dict(options or {}),
            status=ImportStatus.PENDING,
            progress=0,
            processed_items=0,
            stats={},
            item_errors=[],
        )
        self._session.add(job)
        self._session.flush()
        self._session.refresh(job)
        return job

    def get_by_id(self, job_id: UUID) -> ImportJob | None:
        """Fetch an import job by its UUID.

        Args:
            job_id: Import job identifier

        Returns:
            ImportJob instance if found, None otherwise
        """
        return self._session.get(ImportJob, job_id)

    def get_recent(self, limit: int = 50) -> list[ImportJob]:
        """Fetch recent import jobs, newest first."""

        stmt = select(ImportJob).order_by(ImportJob.created_at.desc()).limit(limit)
        return list(self._session.scalars(stmt))

    def _transition(self, job_id: UUID, from_status: ImportStatus, **values: Any) -> bool:
        stmt = (
            update(ImportJob)
            .where(ImportJob.id == job_id, ImportJob.status == from_status)
            .values(updated_at=_utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount == 1

    def mark_processing(self, job_id: UUID) -> bool:
        """Move ``pending`` to ``processing``; False if the job was not pending."""

        return self._transition(
            job_id,
            ImportStatus.PENDING,
            status=ImportStatus.PROCESSING,
            started_at=_utcnow(),
        )

    def set_total_items(self, job_id: UUID, total_items: int, *, stats: dict[str, int] | None = None) -> bool:
        values: dict[str, Any] = {"total_items": total_items}
        if stats is not None:
            values["stats"] = dict(stats)
        return self._transition(job_id, ImportStatus.PROCESSING, **values)

    def record_progress(
        self,
        job_id: UUID,
        *,
        processed_items: int,
        progress: int,
        stats: dict[str, int],
        item_errors: list[dict[str, Any]] | None = None,
    ) -> bool:
        """Store a progress snapshot for a ``processing`` job.

        ``progress`` only ever moves forward: a smaller value than the stored
        one is ignored by the database.

        Returns:
            True when the job was still processing and the row was updated
        """
        values: dict[str, Any] = {
            "processed_items": processed_items,
            "stats": dict(stats),
            "progress": case((ImportJob.progress < progress, progress), else_=ImportJob.progress),
        }
        if item_errors is not None:
            values["item_errors"] = list(item_errors)
        return self._transition(job_id, ImportStatus.PROCESSING, **values)

    def finalize(
        self,
        job_id: UUID,
        status: ImportStatus,
        *,
        duration: float | None = None,
        error_message: str | None = None,
        progress: int | None = None,
    ) -> bool:
        """Move a ``processing`` job to a terminal status.

        Raises:
            ValueError: If ``status`` is not terminal
        """
        if not status.is_terminal:
            msg = f"{status.value} is not a terminal status"
            raise ValueError(msg)

        values: dict[str, Any] = {
            "status": status,
            "completed_at": _utcnow(),
            "duration": duration,
            "error_message": error_message,
        }
        if progress is not None:
            values["progress"] = progress
        return self._transition(job_id, ImportStatus.PROCESSING, **values)

    def cancel_pending(self, job_id: UUID) -> bool:
        """Cancel a job that has not started; False if it is no longer pending."""

        return self._transition(
            job_id,
            ImportStatus.PENDING,
            status=ImportStatus.CANCELLED,
            completed_at=_utcnow(),
        )
