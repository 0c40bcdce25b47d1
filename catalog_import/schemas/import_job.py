"""Pydantic schemas describing import job payloads."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from catalog_import.models.import_job import ImportStatus


class CamelModel(BaseModel):
    """Base for wire models: snake_case in Python, camelCase in JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ImportJobResponse(CamelModel):
    """Full snapshot of an import job, detached from the database session."""

    id: UUID
    filename: str
    file_size: int | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    status: ImportStatus
    progress: int = Field(ge=0, le=100)
    total_items: int | None = Field(default=None, ge=0)
    processed_items: int = Field(ge=0)
    stats: dict[str, int] = Field(default_factory=dict)
    item_errors: list[dict[str, Any]] = Field(default_factory=list)
    error_message: str | None = None
    duration: float | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None


class JobSummary(CamelModel):
    id: UUID
    status: ImportStatus


class ImportResult(CamelModel):
    """Outcome details exposed once a job has completed."""

    duration: float | None = None
    stats: dict[str, int]
    item_errors: list[dict[str, Any]] = Field(default_factory=list)


class JobStatusPayload(CamelModel):
    """What polling clients see under ``job``."""

    id: UUID
    status: ImportStatus
    progress: int
    stats: dict[str, int] = Field(default_factory=dict)
    error: str | None = None
    result: ImportResult | None = None
    file_name: str
    total_items: int | None = None
    items_processed: int = 0
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_job(cls, job: ImportJobResponse) -> "JobStatusPayload":
        result = None
        if job.status == ImportStatus.COMPLETED:
            result = ImportResult(duration=job.duration, stats=job.stats, item_errors=job.item_errors)
        return cls(
            id=job.id,
            status=job.status,
            progress=job.progress,
            stats=job.stats,
            error=job.error_message,
            result=result,
            file_name=job.filename,
            total_items=job.total_items,
            items_processed=job.processed_items,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class HistoryItem(CamelModel):
    id: UUID
    file_name: str
    created_at: datetime
    status: ImportStatus
    items_processed: int
    errors_count: int = 0

    @classmethod
    def from_job(cls, job: ImportJobResponse) -> "HistoryItem":
        return cls(
            id=job.id,
            file_name=job.filename,
            created_at=job.created_at,
            status=job.status,
            items_processed=job.processed_items,
            errors_count=job.stats.get("errorsCount", 0),
        )


class UploadResponse(CamelModel):
    success: bool = True
    job: JobSummary


class JobStatusResponse(CamelModel):
    success: bool = True
    job: JobStatusPayload


class CancelResponse(CamelModel):
    success: bool = True
    job: JobSummary


class HistoryResponse(CamelModel):
    success: bool = True
    history: list[HistoryItem]
