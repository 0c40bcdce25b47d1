"""Public schema exports."""

from .feed import (
    DocumentPayload,
    ImagePayload,
    PricePayload,
    ProductPayload,
    PropertyPayload,
    ReferencePayload,
    VariantPayload,
)
from .import_job import (
    CancelResponse,
    HistoryItem,
    HistoryResponse,
    ImportJobResponse,
    ImportResult,
    JobStatusPayload,
    JobStatusResponse,
    JobSummary,
    UploadResponse,
)

__all__ = [
    "DocumentPayload",
    "ImagePayload",
    "PricePayload",
    "ProductPayload",
    "PropertyPayload",
    "ReferencePayload",
    "VariantPayload",
    "CancelResponse",
    "HistoryItem",
    "HistoryResponse",
    "ImportJobResponse",
    "ImportResult",
    "JobStatusPayload",
    "JobStatusResponse",
    "JobSummary",
    "UploadResponse",
]
