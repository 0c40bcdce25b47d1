"""Services module for the XML import pipeline."""
from __future__ import annotations

from .entity_resolver import EntityResolver, ReferenceCache, ResolvedEntitySet
from .errors import (
    CatalogImportError,
    FatalParseError,
    ItemError,
    ItemParseError,
    ItemPersistenceError,
    ItemValidationError,
    JobNotFoundError,
)
from .feed_parser import GekoFeedParser, ParseComplete, RawItem
from .import_repository import ImportRepository
from .job_controller import ImportJobController
from .upsert_engine import CatalogUpsertEngine, UpsertOutcome

__all__ = [
    "CatalogImportError",
    "CatalogUpsertEngine",
    "EntityResolver",
    "FatalParseError",
    "GekoFeedParser",
    "ImportJobController",
    "ImportRepository",
    "ItemError",
    "ItemParseError",
    "ItemPersistenceError",
    "ItemValidationError",
    "JobNotFoundError",
    "ParseComplete",
    "RawItem",
    "ReferenceCache",
    "ResolvedEntitySet",
    "UpsertOutcome",
]
