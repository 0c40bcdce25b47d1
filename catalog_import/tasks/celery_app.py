"""Celery application wired to the import task queue configuration."""

from celery import Celery

from catalog_import.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "catalog_import",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.config_from_object("catalog_import.tasks.celery_config")

# Auto-discover tasks from catalog_import.tasks module
celery_app.autodiscover_tasks(["catalog_import.tasks"])


def get_celery_app() -> Celery:
    """Return the configured Celery application instance.

    Useful for dependency injection in tests and for explicit imports.
    """
    return celery_app
