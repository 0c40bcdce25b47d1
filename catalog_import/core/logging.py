"""Process-wide logging setup shared by the API and the Celery worker."""
from __future__ import annotations

import logging

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    """Install a single stream handler on the root logger.

    Calling this more than once only adjusts the level, so importing the app
    from tests or scripts never stacks duplicate handlers.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)

    if not any(getattr(handler, "_catalog_import", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._catalog_import = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    # SQL echo is far too chatty for per-item imports
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
