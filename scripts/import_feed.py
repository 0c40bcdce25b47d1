#!/usr/bin/env python3
"""Import a local GEKO XML feed synchronously, without Celery.

Creates a regular import job (visible in the upload history) and runs the
worker loop in-process. The feed is copied first because a finished job
deletes its upload.

Usage:
    python scripts/import_feed.py path/to/feed.xml [--skip-images]
"""
import argparse
import json
import logging
import shutil
import sys
from pathlib import Path
from uuid import uuid4

# Add parent directory to path so we can import catalog_import modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from catalog_import.core.config import get_settings
from catalog_import.core.logging import configure_logging
from catalog_import.models.import_job import ImportStatus
from catalog_import.services.job_controller import ImportJobController

logger = logging.getLogger("import_feed")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a catalog XML import in the foreground")
    parser.add_argument("feed", type=Path, help="XML feed file")
    parser.add_argument("--skip-images", action="store_true", help="Parse but do not store product images")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    if not args.feed.is_file():
        logger.error(f"Feed not found: {args.feed}")
        return 2

    upload_dir = Path(settings.upload_tmp_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    working_copy = upload_dir / f"{uuid4()}.xml"
    shutil.copyfile(args.feed, working_copy)

    controller = ImportJobController(settings=settings)
    job = controller.create_job(
        args.feed.name,
        file_size=working_copy.stat().st_size,
        options={"skipImages": args.skip_images},
    )
    status = controller.run(job.id, working_copy)

    job = controller.get_job(job.id)
    print(json.dumps({"id": str(job.id), "status": status.value, "error": job.error_message, "stats": job.stats}, indent=2))
    return 0 if status == ImportStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
