"""Tests for the Celery XML import task."""
from __future__ import annotations

from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
from celery.exceptions import SoftTimeLimitExceeded

from catalog_import.models.import_job import ImportStatus
from catalog_import.services.errors import JobNotFoundError
from catalog_import.tasks.celery_app import celery_app
from catalog_import.tasks.import_tasks import build_controller, process_xml_import


class TestTaskRegistration:
    def test_task_is_registered_under_routed_name(self):
        assert "catalog_import.tasks.import_tasks.process_xml_import" in celery_app.tasks

    def test_task_is_routed_to_import_queue(self):
        routes = celery_app.conf.task_routes

        assert routes["catalog_import.tasks.import_tasks.process_xml_import"]["queue"] == "import_queue"

    def test_task_acks_late_and_is_not_retried(self):
        assert process_xml_import.acks_late is True
        assert celery_app.conf.task_max_retries == 0


class TestProcessXmlImport:
    """Tests for the task wrapper around ImportJobController.run."""

    @patch("catalog_import.tasks.import_tasks.build_controller")
    def test_returns_final_status(self, mock_build):
        job_id = str(uuid4())
        mock_build.return_value.run.return_value = ImportStatus.COMPLETED

        result = process_xml_import.run(job_id, "/tmp/feed.xml")

        assert result == {"status": "completed", "job_id": job_id}
        mock_build.return_value.run.assert_called_once_with(job_id, "/tmp/feed.xml")

    @patch("catalog_import.tasks.import_tasks.build_controller")
    def test_missing_job_is_reported_not_raised(self, mock_build):
        job_id = str(uuid4())
        mock_build.return_value.run.side_effect = JobNotFoundError(job_id)

        result = process_xml_import.run(job_id, "/tmp/feed.xml")

        assert result == {"status": "missing", "job_id": job_id}

    @patch("catalog_import.tasks.import_tasks.build_controller")
    def test_engine_errors_propagate(self, mock_build):
        mock_build.return_value.run.side_effect = RuntimeError("database went away")

        with pytest.raises(RuntimeError):
            process_xml_import.run(str(uuid4()), "/tmp/feed.xml")

    @patch("catalog_import.tasks.import_tasks.build_controller")
    def test_soft_time_limit_propagates(self, mock_build):
        mock_build.return_value.run.side_effect = SoftTimeLimitExceeded()

        with pytest.raises(SoftTimeLimitExceeded):
            process_xml_import.run(str(uuid4()), "/tmp/feed.xml")

    def test_runs_real_job_end_to_end(self, controller, write_feed, product_xml):
        path = write_feed(product_xml("P1"), product_xml("P2"))
        job = controller.create_job(path.name)

        with patch("catalog_import.tasks.import_tasks.build_controller", return_value=controller):
            result = process_xml_import.run(str(job.id), str(path))

        assert result["status"] == "completed"
        assert controller.get_job(job.id).stats["importedProducts"] == 2
        assert not path.exists()


class TestBuildController:
    @patch("catalog_import.tasks.import_tasks.create_redis_client")
    def test_wires_cancellation_from_settings(self, mock_redis):
        mock_redis.return_value = MagicMock()

        controller = build_controller()

        mock_redis.assert_called_once()
        assert controller._cancellation._redis is mock_redis.return_value
