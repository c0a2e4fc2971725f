"""
Tests for service wiring, the timer loop and logging setup.
"""

import logging
import threading
import time

import pytest

from shorts_worker.adapters.local_adapter import LocalObjectStore
from shorts_worker.logging_setup import log_exception, setup_logging
from shorts_worker.models import JobStatus
from shorts_worker.service import WorkerService


@pytest.fixture
def service(config):
    config.POLL_INTERVAL_MS = 10
    worker = WorkerService(config)
    worker.initialize(configure_logging=False)
    yield worker
    worker.stop()


class TestWorkerService:
    """Test initialization and the polling loop."""

    def test_initialize_local_store(self, service):
        assert isinstance(service.object_store, LocalObjectStore)
        assert service.job_store.key == "shorts/_jobs.json"
        assert service.health_server is None

    def test_run_once_without_jobs(self, service):
        assert service.run_once() is False

    def test_start_recovers_and_stops(self, service):
        job = service.job_store.enqueue("audio/missing.mp3")
        with service.job_store.transaction() as state:
            state.items[job.id].status = JobStatus.PROCESSING

        loop = threading.Thread(target=service.start)
        loop.start()
        try:
            # the recovered job is retried, hits the missing source and is failed
            for _ in range(200):
                if service.job_store.get_status(job.id).status == JobStatus.ERROR:
                    break
                time.sleep(0.01)
        finally:
            service.stop()
            loop.join(timeout=5)

        assert not loop.is_alive()
        assert service.job_store.get_status(job.id).status == JobStatus.ERROR

    def test_stats(self, service):
        stats = service.get_stats()
        assert stats["config"]["storage_type"] == "local"
        assert stats["orchestrator"]["jobs_processed"] == 0

    def test_invalid_config_fails_fast(self, config):
        config.STORAGE_TYPE = "ftp"
        with pytest.raises(ValueError):
            WorkerService(config).initialize(configure_logging=False)


class TestLogging:
    """Test the rotating file logger."""

    def test_log_file_created(self, tmp_path):
        logger = setup_logging("DEBUG", str(tmp_path))
        try:
            logger.info("hello")
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                log_exception(logger, "failed")
            for handler in logger.handlers:
                handler.flush()

            content = (tmp_path / "worker" / "log.log").read_text()
            assert "hello" in content
            assert "RuntimeError: boom" in content
        finally:
            for handler in logger.handlers[:]:
                handler.close()
                logger.removeHandler(handler)
            logger.setLevel(logging.NOTSET)
