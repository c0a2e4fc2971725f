"""
Main worker service.

Wires the object store, job store, render pipeline and orchestrator
together and drives the orchestrator on a fixed timer.
"""

import signal
import sys
import logging
import threading
from typing import Optional, Dict, Any

from .config import WorkerConfig
from .adapters.base import ObjectStore
from .adapters.local_adapter import LocalObjectStore
from .adapters.s3_adapter import S3ObjectStore
from .job_store import JobStore
from .processor import ShortsProcessor
from .orchestrator import PipelineOrchestrator
from .pipeline.util import get_work_dir
from .logging_setup import setup_logging, log_exception
from .http_server import start_health_server

logger = logging.getLogger("shorts_worker")


class WorkerService:
    """Main worker service: one timer, one render at a time"""

    def __init__(self, config: Optional[WorkerConfig] = None):
        self.config = config or WorkerConfig.from_env()
        self.object_store: Optional[ObjectStore] = None
        self.job_store: Optional[JobStore] = None
        self.orchestrator: Optional[PipelineOrchestrator] = None
        self.health_server = None
        self.running = False
        self._stop_event = threading.Event()

    def initialize(self, configure_logging: bool = True):
        """Initialize stores and pipeline based on configuration"""
        try:
            # Setup logging
            if configure_logging:
                setup_logging(self.config.LOG_LEVEL, self.config.DATA_DIR)

            # Validate configuration
            self.config.validate()

            # Initialize stores
            self.object_store = self._create_object_store()
            self.object_store.connect()
            self.job_store = JobStore(
                self.object_store,
                key=self.config.JOB_STORE_KEY,
                default_max_duration=self.config.DEFAULT_MAX_DURATION,
                max_duration_limit=self.config.MAX_DURATION_LIMIT
            )

            # Initialize orchestrator
            processor = ShortsProcessor(
                self.config,
                self.object_store,
                work_dir=get_work_dir(self.config.DATA_DIR)
            )
            self.orchestrator = PipelineOrchestrator(self.config, self.job_store, processor)

            # Start dev server if enabled
            self.health_server = start_health_server(
                self.job_store,
                self.orchestrator,
                self.get_stats,
                enabled=self.config.ENABLE_HTTP_SERVER,
                port=self.config.HTTP_PORT
            )

            logger.info(f"Worker service initialized with {self.config.STORAGE_TYPE} storage")

        except Exception as e:
            log_exception(logger, f"Failed to initialize worker service: {e}")
            raise

    def _create_object_store(self) -> ObjectStore:
        """Create object store adapter based on configuration"""
        config = self.config.STORAGE_CONFIG

        if self.config.STORAGE_TYPE == "s3":
            return S3ObjectStore(
                bucket=config["bucket"],
                region=config.get("region", "auto"),
                endpoint=config.get("endpoint"),
                access_key_id=config.get("access_key_id"),
                secret_access_key=config.get("secret_access_key"),
                public_base=config.get("public_base", "")
            )

        elif self.config.STORAGE_TYPE == "local":
            return LocalObjectStore(
                root=config["root"],
                public_base=config.get("public_base", "")
            )

        else:
            raise ValueError(f"Unsupported storage type: {self.config.STORAGE_TYPE}")

    def start(self):
        """Start the worker service; blocks until stop() is called"""
        if self.running:
            logger.warning("Worker service is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.job_store.recover_stale()
        logger.info("Worker service started")
        self._start_polling_loop()

    def _start_polling_loop(self):
        """Tick on a fixed interval until stopped"""
        interval = self.config.POLL_INTERVAL_MS / 1000.0
        logger.info(f"Worker started, ticking every {interval:.1f}s")

        while self.running:
            self.run_once()
            if self._stop_event.wait(interval):
                break

        logger.info("Worker polling loop stopped")

    def run_once(self) -> bool:
        """
        Run one tick of the worker loop.

        Returns:
            True if a job was processed, False otherwise
        """
        try:
            return self.orchestrator.tick() is not None
        except Exception as e:
            log_exception(logger, f"Error in worker loop: {str(e)}")
            return False

    def stop(self):
        """Stop the worker service"""
        self.running = False
        self._stop_event.set()

        # Stop dev server
        if self.health_server:
            self.health_server.stop()
            self.health_server = None

        if self.object_store:
            self.object_store.close()

        logger.info("Worker service stopped")

    def get_stats(self) -> Dict[str, Any]:
        """Get worker statistics"""
        stats = {
            'running': self.running,
            'config': {
                'storage_type': self.config.STORAGE_TYPE,
                'job_store_key': self.config.JOB_STORE_KEY,
                'poll_interval_ms': self.config.POLL_INTERVAL_MS,
                'max_retries': self.config.MAX_RETRIES,
                'visualization': self.config.VISUALIZATION,
                'transcription_enabled': self.config.ENABLE_TRANSCRIPTION
            }
        }

        if self.orchestrator:
            stats['orchestrator'] = self.orchestrator.get_stats()

        return stats

    def reset_stats(self):
        """Reset worker statistics"""
        if self.orchestrator:
            self.orchestrator.reset_stats()
        logger.info("Worker statistics reset")


def signal_handler(signum, frame):
    """Handle shutdown signals"""
    logger.info(f"Received signal {signum}, shutting down...")
    sys.exit(0)


def main():
    """Main entry point"""
    # Setup signal handlers
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    worker = WorkerService()

    try:
        worker.initialize()
        worker.start()
    except Exception as e:
        log_exception(logger, f"Worker failed to start: {str(e)}")
        sys.exit(1)
    finally:
        worker.stop()


if __name__ == "__main__":
    main()
