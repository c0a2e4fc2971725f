"""
Pipeline orchestration and execution management.

Runs the per-tick state machine: claim the first eligible job, render it,
then write the outcome back as attempt/backoff bookkeeping. The tick is the
single catch boundary for everything the render pipeline raises.
"""

import time
import logging
import threading
from typing import Optional, Dict, Any
from datetime import datetime

from .models import JobQueue, JobRecord, JobStatus, ProcessingResult
from .job_store import JobStore, backoff_ms, requeue_stale_claims
from .processor import ShortsProcessor
from .config import WorkerConfig
from .errors import JobStoreConflict
from .logging_setup import log_exception

logger = logging.getLogger("shorts_worker")

OUTCOME_WRITE_ATTEMPTS = 3
OUTCOME_RETRY_DELAY_SEC = 0.5
STALE_CLAIM_MARGIN_MS = 60_000


class PipelineOrchestrator:
    """Manages tick execution and job bookkeeping"""

    def __init__(self, config: WorkerConfig, job_store: JobStore, processor: ShortsProcessor):
        self.config = config
        self.job_store = job_store
        self.processor = processor
        self._render_guard = threading.Lock()
        self.stats = self._fresh_stats()

    @staticmethod
    def _fresh_stats() -> Dict[str, Any]:
        return {
            'ticks': 0,
            'ticks_skipped': 0,
            'jobs_processed': 0,
            'jobs_succeeded': 0,
            'jobs_failed': 0,
            'total_processing_time': 0.0,
            'last_job_id': None,
            'start_time': datetime.now()
        }

    @property
    def busy(self) -> bool:
        return self._render_guard.locked()

    def tick(self) -> Optional[str]:
        """
        Process at most one eligible job.

        Returns:
            The id of the job that was processed, or None when the tick was a
            no-op (nothing eligible, a render already in flight, or a store
            conflict)
        """
        if not self._render_guard.acquire(blocking=False):
            self.stats['ticks_skipped'] += 1
            logger.debug("Tick skipped: a render is still in flight")
            return None

        try:
            self.stats['ticks'] += 1
            job = self._claim_next()
            if job is None:
                return None
            self.execute_pipeline(job)
            return job.id
        except JobStoreConflict as e:
            logger.warning(f"Tick abandoned on job store conflict: {e}")
            return None
        except Exception as e:
            log_exception(logger, f"Unexpected error during tick: {e}")
            return None
        finally:
            self._render_guard.release()

    @property
    def stale_claim_ms(self) -> int:
        """Age after which a `processing` record is treated as a lost claim"""
        return self.config.ENCODER_TIMEOUT_SEC * 1000 + STALE_CLAIM_MARGIN_MS

    def _claim_next(self) -> Optional[JobRecord]:
        """Mark the first eligible job processing and persist before any work"""
        with self.job_store.transaction() as state:
            now = self.job_store.clock()
            # the render guard is held, so any old processing record is stranded
            recovered = requeue_stale_claims(state, now, self.stale_claim_ms)
            if recovered:
                logger.warning(f"Requeued {recovered} stranded claim(s) for retry")
            job = state.next_eligible(now)
            if job is None:
                return None
            job.status = JobStatus.PROCESSING
            job.updated_at = now

        logger.info(f"CLAIMED: job {job.id} ({job.source_key}, attempt {job.attempts + 1})")
        return job

    def execute_pipeline(self, job: JobRecord) -> ProcessingResult:
        """
        Execute the render pipeline for a claimed job and record the outcome.

        Args:
            job: Job already marked processing

        Returns:
            ProcessingResult with execution details
        """
        start_time = time.time()

        try:
            result = self.processor.process_job(job)
        except Exception as e:
            error_msg = f"Unexpected error in pipeline execution: {e}"
            log_exception(logger, error_msg)
            result = ProcessingResult(
                success=False,
                stages_completed=[],
                error=error_msg,
                metrics={'processing_time_sec': time.time() - start_time}
            )

        processing_time = time.time() - start_time
        self.stats['jobs_processed'] += 1
        self.stats['total_processing_time'] += processing_time
        self.stats['last_job_id'] = job.id
        if result.success:
            self.stats['jobs_succeeded'] += 1
        else:
            self.stats['jobs_failed'] += 1

        self._record_outcome(job.id, result)
        return result

    def _record_outcome(self, job_id: str, result: ProcessingResult) -> None:
        """
        Reload the document and write the outcome.

        Conflicts and store errors are retried with a short linear backoff.
        If every write fails the claim stays `processing` until it is old
        enough for _claim_next() to requeue it.
        """
        for attempt in range(1, OUTCOME_WRITE_ATTEMPTS + 1):
            try:
                with self.job_store.transaction() as state:
                    self._apply_outcome(state, job_id, result)
                return
            except JobStoreConflict as e:
                logger.warning(
                    f"Conflict writing outcome for job {job_id} "
                    f"(attempt {attempt}/{OUTCOME_WRITE_ATTEMPTS}): {e}"
                )
            except Exception as e:
                logger.warning(
                    f"Store error writing outcome for job {job_id} "
                    f"(attempt {attempt}/{OUTCOME_WRITE_ATTEMPTS}): {e}"
                )
            if attempt < OUTCOME_WRITE_ATTEMPTS:
                time.sleep(OUTCOME_RETRY_DELAY_SEC * attempt)
        raise JobStoreConflict(f"Could not record outcome for job {job_id}")

    def _apply_outcome(self, state: JobQueue, job_id: str, result: ProcessingResult) -> None:
        job = state.items.get(job_id)
        if job is None:
            logger.error(f"Job {job_id} disappeared from the job document during render")
            return
        if job.is_terminal:
            logger.warning(f"Job {job_id} is already {job.status}, outcome discarded")
            return

        now = self.job_store.clock()
        job.updated_at = now

        if result.success:
            job.status = JobStatus.DONE
            job.output = result.output_key
            job.output_url = result.output_url
            job.caption = result.caption
            job.error = None
            state.dequeue(job_id)
            logger.info(f"Job {job_id} done: {result.output_key}")
            return

        self._handle_failure(state, job, result, now)

    def _handle_failure(self, state: JobQueue, job: JobRecord, result: ProcessingResult, now: int) -> None:
        """
        Apply retry logic to a failed attempt.

        Every failure consumes an attempt. Non-retryable failures and jobs
        that reached MAX_RETRIES become terminal errors.
        """
        job.attempts += 1
        job.error = result.error

        if not result.retryable or job.attempts >= self.config.MAX_RETRIES:
            job.status = JobStatus.ERROR
            state.dequeue(job.id)
            logger.error(
                f"Job {job.id} failed permanently after {job.attempts} attempt(s): {result.error}"
            )
            return

        delay = backoff_ms(job.attempts, self.config.BACKOFF_BASE_MS, self.config.BACKOFF_CAP_MS)
        job.status = JobStatus.RETRY
        job.next_try_at = now + delay
        logger.warning(
            f"Job {job.id} failed (attempt {job.attempts}/{self.config.MAX_RETRIES}), "
            f"retrying in {delay}ms: {result.error}"
        )

    def get_stats(self) -> Dict[str, Any]:
        """Get orchestrator statistics"""
        uptime = (datetime.now() - self.stats['start_time']).total_seconds()
        processed = self.stats['jobs_processed']
        avg_processing_time = (
            self.stats['total_processing_time'] / processed if processed > 0 else 0
        )

        return {
            'ticks': self.stats['ticks'],
            'ticks_skipped': self.stats['ticks_skipped'],
            'jobs_processed': processed,
            'jobs_succeeded': self.stats['jobs_succeeded'],
            'jobs_failed': self.stats['jobs_failed'],
            'total_processing_time': self.stats['total_processing_time'],
            'average_processing_time': avg_processing_time,
            'last_job_id': self.stats['last_job_id'],
            'busy': self.busy,
            'uptime_seconds': uptime,
            'success_rate': self.stats['jobs_succeeded'] / processed if processed > 0 else 0
        }

    def reset_stats(self) -> None:
        """Reset orchestrator statistics"""
        self.stats = self._fresh_stats()
        logger.info("Orchestrator statistics reset")
