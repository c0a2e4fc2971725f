"""
Durable job queue persisted as a single JSON document in the object store.

Every access is a whole-document read -> in-memory mutate -> whole-document
write. The document carries a version counter that save_state() checks
before writing; this narrows, but does not close, the race between two
processes, so deployments run exactly one worker per store.
"""

import json
import time
import uuid
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from .adapters.base import ObjectStore
from .errors import JobNotFound, JobStoreConflict
from .models import JobFormat, JobQueue, JobRecord, JobStatus

logger = logging.getLogger("shorts_worker")


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds"""
    return int(time.time() * 1000)


def backoff_ms(attempts: int, base_ms: int = 2000, cap_ms: int = 60000) -> int:
    """Delay before the next try after `attempts` failures: min(cap, base * 2^n)"""
    return min(cap_ms, base_ms * (2 ** attempts))


def requeue_stale_claims(state: JobQueue, now: int, older_than_ms: Optional[int] = None) -> int:
    """Move stranded `processing` records in `state` to `retry`, due now"""
    recovered = 0
    for job_id in state.queue:
        job = state.items.get(job_id)
        if not job or job.status != JobStatus.PROCESSING:
            continue
        if older_than_ms is not None and now - (job.updated_at or 0) < older_than_ms:
            continue
        job.status = JobStatus.RETRY
        job.next_try_at = now
        job.updated_at = now
        recovered += 1
    return recovered


class JobStore:
    """Job queue and per-job records stored as one object"""

    def __init__(self, object_store: ObjectStore, key: str = "shorts/_jobs.json",
                 default_max_duration: int = 45, max_duration_limit: int = 180,
                 clock: Callable[[], int] = now_ms):
        self.object_store = object_store
        self.key = key
        self.default_max_duration = default_max_duration
        self.max_duration_limit = max_duration_limit
        self.clock = clock
        self._lock = threading.RLock()

    def _read_document(self) -> Optional[dict]:
        raw = self.object_store.get(self.key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Job document {self.key} is not valid JSON: {e}")
            raise

    def load_state(self) -> JobQueue:
        """Load the queue; a missing document is an empty queue"""
        document = self._read_document()
        if document is None:
            return JobQueue()
        return JobQueue.from_document(document)

    def save_state(self, state: JobQueue) -> None:
        """
        Persist the queue if nobody else wrote since it was loaded.

        Raises:
            JobStoreConflict: the stored version differs from state.version
        """
        with self._lock:
            current = self._read_document()
            stored_version = int(current.get('version', 0)) if current else 0
            if stored_version != state.version:
                raise JobStoreConflict(
                    "Job document changed since load",
                    f"expected version {state.version}, found {stored_version}"
                )

            document = state.to_document()
            document['version'] = state.version + 1
            self.object_store.put(
                self.key,
                json.dumps(document, indent=2).encode('utf-8'),
                'application/json'
            )
            state.version += 1

    @contextmanager
    def transaction(self) -> Iterator[JobQueue]:
        """Load, let the caller mutate, then save if anything changed; serialized within this process"""
        with self._lock:
            state = self.load_state()
            before = state.to_document()
            yield state
            if state.to_document() != before:
                self.save_state(state)

    def enqueue(self, source_key: str, title: Optional[str] = None,
                max_duration_seconds: Optional[int] = None,
                format: str = JobFormat.SHORT) -> JobRecord:
        """Validate and append a new job to the queue"""
        if not isinstance(source_key, str) or not source_key.strip():
            raise ValueError("sourceKey is required")
        if format not in JobFormat.ALL:
            raise ValueError(f"Unsupported format: {format}")

        if max_duration_seconds is None:
            max_duration_seconds = self.default_max_duration
        max_duration_seconds = int(max_duration_seconds)
        if max_duration_seconds <= 0:
            raise ValueError("maxDurationSeconds must be positive")
        max_duration_seconds = min(max_duration_seconds, self.max_duration_limit)

        now = self.clock()
        job = JobRecord(
            id=f"{now}-{uuid.uuid4().hex[:6]}",
            source_key=source_key.strip(),
            title=title or None,
            max_duration_seconds=max_duration_seconds,
            format=format,
            status=JobStatus.QUEUED,
            attempts=0,
            next_try_at=now,
            created_at=now,
            updated_at=now,
        )

        with self.transaction() as state:
            state.items[job.id] = job
            state.queue.append(job.id)

        logger.info(f"Enqueued job {job.id} for {job.source_key} ({job.format}, {max_duration_seconds}s)")
        return job

    def get_status(self, job_id: str) -> JobRecord:
        """
        Get the record for a job.

        Raises:
            JobNotFound: no record with that id
        """
        job = self.load_state().items.get(job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")
        return job

    def list_jobs(self, status: Optional[str] = None) -> List[JobRecord]:
        """All records, oldest first, optionally filtered by status"""
        jobs = sorted(self.load_state().items.values(), key=lambda job: job.created_at)
        if status:
            jobs = [job for job in jobs if job.status == status]
        return jobs

    def recover_stale(self, older_than_ms: Optional[int] = None) -> int:
        """
        Put records left in `processing` back up for retry.

        This is the one transition outside the normal tick path: a claim whose
        outcome was never written goes processing -> retry with nextTryAt=now
        and its attempt count unchanged.

        Args:
            older_than_ms: Only recover claims not updated for this long; None
                recovers every processing record (startup, nothing in flight)

        Returns:
            Number of records recovered
        """
        with self.transaction() as state:
            recovered = requeue_stale_claims(state, self.clock(), older_than_ms)

        if recovered:
            logger.warning(f"Recovered {recovered} job(s) left in processing")
        return recovered
