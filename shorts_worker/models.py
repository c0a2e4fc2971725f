"""
Domain models for the shorts worker.

Defines the core data structures used throughout the system,
providing type safety and clear interfaces between components.
The job document keeps the camelCase field names used on the wire.
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List


class JobStatus:
    """Job lifecycle states"""
    QUEUED = "queued"
    PROCESSING = "processing"
    RETRY = "retry"
    DONE = "done"
    ERROR = "error"

    ELIGIBLE = (QUEUED, RETRY)
    TERMINAL = (DONE, ERROR)
    ALL = (QUEUED, PROCESSING, RETRY, DONE, ERROR)


class JobFormat:
    """Output formats"""
    SHORT = "short"
    VIDEO = "video"

    ALL = (SHORT, VIDEO)


@dataclass
class JobRecord:
    """Represents one request to render a video from one audio source"""
    id: str
    source_key: str
    max_duration_seconds: int
    created_at: int
    next_try_at: int
    status: str = JobStatus.QUEUED
    attempts: int = 0
    title: Optional[str] = None
    format: str = JobFormat.SHORT
    updated_at: Optional[int] = None
    output: Optional[str] = None
    output_url: Optional[str] = None
    caption: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'sourceKey': self.source_key,
            'title': self.title,
            'maxDurationSeconds': self.max_duration_seconds,
            'format': self.format,
            'status': self.status,
            'attempts': self.attempts,
            'nextTryAt': self.next_try_at,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
            'output': self.output,
            'outputUrl': self.output_url,
            'caption': self.caption,
            'error': self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JobRecord':
        return cls(
            id=str(data['id']),
            source_key=data['sourceKey'],
            title=data.get('title'),
            max_duration_seconds=int(data.get('maxDurationSeconds', 45)),
            format=data.get('format', JobFormat.SHORT),
            status=data.get('status', JobStatus.QUEUED),
            attempts=int(data.get('attempts', 0)),
            next_try_at=int(data.get('nextTryAt', 0)),
            created_at=int(data.get('createdAt', 0)),
            updated_at=data.get('updatedAt'),
            output=data.get('output'),
            output_url=data.get('outputUrl'),
            caption=data.get('caption'),
            error=data.get('error'),
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in JobStatus.TERMINAL

    def is_eligible(self, now_ms: int) -> bool:
        return self.status in JobStatus.ELIGIBLE and self.next_try_at <= now_ms


@dataclass
class JobQueue:
    """The whole persisted job document: FIFO id queue plus every record"""
    queue: List[str] = field(default_factory=list)
    items: Dict[str, JobRecord] = field(default_factory=dict)
    version: int = 0

    def to_document(self) -> Dict[str, Any]:
        return {
            'version': self.version,
            'queue': list(self.queue),
            'items': {job_id: job.to_dict() for job_id, job in self.items.items()},
        }

    @classmethod
    def from_document(cls, data: Dict[str, Any]) -> 'JobQueue':
        items = {
            str(job_id): JobRecord.from_dict(record)
            for job_id, record in (data.get('items') or {}).items()
        }
        return cls(
            queue=[str(job_id) for job_id in data.get('queue') or []],
            items=items,
            version=int(data.get('version', 0)),
        )

    def next_eligible(self, now_ms: int) -> Optional[JobRecord]:
        """First queued id whose record may run now, in FIFO order"""
        for job_id in self.queue:
            job = self.items.get(job_id)
            if job and job.is_eligible(now_ms):
                return job
        return None

    def dequeue(self, job_id: str) -> None:
        self.queue = [queued for queued in self.queue if queued != job_id]


@dataclass
class CaptionSegment:
    """Raw transcription unit in source-audio seconds"""
    start: float
    end: float
    text: str


@dataclass
class CaptionLine:
    """Merged display unit burned into frames during [start, end)"""
    start: float
    end: float
    text: str


@dataclass
class ClipWindow:
    """Portion of the source audio that gets rendered"""
    start: int
    duration: int


@dataclass
class RenderResult:
    """Represents the outcome of a successful encoder run"""
    output_path: str
    variant: str
    visualization: str
    captions_burned: bool


@dataclass
class PublishResult:
    """Where the artifact ended up"""
    key: str
    url: str
    caption_key: Optional[str] = None


@dataclass
class ProcessingResult:
    """Represents the result of processing one job attempt"""
    success: bool
    stages_completed: List[str]
    output_key: Optional[str] = None
    output_url: Optional[str] = None
    caption: Optional[str] = None
    error: Optional[str] = None
    retryable: bool = True
    metrics: Dict[str, Any] = field(default_factory=dict)
