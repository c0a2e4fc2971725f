"""
Error taxonomy for the shorts worker.

Every failure raised inside the render pipeline derives from WorkerError so
the orchestrator can turn it into attempt/backoff bookkeeping. The
`retryable` flag decides whether a job failure is retried or made terminal.
"""

from typing import Optional


class WorkerError(Exception):
    """Base class for all worker errors"""

    retryable: bool = True

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def __str__(self) -> str:
        if self.detail:
            return f"{self.message}: {self.detail}"
        return self.message


class TransientEncodingError(WorkerError):
    """Encoder crashed, timed out or produced no output"""


class TranscriptionUnavailable(WorkerError):
    """Speech-to-text is disabled, misconfigured or failing"""


class CaptionStageUnsupported(WorkerError):
    """The encoder cannot render text stages in this environment"""


class VisualizationUnsupported(WorkerError):
    """The requested audio visualization filter is not available"""


class InputMissing(WorkerError):
    """The job's source object does not exist in the object store"""

    retryable = False


class JobNotFound(WorkerError):
    """No job record exists for the requested id"""

    retryable = False


class JobStoreConflict(WorkerError):
    """The job document changed between load and save"""
