"""
Render pipeline for one job attempt.

Fetches the source audio, transcribes it into caption lines, renders the
composition and publishes the artifact. Each attempt works inside its own
temporary directory that is removed whatever the outcome.
"""

import os
import time
import logging
import posixpath
import tempfile
from typing import Any, List, Optional

from .models import CaptionLine, CaptionSegment, ClipWindow, JobRecord, ProcessingResult, RenderResult
from .adapters.base import ObjectStore
from .config import WorkerConfig
from .errors import InputMissing, WorkerError
from .publisher import Publisher
from .pipeline.filtergraph import PROFILES, FilterGraphBuilder
from .pipeline.render import RenderExecutor
from .pipeline.util import get_file_size_mb
from .pipeline.transcribe import (
    clip_window,
    get_transcript_text,
    merge_segments,
    to_clip_local,
    transcribe_audio,
)
from .logging_setup import log_exception

logger = logging.getLogger("shorts_worker")


class ShortsProcessor:
    """Handles render pipeline execution for a single job"""

    def __init__(self, config: WorkerConfig, object_store: ObjectStore,
                 publisher: Optional[Publisher] = None,
                 executor: Optional[RenderExecutor] = None,
                 transcription_client: Optional[Any] = None,
                 work_dir: Optional[str] = None):
        self.config = config
        self.object_store = object_store
        self.publisher = publisher or Publisher(object_store, config.POST_META_KEY)
        self.executor = executor or RenderExecutor(
            ffmpeg_path=config.FFMPEG_PATH,
            timeout_sec=config.ENCODER_TIMEOUT_SEC,
            fps=config.RENDER_FPS,
        )
        self.transcription_client = transcription_client
        self.work_dir = work_dir
        self.start_time = None

    def process_job(self, job: JobRecord) -> ProcessingResult:
        """
        Run one attempt of the pipeline for a job.

        Args:
            job: The claimed job record

        Returns:
            ProcessingResult; failures carry the raw error string and whether
            the job may be retried
        """
        self.start_time = time.time()
        stages_completed = []

        try:
            with tempfile.TemporaryDirectory(prefix=f"job-{job.id}-", dir=self.work_dir) as work_dir:
                logger.info(f"Processing job {job.id} for {job.source_key}")

                # Step 1: Fetch the source audio
                logger.info(f"FETCH: downloading {job.source_key}")
                audio_path = self._fetch_source(job, work_dir)
                stages_completed.append("fetch")

                # Step 2: Transcribe and derive caption lines
                logger.info(f"TRANSCRIBE: starting for job {job.id}")
                segments = self._transcribe(audio_path, job)
                lines = merge_segments(segments, self.config.MAX_LINE_CHARS)
                window = clip_window(segments, job.max_duration_seconds)
                local_lines = to_clip_local(lines, window)
                transcript = get_transcript_text(segments)
                stages_completed.append("transcribe")

                # Step 3: Render
                output_path = os.path.join(work_dir, "output.mp4")
                logger.info(
                    f"RENDER: job {job.id} clip {window.start}s +{window.duration}s, "
                    f"{len(local_lines)} caption lines"
                )
                render_result = self._render(job, local_lines, audio_path, window, output_path)
                output_size_mb = get_file_size_mb(render_result.output_path)
                stages_completed.append("render")

                # Step 4: Publish
                published = self.publisher.publish(job, render_result.output_path, local_lines, transcript)
                stages_completed.append("publish")

            processing_time = time.time() - self.start_time
            logger.info(f"READY: job {job.id} completed in {processing_time:.2f}s")

            return ProcessingResult(
                success=True,
                stages_completed=stages_completed,
                output_key=published.key,
                output_url=published.url,
                caption=transcript or None,
                metrics={
                    'processing_time_sec': processing_time,
                    'caption_lines': len(local_lines),
                    'clip_start': window.start,
                    'clip_duration': window.duration,
                    'variant': render_result.variant,
                    'visualization': render_result.visualization,
                    'captions_burned': render_result.captions_burned,
                    'output_size_mb': output_size_mb,
                }
            )

        except WorkerError as e:
            return self._failure(job, stages_completed, str(e), e.retryable)
        except Exception as e:
            return self._failure(job, stages_completed, str(e) or type(e).__name__, True)

    def _failure(self, job: JobRecord, stages_completed: List[str], error: str,
                 retryable: bool) -> ProcessingResult:
        log_exception(logger, f"Pipeline failed for job {job.id}: {error}")
        processing_time = time.time() - self.start_time if self.start_time else 0
        return ProcessingResult(
            success=False,
            stages_completed=stages_completed,
            error=error,
            retryable=retryable,
            metrics={
                'processing_time_sec': processing_time,
                'failed_at_stage': stages_completed[-1] if stages_completed else 'start'
            }
        )

    def _fetch_source(self, job: JobRecord, work_dir: str) -> str:
        """Download the source object; a missing key is permanent"""
        extension = posixpath.splitext(job.source_key)[1] or ".audio"
        audio_path = os.path.join(work_dir, f"source{extension}")
        if not self.object_store.download_file(job.source_key, audio_path):
            raise InputMissing("Source object not found", job.source_key)
        return audio_path

    def _transcribe(self, audio_path: str, job: JobRecord) -> List[CaptionSegment]:
        return transcribe_audio(
            audio_path,
            job.id,
            job.max_duration_seconds,
            model=self.config.TRANSCRIBE_MODEL,
            enabled=self.config.ENABLE_TRANSCRIPTION,
            client=self.transcription_client,
        )

    def _render(self, job: JobRecord, lines: List[CaptionLine], audio_path: str,
                window: ClipWindow, output_path: str) -> RenderResult:
        builder = FilterGraphBuilder(
            PROFILES[job.format],
            duration=window.duration,
            fps=self.config.RENDER_FPS,
            background_color=self.config.BACKGROUND_COLOR,
            bar_color=self.config.BAR_COLOR,
            brand_text=self.config.BRAND_TEXT,
            font_file=self.config.FONT_FILE,
        )
        return self.executor.render(
            builder, lines, job.title, audio_path, window, output_path,
            visualization=self.config.VISUALIZATION,
        )
