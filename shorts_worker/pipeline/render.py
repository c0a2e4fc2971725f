import os
import re
import logging
import subprocess
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import ffmpeg

from ..errors import (
    CaptionStageUnsupported,
    TransientEncodingError,
    VisualizationUnsupported,
    WorkerError,
)
from ..models import CaptionLine, ClipWindow, RenderResult
from .filtergraph import FilterGraph, FilterGraphBuilder

logger = logging.getLogger("shorts_worker")

# error-level stderr signatures only; fontconfig warnings appear on healthy runs
CAPTION_FAILURE_PATTERNS = (
    re.compile(r"No such filter: '?drawtext'?", re.IGNORECASE),
    re.compile(r"Error (?:re)?initializing filter '?drawtext'?", re.IGNORECASE),
    re.compile(r"Cannot find a valid font", re.IGNORECASE),
    re.compile(r"Could not load font(?: file)?", re.IGNORECASE),
)
VISUALIZATION_FAILURE_PATTERNS = (
    re.compile(r"No such filter: '?showspectrum'?", re.IGNORECASE),
    re.compile(r"Error (?:re)?initializing filter '?showspectrum'?", re.IGNORECASE),
)
FILTER_REINIT_ERROR = re.compile(r"Error reinitializing filters", re.IGNORECASE)
DRAWTEXT_FILTER_LINE = re.compile(r"\[Parsed_drawtext_\d+ @", re.IGNORECASE)
STDERR_TAIL_CHARS = 800


@dataclass
class EncodeOutcome:
    """Result of one blocking encoder invocation"""
    returncode: int
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def classify_failure(stderr: str) -> WorkerError:
    """Map encoder stderr to the error that decides the fallback path"""
    tail = stderr[-STDERR_TAIL_CHARS:].strip()
    if _caption_stage_failed(stderr):
        return CaptionStageUnsupported("Text stage failed to render", tail)
    if any(pattern.search(stderr) for pattern in VISUALIZATION_FAILURE_PATTERNS):
        return VisualizationUnsupported("Spectrum visualization unavailable", tail)
    return TransientEncodingError("Encoder failed", tail)


def _caption_stage_failed(stderr: str) -> bool:
    if any(pattern.search(stderr) for pattern in CAPTION_FAILURE_PATTERNS):
        return True
    # a filter reinit error only blames text stages when drawtext reported it
    return bool(FILTER_REINIT_ERROR.search(stderr) and DRAWTEXT_FILTER_LINE.search(stderr))


def build_command(graph: FilterGraph, audio_path: str, window: ClipWindow,
                  output_path: str, fps: int = 30) -> Any:
    """Build the ffmpeg-python stream for one render of `graph`"""
    return (
        ffmpeg
        .input(audio_path, ss=window.start, t=window.duration)
        .output(
            output_path,
            filter_complex=graph.serialize(),
            map=[f"[{graph.output}]", "0:a"],
            vcodec='libx264',
            acodec='aac',
            pix_fmt='yuv420p',
            preset='veryfast',
            r=fps,
            t=window.duration,
            movflags='+faststart',
            shortest=None,
        )
        .global_args('-nostdin', '-hide_banner')
        .overwrite_output()
    )


class RenderExecutor:
    """Runs the encoder against a graph, degrading within the run when possible"""

    def __init__(self, ffmpeg_path: str = "ffmpeg", timeout_sec: int = 600, fps: int = 30,
                 runner: Optional[Callable[[Any, int], EncodeOutcome]] = None):
        self.ffmpeg_path = ffmpeg_path
        self.timeout_sec = timeout_sec
        self.fps = fps
        self.runner = runner or self._run_encoder

    def render(self, builder: FilterGraphBuilder, lines: List[CaptionLine], title: Optional[str],
               audio_path: str, window: ClipWindow, output_path: str,
               visualization: str = "spectrum") -> RenderResult:
        """
        Render the captioned graph, falling back in the same run.

        Caption stage failures move to the captionless then the textless
        variant. A missing spectrum filter rebuilds the same variant with
        waves. Everything else surfaces as TransientEncodingError for the
        job-level retry.
        """
        graphs = builder.variants(lines, title, visualization)
        index = 0

        while True:
            graph = graphs[index]
            logger.info(
                f"RENDER: {graph.variant} graph ({graph.visualization}, "
                f"{len(graph.stages)} stages) -> {output_path}"
            )
            try:
                self.encode(graph, audio_path, window, output_path)
            except VisualizationUnsupported as e:
                if visualization == "waves":
                    raise TransientEncodingError("No audio visualization available", str(e))
                logger.warning(f"RENDER: spectrum unsupported, rebuilding with waves: {e.message}")
                visualization = "waves"
                graphs = builder.variants(lines, title, visualization)
                index = next(
                    (i for i, candidate in enumerate(graphs) if candidate.variant == graph.variant), 0
                )
                continue
            except CaptionStageUnsupported as e:
                if index + 1 >= len(graphs):
                    raise TransientEncodingError("Text stages unsupported in every variant", str(e))
                index += 1
                logger.warning(
                    f"RENDER: {graph.variant} graph failed on text stages, "
                    f"falling back to {graphs[index].variant}"
                )
                continue

            logger.info(f"RENDER: completed {graph.variant} graph")
            return RenderResult(
                output_path=output_path,
                variant=graph.variant,
                visualization=graph.visualization,
                captions_burned=graph.has_captions,
            )

    def encode(self, graph: FilterGraph, audio_path: str, window: ClipWindow,
               output_path: str) -> EncodeOutcome:
        """
        One encoder invocation.

        Raises:
            CaptionStageUnsupported, VisualizationUnsupported: classified stderr
            TransientEncodingError: crash, timeout, missing binary or empty output
        """
        if os.path.exists(output_path):
            os.remove(output_path)

        stream = build_command(graph, audio_path, window, output_path, fps=self.fps)
        try:
            outcome = self.runner(stream, self.timeout_sec)
        except OSError as e:
            raise TransientEncodingError("Encoder could not be started", str(e))

        if outcome.timed_out:
            raise TransientEncodingError("Encoder timed out", f"after {self.timeout_sec}s")
        if outcome.returncode != 0:
            raise classify_failure(outcome.stderr)
        if not os.path.exists(output_path) or os.path.getsize(output_path) == 0:
            raise TransientEncodingError("Encoder produced no output", output_path)
        return outcome

    def _run_encoder(self, stream: Any, timeout_sec: int) -> EncodeOutcome:
        process = stream.run_async(cmd=self.ffmpeg_path, pipe_stdout=True, pipe_stderr=True)
        try:
            _, stderr = process.communicate(timeout=timeout_sec)
        except subprocess.TimeoutExpired:
            process.kill()
            _, stderr = process.communicate()
            return EncodeOutcome(
                returncode=process.returncode,
                stderr=(stderr or b"").decode('utf-8', errors='replace'),
                timed_out=True,
            )
        return EncodeOutcome(
            returncode=process.returncode,
            stderr=(stderr or b"").decode('utf-8', errors='replace'),
        )
