import math
import logging
from typing import Any, List, Optional

from openai import OpenAI, OpenAIError

from ..errors import TranscriptionUnavailable
from ..models import CaptionLine, CaptionSegment, ClipWindow
from .util import format_timecode

logger = logging.getLogger("shorts_worker")

MIN_CLIP_SECONDS = 5


def transcribe_audio(audio_path: str, job_id: str, max_duration: int,
                     model: str = "whisper-1", enabled: bool = True,
                     client: Optional[Any] = None) -> List[CaptionSegment]:
    """
    Transcribe audio using OpenAI Whisper and return ordered segments.

    Never fails the job for speech-to-text problems: when transcription is
    disabled, misconfigured or erroring, a single empty stub segment covering
    [0, max_duration) is returned so rendering can continue without captions.
    """
    try:
        if not enabled:
            raise TranscriptionUnavailable("Transcription disabled")
        segments = _request_segments(audio_path, job_id, model, client)
        if not segments:
            raise TranscriptionUnavailable("Transcription returned no usable segments")
        logger.info(f"Transcription completed for job {job_id}: {len(segments)} segments")
        return segments
    except TranscriptionUnavailable as e:
        logger.warning(f"Transcription unavailable for job {job_id}, using stub: {e}")
        return stub_segments(max_duration)


def _request_segments(audio_path: str, job_id: str, model: str,
                      client: Optional[Any]) -> List[CaptionSegment]:
    try:
        client = client or OpenAI()

        logger.info(f"Transcribing audio for job {job_id}: {audio_path}")

        with open(audio_path, 'rb') as audio_file:
            transcript = client.audio.transcriptions.create(
                model=model,
                file=audio_file,
                response_format="verbose_json",
                timestamp_granularities=["segment"]
            )
    except OpenAIError as e:
        raise TranscriptionUnavailable("Speech-to-text request failed", str(e))

    segments = []
    raw_segments = _field(transcript, 'segments') or []
    if raw_segments:
        for segment in raw_segments:
            segments.append(CaptionSegment(
                start=float(_field(segment, 'start') or 0.0),
                end=float(_field(segment, 'end') or 0.0),
                text=(_field(segment, 'text') or '').strip()
            ))
    elif _field(transcript, 'text'):
        # Fallback if no segments
        segments.append(CaptionSegment(
            start=0.0,
            end=float(_field(transcript, 'duration') or 0.0),
            text=_field(transcript, 'text').strip()
        ))

    valid = [segment for segment in segments if validate_segment(segment)]
    if len(valid) < len(segments):
        logger.debug(f"Dropped {len(segments) - len(valid)} invalid segments for job {job_id}")
    return sorted(valid, key=lambda segment: segment.start)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def validate_segment(segment: CaptionSegment) -> bool:
    """A segment needs text, a non-negative start and end > start"""
    if not segment.text.strip():
        return False
    return segment.start >= 0 and segment.end > segment.start


def stub_segments(max_duration: int) -> List[CaptionSegment]:
    """Degraded transcript: one empty segment spanning the whole clip"""
    return [CaptionSegment(start=0.0, end=float(max_duration), text="")]


def _split_words(segment: CaptionSegment) -> List[CaptionSegment]:
    """Split a segment into word units, sharing its span by character count"""
    words = segment.text.split()
    if len(words) <= 1:
        return [segment]

    total_chars = sum(len(word) for word in words)
    span = segment.end - segment.start
    units = []
    cursor = segment.start
    consumed = 0
    for i, word in enumerate(words):
        consumed += len(word)
        if i == len(words) - 1:
            end = segment.end
        else:
            end = segment.start + span * consumed / total_chars
        units.append(CaptionSegment(start=cursor, end=end, text=word))
        cursor = end
    return units


def merge_segments(segments: List[CaptionSegment], max_line_chars: int) -> List[CaptionLine]:
    """
    Greedily pack segments into caption lines of at most max_line_chars.

    A line is flushed when appending the next unit would overflow it and
    spans [first unit start, next unit start); the last line ends at the
    last unit's end. Segments longer than the limit are packed word by
    word, and a single word longer than the limit gets a line of its own.
    Applying this to its own output returns the same lines.
    """
    units: List[CaptionSegment] = []
    for segment in sorted(segments, key=lambda s: s.start):
        text = " ".join(segment.text.split())
        if not text:
            continue
        unit = CaptionSegment(start=segment.start, end=segment.end, text=text)
        if len(text) > max_line_chars:
            units.extend(_split_words(unit))
        else:
            units.append(unit)

    lines: List[CaptionLine] = []
    buffer = ""
    buffer_start = 0.0
    for unit in units:
        if buffer and len(buffer) + 1 + len(unit.text) > max_line_chars:
            lines.append(CaptionLine(start=buffer_start, end=unit.start, text=buffer))
            buffer = ""
        if buffer:
            buffer = f"{buffer} {unit.text}"
        else:
            buffer = unit.text
            buffer_start = unit.start

    if buffer:
        lines.append(CaptionLine(start=buffer_start, end=units[-1].end, text=buffer))

    return lines


def clip_window(segments: List[CaptionSegment], requested_max: int) -> ClipWindow:
    """Where to cut the source: from the first speech, at most requested_max seconds"""
    if not segments:
        return ClipWindow(start=0, duration=requested_max)

    start = max(0, math.floor(segments[0].start))
    duration = min(requested_max, max(MIN_CLIP_SECONDS, math.ceil(segments[-1].end)))
    return ClipWindow(start=start, duration=duration)


def to_clip_local(lines: List[CaptionLine], window: ClipWindow) -> List[CaptionLine]:
    """Shift lines into clip time, clamp them to the clip and drop the rest"""
    local = []
    for line in lines:
        start = max(0.0, line.start - window.start)
        end = min(float(window.duration), line.end - window.start)
        if end <= start or not line.text.strip():
            continue
        local.append(CaptionLine(start=start, end=end, text=line.text))
    return local


def build_srt(lines: List[CaptionLine]) -> str:
    """Render caption lines as an SRT document"""
    entries = []
    for i, line in enumerate(lines, 1):
        entries.append(
            f"{i}\n"
            f"{format_timecode(line.start)} --> {format_timecode(line.end)}\n"
            f"{line.text}\n"
        )
    return "\n".join(entries)


def get_transcript_text(segments: List[CaptionSegment]) -> str:
    """Get full transcript text from segments"""
    return ' '.join(segment.text for segment in segments if segment.text).strip()
