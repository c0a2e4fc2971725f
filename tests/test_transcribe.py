"""
Tests for the transcript segmenter.

Test cases:
1. Speech-to-text requests and degraded stub
2. Greedy line merging
3. Clip window selection
4. Clip-local shifting and SRT output
"""

import pytest
from openai import OpenAIError

from shorts_worker.models import CaptionLine, CaptionSegment, ClipWindow
from shorts_worker.pipeline.transcribe import (
    build_srt,
    clip_window,
    get_transcript_text,
    merge_segments,
    stub_segments,
    to_clip_local,
    transcribe_audio,
)

from conftest import FakeTranscriptionClient


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "source.mp3"
    path.write_bytes(b"ID3fake")
    return str(path)


class TestTranscribeAudio:
    """Test the speech-to-text boundary."""

    def test_requests_verbose_segments(self, audio_file):
        """Whisper is asked for verbose_json with segment timestamps."""
        client = FakeTranscriptionClient([{"start": 0.0, "end": 1.5, "text": " Hello"}])

        segments = transcribe_audio(audio_file, "job-1", 45, client=client)

        assert segments == [CaptionSegment(0.0, 1.5, "Hello")]
        request = client.requests[0]
        assert request["model"] == "whisper-1"
        assert request["response_format"] == "verbose_json"
        assert request["timestamp_granularities"] == ["segment"]

    def test_invalid_segments_dropped_and_sorted(self, audio_file):
        """Empty or zero-length segments are dropped; the rest are ordered by start."""
        client = FakeTranscriptionClient([
            {"start": 4.0, "end": 6.0, "text": "second"},
            {"start": 1.0, "end": 1.0, "text": "zero"},
            {"start": 2.0, "end": 3.0, "text": "   "},
            {"start": 0.5, "end": 2.0, "text": "first"},
        ])

        segments = transcribe_audio(audio_file, "job-1", 45, client=client)

        assert [s.text for s in segments] == ["first", "second"]

    def test_disabled_returns_stub(self, audio_file):
        """Disabled transcription never calls the service."""
        client = FakeTranscriptionClient([{"start": 0.0, "end": 1.0, "text": "hi"}])

        segments = transcribe_audio(audio_file, "job-1", 30, enabled=False, client=client)

        assert segments == [CaptionSegment(0.0, 30.0, "")]
        assert client.requests == []

    def test_service_error_returns_stub(self, audio_file):
        """An API error degrades to the stub instead of failing."""
        client = FakeTranscriptionClient(error=OpenAIError("rate limited"))

        segments = transcribe_audio(audio_file, "job-1", 20, client=client)

        assert segments == stub_segments(20)

    def test_empty_result_returns_stub(self, audio_file):
        """No usable segments is treated like an unavailable service."""
        segments = transcribe_audio(audio_file, "job-1", 20, client=FakeTranscriptionClient([]))
        assert segments == stub_segments(20)

    def test_missing_api_key_returns_stub(self, audio_file, monkeypatch):
        """Constructing the client without credentials degrades to the stub."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        segments = transcribe_audio(audio_file, "job-1", 15)
        assert segments == stub_segments(15)


class TestMergeSegments:
    """Test greedy caption line packing."""

    def test_packs_until_limit(self):
        """Short segments share a line until the next one would overflow."""
        segments = [
            CaptionSegment(0, 2, "a"),
            CaptionSegment(2, 3, "b"),
            CaptionSegment(3, 10, "c"),
        ]

        lines = merge_segments(segments, 3)

        assert lines == [CaptionLine(0, 3, "a b"), CaptionLine(3, 10, "c")]

    def test_idempotent(self):
        """Merging merged lines again changes nothing."""
        segments = [
            CaptionSegment(0.0, 1.2, "The quick brown"),
            CaptionSegment(1.2, 2.0, "fox jumps"),
            CaptionSegment(2.0, 4.1, "over the extremely lazy dog tonight"),
            CaptionSegment(4.1, 5.0, "again"),
        ]

        once = merge_segments(segments, 16)
        twice = merge_segments([CaptionSegment(l.start, l.end, l.text) for l in once], 16)

        assert twice == once

    def test_lines_respect_limit(self):
        """No line exceeds the limit unless a single word does."""
        segments = [
            CaptionSegment(0.0, 3.0, "caption lines should wrap at word boundaries"),
            CaptionSegment(3.0, 4.0, "supercalifragilistic"),
        ]

        lines = merge_segments(segments, 10)

        for line in lines:
            assert len(line.text) <= 10 or " " not in line.text
        assert "supercalifragilistic" in [line.text for line in lines]
        assert " ".join(line.text for line in lines) == (
            "caption lines should wrap at word boundaries supercalifragilistic"
        )

    def test_long_segment_shares_time_by_characters(self):
        """Word units split a long segment's span in proportion to length."""
        lines = merge_segments([CaptionSegment(0.0, 10.0, "aaaa bbbbbb")], 5)

        assert lines == [CaptionLine(0.0, 4.0, "aaaa"), CaptionLine(4.0, 10.0, "bbbbbb")]

    def test_lines_are_ordered_and_disjoint(self):
        """Output lines never overlap."""
        segments = [CaptionSegment(i, i + 1, f"word{i}") for i in range(10)]

        lines = merge_segments(segments, 12)

        for earlier, later in zip(lines, lines[1:]):
            assert earlier.end <= later.start

    def test_blank_segments_ignored(self):
        """Stub segments produce no lines."""
        assert merge_segments(stub_segments(45), 42) == []


class TestClipWindow:
    """Test where the clip is cut from the source."""

    def test_window_follows_speech(self):
        """Start floors the first segment; duration ceils the last end."""
        segments = [CaptionSegment(3.4, 5.0, "a"), CaptionSegment(5.0, 12.2, "b")]
        assert clip_window(segments, 45) == ClipWindow(start=3, duration=13)

    def test_minimum_duration(self):
        """Very short speech still yields a five second clip."""
        assert clip_window([CaptionSegment(0.0, 1.1, "hi")], 45).duration == 5

    def test_requested_max_wins(self):
        """Duration never exceeds the requested maximum."""
        assert clip_window([CaptionSegment(0.0, 90.0, "long")], 45).duration == 45

    def test_stub_window_covers_request(self):
        """The degraded stub yields the full requested clip from zero."""
        assert clip_window(stub_segments(30), 30) == ClipWindow(start=0, duration=30)

    def test_no_segments(self):
        """An empty transcript falls back to the requested maximum."""
        assert clip_window([], 20) == ClipWindow(start=0, duration=20)


class TestClipLocal:
    """Test shifting lines into clip time."""

    def test_shift_clamp_and_drop(self):
        """Lines are shifted by the clip start, clamped and dropped outside."""
        lines = [
            CaptionLine(1.0, 3.5, "before start"),
            CaptionLine(3.5, 6.0, "inside"),
            CaptionLine(9.0, 14.0, "crosses end"),
            CaptionLine(20.0, 22.0, "after end"),
        ]

        local = to_clip_local(lines, ClipWindow(start=3, duration=8))

        assert local == [
            CaptionLine(0.0, 0.5, "before start"),
            CaptionLine(0.5, 3.0, "inside"),
            CaptionLine(6.0, 8.0, "crosses end"),
        ]

    def test_srt_document(self):
        """Lines render as numbered SRT cues."""
        srt = build_srt([CaptionLine(0.0, 1.5, "Hello"), CaptionLine(61.25, 62.0, "again")])

        assert srt == (
            "1\n00:00:00,000 --> 00:00:01,500\nHello\n"
            "\n"
            "2\n00:01:01,250 --> 00:01:02,000\nagain\n"
        )

    def test_transcript_text(self):
        """The transcript joins segment text, skipping blanks."""
        segments = [CaptionSegment(0, 1, "Hello"), CaptionSegment(1, 2, ""), CaptionSegment(2, 3, "world")]
        assert get_transcript_text(segments) == "Hello world"
