"""
Shared fixtures for shorts worker tests.

The object store is the local filesystem adapter under tmp_path. The
encoder and speech-to-text service never run for real: FakeEncoder stands
in for the ffmpeg process and FakeTranscriptionClient for the OpenAI client.
"""

import os
import threading
from types import SimpleNamespace

import pytest

from shorts_worker.adapters.local_adapter import LocalObjectStore
from shorts_worker.config import WorkerConfig
from shorts_worker.job_store import JobStore
from shorts_worker.orchestrator import PipelineOrchestrator
from shorts_worker.pipeline.render import EncodeOutcome, RenderExecutor
from shorts_worker.processor import ShortsProcessor

SOURCE_KEY = "audio/1700000000-test.mp3"
START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to"""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeEncoder:
    """
    Stands in for the ffmpeg process.

    `failures` is consumed one entry per call: a string is returned as the
    stderr of a failed run, None means success. Once exhausted every call
    succeeds unless `always_fail` is set.
    """

    def __init__(self, failures=None, always_fail=None, on_call=None):
        self.failures = list(failures or [])
        self.always_fail = always_fail
        self.on_call = on_call
        self.graphs = []
        self.outputs = []
        self.arguments = []

    def __call__(self, stream, timeout):
        args = stream.get_args()
        graph = args[args.index('-filter_complex') + 1]
        output = [arg for arg in args if arg.endswith('.mp4')][-1]
        self.arguments.append(args)
        self.graphs.append(graph)
        self.outputs.append(output)

        if self.on_call:
            self.on_call(graph)

        stderr = self.failures.pop(0) if self.failures else self.always_fail
        if stderr is not None:
            return EncodeOutcome(returncode=1, stderr=stderr)

        with open(output, 'wb') as f:
            f.write(b'\x00\x00\x00\x18ftypmp42')
        return EncodeOutcome(returncode=0)

    @property
    def calls(self) -> int:
        return len(self.graphs)


class BlockingEncoder(FakeEncoder):
    """Encoder that holds the render open until released"""

    def __init__(self):
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def __call__(self, stream, timeout):
        self.started.set()
        self.release.wait(timeout=5)
        return super().__call__(stream, timeout)


class FakeTranscriptionClient:
    """Mimics client.audio.transcriptions.create() of the OpenAI SDK"""

    def __init__(self, segments=None, error=None):
        self.segments = segments or []
        self.error = error
        self.requests = []
        self.audio = SimpleNamespace(transcriptions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return {"segments": self.segments, "text": " ".join(s["text"] for s in self.segments)}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def object_store(tmp_path):
    store = LocalObjectStore(str(tmp_path / "store"), public_base="https://cdn.example.com")
    store.connect()
    return store


@pytest.fixture
def job_store(object_store, clock):
    return JobStore(object_store, clock=clock)


@pytest.fixture
def config(tmp_path):
    return WorkerConfig(
        STORAGE_TYPE="local",
        STORAGE_CONFIG={"root": str(tmp_path / "store"), "public_base": "https://cdn.example.com"},
        ENABLE_TRANSCRIPTION=True,
        DATA_DIR=str(tmp_path),
        BRAND_TEXT="The Gargantuan",
    )


@pytest.fixture
def work_dir(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return str(path)


@pytest.fixture
def source_audio(object_store):
    object_store.put(SOURCE_KEY, b"ID3\x03\x00fake-audio", "audio/mpeg")
    return SOURCE_KEY


@pytest.fixture
def speech_segments():
    return [
        {"start": 0.4, "end": 2.0, "text": " Welcome back to the show."},
        {"start": 2.0, "end": 4.5, "text": " Today: ports, queues & 100% uptime."},
        {"start": 4.5, "end": 9.8, "text": " Let's get into it."},
    ]


@pytest.fixture
def encoder():
    return FakeEncoder()


@pytest.fixture
def transcription_client(speech_segments):
    return FakeTranscriptionClient(speech_segments)


def make_orchestrator(config, object_store, job_store, encoder, work_dir, transcription_client=None):
    executor = RenderExecutor(fps=config.RENDER_FPS, runner=encoder)
    processor = ShortsProcessor(
        config,
        object_store,
        executor=executor,
        transcription_client=transcription_client,
        work_dir=work_dir,
    )
    return PipelineOrchestrator(config, job_store, processor)


@pytest.fixture
def orchestrator(config, object_store, job_store, encoder, work_dir, transcription_client):
    return make_orchestrator(config, object_store, job_store, encoder, work_dir, transcription_client)


def work_dir_is_empty(path: str) -> bool:
    return os.listdir(path) == []


@pytest.fixture(autouse=True)
def no_openai_credentials(monkeypatch):
    """Jobs built without a fake client must never reach the real API"""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
