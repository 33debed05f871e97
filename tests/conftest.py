import threading
from pathlib import Path

import pytest

from shortvideo.errors import RenderError
from shortvideo.models.domain import MusicMood, MusicTrack, Orientation, StockVideoAsset, WordTiming
from shortvideo.queue.queue import LocalQueue
from shortvideo.services.footage import FootageQueryExecutor, StockFootageSelector
from shortvideo.services.music import MusicSelector
from shortvideo.services.narration import NarrationResolver
from shortvideo.services.video_service import VideoService
from shortvideo.storage.outputs import LocalOutputStorage
from shortvideo.storage.repository import VideoJobRepository

WORD_MS = 400


class FakeTTS:
    def __init__(self):
        self.calls = []

    def synthesize(self, text, voice):
        self.calls.append((text, voice))
        return f"audio:{text}".encode("utf-8"), len(text.split()) * WORD_MS


class FakeAligner:
    def align(self, audio, text):
        return [
            WordTiming(word=word, start_ms=idx * WORD_MS, end_ms=idx * WORD_MS + WORD_MS - 50)
            for idx, word in enumerate(text.split())
        ]


class FakeFootage(FootageQueryExecutor):
    """Returns a fresh portrait asset for every query, ids counting up."""

    def __init__(self, missing_terms=()):
        self.missing_terms = set(missing_terms)
        self.queries = []
        self._counter = 0
        self._lock = threading.Lock()

    def execute(self, term, orientation, timeout_s):
        with self._lock:
            self.queries.append(term)
            if term in self.missing_terms:
                return []
            self._counter += 1
            return [
                StockVideoAsset(
                    id=f"{term}-{self._counter}",
                    url=f"https://videos.example.com/{term}-{self._counter}.mp4",
                    width_px=1080 if orientation == Orientation.PORTRAIT else 1920,
                    height_px=1920 if orientation == Orientation.PORTRAIT else 1080,
                    duration_s=60.0,
                )
            ]


class FakeRenderer:
    def __init__(self):
        self.specs = []
        self.fail = False
        self.gate = None
        self.started = threading.Event()

    def render(self, spec, output_path: Path) -> Path:
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        self.specs.append(spec)
        if self.fail:
            raise RenderError("renderer exploded")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"fake-mp4")
        return output_path


MUSIC_TRACKS = [
    MusicTrack(file="/music/chill-short.mp3", mood=MusicMood.CHILL, duration_s=30.0),
    MusicTrack(file="/music/chill-long.mp3", mood=MusicMood.CHILL, duration_s=120.0),
    MusicTrack(file="/music/happy.mp3", mood=MusicMood.HAPPY, duration_s=90.0),
]


@pytest.fixture
def fake_footage():
    return FakeFootage(missing_terms={"nothing-here"})


@pytest.fixture
def fake_renderer():
    return FakeRenderer()


@pytest.fixture
def service(tmp_path, fake_footage, fake_renderer):
    selector = StockFootageSelector(fake_footage, default_timeout_ms=2_000)
    svc = VideoService(
        repo=VideoJobRepository(),
        outputs=LocalOutputStorage(tmp_path / "videos"),
        narration=NarrationResolver(FakeTTS(), FakeAligner(), max_words=3, max_duration_ms=2_000),
        footage=selector,
        music=MusicSelector(MUSIC_TRACKS),
        renderer=fake_renderer,
    )
    queue = LocalQueue(processor=svc.process_job)
    svc.bind_queue(queue)
    yield svc
    svc.shutdown()

