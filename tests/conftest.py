"""Pytest configuration and fixtures."""

import asyncio
import random
import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from cloudplayer.events import EventBus
from cloudplayer.exceptions import SinkError
from cloudplayer.library_store import LibraryStore
from cloudplayer.play_queue import PlayQueue
from cloudplayer.playback_controller import PlaybackController
from cloudplayer.playback_engine import PlaybackEngine
from cloudplayer.sink import MediaSink


class FakeSink(MediaSink):
    """In-memory sink; tests drive its callbacks directly."""

    def __init__(self, duration: float = 180.0):
        super().__init__()
        self.loaded_uris: List[str] = []
        self.bound_uri: Optional[str] = None
        self.fail_load: Optional[str] = None
        self.reject_play: bool = False
        self.seeks: List[float] = []
        self.volume: float = 1.0
        self.close_count: int = 0
        self._duration = duration
        self._position = 0.0
        self._paused = True

    async def load(self, uri: str) -> float:
        self.loaded_uris.append(uri)
        if self.fail_load:
            raise SinkError(self.fail_load)
        self.bound_uri = uri
        self._position = 0.0
        return self._duration

    async def play(self) -> None:
        if self.reject_play:
            raise SinkError("play() blocked until user gesture")
        self._paused = False

    def pause(self) -> None:
        self._paused = True

    def detach(self) -> None:
        self.bound_uri = None
        self._paused = True
        self._position = 0.0

    def seek(self, position: float) -> None:
        self.seeks.append(position)
        self._position = position

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    @property
    def position(self) -> float:
        return self._position

    @property
    def duration(self) -> float:
        return self._duration if self.bound_uri else 0.0

    def close(self) -> None:
        self.close_count += 1
        self.detach()

    # Test helpers
    def tick(self, position: float) -> None:
        self._position = position
        self.on_time_update(position, self.duration)

    def finish(self) -> None:
        self._paused = True
        self.on_ended()


class FakeFetcher:
    """Async audio fetcher recording calls; hold() gates a file until released."""

    def __init__(self):
        self.calls: List[str] = []
        self.errors: Dict[str, Exception] = {}
        self._gates: Dict[str, asyncio.Event] = {}

    def hold(self, file_name: str) -> asyncio.Event:
        # Must be called inside the running loop
        gate = asyncio.Event()
        self._gates[file_name] = gate
        return gate

    async def __call__(self, file_name: str) -> bytes:
        self.calls.append(file_name)
        gate = self._gates.get(file_name)
        if gate is not None:
            await gate.wait()
        if file_name in self.errors:
            raise self.errors[file_name]
        return b"ID3" + file_name.encode()


class EventRecorder:
    """Collects payloads published for the given events."""

    def __init__(self, bus: EventBus, *events: str):
        self.received: Dict[str, list] = {event: [] for event in events}
        for event in events:
            bus.subscribe(event, lambda data, event=event: self.received[event].append(data))

    def __getitem__(self, event: str) -> list:
        return self.received[event]


SAMPLE_MANIFEST = {
    "albums": {
        "a1": {"name": "Demo", "artist": "DJ", "year": 2021, "art": "demo.jpg"},
        "a2": {"name": "Quiet Hours", "artist": "Nils"},
    },
    "tracks": [
        {"id": "t1", "title": "Song", "albumId": "a1", "duration": 180, "fileName": "s1.mp3"},
        {"id": "t2", "title": "Night Drive", "albumId": "a1", "duration": 200, "fileName": "s2.mp3"},
        {"id": "t3", "title": "Morning", "albumId": "a2", "duration": 95.5, "fileName": "s3.mp3"},
        {"id": "t4", "title": "Loose End", "albumId": "missing", "duration": None, "fileName": "s4.mp3"},
    ],
}


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def mock_config(monkeypatch, temp_dir):
    """Configuration rooted in temporary XDG directories."""
    from cloudplayer.config import Config

    monkeypatch.setenv('XDG_CONFIG_HOME', str(temp_dir / 'config'))
    monkeypatch.setenv('XDG_CACHE_HOME', str(temp_dir / 'cache'))
    monkeypatch.setenv('XDG_DATA_HOME', str(temp_dir / 'data'))
    monkeypatch.delenv('CLOUDPLAYER_PROXY_URL', raising=False)
    monkeypatch.delenv('CLOUDPLAYER_AUTH_TOKEN', raising=False)

    Config._instance = None
    yield Config.get_instance()
    Config._instance = None


@pytest.fixture
def sample_manifest():
    return {
        "albums": {k: dict(v) for k, v in SAMPLE_MANIFEST["albums"].items()},
        "tracks": [dict(t) for t in SAMPLE_MANIFEST["tracks"]],
    }


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def store(event_bus, sample_manifest):
    library_store = LibraryStore(event_bus)
    library_store.init(sample_manifest)
    return library_store


@pytest.fixture
def play_queue(store, event_bus):
    return PlayQueue(store, event_bus, rng=random.Random(1234))


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def engine(event_bus, sink, fetcher, temp_dir):
    playback_engine = PlaybackEngine(event_bus, sink, fetcher, resource_dir=temp_dir / 'stream')
    yield playback_engine
    playback_engine.destroy()


@pytest.fixture
def controller(store, play_queue, engine, event_bus):
    return PlaybackController(store, play_queue, engine, event_bus)
