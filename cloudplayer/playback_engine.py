"""Playback engine: one media sink, one streamed resource, one in-flight load.

The engine fetches a track's bytes, wraps them in a StreamedResource,
binds it to the sink and reports the sink's lifecycle on the event bus.
It never picks the next track itself; on a natural end it asks the
advance hook (installed by PlaybackController) and only publishes
player-ended when nobody advanced.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from cloudplayer.events import EventBus
from cloudplayer.exceptions import CloudPlayerError, LoadError, PlaybackError, SinkError
from cloudplayer.logging import get_logger
from cloudplayer.models import Track
from cloudplayer.resources import StreamedResource
from cloudplayer.sink import MediaSink

logger = get_logger(__name__)

AudioFetcher = Callable[[str], Awaitable[bytes]]


class EngineState(Enum):
    """State machine for a single engine instance."""

    IDLE = "idle"  # Nothing loaded
    LOADING = "loading"  # Fetching bytes / sink buffering
    READY = "ready"  # Bound, duration known, not started
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"  # Natural end of the bound track
    FAILED = "failed"  # Last load or playback failed
    DESTROYED = "destroyed"  # Terminal


# States with a bound, playable resource
_BOUND_STATES = (EngineState.READY, EngineState.PLAYING, EngineState.PAUSED)


class PlaybackEngine:
    """Drives one MediaSink; publishes player-* events on the bus."""

    def __init__(
        self,
        event_bus: EventBus,
        sink: MediaSink,
        fetch_audio: AudioFetcher,
        resource_dir: Optional[Path] = None,
    ):
        """
        Initialize the engine and take over the sink's callbacks.

        Args:
            event_bus: EventBus instance for lifecycle events
            sink: Playable sink, exclusively driven by this engine
            fetch_audio: Coroutine function returning the bytes for a file name
            resource_dir: Directory for streamed resources (system temp if None)
        """
        self._events = event_bus
        self._sink = sink
        self._fetch_audio = fetch_audio
        self._resource_dir = resource_dir

        self._state = EngineState.IDLE
        self._current_track: Optional[Track] = None
        self._resource: Optional[StreamedResource] = None
        self._volume: float = 1.0

        # Every load_track takes a new token; completions with an older one are stale
        self._load_token: int = 0
        self._ended_token: Optional[int] = None

        # Returns True when it scheduled the next track
        self.advance_hook: Optional[Callable[[], bool]] = None

        sink.on_time_update = self._on_time_update
        sink.on_play = self._on_play
        sink.on_pause = self._on_pause
        sink.on_ended = self._on_ended
        sink.on_error = self._on_error

    # ============================================================================
    # State
    # ============================================================================

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def current_track(self) -> Optional[Track]:
        return self._current_track

    @property
    def resource(self) -> Optional[StreamedResource]:
        """Currently bound resource. Do not keep it past the next load/destroy."""
        return self._resource

    def _set_state(self, state: EngineState) -> None:
        if self._state == state:
            return
        logger.debug("Engine state %s -> %s", self._state.value, state.value)
        self._state = state
        self._events.publish(EventBus.PLAYER_STATE_CHANGED, {"state": state})

    def _release_resource(self) -> None:
        if self._resource is not None:
            self._resource.release()
            self._resource = None

    # ============================================================================
    # Loading
    # ============================================================================

    async def load_track(self, track: Track) -> bool:
        """
        Fetch, wrap and bind a track, superseding any load in progress.

        Args:
            track: Track to load

        Returns:
            True when this load ended bound to the sink, False when a newer
            load_track (or destroy) superseded it

        Raises:
            LoadError: Fetch or decode failed for this (latest) load
        """
        if self._state == EngineState.DESTROYED:
            raise LoadError("Engine has been destroyed")
        if track is None:
            raise LoadError("No track given")

        self._load_token += 1
        token = self._load_token

        # Release before the next resource exists
        self._sink.detach()
        self._release_resource()

        if self._state == EngineState.FAILED:
            self._set_state(EngineState.IDLE)
        self._current_track = track
        self._set_state(EngineState.LOADING)
        logger.info("Loading track %s (%s)", track.id, track.file_name)

        try:
            data = await self._fetch_audio(track.file_name)
        except (CloudPlayerError, OSError) as e:
            return self._load_failed(token, f"Failed to fetch {track.file_name}: {e}", e)

        if token != self._load_token:
            logger.debug("Discarding superseded load of %s", track.id)
            return False
        if not data:
            return self._load_failed(token, f"Empty audio data for {track.file_name}", None)

        try:
            resource = StreamedResource.from_bytes(
                data, self._resource_dir, suffix=Path(track.file_name).suffix
            )
        except OSError as e:
            return self._load_failed(token, f"Cannot buffer {track.file_name}: {e}", e)
        self._resource = resource

        try:
            duration = await self._sink.load(resource.uri)
        except SinkError as e:
            if token != self._load_token:
                # The newer load already released this resource
                return False
            self._sink.detach()
            self._release_resource()
            return self._load_failed(token, f"Failed to decode {track.file_name}: {e}", e)

        if token != self._load_token:
            return False

        self._ended_token = None
        self._sink.set_volume(self._volume)
        self._set_state(EngineState.READY)
        self._events.publish(EventBus.PLAYER_READY, {"duration": duration})
        return True

    def _load_failed(self, token: int, message: str, cause: Optional[BaseException]) -> bool:
        if token != self._load_token:
            logger.debug("Ignoring failure of superseded load: %s", message)
            return False
        logger.error("%s", message)
        self._set_state(EngineState.FAILED)
        self._events.publish(EventBus.PLAYER_FAILED, {"message": message})
        raise LoadError(message) from cause

    # ============================================================================
    # Transport
    # ============================================================================

    async def play(self) -> None:
        """
        Start or resume playback.

        Raises:
            PlaybackError: Nothing playable is loaded or the sink refused;
                the engine state is left unchanged
        """
        if self._state == EngineState.PLAYING:
            return
        if self._state not in (EngineState.READY, EngineState.PAUSED):
            raise PlaybackError(f"Cannot play while {self._state.value}")
        try:
            await self._sink.play()
        except SinkError as e:
            logger.warning("Playback rejected: %s", e)
            raise PlaybackError(str(e)) from e
        self._on_play()

    def pause(self) -> None:
        if self._state != EngineState.PLAYING:
            return
        self._sink.pause()
        self._on_pause()

    async def toggle_play_pause(self) -> None:
        if self._state == EngineState.PLAYING:
            self.pause()
        else:
            await self.play()

    def seek_to(self, seconds: float) -> None:
        """
        Seek to position in seconds.

        Args:
            seconds: Position (clamped to [0, duration]); ignored while the
                duration is unknown
        """
        duration = self.duration()
        if duration <= 0 or self._state not in _BOUND_STATES:
            return
        self._sink.seek(max(0.0, min(seconds, duration)))

    def set_volume(self, level: float) -> None:
        """
        Set volume.

        Args:
            level: Volume from 0.0 to 1.0 (will be clamped)
        """
        self._volume = max(0.0, min(1.0, level))
        if self._state != EngineState.DESTROYED:
            self._sink.set_volume(self._volume)
        self._events.publish(EventBus.VOLUME_CHANGED, {"volume": self._volume})

    @property
    def volume(self) -> float:
        return self._volume

    def current_time(self) -> float:
        if self._resource is None:
            return 0.0
        return self._sink.position or 0.0

    def duration(self) -> float:
        if self._resource is None:
            return 0.0
        return self._sink.duration or 0.0

    def is_playing(self) -> bool:
        return self._state == EngineState.PLAYING

    def destroy(self) -> None:
        """Release the resource and the sink. Safe to call multiple times."""
        if self._state == EngineState.DESTROYED:
            return
        # Any in-flight load becomes stale
        self._load_token += 1
        self.advance_hook = None
        try:
            self._sink.close()
        finally:
            self._release_resource()
            self._current_track = None
            self._set_state(EngineState.DESTROYED)

    # ============================================================================
    # Sink callbacks
    # ============================================================================

    def _on_time_update(self, position: float, duration: float) -> None:
        if self._state in _BOUND_STATES:
            self._events.publish(
                EventBus.PLAYER_PROGRESS,
                {"current_time": position, "duration": duration},
            )

    def _on_play(self) -> None:
        if self._state in (EngineState.READY, EngineState.PAUSED):
            self._set_state(EngineState.PLAYING)
            self._events.publish(EventBus.PLAYER_STARTED)

    def _on_pause(self) -> None:
        if self._state == EngineState.PLAYING:
            self._set_state(EngineState.PAUSED)
            self._events.publish(EventBus.PLAYER_PAUSED)

    def _on_ended(self) -> None:
        if self._state not in (EngineState.PLAYING, EngineState.PAUSED):
            return
        # One end per load, whatever the sink repeats
        if self._ended_token == self._load_token:
            return
        self._ended_token = self._load_token
        self._set_state(EngineState.ENDED)

        advanced = False
        hook = self.advance_hook
        if hook is not None:
            try:
                advanced = bool(hook())
            except Exception as e:
                logger.error("Advance hook failed: %s", e, exc_info=True)
        if not advanced:
            self._events.publish(EventBus.PLAYER_ENDED)

    def _on_error(self, message: str) -> None:
        if self._state not in _BOUND_STATES:
            return
        logger.error("Playback error: %s", message)
        self._sink.detach()
        self._release_resource()
        self._set_state(EngineState.FAILED)
        self._events.publish(EventBus.PLAYER_FAILED, {"message": message})
