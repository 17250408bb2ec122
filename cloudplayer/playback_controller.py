"""Playback controller - ties LibraryStore, PlayQueue and PlaybackEngine together."""
import asyncio
from typing import Any, Dict, Optional, Set

from cloudplayer.events import EventBus
from cloudplayer.exceptions import CloudPlayerError
from cloudplayer.library_store import LibraryStore
from cloudplayer.logging import get_logger
from cloudplayer.models import Track
from cloudplayer.play_queue import PlayQueue, RepeatMode
from cloudplayer.playback_engine import EngineState, PlaybackEngine

logger = get_logger(__name__)


class PlaybackController:
    """Moves the library cursor and drives the engine; subscribes to action events."""

    def __init__(
        self,
        store: LibraryStore,
        play_queue: PlayQueue,
        engine: PlaybackEngine,
        event_bus: EventBus,
    ):
        self._store = store
        self._queue = play_queue
        self._engine = engine
        self._events = event_bus

        self._autonext_enabled: bool = True
        self._advance_task: Optional[asyncio.Task] = None
        # Fire-and-forget tasks started from action events
        self._tasks: Set[asyncio.Task] = set()

        engine.advance_hook = self._on_track_ended

        self._events.subscribe(EventBus.ACTION_PLAY_TRACK, self._on_action_play_track)
        self._events.subscribe(EventBus.ACTION_TOGGLE_PLAY, self._on_action_toggle_play)
        self._events.subscribe(EventBus.ACTION_PAUSE, self._on_action_pause)
        self._events.subscribe(EventBus.ACTION_NEXT, self._on_action_next)
        self._events.subscribe(EventBus.ACTION_PREV, self._on_action_previous)
        self._events.subscribe(EventBus.ACTION_SEEK, self._on_action_seek)
        self._events.subscribe(EventBus.ACTION_SET_VOLUME, self._on_action_set_volume)
        self._events.subscribe(EventBus.ACTION_SET_SHUFFLE, self._on_action_set_shuffle)
        self._events.subscribe(
            EventBus.ACTION_SET_REPEAT_MODE, self._on_action_set_repeat_mode
        )

    @property
    def autonext_enabled(self) -> bool:
        return self._autonext_enabled

    def set_autonext_enabled(self, enabled: bool) -> None:
        self._autonext_enabled = enabled

    # ============================================================================
    # Public API
    # ============================================================================

    async def play_track(self, track_id: str) -> bool:
        """
        Make a track current, load it and start playback.

        Args:
            track_id: Track identifier from the full library

        Returns:
            False when the id is unknown or the load was superseded

        Raises:
            LoadError: The track could not be fetched or decoded
            PlaybackError: The sink refused to start
        """
        if not self._store.set_current_track(track_id):
            logger.warning("Cannot play - unknown track %s", track_id)
            return False
        return await self._load_and_play(self._store.current_track)

    async def next(self) -> bool:
        track = self._store.next_track()
        if track is None:
            return False
        return await self.play_track(track.id)

    async def previous(self) -> bool:
        # Restart the current track when it has been playing for a while
        if self._engine.current_time() > 3.0 and self._engine.state in (
            EngineState.PLAYING,
            EngineState.PAUSED,
        ):
            self._engine.seek_to(0.0)
            return True
        track = self._store.previous_track()
        if track is None:
            return False
        return await self.play_track(track.id)

    async def toggle_play_pause(self) -> None:
        """Resume/pause the bound track, or start the current (or first) one."""
        if self._engine.state in (EngineState.READY, EngineState.PLAYING, EngineState.PAUSED):
            await self._engine.toggle_play_pause()
            return
        track = self._store.current_track or self._store.next_track()
        if track is not None:
            await self.play_track(track.id)

    async def _load_and_play(self, track: Track) -> bool:
        if not await self._engine.load_track(track):
            return False
        await self._engine.play()
        return True

    # ============================================================================
    # Auto-advance
    # ============================================================================

    def _on_track_ended(self) -> bool:
        """Advance hook: True when the next track has been scheduled."""
        if not self._autonext_enabled:
            return False
        if self._advance_task is not None and not self._advance_task.done():
            # Already advancing from this end
            return True
        track = self._store.next_track()
        if track is None:
            logger.info("End of queue reached")
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, cannot advance to %s", track.id)
            return False
        self._store.set_current_track(track.id)
        self._advance_task = loop.create_task(self._advance_to(track))
        return True

    async def _advance_to(self, track: Track) -> None:
        try:
            await self._load_and_play(track)
        except CloudPlayerError as e:
            # Already reported on the bus by the engine
            logger.warning("Auto-advance to %s failed: %s", track.id, e)

    async def wait_idle(self) -> None:
        """Wait for scheduled advances and action tasks to finish."""
        pending = [t for t in self._tasks if not t.done()]
        if self._advance_task is not None and not self._advance_task.done():
            pending.append(self._advance_task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ============================================================================
    # Action handlers
    # ============================================================================

    def _spawn(self, coro) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("Action ignored: no running event loop")
            return
        task = loop.create_task(self._guard(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, coro) -> None:
        try:
            await coro
        except CloudPlayerError as e:
            logger.warning("Action failed: %s", e)

    def _on_action_play_track(self, data: Optional[Dict[str, Any]]) -> None:
        if data and data.get("track_id"):
            self._spawn(self.play_track(data["track_id"]))

    def _on_action_toggle_play(self, data: Optional[Dict[str, Any]]) -> None:
        self._spawn(self.toggle_play_pause())

    def _on_action_pause(self, data: Optional[Dict[str, Any]]) -> None:
        self._engine.pause()

    def _on_action_next(self, data: Optional[Dict[str, Any]]) -> None:
        self._spawn(self.next())

    def _on_action_previous(self, data: Optional[Dict[str, Any]]) -> None:
        self._spawn(self.previous())

    def _on_action_seek(self, data: Optional[Dict[str, Any]]) -> None:
        if data and "position" in data:
            self._engine.seek_to(float(data["position"]))

    def _on_action_set_volume(self, data: Optional[Dict[str, Any]]) -> None:
        if data and "volume" in data:
            self._engine.set_volume(float(data["volume"]))

    def _on_action_set_shuffle(self, data: Optional[Dict[str, Any]]) -> None:
        if data and "enabled" in data:
            self._queue.set_shuffle(bool(data["enabled"]))

    def _on_action_set_repeat_mode(self, data: Optional[Dict[str, Any]]) -> None:
        if not data or "mode" not in data:
            return
        try:
            self._queue.set_repeat_mode(RepeatMode(data["mode"]))
        except ValueError:
            logger.warning("Unknown repeat mode: %r", data["mode"])

    def cleanup(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._advance_task is not None:
            self._advance_task.cancel()
        self._engine.destroy()
