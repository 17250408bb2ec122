"""Centralized event bus for decoupled component communication."""

from typing import Any, Callable, Dict, List
from cloudplayer.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish-subscribe event system. Components publish/subscribe without knowing each other.

    Event Flow Architecture:
    - LibraryStore and PlayQueue publish library/queue notifications
    - PlaybackEngine publishes player-* lifecycle events
    - Presentation code (CLI, UI) publishes action.* requests and renders from the rest
    """

    # =========================================================================
    # Library state (published by LibraryStore)
    # =========================================================================
    METADATA_LOADED = "metadata-loaded"
    TRACKS_FILTERED = "tracks-filtered"
    # Payload: the new current Track
    TRACK_CHANGED = "track-changed"

    # =========================================================================
    # Queue state (published by PlayQueue)
    # =========================================================================
    QUEUE_CHANGED = "queue-changed"
    SHUFFLE_CHANGED = "shuffle-changed"
    REPEAT_MODE_CHANGED = "repeat-mode-changed"

    # =========================================================================
    # Player lifecycle (published by PlaybackEngine)
    # =========================================================================
    # {"current_time": float, "duration": float}
    PLAYER_PROGRESS = "player-progress"
    # {"duration": float}
    PLAYER_READY = "player-ready"
    PLAYER_STARTED = "player-started"
    PLAYER_PAUSED = "player-paused"
    PLAYER_ENDED = "player-ended"
    # {"message": str}
    PLAYER_FAILED = "player-failed"
    # {"state": EngineState}
    PLAYER_STATE_CHANGED = "player-state-changed"
    # {"volume": float}
    VOLUME_CHANGED = "volume-changed"

    # =========================================================================
    # Presentation -> Core: Action Requests
    # Handled by PlaybackController
    # =========================================================================
    ACTION_PLAY_TRACK = "action.play_track"  # {"track_id": str}
    ACTION_TOGGLE_PLAY = "action.toggle_play"
    ACTION_PAUSE = "action.pause"
    ACTION_NEXT = "action.next"
    ACTION_PREV = "action.previous"
    ACTION_SEEK = "action.seek"  # {"position": float}
    ACTION_SET_VOLUME = "action.set_volume"  # {"volume": float}
    ACTION_SET_SHUFFLE = "action.set_shuffle"  # {"enabled": bool}
    ACTION_SET_REPEAT_MODE = "action.set_repeat_mode"  # {"mode": RepeatMode}

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event not in self._subscribers:
            self._subscribers[event] = []
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event in self._subscribers:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

    def publish(self, event: str, data: Any = None) -> None:
        # Snapshot: callbacks subscribed during delivery wait for the next publish
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    "Error in event callback for %s: %s", event, e, exc_info=True
                )

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))
