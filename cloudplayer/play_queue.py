"""Play queue: the order tracks are played in, with shuffle and repeat."""

import random
from enum import Enum
from typing import Iterable, List, Optional, TYPE_CHECKING

from cloudplayer.events import EventBus
from cloudplayer.logging import get_logger
from cloudplayer.models import Track

if TYPE_CHECKING:
    from cloudplayer.library_store import LibraryStore

logger = get_logger(__name__)


class RepeatMode(Enum):
    """What happens after the last track of the queue."""

    OFF = "off"  # stop at the end
    TRACK = "track"  # repeat the current track
    QUEUE = "queue"  # wrap to the start


class PlayQueue:
    """
    Ordered sequence of track ids, separate from the filtered view.

    Until an explicit queue is built the queue follows full library order.
    Shuffling keeps the pre-shuffle list so that turning shuffle off
    restores it exactly.
    """

    def __init__(
        self,
        store: "LibraryStore",
        event_bus: EventBus,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Initialize the queue and attach it to the store.

        Args:
            store: Library store the ids resolve against
            event_bus: EventBus instance for publishing queue changes
            rng: Random source for shuffling (injectable for tests)
        """
        self._store = store
        self._events = event_bus
        self._rng = rng or random.Random()

        self._queue: List[str] = []
        self._original_queue: List[str] = []
        self._explicit: bool = False
        self._shuffle_enabled: bool = False
        self._repeat_mode: RepeatMode = RepeatMode.OFF

        store.attach_play_queue(self)
        self._events.subscribe(EventBus.METADATA_LOADED, self._on_metadata_loaded)
        self._reset_to_library()

    # ============================================================================
    # Queue contents
    # ============================================================================

    @property
    def queue(self) -> List[str]:
        """Active order (shuffled when shuffle is on)."""
        return list(self._queue)

    @property
    def is_explicit(self) -> bool:
        return self._explicit

    def _on_metadata_loaded(self, _data=None) -> None:
        self._explicit = False
        self._reset_to_library()

    def _reset_to_library(self) -> None:
        self._original_queue = [t.id for t in self._store.tracks]
        self._rebuild()

    def _rebuild(self) -> None:
        if self._shuffle_enabled:
            self._queue = self._shuffled(self._original_queue)
        else:
            self._queue = list(self._original_queue)
        self._events.publish(EventBus.QUEUE_CHANGED, {"size": len(self._queue)})

    def set_queue(self, track_ids: Iterable[str]) -> None:
        """
        Build an explicit queue. Ids unknown to the library are dropped.

        Args:
            track_ids: Track identifiers in play order
        """
        ids = []
        for track_id in track_ids:
            if self._store.get_track(track_id) is None:
                logger.warning("Dropping unknown track id from queue: %s", track_id)
                continue
            ids.append(track_id)
        self._explicit = True
        self._original_queue = ids
        self._rebuild()

    def enqueue(self, track_id: str) -> bool:
        """Append a track to the queue; False if the id is unknown."""
        if self._store.get_track(track_id) is None:
            return False
        if not self._explicit:
            self._explicit = True
            self._original_queue = []
            self._queue = []
        self._original_queue.append(track_id)
        self._queue.append(track_id)
        self._events.publish(EventBus.QUEUE_CHANGED, {"size": len(self._queue)})
        return True

    def clear(self) -> None:
        """Drop the explicit queue and go back to library order."""
        self._explicit = False
        self._reset_to_library()

    # ============================================================================
    # Shuffle / repeat
    # ============================================================================

    @property
    def shuffle_enabled(self) -> bool:
        return self._shuffle_enabled

    def set_shuffle(self, enabled: bool) -> None:
        """
        Toggle shuffle.

        Turning it on permutes the queue with the current track first, so
        the remaining tracks all follow it. Turning it off restores the
        retained pre-shuffle order.

        Args:
            enabled: True to enable shuffle
        """
        if self._shuffle_enabled == enabled:
            return
        self._shuffle_enabled = enabled
        if enabled:
            self._queue = self._shuffled(self._original_queue)
        else:
            self._queue = list(self._original_queue)
        self._events.publish(EventBus.SHUFFLE_CHANGED, {"enabled": enabled})

    def toggle_shuffle(self) -> bool:
        self.set_shuffle(not self._shuffle_enabled)
        return self._shuffle_enabled

    def _shuffled(self, ids: List[str]) -> List[str]:
        shuffled = list(ids)
        self._rng.shuffle(shuffled)
        current = self._store.current_track
        if current is not None and current.id in shuffled:
            shuffled.remove(current.id)
            shuffled.insert(0, current.id)
        return shuffled

    @property
    def repeat_mode(self) -> RepeatMode:
        return self._repeat_mode

    def set_repeat_mode(self, mode: RepeatMode) -> None:
        if self._repeat_mode != mode:
            self._repeat_mode = mode
            self._events.publish(EventBus.REPEAT_MODE_CHANGED, {"mode": mode})

    # ============================================================================
    # Sequencing
    # ============================================================================

    def next_id(self, current_id: Optional[str]) -> Optional[str]:
        """
        Id to play after current_id.

        Returns the first queued id when nothing is current, and None at
        the end of the queue unless repeat is on.
        """
        if not self._queue:
            return None
        if current_id is None:
            return self._queue[0]
        try:
            index = self._queue.index(current_id)
        except ValueError:
            # Playing something outside the queue: no successor
            return None
        if self._repeat_mode == RepeatMode.TRACK:
            return current_id
        if index + 1 < len(self._queue):
            return self._queue[index + 1]
        if self._repeat_mode == RepeatMode.QUEUE:
            return self._queue[0]
        return None

    def previous_id(self, current_id: Optional[str]) -> Optional[str]:
        if not self._queue or current_id is None:
            return None
        try:
            index = self._queue.index(current_id)
        except ValueError:
            return None
        if self._repeat_mode == RepeatMode.TRACK:
            return current_id
        if index > 0:
            return self._queue[index - 1]
        if self._repeat_mode == RepeatMode.QUEUE:
            return self._queue[-1]
        return None

    def next_track(self) -> Optional[Track]:
        current = self._store.current_track
        next_id = self.next_id(current.id if current else None)
        return self._store.get_track(next_id) if next_id is not None else None

    def previous_track(self) -> Optional[Track]:
        current = self._store.current_track
        prev_id = self.previous_id(current.id if current else None)
        return self._store.get_track(prev_id) if prev_id is not None else None
