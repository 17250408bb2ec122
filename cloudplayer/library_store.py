"""Centralized library state. Sequencing delegates to PlayQueue when set."""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
from typing import Any, Dict, List, Mapping, Optional, TYPE_CHECKING

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from cloudplayer.events import EventBus
from cloudplayer.logging import get_logger
from cloudplayer.models import Album, Library, Track

if TYPE_CHECKING:
    from cloudplayer.play_queue import PlayQueue

logger = get_logger(__name__)


class LibraryStore:
    """
    Library state: the manifest graph, the filtered view and the playback
    cursor. When a play queue is attached, next/previous lookups are
    delegated to it; otherwise full library order is used.
    """

    def __init__(self, event_bus: EventBus, play_queue: Optional["PlayQueue"] = None):
        """
        Initialize library state.

        Args:
            event_bus: EventBus instance for publishing state changes
            play_queue: When set, next/previous lookups follow its order
                (shuffle and explicit queues included).
        """
        self._event_bus = event_bus
        self._play_queue = play_queue

        self._library = Library()
        self._filtered_tracks: List[Track] = []
        self._query: str = ""

        # Playback cursor
        self._current_track: Optional[Track] = None
        self._current_index: int = -1

    def attach_play_queue(self, play_queue: Optional["PlayQueue"]) -> None:
        self._play_queue = play_queue

    # ============================================================================
    # Library
    # ============================================================================

    @property
    def library(self) -> Library:
        return self._library

    @property
    def tracks(self) -> List[Track]:
        """Full track sequence (read-only copy)."""
        return list(self._library.tracks)

    @property
    def albums(self) -> Dict[str, Album]:
        return dict(self._library.albums)

    def init(self, metadata: Optional[Mapping[str, Any]]) -> None:
        """
        Replace the library wholesale with a decoded manifest.

        Args:
            metadata: Mapping with optional "albums" and "tracks" sections
        """
        self._library = Library.from_manifest(metadata)
        self._query = ""
        self._filtered_tracks = list(self._library.tracks)

        # Cursor must not point into the old library
        if self._current_track is not None:
            self._current_index = self._index_of(self._current_track.id)
            if self._current_index == -1:
                self._current_track = None
            else:
                self._current_track = self._library.tracks[self._current_index]

        logger.info(
            "Library loaded: %d albums, %d tracks",
            len(self._library.albums),
            len(self._library.tracks),
        )
        self._event_bus.publish(EventBus.METADATA_LOADED)

    def get_track(self, track_id: str) -> Optional[Track]:
        index = self._index_of(track_id)
        return self._library.tracks[index] if index != -1 else None

    def tracks_for_album(self, album_id: str) -> List[Track]:
        return [t for t in self._library.tracks if t.album_id == album_id]

    def album_for(self, track: Track) -> Optional[Album]:
        return self._library.album_for(track)

    def artist_for(self, track: Track) -> str:
        return self._library.artist_for(track)

    def _index_of(self, track_id: str) -> int:
        for i, track in enumerate(self._library.tracks):
            if track.id == track_id:
                return i
        return -1

    # ============================================================================
    # Filtered View
    # ============================================================================

    @property
    def filtered_tracks(self) -> List[Track]:
        return list(self._filtered_tracks)

    @property
    def query(self) -> str:
        return self._query

    def filter(self, query: Optional[str]) -> List[Track]:
        """
        Recompute the filtered view.

        Matches case-insensitively on track title, album name or album
        artist. An empty query restores the full track sequence.

        Args:
            query: Search text

        Returns:
            The new filtered view
        """
        self._query = (query or "").strip()
        if not self._query:
            self._filtered_tracks = list(self._library.tracks)
        else:
            needle = self._query.lower()
            self._filtered_tracks = [
                t for t in self._library.tracks if self._matches(t, needle)
            ]
        self._event_bus.publish(EventBus.TRACKS_FILTERED)
        return self.filtered_tracks

    def _matches(self, track: Track, needle: str) -> bool:
        if needle in track.title.lower():
            return True
        album = self._library.album_for(track)
        if album is None:
            return False
        return needle in album.artist.lower() or needle in album.name.lower()

    # ============================================================================
    # Playback Cursor
    # ============================================================================

    @property
    def current_track(self) -> Optional[Track]:
        return self._current_track

    @property
    def current_index(self) -> int:
        return self._current_index

    def is_current(self, track_id: str) -> bool:
        return self._current_track is not None and self._current_track.id == track_id

    def set_current_track(self, track_id: str) -> bool:
        """
        Point the cursor at a track of the full library.

        Args:
            track_id: Track identifier

        Returns:
            False (state untouched) when the id is unknown, True otherwise
        """
        index = self._index_of(track_id)
        if index == -1:
            logger.debug("set_current_track: unknown track id %s", track_id)
            return False

        self._current_track = self._library.tracks[index]
        self._current_index = index
        self._event_bus.publish(EventBus.TRACK_CHANGED, self._current_track)
        return True

    def clear_current_track(self) -> None:
        if self._current_track is None:
            return
        self._current_track = None
        self._current_index = -1
        self._event_bus.publish(EventBus.TRACK_CHANGED, None)

    def next_track(self) -> Optional[Track]:
        """Track after the cursor in the active sequence, or None at the end."""
        if self._play_queue is not None:
            return self._play_queue.next_track()
        next_index = self._current_index + 1
        if 0 <= next_index < len(self._library.tracks):
            return self._library.tracks[next_index]
        return None

    def previous_track(self) -> Optional[Track]:
        """Track before the cursor in the active sequence, or None at the start."""
        if self._play_queue is not None:
            return self._play_queue.previous_track()
        if self._current_index > 0:
            return self._library.tracks[self._current_index - 1]
        return None
