"""Library records: tracks, albums and the manifest they are loaded from."""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

from cloudplayer.logging import get_logger

logger = get_logger(__name__)

UNKNOWN_ARTIST = "Unknown Artist"


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _as_duration(value: Any) -> float:
    try:
        duration = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(duration) or duration < 0:
        return 0.0
    return duration


@dataclass(frozen=True)
class Album:
    """A single album entry of the manifest."""

    id: str
    name: str = ""
    artist: str = ""
    year: Optional[Union[int, str]] = None
    art: Optional[str] = None

    @classmethod
    def from_dict(cls, album_id: str, data: Mapping[str, Any]) -> "Album":
        return cls(
            id=str(album_id),
            name=_as_str(data.get("name")),
            artist=_as_str(data.get("artist")),
            year=data.get("year") or None,
            art=data.get("art") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "artist": self.artist}
        if self.year is not None:
            data["year"] = self.year
        if self.art:
            data["art"] = self.art
        return data


@dataclass(frozen=True)
class Track:
    """A single track entry of the manifest. Duration is 0.0 when unknown."""

    id: str
    title: str = ""
    album_id: Optional[str] = None
    duration: float = 0.0
    file_name: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Track":
        album_id = data.get("albumId")
        return cls(
            id=_as_str(data.get("id")),
            title=_as_str(data.get("title")),
            album_id=str(album_id) if album_id not in (None, "") else None,
            duration=_as_duration(data.get("duration")),
            file_name=_as_str(data.get("fileName")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "albumId": self.album_id,
            "duration": self.duration,
            "fileName": self.file_name,
        }


@dataclass
class Library:
    """Album mapping plus the ordered track sequence."""

    albums: Dict[str, Album] = field(default_factory=dict)
    tracks: List[Track] = field(default_factory=list)

    @classmethod
    def from_manifest(cls, metadata: Optional[Mapping[str, Any]]) -> "Library":
        """
        Build a library from a decoded manifest.

        Missing sections become empty containers and malformed entries are
        skipped, so ingestion never raises.

        Args:
            metadata: Decoded db.json content (may be None)

        Returns:
            New Library instance
        """
        if not isinstance(metadata, Mapping):
            metadata = {}

        raw_albums = metadata.get("albums") or {}
        raw_tracks = metadata.get("tracks") or []

        albums: Dict[str, Album] = {}
        if isinstance(raw_albums, Mapping):
            for album_id, data in raw_albums.items():
                if not isinstance(data, Mapping):
                    logger.warning("Skipping malformed album entry %r", album_id)
                    continue
                albums[str(album_id)] = Album.from_dict(album_id, data)
        else:
            logger.warning("Manifest albums is not a mapping, ignoring it")

        tracks: List[Track] = []
        if isinstance(raw_tracks, (list, tuple)):
            for data in raw_tracks:
                if not isinstance(data, Mapping):
                    logger.warning("Skipping malformed track entry %r", data)
                    continue
                tracks.append(Track.from_dict(data))
        else:
            logger.warning("Manifest tracks is not a sequence, ignoring it")

        return cls(albums=albums, tracks=tracks)

    def album_for(self, track: Track) -> Optional[Album]:
        if track.album_id is None:
            return None
        return self.albums.get(track.album_id)

    def artist_for(self, track: Track) -> str:
        album = self.album_for(track)
        if album is None or not album.artist:
            return UNKNOWN_ARTIST
        return album.artist

    def to_manifest(self) -> Dict[str, Any]:
        return {
            "albums": {album_id: album.to_dict() for album_id, album in self.albums.items()},
            "tracks": [track.to_dict() for track in self.tracks],
        }


def format_time(seconds: Optional[float]) -> str:
    """Format seconds as m:ss; non-finite input renders as 0:00."""
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        return "0:00"
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"
