"""Manifest (db.json) validation and building from a local music folder.

The manifest is the only library format the client understands:

    {"albums": {"<album id>": {"name", "artist", "year"?, "art"?}},
     "tracks": [{"id", "title", "albumId", "duration", "fileName"}]}

build_manifest() scans audio files with mutagen so a folder can be
published to the proxy (storage_root/music + storage_root/art + db.json).
"""

import hashlib
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from mutagen import File, MutagenError
from mutagen.flac import FLAC
from mutagen.mp4 import MP4

from cloudplayer.exceptions import ValidationError
from cloudplayer.logging import get_logger
from cloudplayer.security import SecurityValidator

logger = get_logger(__name__)

# Tag keys tried in order for each field: Vorbis, ID3v2, MP4
TITLE_KEYS = ['TITLE', 'title', 'TIT2', '\xa9nam']
ARTIST_KEYS = ['ARTIST', 'artist', 'TPE1', '\xa9ART']
ALBUM_KEYS = ['ALBUM', 'album', 'TALB', '\xa9alb']
ALBUM_ARTIST_KEYS = ['ALBUMARTIST', 'albumartist', 'ALBUM ARTIST', 'TPE2', 'aART']
YEAR_KEYS = ['DATE', 'date', 'YEAR', 'TDRC', 'TDOR', '\xa9day']
TRACK_NUMBER_KEYS = ['TRACKNUMBER', 'tracknumber', 'TRCK', 'trkn']


def validate_manifest(manifest: Any) -> None:
    """
    Check that a manifest has both required sections.

    Raises:
        ValidationError: Not a mapping, or albums is not a mapping, or
            tracks is not a list
    """
    if not isinstance(manifest, Mapping):
        raise ValidationError("Manifest must be a JSON object")
    if not isinstance(manifest.get("albums"), Mapping):
        raise ValidationError("Manifest must contain an 'albums' mapping")
    if not isinstance(manifest.get("tracks"), list):
        raise ValidationError("Manifest must contain a 'tracks' list")


def _get_tag_generic(audio_file, tag_keys: List[str]) -> Optional[str]:
    """Get a tag value trying multiple possible keys - works for all formats."""
    tags = getattr(audio_file, 'tags', None)
    if tags is None:
        return None
    for key in tag_keys:
        try:
            if key not in tags:
                continue
            value = tags[key]
        except (KeyError, TypeError, ValueError):
            continue

        # Vorbis/MP4 return lists, MP4 track numbers are tuples
        if isinstance(value, list):
            if not value:
                continue
            value = value[0]
        if isinstance(value, tuple):
            if not value:
                continue
            value = value[0]
        # ID3 frames carry their values in .text
        if hasattr(value, 'text'):
            text = value.text
            if not text:
                continue
            value = text[0]
        if isinstance(value, bytes):
            value = value.decode('utf-8', errors='ignore')

        result = str(value).strip()
        if result:
            return result
    return None


def _parse_number(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        # "3/12" track numbers, "1999-05-01" dates
        return int(value.split('/')[0].split('-')[0].strip())
    except ValueError:
        return None


def _extract_art(audio_file) -> Optional[bytes]:
    """First embedded picture, if any."""
    try:
        if isinstance(audio_file, FLAC):
            if audio_file.pictures:
                return audio_file.pictures[0].data
            return None
        tags = getattr(audio_file, 'tags', None)
        if tags is None:
            return None
        if isinstance(audio_file, MP4):
            covers = tags.get('covr')
            return bytes(covers[0]) if covers else None
        # ID3: APIC frames are keyed 'APIC:<description>'
        for key in list(tags.keys()):
            if str(key).startswith('APIC'):
                return tags[key].data
    except (AttributeError, IndexError, KeyError, TypeError) as e:
        logger.debug("No usable album art: %s", e)
    return None


def _stable_id(prefix: str, *parts: str) -> str:
    digest = hashlib.sha1('\x1f'.join(parts).encode('utf-8')).hexdigest()
    return f"{prefix}{digest[:12]}"


def read_track_tags(file_path: Path) -> Dict[str, Any]:
    """
    Read the tags the manifest needs from one audio file.

    Files mutagen cannot parse still produce an entry titled after the
    file name with unknown duration.
    """
    info: Dict[str, Any] = {
        'title': None, 'artist': None, 'album': None, 'album_artist': None,
        'year': None, 'track_number': None, 'duration': 0.0, 'art': None,
    }
    try:
        audio_file = File(str(file_path))
    except (MutagenError, OSError) as e:
        logger.warning("Error reading tags from %s: %s", file_path, e)
        audio_file = None

    if audio_file is not None:
        info['title'] = _get_tag_generic(audio_file, TITLE_KEYS)
        info['artist'] = _get_tag_generic(audio_file, ARTIST_KEYS)
        info['album'] = _get_tag_generic(audio_file, ALBUM_KEYS)
        info['album_artist'] = _get_tag_generic(audio_file, ALBUM_ARTIST_KEYS)
        info['year'] = _parse_number(_get_tag_generic(audio_file, YEAR_KEYS))
        info['track_number'] = _parse_number(_get_tag_generic(audio_file, TRACK_NUMBER_KEYS))
        length = getattr(getattr(audio_file, 'info', None), 'length', None)
        if length:
            info['duration'] = round(float(length), 3)
        info['art'] = _extract_art(audio_file)

    if not info['title']:
        info['title'] = file_path.stem
    return info


def build_manifest(music_dir: Path, art_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Scan a folder and build a manifest for it.

    File names in the manifest are paths relative to music_dir, so the
    folder can be copied to the proxy's storage_root/music unchanged.

    Args:
        music_dir: Folder with audio files (scanned recursively)
        art_dir: When set, embedded cover art is written there as
            <album id>.jpg and referenced from the album entry

    Returns:
        Manifest dict, already passing validate_manifest()
    """
    music_dir = Path(music_dir)
    if not music_dir.is_dir():
        raise ValidationError(f"Not a directory: {music_dir}")
    if art_dir is not None:
        art_dir.mkdir(parents=True, exist_ok=True)

    albums: Dict[str, Dict[str, Any]] = {}
    entries: List[Tuple[Tuple[str, int, str], Dict[str, Any]]] = []

    for root, dirs, files in os.walk(music_dir):
        dirs.sort()
        for name in sorted(files):
            file_path = Path(root) / name
            if file_path.suffix.lower() not in SecurityValidator.AUDIO_EXTENSIONS:
                continue
            rel_name = file_path.relative_to(music_dir).as_posix()
            tags = read_track_tags(file_path)

            album_id = None
            if tags['album']:
                artist = tags['album_artist'] or tags['artist'] or ''
                album_id = _stable_id('a', artist.lower(), tags['album'].lower())
                if album_id not in albums:
                    album = {'name': tags['album'], 'artist': artist}
                    if tags['year']:
                        album['year'] = tags['year']
                    albums[album_id] = album
                if art_dir is not None and tags['art'] and 'art' not in albums[album_id]:
                    art_name = f"{album_id}.jpg"
                    (art_dir / art_name).write_bytes(tags['art'])
                    albums[album_id]['art'] = art_name

            track = {
                'id': _stable_id('t', rel_name),
                'title': tags['title'],
                'albumId': album_id,
                'duration': tags['duration'],
                'fileName': rel_name,
            }
            sort_key = (album_id or '', tags['track_number'] or 0, rel_name)
            entries.append((sort_key, track))

    entries.sort(key=lambda entry: entry[0])
    manifest = {'albums': albums, 'tracks': [track for _, track in entries]}
    logger.info("Built manifest: %d albums, %d tracks", len(albums), len(entries))
    return manifest
