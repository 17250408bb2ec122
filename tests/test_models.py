"""Tests for library records and manifest ingestion."""

import math

from cloudplayer.models import UNKNOWN_ARTIST, Library, Track, format_time


class TestLibraryFromManifest:
    """Test Library.from_manifest defaulting rules."""

    def test_missing_sections_become_empty(self):
        """A manifest without albums or tracks yields an empty library."""
        library = Library.from_manifest({})
        assert library.albums == {}
        assert library.tracks == []

        assert Library.from_manifest(None).tracks == []

    def test_fields_are_mapped(self, sample_manifest):
        """Manifest keys map onto fixed-shape records."""
        library = Library.from_manifest(sample_manifest)

        track = library.tracks[0]
        assert track == Track(id="t1", title="Song", album_id="a1", duration=180.0, file_name="s1.mp3")
        album = library.albums["a1"]
        assert album.name == "Demo"
        assert album.artist == "DJ"
        assert album.year == 2021
        assert album.art == "demo.jpg"
        assert library.albums["a2"].art is None

    def test_unknown_duration_is_zero(self, sample_manifest):
        """Null or invalid durations become 0.0."""
        sample_manifest["tracks"].append(
            {"id": "t9", "title": "Bad", "duration": "abc", "fileName": "x.mp3"}
        )
        library = Library.from_manifest(sample_manifest)

        assert library.tracks[3].duration == 0.0
        assert library.tracks[4].duration == 0.0
        assert library.tracks[4].album_id is None

    def test_malformed_entries_skipped(self):
        """Non-mapping entries are dropped instead of failing ingestion."""
        library = Library.from_manifest({
            "albums": {"a1": "not a mapping", "a2": {"name": "Ok", "artist": "X"}},
            "tracks": ["junk", {"id": "t1", "title": "Fine", "fileName": "f.mp3"}],
        })

        assert list(library.albums) == ["a2"]
        assert [t.id for t in library.tracks] == ["t1"]

    def test_wrong_section_types_ignored(self):
        """Sections of the wrong type are treated as missing."""
        library = Library.from_manifest({"albums": [], "tracks": {}})
        assert library.albums == {}
        assert library.tracks == []

    def test_artist_fallback(self, sample_manifest):
        """Dangling album references render as Unknown Artist."""
        library = Library.from_manifest(sample_manifest)

        assert library.artist_for(library.tracks[0]) == "DJ"
        assert library.album_for(library.tracks[3]) is None
        assert library.artist_for(library.tracks[3]) == UNKNOWN_ARTIST

    def test_to_manifest_keeps_keys(self, sample_manifest):
        """Serialising back uses the manifest key names."""
        manifest = Library.from_manifest(sample_manifest).to_manifest()

        assert manifest["tracks"][0]["fileName"] == "s1.mp3"
        assert manifest["tracks"][0]["albumId"] == "a1"
        assert manifest["albums"]["a1"]["art"] == "demo.jpg"


class TestFormatTime:
    """Test format_time helper."""

    def test_formats_minutes_and_seconds(self):
        assert format_time(0) == "0:00"
        assert format_time(65.9) == "1:05"
        assert format_time(600) == "10:00"

    def test_non_finite(self):
        assert format_time(math.nan) == "0:00"
        assert format_time(math.inf) == "0:00"
        assert format_time(None) == "0:00"
