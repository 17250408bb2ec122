"""Cloud music library client: library state, sequencing and streamed playback."""

__version__ = "0.1.0"
