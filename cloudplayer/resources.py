"""Streamed audio resources: fetched bytes exposed to the sink as a file URI."""

import os
import tempfile
from pathlib import Path
from typing import Optional

from cloudplayer.logging import get_logger

logger = get_logger(__name__)


class StreamedResource:
    """
    Exclusively owned handle to the bytes of one track.

    Backed by a temporary file so any sink that plays URIs can read it.
    The file exists from creation until release(); release is explicit
    and idempotent, nothing relies on finalization.
    """

    def __init__(self, path: Path):
        self._path = path
        self._released = False

    @classmethod
    def from_bytes(cls, data: bytes, directory: Optional[Path] = None,
                   suffix: str = "") -> "StreamedResource":
        """
        Write data to a fresh temporary file.

        Args:
            data: Audio bytes
            directory: Where to create the file (system temp dir if None)
            suffix: File suffix, kept so decoders can sniff the container

        Returns:
            New live resource
        """
        if directory is not None:
            directory.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix="stream-", suffix=suffix,
                                    dir=str(directory) if directory else None)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
        except OSError:
            Path(name).unlink(missing_ok=True)
            raise
        logger.debug("Created streamed resource %s (%d bytes)", name, len(data))
        return cls(Path(name))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def uri(self) -> str:
        return self._path.resolve().as_uri()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Delete the backing file. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to remove streamed resource %s: %s", self._path, e)
        else:
            logger.debug("Released streamed resource %s", self._path)

    def __enter__(self) -> "StreamedResource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
