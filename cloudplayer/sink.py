"""Media sink contract: the single playable element the engine drives.

A sink plays one URI at a time. It reports what happens through plain
callback attributes, in the same style as the GStreamer player:

- on_time_update(position, duration): playback position advanced
- on_play(): playback started or resumed
- on_pause(): playback paused
- on_ended(): end of stream reached
- on_error(message): decode or output failure after loading

Loading and starting playback are coroutines because both wait on the
platform; everything else is immediate.
"""

from typing import Callable, Optional


class MediaSink:
    """Base class for playable sinks. Subclasses implement the platform side."""

    def __init__(self) -> None:
        self.on_time_update: Optional[Callable[[float, float], None]] = None
        self.on_play: Optional[Callable[[], None]] = None
        self.on_pause: Optional[Callable[[], None]] = None
        self.on_ended: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None

    async def load(self, uri: str) -> float:
        """
        Bind a source and wait until it is buffered enough to report duration.

        Args:
            uri: Source URI (file:// for streamed resources)

        Returns:
            Duration in seconds (0.0 if the stream does not report one)

        Raises:
            SinkError: The source could not be opened or decoded
        """
        raise NotImplementedError

    async def play(self) -> None:
        """Start or resume playback. Raises SinkError when refused."""
        raise NotImplementedError

    def pause(self) -> None:
        raise NotImplementedError

    def detach(self) -> None:
        """Stop and unbind the current source."""
        raise NotImplementedError

    def seek(self, position: float) -> None:
        raise NotImplementedError

    def set_volume(self, volume: float) -> None:
        raise NotImplementedError

    @property
    def position(self) -> float:
        raise NotImplementedError

    @property
    def duration(self) -> float:
        raise NotImplementedError

    def close(self) -> None:
        """Release platform resources. Called once by the engine on destroy."""
        self.detach()
