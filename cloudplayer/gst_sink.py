"""GStreamer-based media sink for streamed audio resources.

The playbin's bus is polled from an asyncio task instead of a GLib main
loop, so the sink lives on the same event loop as the engine and the
HTTP client.

The GstSink class handles:
- Binding a file:// URI and waiting for preroll (duration known)
- Transport (play/pause/seek/volume)
- Translating bus messages into MediaSink callbacks
"""

import asyncio
from typing import Optional

import gi
gi.require_version('Gst', '1.0')
from gi.repository import Gst

from cloudplayer.exceptions import SinkError
from cloudplayer.logging import get_logger
from cloudplayer.sink import MediaSink

logger = get_logger(__name__)


# GStreamer playbin flags
GST_FLAG_AUDIO = 0x02
GST_FLAG_SOFT_VOLUME = 0x10

# Intervals (seconds)
BUS_POLL_INTERVAL = 0.05
POSITION_UPDATE_INTERVAL = 0.5
# Longest a source may take to preroll
LOAD_TIMEOUT = 20.0


class GstSink(MediaSink):
    """
    Audio-only playbin wrapped in the MediaSink contract.
    """

    def __init__(self):
        super().__init__()
        if not Gst.is_initialized():
            Gst.init(None)

        self.playbin: Optional[Gst.Element] = None
        self._bus: Optional[Gst.Bus] = None
        self._uri: Optional[str] = None
        self._volume: float = 1.0
        self._position: float = 0.0
        self._duration: float = 0.0
        self._is_playing: bool = False

        self._pending_load: Optional[asyncio.Future] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._last_position_update: float = 0.0

        self._setup_pipeline()

    def _setup_pipeline(self) -> None:
        """Set up the GStreamer playbin pipeline."""
        self.playbin = Gst.ElementFactory.make("playbin", "playbin")
        if not self.playbin:
            raise SinkError("Failed to create GStreamer playbin")

        try:
            self.playbin.set_property("flags", GST_FLAG_AUDIO | GST_FLAG_SOFT_VOLUME)
        except (AttributeError, TypeError):
            # Ignore errors setting flags (playbin might not support this property)
            pass

        audio_sink = Gst.ElementFactory.make("autoaudiosink", "audiosink")
        if audio_sink:
            self.playbin.set_property("audio-sink", audio_sink)

        self.playbin.set_property("volume", self._volume)
        self._bus = self.playbin.get_bus()

    # ============================================================================
    # Bus handling
    # ============================================================================

    def _ensure_polling(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_bus())

    async def _poll_bus(self) -> None:
        mask = (
            Gst.MessageType.ERROR
            | Gst.MessageType.EOS
            | Gst.MessageType.STATE_CHANGED
            | Gst.MessageType.ASYNC_DONE
            | Gst.MessageType.DURATION_CHANGED
        )
        loop = asyncio.get_running_loop()
        while self.playbin is not None:
            message = self._bus.pop_filtered(mask)
            while message is not None and self.playbin is not None:
                self._on_message(message)
                message = self._bus.pop_filtered(mask)

            if self._is_playing and loop.time() - self._last_position_update >= POSITION_UPDATE_INTERVAL:
                self._last_position_update = loop.time()
                self._update_position()
            await asyncio.sleep(BUS_POLL_INTERVAL)

    def _on_message(self, message: Gst.Message) -> None:
        """
        Handle a GStreamer bus message.

        Args:
            message: GStreamer message
        """
        msg_type = message.type

        if msg_type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            logger.error("Playback error: %s", err.message)
            if debug:
                logger.debug("GStreamer debug: %s", debug)
            if self._pending_load is not None and not self._pending_load.done():
                self._pending_load.set_exception(SinkError(err.message))
                return
            self.detach()
            if self.on_error:
                self.on_error(err.message)

        elif msg_type == Gst.MessageType.EOS:
            self._is_playing = False
            if self.on_ended:
                self.on_ended()

        elif msg_type == Gst.MessageType.ASYNC_DONE:
            self._update_duration()
            if self._pending_load is not None and not self._pending_load.done():
                self._pending_load.set_result(self._duration)

        elif msg_type == Gst.MessageType.STATE_CHANGED:
            if message.src != self.playbin:
                return
            _, new_state, _ = message.parse_state_changed()
            if new_state == Gst.State.PLAYING and not self._is_playing:
                self._is_playing = True
                if self.on_play:
                    self.on_play()
            elif new_state == Gst.State.PAUSED and self._is_playing:
                self._is_playing = False
                if self.on_pause:
                    self.on_pause()

        elif msg_type == Gst.MessageType.DURATION_CHANGED:
            self._update_duration()

    def _update_duration(self) -> None:
        if self.playbin:
            success, duration = self.playbin.query_duration(Gst.Format.TIME)
            if success and duration > 0:
                self._duration = duration / Gst.SECOND

    def _update_position(self) -> None:
        if self.playbin:
            success, position = self.playbin.query_position(Gst.Format.TIME)
            if success:
                self._position = position / Gst.SECOND
                if self.on_time_update:
                    self.on_time_update(self._position, self._duration)

    # ============================================================================
    # MediaSink
    # ============================================================================

    async def load(self, uri: str) -> float:
        if self.playbin is None:
            raise SinkError("Sink is closed")
        self._ensure_polling()
        self.detach()

        self._uri = uri
        self.playbin.set_property("uri", uri)

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending_load = future
        ret = self.playbin.set_state(Gst.State.PAUSED)
        if ret == Gst.StateChangeReturn.FAILURE:
            self._pending_load = None
            raise SinkError(f"Failed to load {uri}")
        if ret == Gst.StateChangeReturn.SUCCESS:
            self._update_duration()
            future.set_result(self._duration)

        try:
            return await asyncio.wait_for(future, LOAD_TIMEOUT)
        except asyncio.TimeoutError as e:
            raise SinkError(f"Timed out loading {uri}") from e
        finally:
            # A newer load may already own the slot
            if self._pending_load is future:
                self._pending_load = None

    async def play(self) -> None:
        """Start or resume playback."""
        if not self.playbin or not self._uri:
            raise SinkError("Nothing loaded")
        ret = self.playbin.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            raise SinkError("Failed to start playback")

    def pause(self) -> None:
        """Pause playback."""
        if self.playbin:
            self.playbin.set_state(Gst.State.PAUSED)
            self._is_playing = False

    def detach(self) -> None:
        if self._pending_load is not None and not self._pending_load.done():
            self._pending_load.set_exception(SinkError("Load interrupted"))
        if self.playbin:
            self.playbin.set_state(Gst.State.NULL)
        self._uri = None
        self._position = 0.0
        self._duration = 0.0
        self._is_playing = False

    def seek(self, position: float) -> None:
        """
        Seek to position in seconds.

        Args:
            position: Position in seconds (will be clamped to valid range)
        """
        if self.playbin and self._duration > 0:
            position = max(0.0, min(position, self._duration))
            success = self.playbin.seek_simple(
                Gst.Format.TIME,
                Gst.SeekFlags.FLUSH | Gst.SeekFlags.KEY_UNIT,
                int(position * Gst.SECOND)
            )
            if success:
                self._position = position
            else:
                logger.warning("Seek failed for position %.2fs", position)

    def set_volume(self, volume: float) -> None:
        """
        Set volume (0.0 to 1.0).

        Args:
            volume: Volume level from 0.0 to 1.0 (will be clamped)
        """
        self._volume = max(0.0, min(1.0, volume))
        if self.playbin:
            self.playbin.set_property("volume", self._volume)

    def get_volume(self) -> float:
        return self._volume

    @property
    def position(self) -> float:
        if self.playbin and self._is_playing:
            success, position = self.playbin.query_position(Gst.Format.TIME)
            if success:
                self._position = position / Gst.SECOND
        return self._position

    @property
    def duration(self) -> float:
        return self._duration

    def close(self) -> None:
        """
        Clean up resources.

        Stops playback, stops bus polling and releases the playbin.
        Safe to call more than once.
        """
        self.detach()
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None
        self.playbin = None
        self._bus = None
