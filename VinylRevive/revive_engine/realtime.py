"""
Realtime Engine - Live transport driving the restoration graph

The engine owns one smoothed SignalGraph for the session. The control side
(play/stop, settings, monitor switch) publishes immutable snapshots; the
audio side pulls one block at a time through process_block(), either from a
sound card callback (start_output) or from a caller that drives the clock
itself.
"""

import logging
import threading
from enum import Enum
from typing import Any, Mapping, Optional, Union

import numpy as np

from .buffer import SampleBuffer
from .config import EngineConfig
from .graph import SignalGraph, build_stage_specs, monitor_gains
from .settings import DEFAULT_SETTINGS, RestorationSettings, merge_settings

logger = logging.getLogger(__name__)


class TransportState(Enum):
    STOPPED = "stopped"
    PLAYING = "playing"


class BufferSource:
    """Read cursor over a decoded buffer."""

    def __init__(self, buffer: SampleBuffer, offset_frames: int = 0):
        self.buffer = buffer
        self.position = max(0, min(int(offset_frames), buffer.frame_count))

    @property
    def finished(self) -> bool:
        return self.position >= self.buffer.frame_count

    @property
    def position_seconds(self) -> float:
        return self.position / self.buffer.sample_rate

    def read(self, frames: int) -> np.ndarray:
        """Return up to `frames` frames; fewer at the end of the buffer."""
        end = min(self.position + frames, self.buffer.frame_count)
        chunk = self.buffer.data[:, self.position:end]
        self.position = end
        return chunk


def fit_channels(block: np.ndarray, channels: int) -> np.ndarray:
    """Map a planar block onto a device channel count."""
    have = block.shape[0]
    if have == channels:
        return block
    if have == 1:
        return np.repeat(block, channels, axis=0)
    if have > channels:
        return block[:channels]
    pad = np.zeros((channels - have, block.shape[1]))
    return np.vstack([block, pad])


class RealtimeEngine:
    """
    Stopped -> Playing -> Stopped transport over a live graph.

    Settings and monitor changes never rebuild the graph; they retarget its
    stages on the next block and the stages ramp toward the new values.
    """

    def __init__(self, config: EngineConfig = None,
                 settings: RestorationSettings = DEFAULT_SETTINGS):
        """
        Initialize the realtime engine.

        Args:
            config: Engine configuration (uses defaults if None)
            settings: Initial settings snapshot
        """
        self.config = config or EngineConfig()

        # Published snapshots, replaced by reference only
        self._settings = settings
        self._monitor = "wet"

        self._graph = SignalGraph.from_settings(self.config.sample_rate, settings,
                                                monitor=self._monitor, config=self.config)
        self._applied = (settings, self._monitor)

        self._lock = threading.Lock()
        self._source: Optional[BufferSource] = None
        self._state = TransportState.STOPPED
        self._channels = self.config.output_channels
        self._stream = None

        logger.info(f"Initialized RealtimeEngine: sr={self.config.sample_rate}, "
                    f"block={self.config.realtime_block_size}")

    # === Control side ===

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state is TransportState.PLAYING

    @property
    def settings(self) -> RestorationSettings:
        return self._settings

    @property
    def monitor_mode(self) -> Union[str, float]:
        return self._monitor

    @property
    def sample_rate(self) -> int:
        return self._graph.sample_rate

    @property
    def position_seconds(self) -> float:
        source = self._source
        return source.position_seconds if source is not None else 0.0

    def play(self, buffer: SampleBuffer, offset_seconds: float = 0.0):
        """
        Attach a fresh source and start playing.

        A source that is already playing is stopped first.

        Args:
            buffer: Decoded audio
            offset_seconds: Start position within the buffer
        """
        if offset_seconds < 0:
            raise ValueError(f"Negative playback offset: {offset_seconds}")

        source = BufferSource(buffer, int(round(offset_seconds * buffer.sample_rate)))
        with self._lock:
            if self._source is not None:
                logger.debug("Replacing active source")
            self._source = source
            self._state = TransportState.PLAYING

        logger.info(f"▶ Playing {buffer} from {offset_seconds:.2f}s")

    def stop(self):
        """Detach the source. Safe when already stopped or finished."""
        with self._lock:
            was_playing = self._source is not None
            self._source = None
            self._state = TransportState.STOPPED

        if was_playing:
            logger.info("■ Stopped")

    def update_settings(self, settings: Union[RestorationSettings, Mapping[str, Any]]):
        """
        Publish a new settings snapshot.

        A mapping is merged onto the current snapshot and clamped.
        """
        if not isinstance(settings, RestorationSettings):
            settings = merge_settings(settings, base=self._settings)
        self._settings = settings

    def set_monitor_mode(self, mode: Union[str, float]):
        """Switch between 'dry' and 'wet' (or a wet mix in [0, 1])."""
        monitor_gains(mode)
        self._monitor = mode
        logger.debug(f"Monitor mode: {mode}")

    def get_limiter_reduction(self) -> float:
        """Latest limiter gain reduction in dB (positive, possibly stale)."""
        return self._graph.limiter_reduction_db

    @property
    def limiter_reduction_db(self) -> float:
        return self._graph.limiter_reduction_db

    # === Audio side ===

    def process_block(self, frames: Optional[int] = None) -> np.ndarray:
        """
        Produce the next block of output.

        Args:
            frames: Block length (defaults to the configured realtime block size)

        Returns:
            Planar block shaped (channels, frames); silence when stopped
        """
        frames = frames or self.config.realtime_block_size

        # One read of each snapshot per block
        snapshot = (self._settings, self._monitor)

        with self._lock:
            source = self._source
            if source is None:
                block = np.zeros((self._channels, frames))
            else:
                chunk = source.read(frames)
                self._channels = chunk.shape[0]
                block = chunk
                if chunk.shape[1] < frames:
                    block = np.zeros((chunk.shape[0], frames))
                    block[:, :chunk.shape[1]] = chunk
                if source.finished:
                    self._source = None
                    self._state = TransportState.STOPPED
                    logger.info("Playback finished")

        if source is not None and source.buffer.sample_rate != self._graph.sample_rate:
            self._rebuild_graph(source.buffer.sample_rate, snapshot)
        elif snapshot[0] is not self._applied[0] or snapshot[1] != self._applied[1]:
            self._graph.update(build_stage_specs(*snapshot))
            self._applied = snapshot

        return self._graph.process(block)

    def _rebuild_graph(self, sample_rate: int, snapshot):
        logger.info(f"Sample rate changed to {sample_rate} Hz, rebuilding graph")
        self._graph = SignalGraph.from_settings(sample_rate, snapshot[0], monitor=snapshot[1],
                                                config=self.config)
        self._applied = snapshot

    # === Sound card output ===

    def start_output(self, device=None):
        """
        Open a sound card stream whose callback pulls blocks from the engine.

        The stream runs at the engine's current sample rate.
        """
        if self._stream is not None:
            return

        import sounddevice as sd

        channels = self.config.output_channels

        def _callback(outdata, frames, time_info, status):
            if status:
                logger.warning(f"Output stream status: {status}")
            block = fit_channels(self.process_block(frames), channels)
            outdata[:] = block.T

        self._stream = sd.OutputStream(
            samplerate=self.sample_rate,
            channels=channels,
            dtype='float32',
            blocksize=self.config.realtime_block_size,
            device=device,
            callback=_callback,
        )
        self._stream.start()
        logger.info(f"Output stream started: {self.sample_rate} Hz, {channels}ch")

    def close_output(self):
        """Stop and close the sound card stream if one is open."""
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Output stream closed")

    def __repr__(self) -> str:
        return (f"RealtimeEngine(state={self._state.value}, sr={self.sample_rate}, "
                f"monitor={self._monitor})")
