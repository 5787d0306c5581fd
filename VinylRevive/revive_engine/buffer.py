"""
Sample Buffer - Immutable planar audio container

Represents decoded audio ready for processing. Data is stored planar as
(channels, frames) float64 and is read-only once constructed; processing
always produces a new buffer.
"""

import logging
from typing import Tuple

import numpy as np

from .utils import format_duration

logger = logging.getLogger(__name__)


class SampleBuffer:
    """
    In-memory planar audio buffer.

    Attributes:
        data: Read-only array shaped (channel_count, frame_count)
        sample_rate: Sample rate in Hz
    """

    def __init__(self, data: np.ndarray, sample_rate: int):
        """
        Initialize sample buffer.

        Args:
            data: Planar audio, shape (channels, frames). A 1-D array is
                  treated as a single channel.
            sample_rate: Sample rate in Hz

        Raises:
            ValueError: If the shape or sample rate is invalid
        """
        data = np.asarray(data, dtype=np.float64)

        if data.ndim == 1:
            data = data[np.newaxis, :]
        elif data.ndim != 2:
            raise ValueError(f"Invalid audio shape: {data.shape}")

        if data.shape[0] < 1:
            raise ValueError("SampleBuffer needs at least one channel")

        if sample_rate <= 0:
            raise ValueError(f"Invalid sample rate: {sample_rate}")

        # Own a private copy so callers can't mutate us through their array
        self._data = np.array(data, dtype=np.float64, copy=True)
        self._data.setflags(write=False)
        self.sample_rate = int(sample_rate)

    @classmethod
    def from_interleaved(cls, audio: np.ndarray, sample_rate: int) -> 'SampleBuffer':
        """
        Build a buffer from (frames, channels) audio as returned by soundfile.

        Args:
            audio: Audio shaped (frames,) or (frames, channels)
            sample_rate: Sample rate in Hz
        """
        audio = np.asarray(audio, dtype=np.float64)
        if audio.ndim == 1:
            return cls(audio[np.newaxis, :], sample_rate)
        return cls(audio.T, sample_rate)

    @property
    def data(self) -> np.ndarray:
        """Read-only planar sample data."""
        return self._data

    @property
    def channel_count(self) -> int:
        return self._data.shape[0]

    @property
    def frame_count(self) -> int:
        return self._data.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self._data.shape

    @property
    def duration(self) -> float:
        """Get duration in seconds."""
        return self.frame_count / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        return self._data[index]

    def peak(self) -> float:
        """Maximum absolute sample across all channels."""
        if self._data.size == 0:
            return 0.0
        return float(np.max(np.abs(self._data)))

    def to_interleaved(self) -> np.ndarray:
        """Return a writable (frames, channels) copy for soundfile and sounddevice."""
        return np.ascontiguousarray(self._data.T)

    def copy(self) -> 'SampleBuffer':
        return SampleBuffer(self._data, self.sample_rate)

    def __eq__(self, other) -> bool:
        if not isinstance(other, SampleBuffer):
            return NotImplemented
        return (self.sample_rate == other.sample_rate
                and self.shape == other.shape
                and np.array_equal(self._data, other._data))

    def __repr__(self) -> str:
        return (f"SampleBuffer(channels={self.channel_count}, frames={self.frame_count}, "
                f"sr={self.sample_rate}, duration={format_duration(self.duration)})")
