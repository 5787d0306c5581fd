"""
Filter Bank - Second-order IIR (biquad) design and stateful filtering

Coefficients follow the RBJ audio-EQ cookbook closed forms for peaking,
low/high shelf and notch sections. Each BiquadFilter keeps a two-sample
delay line per channel and can crossfade between an old and a new
coefficient set so parameter moves during playback don't click.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np
from scipy import signal

from ..errors import InvalidFilterParameter

logger = logging.getLogger(__name__)

FILTER_KINDS = ("peaking", "lowshelf", "highshelf", "notch")

# Q at or below zero is clamped here instead of producing NaN coefficients
MIN_Q = 1e-4

# Shelf slope (S = 1 is the steepest monotonic shelf)
SHELF_SLOPE = 1.0


@dataclass(frozen=True)
class BiquadCoefficients:
    """Normalized biquad coefficients (a0 folded in)."""
    b0: float
    b1: float
    b2: float
    a1: float
    a2: float

    @property
    def b(self) -> np.ndarray:
        return np.array([self.b0, self.b1, self.b2])

    @property
    def a(self) -> np.ndarray:
        return np.array([1.0, self.a1, self.a2])

    @property
    def is_unity(self) -> bool:
        return self == UNITY


UNITY = BiquadCoefficients(1.0, 0.0, 0.0, 0.0, 0.0)


def design_biquad(kind: str, freq_hz: float, sample_rate: float,
                  q: float = 0.7071, gain_db: float = 0.0) -> BiquadCoefficients:
    """
    Design one biquad section.

    Args:
        kind: "peaking", "lowshelf", "highshelf" or "notch"
        freq_hz: Center (peaking/notch) or corner (shelf) frequency
        sample_rate: Sample rate in Hz
        q: Quality factor (ignored by shelves, which use slope S = 1)
        gain_db: Boost/cut in dB (ignored by notch)

    Returns:
        Normalized BiquadCoefficients. Peaking and shelf sections with a
        gain of exactly 0 dB return unity coefficients.

    Raises:
        InvalidFilterParameter: Unknown kind, or frequency <= 0 or >= Nyquist
    """
    if kind not in FILTER_KINDS:
        raise InvalidFilterParameter(f"Unknown filter kind: {kind}")

    nyquist = sample_rate / 2.0
    if not math.isfinite(freq_hz) or freq_hz <= 0 or freq_hz >= nyquist:
        raise InvalidFilterParameter(
            f"Filter frequency {freq_hz} Hz outside (0, {nyquist}) Hz",
            freq_hz=freq_hz, sample_rate=sample_rate
        )

    if not math.isfinite(q) or q <= 0:
        q = MIN_Q

    if kind != "notch" and gain_db == 0:
        return UNITY

    A = 10 ** (gain_db / 40.0)
    w0 = 2.0 * math.pi * freq_hz / sample_rate
    cos_w0 = math.cos(w0)
    sin_w0 = math.sin(w0)
    alpha = sin_w0 / (2.0 * q)

    if kind == "peaking":
        b0 = 1 + alpha * A
        b1 = -2 * cos_w0
        b2 = 1 - alpha * A
        a0 = 1 + alpha / A
        a1 = -2 * cos_w0
        a2 = 1 - alpha / A

    elif kind == "notch":
        b0 = 1.0
        b1 = -2 * cos_w0
        b2 = 1.0
        a0 = 1 + alpha
        a1 = -2 * cos_w0
        a2 = 1 - alpha

    else:
        shelf_alpha = sin_w0 / 2 * math.sqrt((A + 1 / A) * (1 / SHELF_SLOPE - 1) + 2)
        two_sqrt_a_alpha = 2 * math.sqrt(A) * shelf_alpha

        if kind == "lowshelf":
            b0 = A * ((A + 1) - (A - 1) * cos_w0 + two_sqrt_a_alpha)
            b1 = 2 * A * ((A - 1) - (A + 1) * cos_w0)
            b2 = A * ((A + 1) - (A - 1) * cos_w0 - two_sqrt_a_alpha)
            a0 = (A + 1) + (A - 1) * cos_w0 + two_sqrt_a_alpha
            a1 = -2 * ((A - 1) + (A + 1) * cos_w0)
            a2 = (A + 1) + (A - 1) * cos_w0 - two_sqrt_a_alpha
        else:
            b0 = A * ((A + 1) + (A - 1) * cos_w0 + two_sqrt_a_alpha)
            b1 = -2 * A * ((A - 1) + (A + 1) * cos_w0)
            b2 = A * ((A + 1) + (A - 1) * cos_w0 - two_sqrt_a_alpha)
            a0 = (A + 1) - (A - 1) * cos_w0 + two_sqrt_a_alpha
            a1 = 2 * ((A - 1) - (A + 1) * cos_w0)
            a2 = (A + 1) - (A - 1) * cos_w0 - two_sqrt_a_alpha

    return BiquadCoefficients(b0 / a0, b1 / a0, b2 / a0, a1 / a0, a2 / a0)


def response_db(sections: Iterable[BiquadCoefficients], freqs: Sequence[float],
                sample_rate: float) -> np.ndarray:
    """
    Combined magnitude response of cascaded sections, in dB.

    Used by the UI collaborator to draw the EQ curve.
    """
    freqs = np.asarray(freqs, dtype=np.float64)
    total = np.ones(len(freqs), dtype=np.complex128)
    for section in sections:
        _, h = signal.freqz(section.b, section.a, worN=freqs, fs=sample_rate)
        total *= h
    return 20 * np.log10(np.abs(total) + 1e-12)


class BiquadFilter:
    """
    Stateful biquad run over planar (channels, frames) blocks.

    Output is a pure function of the input, the coefficients and the
    delay-line state.
    """

    def __init__(self, coefficients: BiquadCoefficients = UNITY, channels: int = 1):
        self.coefficients = coefficients
        self._zi = np.zeros((channels, 2))

        # Crossfade bookkeeping: previous set, its state, and fade progress
        self._fade_from: Optional[BiquadCoefficients] = None
        self._fade_zi: Optional[np.ndarray] = None
        self._fade_total = 0
        self._fade_done = 0

    @property
    def channels(self) -> int:
        return self._zi.shape[0]

    @property
    def is_fading(self) -> bool:
        return self._fade_from is not None

    def reset(self, channels: Optional[int] = None):
        """Clear the delay lines (and resize them if channels is given)."""
        if channels is None:
            channels = self.channels
        self._zi = np.zeros((channels, 2))
        self._fade_from = None
        self._fade_zi = None

    def set_coefficients(self, coefficients: BiquadCoefficients, crossfade_frames: int = 0):
        """
        Move to a new coefficient set.

        Args:
            coefficients: Target coefficients
            crossfade_frames: Length of the old/new crossfade. 0 snaps.
        """
        if coefficients == self.coefficients:
            return

        if crossfade_frames <= 0:
            self.coefficients = coefficients
            self._fade_from = None
            self._fade_zi = None
            return

        # Both sets start from the same delay-line contents
        self._fade_from = self.coefficients
        self._fade_zi = self._zi.copy()
        self._fade_total = int(crossfade_frames)
        self._fade_done = 0
        self.coefficients = coefficients

    def process(self, block: np.ndarray) -> np.ndarray:
        """
        Filter a planar block.

        Args:
            block: Audio shaped (channels, frames)

        Returns:
            Filtered audio with the same shape
        """
        if block.shape[0] != self.channels:
            self.reset(block.shape[0])

        frames = block.shape[1]
        if frames == 0:
            return block.copy()

        if self._fade_from is None and self.coefficients.is_unity:
            # A unity section's delay line is always empty
            self._zi.fill(0.0)
            return block.copy()

        current = self.coefficients
        out, self._zi = signal.lfilter(current.b, current.a, block, axis=-1, zi=self._zi)

        if self._fade_from is not None:
            previous = self._fade_from
            old_out, self._fade_zi = signal.lfilter(previous.b, previous.a, block,
                                                    axis=-1, zi=self._fade_zi)

            # Linear ramp from old to new, held at 1 once the fade completes
            position = self._fade_done + np.arange(1, frames + 1)
            ramp = np.minimum(position / self._fade_total, 1.0)
            out = old_out + (out - old_out) * ramp
            self._fade_done += frames

            if self._fade_done >= self._fade_total:
                self._fade_from = None
                self._fade_zi = None

        return out

    def __repr__(self) -> str:
        return f"BiquadFilter(channels={self.channels}, coefficients={self.coefficients})"
