"""
Stereo Processor - Mid/side width control and mono downmix
"""

import logging
from typing import Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

GainRamp = Union[float, np.ndarray]


def width_to_gains(width_pct: float, mono: bool = False) -> Tuple[float, float]:
    """
    Map the width control onto (mid_gain, side_gain).

    100% is unity, 0% drops the side signal, 200% doubles it. Mono
    overrides width and drops the side signal entirely, which leaves both
    outputs at 0.5 * L + 0.5 * R.
    """
    if mono:
        return 1.0, 0.0
    width_pct = max(0.0, min(200.0, float(width_pct)))
    return 1.0, width_pct / 100.0


class StereoProcessor:
    """
    Mid/side encode, independent gains, decode.

    M = (L + R) / 2, S = (L - R) / 2, L' = gm*M + gs*S, R' = gm*M - gs*S.
    Single-channel input passes through; with more than two channels only
    the first pair is treated as L/R.
    """

    def __init__(self, width_pct: float = 100.0, mono: bool = False):
        self.mid_gain, self.side_gain = width_to_gains(width_pct, mono)

    def process(self, block: np.ndarray, mid_gain: GainRamp = None,
                side_gain: GainRamp = None) -> np.ndarray:
        """
        Process a planar block.

        Args:
            block: Audio shaped (channels, frames)
            mid_gain: Optional override, scalar or per-frame ramp
            side_gain: Optional override, scalar or per-frame ramp

        Returns:
            Processed audio with the same shape
        """
        if mid_gain is None:
            mid_gain = self.mid_gain
        if side_gain is None:
            side_gain = self.side_gain

        if block.shape[0] < 2:
            return block.copy()

        if np.isscalar(mid_gain) and np.isscalar(side_gain) and mid_gain == 1.0 and side_gain == 1.0:
            return block.copy()

        left = block[0]
        right = block[1]
        mid = (left + right) / 2 * mid_gain
        side = (left - right) / 2 * side_gain

        out = block.copy()
        out[0] = mid + side
        out[1] = mid - side
        return out
