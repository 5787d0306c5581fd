"""
Parameter Smoothing - Exponential approach applied once per block

Replaces host-side parameter automation: each control moves toward its
target by 1 - exp(-block_seconds / tau) every block and is ramped
linearly across the samples of the block.
"""

import math

import numpy as np

# Relative distance at which a value snaps onto its target
SNAP_TOLERANCE = 1e-4


def block_coefficient(block_frames: int, sample_rate: float, time_constant_s: float) -> float:
    """Fraction of the remaining distance covered in one block (1.0 = snap)."""
    if time_constant_s <= 0 or block_frames <= 0:
        return 1.0
    return 1.0 - math.exp(-(block_frames / sample_rate) / time_constant_s)


class SmoothedValue:
    """A scalar control chasing a target value."""

    def __init__(self, value: float):
        self.value = float(value)
        self.target = float(value)

    def set_target(self, target: float):
        self.target = float(target)

    def snap(self):
        self.value = self.target

    @property
    def settled(self) -> bool:
        return self.value == self.target

    def advance(self, coef: float) -> tuple:
        """
        Step toward the target.

        Returns:
            (start, end) values for this block
        """
        start = self.value
        if coef >= 1.0:
            self.value = self.target
        else:
            self.value += (self.target - self.value) * coef
            scale = max(abs(self.target), 1.0)
            if abs(self.target - self.value) <= SNAP_TOLERANCE * scale:
                self.value = self.target
        return start, self.value

    def ramp(self, coef: float, frames: int):
        """
        Step toward the target and return the per-sample gain for the block.

        A settled value is returned as a plain float.
        """
        start, end = self.advance(coef)
        if start == end:
            return end
        return np.linspace(start, end, frames + 1)[1:]

    def __repr__(self) -> str:
        return f"SmoothedValue(value={self.value:.6g}, target={self.target:.6g})"
