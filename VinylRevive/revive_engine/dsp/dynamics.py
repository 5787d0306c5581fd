"""
Dynamics Stage - Envelope follower plus static gain curve

One model serves as downward expander (noise floor), gate (de-reverb
tail suppression), compressor (transient recovery) and limiter (final
ceiling). The detector is a stereo-linked peak follower with separate
attack and release time constants.
"""

import logging
from dataclasses import dataclass

import numpy as np

from ..utils import EPSILON, time_constant_coef

logger = logging.getLogger(__name__)

# Deepest attenuation the gain computer will apply
MAX_REDUCTION_DB = 96.0

DYNAMICS_MODES = ("compress", "expand")


@dataclass(frozen=True)
class DynamicsParams:
    threshold_db: float = -24.0
    ratio: float = 1.0         # <= 1 is transparent in both modes
    attack_ms: float = 3.0
    release_ms: float = 250.0
    mode: str = "compress"     # "compress" above threshold, "expand" below
    knee_db: float = 0.0       # 0 = hard knee

    def __post_init__(self):
        if self.mode not in DYNAMICS_MODES:
            raise ValueError(f"Unknown dynamics mode: {self.mode}")


def static_gain_reduction(level_db: np.ndarray, params: DynamicsParams) -> np.ndarray:
    """
    Gain reduction (positive dB) for detector levels.

    Compress: (1 - 1/R) * (L - T) above T.
    Expand:   (R - 1) * (T - L) below T.
    """
    level_db = np.asarray(level_db, dtype=np.float64)
    ratio = params.ratio
    if ratio <= 1.0:
        return np.zeros_like(level_db)

    if params.mode == "compress":
        distance = level_db - params.threshold_db
        slope = 1.0 - 1.0 / ratio
    else:
        distance = params.threshold_db - level_db
        slope = ratio - 1.0

    knee = params.knee_db
    if knee <= 0:
        reduction = np.where(distance > 0, slope * distance, 0.0)
    else:
        # Quadratic blend across the knee
        in_knee = np.abs(distance) <= knee / 2
        above = distance > knee / 2
        reduction = np.zeros_like(distance)
        reduction[above] = slope * distance[above]
        reduction[in_knee] = slope * (distance[in_knee] + knee / 2) ** 2 / (2 * knee)

    return np.minimum(reduction, MAX_REDUCTION_DB)


class DynamicsProcessor:
    """
    Stateful dynamics processor over planar (channels, frames) blocks.
    """

    def __init__(self, sample_rate: int, params: DynamicsParams = None):
        """
        Initialize with sample rate and optional parameters.

        Args:
            sample_rate: The audio sample rate in Hz.
            params: Optional DynamicsParams. If None, a transparent default is used.
        """
        self.sample_rate = sample_rate
        self.params = params if params is not None else DynamicsParams()
        self._envelope = 0.0

        # Latest gain-reduction magnitude, read by meters without locking
        self.gain_reduction_db = 0.0

        self._update_coefficients()

    def _update_coefficients(self):
        self.attack_coef = time_constant_coef(self.params.attack_ms, self.sample_rate)
        self.release_coef = time_constant_coef(self.params.release_ms, self.sample_rate)

    def update(self, params: DynamicsParams):
        """Change parameters; the envelope keeps running."""
        if params == self.params:
            return
        self.params = params
        self._update_coefficients()

    def reset(self):
        self._envelope = 0.0
        self.gain_reduction_db = 0.0

    @property
    def envelope(self) -> float:
        return self._envelope

    def follow_envelope(self, detector: np.ndarray) -> np.ndarray:
        """
        Run the attack/release peak follower over a detector signal.

        env = env + (|x| - env) * coef, with the attack coefficient while
        the input is above the envelope and the release coefficient below.
        """
        attack = self.attack_coef
        release = self.release_coef
        env = self._envelope
        out = np.empty(len(detector))

        for i, level in enumerate(detector.tolist()):
            coef = attack if level > env else release
            env += (level - env) * coef
            out[i] = env

        self._envelope = env
        return out

    def process(self, block: np.ndarray) -> np.ndarray:
        """
        Apply the gain curve to a planar block.

        Args:
            block: Audio shaped (channels, frames)

        Returns:
            Processed audio with the same shape
        """
        if block.shape[1] == 0:
            return block.copy()

        # Stereo-linked detector
        detector = np.max(np.abs(block), axis=0)
        envelope = self.follow_envelope(detector)

        if self.params.ratio <= 1.0:
            self.gain_reduction_db = 0.0
            return block.copy()

        level_db = 20 * np.log10(envelope + EPSILON)
        reduction_db = static_gain_reduction(level_db, self.params)

        self.gain_reduction_db = float(reduction_db[-1])

        if not np.any(reduction_db):
            return block.copy()

        gain = 10 ** (-reduction_db / 20.0)
        return block * gain[np.newaxis, :]

    def __repr__(self) -> str:
        p = self.params
        return (f"DynamicsProcessor(mode={p.mode}, threshold={p.threshold_db:.1f} dB, "
                f"ratio={p.ratio:.2f}, attack={p.attack_ms} ms, release={p.release_ms} ms)")
