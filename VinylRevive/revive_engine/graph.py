"""
Signal Graph - Fixed restoration topology and its interpreter

The graph is a constant, ordered list of named slots. Settings are mapped
onto one StageSpec per slot; a small interpreter dispatches each spec type
to its runtime stage and runs blocks through them:

    input_gain -> dry path ----------------------------+
               -> wet path: noise_expander -> hiss ->  |
                  crackle -> hum notch -> bass -> mid  +-> crossfade
                  -> air -> exciter -> saturator ->    |   -> limiter
                  dereverb_gate -> compressor -> stereo+   -> master_gain

Topology never changes at runtime; only stage parameters do.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Tuple, Union

import numpy as np

from .config import EngineConfig
from .dsp.dynamics import DynamicsParams, DynamicsProcessor
from .dsp.filters import BiquadFilter, UNITY, design_biquad
from .dsp.shaper import WarmthShaper
from .dsp.smoothing import SmoothedValue, block_coefficient
from .dsp.stereo import StereoProcessor, width_to_gains
from .settings import RestorationSettings
from .utils import db_to_gain

logger = logging.getLogger(__name__)


# === Stage Specs ===

@dataclass(frozen=True)
class GainSpec:
    gain_db: float = 0.0


@dataclass(frozen=True)
class ShelfSpec:
    kind: str            # "low" or "high"
    freq_hz: float
    gain_db: float = 0.0


@dataclass(frozen=True)
class PeakingSpec:
    freq_hz: float
    q: float
    gain_db: float = 0.0


@dataclass(frozen=True)
class NotchSpec:
    freq_hz: float
    q: float
    enabled: bool = True


@dataclass(frozen=True)
class DynamicsSpec:
    threshold_db: float
    ratio: float
    attack_ms: float
    release_ms: float
    mode: str = "compress"
    knee_db: float = 0.0


@dataclass(frozen=True)
class ShaperSpec:
    amount: float = 0.0


@dataclass(frozen=True)
class StereoWidthSpec:
    width_pct: float = 100.0
    mono: bool = False


@dataclass(frozen=True)
class CrossfadeSpec:
    dry_gain: float = 0.0
    wet_gain: float = 1.0


StageSpec = Union[GainSpec, ShelfSpec, PeakingSpec, NotchSpec, DynamicsSpec,
                  ShaperSpec, StereoWidthSpec, CrossfadeSpec]


# === Topology ===

INPUT_STAGE = "input_gain"
WET_CHAIN = (
    "noise_expander",
    "hiss_filter",
    "crackle_filter",
    "hum_notch",
    "bass_filter",
    "mid_filter",
    "air_filter",
    "spectral_exciter",
    "saturator",
    "dereverb_gate",
    "compressor",
    "stereo",
)
MIX_STAGE = "crossfade"
OUTPUT_CHAIN = ("limiter", "master_gain")
TOPOLOGY = (INPUT_STAGE,) + WET_CHAIN + (MIX_STAGE,) + OUTPUT_CHAIN

# Fixed stage constants
INPUT_TRIM_DB = 0.0
HISS_FREQ_HZ, HISS_Q = 11500.0, 1.6
CRACKLE_FREQ_HZ, CRACKLE_Q = 3200.0, 4.0
BASS_FREQ_HZ = 150.0
MID_FREQ_HZ, MID_Q = 1200.0, 1.0
AIR_FREQ_HZ = 12000.0
EXCITER_FREQ_HZ, EXCITER_Q = 15500.0, 0.8
LIMITER_RATIO = 20.0

# Filter frequencies are pulled below this fraction of the sample rate
MAX_FREQ_RATIO = 0.45

MONITOR_GAINS = {
    "wet": (0.0, 1.0),
    "dry": (1.0, 0.0),
}


def monitor_gains(monitor: Union[str, float]) -> Tuple[float, float]:
    """
    (dry_gain, wet_gain) for a monitor mode.

    Accepts "dry", "wet", or a wet mix in [0, 1] for a true crossfade.
    """
    if isinstance(monitor, str):
        if monitor not in MONITOR_GAINS:
            raise ValueError(f"Unknown monitor mode: {monitor}")
        return MONITOR_GAINS[monitor]
    mix = max(0.0, min(1.0, float(monitor)))
    return 1.0 - mix, mix


def build_stage_specs(settings: RestorationSettings,
                      monitor: Union[str, float] = "wet") -> Dict[str, StageSpec]:
    """
    Map a settings snapshot onto one spec per topology slot.

    Args:
        settings: Complete restoration settings
        monitor: "wet", "dry", or a wet mix in [0, 1]

    Returns:
        Dict keyed by slot name, in topology order
    """
    hiss = settings.hiss_suppression
    transient = settings.transient_recovery
    dry_gain, wet_gain = monitor_gains(monitor)

    return {
        "input_gain": GainSpec(INPUT_TRIM_DB),
        # Downward expander pulls the noise floor under quiet passages
        "noise_expander": DynamicsSpec(threshold_db=-60.0 + hiss / 5.0, ratio=1.0 + hiss / 25.0,
                                       attack_ms=50.0, release_ms=200.0, mode="expand"),
        "hiss_filter": PeakingSpec(HISS_FREQ_HZ, HISS_Q, -hiss * 0.2),
        # 3.2 kHz is where surface crackle tends to peak
        "crackle_filter": PeakingSpec(CRACKLE_FREQ_HZ, CRACKLE_Q,
                                      -settings.crackle_suppression * 0.25),
        "hum_notch": NotchSpec(settings.hum_frequency, settings.hum_q, settings.hum_removal),
        "bass_filter": ShelfSpec("low", BASS_FREQ_HZ, settings.bass_boost),
        "mid_filter": PeakingSpec(MID_FREQ_HZ, MID_Q, settings.mid_gain),
        "air_filter": ShelfSpec("high", AIR_FREQ_HZ, settings.air_gain),
        "spectral_exciter": PeakingSpec(EXCITER_FREQ_HZ, EXCITER_Q, settings.spectral_synth * 0.15),
        "saturator": ShaperSpec(settings.warmth),
        "dereverb_gate": DynamicsSpec(threshold_db=-30.0, ratio=1.0 + settings.de_reverb * 0.2,
                                      attack_ms=3.0, release_ms=50.0, mode="expand"),
        # Slower attack lets more of each transient through
        "compressor": DynamicsSpec(threshold_db=-18.0, ratio=1.0 + transient / 50.0,
                                   attack_ms=3.0 + transient * 0.27, release_ms=250.0),
        "stereo": StereoWidthSpec(settings.stereo_width, settings.mono_toggle),
        "crossfade": CrossfadeSpec(dry_gain, wet_gain),
        "limiter": DynamicsSpec(threshold_db=settings.limiter_threshold, ratio=LIMITER_RATIO,
                                attack_ms=3.0, release_ms=250.0),
        "master_gain": GainSpec(settings.master_gain),
    }


# === Runtime Stages ===

class _Stage:
    spec_type = None

    def __init__(self, spec, sample_rate: int, crossfade_frames: int):
        self.spec = spec
        self.sample_rate = sample_rate
        self.crossfade_frames = crossfade_frames

    def set_spec(self, spec):
        if not isinstance(spec, type(self.spec)):
            raise TypeError(f"{type(self).__name__} can't take a {type(spec).__name__}")
        self.spec = spec
        self._retarget(spec)

    def _retarget(self, spec):
        raise NotImplementedError

    def _controls(self):
        return ()

    def snap(self):
        for control in self._controls():
            control.snap()

    def process(self, block: np.ndarray, coef: float, smooth: bool) -> np.ndarray:
        raise NotImplementedError


class GainStage(_Stage):

    def __init__(self, spec: GainSpec, sample_rate: int, crossfade_frames: int):
        super().__init__(spec, sample_rate, crossfade_frames)
        self.gain = SmoothedValue(db_to_gain(spec.gain_db))

    def _retarget(self, spec: GainSpec):
        self.gain.set_target(db_to_gain(spec.gain_db))

    def _controls(self):
        return (self.gain,)

    def process(self, block, coef, smooth):
        gain = self.gain.ramp(coef, block.shape[1])
        if np.isscalar(gain) and gain == 1.0:
            return block.copy()
        return block * gain


class BiquadStage(_Stage):
    """Peaking, shelf or notch section with smoothed frequency, Q and gain."""

    def __init__(self, spec, sample_rate: int, crossfade_frames: int):
        super().__init__(spec, sample_rate, crossfade_frames)
        self.kind = self._kind_of(spec)
        self.freq = SmoothedValue(spec.freq_hz)
        self.q = SmoothedValue(getattr(spec, "q", 0.7071))
        self.gain = SmoothedValue(getattr(spec, "gain_db", 0.0))
        self.enabled = getattr(spec, "enabled", True)
        self.filter = BiquadFilter()
        self._dirty = True

    @staticmethod
    def _kind_of(spec) -> str:
        if isinstance(spec, PeakingSpec):
            return "peaking"
        if isinstance(spec, NotchSpec):
            return "notch"
        if spec.kind not in ("low", "high"):
            raise ValueError(f"Unknown shelf kind: {spec.kind}")
        return f"{spec.kind}shelf"

    def _retarget(self, spec):
        if self._kind_of(spec) != self.kind:
            raise TypeError(f"Filter kind is fixed at {self.kind}")
        self.freq.set_target(spec.freq_hz)
        self.q.set_target(getattr(spec, "q", 0.7071))
        self.gain.set_target(getattr(spec, "gain_db", 0.0))
        enabled = getattr(spec, "enabled", True)
        if enabled != self.enabled:
            self.enabled = enabled
            self._dirty = True

    def _controls(self):
        return (self.freq, self.q, self.gain)

    def snap(self):
        super().snap()
        self._dirty = True

    def coefficients(self):
        if not self.enabled:
            return UNITY
        freq = min(self.freq.value, MAX_FREQ_RATIO * self.sample_rate)
        return design_biquad(self.kind, freq, self.sample_rate, self.q.value, self.gain.value)

    def process(self, block, coef, smooth):
        for control in self._controls():
            start, end = control.advance(coef)
            if start != end:
                self._dirty = True

        # A running crossfade finishes before the next set is adopted
        if self._dirty and not self.filter.is_fading:
            self.filter.set_coefficients(self.coefficients(),
                                         self.crossfade_frames if smooth else 0)
            self._dirty = False

        return self.filter.process(block)


class DynamicsStage(_Stage):

    def __init__(self, spec: DynamicsSpec, sample_rate: int, crossfade_frames: int):
        super().__init__(spec, sample_rate, crossfade_frames)
        self.threshold = SmoothedValue(spec.threshold_db)
        self.ratio = SmoothedValue(spec.ratio)
        self.processor = DynamicsProcessor(sample_rate, self._params())

    def _params(self) -> DynamicsParams:
        spec = self.spec
        return DynamicsParams(threshold_db=self.threshold.value, ratio=self.ratio.value,
                              attack_ms=spec.attack_ms, release_ms=spec.release_ms,
                              mode=spec.mode, knee_db=spec.knee_db)

    def _retarget(self, spec: DynamicsSpec):
        self.threshold.set_target(spec.threshold_db)
        self.ratio.set_target(spec.ratio)

    def _controls(self):
        return (self.threshold, self.ratio)

    @property
    def gain_reduction_db(self) -> float:
        return self.processor.gain_reduction_db

    def process(self, block, coef, smooth):
        self.threshold.advance(coef)
        self.ratio.advance(coef)
        self.processor.update(self._params())
        return self.processor.process(block)


class ShaperStage(_Stage):

    def __init__(self, spec: ShaperSpec, sample_rate: int, crossfade_frames: int):
        super().__init__(spec, sample_rate, crossfade_frames)
        self.amount = SmoothedValue(spec.amount)
        self.shaper = WarmthShaper(spec.amount)

    def _retarget(self, spec: ShaperSpec):
        self.amount.set_target(spec.amount)

    def _controls(self):
        return (self.amount,)

    def process(self, block, coef, smooth):
        self.amount.advance(coef)
        self.shaper.set_amount(self.amount.value)
        return self.shaper.process(block)


class StereoStage(_Stage):

    def __init__(self, spec: StereoWidthSpec, sample_rate: int, crossfade_frames: int):
        super().__init__(spec, sample_rate, crossfade_frames)
        mid, side = width_to_gains(spec.width_pct, spec.mono)
        self.mid = SmoothedValue(mid)
        self.side = SmoothedValue(side)
        self.processor = StereoProcessor()

    def _retarget(self, spec: StereoWidthSpec):
        mid, side = width_to_gains(spec.width_pct, spec.mono)
        self.mid.set_target(mid)
        self.side.set_target(side)

    def _controls(self):
        return (self.mid, self.side)

    def process(self, block, coef, smooth):
        frames = block.shape[1]
        mid = self.mid.ramp(coef, frames)
        side = self.side.ramp(coef, frames)
        return self.processor.process(block, mid, side)


class CrossfadeStage(_Stage):
    """Sums the dry and wet paths through independently smoothed gains."""

    def __init__(self, spec: CrossfadeSpec, sample_rate: int, crossfade_frames: int):
        super().__init__(spec, sample_rate, crossfade_frames)
        self.dry = SmoothedValue(spec.dry_gain)
        self.wet = SmoothedValue(spec.wet_gain)

    def _retarget(self, spec: CrossfadeSpec):
        self.dry.set_target(spec.dry_gain)
        self.wet.set_target(spec.wet_gain)

    def _controls(self):
        return (self.dry, self.wet)

    def mix(self, dry_block: np.ndarray, wet_block: np.ndarray, coef: float) -> np.ndarray:
        frames = dry_block.shape[1]
        dry = self.dry.ramp(coef, frames)
        wet = self.wet.ramp(coef, frames)

        if np.isscalar(dry) and np.isscalar(wet):
            if dry == 0.0 and wet == 1.0:
                return wet_block
            if dry == 1.0 and wet == 0.0:
                return dry_block
        return dry_block * dry + wet_block * wet

    def process(self, block, coef, smooth):
        return self.mix(block, block, coef)


STAGE_TYPES = {
    GainSpec: GainStage,
    ShelfSpec: BiquadStage,
    PeakingSpec: BiquadStage,
    NotchSpec: BiquadStage,
    DynamicsSpec: DynamicsStage,
    ShaperSpec: ShaperStage,
    StereoWidthSpec: StereoStage,
    CrossfadeSpec: CrossfadeStage,
}


def make_stage(spec: StageSpec, sample_rate: int, crossfade_frames: int = 0) -> _Stage:
    """Instantiate the runtime stage for a spec."""
    try:
        stage_cls = STAGE_TYPES[type(spec)]
    except KeyError:
        raise TypeError(f"Not a stage spec: {spec!r}") from None
    return stage_cls(spec, sample_rate, crossfade_frames)


class SignalGraph:
    """
    Interpreter for the fixed restoration topology.

    Realtime graphs smooth every parameter change; offline graphs snap
    straight to their targets so renders are deterministic.
    """

    def __init__(self, sample_rate: int, specs: Mapping[str, StageSpec],
                 config: EngineConfig = None, smooth: bool = True):
        """
        Build every stage of the topology.

        Args:
            sample_rate: Sample rate in Hz
            specs: One spec per slot in TOPOLOGY
            config: Engine configuration (uses defaults if None)
            smooth: Ramp parameter changes (realtime) or snap them (offline)
        """
        self.config = config or EngineConfig()
        self.sample_rate = sample_rate
        self.smooth = smooth

        missing = [name for name in TOPOLOGY if name not in specs]
        if missing:
            raise ValueError(f"Missing stage specs: {missing}")

        crossfade_frames = int(round(self.config.crossfade_ms * sample_rate / 1000.0)) if smooth else 0
        self.stages = {name: make_stage(specs[name], sample_rate, crossfade_frames)
                       for name in TOPOLOGY}

        logger.debug(f"Built signal graph: sr={sample_rate}, smooth={smooth}, "
                     f"stages={len(self.stages)}")

    @classmethod
    def from_settings(cls, sample_rate: int, settings: RestorationSettings,
                      monitor: Union[str, float] = "wet", config: EngineConfig = None,
                      smooth: bool = True) -> 'SignalGraph':
        return cls(sample_rate, build_stage_specs(settings, monitor), config, smooth)

    def update(self, specs: Mapping[str, StageSpec]):
        """Retarget stages; never adds, removes or reorders them."""
        for name, spec in specs.items():
            if name not in self.stages:
                raise KeyError(f"Unknown stage: {name}")
            self.stages[name].set_spec(spec)

        if not self.smooth:
            for stage in self.stages.values():
                stage.snap()

    def specs(self) -> Dict[str, StageSpec]:
        return {name: stage.spec for name, stage in self.stages.items()}

    def process(self, block: np.ndarray) -> np.ndarray:
        """
        Run one planar block through the graph.

        Args:
            block: Audio shaped (channels, frames)

        Returns:
            Processed block with the same shape
        """
        block = np.asarray(block, dtype=np.float64)
        frames = block.shape[1]

        if self.smooth:
            coef = block_coefficient(frames, self.sample_rate,
                                     self.config.smoothing_time_constant_s)
        else:
            coef = 1.0

        dry = self.stages[INPUT_STAGE].process(block, coef, self.smooth)

        wet = dry
        for name in WET_CHAIN:
            wet = self.stages[name].process(wet, coef, self.smooth)

        out = self.stages[MIX_STAGE].mix(dry, wet, coef)

        for name in OUTPUT_CHAIN:
            out = self.stages[name].process(out, coef, self.smooth)

        return out

    @property
    def limiter_reduction_db(self) -> float:
        return self.stages["limiter"].gain_reduction_db

    def gain_reductions(self) -> Dict[str, float]:
        """Current gain reduction of every dynamics stage (metering)."""
        return {name: stage.gain_reduction_db for name, stage in self.stages.items()
                if isinstance(stage, DynamicsStage)}

    def __repr__(self) -> str:
        return f"SignalGraph(sr={self.sample_rate}, smooth={self.smooth}, stages={list(self.stages)})"
