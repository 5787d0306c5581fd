"""
DSP Package - Building blocks of the restoration graph

Modules:
- filters: Biquad design and stateful filtering with coefficient crossfade
- dynamics: Expander / gate / compressor / limiter model
- shaper: Warmth saturation lookup table
- stereo: Mid/side width and mono downmix
- smoothing: Per-block exponential parameter smoothing
"""

from .filters import BiquadFilter, BiquadCoefficients, design_biquad, response_db, UNITY
from .dynamics import DynamicsProcessor, DynamicsParams, static_gain_reduction
from .shaper import WarmthShaper, make_warmth_curve
from .stereo import StereoProcessor, width_to_gains
from .smoothing import SmoothedValue, block_coefficient

__all__ = [
    "BiquadFilter",
    "BiquadCoefficients",
    "design_biquad",
    "response_db",
    "UNITY",
    "DynamicsProcessor",
    "DynamicsParams",
    "static_gain_reduction",
    "WarmthShaper",
    "make_warmth_curve",
    "StereoProcessor",
    "width_to_gains",
    "SmoothedValue",
    "block_coefficient",
]
