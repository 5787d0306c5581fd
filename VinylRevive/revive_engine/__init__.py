"""
VinylRevive Engine - Vinyl restoration and mastering core

Signal-processing pipeline (filters, dynamics, saturation, stereo, dry/wet
monitor), a realtime transport and an offline render engine that writes
peak-safe 16-bit WAV masters.
"""

from .buffer import SampleBuffer
from .config import EngineConfig, HEADROOM_CEILING
from .errors import ReviveError, DecodeError, InvalidFilterParameter, SuggestionServiceError, RenderFailure
from .settings import RestorationSettings, DEFAULT_SETTINGS, merge_settings, get_preset
from .graph import SignalGraph, build_stage_specs
from .realtime import RealtimeEngine, TransportState
from .render import OfflineRenderEngine, RenderJob, RenderResult
from .wav import encode_wav, write_wav
from .ingest import decode_audio, load_audio_file
from .suggestion import SuggestionClient, Suggestion, apply_suggestion
from .session import RestorationSession

__version__ = "1.0.0"
__all__ = [
    "SampleBuffer",
    "EngineConfig",
    "HEADROOM_CEILING",
    "ReviveError",
    "DecodeError",
    "InvalidFilterParameter",
    "SuggestionServiceError",
    "RenderFailure",
    "RestorationSettings",
    "DEFAULT_SETTINGS",
    "merge_settings",
    "get_preset",
    "SignalGraph",
    "build_stage_specs",
    "RealtimeEngine",
    "TransportState",
    "OfflineRenderEngine",
    "RenderJob",
    "RenderResult",
    "encode_wav",
    "write_wav",
    "decode_audio",
    "load_audio_file",
    "SuggestionClient",
    "Suggestion",
    "apply_suggestion",
    "RestorationSession",
]
