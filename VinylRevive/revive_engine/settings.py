"""
Restoration Settings - Parameter record, ranges, merging and factory presets

Every field has a system-wide default and a fixed range. Partial settings
(from presets or the suggestion service) are always merged onto a complete
record and clamped, never used on their own. Out-of-range values are clamped
rather than rejected so the realtime path never sees a bad parameter.
"""

import logging
import math
from dataclasses import dataclass, asdict, fields
from typing import Dict, Any, Mapping, Optional

from .utils import clamp

logger = logging.getLogger(__name__)


# (low, high) for every numeric field
SETTINGS_RANGES = {
    "hiss_suppression": (0.0, 100.0),
    "crackle_suppression": (0.0, 100.0),
    "click_sensitivity": (0.0, 100.0),
    "click_intensity": (0.0, 100.0),
    "hum_frequency": (45.0, 75.0),
    "hum_q": (5.0, 50.0),
    "transient_recovery": (0.0, 100.0),
    "spectral_synth": (0.0, 100.0),
    "de_reverb": (0.0, 100.0),
    "bass_boost": (-10.0, 10.0),
    "mid_gain": (-10.0, 10.0),
    "air_gain": (-10.0, 10.0),
    "warmth": (0.0, 100.0),
    "stereo_width": (0.0, 200.0),
    "master_gain": (-20.0, 6.0),
    "limiter_threshold": (-20.0, 0.0),
}

BOOLEAN_FIELDS = ("hum_removal", "mono_toggle")

# Keys used by the UI and the suggestion service
CAMEL_CASE_ALIASES = {
    "hissSuppression": "hiss_suppression",
    "crackleSuppression": "crackle_suppression",
    "clickSensitivity": "click_sensitivity",
    "clickIntensity": "click_intensity",
    "clickFiltering": "click_intensity",
    "humRemoval": "hum_removal",
    "humFrequency": "hum_frequency",
    "humQ": "hum_q",
    "transientRecovery": "transient_recovery",
    "spectralSynth": "spectral_synth",
    "deReverb": "de_reverb",
    "bassBoost": "bass_boost",
    "midGain": "mid_gain",
    "airGain": "air_gain",
    "warmth": "warmth",
    "stereoWidth": "stereo_width",
    "monoToggle": "mono_toggle",
    "masterGain": "master_gain",
    "limiterThreshold": "limiter_threshold",
}

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


@dataclass(frozen=True)
class RestorationSettings:
    """
    Complete, immutable snapshot of every restoration parameter.

    Defaults are neutral: with them the signal graph passes audio through
    unchanged. Click sensitivity/intensity are carried for the UI but no
    stage consumes them.
    """
    # Restoration
    hiss_suppression: float = 0.0      # 0-100
    crackle_suppression: float = 0.0   # 0-100
    click_sensitivity: float = 0.0     # 0-100 (inert)
    click_intensity: float = 0.0       # 0-100 (inert)
    hum_removal: bool = False
    hum_frequency: float = 60.0        # 45-75 Hz
    hum_q: float = 15.0                # 5-50
    transient_recovery: float = 0.0    # 0-100
    spectral_synth: float = 0.0        # 0-100
    de_reverb: float = 0.0             # 0-100

    # Tone & color
    bass_boost: float = 0.0            # -10 to +10 dB
    mid_gain: float = 0.0              # -10 to +10 dB
    air_gain: float = 0.0              # -10 to +10 dB
    warmth: float = 0.0                # 0-100

    # Stereo
    stereo_width: float = 100.0        # 0-200 %
    mono_toggle: bool = False

    # Master
    master_gain: float = 0.0           # -20 to +6 dB
    limiter_threshold: float = -0.5    # -20 to 0 dB

    def __post_init__(self):
        """Clamp numeric fields to their ranges and coerce flags."""
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in SETTINGS_RANGES:
                low, high = SETTINGS_RANGES[f.name]
                number = _to_number(value)
                if number is None:
                    logger.warning(f"Invalid value for {f.name}: {value!r}, using default")
                    number = f.default
                object.__setattr__(self, f.name, clamp(number, low, high))
            elif f.name in BOOLEAN_FIELDS:
                object.__setattr__(self, f.name, _to_bool(value))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (snake_case keys)."""
        return asdict(self)

    def to_camel_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase layout used by the UI."""
        snake_to_camel = {}
        for camel, snake in CAMEL_CASE_ALIASES.items():
            snake_to_camel.setdefault(snake, camel)
        return {snake_to_camel[k]: v for k, v in asdict(self).items()}

    def merged(self, partial: Mapping[str, Any]) -> 'RestorationSettings':
        return merge_settings(partial, base=self)


DEFAULT_SETTINGS = RestorationSettings()


def normalize_keys(partial: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Map camelCase or snake_case keys onto settings field names.

    Unknown keys are dropped.
    """
    known = {f.name for f in fields(RestorationSettings)}
    normalized = {}
    for key, value in partial.items():
        name = CAMEL_CASE_ALIASES.get(key, key)
        if name not in known:
            logger.warning(f"Ignoring unknown settings key: {key}")
            continue
        normalized[name] = value
    return normalized


def merge_settings(partial: Optional[Mapping[str, Any]] = None,
                   base: Optional[RestorationSettings] = None) -> RestorationSettings:
    """
    Overlay a partial settings mapping onto a complete record.

    Args:
        partial: Subset of fields, snake_case or camelCase keys
        base: Record to merge onto (system defaults if None)

    Returns:
        New clamped RestorationSettings
    """
    base = base if base is not None else DEFAULT_SETTINGS
    values = base.to_dict()
    if partial:
        values.update(normalize_keys(partial))
    return RestorationSettings(**values)


# === Factory Presets ===

STANDARD_PROFILE = {
    "hiss_suppression": 15,
    "crackle_suppression": 10,
    "click_intensity": 0,
    "click_sensitivity": 20,
    "transient_recovery": 25,
    "air_gain": 1.5,
    "warmth": 12,
}

FACTORY_PRESETS = {
    "standard": ("Factory Standard", STANDARD_PROFILE),
    "78rpm": ("78rpm Shellac", {**STANDARD_PROFILE, "hiss_suppression": 60,
                                "crackle_suppression": 50, "air_gain": 8, "bass_boost": 4}),
    "club": ("Modern Club 12\"", {**STANDARD_PROFILE, "bass_boost": 6, "air_gain": 3,
                                  "transient_recovery": 45, "warmth": 20}),
}


def get_preset(preset_id: str) -> RestorationSettings:
    """
    Return the settings of a factory preset.

    Raises:
        KeyError: If the preset id is unknown
    """
    if preset_id not in FACTORY_PRESETS:
        raise KeyError(f"Unknown preset: {preset_id}")
    _, profile = FACTORY_PRESETS[preset_id]
    return merge_settings(profile)


def list_presets() -> Dict[str, str]:
    """Preset id -> display name."""
    return {preset_id: name for preset_id, (name, _) in FACTORY_PRESETS.items()}
