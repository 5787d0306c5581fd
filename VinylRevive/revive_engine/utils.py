"""
Utility Functions - Level conversions and display helpers

Contains commonly used functions for gain staging and formatting
shared by the DSP stages and the render engines.
"""

import logging

import numpy as np

logger = logging.getLogger(__name__)

# Floor used wherever a level is converted to dB
EPSILON = 1e-10


# === Level Conversions ===

def db_to_gain(db: float) -> float:
    """
    Convert decibels to linear gain.

    Args:
        db: Decibel value (can be negative)

    Returns:
        Linear gain value (0 dB is exactly 1.0)
    """
    if db == 0:
        return 1.0
    return float(10 ** (db / 20.0))


def gain_to_db(gain: float) -> float:
    """
    Convert linear gain to decibels.

    Args:
        gain: Linear gain value (> 0)

    Returns:
        Decibel value
    """
    if gain <= 0:
        return -float('inf')
    return float(20 * np.log10(gain))


def time_constant_coef(time_ms: float, sample_rate: float) -> float:
    """
    One-pole smoothing coefficient for a time constant.

    A time constant of zero (or less) means a one-sample response, so the
    coefficient is 1.0 and the follower jumps straight to its input.
    """
    if time_ms <= 0:
        return 1.0
    return float(1.0 - np.exp(-1.0 / (sample_rate * time_ms / 1000.0)))


def clamp(value: float, low: float, high: float) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


# === Display Helpers ===

def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (HH:MM:SS or MM:SS)
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)

    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    else:
        return f"{minutes:02d}:{secs:02d}"


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format (B, KB, MB, GB)."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"
