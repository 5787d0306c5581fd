"""
Engine Configuration - Clock and safety constants shared by both engines
"""

from dataclasses import dataclass

# Post-render peak ceiling applied by the offline engine
HEADROOM_CEILING = 0.98

# Time constant for parameter and monitor ramps (seconds)
SMOOTHING_TIME_CONSTANT_S = 0.02

# Length of the old/new coefficient crossfade for filter stages
COEFFICIENT_CROSSFADE_MS = 20.0


@dataclass
class EngineConfig:
    """Configuration for the realtime and offline engines."""
    # Clock
    sample_rate: int = 44100
    output_channels: int = 2

    # Block sizes
    realtime_block_size: int = 512
    offline_block_size: int = 4096

    # Smoothing
    smoothing_time_constant_s: float = SMOOTHING_TIME_CONSTANT_S
    crossfade_ms: float = COEFFICIENT_CROSSFADE_MS

    # Safety
    headroom_ceiling: float = HEADROOM_CEILING

    # Collaborators
    suggestion_timeout_s: float = 10.0

    def __post_init__(self):
        """Validate and clamp values."""
        self.sample_rate = int(max(8000, min(192000, self.sample_rate)))
        self.output_channels = int(max(1, min(8, self.output_channels)))
        self.realtime_block_size = int(max(16, min(8192, self.realtime_block_size)))
        self.offline_block_size = int(max(64, min(65536, self.offline_block_size)))
        self.smoothing_time_constant_s = max(0.0, self.smoothing_time_constant_s)
        self.crossfade_ms = max(0.0, min(200.0, self.crossfade_ms))
        self.headroom_ceiling = max(0.5, min(1.0, self.headroom_ceiling))
        self.suggestion_timeout_s = max(0.01, self.suggestion_timeout_s)
