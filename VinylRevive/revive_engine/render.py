"""
Offline Render Engine - Deterministic full-buffer render and export

Replays the restoration graph against a whole buffer on the batch clock,
applies the headroom correction pass, and optionally encodes the result
to a WAV file. Each job gets its own throwaway graph, so nothing is shared
with a live playback session.
"""

import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional, Tuple, Union

import numpy as np
import pyloudnorm as pyln

from .buffer import SampleBuffer
from .config import EngineConfig
from .errors import InvalidFilterParameter, RenderFailure
from .graph import SignalGraph
from .settings import RestorationSettings
from .utils import format_duration, gain_to_db
from .wav import write_wav

logger = logging.getLogger(__name__)

# pyloudnorm needs at least one 400 ms gating block
MIN_LOUDNESS_SECONDS = 0.4
MAX_LOUDNESS_CHANNELS = 5


def _rounded(value: float, digits: int) -> Optional[float]:
    """Round for a JSON report; -inf and NaN become None."""
    if not math.isfinite(value):
        return None
    return round(value, digits)


class JobStatus(Enum):
    """Render job lifecycle."""
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class RenderJob:
    """One buffer plus one settings snapshot, run once to completion or failure."""
    buffer: SampleBuffer
    settings: RestorationSettings
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    status: JobStatus = JobStatus.CREATED
    error: Optional[str] = None


@dataclass
class RenderResult:
    """Result of an offline render."""
    buffer: SampleBuffer
    job_id: str
    peak_before_correction: float
    correction_gain: float
    true_peak_db: float
    loudness_lufs: float
    processing_time: float
    output_path: Optional[str] = None
    file_size_bytes: int = 0

    @property
    def corrected(self) -> bool:
        return self.correction_gain != 1.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "job_id": self.job_id,
            "channels": self.buffer.channel_count,
            "sample_rate": self.buffer.sample_rate,
            "duration_formatted": format_duration(self.buffer.duration),
            "peak_before_correction": _rounded(self.peak_before_correction, 4),
            "correction_gain_db": _rounded(gain_to_db(self.correction_gain), 2),
            "true_peak_db": _rounded(self.true_peak_db, 2),
            "loudness_lufs": _rounded(self.loudness_lufs, 1),
            "processing_time": round(self.processing_time, 3),
            "output_path": self.output_path,
            "file_size_bytes": self.file_size_bytes,
        }


def apply_headroom_correction(samples: np.ndarray, ceiling: float) -> Tuple[float, float]:
    """
    Scale samples in place so the peak does not exceed the ceiling.

    Material already at or below the ceiling is left untouched.

    Args:
        samples: Output array owned by the caller (modified in place)
        ceiling: Peak ceiling (linear)

    Returns:
        (peak before correction, applied gain)
    """
    if samples.size == 0:
        return 0.0, 1.0

    peak = float(np.max(np.abs(samples)))
    if peak <= ceiling:
        return peak, 1.0

    gain = ceiling / peak
    samples *= gain
    # Absorb the last ulp of rounding so the peak lands on the ceiling
    np.clip(samples, -ceiling, ceiling, out=samples)
    return peak, gain


def measure_loudness(buffer: SampleBuffer) -> float:
    """
    Integrated loudness (LUFS, ITU-R BS.1770) of a buffer.

    Returns -inf for silence or audio too short to gate.
    """
    if (buffer.duration < MIN_LOUDNESS_SECONDS
            or buffer.channel_count > MAX_LOUDNESS_CHANNELS
            or buffer.peak() == 0):
        return -float('inf')

    meter = pyln.Meter(buffer.sample_rate)
    return float(meter.integrated_loudness(buffer.to_interleaved()))


class OfflineRenderEngine:
    """
    Batch-clock renderer.

    Rendering is synchronous and runs one job at a time per engine. There
    is no cancellation: a started job completes or fails.
    """

    def __init__(self, config: EngineConfig = None):
        """
        Initialize the render engine.

        Args:
            config: Engine configuration (uses defaults if None)
        """
        self.config = config or EngineConfig()
        self._lock = threading.Lock()

        logger.info(f"Initialized OfflineRenderEngine: ceiling={self.config.headroom_ceiling}, "
                    f"block={self.config.offline_block_size}")

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def render(self, buffer: SampleBuffer, settings: RestorationSettings) -> SampleBuffer:
        """
        Render a buffer with a settings snapshot.

        Returns:
            New SampleBuffer with the input's shape and sample rate
        """
        return self.run(RenderJob(buffer, settings)).buffer

    def run(self, job: RenderJob) -> RenderResult:
        """
        Run a render job to completion.

        Raises:
            RenderFailure: Job already run, engine busy, or the render broke
            InvalidFilterParameter: A stage was configured with an impossible frequency
        """
        if job.status is not JobStatus.CREATED:
            raise RenderFailure(f"Render job {job.job_id} already {job.status.value}")

        if not self._lock.acquire(blocking=False):
            raise RenderFailure("A render is already running on this engine")

        try:
            job.status = JobStatus.RUNNING
            logger.info(f"Render {job.job_id}: {job.buffer}")
            try:
                result = self._render(job)
            except (RenderFailure, InvalidFilterParameter) as e:
                job.status = JobStatus.FAILED
                job.error = str(e)
                raise
            except Exception as e:
                job.status = JobStatus.FAILED
                job.error = str(e)
                logger.error(f"Render {job.job_id} failed: {e}")
                raise RenderFailure(f"Render {job.job_id} failed: {e}") from e

            job.status = JobStatus.COMPLETED
            return result
        finally:
            self._lock.release()

    def _render(self, job: RenderJob) -> RenderResult:
        start_time = time.time()

        source = job.buffer
        graph = SignalGraph.from_settings(source.sample_rate, job.settings, monitor="wet",
                                          config=self.config, smooth=False)

        data = source.data
        out = np.empty_like(data)
        block = self.config.offline_block_size
        for start in range(0, source.frame_count, block):
            end = min(start + block, source.frame_count)
            out[:, start:end] = graph.process(data[:, start:end])

        if not np.isfinite(out).all():
            raise RenderFailure("Render produced non-finite samples")

        # Final stage: nothing touches the samples after this
        peak, gain = apply_headroom_correction(out, self.config.headroom_ceiling)
        if gain != 1.0:
            logger.info(f"Headroom correction: peak {peak:.4f} -> {self.config.headroom_ceiling} "
                        f"({gain_to_db(gain):.2f} dB)")

        rendered = SampleBuffer(out, source.sample_rate)
        processing_time = time.time() - start_time

        logger.info(f"✅ Render {job.job_id} complete in {processing_time:.2f}s")

        return RenderResult(
            buffer=rendered,
            job_id=job.job_id,
            peak_before_correction=peak,
            correction_gain=gain,
            true_peak_db=gain_to_db(rendered.peak()),
            loudness_lufs=measure_loudness(rendered),
            processing_time=processing_time,
        )

    def export(self, buffer: SampleBuffer, settings: RestorationSettings,
               output_path: Union[str, Path]) -> RenderResult:
        """
        Render and write a 16-bit WAV master.

        The file only appears once it is completely written; a failed
        render or write leaves nothing behind.

        Raises:
            RenderFailure: If rendering or writing fails
        """
        result = self.run(RenderJob(buffer, settings))

        try:
            size = write_wav(result.buffer, output_path)
        except OSError as e:
            raise RenderFailure(f"Could not write {output_path}: {e}") from e

        result.output_path = str(output_path)
        result.file_size_bytes = size
        logger.info(f"Exported master: {output_path} ({size} bytes)")
        return result

    def __repr__(self) -> str:
        return f"OfflineRenderEngine(ceiling={self.config.headroom_ceiling})"
