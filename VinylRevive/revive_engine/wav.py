"""
WAV Encoder - Canonical 16-bit PCM RIFF/WAVE serialization

Float samples are clamped to [-1, 1] and scaled asymmetrically
(x * 32768 below zero, x * 32767 at or above zero) so +1.0 never
overflows int16. Scaled values are truncated toward zero.
"""

import logging
import os
import struct
import tempfile
from pathlib import Path
from typing import Union

import numpy as np

from .buffer import SampleBuffer

logger = logging.getLogger(__name__)

HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
PCM_FORMAT = 1


def wav_size(frame_count: int, channel_count: int) -> int:
    """Exact byte length of an encoded file."""
    return HEADER_SIZE + frame_count * channel_count * BYTES_PER_SAMPLE


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """
    Convert float samples to int16 using the asymmetric scale.

    Args:
        samples: Float audio of any shape

    Returns:
        int16 array with the same shape
    """
    clipped = np.clip(np.nan_to_num(samples, nan=0.0), -1.0, 1.0)
    scaled = np.where(clipped < 0, clipped * 32768.0, clipped * 32767.0)
    return np.trunc(scaled).astype(np.int16)


def wav_header(frame_count: int, channel_count: int, sample_rate: int) -> bytes:
    """Build the 44-byte RIFF header for a PCM16 file."""
    block_align = channel_count * BYTES_PER_SAMPLE
    byte_rate = sample_rate * block_align
    data_size = frame_count * block_align

    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        HEADER_SIZE - 8 + data_size,
        b"WAVE",
        b"fmt ",
        16,                 # fmt chunk size
        PCM_FORMAT,
        channel_count,
        sample_rate,
        byte_rate,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )


def encode_wav(buffer: SampleBuffer) -> bytes:
    """
    Serialize a buffer to a complete WAV byte stream.

    Args:
        buffer: Planar float audio

    Returns:
        Bytes of length 44 + frames * channels * 2
    """
    header = wav_header(buffer.frame_count, buffer.channel_count, buffer.sample_rate)

    # Planar -> interleaved frames, little-endian int16
    pcm = float_to_pcm16(buffer.data.T).astype('<i2', copy=False)
    payload = header + pcm.tobytes()

    logger.debug(f"Encoded WAV: {buffer.channel_count}ch, {buffer.frame_count} frames, "
                 f"{len(payload)} bytes")
    return payload


def write_wav(buffer: SampleBuffer, output_path: Union[str, Path]) -> int:
    """
    Encode and write a WAV file atomically.

    The bytes go to a temporary file in the target directory which is
    renamed over the destination only after a complete write.

    Returns:
        File size in bytes
    """
    output_path = Path(output_path)
    payload = encode_wav(buffer)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".revive_", suffix=".wav.tmp",
                                    dir=str(output_path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.replace(tmp_name, output_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    return len(payload)
