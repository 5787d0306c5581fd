"""
Audio Ingest Module - Decode encoded audio blobs into sample buffers

The decoder is the engine's one input collaborator: it turns an encoded
file (WAV, FLAC, OGG, AIFF) into a planar SampleBuffer. Malformed or
unsupported input fails with DecodeError and is not retried.
"""

import io
import logging
from pathlib import Path
from typing import Union

import numpy as np
import soundfile as sf

from .buffer import SampleBuffer
from .errors import DecodeError
from .utils import format_duration

logger = logging.getLogger(__name__)

# Supported audio formats
SUPPORTED_FORMATS = {'.wav', '.flac', '.ogg', '.aiff', '.aif'}

# Maximum blob size (200 MB)
MAX_BLOB_SIZE = 200 * 1024 * 1024


def decode_audio(blob: bytes) -> SampleBuffer:
    """
    Decode an encoded audio blob.

    Args:
        blob: Complete encoded file contents

    Returns:
        SampleBuffer at the file's native sample rate and channel count

    Raises:
        DecodeError: If the blob is empty, too large, or not decodable
    """
    if not blob:
        raise DecodeError("Empty audio blob")

    if len(blob) > MAX_BLOB_SIZE:
        raise DecodeError(f"Audio blob too large: {len(blob)} bytes")

    try:
        audio, sample_rate = sf.read(io.BytesIO(blob), dtype='float64', always_2d=True)
    except (sf.LibsndfileError, RuntimeError, TypeError, ValueError) as e:
        raise DecodeError(f"Could not decode audio: {e}") from e

    if audio.shape[0] == 0:
        raise DecodeError("Decoded audio contains no frames")

    if not np.isfinite(audio).all():
        raise DecodeError("Decoded audio contains non-finite samples")

    buffer = SampleBuffer.from_interleaved(audio, sample_rate)
    logger.info(f"Decoded audio: {buffer.channel_count}ch, {sample_rate} Hz, "
                f"{format_duration(buffer.duration)}")
    return buffer


def load_audio_file(file_path: Union[str, Path]) -> SampleBuffer:
    """
    Read and decode an audio file from disk.

    Raises:
        FileNotFoundError: If the file doesn't exist
        DecodeError: If the format is unsupported or the file is malformed
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Audio file not found: {file_path}")

    if file_path.suffix.lower() not in SUPPORTED_FORMATS:
        raise DecodeError(f"Unsupported format: {file_path.suffix} "
                          f"(supported: {', '.join(sorted(SUPPORTED_FORMATS))})")

    return decode_audio(file_path.read_bytes())
