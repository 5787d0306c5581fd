"""
Tests for audio decoding and the sample buffer.
"""

import io

import pytest
import numpy as np
import soundfile as sf
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from revive_engine.buffer import SampleBuffer
from revive_engine.errors import DecodeError
from revive_engine.ingest import decode_audio, load_audio_file
from revive_engine.wav import encode_wav


SR = 44100


def encoded(audio, sr=SR, format='WAV', subtype='PCM_16'):
    out = io.BytesIO()
    sf.write(out, audio, sr, format=format, subtype=subtype)
    return out.getvalue()


@pytest.fixture
def stereo_audio():
    t = np.arange(SR // 2) / SR
    left = 0.4 * np.sin(2 * np.pi * 440 * t)
    right = 0.2 * np.sin(2 * np.pi * 660 * t)
    return np.column_stack([left, right])


class TestSampleBuffer:

    def test_planar_layout(self, stereo_audio):
        buffer = SampleBuffer.from_interleaved(stereo_audio, SR)
        assert buffer.shape == (2, SR // 2)
        assert buffer.channel_count == 2
        assert buffer.duration == pytest.approx(0.5)
        np.testing.assert_array_equal(buffer.channel(1), stereo_audio[:, 1])
        np.testing.assert_array_equal(buffer.to_interleaved(), stereo_audio)

    def test_one_dimensional_is_mono(self):
        buffer = SampleBuffer(np.zeros(100), 8000)
        assert buffer.shape == (1, 100)

    def test_read_only(self, stereo_audio):
        buffer = SampleBuffer.from_interleaved(stereo_audio, SR)
        with pytest.raises(ValueError):
            buffer.data[0, 0] = 1.0

    def test_owns_its_data(self):
        source = np.zeros((2, 10))
        buffer = SampleBuffer(source, SR)
        source[0, 0] = 1.0
        assert buffer.data[0, 0] == 0.0

    def test_invalid(self):
        with pytest.raises(ValueError):
            SampleBuffer(np.zeros((2, 3, 4)), SR)
        with pytest.raises(ValueError):
            SampleBuffer(np.zeros((2, 10)), 0)

    def test_peak(self):
        assert SampleBuffer(np.array([[0.1, -0.7], [0.3, 0.2]]), SR).peak() == pytest.approx(0.7)


class TestDecodeAudio:
    """Test suite for decode_audio."""

    def test_decode_wav(self, stereo_audio):
        buffer = decode_audio(encoded(stereo_audio))
        assert buffer.sample_rate == SR
        assert buffer.shape == (2, SR // 2)
        np.testing.assert_allclose(buffer.data.T, stereo_audio, atol=1 / 32768)

    def test_decode_flac(self, stereo_audio):
        buffer = decode_audio(encoded(stereo_audio, sr=48000, format='FLAC'))
        assert buffer.sample_rate == 48000
        assert buffer.channel_count == 2

    def test_decode_mono(self, stereo_audio):
        buffer = decode_audio(encoded(stereo_audio[:, 0]))
        assert buffer.channel_count == 1

    def test_decode_own_encoder_output(self):
        original = SampleBuffer(np.random.default_rng(4).uniform(-0.9, 0.9, size=(2, 2000)), 22050)
        buffer = decode_audio(encode_wav(original))
        assert buffer.shape == original.shape
        assert buffer.sample_rate == 22050

    def test_empty_blob(self):
        with pytest.raises(DecodeError):
            decode_audio(b"")

    def test_garbage(self):
        with pytest.raises(DecodeError):
            decode_audio(b"definitely not a riff file" * 10)

    def test_truncated_header(self, stereo_audio):
        with pytest.raises(DecodeError):
            decode_audio(encoded(stereo_audio)[:20])


class TestLoadAudioFile:

    def test_load(self, stereo_audio, tmp_path):
        path = tmp_path / "side_a.flac"
        path.write_bytes(encoded(stereo_audio, format='FLAC'))
        assert load_audio_file(path).channel_count == 2

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_audio_file(tmp_path / "missing.wav")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "track.mp3"
        path.write_bytes(b"ID3")
        with pytest.raises(DecodeError):
            load_audio_file(path)
