"""
Tests for the offline render engine.
"""

import io
import json
import threading

import pytest
import numpy as np
import soundfile as sf
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from revive_engine import render as render_module
from revive_engine.buffer import SampleBuffer
from revive_engine.config import EngineConfig, HEADROOM_CEILING
from revive_engine.errors import RenderFailure
from revive_engine.render import (
    OfflineRenderEngine, RenderJob, JobStatus, apply_headroom_correction, measure_loudness
)
from revive_engine.settings import DEFAULT_SETTINGS, get_preset, merge_settings
from revive_engine.wav import wav_size


SR = 44100


def make_sine(freq, sr, duration, amp=0.5):
    t = np.arange(int(sr * duration)) / sr
    return amp * np.sin(2 * np.pi * freq * t)


@pytest.fixture
def engine():
    return OfflineRenderEngine()


@pytest.fixture
def tone_buffer():
    tone = make_sine(1000, SR, 1.0, amp=0.5)
    return SampleBuffer(np.vstack([tone, tone]), SR)


@pytest.fixture
def loud_buffer():
    rng = np.random.default_rng(5)
    return SampleBuffer(rng.uniform(-1.0, 1.0, size=(2, SR // 2)), SR)


class TestHeadroomCorrection:

    def test_scales_to_ceiling(self):
        samples = np.array([[0.5, -1.96, 1.0]])
        peak, gain = apply_headroom_correction(samples, 0.98)
        assert peak == pytest.approx(1.96)
        assert gain == pytest.approx(0.5)
        np.testing.assert_allclose(samples, [[0.25, -0.98, 0.5]])

    def test_safe_material_untouched(self):
        samples = np.array([[0.5, -0.98, 0.1]])
        original = samples.copy()
        peak, gain = apply_headroom_correction(samples, 0.98)
        assert gain == 1.0
        np.testing.assert_array_equal(samples, original)

    def test_empty(self):
        assert apply_headroom_correction(np.zeros((2, 0)), 0.98) == (0.0, 1.0)


class TestOfflineRender:
    """Test suite for OfflineRenderEngine."""

    def test_identity_at_defaults(self, engine, tone_buffer):
        rendered = engine.render(tone_buffer, DEFAULT_SETTINGS)
        assert rendered == tone_buffer
        assert rendered is not tone_buffer

    def test_preserves_shape_and_rate(self, engine):
        buffer = SampleBuffer(np.random.default_rng(1).uniform(-0.5, 0.5, size=(1, 10000)), 22050)
        rendered = engine.render(buffer, get_preset("78rpm"))
        assert rendered.shape == buffer.shape
        assert rendered.sample_rate == 22050

    def test_peak_safety(self, engine, loud_buffer):
        settings = merge_settings({"master_gain": 6, "limiter_threshold": 0, "bass_boost": 10})
        rendered = engine.render(loud_buffer, settings)
        assert rendered.peak() <= HEADROOM_CEILING
        assert rendered.peak() == pytest.approx(HEADROOM_CEILING, abs=1e-9)

    def test_source_is_not_mutated(self, engine, loud_buffer):
        before = loud_buffer.data.copy()
        engine.render(loud_buffer, merge_settings({"master_gain": 6}))
        np.testing.assert_array_equal(loud_buffer.data, before)

    def test_deterministic(self, engine, tone_buffer):
        settings = get_preset("club")
        first = engine.render(tone_buffer, settings)
        second = engine.render(tone_buffer, settings)
        assert first == second

    def test_renders_fully_wet(self, engine, tone_buffer):
        settings = merge_settings({"warmth": 60})
        rendered = engine.render(tone_buffer, settings)
        assert not np.allclose(rendered.data, tone_buffer.data)

    def test_run_reports(self, engine, loud_buffer):
        job = RenderJob(loud_buffer, merge_settings({"master_gain": 6, "limiter_threshold": 0}))
        result = engine.run(job)

        assert job.status is JobStatus.COMPLETED
        assert result.job_id == job.job_id
        assert result.peak_before_correction > HEADROOM_CEILING
        assert result.correction_gain < 1.0
        assert result.corrected
        assert result.true_peak_db == pytest.approx(20 * np.log10(HEADROOM_CEILING), abs=1e-6)
        assert np.isfinite(result.loudness_lufs)

        report = result.to_dict()
        assert report["channels"] == 2
        assert report["sample_rate"] == SR

    def test_job_runs_once(self, engine, tone_buffer):
        job = RenderJob(tone_buffer, DEFAULT_SETTINGS)
        engine.run(job)
        with pytest.raises(RenderFailure):
            engine.run(job)

    def test_concurrent_render_rejected(self, engine, tone_buffer):
        engine._lock.acquire()
        try:
            assert engine.busy
            with pytest.raises(RenderFailure):
                engine.render(tone_buffer, DEFAULT_SETTINGS)
        finally:
            engine._lock.release()
        assert not engine.busy

    def test_one_job_at_a_time_across_threads(self, tone_buffer, monkeypatch):
        engine = OfflineRenderEngine()
        started = threading.Event()
        release = threading.Event()
        original = render_module.SignalGraph.from_settings

        def slow_graph(*args, **kwargs):
            started.set()
            release.wait(timeout=5)
            return original(*args, **kwargs)

        monkeypatch.setattr(render_module.SignalGraph, "from_settings", slow_graph)

        worker = threading.Thread(target=engine.render, args=(tone_buffer, DEFAULT_SETTINGS))
        worker.start()
        try:
            assert started.wait(timeout=5)
            with pytest.raises(RenderFailure):
                engine.render(tone_buffer, DEFAULT_SETTINGS)
        finally:
            release.set()
            worker.join(timeout=5)

    def test_unexpected_error_becomes_render_failure(self, engine, tone_buffer, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(render_module.SignalGraph, "from_settings", broken)
        job = RenderJob(tone_buffer, DEFAULT_SETTINGS)

        with pytest.raises(RenderFailure) as excinfo:
            engine.run(job)
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert job.status is JobStatus.FAILED
        assert "boom" in job.error
        assert not engine.busy

    def test_offline_block_size_does_not_change_output(self, tone_buffer):
        settings = get_preset("standard")
        small = OfflineRenderEngine(EngineConfig(offline_block_size=256)).render(tone_buffer, settings)
        large = OfflineRenderEngine(EngineConfig(offline_block_size=8192)).render(tone_buffer, settings)
        np.testing.assert_allclose(small.data, large.data, atol=1e-12)


class TestExport:
    """Test suite for WAV export."""

    def test_reference_tone_export(self, engine, tone_buffer, tmp_path):
        output = tmp_path / "tone.wav"
        result = engine.export(tone_buffer, DEFAULT_SETTINGS, output)

        # 44-byte header + 44100 frames x 2 channels x 2 bytes
        assert output.stat().st_size == wav_size(SR, 2) == 176444
        assert result.file_size_bytes == 176444
        assert result.output_path == str(output)

        pcm, sr = sf.read(str(output), dtype='int16')
        assert sr == SR
        assert pcm.shape == (SR, 2)
        assert abs(np.max(np.abs(pcm.astype(np.int32))) - 0.5 * 32767) <= 1

    def test_export_bytes_decode(self, engine, tone_buffer, tmp_path):
        output = tmp_path / "tone.wav"
        engine.export(tone_buffer, DEFAULT_SETTINGS, output)
        audio, sr = sf.read(io.BytesIO(output.read_bytes()), dtype='float64')
        np.testing.assert_allclose(audio.T, tone_buffer.data, atol=2 / 32768)

    def test_write_failure_leaves_no_file(self, engine, tone_buffer, tmp_path, monkeypatch):
        def failing_write(buffer, path):
            raise OSError("disk full")

        monkeypatch.setattr(render_module, "write_wav", failing_write)
        output = tmp_path / "broken.wav"

        with pytest.raises(RenderFailure):
            engine.export(tone_buffer, DEFAULT_SETTINGS, output)
        assert not output.exists()

    def test_render_failure_writes_nothing(self, engine, tone_buffer, tmp_path, monkeypatch):
        def broken(*args, **kwargs):
            raise ValueError("bad graph")

        monkeypatch.setattr(render_module.SignalGraph, "from_settings", broken)
        with pytest.raises(RenderFailure):
            engine.export(tone_buffer, DEFAULT_SETTINGS, tmp_path / "out.wav")
        assert list(tmp_path.iterdir()) == []


class TestLoudness:

    def test_silence(self):
        assert measure_loudness(SampleBuffer(np.zeros((2, SR)), SR)) == -float('inf')

    def test_too_short(self):
        short = SampleBuffer(make_sine(1000, SR, 0.1)[np.newaxis, :], SR)
        assert measure_loudness(short) == -float('inf')

    def test_tone(self, tone_buffer):
        loudness = measure_loudness(tone_buffer)
        assert -20 < loudness < 0

    def test_report_of_silent_render_has_no_infinities(self, engine):
        result = engine.run(RenderJob(SampleBuffer(np.zeros((2, SR // 10)), SR), DEFAULT_SETTINGS))
        assert result.loudness_lufs == -float('inf')

        report = result.to_dict()
        assert report["loudness_lufs"] is None
        assert report["true_peak_db"] is None
        assert report["peak_before_correction"] == 0.0
        json.dumps(report, allow_nan=False)
