"""
Tests for the signal graph: topology, settings mapping and dry/wet monitor.
"""

import pytest
import numpy as np
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from revive_engine.graph import (
    SignalGraph, build_stage_specs, monitor_gains, TOPOLOGY, WET_CHAIN,
    GainSpec, PeakingSpec, NotchSpec, DynamicsSpec, ShaperSpec, StereoWidthSpec, CrossfadeSpec,
)
from revive_engine.dsp.filters import design_biquad, response_db
from revive_engine.settings import DEFAULT_SETTINGS, merge_settings


SR = 44100


def make_sine(freq, sr, duration, amp=0.5):
    t = np.arange(int(sr * duration)) / sr
    return amp * np.sin(2 * np.pi * freq * t)


def run_blocks(graph, data, block=512):
    return np.hstack([graph.process(data[:, i:i + block]) for i in range(0, data.shape[1], block)])


def band_energy(channel, sr, low, high):
    spectrum = np.abs(np.fft.rfft(channel)) ** 2
    freqs = np.fft.rfftfreq(len(channel), 1 / sr)
    return float(np.sum(spectrum[(freqs >= low) & (freqs <= high)]))


@pytest.fixture
def stereo_noise():
    rng = np.random.default_rng(42)
    return rng.uniform(-0.3, 0.3, size=(2, SR))


class TestStageSpecs:
    """Test suite for the settings -> spec mapping."""

    def test_specs_follow_topology(self):
        specs = build_stage_specs(DEFAULT_SETTINGS)
        assert tuple(specs) == TOPOLOGY

    def test_topology_order(self):
        assert TOPOLOGY[0] == "input_gain"
        assert TOPOLOGY[-3:] == ("crossfade", "limiter", "master_gain")
        assert WET_CHAIN[0] == "noise_expander"
        assert WET_CHAIN[-1] == "stereo"

    def test_default_mapping(self):
        specs = build_stage_specs(DEFAULT_SETTINGS)
        assert specs["input_gain"] == GainSpec(0.0)
        assert specs["hiss_filter"].gain_db == 0.0
        assert specs["noise_expander"].ratio == 1.0
        assert specs["compressor"].ratio == 1.0
        assert specs["saturator"] == ShaperSpec(0.0)
        assert specs["stereo"] == StereoWidthSpec(100.0, False)
        assert specs["crossfade"] == CrossfadeSpec(0.0, 1.0)
        assert specs["hum_notch"] == NotchSpec(60.0, 15.0, False)

    def test_restoration_mapping(self):
        settings = merge_settings({"hiss_suppression": 50, "crackle_suppression": 40,
                                   "transient_recovery": 50, "de_reverb": 10,
                                   "spectral_synth": 20})
        specs = build_stage_specs(settings)

        assert specs["hiss_filter"] == PeakingSpec(11500.0, 1.6, -10.0)
        assert specs["crackle_filter"] == PeakingSpec(3200.0, 4.0, -10.0)
        assert specs["spectral_exciter"].gain_db == pytest.approx(3.0)
        assert specs["noise_expander"] == DynamicsSpec(-50.0, 3.0, 50.0, 200.0, "expand")
        assert specs["dereverb_gate"].ratio == pytest.approx(3.0)
        assert specs["compressor"].ratio == pytest.approx(2.0)
        assert specs["compressor"].attack_ms == pytest.approx(16.5)

    def test_master_mapping(self):
        settings = merge_settings({"masterGain": -3, "limiterThreshold": -6})
        specs = build_stage_specs(settings)
        assert specs["master_gain"] == GainSpec(-3.0)
        assert specs["limiter"].threshold_db == -6.0
        assert specs["limiter"].ratio == 20.0

    def test_monitor_gains(self):
        assert monitor_gains("wet") == (0.0, 1.0)
        assert monitor_gains("dry") == (1.0, 0.0)
        assert monitor_gains(0.25) == (0.75, 0.25)
        assert monitor_gains(3.0) == (0.0, 1.0)
        with pytest.raises(ValueError):
            monitor_gains("both")


class TestSignalGraph:
    """Test suite for SignalGraph processing."""

    @pytest.mark.parametrize("smooth", [True, False])
    def test_identity_at_defaults(self, stereo_noise, smooth):
        graph = SignalGraph.from_settings(SR, DEFAULT_SETTINGS, smooth=smooth)
        out = run_blocks(graph, stereo_noise)
        np.testing.assert_array_equal(out, stereo_noise)

    def test_mono_collapse(self, stereo_noise):
        settings = merge_settings({"mono_toggle": True, "stereo_width": 180})
        graph = SignalGraph.from_settings(SR, settings, smooth=False)
        out = run_blocks(graph, stereo_noise)

        downmix = 0.5 * stereo_noise[0] + 0.5 * stereo_noise[1]
        np.testing.assert_allclose(out[0], out[1])
        np.testing.assert_allclose(out[0], downmix, atol=1e-12)

    def test_hiss_suppression_is_monotonic(self, stereo_noise):
        energies = []
        for hiss in (0, 25, 50, 75, 100):
            settings = merge_settings({"hiss_suppression": hiss})
            graph = SignalGraph.from_settings(SR, settings, smooth=False)
            out = run_blocks(graph, stereo_noise, block=4096)
            energies.append(band_energy(out[0], SR, 9000, 14000))

        assert all(later < earlier for earlier, later in zip(energies, energies[1:]))

    def test_hiss_response_never_rises_in_any_bin(self):
        freqs = np.linspace(20, SR / 2 - 20, 2048)
        curves = []
        for hiss in range(0, 101, 5):
            spec = build_stage_specs(merge_settings({"hiss_suppression": hiss}))["hiss_filter"]
            section = design_biquad("peaking", spec.freq_hz, SR, spec.q, spec.gain_db)
            curves.append(response_db([section], freqs, SR))

        np.testing.assert_allclose(curves[0], 0.0, atol=1e-9)
        for lower, higher in zip(curves, curves[1:]):
            assert np.all(higher <= lower + 1e-9)
        # The cut is centred on the hiss band
        assert curves[-1][np.argmin(np.abs(freqs - 11500))] < -19

    def test_hum_notch_removes_hum(self):
        hum = make_sine(60, SR, 1.0, amp=0.4)[np.newaxis, :]
        settings = merge_settings({"hum_removal": True, "hum_frequency": 60, "hum_q": 15})
        graph = SignalGraph.from_settings(SR, settings, smooth=False)
        out = run_blocks(graph, hum, block=4096)

        tail = out[:, SR // 2:]
        assert np.sqrt(np.mean(tail ** 2)) < 0.05 * np.sqrt(np.mean(hum[:, SR // 2:] ** 2))

    def test_dry_monitor_bypasses_restoration(self, stereo_noise):
        settings = merge_settings({"hiss_suppression": 100, "warmth": 60, "stereo_width": 0})
        graph = SignalGraph.from_settings(SR, settings, monitor="dry", smooth=False)
        out = run_blocks(graph, stereo_noise)
        np.testing.assert_array_equal(out, stereo_noise)

    def test_dry_and_wet_are_summed(self, stereo_noise):
        settings = merge_settings({"warmth": 50})
        dry = run_blocks(SignalGraph.from_settings(SR, settings, monitor="dry", smooth=False),
                         stereo_noise)
        wet = run_blocks(SignalGraph.from_settings(SR, settings, monitor="wet", smooth=False),
                         stereo_noise)
        half = run_blocks(SignalGraph.from_settings(SR, settings, monitor=0.5, smooth=False),
                          stereo_noise)
        np.testing.assert_allclose(half, 0.5 * dry + 0.5 * wet, atol=1e-12)

    def test_monitor_switch_ramps(self, stereo_noise):
        settings = merge_settings({"hiss_suppression": 100, "warmth": 40})
        graph = SignalGraph.from_settings(SR, settings, monitor="wet", smooth=True)
        for i in range(0, 4096, 512):
            graph.process(stereo_noise[:, i:i + 512])

        graph.update({"crossfade": CrossfadeSpec(1.0, 0.0)})
        block = stereo_noise[:, 4096:4608]
        first = graph.process(block)
        # Mid-ramp: neither the restored signal nor the untouched input
        assert not np.allclose(first, block)

        position = 4608
        while position + 512 <= stereo_noise.shape[1]:
            out = graph.process(stereo_noise[:, position:position + 512])
            position += 512
        np.testing.assert_array_equal(out, stereo_noise[:, position - 512:position])

    def test_smoothed_gain_change_has_no_jump(self):
        tone = make_sine(220, SR, 0.5, amp=0.5)[np.newaxis, :]
        graph = SignalGraph.from_settings(SR, DEFAULT_SETTINGS, smooth=True)
        first = graph.process(tone[:, :512])
        graph.update({"master_gain": GainSpec(-20.0)})
        second = graph.process(tone[:, 512:1024])

        # The ramp starts next to the previous gain
        assert abs(second[0, 0] - tone[0, 512]) < 0.05
        assert first.shape == second.shape

    def test_offline_update_snaps(self):
        tone = make_sine(220, SR, 0.1, amp=0.5)[np.newaxis, :]
        graph = SignalGraph.from_settings(SR, DEFAULT_SETTINGS, smooth=False)
        graph.update({"master_gain": GainSpec(-6.0)})
        out = graph.process(tone)
        np.testing.assert_allclose(out, tone * 10 ** (-6 / 20), atol=1e-12)

    def test_filter_frequency_clamped_below_nyquist(self):
        settings = merge_settings({"air_gain": 6, "hiss_suppression": 40})
        graph = SignalGraph.from_settings(8000, settings, smooth=False)
        out = graph.process(np.random.default_rng(0).uniform(-0.2, 0.2, size=(2, 1024)))
        assert np.all(np.isfinite(out))

    def test_update_rejects_wrong_spec_type(self):
        graph = SignalGraph.from_settings(SR, DEFAULT_SETTINGS)
        with pytest.raises(TypeError):
            graph.update({"hiss_filter": GainSpec(3.0)})
        with pytest.raises(KeyError):
            graph.update({"reverb": GainSpec(3.0)})

    def test_missing_specs(self):
        specs = build_stage_specs(DEFAULT_SETTINGS)
        del specs["limiter"]
        with pytest.raises(ValueError):
            SignalGraph(SR, specs)

    def test_topology_is_fixed(self):
        graph = SignalGraph.from_settings(SR, DEFAULT_SETTINGS)
        stages = dict(graph.stages)
        graph.update(build_stage_specs(merge_settings({"bass_boost": 5})))
        assert list(graph.stages) == list(TOPOLOGY)
        assert all(graph.stages[name] is stages[name] for name in TOPOLOGY)
        assert graph.specs()["bass_filter"].gain_db == 5

    def test_gain_reductions(self):
        settings = merge_settings({"limiter_threshold": -12})
        graph = SignalGraph.from_settings(SR, settings, smooth=False)
        graph.process(make_sine(440, SR, 0.2, amp=0.9)[np.newaxis, :])

        reductions = graph.gain_reductions()
        assert set(reductions) == {"noise_expander", "dereverb_gate", "compressor", "limiter"}
        assert graph.limiter_reduction_db > 0
