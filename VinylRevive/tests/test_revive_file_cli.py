import importlib.util
import json
import sys
from pathlib import Path

import numpy as np
import soundfile as sf

# Import the tool directly by path
spec = importlib.util.spec_from_file_location(
    "revive_file",
    Path(__file__).resolve().parents[1] / "tools" / "revive_file.py"
)
revive_file = importlib.util.module_from_spec(spec)
sys.modules[spec.name] = revive_file
spec.loader.exec_module(revive_file)


def make_sine(freq, sr, duration, amp=0.5):
    t = np.linspace(0, duration, int(sr * duration), endpoint=False)
    return amp * np.sin(2 * np.pi * freq * t)


def write_input(tmp_path, name="needle_drop.wav"):
    sr = 44100
    tone = make_sine(440, sr, 0.5)
    path = tmp_path / name
    sf.write(str(path), np.column_stack([tone, tone]), sr, subtype='PCM_16')
    return path


def test_renders_with_preset_and_overrides(tmp_path):
    input_path = write_input(tmp_path)
    output_path = tmp_path / "master.wav"

    code = revive_file.main([str(input_path), "-o", str(output_path), "--preset", "club",
                             "--set", "hissSuppression=30", "--set", "mono_toggle=true"])

    assert code == 0
    assert output_path.exists()
    report = json.loads(output_path.with_suffix('.json').read_text())
    assert report['settings']['hiss_suppression'] == 30
    assert report['settings']['bass_boost'] == 6
    assert report['settings']['mono_toggle'] is True
    assert report['file_size_bytes'] == output_path.stat().st_size


def test_default_output_name(tmp_path):
    input_path = write_input(tmp_path, "Side B.wav")
    assert revive_file.main([str(input_path), "--no-report"]) == 0
    assert (tmp_path / "VinylRevive_Side B.wav").exists()
    assert not (tmp_path / "VinylRevive_Side B.json").exists()


def test_profile_file(tmp_path):
    input_path = write_input(tmp_path)
    profile = tmp_path / "profile.json"
    profile.write_text(json.dumps({"warmth": 25, "aiInsight": "Warm it up."}))
    output_path = tmp_path / "out.wav"

    assert revive_file.main([str(input_path), "-o", str(output_path),
                             "--profile", str(profile)]) == 0
    report = json.loads(output_path.with_suffix('.json').read_text())
    assert report['settings']['warmth'] == 25
    assert report['insight'] == "Warm it up."


def test_missing_input(tmp_path):
    assert revive_file.main([str(tmp_path / "nothing.wav")]) == 1


def test_bad_override(tmp_path):
    input_path = write_input(tmp_path)
    assert revive_file.main([str(input_path), "--set", "warmth"]) == 1


def test_undecodable_input(tmp_path):
    path = tmp_path / "broken.wav"
    path.write_bytes(b"not audio at all")
    assert revive_file.main([str(path)]) == 2


def test_parse_overrides():
    assert revive_file.parse_overrides(["a=1", " b = x "]) == {"a": "1", "b": "x"}


def test_silent_input_report_is_strict_json(tmp_path):
    path = tmp_path / "lead_in.wav"
    sf.write(str(path), np.zeros((8820, 2)), 44100, subtype='PCM_16')
    output_path = tmp_path / "lead_in_master.wav"

    assert revive_file.main([str(path), "-o", str(output_path)]) == 0

    def reject(constant):
        raise ValueError(f"non-standard JSON constant: {constant}")

    report = json.loads(output_path.with_suffix('.json').read_text(), parse_constant=reject)
    assert report['loudness_lufs'] is None
    assert report['true_peak_db'] is None
    assert report['correction_gain_db'] == 0.0
