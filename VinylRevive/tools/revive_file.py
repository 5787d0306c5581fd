#!/usr/bin/env python3
"""
Revive File - Restore and master one audio file from the command line

Runs the offline render engine with a factory preset and/or individual
overrides and writes a 16-bit WAV master next to a JSON report.

Usage:
  python tools/revive_file.py <input_file> [--preset standard] [--set hissSuppression=40]
"""

import sys
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Add project root to path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from revive_engine.errors import DecodeError, RenderFailure, SuggestionServiceError
from revive_engine.ingest import load_audio_file
from revive_engine.render import OfflineRenderEngine
from revive_engine.settings import DEFAULT_SETTINGS, get_preset, list_presets, merge_settings
from revive_engine.suggestion import apply_suggestion, parse_suggestion
from revive_engine.utils import format_file_size


def parse_overrides(pairs: List[str]) -> Dict[str, str]:
    """Parse KEY=VALUE pairs (values are clamped later by the settings merge)."""
    overrides = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got '{pair}'")
        overrides[key.strip()] = value.strip()
    return overrides


def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(
        description="VinylRevive - restore and master a vinyl transfer"
    )
    parser.add_argument("input_file", help="Input audio file (wav, flac, ogg, aiff)")
    parser.add_argument("--output", "-o", help="Output WAV path")
    parser.add_argument("--preset", "-p", choices=sorted(list_presets()),
                        help="Factory preset to start from (default: neutral)")
    parser.add_argument("--profile",
                        help="JSON file with a suggested profile (camelCase or snake_case keys)")
    parser.add_argument("--set", dest="overrides", action="append", default=[],
                        metavar="KEY=VALUE", help="Override one setting (repeatable)")
    parser.add_argument("--no-report", action="store_true",
                        help="Skip the JSON report")

    args = parser.parse_args(argv)

    input_path = Path(args.input_file)
    if not input_path.exists():
        print(f"Error: Input file not found: {input_path}")
        return 1

    if args.output:
        output_path = Path(args.output)
    else:
        output_path = input_path.with_name(f"VinylRevive_{input_path.stem}.wav")

    settings = get_preset(args.preset) if args.preset else DEFAULT_SETTINGS
    insight = ""
    if args.profile:
        try:
            suggestion = parse_suggestion(Path(args.profile).read_text())
        except (OSError, SuggestionServiceError) as e:
            print(f"Error: Could not read profile {args.profile}: {e}")
            return 1
        settings = apply_suggestion(settings, suggestion)
        insight = suggestion.insight

    try:
        settings = merge_settings(parse_overrides(args.overrides), base=settings)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    try:
        buffer = load_audio_file(input_path)
    except DecodeError as e:
        print(f"Error: {e}")
        return 2

    engine = OfflineRenderEngine()
    try:
        result = engine.export(buffer, settings, output_path)
    except RenderFailure as e:
        logger.error(f"Export failed: {e}")
        return 3

    # Print summary
    print("\n" + "=" * 60)
    print("VINYL REVIVE SUMMARY")
    print("=" * 60)
    print(f"Input:  {input_path}")
    print(f"Output: {result.output_path} ({format_file_size(result.file_size_bytes)})")
    print(f"Preset: {args.preset or 'neutral'}")
    if insight:
        print(f"Insight: {insight}")
    print(f"\nPeak before correction: {result.peak_before_correction:.4f}")
    print(f"Headroom correction: {'✅ Applied' if result.corrected else '❌ Not needed'}")
    print(f"Loudness: {result.loudness_lufs:.1f} LUFS")
    print(f"\nProcessing Time: {result.processing_time:.1f}s")
    print("=" * 60)

    if not args.no_report:
        report = {
            'input_file': str(input_path),
            'settings': settings.to_dict(),
            'insight': insight,
            **result.to_dict(),
        }
        report_path = output_path.with_suffix('.json')
        with open(report_path, 'w') as f:
            json.dump(report, f, indent=2, allow_nan=False)
        print(f"Report saved to: {report_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
