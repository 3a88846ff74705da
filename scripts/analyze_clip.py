#!/usr/bin/env python3
"""Analyze a practice clip and print tempo, beats and off-beats.

Usage:
    uv run python scripts/analyze_clip.py take1.wav
    uv run python scripts/analyze_clip.py take1.wav --expected 96
    uv run python scripts/analyze_clip.py take1.wav --expected 96 --json
    uv run python scripts/analyze_clip.py take1.wav --verbose
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from beatcoach.analysis.engine import AnalysisEngine
from beatcoach.analysis.timeline import build_timeline
from beatcoach.exceptions import AnalysisError


def main():
    parser = argparse.ArgumentParser(
        description="Beat and tempo analysis for a practice clip"
    )
    parser.add_argument("path", type=Path, help="Audio file to analyze")
    parser.add_argument("--expected", type=float, default=None,
                        help="Expected tempo in BPM (flags off-beats)")
    parser.add_argument("--json", action="store_true",
                        help="Print machine-readable JSON")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        result = AnalysisEngine().analyze_file(args.path, expected_tempo=args.expected)
    except AnalysisError as e:
        print(f"Error: {e.reason}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps({
            "tempo": result.tempo.bpm,
            "confidence": result.tempo.confidence,
            "beats": [round(t, 4) for t in result.beats],
            "deviations": list(result.deviations),
            "duration": round(result.duration, 4),
        }, indent=2))
        return

    print(f"{args.path.name}: {result.duration:.2f}s")
    print(f"Detected Tempo: {result.tempo.bpm} BPM (confidence {result.tempo.confidence:.0%})")
    timeline = build_timeline(result.beats, result.duration, deviations=result.deviations)
    if timeline is None:
        return
    for marker in timeline.markers:
        flag = "  OFF" if marker.is_off else ""
        print(f"  {marker.label:<24} {marker.position:6.1%}{flag}")
    if args.expected:
        print(f"{len(result.deviations)} of {len(result.beats)} beats off {args.expected} BPM "
              f"(tolerance {result.deviations.tolerance}s)")


if __name__ == "__main__":
    main()
