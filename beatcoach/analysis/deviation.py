"""Flag beats whose spacing strays from the user's expected tempo."""

import math
from typing import Sequence

import numpy as np

from beatcoach.analysis.models import BeatSequence, DeviationSet


def is_tempo_set(expected_tempo: float | None) -> bool:
    """True when an expected tempo was actually given (0 and NaN mean unset)."""
    return (
        expected_tempo is not None
        and math.isfinite(expected_tempo)
        and expected_tempo > 0
    )


def find_deviations(
    beats: BeatSequence | Sequence[float],
    expected_tempo: float | None,
    tolerance: float = 0.1,
) -> DeviationSet:
    """Return indices ``i >= 1`` whose gap ``beats[i] - beats[i - 1]`` is off.

    A gap is off when it differs from ``60 / expected_tempo`` by more than
    ``tolerance`` seconds. The tolerance is absolute, not relative to the
    tempo. Beat 0 has no preceding gap and is never flagged.
    """
    if not is_tempo_set(expected_tempo) or len(beats) < 2:
        return DeviationSet(expected_tempo=expected_tempo, tolerance=tolerance)

    expected_gap = 60.0 / expected_tempo
    gaps = np.diff(np.asarray(list(beats), dtype=float))
    off = np.nonzero(np.abs(gaps - expected_gap) > tolerance)[0] + 1
    return DeviationSet(
        indices=tuple(int(i) for i in off),
        expected_tempo=expected_tempo,
        tolerance=tolerance,
    )
