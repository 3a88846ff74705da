"""Global tempo estimation from onset envelope autocorrelation."""

import logging

import numpy as np
from scipy.signal import correlate, find_peaks

from beatcoach.analysis.models import BpmCandidate, OnsetEnvelope, TempoEstimate
from beatcoach.exceptions import TempoEstimationError

logger = logging.getLogger(__name__)

# Frames weaker than this fraction of the peak count as silent.
_ACTIVE_FRACTION = 1e-3
_MAX_CANDIDATES = 3


def autocorrelate(strengths: np.ndarray) -> np.ndarray:
    """Normalized autocorrelation of the mean-removed envelope, lags >= 0."""
    centered = strengths - np.mean(strengths)
    ac = correlate(centered, centered, mode="full", method="fft")
    ac = ac[len(centered) - 1:]
    if ac[0] <= 0:
        return np.zeros_like(ac)
    return ac / ac[0]


def log_normal_prior(bpm: np.ndarray, center: float = 120.0, width: float = 1.0) -> np.ndarray:
    """Tempo prior, Gaussian in log2(BPM) with ``width`` octaves std."""
    return np.exp(-0.5 * (np.log2(bpm / center) / width) ** 2)


def refine_lag(ac: np.ndarray, lag: int) -> float:
    """Sub-frame peak position by parabolic interpolation."""
    if lag <= 0 or lag >= len(ac) - 1:
        return float(lag)
    y0, y1, y2 = ac[lag - 1], ac[lag], ac[lag + 1]
    denom = y0 - 2 * y1 + y2
    if denom >= 0:
        return float(lag)
    offset = 0.5 * (y0 - y2) / denom
    return lag + float(np.clip(offset, -0.5, 0.5))


def estimate_tempo(
    envelope: OnsetEnvelope,
    min_bpm: float = 40,
    max_bpm: float = 240,
    prior_bpm: float = 120,
    prior_width: float = 1.0,
    tie_epsilon: float = 0.02,
    min_active_frames: int = 4,
) -> TempoEstimate:
    """Estimate the dominant tempo of an onset envelope.

    Every lag whose BPM falls within ``[min_bpm, max_bpm]`` is scored by its
    autocorrelation weighted with a log-normal prior centred on
    ``prior_bpm``; the prior biases against half/double tempo errors.
    Peaks scoring within ``tie_epsilon`` of the best are resolved in favour
    of the one closest to the prior centre.
    """
    strengths = np.asarray(envelope.strengths, dtype=float)
    peak = float(strengths.max()) if len(strengths) else 0.0
    active = int(np.count_nonzero(strengths > peak * _ACTIVE_FRACTION)) if peak > 0 else 0
    if active < min_active_frames:
        raise TempoEstimationError(
            f"Only {active} active onset frames (need {min_active_frames})"
        )

    hop = envelope.hop_seconds
    min_lag = max(1, int(np.ceil(60.0 / (max_bpm * hop))))
    max_lag = min(len(strengths) - 1, int(np.floor(60.0 / (min_bpm * hop))))
    if max_lag <= min_lag:
        raise TempoEstimationError("Envelope too short for the admissible tempo range")

    ac = autocorrelate(strengths)
    lags = np.arange(min_lag, max_lag + 1)
    bpms = 60.0 / (lags * hop)
    scores = np.clip(ac[lags], 0.0, None) * log_normal_prior(bpms, prior_bpm, prior_width)
    if scores.max() <= 0:
        raise TempoEstimationError("No periodicity in the onset envelope")

    peaks, _ = find_peaks(scores)
    peaks = np.union1d(peaks, [int(np.argmax(scores))])
    best_score = float(scores[peaks].max())

    # Octave ambiguity: near-ties go to the candidate closest to the prior
    contenders = [int(p) for p in peaks if scores[p] >= best_score - tie_epsilon]
    chosen = min(contenders, key=lambda p: (abs(np.log2(bpms[p] / prior_bpm)), -scores[p]))

    lag = refine_lag(ac, int(lags[chosen]))
    bpm = float(np.clip(60.0 / (lag * hop), min_bpm, max_bpm))
    confidence = float(np.clip(ac[lags[chosen]], 0.0, 1.0))

    ranked = sorted(peaks, key=lambda p: scores[p], reverse=True)[:_MAX_CANDIDATES]
    candidates = [
        BpmCandidate(bpm=round(float(bpms[p]), 1), score=round(float(scores[p]), 3), lag=float(lags[p]))
        for p in ranked
    ]

    logger.debug(
        "Tempo candidates: "
        + ", ".join(f"{c.bpm} BPM ({c.score:.3f})" for c in candidates)
    )
    return TempoEstimate(bpm=round(bpm, 1), confidence=round(confidence, 2), candidates=candidates)
