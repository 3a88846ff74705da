"""Audio preprocessing utilities."""

from __future__ import annotations

import numpy as np
from scipy.signal import butter, sosfilt


def to_mono(audio: np.ndarray) -> np.ndarray:
    """Average a ``(frames, channels)`` array sample-wise into one channel.

    This is lossy on purpose: phase differences between channels cancel.
    A 1-D array is returned unchanged.
    """
    if audio.ndim == 1:
        return audio
    return audio.mean(axis=1)


def normalize(audio: np.ndarray) -> np.ndarray:
    """Peak-normalize audio to the range [-1, 1].

    If the audio is silent (all zeros), it is returned unchanged.
    """
    peak = np.max(np.abs(audio))
    if peak == 0:
        return audio
    return audio / peak


def high_pass_filter(
    audio: np.ndarray,
    sr: int,
    cutoff: float = 40.0,
) -> np.ndarray:
    """Apply a Butterworth high-pass filter.

    Parameters
    ----------
    audio:
        Input audio signal.
    sr:
        Sample rate in Hz.
    cutoff:
        High-pass cutoff frequency in Hz. Defaults to 40 Hz.
    """
    sos = butter(N=4, Wn=cutoff, btype="high", fs=sr, output="sos")
    return sosfilt(sos, audio)


def preprocess(audio: np.ndarray, sr: int, cutoff: float = 40.0) -> np.ndarray:
    """Prepare decoded samples for onset analysis.

    Returns a new array; ``audio`` is left untouched. A cutoff of 0 (or one
    at or above Nyquist) skips the filter.
    """
    audio = np.asarray(audio, dtype=np.float64)
    if 0 < cutoff < sr / 2:
        audio = high_pass_filter(audio, sr, cutoff)
    return audio
