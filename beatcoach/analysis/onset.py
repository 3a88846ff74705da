"""Onset strength envelope via half-wave-rectified spectral flux."""

import numpy as np
import librosa

from beatcoach.analysis.models import OnsetEnvelope


def empty_envelope(sr: int = 22050, hop_length: int = 256) -> OnsetEnvelope:
    return OnsetEnvelope(
        times=np.zeros(0),
        strengths=np.zeros(0),
        hop_seconds=hop_length / sr,
    )


def spectral_flux(magnitudes: np.ndarray) -> np.ndarray:
    """Sum of positive magnitude increases per frame.

    ``magnitudes`` is ``(bins, frames)``. The frame before the first one is
    treated as silence.
    """
    previous = np.concatenate(
        [np.zeros((magnitudes.shape[0], 1)), magnitudes[:, :-1]], axis=1,
    )
    return np.maximum(magnitudes - previous, 0.0).sum(axis=0)


def onset_envelope(
    audio: np.ndarray,
    sr: int = 22050,
    window_length: int = 1024,
    hop_length: int = 256,
) -> OnsetEnvelope:
    """Compute the onset strength envelope of a mono signal.

    Frames are Hann-windowed, ``window_length`` samples long and centred on
    multiples of ``hop_length``. Strength rewards sudden broadband energy
    increases (plucks, strikes) and ignores decays.

    A signal shorter than one window returns an empty envelope.
    """
    if len(audio) < window_length:
        return empty_envelope(sr, hop_length)

    magnitudes = np.abs(librosa.stft(
        np.asarray(audio, dtype=np.float32),
        n_fft=window_length,
        hop_length=hop_length,
        window="hann",
        center=True,
        pad_mode="constant",
    ))
    strengths = spectral_flux(magnitudes)
    times = librosa.frames_to_time(np.arange(len(strengths)), sr=sr, hop_length=hop_length)
    return OnsetEnvelope(
        times=times,
        strengths=strengths,
        hop_seconds=hop_length / sr,
    )
