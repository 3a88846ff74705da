"""Shared test fixtures for beat analysis tests."""

import io

import numpy as np
import pytest
import soundfile as sf
from fastapi.testclient import TestClient

from beatcoach.main import app

SR = 22050


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


def click_times(
    bpm: float,
    duration_seconds: float = 10.0,
    start: float = 0.1,
    delay_every: int = 0,
    delay: float = 0.0,
) -> list[float]:
    """Click onsets of a metronome track.

    With ``delay_every=n``, every n-th click arrives ``delay`` seconds late
    and the clicks after it keep the shifted grid, so only the gap leading
    into a delayed click is longer than the beat period.
    """
    beat_interval = 60.0 / bpm
    times = []
    k = 0
    while True:
        shift = delay * ((k + 1) // delay_every) if delay_every else 0.0
        t = start + k * beat_interval + shift
        if t >= duration_seconds - 0.05:
            break
        times.append(t)
        k += 1
    return times


def render_clicks(
    times: list[float],
    duration_seconds: float = 10.0,
    sr: int = SR,
    accents: list[float] | None = None,
) -> np.ndarray:
    """Render a short sine burst at each click time. Returns mono audio."""
    n_samples = int(duration_seconds * sr)
    audio = np.zeros(n_samples, dtype=np.float32)

    click_duration = 0.02  # 20ms click
    click_samples = int(click_duration * sr)

    # Create click sound (short sine burst with envelope)
    t_click = np.arange(click_samples) / sr
    click = np.sin(2 * np.pi * 1000 * t_click) * np.exp(-t_click * 100)

    for i, time in enumerate(times):
        sample_pos = int(time * sr)
        amplitude = accents[i] if accents else 1.0
        end = min(sample_pos + click_samples, n_samples)
        length = end - sample_pos
        if length > 0:
            audio[sample_pos:end] += click[:length] * amplitude

    # Normalize
    peak = np.max(np.abs(audio))
    if peak > 0:
        audio = audio / peak

    return audio


def generate_click_track(
    bpm: float,
    duration_seconds: float = 10.0,
    sr: int = SR,
    delay_every: int = 0,
    delay: float = 0.0,
) -> np.ndarray:
    """Generate a synthetic click track."""
    times = click_times(bpm, duration_seconds, delay_every=delay_every, delay=delay)
    return render_clicks(times, duration_seconds, sr)


def to_wav_bytes(audio: np.ndarray, sr: int = SR) -> bytes:
    """Encode mono ``(n,)`` or multi-channel ``(n, channels)`` audio as WAV."""
    buf = io.BytesIO()
    sf.write(buf, audio, sr, format="WAV")
    return buf.getvalue()


@pytest.fixture
def click_120():
    """10 s click track at 120 BPM."""
    return generate_click_track(bpm=120)


@pytest.fixture
def click_120_wav(click_120):
    return to_wav_bytes(click_120)
