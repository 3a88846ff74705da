"""Audio decoding: encoded bytes to a mono SampleBuffer."""

from __future__ import annotations

import io
import logging
import os
import tempfile
from pathlib import Path
from typing import Union

import librosa
import numpy as np
import soundfile as sf

from beatcoach.analysis.models import SampleBuffer
from beatcoach.audio.preprocessing import normalize, to_mono
from beatcoach.exceptions import DecodeError

logger = logging.getLogger(__name__)

# MIME type -> file suffix handed to decoders that sniff by extension.
SUPPORTED_MIME_TYPES = {
    "audio/wav": ".wav",
    "audio/wave": ".wav",
    "audio/x-wav": ".wav",
    "audio/vnd.wave": ".wav",
    "audio/flac": ".flac",
    "audio/x-flac": ".flac",
    "audio/ogg": ".ogg",
    "application/ogg": ".ogg",
    "audio/mpeg": ".mp3",
    "audio/mp3": ".mp3",
    "audio/mp4": ".m4a",
    "audio/x-m4a": ".m4a",
    "audio/aac": ".aac",
    "audio/webm": ".webm",
}

SUFFIX_MIME_TYPES = {
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".webm": "audio/webm",
}


def _suffix_for(mime_type: str | None) -> str:
    """Map a MIME hint to a file suffix ("" when there is no hint)."""
    if not mime_type:
        return ""
    base = mime_type.split(";", 1)[0].strip().lower()
    if base not in SUPPORTED_MIME_TYPES:
        raise DecodeError(f"Unsupported audio format: {base or mime_type}")
    return SUPPORTED_MIME_TYPES[base]


def _read_soundfile(data: bytes) -> tuple[np.ndarray, int]:
    """Decode with libsndfile. Returns ``(frames, channels)`` float32 and the rate."""
    audio, sr = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    return audio, sr


def _read_librosa(data: bytes, suffix: str) -> tuple[np.ndarray, int]:
    """Decode through librosa's backends, which need a real file path."""
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        tmp.write(data)
        tmp_path = tmp.name
    try:
        audio, sr = librosa.load(tmp_path, sr=None, mono=False)
    finally:
        os.unlink(tmp_path)
    if audio.ndim == 1:
        audio = audio[:, np.newaxis]
    else:
        audio = audio.T
    return audio, int(sr)


def decode_audio(
    data: bytes,
    mime_type: str | None = None,
    sr: int | None = 22050,
) -> SampleBuffer:
    """Decode encoded audio bytes into a mono, peak-normalized SampleBuffer.

    Parameters
    ----------
    data:
        Encoded audio (WAV, FLAC, OGG, MP3, M4A, AAC, WebM).
    mime_type:
        Optional container hint such as ``"audio/wav"``. Without a hint
        the container is sniffed.
    sr:
        Target sample rate. ``None`` keeps the native rate.

    Raises
    ------
    DecodeError
        Empty payload, unsupported hint, corrupt container or no samples.
    """
    if not data:
        raise DecodeError("The audio file is empty.")
    suffix = _suffix_for(mime_type)

    try:
        audio, native_sr = _read_soundfile(data)
    except (RuntimeError, ValueError) as e:
        if suffix in (".wav", ".flac"):
            raise DecodeError("The audio file is corrupt or in an unsupported format.") from e
        # Unhinted payloads are sniffed by librosa's backends
        logger.warning(f"libsndfile could not read {suffix or 'unhinted'} audio ({e}); trying librosa")
        try:
            audio, native_sr = _read_librosa(data, suffix)
        except Exception as fallback_error:
            if not suffix:
                raise DecodeError(
                    "The audio file is corrupt or in an unsupported format."
                ) from fallback_error
            raise DecodeError(
                f"Could not decode {suffix.lstrip('.').upper()} audio."
            ) from fallback_error

    if audio.shape[0] == 0:
        raise DecodeError("The audio contains no samples.")
    if not np.all(np.isfinite(audio)):
        raise DecodeError("The audio file is corrupt (non-finite samples).")

    channels = audio.shape[1]
    mono = to_mono(audio)
    if sr is not None and native_sr != sr:
        mono = librosa.resample(mono, orig_sr=native_sr, target_sr=sr)
        native_sr = sr

    samples = np.clip(normalize(mono), -1.0, 1.0).astype(np.float32)
    logger.info(f"Decoded {len(samples) / native_sr:.2f}s, {channels} channel(s) at {native_sr}Hz")
    return SampleBuffer(samples=samples, sample_rate=int(native_sr), channels=channels)


def load_audio(
    file_path: Union[str, Path],
    sr: int | None = 22050,
) -> SampleBuffer:
    """Load an audio file from disk, using its suffix as the container hint."""
    path = Path(file_path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise DecodeError(f"Could not read {path.name}.") from e
    mime_type = SUFFIX_MIME_TYPES.get(path.suffix.lower())
    return decode_audio(data, mime_type, sr=sr)
