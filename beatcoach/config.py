"""Application configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings with env var overrides."""

    # Audio
    sample_rate: int = 22050
    highpass_cutoff: float = 40.0  # Hz, 0 disables
    min_clip_seconds: float = 0.5

    # Onset envelope
    window_length: int = 1024  # samples
    hop_length: int = 256  # samples

    # Tempo
    min_bpm: float = 40.0
    max_bpm: float = 240.0
    prior_bpm: float = 120.0
    prior_width: float = 1.0  # octaves
    tempo_tie_epsilon: float = 0.02
    min_active_frames: int = 4

    # Beat tracking
    beat_window_fraction: float = 0.4  # of the beat period
    beat_tightness: float = 5.0
    min_beat_interval: float = 0.1  # seconds

    # Deviations
    deviation_tolerance: float = 0.1  # seconds

    # Sessions
    decode_timeout_seconds: float = 30.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    max_upload_mb: int = 50

    model_config = {"env_prefix": "BEATCOACH_"}


settings = Settings()
