"""
Exceptions raised by the beat analysis pipeline.

Every pipeline stage fails fast with one of the ``AnalysisError`` subclasses
below. ``ProjectionSkipped`` is not an ``AnalysisError``: it only
tells the caller there is nothing to render.
"""


class AnalysisError(Exception):
    """Base exception for all analysis failures."""

    code = "analysis_error"
    user_message = "Audio analysis failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.user_message)

    @property
    def reason(self) -> str:
        """Text shown to the user."""
        return self.user_message


class DecodeError(AnalysisError):
    """Unsupported codec, corrupt container or empty payload.

    The message is user-correctable and surfaced verbatim.
    """

    code = "decode_error"
    user_message = "The audio could not be decoded."

    @property
    def reason(self) -> str:
        return str(self)


class DecodeTimeoutError(DecodeError):
    """Decoding and analysis took longer than the configured ceiling."""

    code = "decode_timeout"
    user_message = "The audio took too long to process."


class InsufficientAudioError(AnalysisError):
    """Clip too short to analyze."""

    code = "insufficient_audio"
    user_message = (
        "The clip is too short to analyze. "
        "Record or upload at least a few seconds of playing."
    )


class TempoEstimationError(AnalysisError):
    """No usable periodicity in the onset envelope."""

    code = "no_clear_tempo"
    user_message = "Could not detect a clear tempo."


class BeatTrackingError(AnalysisError):
    """Beat tracking could not produce at least two beats."""

    code = "no_clear_tempo"
    user_message = "Could not detect a clear tempo."


class ProjectionSkipped(Exception):
    """Zero-length clip: there is no timeline to project onto."""
