"""Analysis orchestrator - runs the beat analysis pipeline."""

import logging
from pathlib import Path
from typing import Callable

from beatcoach.analysis.beat_tracking import track_beats
from beatcoach.analysis.deviation import find_deviations
from beatcoach.analysis.models import (
    AnalysisOutcome,
    AnalysisResult,
    PipelineState,
    SampleBuffer,
)
from beatcoach.analysis.onset import onset_envelope
from beatcoach.analysis.tempo import estimate_tempo
from beatcoach.audio.loader import decode_audio, load_audio
from beatcoach.audio.preprocessing import preprocess
from beatcoach.config import Settings, settings as default_settings
from beatcoach.exceptions import AnalysisError, InsufficientAudioError

logger = logging.getLogger(__name__)

StageCallback = Callable[[PipelineState], None]


class AnalysisEngine:
    """Orchestrates the full analysis pipeline.

    Every stage fails fast with an AnalysisError; nothing degraded is passed
    forward and no partial beats are returned.
    """

    def __init__(self, config: Settings | None = None):
        self.settings = config or default_settings

    def analyze_file(self, file_path: str | Path, expected_tempo: float | None = None) -> AnalysisResult:
        """Analyze an audio file on disk."""
        buffer = load_audio(file_path, sr=self.settings.sample_rate)
        return self.analyze_buffer(buffer, expected_tempo)

    def analyze_bytes(
        self,
        data: bytes,
        mime_type: str | None = None,
        expected_tempo: float | None = None,
        on_stage: StageCallback | None = None,
    ) -> AnalysisResult:
        """Decode and analyze encoded audio bytes."""
        self._enter(PipelineState.DECODING, on_stage)
        buffer = decode_audio(data, mime_type, sr=self.settings.sample_rate)
        return self.analyze_buffer(buffer, expected_tempo, on_stage)

    def analyze_buffer(
        self,
        buffer: SampleBuffer,
        expected_tempo: float | None = None,
        on_stage: StageCallback | None = None,
    ) -> AnalysisResult:
        """Analyze an already decoded buffer."""
        cfg = self.settings
        sr = buffer.sample_rate
        duration = buffer.duration
        logger.info(f"Analyzing {duration:.1f}s of audio at {sr}Hz")

        # Step 1: Onset envelope
        self._enter(PipelineState.ENVELOPE_EXTRACTION, on_stage)
        if duration < cfg.min_clip_seconds:
            raise InsufficientAudioError(
                f"Clip is {duration:.2f}s long; at least {cfg.min_clip_seconds:.2f}s is needed"
            )
        audio = preprocess(buffer.samples, sr, cfg.highpass_cutoff)
        envelope = onset_envelope(audio, sr, cfg.window_length, cfg.hop_length)
        if len(envelope) == 0:
            raise InsufficientAudioError(
                f"Clip is shorter than one {cfg.window_length}-sample analysis window"
            )
        logger.info(f"  Onset envelope: {len(envelope)} frames")

        # Step 2: Tempo estimation
        self._enter(PipelineState.TEMPO_ESTIMATION, on_stage)
        tempo = estimate_tempo(
            envelope,
            min_bpm=cfg.min_bpm,
            max_bpm=cfg.max_bpm,
            prior_bpm=cfg.prior_bpm,
            prior_width=cfg.prior_width,
            tie_epsilon=cfg.tempo_tie_epsilon,
            min_active_frames=cfg.min_active_frames,
        )
        logger.info(f"  Tempo: {tempo.bpm} BPM (confidence: {tempo.confidence})")

        # Step 3: Beat tracking
        self._enter(PipelineState.BEAT_TRACKING, on_stage)
        beats = track_beats(
            envelope,
            tempo.bpm,
            duration=duration,
            window_fraction=cfg.beat_window_fraction,
            tightness=cfg.beat_tightness,
            min_interval=cfg.min_beat_interval,
        )

        # Step 4: Deviations against the expected tempo
        deviations = find_deviations(beats, expected_tempo, tolerance=cfg.deviation_tolerance)
        if deviations:
            logger.info(f"  {len(deviations)} of {len(beats)} beats off {expected_tempo} BPM")

        self._enter(PipelineState.READY, on_stage)
        return AnalysisResult(
            tempo=tempo,
            beats=beats,
            deviations=deviations,
            duration=duration,
            sample_rate=sr,
            expected_tempo=expected_tempo,
        )

    @staticmethod
    def _enter(state: PipelineState, on_stage: StageCallback | None) -> None:
        logger.debug(f"Pipeline state: {state.value}")
        if on_stage is not None:
            on_stage(state)


def analyze(
    audio_bytes: bytes,
    expected_tempo: float | None = None,
    mime_type: str | None = None,
    engine: AnalysisEngine | None = None,
) -> AnalysisOutcome:
    """Analyze a clip and return a tagged outcome instead of raising."""
    engine = engine or AnalysisEngine()
    try:
        result = engine.analyze_bytes(audio_bytes, mime_type, expected_tempo)
    except AnalysisError as e:
        logger.info(f"Analysis failed ({e.code}): {e}")
        return AnalysisOutcome(generation=0, state=PipelineState.FAILED, error=e)
    return AnalysisOutcome(generation=0, state=PipelineState.READY, result=result)
