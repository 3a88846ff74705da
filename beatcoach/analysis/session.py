"""Per-view practice session: generation-versioned analysis runs.

Each ``load`` gets a new generation id. Runs execute in a worker thread and
only the run whose generation is still current may publish its result, so a
newer clip implicitly cancels any analysis still in flight. Derived state is
replaced in one step; consumers never see a mix of two generations.
"""

import asyncio
import logging
import threading

from beatcoach.analysis.engine import AnalysisEngine
from beatcoach.analysis.models import (
    AnalysisOutcome,
    AnalysisResult,
    DeviationSet,
    PipelineState,
    Timeline,
)
from beatcoach.analysis.timeline import build_timeline
from beatcoach.exceptions import AnalysisError, DecodeTimeoutError

logger = logging.getLogger(__name__)

# Published by the session itself, never by a worker stage callback
_TERMINAL_STATES = (PipelineState.READY, PipelineState.FAILED)


class PracticeSession:
    """Holds the current analysis for one consumer view."""

    def __init__(self, engine: AnalysisEngine | None = None, timeout: float | None = None):
        self.engine = engine or AnalysisEngine()
        self.timeout = self.engine.settings.decode_timeout_seconds if timeout is None else timeout
        self._lock = threading.Lock()
        self._generation = 0
        self._state = PipelineState.IDLE
        self._result: AnalysisResult | None = None
        self._error: AnalysisError | None = None
        self.expected_tempo: float | None = None
        self.playback_position = 0.0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def result(self) -> AnalysisResult | None:
        return self._result

    @property
    def error(self) -> AnalysisError | None:
        return self._error

    def reset(self) -> int:
        """Discard all derived state, the expected tempo included, and invalidate in-flight runs."""
        with self._lock:
            self._generation += 1
            self._state = PipelineState.IDLE
            self._result = None
            self._error = None
            self.expected_tempo = None
            self.playback_position = 0.0
            return self._generation

    def _set_stage(self, generation: int, state: PipelineState) -> None:
        if state in _TERMINAL_STATES:
            return
        with self._lock:
            # A run that timed out keeps its generation but must stay FAILED
            if generation == self._generation and self._state not in _TERMINAL_STATES:
                self._state = state

    async def load(self, audio_bytes: bytes, mime_type: str | None = None) -> AnalysisOutcome:
        """Analyze a new clip, superseding whatever was loaded before."""
        generation = self.reset()
        loop = asyncio.get_running_loop()

        def _run() -> AnalysisResult:
            return self.engine.analyze_bytes(
                audio_bytes,
                mime_type,
                expected_tempo=None,
                on_stage=lambda state: self._set_stage(generation, state),
            )

        try:
            result = await asyncio.wait_for(loop.run_in_executor(None, _run), self.timeout)
            error = None
        except asyncio.TimeoutError:
            result = None
            error = DecodeTimeoutError(f"Analysis did not finish within {self.timeout:.0f}s.")
        except AnalysisError as e:
            result = None
            error = e
        except Exception:
            logger.exception("Unexpected analysis failure")
            result = None
            error = AnalysisError()

        with self._lock:
            if generation != self._generation:
                logger.warning(f"Discarding stale analysis (generation {generation}, current {self._generation})")
                return AnalysisOutcome(
                    generation=generation,
                    state=PipelineState.FAILED if error else PipelineState.READY,
                    stale=True,
                )
            if error is not None:
                self._state = PipelineState.FAILED
                self._error = error
                return AnalysisOutcome(generation=generation, state=self._state, error=error)

            # Expected tempo may have changed while the run was in flight
            if result.expected_tempo != self.expected_tempo:
                result = result.with_expected_tempo(self.expected_tempo)
            self._result = result
            self._state = PipelineState.READY
            return AnalysisOutcome(generation=generation, state=self._state, result=result)

    def on_playback_time(self, seconds: float) -> None:
        self.playback_position = max(0.0, float(seconds))

    def on_expected_tempo_changed(self, bpm: float | None) -> DeviationSet:
        """Re-derive deviations from the cached beats only."""
        with self._lock:
            self.expected_tempo = bpm
            if self._result is None:
                return DeviationSet(
                    expected_tempo=bpm,
                    tolerance=self.engine.settings.deviation_tolerance,
                )
            self._result = self._result.with_expected_tempo(bpm)
            return self._result.deviations

    def timeline(self) -> Timeline | None:
        """Current beats and cursor projected onto [0, 1], or None."""
        result = self._result
        if result is None:
            return None
        return build_timeline(
            result.beats,
            result.duration,
            current_time=self.playback_position,
            deviations=result.deviations,
        )
