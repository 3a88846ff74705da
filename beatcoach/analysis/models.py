"""Core data models for beat analysis."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

import numpy as np

from beatcoach.exceptions import AnalysisError, DecodeError


@dataclass(frozen=True, eq=False)
class SampleBuffer:
    """Decoded mono audio, immutable once built."""
    samples: np.ndarray  # float32, [-1, 1]
    sample_rate: int
    channels: int = 1  # channel count before the mono merge

    def __post_init__(self):
        if self.sample_rate <= 0:
            raise DecodeError(f"Invalid sample rate: {self.sample_rate}")
        if self.samples.ndim != 1 or len(self.samples) == 0:
            raise DecodeError("The audio contains no samples.")
        self.samples.setflags(write=False)

    @property
    def duration(self) -> float:
        return len(self.samples) / self.sample_rate


@dataclass(frozen=True, eq=False)
class OnsetEnvelope:
    """Onset strength sampled every ``hop_seconds``."""
    times: np.ndarray
    strengths: np.ndarray
    hop_seconds: float

    def __len__(self) -> int:
        return len(self.strengths)


@dataclass
class BpmCandidate:
    """A periodicity peak considered by the tempo estimator."""
    bpm: float
    score: float  # prior-weighted autocorrelation
    lag: float  # frames


@dataclass
class TempoEstimate:
    """Global tempo estimate."""
    bpm: float
    confidence: float  # 0.0-1.0
    candidates: list[BpmCandidate] = field(default_factory=list)


@dataclass(frozen=True)
class BeatSequence:
    """Beat times in seconds, strictly increasing and at least ``min_interval`` apart."""
    times: tuple[float, ...]
    strengths: tuple[float, ...] = ()
    min_interval: float = 0.0

    def __post_init__(self):
        if self.strengths and len(self.strengths) != len(self.times):
            raise ValueError("strengths must match times")
        for prev, cur in zip(self.times, self.times[1:]):
            if cur <= prev or cur - prev < self.min_interval:
                raise ValueError(
                    f"Beats at {prev:.3f}s and {cur:.3f}s violate the "
                    f"{self.min_interval:.3f}s inter-beat floor"
                )

    def __len__(self) -> int:
        return len(self.times)

    def __iter__(self):
        return iter(self.times)

    def __getitem__(self, index):
        return self.times[index]

    def gaps(self) -> np.ndarray:
        """Inter-beat gaps; ``gaps()[i - 1]`` is the gap ending at beat ``i``."""
        return np.diff(np.asarray(self.times, dtype=float))


@dataclass(frozen=True)
class DeviationSet:
    """Indices of beats whose preceding gap is off the expected tempo."""
    indices: tuple[int, ...] = ()
    expected_tempo: float | None = None
    tolerance: float = 0.1

    def __contains__(self, index) -> bool:
        return index in self.indices

    def __len__(self) -> int:
        return len(self.indices)

    def __iter__(self):
        return iter(self.indices)


class PipelineState(str, Enum):
    IDLE = "idle"
    DECODING = "decoding"
    ENVELOPE_EXTRACTION = "envelope_extraction"
    TEMPO_ESTIMATION = "tempo_estimation"
    BEAT_TRACKING = "beat_tracking"
    READY = "ready"
    FAILED = "failed"


@dataclass
class AnalysisResult:
    """Complete analysis of one clip."""
    tempo: TempoEstimate
    beats: BeatSequence
    deviations: DeviationSet
    duration: float
    sample_rate: int
    expected_tempo: float | None = None

    def with_expected_tempo(self, expected_tempo: float | None) -> AnalysisResult:
        """Re-derive deviations for a new expected tempo, reusing tempo and beats."""
        from beatcoach.analysis.deviation import find_deviations

        deviations = find_deviations(
            self.beats, expected_tempo, tolerance=self.deviations.tolerance,
        )
        return replace(self, deviations=deviations, expected_tempo=expected_tempo)


@dataclass
class AnalysisOutcome:
    """Tagged result of one analysis run."""
    generation: int
    state: PipelineState
    result: AnalysisResult | None = None
    error: AnalysisError | None = None
    stale: bool = False

    @property
    def ok(self) -> bool:
        return self.result is not None and self.error is None and not self.stale


@dataclass
class TimelineMarker:
    """A beat marker on the practice timeline."""
    index: int
    time: float
    position: float  # 0.0-1.0
    is_off: bool = False

    @property
    def label(self) -> str:
        return f"Beat {self.index} at {self.time:.2f}s"


@dataclass
class Timeline:
    """Beat markers and the playback cursor projected onto [0, 1]."""
    duration: float
    current_time: float
    cursor: float  # 0.0-1.0
    markers: list[TimelineMarker] = field(default_factory=list)

    @property
    def cursor_label(self) -> str:
        return f"Current Time: {self.current_time:.2f}s"

    @property
    def elapsed_label(self) -> str:
        return f"{self.current_time:.2f}s"

    @property
    def duration_label(self) -> str:
        return f"{self.duration:.2f}s"
