"""Pydantic request/response models for API."""

from pydantic import BaseModel, Field


class BpmCandidateResponse(BaseModel):
    bpm: float
    score: float


class TempoResponse(BaseModel):
    bpm: float
    confidence: float
    candidates: list[BpmCandidateResponse] = []


class AnalysisResponse(BaseModel):
    tempo: TempoResponse
    beats: list[float]
    deviations: list[int] = []
    expected_tempo: float | None = None
    duration: float = 0.0


class ErrorResponse(BaseModel):
    error: str
    message: str


class DeviationRequest(BaseModel):
    beats: list[float]
    expected_tempo: float | None = None


class DeviationResponse(BaseModel):
    deviations: list[int]
    expected_tempo: float | None = None
    tolerance: float


class TimelineRequest(BaseModel):
    beats: list[float]
    duration: float
    position: float = Field(0.0, ge=0.0)
    deviations: list[int] = []


class TimelineMarkerResponse(BaseModel):
    index: int
    time: float
    position: float
    is_off: bool
    label: str


class TimelineResponse(BaseModel):
    duration: float
    current_time: float
    cursor: float
    cursor_label: str
    elapsed_label: str
    duration_label: str
    markers: list[TimelineMarkerResponse]


class TimelineEnvelope(BaseModel):
    timeline: TimelineResponse | None = None


# WebSocket message types

class AnalysisMessage(BaseModel):
    type: str = "analysis"
    generation: int
    data: AnalysisResponse


class ErrorMessage(BaseModel):
    type: str = "error"
    generation: int
    error: str
    message: str


class DeviationsMessage(BaseModel):
    type: str = "deviations"
    deviations: list[int]
    expected_tempo: float | None = None


class TimelineMessage(BaseModel):
    type: str = "timeline"
    data: TimelineResponse | None = None
