"""Practice feedback endpoints: re-derived deviations and timeline projection.

Both are pure functions of what the client already holds, so changing the
expected tempo or moving the playback cursor never re-runs the analysis.
"""

from fastapi import APIRouter

from beatcoach.analysis.deviation import find_deviations
from beatcoach.analysis.models import Timeline
from beatcoach.analysis.timeline import build_timeline
from beatcoach.api.schemas import (
    DeviationRequest,
    DeviationResponse,
    TimelineEnvelope,
    TimelineMarkerResponse,
    TimelineRequest,
    TimelineResponse,
)
from beatcoach.config import settings

router = APIRouter()


def timeline_to_response(timeline: Timeline | None) -> TimelineResponse | None:
    if timeline is None:
        return None
    return TimelineResponse(
        duration=timeline.duration,
        current_time=timeline.current_time,
        cursor=timeline.cursor,
        cursor_label=timeline.cursor_label,
        elapsed_label=timeline.elapsed_label,
        duration_label=timeline.duration_label,
        markers=[
            TimelineMarkerResponse(
                index=m.index,
                time=m.time,
                position=m.position,
                is_off=m.is_off,
                label=m.label,
            )
            for m in timeline.markers
        ],
    )


@router.post("/deviations", response_model=DeviationResponse)
async def deviations(request: DeviationRequest):
    """Flag beats whose gap is off the expected tempo."""
    result = find_deviations(
        sorted(request.beats),
        request.expected_tempo,
        tolerance=settings.deviation_tolerance,
    )
    return DeviationResponse(
        deviations=list(result),
        expected_tempo=result.expected_tempo,
        tolerance=result.tolerance,
    )


@router.post("/timeline", response_model=TimelineEnvelope)
async def timeline(request: TimelineRequest):
    """Project beats and the playback cursor; ``timeline`` is null for empty clips."""
    projected = build_timeline(
        request.beats,
        request.duration,
        current_time=request.position,
        deviations=request.deviations,
    )
    return TimelineEnvelope(timeline=timeline_to_response(projected))
