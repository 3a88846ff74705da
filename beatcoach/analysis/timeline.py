"""Project beat and playback times onto a normalized [0, 1] timeline."""

import logging
import math
from typing import Iterable, Sequence

from beatcoach.analysis.models import Timeline, TimelineMarker
from beatcoach.exceptions import ProjectionSkipped

logger = logging.getLogger(__name__)


def project_time(t: float, duration: float) -> float:
    """Map ``t`` seconds to ``t / duration`` clamped to [0, 1].

    Raises ProjectionSkipped when ``duration`` is zero (or otherwise not a
    positive number); callers must then render nothing.
    """
    if not (math.isfinite(duration) and duration > 0):
        raise ProjectionSkipped(f"Cannot project onto a {duration}s clip")
    return min(1.0, max(0.0, t / duration))


def build_timeline(
    beats: Sequence[float],
    duration: float,
    current_time: float = 0.0,
    deviations: Iterable[int] = (),
) -> Timeline | None:
    """Project beat markers and the playback cursor for rendering.

    Returns None for a zero-length clip.
    """
    off = set(deviations)
    try:
        markers = [
            TimelineMarker(
                index=i,
                time=float(t),
                position=project_time(t, duration),
                is_off=i in off,
            )
            for i, t in enumerate(beats)
        ]
        cursor = project_time(current_time, duration)
    except ProjectionSkipped as e:
        logger.debug(f"Timeline skipped: {e}")
        return None
    return Timeline(
        duration=duration,
        current_time=current_time,
        cursor=cursor,
        markers=markers,
    )
