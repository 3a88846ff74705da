"""WebSocket endpoint for an interactive practice session."""

import asyncio
import json
import logging
import math

from fastapi import APIRouter, WebSocket

from beatcoach.analysis.session import PracticeSession
from beatcoach.api.feedback import timeline_to_response
from beatcoach.api.schemas import (
    AnalysisMessage,
    DeviationsMessage,
    ErrorMessage,
    TimelineMessage,
)
from beatcoach.api.upload import result_to_response

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_number(value) -> float | None:
    """Like a number input: anything unparsable or non-finite means unset."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


@router.websocket("/ws/session")
async def practice_session(websocket: WebSocket):
    """Practice session over WebSocket.

    Protocol:
    - Client sends a complete audio clip as one binary message. A newer
      clip supersedes any analysis still running; its result is dropped.
    - Client sends JSON text messages:
      - {"type": "source", "mime_type": "audio/wav"} hint for the next clip
      - {"type": "expected_tempo", "bpm": 120 | null}
      - {"type": "playback_time", "seconds": T}
    - Server sends JSON messages:
      - {"type": "analysis", "generation": G, "data": {...}}
      - {"type": "error", "generation": G, "error": code, "message": text}
      - {"type": "deviations", "deviations": [...], "expected_tempo": bpm}
      - {"type": "timeline", "data": {...} | null}
    """
    await websocket.accept()

    session = PracticeSession()
    mime_type: str | None = None
    tasks: set[asyncio.Task] = set()

    async def run_analysis(data: bytes, hint: str | None):
        outcome = await session.load(data, hint)
        if outcome.stale:
            return
        if outcome.ok:
            message = AnalysisMessage(
                generation=outcome.generation,
                data=result_to_response(outcome.result),
            )
        else:
            message = ErrorMessage(
                generation=outcome.generation,
                error=outcome.error.code,
                message=outcome.error.reason,
            )
        await websocket.send_json(message.model_dump())

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            if message.get("bytes") is not None:
                task = asyncio.create_task(run_analysis(message["bytes"], mime_type))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
                continue

            try:
                payload = json.loads(message.get("text") or "")
                kind = payload.get("type")
            except (ValueError, AttributeError):
                payload, kind = {}, None

            if kind == "source":
                mime_type = payload.get("mime_type")
            elif kind == "expected_tempo":
                deviations = session.on_expected_tempo_changed(_parse_number(payload.get("bpm")))
                await websocket.send_json(DeviationsMessage(
                    deviations=list(deviations),
                    expected_tempo=deviations.expected_tempo,
                ).model_dump())
            elif kind == "playback_time":
                session.on_playback_time(_parse_number(payload.get("seconds")) or 0.0)
                await websocket.send_json(TimelineMessage(
                    data=timeline_to_response(session.timeline()),
                ).model_dump())
            else:
                await websocket.send_json(ErrorMessage(
                    generation=session.generation,
                    error="bad_message",
                    message="Unrecognized message.",
                ).model_dump())
    finally:
        for task in tasks:
            task.cancel()
