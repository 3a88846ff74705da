"""File upload endpoint for audio analysis."""

import asyncio
import logging

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from beatcoach.analysis.engine import AnalysisEngine
from beatcoach.analysis.models import AnalysisResult
from beatcoach.api.schemas import AnalysisResponse, BpmCandidateResponse, TempoResponse
from beatcoach.audio.loader import SUFFIX_MIME_TYPES, SUPPORTED_MIME_TYPES
from beatcoach.config import settings
from beatcoach.exceptions import AnalysisError, DecodeError, DecodeTimeoutError

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTENSIONS = set(SUFFIX_MIME_TYPES)


def result_to_response(result: AnalysisResult) -> AnalysisResponse:
    return AnalysisResponse(
        tempo=TempoResponse(
            bpm=result.tempo.bpm,
            confidence=result.tempo.confidence,
            candidates=[
                BpmCandidateResponse(bpm=c.bpm, score=c.score)
                for c in result.tempo.candidates
            ],
        ),
        beats=[round(t, 4) for t in result.beats],
        deviations=list(result.deviations),
        expected_tempo=result.expected_tempo,
        duration=round(result.duration, 4),
    )


def error_detail(error: AnalysisError) -> dict:
    return {"error": error.code, "message": error.reason}


def status_for(error: AnalysisError) -> int:
    if isinstance(error, DecodeTimeoutError):
        return 504
    if isinstance(error, DecodeError):
        return 400
    return 422


def _mime_hint(filename: str | None, content_type: str | None) -> str | None:
    if content_type and content_type.split(";", 1)[0].strip().lower() in SUPPORTED_MIME_TYPES:
        return content_type
    if filename and "." in filename:
        return SUFFIX_MIME_TYPES.get("." + filename.rsplit(".", 1)[-1].lower())
    return None


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_file(
    file: UploadFile = File(...),
    expected_tempo: float | None = Form(None),
):
    """Analyze an uploaded audio clip for tempo, beats and off-beats."""
    # Validate file
    if file.filename:
        ext = "." + file.filename.rsplit(".", 1)[-1].lower() if "." in file.filename else ""
        if ext and ext not in ALLOWED_EXTENSIONS:
            raise HTTPException(400, f"Unsupported format. Use: {', '.join(sorted(ALLOWED_EXTENSIONS))}")

    # Read file content
    content = await file.read()
    if len(content) > settings.max_upload_mb * 1024 * 1024:
        raise HTTPException(400, f"File too large (max {settings.max_upload_mb} MB)")

    engine = AnalysisEngine()
    mime_type = _mime_hint(file.filename, file.content_type)
    try:
        loop = asyncio.get_running_loop()
        result = await asyncio.wait_for(
            loop.run_in_executor(None, engine.analyze_bytes, content, mime_type, expected_tempo),
            settings.decode_timeout_seconds,
        )
    except asyncio.TimeoutError:
        error = DecodeTimeoutError("Analysis did not finish in time.")
        raise HTTPException(status_for(error), error_detail(error))
    except AnalysisError as e:
        raise HTTPException(status_for(e), error_detail(e))
    except Exception:
        logger.exception("Unexpected analysis failure")
        raise HTTPException(500, "Analysis failed")

    return result_to_response(result)
