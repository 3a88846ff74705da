"""Integration tests for the analysis engine and HTTP API."""

import numpy as np
import pytest
import soundfile as sf

from beatcoach.analysis.engine import AnalysisEngine, analyze
from beatcoach.analysis.models import AnalysisResult, PipelineState
from beatcoach.config import Settings
from beatcoach.exceptions import (
    DecodeError,
    InsufficientAudioError,
    TempoEstimationError,
)
from tests.conftest import SR, click_times, generate_click_track, render_clicks, to_wav_bytes


def test_analyze_bytes_returns_result(click_120_wav):
    result = AnalysisEngine().analyze_bytes(click_120_wav, "audio/wav")

    assert isinstance(result, AnalysisResult)
    assert result.tempo.bpm > 0
    assert len(result.beats) > 0
    assert result.duration == pytest.approx(10.0, abs=1e-3)
    assert result.sample_rate == SR


def test_scenario_a_steady_click_track(click_120_wav):
    outcome = analyze(click_120_wav, expected_tempo=120, mime_type="audio/wav")

    assert outcome.ok
    result = outcome.result
    assert result.tempo.bpm == pytest.approx(120, abs=2)
    assert len(result.deviations) == 0
    assert len(result.beats) == len(click_times(120, 10.0))


def test_scenario_b_delayed_clicks_are_flagged():
    times = click_times(120, 10.0, delay_every=4, delay=0.15)
    wav = to_wav_bytes(render_clicks(times, 10.0))
    outcome = analyze(wav, expected_tempo=120, mime_type="audio/wav")

    assert outcome.ok
    beats = outcome.result.beats
    assert len(beats) == len(times)
    for beat, click in zip(beats, times):
        assert abs(beat - click) < 0.05
    delayed = {i for i in range(1, len(times)) if (i + 1) % 4 == 0}
    assert set(outcome.result.deviations) == delayed


def test_scenario_c_short_clip_is_insufficient():
    wav = to_wav_bytes(generate_click_track(bpm=120, duration_seconds=0.2))
    outcome = analyze(wav, expected_tempo=120, mime_type="audio/wav")

    assert not outcome.ok
    assert outcome.state == PipelineState.FAILED
    assert isinstance(outcome.error, InsufficientAudioError)
    assert outcome.result is None


def test_clip_shorter_than_window_is_insufficient():
    engine = AnalysisEngine(Settings(min_clip_seconds=0.0))
    wav = to_wav_bytes(render_clicks([0.0], 0.02))
    with pytest.raises(InsufficientAudioError, match="analysis window"):
        engine.analyze_bytes(wav, "audio/wav")


def test_scenario_d_no_expected_tempo():
    times = click_times(120, 10.0, delay_every=3, delay=0.2)
    wav = to_wav_bytes(render_clicks(times, 10.0))
    outcome = analyze(wav, expected_tempo=None, mime_type="audio/wav")

    assert outcome.ok
    assert len(outcome.result.deviations) == 0
    assert outcome.result.expected_tempo is None


def test_scenario_e_stereo_matches_mono(click_120):
    mono = analyze(to_wav_bytes(click_120), expected_tempo=120).result
    stereo = analyze(to_wav_bytes(np.column_stack([click_120, click_120])), expected_tempo=120).result

    assert stereo.tempo.bpm == mono.tempo.bpm
    assert stereo.beats == mono.beats
    assert stereo.deviations == mono.deviations


def test_changing_expected_tempo_keeps_tempo_and_beats(click_120_wav):
    result = AnalysisEngine().analyze_bytes(click_120_wav, "audio/wav", expected_tempo=120)
    slower = result.with_expected_tempo(90)

    assert slower.beats is result.beats
    assert slower.tempo is result.tempo
    assert len(result.deviations) == 0
    assert tuple(slower.deviations) == tuple(range(1, len(result.beats)))
    assert result.with_expected_tempo(None).deviations.indices == ()


def test_beats_strictly_increasing_and_within_clip(click_120_wav):
    result = AnalysisEngine().analyze_bytes(click_120_wav, "audio/wav")
    gaps = result.beats.gaps()
    assert np.all(gaps >= result.beats.min_interval)
    assert 0.0 <= result.beats[0] and result.beats[-1] <= result.duration


def test_stage_callback_order(click_120_wav):
    stages = []
    AnalysisEngine().analyze_bytes(click_120_wav, "audio/wav", on_stage=stages.append)
    assert stages == [
        PipelineState.DECODING,
        PipelineState.ENVELOPE_EXTRACTION,
        PipelineState.TEMPO_ESTIMATION,
        PipelineState.BEAT_TRACKING,
        PipelineState.READY,
    ]


def test_silence_fails_tempo_estimation():
    wav = to_wav_bytes(np.zeros(3 * SR, dtype=np.float32))
    outcome = analyze(wav, mime_type="audio/wav")
    assert isinstance(outcome.error, TempoEstimationError)
    assert outcome.error.reason == "Could not detect a clear tempo."


def test_decode_failure_is_tagged():
    outcome = analyze(b"", mime_type="audio/wav")
    assert isinstance(outcome.error, DecodeError)
    assert outcome.state == PipelineState.FAILED


def test_analyze_file(tmp_path):
    path = tmp_path / "take.wav"
    sf.write(str(path), generate_click_track(bpm=100, duration_seconds=8), SR)

    result = AnalysisEngine().analyze_file(path, expected_tempo=100)
    assert result.tempo.bpm == pytest.approx(100, abs=2)
    assert len(result.deviations) == 0


# HTTP API

def test_api_analyze_endpoint(client, click_120_wav):
    response = client.post(
        "/api/analyze",
        files={"file": ("take.wav", click_120_wav, "audio/wav")},
        data={"expected_tempo": "120"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["tempo"]["bpm"] == pytest.approx(120, abs=2)
    assert len(data["beats"]) == len(click_times(120, 10.0))
    assert data["deviations"] == []
    assert data["expected_tempo"] == 120
    assert data["duration"] == pytest.approx(10.0, abs=1e-3)


def test_api_analyze_without_expected_tempo(client, click_120_wav):
    response = client.post(
        "/api/analyze",
        files={"file": ("take.wav", click_120_wav, "application/octet-stream")},
    )
    assert response.status_code == 200
    assert response.json()["expected_tempo"] is None


def test_api_analyze_short_clip_returns_guidance(client):
    wav = to_wav_bytes(generate_click_track(bpm=120, duration_seconds=0.2))
    response = client.post("/api/analyze", files={"file": ("short.wav", wav, "audio/wav")})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["error"] == "insufficient_audio"
    assert detail["message"] == InsufficientAudioError.user_message


def test_api_analyze_corrupt_file_returns_decode_error(client):
    response = client.post(
        "/api/analyze",
        files={"file": ("broken.wav", b"RIFFnope", "audio/wav")},
    )
    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "decode_error"


def test_api_analyze_rejects_unsupported_extension(client):
    response = client.post(
        "/api/analyze",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert response.status_code == 400
    assert "Unsupported format" in response.json()["detail"]


def test_api_analyze_rejects_oversized_file(client, monkeypatch):
    """Upload endpoint should reject files larger than configured limit."""
    from beatcoach.config import settings

    monkeypatch.setattr(settings, "max_upload_mb", 1)
    payload = b"x" * (1024 * 1024 + 1)

    response = client.post(
        "/api/analyze",
        files={"file": ("big.wav", payload, "audio/wav")},
    )

    assert response.status_code == 400
    assert "File too large" in response.json()["detail"]


def test_api_analyze_unexpected_failure_returns_generic_error(client, monkeypatch):
    """Upload endpoint should not leak internal exception details."""
    def _boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(AnalysisEngine, "analyze_bytes", _boom)

    response = client.post(
        "/api/analyze",
        files={"file": ("take.wav", b"audio", "audio/wav")},
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Analysis failed"


def test_api_deviations_endpoint(client):
    response = client.post(
        "/api/deviations",
        json={"beats": [0.1, 0.6, 1.1, 1.75, 2.25], "expected_tempo": 120},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["deviations"] == [3]
    assert data["tolerance"] == 0.1


def test_api_deviations_without_expected_tempo(client):
    response = client.post("/api/deviations", json={"beats": [0.1, 0.9, 1.1]})
    assert response.json()["deviations"] == []


def test_api_timeline_endpoint(client):
    response = client.post(
        "/api/timeline",
        json={"beats": [0.5, 1.0], "duration": 2.0, "position": 1.5, "deviations": [1]},
    )
    timeline = response.json()["timeline"]
    assert timeline["cursor"] == pytest.approx(0.75)
    assert [m["position"] for m in timeline["markers"]] == pytest.approx([0.25, 0.5])
    assert timeline["markers"][1]["is_off"] is True
    assert timeline["markers"][1]["label"] == "Beat 1 at 1.00s"


def test_api_timeline_zero_duration_is_null(client):
    response = client.post("/api/timeline", json={"beats": [0.5], "duration": 0})
    assert response.status_code == 200
    assert response.json() == {"timeline": None}


def test_health_endpoint(client):
    """GET /api/health should return ok."""
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
