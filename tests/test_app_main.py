from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from prononce.app import config as app_config
from prononce.app import main as main_mod
from prononce.app.services import EngineSession
from prononce.audio.mic import PermissionDenied
from prononce.contracts import RecognizedWord, RecordingResult, TranscriptSource
from prononce.scoring.scorer import ScoringEngine


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    yield
    logger = logging.getLogger("prononce")
    for h in list(logger.handlers):
        h.close()
        logger.removeHandler(h)


class _FakeEngine:
    name = "fake"

    def __init__(self) -> None:
        self.disposed = 0

    def dispose(self) -> None:
        self.disposed += 1


class _FakeOrchestrator:
    def stop_recording(self) -> None:
        return None


def _fake_session() -> EngineSession:
    return EngineSession(
        mic=None,
        engine=_FakeEngine(),
        detector=None,
        orchestrator=_FakeOrchestrator(),  # type: ignore[arg-type]
        scoring=ScoringEngine(),
    )


def _patch_recording(monkeypatch, outcome) -> EngineSession:
    session = _fake_session()
    monkeypatch.setattr(main_mod, "build_engine_session", lambda args, logger=None: session)

    async def _record(sess, *, logger=None):
        assert sess is session
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    monkeypatch.setattr(main_mod, "record_attempt", _record)
    return session


def test_missing_text_is_an_error(capsys) -> None:
    assert main_mod.main([]) == main_mod.EXIT_ERROR
    assert "--text is required" in capsys.readouterr().err


def test_transcript_mode_prints_report(capsys) -> None:
    code = main_mod.main(["--text", "Je m'appelle Marie.", "--transcript", "je m'appelle marie"])
    assert code == main_mod.EXIT_OK
    out = capsys.readouterr().out
    assert "Heard: je m'appelle marie" in out
    assert "Overall: 91/100 (high)" in out
    assert "Completed!" in out


def test_transcript_mode_json(capsys) -> None:
    code = main_mod.main(["--text", "Bonjour", "--transcript", "bonsoir", "--json"])
    assert code == main_mod.EXIT_OK
    payload = json.loads(capsys.readouterr().out)
    assert payload["transcript"] == "bonsoir"
    assert payload["kind"] == "text_only"
    assert payload["completed"] is (payload["overall_score"] >= 70)


def test_bad_reference_pitch_is_an_error(tmp_path: Path, capsys) -> None:
    ref = tmp_path / "ref.json"
    ref.write_text("{}", encoding="utf-8")
    code = main_mod.main(["--text", "Bonjour", "--transcript", "bonjour", "--reference-pitch", str(ref)])
    assert code == main_mod.EXIT_ERROR
    assert "hint:" in capsys.readouterr().err


def test_permission_denied_exits_with_capture_code(monkeypatch, capsys) -> None:
    session = _patch_recording(monkeypatch, PermissionDenied("Microphone access denied."))
    assert main_mod.main(["--text", "Bonjour"]) == main_mod.EXIT_CAPTURE
    err = capsys.readouterr().err
    assert "error: Microphone access denied." in err
    assert "Allow microphone access" in err
    assert session.engine.disposed == 1


def test_no_speech_is_not_an_error(monkeypatch, capsys) -> None:
    _patch_recording(monkeypatch, RecordingResult.empty())
    assert main_mod.main(["--text", "Bonjour"]) == main_mod.EXIT_OK
    assert "No speech detected" in capsys.readouterr().out


def test_recorded_attempt_is_scored_and_saved(tmp_path: Path, monkeypatch, capsys) -> None:
    result = RecordingResult(
        transcript="bonjour",
        words=(RecognizedWord("bonjour", 0.95, 0.0, 0.5),),
        blob=b"RIFF....WAVE",
        pitch_contour=(),
        transcript_source=TranscriptSource.FINAL,
    )
    _patch_recording(monkeypatch, result)
    wav = tmp_path / "attempt.wav"
    code = main_mod.main(["--text", "Bonjour", "--save-wav", str(wav), "--json"])
    assert code == main_mod.EXIT_OK
    assert wav.read_bytes() == b"RIFF....WAVE"
    out = capsys.readouterr().out
    payload = json.loads(out[out.index("{"):])
    assert payload["kind"] == "speech_data"
    assert payload["transcript"] == "bonjour"
    assert payload["word_results"][0]["confidence"] == 0.95
