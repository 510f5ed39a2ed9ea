from __future__ import annotations

import json
import logging
from pathlib import Path

from prononce.app import config as app_config
from prononce.app.logging_setup import log_event, setup_app_logger
from prononce.app.state import RecordingState


def _read_lines(path: Path) -> list[dict]:
    return [json.loads(ln) for ln in path.read_text(encoding="utf-8").splitlines() if ln.strip()]


def test_setup_app_logger_writes_json_line(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(app_config, "user_config_dir", lambda appname, appauthor=None: str(tmp_path))
    logger, log_dir, log_path = setup_app_logger("prononce.test")

    logger.info("hello", extra={"event": "test_event", "value": 7})
    for h in logger.handlers:
        h.flush()

    assert log_dir == tmp_path / "logs"
    assert log_path.exists()
    payload = _read_lines(log_path)[-1]
    assert payload["message"] == "hello"
    assert payload["event"] == "test_event"
    assert payload["value"] == 7
    assert payload["level"] == "INFO"
    assert payload["logger"] == "prononce.test"

    for h in logger.handlers:
        h.close()
    logging.getLogger("prononce.test").handlers.clear()


def test_log_event_serializes_enums_and_skips_missing_logger(tmp_path: Path) -> None:
    logger, _, log_path = setup_app_logger("prononce.test.events", debug=True, log_dir=tmp_path)
    assert logger.level == logging.DEBUG

    log_event(logger, logging.WARNING, "state_changed", state=RecordingState.CAPTURING, path=tmp_path)
    log_event(None, logging.ERROR, "dropped")
    for h in logger.handlers:
        h.flush()

    payload = _read_lines(log_path)[-1]
    assert payload["message"] == "state_changed"
    assert payload["level"] == "WARNING"
    assert payload["state"] in {"capturing", "RecordingState.CAPTURING"}
    assert payload["path"] == str(tmp_path)

    for h in logger.handlers:
        h.close()
    logging.getLogger("prononce.test.events").handlers.clear()


def test_setup_twice_replaces_handlers(tmp_path: Path) -> None:
    setup_app_logger("prononce.test.twice", log_dir=tmp_path)
    logger, _, _ = setup_app_logger("prononce.test.twice", log_dir=tmp_path)
    assert len(logger.handlers) == 1
    assert logger.propagate is False
    for h in logger.handlers:
        h.close()
    logger.handlers.clear()
