from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from prononce.app.logging_setup import log_event
from prononce.app.services import EngineSession
from prononce.contracts import (
    PitchPoint,
    PronunciationAnalysis,
    RecordingResult,
    ScoreBand,
    analysis_to_dict,
)

_BAND_MARKS = {
    ScoreBand.HIGH: "+",
    ScoreBand.MEDIUM: "~",
    ScoreBand.LOW: "-",
}


def load_reference_pitch(path: str | Path) -> tuple[PitchPoint, ...]:
    with Path(path).open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, list):
        raise ValueError(f"reference contour must be a JSON list: {path}")
    points = []
    for i, item in enumerate(loaded):
        if not isinstance(item, dict) or "time" not in item or "pitch" not in item:
            raise ValueError(f"reference contour entry #{i} needs 'time' and 'pitch': {path}")
        points.append(
            PitchPoint(
                time=float(item["time"]),
                pitch=float(item["pitch"]),
                clarity=float(item.get("clarity", 1.0)),
            )
        )
    return tuple(points)


def _watch_enter(
    loop: asyncio.AbstractEventLoop,
    on_enter: Callable[[], None],
    input_fn: Callable[[], Any],
) -> None:
    try:
        input_fn()
    except EOFError:
        return
    try:
        loop.call_soon_threadsafe(on_enter)
    except RuntimeError:
        # Loop already closed: the recording ended on its own.
        return


async def record_attempt(
    session: EngineSession,
    *,
    input_fn: Optional[Callable[[], Any]] = input,
    announce: Callable[[str], None] = print,
    logger: logging.Logger | None = None,
) -> RecordingResult:
    """
    Record one attempt. Enter stops it (when `input_fn` is given); natural end
    of speech or the max duration stop it otherwise.
    """
    loop = asyncio.get_running_loop()
    orchestrator = session.orchestrator
    preload = orchestrator.preload_model()
    task = orchestrator.start_recording()
    if input_fn is not None:
        threading.Thread(
            target=_watch_enter,
            args=(loop, orchestrator.stop_recording, input_fn),
            name="prononce-stop-watcher",
            daemon=True,
        ).start()
    announce("Recording... speak now, press Enter to stop.")
    try:
        result = await task
    finally:
        if not preload.done():
            preload.cancel()
    log_event(
        logger,
        logging.INFO,
        "attempt_recorded",
        has_speech=result.has_speech,
        source=result.transcript_source.value,
    )
    return result


def score_attempt(
    session: EngineSession,
    text: str,
    result: RecordingResult,
    reference_pitch: Optional[Sequence[PitchPoint]] = None,
) -> PronunciationAnalysis:
    return session.scoring.score(
        text,
        result.transcript,
        recognized_words=result.words,
        pitch_contour=result.pitch_contour,
        reference_pitch=reference_pitch,
    )


def is_completed(analysis: PronunciationAnalysis, band_medium: int) -> bool:
    return analysis.overall_score >= band_medium


def render_report(
    analysis: PronunciationAnalysis,
    *,
    transcript: str | None = None,
    completed: bool = False,
) -> list[str]:
    lines: list[str] = []
    if transcript is not None:
        lines.append(f"Heard: {transcript}")
    lines.append(f"Overall: {analysis.overall_score}/100 ({analysis.overall_band.value})")
    lines.append(
        f"  accuracy={analysis.accuracy_score} confidence={analysis.confidence_score} "
        f"intonation={analysis.intonation_score} fluency={analysis.fluency_score}"
    )
    for w in analysis.word_results:
        lines.append(f"  [{_BAND_MARKS[w.band]}] {w.word:<20} {w.score:>3}  ({w.band.value})")
    if completed:
        lines.append("Completed!")
    return lines


def render_json(
    analysis: PronunciationAnalysis,
    *,
    transcript: str | None = None,
    completed: bool = False,
) -> str:
    payload = analysis_to_dict(analysis)
    if transcript is not None:
        payload["transcript"] = transcript
    payload["completed"] = completed
    return json.dumps(payload, ensure_ascii=False, indent=2)
