from __future__ import annotations

import asyncio
import sys
import traceback
from pathlib import Path

from prononce.app.config import resolve_args, scoring_config_from_args
from prononce.app.diagnostics import hint_for_exception, summarize_exception
from prononce.app.logging_setup import setup_app_logger
from prononce.app.runtime import (
    is_completed,
    load_reference_pitch,
    record_attempt,
    render_json,
    render_report,
    score_attempt,
)
from prononce.app.services import build_engine_session
from prononce.audio.mic import MicError, PermissionDenied, SoundDeviceMicSource, Unsupported
from prononce.scoring.scorer import ScoringEngine

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CAPTURE = 2


def _report_error(exc: BaseException, log_path: Path, *, debug: bool) -> None:
    summary = summarize_exception(traceback.format_exc() if debug else str(exc) or type(exc).__name__)
    print(f"error: {summary}", file=sys.stderr)
    print(f"hint: {hint_for_exception(summary)}", file=sys.stderr)
    print(f"log: {log_path}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    args = resolve_args(argv)
    logger, _log_dir, log_path = setup_app_logger(debug=bool(args.debug))
    logger.info("app_start", extra={"config_path": str(getattr(args, "config", "")), "argv": argv or []})

    if args.list_devices:
        try:
            print(SoundDeviceMicSource.list_devices())
        except MicError as e:
            logger.exception("list_devices_failed")
            _report_error(e, log_path, debug=bool(args.debug))
            return EXIT_CAPTURE
        return EXIT_OK

    if not (args.text or "").strip():
        print("error: --text is required (the sentence to practice)", file=sys.stderr)
        return EXIT_ERROR

    try:
        scoring_cfg = scoring_config_from_args(args)
        reference = load_reference_pitch(args.reference_pitch) if args.reference_pitch else None
    except (OSError, ValueError) as e:
        logger.exception("setup_failed")
        _report_error(e, log_path, debug=bool(args.debug))
        return EXIT_ERROR

    if args.transcript is not None:
        scorer = ScoringEngine(scoring_cfg, logger=logger)
        analysis = scorer.score(args.text, args.transcript, reference_pitch=reference)
        completed = is_completed(analysis, scoring_cfg.band_medium)
        if args.json:
            print(render_json(analysis, transcript=args.transcript, completed=completed))
        else:
            print("\n".join(render_report(analysis, transcript=args.transcript, completed=completed)))
        return EXIT_OK

    session = build_engine_session(args, logger=logger)
    print(f"Say: {args.text}")
    try:
        result = asyncio.run(record_attempt(session, logger=logger))
    except (PermissionDenied, Unsupported) as e:
        logger.exception("capture_failed")
        _report_error(e, log_path, debug=bool(args.debug))
        return EXIT_CAPTURE
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt")
        return EXIT_ERROR
    except Exception as e:
        logger.exception("recording_crash")
        _report_error(e, log_path, debug=bool(args.debug))
        return EXIT_ERROR
    finally:
        session.dispose()

    if args.save_wav:
        if result.blob:
            Path(args.save_wav).write_bytes(result.blob)
            print(f"Saved recording: {args.save_wav}")
        else:
            print("Nothing recorded; no WAV written.")

    if not result.has_speech:
        logger.info("no_speech", extra={"source": result.transcript_source.value})
        print("No speech detected. Try again a bit closer to the microphone.")
        return EXIT_OK

    analysis = score_attempt(session, args.text, result, reference)
    completed = is_completed(analysis, session.scoring.config.band_medium)
    if args.json:
        print(render_json(analysis, transcript=result.transcript, completed=completed))
    else:
        print("\n".join(render_report(analysis, transcript=result.transcript, completed=completed)))
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
