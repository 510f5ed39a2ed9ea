from __future__ import annotations

import argparse
import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from platformdirs import user_config_dir

from prononce.pitch.tracker import PitchTrackerConfig
from prononce.scoring.scorer import ScoringConfig

DEFAULTS: dict[str, Any] = {
    "list_devices": False,
    "device": None,
    "sr": 16000,
    "channels": 1,
    "block_ms": 32,
    "model": "small",
    "language": "fr",
    "compute_type": "int8",
    "beam_size": 1,
    "partial_interval_sec": 1.5,
    "rms_th": 250.0,
    "end_silence_sec": 1.2,
    "max_record_sec": 30.0,
    "final_timeout_sec": 3.0,
    "blob_timeout_sec": 2.0,
    "capture_settle_sec": 0.1,
    "stop_settle_sec": 0.2,
    "fallback_confidence": 0.3,
    "pitch_interval_ms": 16,
    "pitch_frame_size": 2048,
    "clarity_th": 0.8,
    "min_pitch_hz": 50.0,
    "max_pitch_hz": 600.0,
    "weight_accuracy": 0.40,
    "weight_confidence": 0.30,
    "weight_intonation": 0.20,
    "weight_fluency": 0.10,
    "band_high": 85,
    "band_medium": 70,
    "debug": False,
}
CONFIG_KEYS: tuple[str, ...] = tuple(DEFAULTS.keys())


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_path: Path


def default_asset_config_path() -> Path:
    return Path(__file__).resolve().parents[2] / "assets" / "config" / "default.json"


def app_paths() -> AppPaths:
    config_dir = Path(user_config_dir("prononce", "prononce"))
    return AppPaths(config_dir=config_dir, config_path=config_dir / "config.json")


def _load_json_dict(path: Path) -> dict[str, Any]:
    # Accept UTF-8 with or without BOM for Windows-edited config files.
    with path.open("r", encoding="utf-8-sig") as f:
        loaded = json.load(f)
    if not isinstance(loaded, dict):
        raise ValueError(f"config must be a JSON object: {path}")
    return loaded


def _write_json_dict(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
        f.write("\n")


def _known_only(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: payload[key] for key in CONFIG_KEYS if key in payload}


def load_default_config() -> dict[str, Any]:
    out = copy.deepcopy(DEFAULTS)
    path = default_asset_config_path()
    if path.exists():
        out.update(_known_only(_load_json_dict(path)))
    return out


def ensure_user_config_exists(defaults: dict[str, Any] | None = None) -> Path:
    paths = app_paths()
    if paths.config_path.exists():
        return paths.config_path
    _write_json_dict(paths.config_path, defaults or load_default_config())
    return paths.config_path


def load_user_config(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    defaults = load_default_config()
    if config_path:
        chosen = Path(config_path)
        if not chosen.exists():
            raise SystemExit(f"Config file not found: {chosen}")
    else:
        chosen = ensure_user_config_exists(defaults)
    merged = dict(defaults)
    merged.update(_known_only(_load_json_dict(chosen)))
    return merged, chosen


def save_user_config(values: dict[str, Any], config_path: str | None = None) -> Path:
    path = Path(config_path) if config_path else ensure_user_config_exists()
    existing = _known_only(_load_json_dict(path)) if path.exists() else {}
    merged = load_default_config()
    merged.update(existing)
    merged.update(_known_only(values))
    _write_json_dict(path, _known_only(merged))
    return path


def resolve_defaults(config_path: str | None = None) -> tuple[dict[str, Any], Path]:
    return load_user_config(config_path=config_path)


def parser_with_defaults(defaults: dict[str, Any]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="prononce",
        description="Record an utterance and score its pronunciation against a target text.",
    )
    p.add_argument("--config", default=None, help="JSON config path (CLI flags override config)")
    p.add_argument("--text", default=None, help="target text the learner reads aloud")
    p.add_argument("--transcript", default=None, help="score this transcript instead of recording")
    p.add_argument(
        "--reference-pitch",
        default=None,
        help="JSON file with a reference contour: [{time, pitch, clarity}, ...]",
    )
    p.add_argument("--save-wav", default=None, help="write the recorded audio to this WAV path")
    p.add_argument("--json", action="store_true", help="print the analysis as JSON")
    p.add_argument("--list-devices", action="store_true", help="print audio devices and exit")
    p.add_argument("--device", type=int, default=defaults["device"], help="sounddevice input device id")
    p.add_argument("--sr", type=int, default=defaults["sr"], help="sample rate (Hz)")
    p.add_argument("--channels", type=int, default=defaults["channels"], help="input channels")
    p.add_argument("--block-ms", type=int, default=defaults["block_ms"], help="mic block size in milliseconds")
    p.add_argument("--model", default=defaults["model"], help="faster-whisper model size")
    p.add_argument("--language", default=defaults["language"], help="recognition language code")
    p.add_argument("--compute-type", default=defaults["compute_type"], help="faster-whisper compute type")
    p.add_argument("--beam-size", type=int, default=defaults["beam_size"], help="decoder beam size")
    p.add_argument(
        "--partial-interval-sec",
        type=float,
        default=defaults["partial_interval_sec"],
        help="re-decode buffered audio for a partial transcript this often (0 disables)",
    )
    p.add_argument("--rms-th", type=float, default=defaults["rms_th"], help="RMS threshold for speech VAD")
    p.add_argument(
        "--end-silence-sec",
        type=float,
        default=defaults["end_silence_sec"],
        help="stop after this much silence following speech (0 disables)",
    )
    p.add_argument(
        "--max-record-sec",
        type=float,
        default=defaults["max_record_sec"],
        help="hard limit on recording length",
    )
    p.add_argument(
        "--final-timeout-sec",
        type=float,
        default=defaults["final_timeout_sec"],
        help="wait this long for the final transcript before using the partial one",
    )
    p.add_argument(
        "--blob-timeout-sec",
        type=float,
        default=defaults["blob_timeout_sec"],
        help="wait this long for the WAV encoding",
    )
    p.add_argument(
        "--capture-settle-sec",
        type=float,
        default=defaults["capture_settle_sec"],
        help="delay after the stream starts before a stop is honored",
    )
    p.add_argument(
        "--stop-settle-sec",
        type=float,
        default=defaults["stop_settle_sec"],
        help="delay before flushing the recognizer on stop",
    )
    p.add_argument(
        "--fallback-confidence",
        type=float,
        default=defaults["fallback_confidence"],
        help="confidence given to words of a fallback transcript",
    )
    p.add_argument("--pitch-interval-ms", type=int, default=defaults["pitch_interval_ms"], help="pitch sampling cadence")
    p.add_argument(
        "--pitch-frame-size",
        type=int,
        default=defaults["pitch_frame_size"],
        help="samples per pitch analysis window",
    )
    p.add_argument("--clarity-th", type=float, default=defaults["clarity_th"], help="minimum pitch clarity")
    p.add_argument("--min-pitch-hz", type=float, default=defaults["min_pitch_hz"], help="lowest accepted pitch")
    p.add_argument("--max-pitch-hz", type=float, default=defaults["max_pitch_hz"], help="highest accepted pitch")
    p.add_argument("--weight-accuracy", type=float, default=defaults["weight_accuracy"])
    p.add_argument("--weight-confidence", type=float, default=defaults["weight_confidence"])
    p.add_argument("--weight-intonation", type=float, default=defaults["weight_intonation"])
    p.add_argument("--weight-fluency", type=float, default=defaults["weight_fluency"])
    p.add_argument("--band-high", type=int, default=defaults["band_high"], help="score at or above is 'high'")
    p.add_argument("--band-medium", type=int, default=defaults["band_medium"], help="score at or above is 'medium'")
    p.add_argument("--debug", action="store_true", help="log at DEBUG level and print tracebacks")
    return p


def resolve_args(argv: list[str] | None = None) -> argparse.Namespace:
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", default=None)
    pre_args, _ = pre.parse_known_args(argv)
    defaults, _ = resolve_defaults(config_path=pre_args.config)
    parser = parser_with_defaults(defaults)
    args = parser.parse_args(argv)
    if defaults.get("list_devices"):
        args.list_devices = True
    if defaults.get("debug"):
        args.debug = True
    return args


def recording_config_from_args(args: Any):
    # orchestrator -> logging_setup -> config; imported late to keep that chain acyclic.
    from prononce.live.orchestrator import RecordingConfig

    return RecordingConfig(
        sample_rate=int(args.sr),
        channels=int(args.channels),
        analysis_size=int(args.pitch_frame_size),
        max_record_sec=float(args.max_record_sec),
        final_timeout_sec=float(args.final_timeout_sec),
        blob_timeout_sec=float(args.blob_timeout_sec),
        capture_settle_sec=float(args.capture_settle_sec),
        stop_settle_sec=float(args.stop_settle_sec),
        fallback_confidence=float(args.fallback_confidence),
    )


def scoring_config_from_args(args: Any) -> ScoringConfig:
    return ScoringConfig(
        weight_accuracy=float(args.weight_accuracy),
        weight_confidence=float(args.weight_confidence),
        weight_intonation=float(args.weight_intonation),
        weight_fluency=float(args.weight_fluency),
        band_high=int(args.band_high),
        band_medium=int(args.band_medium),
    )


def pitch_config_from_args(args: Any) -> PitchTrackerConfig:
    return PitchTrackerConfig(
        interval_ms=int(args.pitch_interval_ms),
        clarity_threshold=float(args.clarity_th),
        min_pitch_hz=float(args.min_pitch_hz),
        max_pitch_hz=float(args.max_pitch_hz),
    )
