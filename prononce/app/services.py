from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from prononce.app.config import pitch_config_from_args, recording_config_from_args, scoring_config_from_args
from prononce.asr.faster_whisper_engine import FasterWhisperEngine
from prononce.audio.mic import SoundDeviceMicSource
from prononce.live.orchestrator import RecordingOrchestrator
from prononce.pitch.detector import PyinPitchDetector
from prononce.pitch.tracker import PitchTracker
from prononce.scoring.scorer import ScoringEngine


@dataclass
class EngineSession:
    """
    Explicitly owned engines for one app run. Nothing here is a module-level
    singleton: build one, init() it, dispose() it.
    """

    mic: Any
    engine: Any
    detector: Any
    orchestrator: RecordingOrchestrator
    scoring: ScoringEngine
    logger: logging.Logger | None = None
    _disposed: bool = field(default=False, repr=False)

    async def init(self) -> None:
        """Warm up recognizer and pitch detector; failures are logged, not raised."""
        await self.orchestrator.preload_model()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.orchestrator.stop_recording()
        self.engine.dispose()
        if self.logger is not None:
            self.logger.info("engine_session_disposed", extra={"engine": self.engine.name})


def build_engine_session(args: Any, logger: logging.Logger | None = None) -> EngineSession:
    mic = SoundDeviceMicSource(
        block_ms=int(args.block_ms),
        sample_rate=int(args.sr),
        channels=int(args.channels),
        device=args.device,
    )
    engine = FasterWhisperEngine(
        model_size=str(args.model),
        compute_type=str(args.compute_type),
        language=str(args.language) if args.language else None,
        beam_size=max(1, int(args.beam_size)),
        partial_interval_sec=max(0.0, float(args.partial_interval_sec)),
        rms_threshold=float(args.rms_th),
        end_silence_sec=max(0.0, float(args.end_silence_sec)),
        logger=logger,
    )
    pitch_cfg = pitch_config_from_args(args)
    detector = PyinPitchDetector(
        fmin=pitch_cfg.min_pitch_hz,
        fmax=pitch_cfg.max_pitch_hz,
        warm_up_size=int(args.pitch_frame_size),
        warm_up_sample_rate=int(args.sr),
    )
    orchestrator = RecordingOrchestrator(
        mic=mic,
        engine=engine,
        pitch_tracker=PitchTracker(detector, pitch_cfg, logger=logger),
        config=recording_config_from_args(args),
        logger=logger,
    )
    return EngineSession(
        mic=mic,
        engine=engine,
        detector=detector,
        orchestrator=orchestrator,
        scoring=ScoringEngine(scoring_config_from_args(args), logger=logger),
        logger=logger,
    )
