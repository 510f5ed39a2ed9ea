"""
Recording orchestration: one practice attempt from "record" to RecordingResult.

Microphone capture, the recognizer and the pitch tracker run concurrently on
the event loop against one shared AudioContext. The orchestrator owns the
state machine (see prononce.app.state) and guarantees that every exit path
releases the microphone and closes any context it created itself.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from prononce.app.logging_setup import log_event
from prononce.app.state import RecordingState, RecordingStateTracker, StopAction
from prononce.asr.base import SpeechEngine
from prononce.asr.session import TranscriptionSession
from prononce.audio.context import AudioContext
from prononce.audio.recorder import WavRecorder
from prononce.contracts import (
    AudioFrame,
    EngineUnavailable,
    RecordingResult,
    TranscriptionResult,
    TranscriptSource,
)
from prononce.pitch.tracker import PitchTracker, PitchTrackingHandle


class MicHandle(Protocol):
    def start(self, on_frame: Callable[[AudioFrame], None]) -> None:
        ...

    def detach(self) -> None:
        ...

    def release(self) -> None:
        ...


class MicSource(Protocol):
    async def acquire(self) -> MicHandle:
        ...


@dataclass(frozen=True)
class RecordingConfig:
    sample_rate: int = 16000
    channels: int = 1
    analysis_size: int = 2048
    max_record_sec: float = 30.0
    final_timeout_sec: float = 3.0
    blob_timeout_sec: float = 2.0
    capture_settle_sec: float = 0.1
    stop_settle_sec: float = 0.2
    fallback_confidence: float = 0.3

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError("sample_rate must be > 0")
        if self.channels not in (1, 2):
            raise ValueError("channels must be 1 or 2")
        if self.analysis_size <= 0:
            raise ValueError("analysis_size must be > 0")
        if not 0.0 <= self.fallback_confidence <= 1.0:
            raise ValueError("fallback_confidence must be in [0, 1]")


class RecordingOrchestrator:
    def __init__(
        self,
        *,
        mic: MicSource,
        engine: SpeechEngine,
        pitch_tracker: PitchTracker | None = None,
        config: RecordingConfig | None = None,
        audio_context: AudioContext | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.mic = mic
        self.engine = engine
        self.pitch_tracker = pitch_tracker
        self.config = config or RecordingConfig()
        self.audio_context = audio_context
        self.logger = logger
        self.tracker = RecordingStateTracker()
        self._stop_signal: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self._preload_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> RecordingState:
        return self.tracker.state

    # ---- preload ----

    def preload_model(self) -> asyncio.Task:
        """Fire-and-forget warm-up of the recognizer and the pitch detector."""
        if self._preload_task is None or self._preload_task.done():
            self._preload_task = asyncio.get_running_loop().create_task(self._preload())
        return self._preload_task

    async def _preload(self) -> None:
        log_event(self.logger, logging.INFO, "preload_start", engine=self.engine.name)
        try:
            await self.engine.load()
        except EngineUnavailable as e:
            log_event(self.logger, logging.WARNING, "engine_unavailable", stage="preload", detail=str(e))
        if self.pitch_tracker is not None:
            try:
                await self.pitch_tracker.detector.warm_up()
            except EngineUnavailable as e:
                log_event(self.logger, logging.WARNING, "pitch_detector_unavailable", detail=str(e))
        log_event(self.logger, logging.INFO, "preload_done", engine=self.engine.name, ready=self.engine.ready)

    # ---- start / stop ----

    def start_recording(self) -> "asyncio.Task[RecordingResult]":
        loop = asyncio.get_running_loop()
        self.tracker.set_model_loading()
        stop_signal = asyncio.Event()
        self._stop_signal = stop_signal
        log_event(
            self.logger,
            logging.INFO,
            "recording_start",
            engine=self.engine.name,
            engine_ready=self.engine.ready,
            sr=self.config.sample_rate,
        )
        self._task = loop.create_task(self._run(stop_signal))
        return self._task

    def stop_recording(self) -> None:
        action = self.tracker.request_stop()
        if action == StopAction.IGNORE:
            return
        log_event(self.logger, logging.INFO, "stop_requested", action=action.value, state=self.state.value)
        if action == StopAction.FINALIZE and self._stop_signal is not None:
            self._stop_signal.set()
        elif action == StopAction.PENDING:
            log_event(self.logger, logging.INFO, "stop_pending")

    # ---- the recording itself ----

    async def _ensure_model(self) -> None:
        if self.engine.ready:
            return
        try:
            # Shares a preload already in flight.
            await self.engine.load()
        except EngineUnavailable as e:
            log_event(self.logger, logging.WARNING, "engine_unavailable", stage="load", detail=str(e))

    def _open_context(self) -> tuple[AudioContext, bool]:
        if self.audio_context is not None:
            return self.audio_context, False
        ctx = AudioContext(sample_rate=self.config.sample_rate, analysis_size=self.config.analysis_size)
        return ctx, True

    def _open_transcription(self) -> Optional[TranscriptionSession]:
        if not self.engine.ready:
            return None
        try:
            recognizer = self.engine.open_session(self.config.sample_rate, self.config.channels)
        except EngineUnavailable as e:
            log_event(self.logger, logging.WARNING, "engine_unavailable", stage="open_session", detail=str(e))
            return None
        return TranscriptionSession(
            recognizer,
            final_timeout_sec=self.config.final_timeout_sec,
            fallback_confidence=self.config.fallback_confidence,
            logger=self.logger,
        )

    def _resolve_empty(self, reason: str) -> RecordingResult:
        self.tracker.set_resolved()
        log_event(self.logger, logging.INFO, "recording_aborted", reason=reason)
        return RecordingResult.empty()

    async def _wait_for_end(
        self,
        stop_signal: asyncio.Event,
        transcription: Optional[TranscriptionSession],
    ) -> str:
        waiters: dict[asyncio.Task, str] = {
            asyncio.ensure_future(stop_signal.wait()): "stop",
        }
        if transcription is not None:
            waiters[asyncio.ensure_future(transcription.ended.wait())] = "natural_end"
        timeout = self.config.max_record_sec if self.config.max_record_sec > 0 else None
        try:
            done, _ = await asyncio.wait(list(waiters), timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()
        for task, reason in waiters.items():
            if task in done:
                return reason
        return "max_duration"

    async def _transcript(
        self,
        transcription: Optional[TranscriptionSession],
        duration: float,
    ) -> tuple[TranscriptionResult, TranscriptSource]:
        if transcription is None:
            return TranscriptionResult(text=""), TranscriptSource.ENGINE_FAILED
        return await transcription.finish(capture_duration=duration)

    async def _blob(self, blob_task: "asyncio.Task[Optional[bytes]]") -> Optional[bytes]:
        try:
            return await asyncio.wait_for(blob_task, timeout=self.config.blob_timeout_sec)
        except asyncio.TimeoutError:
            log_event(self.logger, logging.WARNING, "blob_timeout", timeout_sec=self.config.blob_timeout_sec)
            return None

    async def _run(self, stop_signal: asyncio.Event) -> RecordingResult:
        cfg = self.config
        stream: Any = None
        context: Optional[AudioContext] = None
        owns_context = False
        handle: Optional[PitchTrackingHandle] = None
        transcription: Optional[TranscriptionSession] = None
        removers: list[Callable[[], None]] = []
        error: str | None = None
        try:
            await self._ensure_model()
            if self.tracker.abort_requested:
                return self._resolve_empty("stopped_during_model_load")

            stream = await self.mic.acquire()
            log_event(self.logger, logging.INFO, "mic_acquired")
            if self.tracker.abort_requested:
                return self._resolve_empty("stopped_during_mic_acquire")

            context, owns_context = self._open_context()
            self.tracker.set_capturing()
            recorder = WavRecorder(sample_rate=cfg.sample_rate, channels=cfg.channels)
            removers.append(context.add_sink(recorder.write))
            transcription = self._open_transcription()
            if transcription is not None:
                removers.append(context.add_sink(transcription.feed))
            if self.pitch_tracker is not None:
                handle = self.pitch_tracker.start(context.latest_window, cfg.sample_rate)
            stream.start(context.feed)
            log_event(
                self.logger,
                logging.INFO,
                "capture_start",
                transcribing=transcription is not None,
                pitch=handle is not None,
                owns_context=owns_context,
            )

            if cfg.capture_settle_sec > 0:
                await asyncio.sleep(cfg.capture_settle_sec)
            if self.tracker.mark_ready_to_stop():
                stop_signal.set()

            reason = await self._wait_for_end(stop_signal, transcription)
            self.tracker.set_finalizing()
            log_event(self.logger, logging.INFO, "finalize_start", reason=reason)

            contour = handle.stop() if handle is not None else ()
            if cfg.stop_settle_sec > 0:
                # Frames already queued on the loop still reach the recorder and recognizer.
                await asyncio.sleep(cfg.stop_settle_sec)
            stream.detach()
            for remove in removers:
                remove()
            removers = []

            duration = recorder.duration()
            (transcript, source), blob = await asyncio.gather(
                self._transcript(transcription, duration),
                self._blob(recorder.stop()),
            )
            result = RecordingResult(
                transcript=transcript.text,
                words=transcript.words,
                blob=blob,
                pitch_contour=contour,
                transcript_source=source,
            )
            self.tracker.set_resolved()
            log_event(
                self.logger,
                logging.INFO,
                "recording_resolved",
                reason=reason,
                source=source.value,
                duration_sec=round(duration, 3),
                words=len(result.words),
                pitch_points=len(contour),
                blob_bytes=len(blob) if blob else 0,
            )
            return result
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            log_event(self.logger, logging.ERROR, "recording_failed", error=error)
            raise
        finally:
            if handle is not None:
                handle.stop()
            for remove in removers:
                remove()
            if transcription is not None:
                transcription.close()
            if stream is not None:
                stream.release()
                log_event(self.logger, logging.INFO, "mic_released")
            if owns_context and context is not None:
                context.close()
            if self.tracker.state != RecordingState.RESOLVED or error is not None:
                self.tracker.set_resolved(error=error)
