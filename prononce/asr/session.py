from __future__ import annotations

import asyncio
import logging
from typing import Optional

from prononce.app.logging_setup import log_event
from prononce.asr.base import RecognizerSession, TranscriptionTimeout
from prononce.contracts import (
    AudioFrame,
    EngineUnavailable,
    RecognizedWord,
    TranscriptionResult,
    TranscriptSource,
)
from prononce.scoring.text import tokenize

DEFAULT_WORD_SEC = 0.4


def synthesize_words(text: str, duration: float, confidence: float) -> tuple[RecognizedWord, ...]:
    """
    Word list for a transcript that has no engine timing: words get evenly
    spaced slots across the capture and a fixed low confidence.
    """
    tokens = tokenize(str(text or "").strip())
    if not tokens:
        return ()
    total = float(duration) if duration and duration > 0 else DEFAULT_WORD_SEC * len(tokens)
    slot = total / len(tokens)
    return tuple(
        RecognizedWord(word=tok, confidence=float(confidence), start=i * slot, end=(i + 1) * slot)
        for i, tok in enumerate(tokens)
    )


class TranscriptionSession:
    """
    Feeds one recording into a recognizer session and produces exactly one
    transcript for it, whatever the engine does.
    """

    def __init__(
        self,
        recognizer: RecognizerSession,
        *,
        final_timeout_sec: float = 3.0,
        fallback_confidence: float = 0.3,
        logger: logging.Logger | None = None,
    ) -> None:
        self.recognizer = recognizer
        self.final_timeout_sec = max(0.0, float(final_timeout_sec))
        self.fallback_confidence = float(fallback_confidence)
        self.logger = logger
        self._closed = False
        self._frames = 0

    @property
    def ended(self) -> asyncio.Event:
        return self.recognizer.ended

    @property
    def partial_text(self) -> str:
        return self.recognizer.partial_text

    def feed(self, frame: AudioFrame) -> None:
        if self._closed:
            return
        self._frames += 1
        self.recognizer.accept_frame(frame)

    async def finish(self, capture_duration: float = 0.0) -> tuple[TranscriptionResult, TranscriptSource]:
        if self._closed:
            return TranscriptionResult(text=""), TranscriptSource.NONE
        try:
            self._closed = True
            self.recognizer.flush()
            try:
                result = await asyncio.wait_for(
                    asyncio.shield(self.recognizer.final_result),
                    timeout=self.final_timeout_sec,
                )
            except (asyncio.TimeoutError, TranscriptionTimeout):
                partial = self.recognizer.partial_text.strip()
                log_event(
                    self.logger,
                    logging.WARNING,
                    "transcript_timeout_fallback",
                    timeout_sec=self.final_timeout_sec,
                    partial_chars=len(partial),
                )
                words = synthesize_words(partial, capture_duration, self.fallback_confidence)
                return TranscriptionResult(text=partial, words=words), TranscriptSource.PARTIAL_FALLBACK
            except EngineUnavailable as e:
                log_event(self.logger, logging.WARNING, "engine_unavailable", stage="final", detail=str(e))
                return TranscriptionResult(text=""), TranscriptSource.ENGINE_FAILED

            if result.text.strip() and not result.words:
                words = synthesize_words(result.text, capture_duration, self.fallback_confidence)
                result = TranscriptionResult(text=result.text.strip(), words=words)
            return result, TranscriptSource.FINAL
        finally:
            self._closed = True
            self._retrieve_outcome()
            self.recognizer.dispose()

    def _retrieve_outcome(self) -> None:
        fut: Optional[asyncio.Future] = self.recognizer.final_result
        # Mark a late failure as retrieved so it is not reported as unhandled.
        if fut is not None and fut.done() and not fut.cancelled():
            fut.exception()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._retrieve_outcome()
        self.recognizer.dispose()
