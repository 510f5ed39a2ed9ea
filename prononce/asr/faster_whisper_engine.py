from __future__ import annotations

import asyncio
import io
import logging
from typing import List, Optional

from prononce.asr.base import RecognizerSession, SpeechEngine
from prononce.audio.recorder import _write_pcm16_wav
from prononce.audio.vad import EndOfSpeechDetector, EnergyVAD
from prononce.contracts import AudioFrame, EngineUnavailable, RecognizedWord, TranscriptionResult


class FasterWhisperEngine(SpeechEngine):
    def __init__(
        self,
        *,
        model_size: str = "small",
        device: str = "cpu",
        compute_type: str = "int8",
        language: Optional[str] = "fr",
        beam_size: int = 1,
        partial_interval_sec: float = 1.5,
        rms_threshold: float = 250.0,
        end_silence_sec: float = 1.2,
        logger: logging.Logger | None = None,
    ) -> None:
        self.model_size = model_size
        self.device = device
        self.compute_type = compute_type
        self.language = language
        self.beam_size = beam_size
        self.partial_interval_sec = float(partial_interval_sec)
        self.rms_threshold = float(rms_threshold)
        self.end_silence_sec = float(end_silence_sec)
        self.logger = logger
        self._model = None
        self._load_task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return "faster-whisper"

    @property
    def ready(self) -> bool:
        return self._model is not None

    def _get_model(self):
        if self._model is None:
            try:
                from faster_whisper import WhisperModel

                self._model = WhisperModel(
                    self.model_size,
                    device=self.device,
                    compute_type=self.compute_type,
                )
            except Exception as e:
                raise EngineUnavailable(f"failed to load faster-whisper model '{self.model_size}': {e}") from e
        return self._model

    async def load(self) -> None:
        if self._model is not None:
            return
        # A load already in flight (e.g. from a preload) is shared, not restarted.
        if self._load_task is None or self._load_task.done():
            self._load_task = asyncio.get_running_loop().create_task(asyncio.to_thread(self._get_model))
        await asyncio.shield(self._load_task)

    def transcribe_pcm16(
        self,
        pcm16: bytes,
        sample_rate: int,
        channels: int,
        *,
        word_timestamps: bool = True,
    ) -> TranscriptionResult:
        if not pcm16:
            return TranscriptionResult(text="")

        model = self._get_model()
        buf = io.BytesIO()
        _write_pcm16_wav(buf, pcm16, sample_rate=sample_rate, channels=channels)
        buf.seek(0)
        try:
            segments, _info = model.transcribe(
                buf,
                language=self.language,
                beam_size=self.beam_size,
                vad_filter=False,
                condition_on_previous_text=False,
                word_timestamps=word_timestamps,
            )
            texts: List[str] = []
            words: List[RecognizedWord] = []
            for s in segments:
                text = (s.text or "").strip()
                if text:
                    texts.append(text)
                for w in getattr(s, "words", None) or []:
                    token = (w.word or "").strip()
                    if not token:
                        continue
                    words.append(
                        RecognizedWord(
                            word=token,
                            confidence=float(w.probability),
                            start=float(w.start),
                            end=float(w.end),
                        )
                    )
        except Exception as e:
            raise EngineUnavailable(f"faster-whisper transcription failed: {e}") from e
        return TranscriptionResult(text=" ".join(texts).strip(), words=tuple(words))

    def open_session(self, sample_rate: int, channels: int = 1) -> "FasterWhisperSession":
        if not self.ready:
            raise EngineUnavailable("speech model is not loaded")
        eos = EndOfSpeechDetector(EnergyVAD(self.rms_threshold), self.end_silence_sec) if self.end_silence_sec > 0 else None
        return FasterWhisperSession(
            self,
            sample_rate=sample_rate,
            channels=channels,
            partial_interval_sec=self.partial_interval_sec,
            end_of_speech=eos,
        )

    def dispose(self) -> None:
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = None
        self._model = None


class FasterWhisperSession(RecognizerSession):
    """
    Whisper is not a streaming recognizer: frames are buffered, partial results
    come from periodic re-decodes of the buffer, and flush() runs one final
    decode with word timestamps.
    """

    def __init__(
        self,
        engine: FasterWhisperEngine,
        *,
        sample_rate: int,
        channels: int,
        partial_interval_sec: float = 1.5,
        end_of_speech: EndOfSpeechDetector | None = None,
    ) -> None:
        super().__init__()
        self.engine = engine
        self.sample_rate = int(sample_rate)
        self.channels = int(channels)
        self.partial_interval_sec = float(partial_interval_sec)
        self.end_of_speech = end_of_speech
        self._parts: List[bytes] = []
        self._bytes = 0
        self._last_partial_bytes = 0
        self._partial_task: Optional[asyncio.Task] = None
        self._final_task: Optional[asyncio.Task] = None
        self._disposed = False

    @property
    def _bytes_per_second(self) -> int:
        return self.sample_rate * self.channels * 2

    def accept_frame(self, frame: AudioFrame) -> None:
        if self._disposed or self._final_task is not None:
            return
        self._parts.append(frame.pcm16)
        self._bytes += len(frame.pcm16)
        if self.end_of_speech is not None and self.end_of_speech.push(frame):
            self.ended.set()
        self._maybe_decode_partial()

    def _maybe_decode_partial(self) -> None:
        if self.partial_interval_sec <= 0:
            return
        if self._partial_task is not None and not self._partial_task.done():
            return
        if self._bytes - self._last_partial_bytes < self.partial_interval_sec * self._bytes_per_second:
            return
        self._last_partial_bytes = self._bytes
        pcm16 = b"".join(self._parts)
        self._partial_task = asyncio.get_running_loop().create_task(self._decode_partial(pcm16))

    async def _decode_partial(self, pcm16: bytes) -> None:
        try:
            result = await asyncio.to_thread(
                self.engine.transcribe_pcm16,
                pcm16,
                self.sample_rate,
                self.channels,
                word_timestamps=False,
            )
        except EngineUnavailable:
            # Partials are best effort; the final decode reports real failures.
            return
        if not self._disposed and not self.final_result.done():
            self.partial_text = result.text

    def flush(self) -> None:
        if self._disposed or self._final_task is not None:
            return
        pcm16 = b"".join(self._parts)
        self._final_task = asyncio.get_running_loop().create_task(self._decode_final(pcm16))

    async def _decode_final(self, pcm16: bytes) -> None:
        try:
            result = await asyncio.to_thread(
                self.engine.transcribe_pcm16,
                pcm16,
                self.sample_rate,
                self.channels,
                word_timestamps=True,
            )
        except EngineUnavailable as e:
            self._fail(e)
            return
        self._resolve(result)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        for task in (self._partial_task, self._final_task):
            if task is not None and not task.done():
                task.cancel()
        if not self.final_result.done():
            self.final_result.cancel()
        self._parts = []
