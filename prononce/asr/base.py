from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

from prononce.contracts import AudioFrame, TranscriptionResult


class TranscriptionTimeout(TimeoutError):
    """The engine did not deliver a final result in time."""


class RecognizerSession(ABC):
    """
    One recognition pass over one recording.

    The engine reports back through two one-shot signals instead of callbacks:
    `final_result` resolves at most once, `ended` is set when the engine
    decides the utterance is over on its own.
    """

    def __init__(self) -> None:
        loop = asyncio.get_running_loop()
        self.final_result: "asyncio.Future[TranscriptionResult]" = loop.create_future()
        self.ended = asyncio.Event()
        self.partial_text = ""

    @abstractmethod
    def accept_frame(self, frame: AudioFrame) -> None: ...

    @abstractmethod
    def flush(self) -> None:
        """Ask the engine to finalize what it has; the answer arrives on final_result."""

    @abstractmethod
    def dispose(self) -> None: ...

    def _resolve(self, result: TranscriptionResult) -> None:
        if not self.final_result.done():
            self.final_result.set_result(result)
        self.ended.set()

    def _fail(self, exc: BaseException) -> None:
        if not self.final_result.done():
            self.final_result.set_exception(exc)
        self.ended.set()


class SpeechEngine(ABC):
    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def ready(self) -> bool: ...

    @abstractmethod
    async def load(self) -> None:
        """Load the model; raises EngineUnavailable on failure."""

    @abstractmethod
    def open_session(self, sample_rate: int, channels: int = 1) -> RecognizerSession: ...

    @abstractmethod
    def dispose(self) -> None: ...
