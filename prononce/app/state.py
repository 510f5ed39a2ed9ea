from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RecordingState(str, Enum):
    IDLE = "idle"
    MODEL_LOADING = "model_loading"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"
    RESOLVED = "resolved"


class StopAction(str, Enum):
    ABORT = "abort"          # nothing captured yet; resolve empty at the next safe point
    PENDING = "pending"      # capturing but not ready; finalize once readiness is marked
    FINALIZE = "finalize"
    IGNORE = "ignore"


@dataclass
class RecordingStateTracker:
    state: RecordingState = RecordingState.IDLE
    abort_requested: bool = False
    stop_pending: bool = False
    ready_to_stop: bool = False
    last_error: str | None = None

    @property
    def active(self) -> bool:
        return self.state in (
            RecordingState.MODEL_LOADING,
            RecordingState.CAPTURING,
            RecordingState.FINALIZING,
        )

    def set_model_loading(self) -> None:
        if self.active:
            raise RuntimeError(f"recording already in progress (state={self.state.value})")
        self.state = RecordingState.MODEL_LOADING
        self.abort_requested = False
        self.stop_pending = False
        self.ready_to_stop = False
        self.last_error = None

    def set_capturing(self) -> None:
        if self.state == RecordingState.MODEL_LOADING:
            self.state = RecordingState.CAPTURING

    def request_stop(self) -> StopAction:
        if self.state == RecordingState.MODEL_LOADING:
            self.abort_requested = True
            return StopAction.ABORT
        if self.state == RecordingState.CAPTURING:
            if not self.ready_to_stop:
                self.stop_pending = True
                return StopAction.PENDING
            return StopAction.FINALIZE
        return StopAction.IGNORE

    def mark_ready_to_stop(self) -> bool:
        """Mark readiness; returns True when a stop arrived earlier and must be applied now."""
        if self.state != RecordingState.CAPTURING:
            return False
        self.ready_to_stop = True
        if self.stop_pending:
            self.stop_pending = False
            return True
        return False

    def set_finalizing(self) -> None:
        if self.state == RecordingState.CAPTURING:
            self.state = RecordingState.FINALIZING

    def set_resolved(self, error: str | None = None) -> None:
        self.state = RecordingState.RESOLVED
        self.ready_to_stop = False
        self.stop_pending = False
        self.last_error = error
