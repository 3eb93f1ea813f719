"""Recording pipeline: capture -> finalize -> resample -> transcribe -> output."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from pttscribe.capture import CancellationToken, CaptureSession
from pttscribe.errors import (
    EmptyRecordingError,
    PipelineError,
    PttScribeError,
    SessionBusyError,
)
from pttscribe.feedback import NotificationPlayer
from pttscribe.output import create_output_handler
from pttscribe.resample import load_recording, resample
from pttscribe.storage import Storage
from pttscribe.types import SessionState, StatusPayload

if TYPE_CHECKING:
    from pathlib import Path

    from pttscribe.config import AudioConfig, Config
    from pttscribe.engine import TranscriptionEngine
    from pttscribe.output import OutputHandler
    from pttscribe.types import FinalizedRecording, TranscriptResult

logger = logging.getLogger(__name__)

StatusListener = Callable[[StatusPayload], None]
ErrorListener = Callable[[Exception], None]
CaptureFactory = Callable[["AudioConfig", "Path"], CaptureSession]


class StatusChannel:
    """Fans status payloads out to subscribers. Repeated statuses are delivered as-is."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StatusListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, state: SessionState) -> None:
        payload: StatusPayload = {"status": state.value}
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(payload)
            except Exception as e:
                logger.error("Status listener failed: %s", e)


@dataclass
class RecordingHandle:
    """The single in-flight recording: its model and the sender side of its stop signal."""

    model_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    started_at: float = field(default_factory=time.time)
    session: CaptureSession | None = None


class SessionRegistry:
    """Holds at most one live RecordingHandle."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: RecordingHandle | None = None

    @property
    def active(self) -> RecordingHandle | None:
        with self._lock:
            return self._active

    def acquire(self, handle: RecordingHandle) -> None:
        with self._lock:
            if self._active is not None:
                raise SessionBusyError("A recording is already in progress")
            self._active = handle

    def release(self, handle: RecordingHandle) -> None:
        with self._lock:
            if self._active is handle:
                self._active = None

    def cancel(self) -> bool:
        """Signal the live handle. Returns False when there is nothing to stop."""
        with self._lock:
            handle = self._active
        if handle is None:
            return False
        return handle.token.signal()


class RecordingPipeline:
    """
    Push-to-talk recording pipeline exposed to the host.

    ``begin`` starts a worker thread that records until ``cancel`` is called,
    then transcribes the recording and dispatches the text. Every failure ends
    the attempt and returns the pipeline to idle; nothing is retried.
    """

    def __init__(
        self,
        config: "Config",
        *,
        engine: "TranscriptionEngine | None" = None,
        storage: Storage | None = None,
        notifier: NotificationPlayer | None = None,
        output: "OutputHandler | None" = None,
        capture_factory: CaptureFactory | None = None,
    ) -> None:
        if engine is None:
            from pttscribe.engine import TranscriptionEngine

            engine = TranscriptionEngine(config.model)

        self._config = config
        self._engine = engine
        self._storage = storage or Storage(config)
        self._notifier = notifier or NotificationPlayer(config.feedback)
        self._output = output or create_output_handler(config.output_mode)
        self._capture_factory = capture_factory or CaptureSession

        self._registry = SessionRegistry()
        self._status = StatusChannel()
        self._error_listeners: list[ErrorListener] = []
        self._listeners_lock = threading.Lock()
        # Serializes state changes so status payloads reach listeners in order
        self._transition_lock = threading.RLock()
        self._state = SessionState.IDLE
        self._worker: threading.Thread | None = None
        self._last_result: "TranscriptResult | None" = None
        self._last_error: Exception | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._registry.active is not None

    @property
    def last_result(self) -> "TranscriptResult | None":
        return self._last_result

    @property
    def last_error(self) -> Exception | None:
        return self._last_error

    @property
    def engine(self) -> "TranscriptionEngine":
        return self._engine

    def subscribe(self, listener: StatusListener) -> None:
        self._status.subscribe(listener)

    def unsubscribe(self, listener: StatusListener) -> None:
        self._status.unsubscribe(listener)

    def on_error(self, listener: ErrorListener) -> None:
        with self._listeners_lock:
            self._error_listeners.append(listener)

    def preload(self, model_id: str | None = None) -> None:
        """Load the model ahead of the first utterance."""
        model_id = model_id or self._config.model.model
        self._engine.load(self._storage.resolve_model(model_id))

    def begin(self, model_id: str | None = None) -> threading.Thread:
        """
        Start recording on a worker thread.

        Raises:
            SessionBusyError: A recording or transcription is already in flight.
        """
        handle = RecordingHandle(model_id=model_id or self._config.model.model)
        with self._transition_lock:
            self._registry.acquire(handle)
            self._last_error = None
            self._set_state(SessionState.RECORDING)

        logger.info("Recording started (model=%s)", handle.model_id)
        worker = threading.Thread(
            target=self._run,
            args=(handle,),
            name="pttscribe-recording",
            daemon=True,
        )
        self._worker = worker
        worker.start()
        return worker

    def cancel(self) -> bool:
        """Stop the current recording. A no-op when nothing is recording."""
        stopped = self._registry.cancel()
        if stopped:
            logger.info("Recording stop requested")
        else:
            logger.debug("Cancel ignored, no active recording")
        return stopped

    def wait(self, timeout: float | None = None) -> bool:
        """Join the last worker. Returns True if it has finished."""
        worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def shutdown(self, timeout: float | None = 2.0) -> None:
        self.cancel()
        self.wait(timeout)

    def transcribe(
        self,
        recording: "FinalizedRecording",
        model_id: str | None = None,
    ) -> "TranscriptResult":
        """Resample a finalized recording and run it through the model."""
        if recording.is_empty:
            raise EmptyRecordingError(f"Recording {recording.path} holds no samples")

        samples, sample_rate, channels = load_recording(recording)

        t0 = time.time()
        normalized = resample(samples, sample_rate, channels)
        logger.info(
            "Resampled %d frames @ %d Hz -> %d @ 16000 Hz in %.2fs",
            len(samples), sample_rate, len(normalized), time.time() - t0,
        )

        model_path = self._storage.resolve_model(model_id or self._config.model.model)
        model = self._engine.load(model_path)
        return self._engine.transcribe(normalized, model=model)

    def _run(self, handle: RecordingHandle) -> None:
        try:
            self._notifier.play("start")
            session = self._capture_factory(
                self._config.audio, self._storage.container_path
            )
            handle.session = session
            recording = session.run(handle.token)

            self._notifier.play("stop")
            logger.info(
                "Recording stopped after %.2fs", time.time() - handle.started_at
            )
            self._set_state(SessionState.TRANSCRIBING)

            result = self.transcribe(recording, handle.model_id)
            self._last_result = result
            self._dispatch(result.text)
            self._notifier.play("complete")
        except PttScribeError as e:
            self._report(e)
        except Exception as e:
            logger.exception("Unexpected error in recording pipeline")
            self._report(PipelineError("recording", e))
        finally:
            handle.token.close()
            with self._transition_lock:
                self._registry.release(handle)
                self._set_state(SessionState.IDLE)

    def _dispatch(self, text: str) -> None:
        if not text.strip():
            logger.warning("Whisper returned empty transcription")
            return

        logger.info('Transcription: "%s"', text)
        try:
            self._output.deliver(text)
        except Exception as e:
            logger.error("Output error: %s", e)

    def _report(self, error: Exception) -> None:
        self._last_error = error
        if isinstance(error, EmptyRecordingError):
            logger.warning("Nothing recorded: %s", error)
        else:
            logger.error("Recording attempt failed: %s", error)

        with self._listeners_lock:
            listeners = list(self._error_listeners)
        for listener in listeners:
            try:
                listener(error)
            except Exception as e:
                logger.error("Error listener failed: %s", e)

    def _set_state(self, state: SessionState) -> None:
        with self._transition_lock:
            self._state = state
            self._status.publish(state)
