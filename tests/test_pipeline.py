"""Tests for the recording pipeline orchestration."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import numpy as np
import pytest

from pttscribe.capture import CaptureSession
from pttscribe.errors import (
    ContainerCreateError,
    DeviceUnavailable,
    EmptyRecordingError,
    InferenceError,
    ModelLoadError,
    PipelineError,
    SessionBusyError,
)
from pttscribe.pipeline import (
    RecordingHandle,
    RecordingPipeline,
    SessionRegistry,
    StatusChannel,
)
from pttscribe.types import SessionState, TranscriptResult, TranscriptSegment

if TYPE_CHECKING:
    from pttscribe.config import Config


RESULT = TranscriptResult(
    segments=(
        TranscriptSegment(start=0.0, end=1.0, text=" Hello"),
        TranscriptSegment(start=1.0, end=2.0, text=" world."),
    ),
)


@pytest.fixture
def engine() -> MagicMock:
    engine = MagicMock()
    engine.transcribe.return_value = RESULT
    return engine


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


@pytest.fixture
def output() -> MagicMock:
    return MagicMock()


@pytest.fixture
def pipeline(
    config: "Config",
    engine: MagicMock,
    notifier: MagicMock,
    output: MagicMock,
    stream_factory,
    device_resolver,
) -> RecordingPipeline:
    def capture_factory(audio_config, path):
        return CaptureSession(
            audio_config,
            path,
            device_resolver=device_resolver(sample_rate=48000, channels=1, dtype="int16"),
            stream_factory=stream_factory,
        )

    return RecordingPipeline(
        config,
        engine=engine,
        notifier=notifier,
        output=output,
        capture_factory=capture_factory,
    )


@pytest.fixture
def statuses(pipeline: RecordingPipeline) -> list[str]:
    seen: list[str] = []
    pipeline.subscribe(lambda payload: seen.append(payload["status"]))
    return seen


def _wait_for_stream(stream_factory):
    assert stream_factory.created.wait(2.0)
    assert stream_factory.last.started.wait(2.0)
    return stream_factory.last


class TestFullAttempt:
    def test_record_transcribe_dispatch(
        self,
        pipeline: RecordingPipeline,
        statuses: list[str],
        stream_factory,
        engine: MagicMock,
        notifier: MagicMock,
        output: MagicMock,
        sine_48k_3s: np.ndarray,
    ) -> None:
        pipeline.begin()
        stream = _wait_for_stream(stream_factory)
        for chunk in np.array_split(sine_48k_3s, 100):
            stream.feed(chunk)
        assert pipeline.cancel() is True
        assert pipeline.wait(5.0)

        assert statuses == ["recording", "transcribing", "idle"]
        assert pipeline.state is SessionState.IDLE
        assert pipeline.last_error is None
        assert pipeline.last_result is RESULT

        samples = engine.transcribe.call_args[0][0]
        assert samples.dtype == np.float32
        assert abs(len(samples) - 48000) <= 1
        engine.load.assert_called_once()

        output.deliver.assert_called_once_with(" Hello world.")
        assert [c.args[0] for c in notifier.play.call_args_list] == ["start", "stop", "complete"]
        assert stream.stopped and stream.closed

    def test_model_id_resolved_in_models_dir(
        self, pipeline: RecordingPipeline, config: "Config", stream_factory, engine: MagicMock
    ) -> None:
        (config.models_dir / "small").mkdir()
        pipeline.begin("small")
        _wait_for_stream(stream_factory).feed(np.ones(4800, dtype=np.int16))
        pipeline.cancel()
        pipeline.wait(5.0)

        assert engine.load.call_args[0][0] == config.models_dir / "small"

    def test_empty_transcript_not_dispatched(
        self, pipeline: RecordingPipeline, stream_factory, engine: MagicMock, output: MagicMock
    ) -> None:
        engine.transcribe.return_value = TranscriptResult()
        pipeline.begin()
        _wait_for_stream(stream_factory).feed(np.zeros(4800, dtype=np.int16))
        pipeline.cancel()
        pipeline.wait(5.0)

        assert pipeline.last_error is None
        output.deliver.assert_not_called()


class TestCancellation:
    def test_immediate_cancel_reports_empty_recording(
        self,
        pipeline: RecordingPipeline,
        statuses: list[str],
        stream_factory,
        engine: MagicMock,
    ) -> None:
        errors: list[Exception] = []
        pipeline.on_error(errors.append)

        pipeline.begin()
        _wait_for_stream(stream_factory)
        pipeline.cancel()
        assert pipeline.wait(5.0)

        assert isinstance(pipeline.last_error, EmptyRecordingError)
        assert errors == [pipeline.last_error]
        assert statuses[-1] == "idle"
        assert pipeline.state is SessionState.IDLE
        engine.transcribe.assert_not_called()

    def test_cancel_without_session_is_noop(self, pipeline: RecordingPipeline) -> None:
        assert pipeline.cancel() is False
        assert pipeline.cancel() is False
        assert pipeline.state is SessionState.IDLE

    def test_cancel_twice(self, pipeline: RecordingPipeline, stream_factory) -> None:
        pipeline.begin()
        _wait_for_stream(stream_factory)
        assert pipeline.cancel() is True
        assert pipeline.cancel() is False
        pipeline.wait(5.0)
        assert pipeline.cancel() is False

    def test_cancel_before_stream_opens(self, pipeline: RecordingPipeline) -> None:
        pipeline.begin()
        pipeline.cancel()
        assert pipeline.wait(5.0)
        assert isinstance(pipeline.last_error, EmptyRecordingError)


class TestBusy:
    def test_begin_while_recording_rejected(
        self, pipeline: RecordingPipeline, stream_factory
    ) -> None:
        first = pipeline.begin()
        _wait_for_stream(stream_factory)

        with pytest.raises(SessionBusyError):
            pipeline.begin()

        assert pipeline.state is SessionState.RECORDING
        assert pipeline.is_busy
        assert len(stream_factory.streams) == 1
        assert first.is_alive()

        pipeline.cancel()
        pipeline.wait(5.0)
        assert not pipeline.is_busy

    def test_begin_while_transcribing_rejected(
        self, pipeline: RecordingPipeline, stream_factory, engine: MagicMock
    ) -> None:
        entered = threading.Event()
        release = threading.Event()

        def slow_transcribe(*args, **kwargs):
            entered.set()
            release.wait(5.0)
            return RESULT

        engine.transcribe.side_effect = slow_transcribe
        pipeline.begin()
        _wait_for_stream(stream_factory).feed(np.ones(4800, dtype=np.int16))
        pipeline.cancel()
        assert entered.wait(5.0)

        assert pipeline.state is SessionState.TRANSCRIBING
        with pytest.raises(SessionBusyError):
            pipeline.begin()

        release.set()
        assert pipeline.wait(5.0)
        assert pipeline.state is SessionState.IDLE

    def test_new_attempt_after_idle(self, pipeline: RecordingPipeline, stream_factory) -> None:
        pipeline.begin()
        _wait_for_stream(stream_factory)
        pipeline.cancel()
        pipeline.wait(5.0)

        stream_factory.created.clear()
        pipeline.begin()
        _wait_for_stream(stream_factory)
        pipeline.cancel()
        pipeline.wait(5.0)
        assert len(stream_factory.streams) == 2


class TestFailures:
    def test_capture_failure_returns_to_idle(
        self, config: "Config", engine: MagicMock, notifier: MagicMock, output: MagicMock
    ) -> None:
        def capture_factory(audio_config, path):
            def no_device(device_id):
                raise DeviceUnavailable("No default input device")

            return CaptureSession(audio_config, path, device_resolver=no_device)

        pipeline = RecordingPipeline(
            config, engine=engine, notifier=notifier, output=output,
            capture_factory=capture_factory,
        )
        seen: list[str] = []
        pipeline.subscribe(lambda payload: seen.append(payload["status"]))

        pipeline.begin()
        assert pipeline.wait(5.0)

        assert isinstance(pipeline.last_error, DeviceUnavailable)
        assert seen == ["recording", "idle"]
        assert [c.args[0] for c in notifier.play.call_args_list] == ["start"]
        assert not pipeline.is_busy

    def test_recording_dir_unavailable(
        self,
        config: "Config",
        tmp_path: Path,
        engine: MagicMock,
        notifier: MagicMock,
        output: MagicMock,
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        config.storage.data_dir = blocker / "data"
        pipeline = RecordingPipeline(
            config, engine=engine, notifier=notifier, output=output,
        )
        errors: list[Exception] = []
        pipeline.on_error(errors.append)

        pipeline.begin()
        assert pipeline.wait(5.0)

        assert isinstance(pipeline.last_error, ContainerCreateError)
        assert errors == [pipeline.last_error]
        assert pipeline.state is SessionState.IDLE
        engine.transcribe.assert_not_called()

    def test_inference_failure(
        self, pipeline: RecordingPipeline, stream_factory, engine: MagicMock, output: MagicMock
    ) -> None:
        engine.transcribe.side_effect = InferenceError("corrupted state")
        pipeline.begin()
        _wait_for_stream(stream_factory).feed(np.ones(4800, dtype=np.int16))
        pipeline.cancel()
        pipeline.wait(5.0)

        assert isinstance(pipeline.last_error, InferenceError)
        assert pipeline.state is SessionState.IDLE
        output.deliver.assert_not_called()

    def test_missing_model(
        self, pipeline: RecordingPipeline, stream_factory, engine: MagicMock
    ) -> None:
        pipeline.begin("does-not-exist")
        _wait_for_stream(stream_factory).feed(np.ones(4800, dtype=np.int16))
        pipeline.cancel()
        pipeline.wait(5.0)

        assert isinstance(pipeline.last_error, ModelLoadError)
        engine.load.assert_not_called()

    def test_unexpected_error_contained(
        self, pipeline: RecordingPipeline, stream_factory, engine: MagicMock
    ) -> None:
        engine.load.side_effect = KeyError("boom")
        pipeline.begin()
        _wait_for_stream(stream_factory).feed(np.ones(4800, dtype=np.int16))
        pipeline.cancel()
        pipeline.wait(5.0)

        assert isinstance(pipeline.last_error, PipelineError)
        assert pipeline.state is SessionState.IDLE

    def test_output_failure_is_not_fatal(
        self,
        pipeline: RecordingPipeline,
        stream_factory,
        output: MagicMock,
        notifier: MagicMock,
    ) -> None:
        output.deliver.side_effect = RuntimeError("clipboard unavailable")
        pipeline.begin()
        _wait_for_stream(stream_factory).feed(np.ones(4800, dtype=np.int16))
        pipeline.cancel()
        pipeline.wait(5.0)

        assert pipeline.last_error is None
        assert pipeline.state is SessionState.IDLE
        assert notifier.play.call_args_list[-1].args[0] == "complete"

    def test_status_listener_failure_is_not_fatal(
        self, pipeline: RecordingPipeline, stream_factory
    ) -> None:
        pipeline.subscribe(MagicMock(side_effect=RuntimeError("ui gone")))
        pipeline.begin()
        _wait_for_stream(stream_factory)
        pipeline.cancel()
        assert pipeline.wait(5.0)
        assert pipeline.state is SessionState.IDLE

    def test_error_listeners_registered_across_threads(
        self, pipeline: RecordingPipeline, stream_factory
    ) -> None:
        calls: list[Exception] = []
        late: list[Exception] = []
        registrars = [
            threading.Thread(target=pipeline.on_error, args=(calls.append,))
            for _ in range(8)
        ]
        for thread in registrars:
            thread.start()
        for thread in registrars:
            thread.join()
        # Registering from inside a listener must not deadlock
        pipeline.on_error(lambda error: pipeline.on_error(late.append))

        pipeline.begin()
        _wait_for_stream(stream_factory)
        pipeline.cancel()
        assert pipeline.wait(5.0)

        assert len(calls) == 8
        assert all(isinstance(error, EmptyRecordingError) for error in calls)
        assert late == []


class TestTranscribeRecording:
    def test_rejects_empty_recording(
        self, pipeline: RecordingPipeline, tmp_path: Path, engine: MagicMock
    ) -> None:
        from pttscribe.sink import AudioSink

        recording = AudioSink.create(tmp_path / "r.wav", 16000, 1, np.int16).finalize()
        with pytest.raises(EmptyRecordingError):
            pipeline.transcribe(recording)
        engine.transcribe.assert_not_called()


class TestSessionRegistry:
    def test_single_live_handle(self) -> None:
        registry = SessionRegistry()
        first = RecordingHandle(model_id="base")
        registry.acquire(first)
        with pytest.raises(SessionBusyError):
            registry.acquire(RecordingHandle(model_id="base"))
        assert registry.active is first

    def test_release_only_own_handle(self) -> None:
        registry = SessionRegistry()
        first = RecordingHandle(model_id="base")
        registry.acquire(first)
        registry.release(RecordingHandle(model_id="base"))
        assert registry.active is first
        registry.release(first)
        assert registry.active is None

    def test_cancel(self) -> None:
        registry = SessionRegistry()
        assert registry.cancel() is False
        handle = RecordingHandle(model_id="base")
        registry.acquire(handle)
        assert registry.cancel() is True
        assert handle.token.is_set


class TestStatusChannel:
    def test_repeated_status_delivered(self) -> None:
        channel = StatusChannel()
        seen: list[dict] = []
        channel.subscribe(seen.append)
        channel.publish(SessionState.IDLE)
        channel.publish(SessionState.IDLE)
        assert seen == [{"status": "idle"}, {"status": "idle"}]

    def test_unsubscribe(self) -> None:
        channel = StatusChannel()
        seen: list[dict] = []
        channel.subscribe(seen.append)
        channel.unsubscribe(seen.append)
        channel.publish(SessionState.RECORDING)
        assert seen == []
