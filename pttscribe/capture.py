"""Microphone capture into a durable recording container."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from pttscribe.convert import check_supported, convert_samples, sink_dtype_for
from pttscribe.errors import DeviceUnavailable, StreamConfigError
from pttscribe.sink import AudioSink

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from pttscribe.config import AudioConfig
    from pttscribe.types import FinalizedRecording

logger = logging.getLogger(__name__)

DEFAULT_INPUT_DTYPE = "float32"
MAX_DEFAULT_CHANNELS = 2
INPUT_KIND = "input"


@dataclass
class AudioDevice:
    index: int
    name: str
    is_default: bool = False

    def __str__(self) -> str:
        marker = " (DEFAULT)" if self.is_default else ""
        return f"[{self.index}] {self.name}{marker}"


@dataclass(frozen=True)
class InputDeviceConfig:
    """The device's default input configuration."""

    index: int | None
    name: str
    sample_rate: int
    channels: int
    dtype: str = DEFAULT_INPUT_DTYPE


def list_input_devices() -> list[AudioDevice]:
    import sounddevice as sd

    devices = sd.query_devices()
    default_input = sd.default.device[0]

    input_devices = []
    for i, dev in enumerate(devices):
        if dev["max_input_channels"] > 0:  # type: ignore[index]
            input_devices.append(
                AudioDevice(
                    index=i,
                    name=dev["name"],  # type: ignore[index]
                    is_default=(i == default_input),
                )
            )
    return input_devices


def default_input_config(device_id: int | None = None) -> InputDeviceConfig:
    """Resolve ``device_id`` (or the system default) to its default input configuration."""
    import sounddevice as sd

    try:
        info = sd.query_devices(device_id, kind=INPUT_KIND)
    except (sd.PortAudioError, ValueError) as e:
        raise DeviceUnavailable(f"No input device available: {e}") from e

    max_channels = int(info["max_input_channels"])  # type: ignore[index]
    if max_channels < 1:
        raise DeviceUnavailable(f"Device {info['name']} has no input channels")  # type: ignore[index]

    return InputDeviceConfig(
        index=info.get("index", device_id),  # type: ignore[union-attr]
        name=str(info["name"]),  # type: ignore[index]
        sample_rate=int(info["default_samplerate"]),  # type: ignore[index]
        channels=min(max_channels, MAX_DEFAULT_CHANNELS),
    )


def open_input_stream(**kwargs: Any) -> Any:
    import sounddevice as sd

    return sd.InputStream(**kwargs)


class CancellationToken:
    """
    One-shot stop signal for a capture.

    ``signal`` and ``close`` may be called any number of times from any
    thread; only the first has an effect. ``close`` models the sender going
    away without a signal, which ends the capture the same way.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._dropped = False

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def dropped(self) -> bool:
        return self._dropped

    def signal(self) -> bool:
        """Deliver the stop signal. Returns False if it was already delivered."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    def close(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._dropped = True
            self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class CaptureState(str, Enum):
    NOT_STARTED = "not_started"
    STREAMING = "streaming"
    STOPPED = "stopped"


class CaptureSession:
    """Owns one input stream and the sink it feeds, from start until cancellation."""

    def __init__(
        self,
        audio_config: "AudioConfig",
        container_path: str | Path,
        *,
        device_resolver: Callable[[int | None], InputDeviceConfig] | None = None,
        stream_factory: Callable[..., Any] | None = None,
    ) -> None:
        self._audio_config = audio_config
        self._container_path = Path(container_path)
        self._resolve_device = device_resolver or default_input_config
        self._stream_factory = stream_factory or open_input_stream

        self._state = CaptureState.NOT_STARTED
        self._lock = threading.Lock()
        self._stream: Any = None
        self._sink: AudioSink | None = None
        self._device: InputDeviceConfig | None = None
        self._recording: "FinalizedRecording | None" = None

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def device(self) -> InputDeviceConfig | None:
        return self._device

    @property
    def sink(self) -> AudioSink | None:
        return self._sink

    def start(self) -> None:
        with self._lock:
            if self._state is not CaptureState.NOT_STARTED:
                raise RuntimeError(f"Capture session already {self._state.value}")

            device = self._resolve_device(self._audio_config.device_id)
            source_dtype = check_supported(device.dtype)
            logger.info(
                "Input device %s: %d Hz, %d ch, %s",
                device.name, device.sample_rate, device.channels, source_dtype,
            )

            sink = AudioSink.create(
                self._container_path,
                device.sample_rate,
                device.channels,
                sink_dtype_for(source_dtype),
            )

            self._device = device
            self._sink = sink
            try:
                stream = self._stream_factory(
                    samplerate=device.sample_rate,
                    channels=device.channels,
                    dtype=device.dtype,
                    blocksize=self._audio_config.block_size(device.sample_rate),
                    device=device.index,
                    callback=self._audio_callback,
                )
                stream.start()
            except Exception as e:
                self._sink = None
                sink.finalize()
                raise StreamConfigError(f"Device {device.name} declined the stream: {e}") from e

            self._stream = stream
            self._state = CaptureState.STREAMING

    def wait(self, token: CancellationToken) -> None:
        """Block until ``token`` is signalled or dropped. There is no timeout."""
        token.wait()
        if token.dropped:
            logger.info("Cancellation sender dropped, stopping capture")

    def stop(self) -> "FinalizedRecording":
        """Tear the stream down, then finalize the sink. Safe to call more than once."""
        with self._lock:
            if self._recording is not None:
                return self._recording
            if self._sink is None:
                raise RuntimeError("Capture session was never started")

            self._stop_stream()
            self._recording = self._sink.finalize()
            self._state = CaptureState.STOPPED
            return self._recording

    def run(self, token: CancellationToken) -> "FinalizedRecording":
        """Start streaming, block until cancellation, and return the finalized recording."""
        self.start()
        try:
            self.wait(token)
        finally:
            recording = self.stop()
        return recording

    def _stop_stream(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logger.warning("Error stopping audio stream: %s", e)
            finally:
                self._stream = None

    def _audio_callback(
        self,
        indata: "NDArray",
        frames: int,
        time_info: Any,
        status: Any,
    ) -> None:
        if status:
            logger.warning("Audio callback status: %s", status)

        sink = self._sink
        if sink is None:
            return
        sink.write(convert_samples(indata, sink.dtype))
