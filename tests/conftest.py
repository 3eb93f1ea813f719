"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Generator

import numpy as np
import pytest

from pttscribe.capture import InputDeviceConfig

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from pttscribe.config import Config


@pytest.fixture
def sample_audio_16k() -> NDArray[np.int16]:
    """Generate 1 second of sample audio at 16kHz."""
    sample_rate = 16000
    duration = 1.0
    t = np.arange(int(sample_rate * duration), dtype=np.float32) / sample_rate
    # Generate a 440Hz sine wave
    audio = np.sin(2 * np.pi * 440 * t) * 0.5
    return (audio * 32767).astype(np.int16)


@pytest.fixture
def sine_48k_3s() -> NDArray[np.int16]:
    """3 seconds of a 440Hz sine at 48kHz, 16-bit."""
    sample_rate = 48000
    t = np.arange(3 * sample_rate, dtype=np.float64) / sample_rate
    audio = np.sin(2 * np.pi * 440 * t) * 0.5
    return (audio * 32767).astype(np.int16)


@pytest.fixture
def sample_audio_silent() -> NDArray[np.float32]:
    """Generate 1 second of silent audio at 16kHz."""
    return np.zeros(16000, dtype=np.float32)


@pytest.fixture
def config(tmp_path: Path) -> "Config":
    """Configuration rooted in a temporary data directory."""
    from pttscribe.config import Config, OutputMode

    cfg = Config()
    cfg.storage.data_dir = tmp_path / "data"
    cfg.output_mode = OutputMode.NONE
    cfg.feedback.enabled = False
    (cfg.models_dir / cfg.model.model).mkdir(parents=True)
    return cfg


@pytest.fixture
def model_dir(tmp_path: Path) -> Path:
    """A directory shaped like a converted Whisper model."""
    path = tmp_path / "whisper-base"
    path.mkdir()
    (path / "config.json").write_text("{}")
    (path / "weights.npz").write_bytes(b"")
    return path


class FakeStream:
    """Stands in for sounddevice.InputStream; tests push buffers through the callback."""

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.callback = kwargs["callback"]
        self.started = threading.Event()
        self.stopped = False
        self.closed = False
        # Lifecycle calls in order; tests may append their own markers
        self.events: list[str] = []

    def start(self) -> None:
        self.events.append("start")
        self.started.set()

    def stop(self) -> None:
        self.events.append("stop")
        self.stopped = True

    def close(self) -> None:
        self.events.append("close")
        self.closed = True

    def feed(self, buffer: "NDArray", status: Any = None) -> None:
        channels = self.kwargs["channels"]
        indata = np.asarray(buffer).reshape(-1, channels)
        self.callback(indata, len(indata), None, status)


class StreamRecorder:
    """Stream factory that remembers every stream it built."""

    def __init__(self) -> None:
        self.streams: list[FakeStream] = []
        self.created = threading.Event()

    def __call__(self, **kwargs: Any) -> FakeStream:
        stream = FakeStream(**kwargs)
        self.streams.append(stream)
        self.created.set()
        return stream

    @property
    def last(self) -> FakeStream:
        return self.streams[-1]


@pytest.fixture
def stream_factory() -> StreamRecorder:
    return StreamRecorder()


def make_device(
    sample_rate: int = 48000,
    channels: int = 1,
    dtype: str = "int16",
) -> Callable[[int | None], InputDeviceConfig]:
    def resolve(device_id: int | None) -> InputDeviceConfig:
        return InputDeviceConfig(
            index=device_id if device_id is not None else 0,
            name="Test Microphone",
            sample_rate=sample_rate,
            channels=channels,
            dtype=dtype,
        )

    return resolve


@pytest.fixture
def clean_env() -> Generator[None, None, None]:
    """Fixture to clean environment variables before/after tests."""
    env_vars = [
        "PTTSCRIBE_AUDIO_DEVICE",
        "PTTSCRIBE_OUTPUT_MODE",
        "PTTSCRIBE_LANGUAGE",
        "PTTSCRIBE_MODEL",
        "PTTSCRIBE_MODELS_DIR",
        "PTTSCRIBE_DATA_DIR",
        "PTTSCRIBE_SOUND_EFFECTS",
        "PTTSCRIBE_SOUND_VOLUME",
        "PTTSCRIBE_VERBOSE",
    ]
    original_values = {var: os.environ.get(var) for var in env_vars}

    for var in env_vars:
        os.environ.pop(var, None)

    yield

    for var, value in original_values.items():
        if value is not None:
            os.environ[var] = value
        else:
            os.environ.pop(var, None)


@pytest.fixture
def device_resolver() -> Callable[..., Callable[[int | None], InputDeviceConfig]]:
    """Factory for device resolvers reporting a fixed default input configuration."""
    return make_device
