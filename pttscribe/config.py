"""Configuration for the pttscribe application."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pttscribe.types import CueName

logger = logging.getLogger(__name__)

APP_NAME = "pttscribe"
TARGET_SAMPLE_RATE = 16_000
TARGET_CHANNELS = 1
NO_SOUND = "none"


class OutputMode(str, Enum):
    PASTE = "paste"
    TYPE = "type"
    CLIPBOARD = "clipboard"
    NONE = "none"


def default_data_dir() -> Path:
    base = os.environ.get("XDG_DATA_HOME")
    root = Path(base) if base else Path.home() / ".local" / "share"
    return root / APP_NAME


@dataclass
class AudioConfig:
    device_id: int | None = None
    container_name: str = "recorded.wav"
    block_ms: int = 0

    def block_size(self, sample_rate: int) -> int:
        # 0 lets the host API pick its preferred block size
        if self.block_ms <= 0:
            return 0
        return int(sample_rate * (self.block_ms / 1000.0))


@dataclass
class FeedbackConfig:
    """Notification cues. A cue is a tone frequency in Hz, a sound file path, or "none"."""

    enabled: bool = True
    volume: float = 1.0
    duration_s: float = 0.06
    start: str = "880"
    stop: str = "440"
    complete: str = "660"

    def cue(self, name: CueName) -> str:
        return getattr(self, name)


@dataclass
class ModelConfig:
    model: str = "base"
    models_dir: Path | None = None
    language: str | None = None
    no_speech_threshold: float = 0.6
    logprob_threshold: float = -1.0


@dataclass
class StorageConfig:
    data_dir: Path = field(default_factory=default_data_dir)

    @property
    def recording_dir(self) -> Path:
        return self.data_dir / "recordings"

    def models_dir(self, override: Path | None = None) -> Path:
        return override if override is not None else self.data_dir / "models"


def _env_flag(value: str) -> bool:
    return value.lower() in ("1", "true", "yes")


@dataclass
class Config:
    audio: AudioConfig = field(default_factory=AudioConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    output_mode: OutputMode = OutputMode.CLIPBOARD
    verbose: bool = False

    @property
    def models_dir(self) -> Path:
        return self.storage.models_dir(self.model.models_dir)

    @classmethod
    def from_env(cls) -> "Config":
        config = cls()

        if device := os.environ.get("PTTSCRIBE_AUDIO_DEVICE"):
            try:
                config.audio.device_id = int(device)
            except ValueError:
                logger.warning("Ignoring invalid PTTSCRIBE_AUDIO_DEVICE: %s", device)

        if mode := os.environ.get("PTTSCRIBE_OUTPUT_MODE"):
            try:
                config.output_mode = OutputMode(mode.lower())
            except ValueError:
                logger.warning("Ignoring invalid PTTSCRIBE_OUTPUT_MODE: %s", mode)

        if lang := os.environ.get("PTTSCRIBE_LANGUAGE"):
            config.model.language = None if lang.lower() == "auto" else lang

        if model := os.environ.get("PTTSCRIBE_MODEL"):
            config.model.model = model

        if models_dir := os.environ.get("PTTSCRIBE_MODELS_DIR"):
            config.model.models_dir = Path(models_dir).expanduser()

        if data_dir := os.environ.get("PTTSCRIBE_DATA_DIR"):
            config.storage.data_dir = Path(data_dir).expanduser()

        # Sound effects
        if effects := os.environ.get("PTTSCRIBE_SOUND_EFFECTS"):
            config.feedback.enabled = _env_flag(effects)

        if volume := os.environ.get("PTTSCRIBE_SOUND_VOLUME"):
            try:
                config.feedback.volume = min(max(float(volume), 0.0), 1.0)
            except ValueError:
                logger.warning("Ignoring invalid PTTSCRIBE_SOUND_VOLUME: %s", volume)

        if verbose := os.environ.get("PTTSCRIBE_VERBOSE"):
            config.verbose = _env_flag(verbose)

        return config
