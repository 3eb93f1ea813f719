"""Type definitions for the pttscribe recording pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Literal, TypedDict

# Logical notification cues played around a recording
CueName = Literal["start", "stop", "complete"]

SampleFormat = Literal["int", "float"]


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"


class StatusPayload(TypedDict):
    """Status message delivered to the host UI on every transition."""

    status: str


@dataclass(frozen=True)
class FinalizedRecording:
    """A closed, read-only recording container and its declared format."""

    path: Path
    sample_rate: int
    channels: int
    bits_per_sample: int
    sample_format: SampleFormat
    frames: int

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / self.sample_rate

    @property
    def is_empty(self) -> bool:
        return self.frames == 0


@dataclass(frozen=True)
class TranscriptSegment:
    """One timestamped span of recognized text (times in seconds)."""

    start: float
    end: float
    text: str


@dataclass(frozen=True)
class TranscriptResult:
    segments: tuple[TranscriptSegment, ...] = field(default_factory=tuple)
    language: str | None = None

    @property
    def text(self) -> str:
        """The final utterance: segment texts joined without a separator."""
        return "".join(segment.text for segment in self.segments)

    def __len__(self) -> int:
        return len(self.segments)


class ServerConfig(TypedDict):
    """Server configuration returned by /config endpoint."""

    model: str
    language: str | None
    output_mode: str
    sound_effects: bool


class HealthCheck(TypedDict):
    """Health check response."""

    status: Literal["healthy", "unhealthy"]
    model_loaded: bool
