"""Audible cues played around a recording."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable

import numpy as np
import soundfile as sf

from pttscribe.config import NO_SOUND

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from pttscribe.config import FeedbackConfig
    from pttscribe.types import CueName

logger = logging.getLogger(__name__)

TONE_SAMPLE_RATE = 44_100
TONE_PEAK = 0.3
FADE_DURATION_SECONDS = 0.008


def synth_tone(
    frequency_hz: float,
    duration_s: float,
    volume: float,
    sample_rate: int = TONE_SAMPLE_RATE,
) -> "NDArray[np.float32]":
    n_samples = int(sample_rate * duration_s)
    t = np.arange(n_samples, dtype=np.float32) / sample_rate
    tone = np.sin(2.0 * np.pi * frequency_hz * t) * TONE_PEAK * volume

    fade_samples = max(1, int(FADE_DURATION_SECONDS * sample_rate))
    if fade_samples * 2 < n_samples:
        window = np.ones(n_samples, dtype=np.float32)
        window[:fade_samples] = np.linspace(0, 1, fade_samples, dtype=np.float32)
        window[-fade_samples:] = np.linspace(1, 0, fade_samples, dtype=np.float32)
        tone *= window

    return tone.astype(np.float32)


def _play_async(data: "NDArray[np.float32]", sample_rate: int) -> None:
    import sounddevice as sd

    sd.play(data, sample_rate, blocking=False)


class NotificationPlayer:
    """
    Plays the ``start``, ``stop`` and ``complete`` cues.

    Playback is started and not awaited. Failures are logged and never
    reach the pipeline.
    """

    def __init__(
        self,
        config: "FeedbackConfig",
        play: Callable[["NDArray[np.float32]", int], None] | None = None,
    ) -> None:
        self._config = config
        self._play = play or _play_async

    def play(self, cue: "CueName") -> None:
        if not self._config.enabled:
            logger.debug("Sound effects turned off")
            return

        sound = self._config.cue(cue).strip()
        if not sound or sound.lower() == NO_SOUND:
            return

        try:
            data, sample_rate = self._render(sound)
            self._play(data, sample_rate)
        except Exception as e:
            logger.warning("Failed to play %s cue (%s): %s", cue, sound, e)

    def _render(self, sound: str) -> tuple["NDArray[np.float32]", int]:
        try:
            frequency = float(sound)
        except ValueError:
            return self._load_sound(Path(sound).expanduser())
        return (
            synth_tone(frequency, self._config.duration_s, self._config.volume),
            TONE_SAMPLE_RATE,
        )

    def _load_sound(self, path: Path) -> tuple["NDArray[np.float32]", int]:
        data, sample_rate = sf.read(str(path), dtype="float32")
        return data * np.float32(self._config.volume), int(sample_rate)
