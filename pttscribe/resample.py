"""Sample-rate and channel conversion to the inference layout (16 kHz mono float32)."""

from __future__ import annotations

import logging
from math import gcd
from typing import TYPE_CHECKING

import numpy as np
import soundfile as sf
from scipy.signal import resample_poly

from pttscribe.config import TARGET_CHANNELS, TARGET_SAMPLE_RATE
from pttscribe.convert import AUDIO_CLIP_MAX, AUDIO_CLIP_MIN, to_float32
from pttscribe.errors import EmptyRecordingError, ResampleError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from pttscribe.types import FinalizedRecording

logger = logging.getLogger(__name__)

# Kaiser window shape for the polyphase sinc filter
KAISER_BETA = 8.6


def resample(
    samples: "NDArray",
    source_rate: int,
    source_channels: int,
    target_rate: int = TARGET_SAMPLE_RATE,
    target_channels: int = TARGET_CHANNELS,
) -> "NDArray[np.float32]":
    """
    Convert ``samples`` to ``target_rate`` and ``target_channels``.

    Args:
        samples: Interleaved 1-D samples or a ``(frames, channels)`` array.
        source_rate: Sample rate of ``samples``.
        source_channels: Channel count of ``samples``.
        target_rate: Output sample rate.
        target_channels: Output channel count; 1 downmixes by channel mean.

    Returns:
        Float32 samples in [-1.0, 1.0]; 1-D when mono, ``(frames, channels)`` otherwise.
    """
    if source_rate <= 0 or target_rate <= 0:
        raise ResampleError(f"Invalid sample rate: {source_rate} -> {target_rate}")
    if source_channels <= 0 or target_channels <= 0:
        raise ResampleError(
            f"Invalid channel count: {source_channels} -> {target_channels}"
        )
    if target_channels not in (1, source_channels):
        raise ResampleError(
            f"Cannot map {source_channels} channels to {target_channels}"
        )

    audio = np.asarray(samples)
    if audio.size % source_channels:
        raise ResampleError(
            f"{audio.size} samples do not divide into {source_channels} channels"
        )

    try:
        frames = to_float32(audio).reshape(-1, source_channels)
        if target_channels == 1:
            frames = frames.mean(axis=1, keepdims=True, dtype=np.float32)

        if source_rate != target_rate and len(frames):
            factor = gcd(source_rate, target_rate)
            up, down = target_rate // factor, source_rate // factor
            frames = resample_poly(
                frames, up, down, axis=0, window=("kaiser", KAISER_BETA)
            )
            frames = np.clip(frames, AUDIO_CLIP_MIN, AUDIO_CLIP_MAX)
    except MemoryError as e:
        raise ResampleError(f"Cannot allocate resampling buffers: {e}") from e

    out = np.ascontiguousarray(frames, dtype=np.float32)
    if target_channels == 1:
        return out.reshape(-1)
    return out


def load_recording(
    recording: "FinalizedRecording",
) -> tuple["NDArray[np.float32]", int, int]:
    """Read a finalized container back as ``(float32 frames, sample_rate, channels)``."""
    path = recording.path
    if not path.is_file():
        raise EmptyRecordingError(f"Recording {path} does not exist")

    try:
        data, sample_rate = sf.read(str(path), dtype="float32", always_2d=True)
    except (OSError, RuntimeError) as e:
        raise EmptyRecordingError(f"Recording {path} is unreadable: {e}") from e

    if len(data) == 0:
        raise EmptyRecordingError(f"Recording {path} holds no samples")

    logger.info(
        "Loaded %s: %d frames, %d Hz, %d ch",
        path, len(data), sample_rate, data.shape[1],
    )
    return data, int(sample_rate), int(data.shape[1])
