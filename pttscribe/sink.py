"""Lock-guarded WAV sink shared between the audio callback and the pipeline."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import soundfile as sf

from pttscribe.errors import ContainerCreateError
from pttscribe.types import FinalizedRecording

if TYPE_CHECKING:
    from numpy.typing import DTypeLike, NDArray

logger = logging.getLogger(__name__)

_SUBTYPES = {
    np.dtype(np.int16): ("PCM_16", 16, "int"),
    np.dtype(np.float32): ("FLOAT", 32, "float"),
}


class AudioSink:
    """
    Destination for captured buffers.

    ``write`` never blocks: if another thread holds the sink the buffer is
    dropped. ``finalize`` waits for any in-flight write, closes the file and
    releases it, after which writes are no-ops.
    """

    def __init__(
        self,
        target: sf.SoundFile,
        path: Path,
        sample_rate: int,
        channels: int,
        dtype: "DTypeLike",
    ) -> None:
        self._lock = threading.Lock()
        self._target: sf.SoundFile | None = target
        self._path = path
        self._sample_rate = sample_rate
        self._channels = channels
        self._dtype = np.dtype(dtype)
        self._frames_written = 0
        self._dropped_buffers = 0
        self._recording: FinalizedRecording | None = None

    @classmethod
    def create(
        cls,
        path: str | Path,
        sample_rate: int,
        channels: int,
        dtype: "DTypeLike",
    ) -> "AudioSink":
        """Open a new WAV container at ``path``, replacing any previous one."""
        path = Path(path)
        dt = np.dtype(dtype)
        if dt not in _SUBTYPES:
            raise ContainerCreateError(f"No WAV encoding for sample format {dt}")
        subtype = _SUBTYPES[dt][0]
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            target = sf.SoundFile(
                str(path),
                mode="w",
                samplerate=sample_rate,
                channels=channels,
                format="WAV",
                subtype=subtype,
            )
        except (OSError, RuntimeError, ValueError) as e:
            raise ContainerCreateError(f"Cannot create {path}: {e}") from e

        logger.info(
            "Recording container %s (%d Hz, %d ch, %s)",
            path, sample_rate, channels, subtype,
        )
        return cls(target, path, sample_rate, channels, dt)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def frames_written(self) -> int:
        return self._frames_written

    @property
    def dropped_buffers(self) -> int:
        return self._dropped_buffers

    @property
    def is_finalized(self) -> bool:
        return self._recording is not None

    def write(self, buffer: "NDArray") -> bool:
        """Append ``buffer`` unless the sink is busy or closed. Returns True if written."""
        if not self._lock.acquire(blocking=False):
            self._dropped_buffers += 1
            return False
        try:
            if self._target is None:
                return False
            frames = np.asarray(buffer, dtype=self._dtype).reshape(-1, self._channels)
            self._target.write(frames)
            self._frames_written += len(frames)
            return True
        finally:
            self._lock.release()

    def finalize(self) -> FinalizedRecording:
        """Flush and close the container. Safe to call more than once."""
        with self._lock:
            if self._recording is not None:
                return self._recording

            target, self._target = self._target, None
            if target is not None:
                target.flush()
                target.close()

            _, bits, sample_format = _SUBTYPES[self._dtype]
            self._recording = FinalizedRecording(
                path=self._path,
                sample_rate=self._sample_rate,
                channels=self._channels,
                bits_per_sample=bits,
                sample_format=sample_format,
                frames=self._frames_written,
            )

        if self._dropped_buffers:
            logger.warning(
                "Dropped %d buffers under sink contention", self._dropped_buffers
            )
        logger.info(
            "Finalized %s: %d frames (%.2fs)",
            self._path, self._recording.frames, self._recording.duration_s,
        )
        return self._recording
