"""Speech-to-text inference with Whisper."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import mlx.core as mx
import mlx_whisper
import numpy as np
from mlx_whisper.transcribe import ModelHolder

from pttscribe.config import TARGET_SAMPLE_RATE
from pttscribe.errors import InferenceError, ModelLoadError
from pttscribe.types import TranscriptResult, TranscriptSegment

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from pttscribe.config import ModelConfig

logger = logging.getLogger(__name__)

MODEL_CONFIG_FILE = "config.json"
MODEL_WEIGHT_FILES = ("weights.safetensors", "weights.npz")


@dataclass(frozen=True)
class LoadedModel:
    path: Path
    model: Any


def validate_model_dir(model_path: str | Path) -> Path:
    """Check that ``model_path`` looks like a serialized Whisper model."""
    path = Path(model_path)
    if not path.is_dir():
        raise ModelLoadError(f"Model directory not found: {path}")
    if not (path / MODEL_CONFIG_FILE).is_file():
        raise ModelLoadError(f"Missing {MODEL_CONFIG_FILE} in {path}")
    if not any((path / name).is_file() for name in MODEL_WEIGHT_FILES):
        raise ModelLoadError(f"No model weights in {path}")
    return path


class TranscriptionEngine:
    """Loads a Whisper model once and transcribes 16 kHz mono utterances with it."""

    def __init__(self, config: "ModelConfig") -> None:
        self._config = config
        self._loaded: LoadedModel | None = None

    @property
    def loaded(self) -> LoadedModel | None:
        return self._loaded

    @property
    def is_loaded(self) -> bool:
        return self._loaded is not None

    def load(self, model_path: str | Path, *, reload: bool = False) -> LoadedModel:
        """
        Load the model at ``model_path``.

        Loading takes seconds, so the model is kept until a different path is
        requested or ``reload`` is set.
        """
        path = validate_model_dir(model_path)
        if self._loaded is not None and self._loaded.path == path and not reload:
            return self._loaded

        logger.info("Loading Whisper model: %s", path)
        if reload:
            # Clear mlx-whisper's per-path cache so the weights are read again
            ModelHolder.model = None
            ModelHolder.model_path = None
        t0 = time.time()
        try:
            model = ModelHolder.get_model(str(path), mx.float16)
        except Exception as e:
            raise ModelLoadError(f"Failed to load model {path}: {e}") from e
        logger.info("Whisper model loaded in %.2fs", time.time() - t0)

        self._loaded = LoadedModel(path=path, model=model)
        return self._loaded

    def transcribe(
        self,
        samples: "NDArray[np.float32]",
        *,
        model: LoadedModel | None = None,
        sample_rate: int = TARGET_SAMPLE_RATE,
    ) -> TranscriptResult:
        """
        Transcribe a normalized sample sequence.

        Args:
            samples: Mono float32 samples in [-1.0, 1.0].
            model: Model to use; defaults to the last loaded one.
            sample_rate: Must be 16000.

        Returns:
            Segments ordered by start time. Blank segments are suppressed, so
            silence yields an empty result rather than an error.
        """
        loaded = model or self._loaded
        if loaded is None:
            raise InferenceError("No model loaded")
        if sample_rate != TARGET_SAMPLE_RATE:
            raise InferenceError(
                f"Expected {TARGET_SAMPLE_RATE} Hz samples, got {sample_rate} Hz"
            )

        audio = np.asarray(samples)
        if audio.ndim != 1:
            raise InferenceError(f"Expected mono samples, got shape {audio.shape}")
        if audio.size == 0:
            raise InferenceError("Cannot transcribe an empty sample sequence")
        if audio.dtype.kind != "f":
            raise InferenceError(f"Expected float samples, got {audio.dtype}")

        logger.info("Running Whisper on %.2fs of audio", audio.size / sample_rate)
        t0 = time.time()
        try:
            result = mlx_whisper.transcribe(
                audio.astype(np.float32, copy=False),
                path_or_hf_repo=str(loaded.path),
                language=self._config.language,
                temperature=0.0,
                no_speech_threshold=self._config.no_speech_threshold,
                logprob_threshold=self._config.logprob_threshold,
                condition_on_previous_text=False,
                suppress_blank=True,
            )
        except Exception as e:
            raise InferenceError(f"Whisper inference failed: {e}") from e
        logger.info("Whisper done in %.2fs", time.time() - t0)

        segments = self._to_segments(result.get("segments") or [])
        language = result.get("language")
        logger.info("Transcribed %d segments", len(segments))
        return TranscriptResult(
            segments=segments,
            language=str(language) if isinstance(language, str) else None,
        )

    def _to_segments(self, raw_segments: list[dict]) -> tuple[TranscriptSegment, ...]:
        segments = []
        for raw in raw_segments:
            text = str(raw.get("text", ""))
            if not text.strip():
                continue
            if self._is_blank(raw):
                logger.debug("Suppressing non-speech segment: %r", text)
                continue

            start = float(raw.get("start", 0.0))
            end = max(float(raw.get("end", start)), start)
            segments.append(TranscriptSegment(start=start, end=end, text=text))
            logger.debug("[%.2f - %.2f]: %s", start, end, text)

        segments.sort(key=lambda segment: segment.start)
        return tuple(segments)

    def _is_blank(self, raw: dict) -> bool:
        no_speech = raw.get("no_speech_prob")
        avg_logprob = raw.get("avg_logprob")
        if no_speech is None or avg_logprob is None:
            return False
        return (
            no_speech > self._config.no_speech_threshold
            and avg_logprob < self._config.logprob_threshold
        )
