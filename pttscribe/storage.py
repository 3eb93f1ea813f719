"""On-disk locations for recordings and model artifacts."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pttscribe.errors import ContainerCreateError, ModelLoadError

if TYPE_CHECKING:
    from pttscribe.config import Config

logger = logging.getLogger(__name__)


class Storage:
    """Resolves the recording directory and model identifiers to paths."""

    def __init__(self, config: "Config") -> None:
        self._recording_dir = config.storage.recording_dir
        self._models_dir = config.models_dir
        self._container_name = config.audio.container_name
        self._prepared = False

    @property
    def models_dir(self) -> Path:
        return self._models_dir

    @property
    def recording_dir(self) -> Path:
        """Writable directory for the in-progress recording, fixed for the process lifetime."""
        if not self._prepared:
            try:
                self._recording_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ContainerCreateError(
                    f"Cannot create recording directory {self._recording_dir}: {e}"
                ) from e
            logger.info("Recording directory: %s", self._recording_dir)
            self._prepared = True
        return self._recording_dir

    @property
    def container_path(self) -> Path:
        return self.recording_dir / self._container_name

    def resolve_model(self, model_id: str) -> Path:
        """
        Map a model identifier to its directory.

        Absolute paths are used as given; anything else is looked up inside
        the models directory.
        """
        if not model_id:
            raise ModelLoadError("Empty model identifier")

        candidate = Path(model_id).expanduser()
        path = candidate if candidate.is_absolute() else self._models_dir / model_id
        if not path.exists():
            raise ModelLoadError(f"Model '{model_id}' not found at {path}")
        return path
