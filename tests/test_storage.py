"""Tests for recording and model path resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from pttscribe.config import Config
from pttscribe.errors import ContainerCreateError, ModelLoadError
from pttscribe.storage import Storage


@pytest.fixture
def storage(config: Config) -> Storage:
    return Storage(config)


class TestStorage:
    def test_recording_dir_created_and_stable(self, storage: Storage, config: Config) -> None:
        first = storage.recording_dir
        assert first.is_dir()
        assert storage.recording_dir == first
        assert first == config.storage.recording_dir

    def test_container_path(self, storage: Storage) -> None:
        assert storage.container_path == storage.recording_dir / "recorded.wav"

    def test_unwritable_data_dir(self, config: Config, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        config.storage.data_dir = blocker / "data"

        storage = Storage(config)
        with pytest.raises(ContainerCreateError, match="recording directory"):
            storage.container_path

    def test_resolve_model_in_models_dir(self, storage: Storage, config: Config) -> None:
        assert storage.resolve_model("base") == config.models_dir / "base"

    def test_resolve_absolute_model_path(self, storage: Storage, model_dir: Path) -> None:
        assert storage.resolve_model(str(model_dir)) == model_dir

    def test_missing_model(self, storage: Storage) -> None:
        with pytest.raises(ModelLoadError, match="large-v3"):
            storage.resolve_model("large-v3")

    def test_empty_model_id(self, storage: Storage) -> None:
        with pytest.raises(ModelLoadError):
            storage.resolve_model("")
