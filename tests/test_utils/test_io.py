"""Tests for I/O utilities."""
import json
import os
import tempfile

import pytest
from pydantic import BaseModel

from attachment_queue.exceptions import StorageError
from attachment_queue.utils.io import build_path, ensure_dir, write_model, read_model_json


class SampleModel(BaseModel):
    """Sample Pydantic model for testing."""
    id: str
    name: str
    value: int | None = None


class TestBuildPath:
    """Tests for build_path function."""

    def test_join_paths(self):
        """Should join path components."""
        result = build_path("/base", "sub", "file.txt", make_dir=False)
        assert result == "/base/sub/file.txt"

    def test_creates_directory(self):
        """Should create parent directories when make_dir=True."""
        with tempfile.TemporaryDirectory() as tmp:
            path = build_path(tmp, "new_dir", "file.txt", make_dir=True)
            assert os.path.exists(os.path.dirname(path))

    def test_no_create_directory(self):
        """Should not create directories when make_dir=False."""
        with tempfile.TemporaryDirectory() as tmp:
            path = build_path(tmp, "nonexistent", "file.txt", make_dir=False)
            assert not os.path.exists(os.path.dirname(path))


class TestEnsureDir:
    """Tests for ensure_dir function."""

    def test_creates_nested_directories(self, tmp_path):
        target = str(tmp_path / "a" / "b")
        assert ensure_dir(target) == target
        assert os.path.isdir(target)

    def test_existing_directory_is_fine(self, tmp_path):
        """Creating a directory twice should not fail."""
        target = str(tmp_path / "again")
        ensure_dir(target)
        ensure_dir(target)
        assert os.path.isdir(target)

    def test_file_in_the_way(self, tmp_path):
        """A file at the directory path should raise StorageError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        with pytest.raises(StorageError):
            ensure_dir(str(blocker))


class TestWriteModel:
    """Tests for write_model function."""

    def test_write_single_model(self, tmp_path):
        """Should write single model to JSON file."""
        path = str(tmp_path / "model.json")
        write_model(SampleModel(id="123", name="test", value=42), path)

        with open(path) as f:
            assert json.load(f) == {"id": "123", "name": "test", "value": 42}

    def test_write_model_list(self, tmp_path):
        """Should write list of models to JSON file."""
        path = str(tmp_path / "models.json")
        write_model([SampleModel(id="1", name="first"), SampleModel(id="2", name="second", value=100)], path)

        with open(path) as f:
            data = json.load(f)
        assert data == [
            {"id": "1", "name": "first", "value": None},
            {"id": "2", "name": "second", "value": 100},
        ]

    def test_write_replaces_existing_file(self, tmp_path):
        """A second write should replace the file and leave no temp file behind."""
        path = str(tmp_path / "models.json")
        write_model([SampleModel(id="1", name="first")], path)
        write_model([], path)

        with open(path) as f:
            assert json.load(f) == []
        assert not os.path.exists(f"{path}.tmp")

    def test_write_to_missing_directory(self, tmp_path):
        """Should raise StorageError when the directory does not exist."""
        with pytest.raises(StorageError, match="Failed to write|Permission denied"):
            write_model(SampleModel(id="1", name="x"), str(tmp_path / "missing" / "model.json"))


class TestReadModelJson:
    """Tests for read_model_json function."""

    def test_read_list(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text(json.dumps([1, 2, 3]))

        assert read_model_json(str(path)) == [1, 2, 3]

    def test_file_not_found(self):
        """Should raise StorageError for missing file."""
        with pytest.raises(StorageError, match="File not found"):
            read_model_json("/nonexistent/path/file.json")

    def test_invalid_json(self, tmp_path):
        """Should raise ValueError for invalid JSON."""
        path = tmp_path / "bad.json"
        path.write_text("not valid json {")

        with pytest.raises(ValueError, match="Invalid JSON"):
            read_model_json(str(path))
