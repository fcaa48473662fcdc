"""File I/O utilities for the attachment queue."""
import json
import os
from collections.abc import Sequence

from loguru import logger
from pydantic import BaseModel

from attachment_queue.exceptions import StorageError


def build_path(*args: str, make_dir: bool = True) -> str:
    """
    Join path components and optionally create parent directories.

    :param args: Path components to join
    :param make_dir: If True, create parent directories (default True)
    :return: The joined path
    :raises StorageError: If directory creation fails
    """
    path = os.path.join(*args)
    if make_dir:
        parent_dir = os.path.dirname(path)
        if parent_dir:
            ensure_dir(parent_dir)
    return path


def ensure_dir(path: str) -> str:
    """
    Create a directory and its parents; succeeds if it already exists.

    :param path: Directory to create
    :return: The directory path
    :raises StorageError: If the directory cannot be created
    """
    try:
        os.makedirs(path, exist_ok=True)
    except FileExistsError as e:
        raise StorageError(f"'{path}' exists and is not a directory") from e
    except PermissionError as e:
        raise StorageError(f"Permission denied creating directory '{path}': {e}") from e
    except OSError as e:
        raise StorageError(f"Failed to create directory '{path}': {e}") from e
    return path


def write_model(model: BaseModel | Sequence[BaseModel], path: str) -> None:
    """
    Write a Pydantic model or sequence of models to a JSON file.

    The file is written next to its destination and moved into place, so a
    reader never observes a partially written queue.

    :param model: A single model or sequence of models to serialize
    :param path: File path to write to
    :raises StorageError: If file write fails
    """
    tmp_path = f'{path}.tmp'
    try:
        with open(tmp_path, 'w') as out:
            if isinstance(model, Sequence) and not isinstance(model, BaseModel):
                json.dump([m.model_dump(mode='json') for m in model], out, indent=2)
            else:
                json.dump(model.model_dump(mode='json'), out, indent=2)
        os.replace(tmp_path, path)
        logger.debug(f"Wrote model data to {path}")
    except PermissionError as e:
        raise StorageError(f"Permission denied writing to '{path}': {e}") from e
    except OSError as e:
        raise StorageError(f"Failed to write to '{path}': {e}") from e


def read_model_json(path: str) -> dict | list:
    """
    Read JSON data from a file.

    :param path: File path to read from
    :return: Parsed JSON data
    :raises StorageError: If file read fails
    :raises ValueError: If JSON is invalid
    """
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise StorageError(f"File not found: '{path}'") from e
    except PermissionError as e:
        raise StorageError(f"Permission denied reading '{path}': {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in '{path}': {e}") from e
    except OSError as e:
        raise StorageError(f"Failed to read '{path}': {e}") from e
