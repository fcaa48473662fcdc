"""Local filesystem adapter for attachment files."""
import asyncio
import os

from loguru import logger

from attachment_queue.exceptions import StorageError
from attachment_queue.utils.io import build_path, ensure_dir
from attachment_queue.utils.settings import get_settings


class LocalStorageAdapter:
    """
    Reads and writes attachment files under the user storage root.

    Blocking filesystem calls run in a worker thread so they never stall the
    event loop that drives the queue.
    """

    def __init__(self, storage_root: str | None = None):
        """
        :param storage_root: User storage root, defaults to ATTACHMENTS_STORAGE_ROOT
        """
        self.storage_root = storage_root or get_settings().storage_root

    async def get_user_storage_directory(self) -> str:
        return self.storage_root

    async def make_dir(self, path: str) -> str:
        """
        Create a directory; succeeds if it already exists.

        :raises StorageError: If the directory cannot be created
        """
        await asyncio.to_thread(ensure_dir, path)
        logger.debug(f"Ensured directory {path}")
        return path

    async def file_exists(self, path: str) -> bool:
        return await asyncio.to_thread(os.path.isfile, path)

    async def read_file(self, path: str) -> bytes:
        """
        :raises StorageError: If the file is missing or unreadable
        """
        return await asyncio.to_thread(_read_bytes, path)

    async def save_file(self, path: str, data: bytes) -> int:
        """
        Write data to path, creating parent directories as needed.

        :return: Number of bytes written
        :raises StorageError: If the file cannot be written
        """
        return await asyncio.to_thread(_write_bytes, path, data)

    async def delete_file(self, path: str) -> bool:
        """
        Remove a file if present.

        :return: True if a file was removed
        :raises StorageError: If the file exists but cannot be removed
        """
        return await asyncio.to_thread(_remove, path)


def _read_bytes(path: str) -> bytes:
    try:
        with open(path, 'rb') as f:
            return f.read()
    except FileNotFoundError as e:
        raise StorageError(f"File not found: '{path}'") from e
    except PermissionError as e:
        raise StorageError(f"Permission denied reading '{path}': {e}") from e
    except OSError as e:
        raise StorageError(f"Failed to read '{path}': {e}") from e


def _write_bytes(path: str, data: bytes) -> int:
    build_path(path)
    try:
        with open(path, 'wb') as out:
            written = out.write(data)
    except PermissionError as e:
        raise StorageError(f"Permission denied writing to '{path}': {e}") from e
    except OSError as e:
        raise StorageError(f"Failed to write to '{path}': {e}") from e
    logger.debug(f"Wrote {written} bytes to {path}")
    return written


def _remove(path: str) -> bool:
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    except OSError as e:
        raise StorageError(f"Failed to delete '{path}': {e}") from e
    return True
