"""Shared fixtures for attachment queue tests."""
import asyncio

import pytest
import pytest_asyncio

from attachment_queue.exceptions import RemoteStorageError
from attachment_queue.models.status import ConnectionStatus
from attachment_queue.photo_queue import PhotoAttachmentQueue
from attachment_queue.services.attachments_service import AttachmentsService
from attachment_queue.storage.local_storage import LocalStorageAdapter
from attachment_queue.utils.streams import LiveValue


class FakeDatabase:
    """Application database whose referenced ids and status are pushed by the test."""

    def __init__(self):
        self.ids: LiveValue[set[str]] = LiveValue()
        self.status: LiveValue[ConnectionStatus] = LiveValue(ConnectionStatus(connected=False))
        self.queries: list[str] = []

    def watch_referenced_ids(self, query):
        self.queries.append(query)
        return self.ids.subscribe()

    def status_stream(self):
        return self.status.subscribe()


class FakeRemoteStorage:
    """In-memory object store that records every call."""

    def __init__(self):
        self.objects: dict[str, bytes] = {}
        self.uploads: list[str] = []
        self.downloads: list[str] = []
        self.deletes: list[str] = []
        self.failing: set[str] = set()

    async def upload_file(self, filename, data, media_type=None):
        self.uploads.append(filename)
        if filename in self.failing:
            raise RemoteStorageError(f"upload of {filename} rejected")
        self.objects[filename] = data

    async def download_file(self, filename):
        self.downloads.append(filename)
        if filename in self.failing or filename not in self.objects:
            raise RemoteStorageError(f"{filename} not found")
        return self.objects[filename]

    async def delete_file(self, filename):
        self.deletes.append(filename)
        if filename in self.failing:
            raise RemoteStorageError(f"delete of {filename} rejected")
        self.objects.pop(filename, None)


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def fake_remote():
    return FakeRemoteStorage()


@pytest.fixture
def storage_root(tmp_path):
    return str(tmp_path / 'storage')


@pytest.fixture
def attachments_service():
    return AttachmentsService()


@pytest.fixture
def photo_queue(fake_db, fake_remote, storage_root, attachments_service):
    """A photo queue over fakes, not yet initialized."""
    return PhotoAttachmentQueue(
        fake_db,
        fake_remote,
        local_storage=LocalStorageAdapter(storage_root),
        attachments_service=attachments_service,
        configure_logging=False,
    )


@pytest_asyncio.fixture
async def running_queue(photo_queue):
    """A photo queue that has been initialized and is closed after the test."""
    await photo_queue.init()
    yield photo_queue
    await photo_queue.close()


@pytest.fixture
def eventually():
    """Wait until an async or sync predicate holds, failing after a timeout."""
    async def wait(predicate, timeout=2.0):
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            result = predicate()
            if asyncio.iscoroutine(result):
                result = await result
            if result:
                return
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.01)
    return wait


@pytest.fixture
def sample_attachment_data():
    return {
        'id': 'photo-123',
        'filename': 'photo-123.jpg',
        'local_uri': 'attachments/photo-123.jpg',
        'media_type': 'image/jpeg',
        'size': 2048,
        'state': 1,
        'timestamp': 1700000000000,
    }
