"""Attachment Queue.

An asyncio attachment queue for offline-first applications. It keeps local
files, a local queue of attachment records and a remote object store in
step with the attachment ids referenced by an application's synced database.

Example usage:
    from attachment_queue import PhotoAttachmentQueue, HttpRemoteStorageAdapter

    async with PhotoAttachmentQueue(db, HttpRemoteStorageAdapter()) as queue:
        await queue.init()
        await queue.save_file('photo-1', size=2048)
"""

from attachment_queue.attachments_queue import AbstractAttachmentQueue, QueueOptions
from attachment_queue.database import AppDatabase
from attachment_queue.exceptions import (
    AttachmentQueueError,
    AttachmentNotFoundError,
    ConfigurationError,
    InitializationError,
    NetworkError,
    RemoteStorageError,
    StorageError,
    ValidationError,
)
from attachment_queue.photo_queue import PhotoAttachmentQueue
from attachment_queue.watcher import ReconciliationWatcher

# Models
from attachment_queue.models.attachment import Attachment, AttachmentState
from attachment_queue.models.status import ConnectionStatus

# Services
from attachment_queue.services.attachments_service import AttachmentsService
from attachment_queue.services.syncing_service import SyncingService

# Storage
from attachment_queue.storage.http_storage import HttpRemoteStorageAdapter
from attachment_queue.storage.local_storage import LocalStorageAdapter
from attachment_queue.storage.remote_storage import RemoteStorageAdapter
from attachment_queue.storage.s3_storage import S3RemoteStorageAdapter
from attachment_queue.utils.retry import RetryPolicy

# Streams
from attachment_queue.utils.streams import LiveValue, WatchHandle

__version__ = "0.1.0"

__all__ = [
    # Main entry points
    "AbstractAttachmentQueue",
    "PhotoAttachmentQueue",
    "QueueOptions",
    "ReconciliationWatcher",
    "AppDatabase",
    # Exceptions
    "AttachmentQueueError",
    "AttachmentNotFoundError",
    "ConfigurationError",
    "InitializationError",
    "NetworkError",
    "RemoteStorageError",
    "StorageError",
    "ValidationError",
    # Models
    "Attachment",
    "AttachmentState",
    "ConnectionStatus",
    # Services
    "AttachmentsService",
    "SyncingService",
    # Storage
    "HttpRemoteStorageAdapter",
    "LocalStorageAdapter",
    "RemoteStorageAdapter",
    "S3RemoteStorageAdapter",
    "RetryPolicy",
    # Streams
    "LiveValue",
    "WatchHandle",
]
