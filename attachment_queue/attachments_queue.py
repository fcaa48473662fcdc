import asyncio
import os
import sys
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import pydantic
from loguru import logger
from pydantic import BaseModel, Field, field_validator

from attachment_queue.database import AppDatabase
from attachment_queue.exceptions import ConfigurationError, InitializationError, StorageError, ValidationError
from attachment_queue.models.attachment import Attachment, AttachmentState
from attachment_queue.services.attachments_service import AttachmentsService
from attachment_queue.services.syncing_service import ErrorCallback, SyncingService
from attachment_queue.storage.local_storage import LocalStorageAdapter
from attachment_queue.storage.remote_storage import RemoteStorageAdapter
from attachment_queue.utils.paths import build_filename, join_within
from attachment_queue.utils.settings import get_settings
from attachment_queue.utils.streams import WatchHandle
from attachment_queue.utils.validation import (
    validate_extension,
    validate_filename,
    validate_relative_dir,
    validate_size,
)
from attachment_queue.watcher import ReconciliationWatcher


class QueueOptions(BaseModel):
    """Recognized options of an attachment queue, validated at construction."""
    attachment_directory_name: str
    attachments_queue_table_name: str = Field(min_length=1)
    on_download_error: Callable[..., Any] | None = None
    on_upload_error: Callable[..., Any] | None = None
    interval_in_minutes: float = Field(gt=0)
    subdirectories: list[str] = Field(default_factory=list)
    file_extension: str | None = None

    @field_validator('attachment_directory_name')
    @classmethod
    def _check_directory(cls, value: str) -> str:
        validate_relative_dir(value, 'attachment_directory_name')
        return value.strip('/')

    @field_validator('subdirectories')
    @classmethod
    def _check_subdirectories(cls, value: list[str]) -> list[str]:
        for subdirectory in value:
            validate_relative_dir(subdirectory, 'subdirectory')
        return value

    @field_validator('file_extension')
    @classmethod
    def _check_extension(cls, value: str | None) -> str | None:
        return validate_extension(value)


class AbstractAttachmentQueue(ABC):
    """
    Orchestrates the attachment queue.

    Wires the queue store, the syncing service and the storage adapters
    together, prepares the attachment directory and owns the triggers that
    run synchronization: queue changes, a periodic timer and reconnection of
    the application database. Variants implement watch_ids, save_file and
    delete_file for their kind of asset.

    Example usage:
        queue = PhotoAttachmentQueue(db, remote_storage)
        await queue.init()
        await queue.save_file('photo-1', size=2048)
    """

    # Seconds to wait before resubscribing to a failed status stream
    resubscribe_delay: float = 1.0

    def __init__(
        self,
        db: AppDatabase,
        remote_storage: RemoteStorageAdapter,
        attachment_directory_name: str | None = None,
        attachments_queue_table_name: str | None = None,
        on_download_error: ErrorCallback | None = None,
        on_upload_error: ErrorCallback | None = None,
        interval_in_minutes: float | None = None,
        subdirectories: list[str] | None = None,
        file_extension: str | None = None,
        local_storage: LocalStorageAdapter | None = None,
        attachments_service: AttachmentsService | None = None,
        configure_logging: bool = True
    ) -> None:
        """
        :param db: Synced application database the queue reacts to
        :param remote_storage: Remote object store adapter
        :param attachment_directory_name: Directory attachments are stored in (default 'attachments')
        :param attachments_queue_table_name: Queue table/namespace identifier
        :param on_download_error: Optional callback(attachment, exception), True archives the record
        :param on_upload_error: Optional callback(attachment, exception), True archives the record
        :param interval_in_minutes: Periodic sync interval (default 5)
        :param subdirectories: Subdirectories created inside the attachment directory on init
        :param file_extension: Extension for downloads queued by reconciliation
        :param local_storage: Local filesystem adapter, defaults to the settings' storage root
        :param attachments_service: Queue store, defaults to a JSON table under the storage root
        :param configure_logging: Configure loguru from ATTACHMENTS_DEBUG (default True)
        :raises ConfigurationError: If an option is invalid
        """
        if configure_logging:
            self._init_logger()
        settings = get_settings()
        try:
            self.options = QueueOptions(
                attachment_directory_name=_default(attachment_directory_name, settings.attachment_directory_name),
                attachments_queue_table_name=_default(
                    attachments_queue_table_name, settings.attachments_queue_table_name
                ),
                on_download_error=on_download_error,
                on_upload_error=on_upload_error,
                interval_in_minutes=_default(interval_in_minutes, settings.interval_in_minutes),
                subdirectories=subdirectories or [],
                file_extension=file_extension,
            )
        except (pydantic.ValidationError, ValidationError) as e:
            raise ConfigurationError(f"Invalid attachment queue options: {e}") from e

        self.db = db
        self.remote_storage = remote_storage
        self.local_storage = local_storage or LocalStorageAdapter()
        self.attachments_service = attachments_service or AttachmentsService(
            self.attachments_queue_table_name,
            path=os.path.join(self.local_storage.storage_root, f'{self.attachments_queue_table_name}.json')
        )
        self.syncing_service = SyncingService(
            self.attachments_service,
            self.remote_storage,
            self.local_storage,
            self.get_local_uri,
            self.get_local_file_path_suffix,
            on_download_error=self.options.on_download_error,
            on_upload_error=self.options.on_upload_error,
        )

        self.watch_handle: WatchHandle | None = None
        self.status_handle: WatchHandle | None = None
        self._initialized = False

    @property
    def attachment_directory_name(self) -> str:
        return self.options.attachment_directory_name

    @property
    def attachments_queue_table_name(self) -> str:
        return self.options.attachments_queue_table_name

    @property
    def interval_in_minutes(self) -> float:
        return self.options.interval_in_minutes

    @property
    def subdirectories(self) -> list[str]:
        return self.options.subdirectories

    @property
    def file_extension(self) -> str | None:
        return self.options.file_extension

    @abstractmethod
    def watch_ids(self, file_extension: str | None = None) -> WatchHandle:
        """Start watching the ids this variant's attachments are referenced by."""

    @abstractmethod
    async def save_file(self, attachment_id: str, size: int, media_type: str | None = None) -> Attachment:
        """Queue a local file for upload."""

    @abstractmethod
    async def delete_file(self, attachment_id: str) -> Attachment:
        """Queue an attachment for deletion."""

    async def init(self) -> None:
        """
        Bring the queue to a running state.

        1. Create the attachment directory and its subdirectories
        2. Start reconciliation of referenced ids
        3. Run a sync whenever a record is queued, and periodically as a backstop
        4. Run a sync whenever the database reconnects

        Calling init again only re-checks the directories.

        :raises InitializationError: If a directory cannot be created
        """
        storage_directory = await self.get_storage_directory()
        try:
            await self.local_storage.make_dir(storage_directory)
            for subdirectory in self.subdirectories:
                await self.local_storage.make_dir(join_within(storage_directory, subdirectory))
        except StorageError as e:
            raise InitializationError(f"Could not prepare attachment directory: {e}") from e

        if self._initialized:
            logger.debug("Attachment queue already initialized")
            return
        self._initialized = True

        self.watch_handle = self.watch_ids(file_extension=self.file_extension)
        self.syncing_service.watch_attachments()
        self.syncing_service.start_periodic_sync(self.interval_in_minutes)
        self.status_handle = WatchHandle.spawn(self._watch_connectivity(), 'attachment-connectivity-watch')
        logger.debug(f"Attachment queue {self.attachments_queue_table_name} initialized at {storage_directory}")

    async def close(self) -> None:
        """Stop every watcher and timer; queued records are kept."""
        handles = [h for h in (self.watch_handle, self.status_handle) if h is not None]
        handles += self.syncing_service.handles
        for handle in handles:
            handle.cancel()
        self.syncing_service.close()
        await asyncio.gather(*(h.wait() for h in handles))

    async def __aenter__(self) -> "AbstractAttachmentQueue":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def watch_referenced_ids(self, query: str, file_extension: str | None = None) -> WatchHandle:
        """
        Reconcile the ids selected by query against the queue.

        :param query: Query whose rows are the referenced attachment ids
        :param file_extension: Extension used for the queued downloads
        :return: Cancellation handle of the watcher
        """
        watcher = ReconciliationWatcher(
            lambda: self.db.watch_referenced_ids(query),
            self.attachments_service.get_attachment_ids,
            self.syncing_service.process_ids,
            file_extension=file_extension,
            name=f'{self.attachments_queue_table_name}-reconciliation',
        )
        return watcher.start()

    async def queue_upload(
        self,
        attachment_id: str,
        size: int,
        extension: str | None,
        media_type: str | None
    ) -> Attachment:
        """
        Upsert a record asking for the local file of attachment_id to be uploaded.

        :raises ValidationError: If the id, extension or size is invalid
        """
        validate_size(size)
        filename = build_filename(attachment_id, extension)
        attachment = Attachment(
            id=attachment_id,
            filename=filename,
            local_uri=self.get_local_file_path_suffix(filename),
            media_type=media_type,
            size=size,
            state=AttachmentState.QUEUED_UPLOAD,
        )
        return await self.attachments_service.save_attachment(attachment)

    async def queue_delete(self, attachment_id: str, extension: str | None) -> Attachment:
        """
        Upsert a record asking for attachment_id to be deleted, whatever its state.

        :raises ValidationError: If the id or extension is invalid
        """
        filename = build_filename(attachment_id, extension)
        attachment = Attachment(
            id=attachment_id,
            filename=filename,
            local_uri=self.get_local_file_path_suffix(filename),
            state=AttachmentState.QUEUED_DELETE,
        )
        return await self.attachments_service.save_attachment(attachment)

    def get_local_file_path_suffix(self, filename: str) -> str:
        """
        Returns the relative path stored as a record's local_uri.

        Example: filename: "attachment-1.jpg" returns "attachments/attachment-1.jpg"
        """
        validate_filename(filename)
        return f'{self.attachment_directory_name}/{filename}'

    async def get_storage_directory(self) -> str:
        """
        Returns the directory where attachments are stored on this device.

        Example: "/home/user/.attachment_queue/attachments"
        """
        user_storage_directory = await self.local_storage.get_user_storage_directory()
        return join_within(user_storage_directory, self.attachment_directory_name)

    async def get_local_uri(self, file_path: str) -> str:
        """
        Returns the absolute path of a record's local_uri.

        Example: file_path: "attachments/attachment-1.jpg" returns
        "/home/user/.attachment_queue/attachments/attachment-1.jpg"

        :raises ValidationError: If file_path points outside the attachment directory
        """
        user_storage_directory = await self.local_storage.get_user_storage_directory()
        storage_directory = await self.get_storage_directory()
        path = join_within(user_storage_directory, file_path)
        return join_within(storage_directory, os.path.relpath(path, storage_directory))

    async def _watch_connectivity(self) -> None:
        connected = False
        while True:
            try:
                async for status in self.db.status_stream():
                    if status.connected and not connected:
                        logger.debug("Database connected, triggering attachment sync")
                        await self.syncing_service.trigger_sync('reconnection')
                    connected = status.connected
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # The last known status carries over, so only a real transition triggers a sync
                logger.warning(
                    f"Connectivity stream failed after {type(e).__name__}: {e}. "
                    f"Resubscribing in {self.resubscribe_delay:.1f}s"
                )
                await asyncio.sleep(self.resubscribe_delay)
                continue
            logger.debug("Connectivity stream ended")
            return

    def _init_logger(self) -> None:
        """Configure logging based on the ATTACHMENTS_DEBUG environment variable.

        If ATTACHMENTS_DEBUG is set to a truthy value, enables DEBUG level logging.
        Otherwise, only WARNING and above are shown.
        """
        logger.remove()
        settings = get_settings()
        level = "DEBUG" if settings.debug else "WARNING"
        log_format = (
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ) if settings.debug else "<level>{message}</level>"
        logger.add(sys.stderr, level=level, format=log_format)


def _default(value, fallback):
    return fallback if value is None else value
