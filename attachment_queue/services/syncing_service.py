import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterable

from loguru import logger

from attachment_queue.exceptions import StorageError, ValidationError
from attachment_queue.models.attachment import Attachment, AttachmentState
from attachment_queue.services.attachments_service import AttachmentsService
from attachment_queue.storage.local_storage import LocalStorageAdapter
from attachment_queue.storage.remote_storage import RemoteStorageAdapter
from attachment_queue.utils.paths import build_filename
from attachment_queue.utils.streams import WatchHandle

# Return True to archive the attachment instead of retrying it
ErrorCallback = Callable[[Attachment, Exception], bool | Awaitable[bool]]


class SyncingService:
    """
    Drains queued uploads, downloads and deletes against remote storage.

    Every trigger (queue changes, the periodic timer, reconnection) goes
    through run_sync, which never lets two passes overlap. A trigger that
    arrives while a pass is running is folded into one follow-up pass.
    """

    def __init__(
        self,
        attachments_service: AttachmentsService,
        remote_storage: RemoteStorageAdapter,
        local_storage: LocalStorageAdapter,
        get_local_uri: Callable[[str], Awaitable[str]],
        get_local_file_path_suffix: Callable[[str], str],
        on_download_error: ErrorCallback | None = None,
        on_upload_error: ErrorCallback | None = None
    ):
        """
        Initialize the syncing service.

        :param attachments_service: Queue store holding the records
        :param remote_storage: Remote object store adapter
        :param local_storage: Local filesystem adapter
        :param get_local_uri: Resolves a record's local_uri to an absolute path
        :param get_local_file_path_suffix: Builds a record's local_uri from its filename
        :param on_download_error: Optional callback(attachment, exception), True archives
        :param on_upload_error: Optional callback(attachment, exception), True archives
        """
        self.attachments_service = attachments_service
        self.remote_storage = remote_storage
        self.local_storage = local_storage
        self.get_local_uri = get_local_uri
        self.get_local_file_path_suffix = get_local_file_path_suffix
        self.on_download_error = on_download_error
        self.on_upload_error = on_upload_error

        self._lock = asyncio.Lock()
        self._rerun_requested = False
        self._handles: list[WatchHandle] = []

    @property
    def is_syncing(self) -> bool:
        return self._lock.locked()

    async def run_sync(self) -> bool:
        """
        Run one synchronization pass, or fold into the pass already running.

        :return: True if this call ran the pass, False if it was coalesced
        """
        if self._lock.locked():
            self._rerun_requested = True
            logger.debug("Sync already in progress, scheduling a follow-up pass")
            return False

        async with self._lock:
            while True:
                self._rerun_requested = False
                attachments = await self.attachments_service.get_queued_attachments()
                await self.handle_sync(attachments)
                if not self._rerun_requested:
                    break
        return True

    async def handle_sync(self, attachments: Iterable[Attachment]) -> None:
        """Process each queued record once; one failure never stops the rest."""
        attachments = list(attachments)
        if attachments:
            logger.debug(f"Syncing {len(attachments)} queued attachment(s)")
        for attachment in attachments:
            if attachment.state == AttachmentState.QUEUED_DOWNLOAD:
                await self.download_attachment(attachment)
            elif attachment.state == AttachmentState.QUEUED_UPLOAD:
                await self.upload_attachment(attachment)
            elif attachment.state == AttachmentState.QUEUED_DELETE:
                await self.delete_attachment(attachment)

    async def upload_attachment(self, attachment: Attachment) -> bool:
        """
        Upload the local file of a queued record and mark it synced.

        :return: True if the upload succeeded
        """
        try:
            if not attachment.local_uri:
                raise StorageError(f"Attachment {attachment.id} has no local_uri to upload from")
            path = await self.get_local_uri(attachment.local_uri)
            data = await self.local_storage.read_file(path)
            await self.remote_storage.upload_file(attachment.filename, data, attachment.media_type)
        except Exception as e:
            await self._handle_transfer_error(attachment, e, self.on_upload_error, 'upload')
            return False

        await self.attachments_service.compare_and_update(attachment, state=AttachmentState.SYNCED)
        logger.debug(f"Uploaded attachment {attachment.id}")
        return True

    async def download_attachment(self, attachment: Attachment) -> bool:
        """
        Fetch a referenced file into local storage and mark it synced.

        A file that is already on disk is not downloaded again.

        :return: True if the file is now present locally
        """
        local_uri = attachment.local_uri or self.get_local_file_path_suffix(attachment.filename)
        changes: dict = {'state': AttachmentState.SYNCED, 'local_uri': local_uri}
        try:
            path = await self.get_local_uri(local_uri)
            if await self.local_storage.file_exists(path):
                logger.debug(f"Attachment {attachment.id} already on disk, marking synced")
            else:
                data = await self.remote_storage.download_file(attachment.filename)
                changes['size'] = await self.local_storage.save_file(path, data)
        except Exception as e:
            await self._handle_transfer_error(attachment, e, self.on_download_error, 'download')
            return False

        await self.attachments_service.compare_and_update(attachment, **changes)
        logger.debug(f"Downloaded attachment {attachment.id}")
        return True

    async def delete_attachment(self, attachment: Attachment) -> bool:
        """
        Remove the local and remote copies, then drop the record.

        A failed delete stays queued and is retried on the next pass.

        :return: True if the record was removed
        """
        try:
            local_uri = attachment.local_uri or self.get_local_file_path_suffix(attachment.filename)
            await self.local_storage.delete_file(await self.get_local_uri(local_uri))
            await self.remote_storage.delete_file(attachment.filename)
        except Exception as e:
            logger.warning(f"Failed to delete attachment {attachment.id}, will retry: {e}")
            return False

        removed = await self.attachments_service.delete_attachment(
            attachment.id, expected_timestamp=attachment.timestamp
        )
        logger.debug(f"Deleted attachment {attachment.id}")
        return removed

    async def process_ids(self, ids: Iterable[str], file_extension: str | None = None) -> list[Attachment]:
        """
        Queue downloads for ids referenced by application data.

        Ids that are already tracked are left as they are, so repeating a
        call, or racing it with save/delete, never duplicates or regresses a
        record.
        Ids that cannot name a file are logged and skipped without holding
        back the rest.

        :return: The records that were newly queued
        """
        attachments = []
        for attachment_id in sorted(ids):
            try:
                filename = build_filename(attachment_id, file_extension)
            except ValidationError as e:
                logger.warning(f"Skipping unusable attachment id {attachment_id!r}: {e}")
                continue
            attachments.append(Attachment(
                id=attachment_id,
                filename=filename,
                local_uri=self.get_local_file_path_suffix(filename),
                state=AttachmentState.QUEUED_DOWNLOAD,
            ))
        queued = await self.attachments_service.save_new_attachments(attachments)
        if queued:
            logger.debug(f"Queued {len(queued)} attachment(s) for download")
        return queued

    def watch_attachments(self) -> WatchHandle:
        """Run a sync pass whenever a record newly enters a queued state."""
        handle = WatchHandle.spawn(self._watch_queue(), 'attachment-queue-watch')
        self._handles.append(handle)
        return handle

    def start_periodic_sync(self, interval_in_minutes: float) -> WatchHandle:
        """Run a sync pass every interval as a backstop for missed triggers."""
        logger.debug(f"Starting periodic sync every {interval_in_minutes} minute(s)")
        handle = WatchHandle.spawn(self._periodic_sync(interval_in_minutes * 60), 'attachment-periodic-sync')
        self._handles.append(handle)
        return handle

    @property
    def handles(self) -> list[WatchHandle]:
        return list(self._handles)

    def close(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()

    async def _watch_queue(self) -> None:
        seen: set[tuple[str, int]] = set()
        async for queued in self.attachments_service.watch_queued():
            keys = {(a.id, a.timestamp) for a in queued}
            fresh = keys - seen
            seen = keys
            if fresh:
                await self.trigger_sync('queue change')

    async def _periodic_sync(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            await self.trigger_sync('periodic timer')

    async def trigger_sync(self, trigger: str) -> None:
        """Run a pass on behalf of a background trigger, logging instead of raising."""
        try:
            await self.run_sync()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Sync triggered by {trigger} failed: {e}")

    async def _handle_transfer_error(
        self,
        attachment: Attachment,
        error: Exception,
        callback: ErrorCallback | None,
        action: str
    ) -> None:
        if await _should_archive(callback, attachment, error):
            archived = await self.attachments_service.compare_and_update(
                attachment, state=AttachmentState.ARCHIVED
            )
            if archived is not None:
                logger.info(f"Attachment {attachment.id} has been archived after {action} error: {error}")
            return
        logger.warning(f"Failed to {action} attachment {attachment.id}, will retry: {error}")


async def _should_archive(callback: ErrorCallback | None, attachment: Attachment, error: Exception) -> bool:
    """Ask the error callback whether to archive; no callback or a failing one means retry."""
    if callback is None:
        return False
    try:
        decision = callback(attachment, error)
        if inspect.isawaitable(decision):
            decision = await decision
    except Exception as e:
        logger.warning(f"Error callback for attachment {attachment.id} raised {type(e).__name__}: {e}")
        return False
    return bool(decision)
