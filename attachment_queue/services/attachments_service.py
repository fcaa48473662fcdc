import asyncio
import os
import time
from collections.abc import AsyncIterator, Iterable

from loguru import logger
from pydantic import ValidationError as ModelValidationError

from attachment_queue.exceptions import AttachmentNotFoundError, StorageError
from attachment_queue.models.attachment import Attachment, AttachmentState
from attachment_queue.utils.io import ensure_dir, read_model_json, write_model
from attachment_queue.utils.streams import LiveValue


def _now_ms() -> int:
    return int(time.time() * 1000)


class AttachmentsService:
    """
    Queue store for attachment records.

    Records are keyed by id and every write is an upsert. Writes are
    serialized with an asyncio lock so that upsert and insert-if-absent are
    atomic with respect to each other. When a path is given, the table is
    persisted as a JSON list after every write.
    """

    def __init__(self, table_name: str = 'attachments_queue', path: str | None = None):
        """
        Initialize the queue store.

        :param table_name: Queue table/namespace identifier, used in logs
        :param path: Optional JSON file the table is persisted to
        """
        self.table_name = table_name
        self.path = path
        self._records: dict[str, Attachment] = {}
        self._last_timestamp = 0
        self._loaded = path is None
        self._lock = asyncio.Lock()
        self._load_lock = asyncio.Lock()
        self._queued = LiveValue[list[Attachment]]()

    async def get_attachment(self, attachment_id: str) -> Attachment | None:
        await self._ensure_loaded()
        record = self._records.get(attachment_id)
        return record.model_copy() if record else None

    async def get_attachments(self) -> list[Attachment]:
        """All records ordered by last write."""
        await self._ensure_loaded()
        return [r.model_copy() for r in sorted(self._records.values(), key=lambda r: r.timestamp)]

    async def get_attachment_ids(self) -> set[str]:
        """Point-in-time set of every tracked id, archived records included."""
        await self._ensure_loaded()
        return set(self._records)

    async def get_queued_attachments(self) -> list[Attachment]:
        """Records with work pending, oldest write first."""
        await self._ensure_loaded()
        return self._snapshot_queued()

    async def save_attachment(self, attachment: Attachment) -> Attachment:
        """
        Upsert a record by id.

        :param attachment: Record to persist
        :return: The persisted record
        """
        saved = await self.save_attachments([attachment])
        return saved[0]

    async def save_attachments(self, attachments: Iterable[Attachment]) -> list[Attachment]:
        """Upsert several records in one write."""
        async with self._lock:
            await self._ensure_loaded()
            records = dict(self._records)
            saved = [self._put(records, a) for a in attachments]
            await self._commit(records)
        logger.debug(f"Saved {len(saved)} record(s) to {self.table_name}")
        return [a.model_copy() for a in saved]

    async def save_new_attachments(self, attachments: Iterable[Attachment]) -> list[Attachment]:
        """
        Insert only records whose id is not tracked yet.

        An id queued by another writer since the caller last read the table is
        left untouched, so its state never regresses.

        :return: The records that were actually inserted
        """
        async with self._lock:
            await self._ensure_loaded()
            records = dict(self._records)
            inserted = [self._put(records, a) for a in attachments if a.id not in records]
            if inserted:
                await self._commit(records)
        if inserted:
            logger.debug(f"Inserted {len(inserted)} new record(s) into {self.table_name}")
        return [a.model_copy() for a in inserted]

    async def update_attachment(self, attachment_id: str, **changes) -> Attachment:
        """
        Update fields of an existing record.

        :raises AttachmentNotFoundError: If the id is not tracked
        """
        async with self._lock:
            await self._ensure_loaded()
            current = self._records.get(attachment_id)
            if current is None:
                raise AttachmentNotFoundError(f"Attachment '{attachment_id}' is not in {self.table_name}")
            records = dict(self._records)
            updated = self._put(records, current.model_copy(update=changes))
            await self._commit(records)
        return updated.model_copy()

    async def compare_and_update(self, attachment: Attachment, **changes) -> Attachment | None:
        """
        Update a record only if nobody wrote it since `attachment` was read.

        Used by the syncing service so that finishing a transfer never
        overwrites a newer request for the same id, such as a delete.

        :return: The updated record, or None if it changed or disappeared
        """
        async with self._lock:
            await self._ensure_loaded()
            current = self._records.get(attachment.id)
            if current is None or current.timestamp != attachment.timestamp:
                logger.debug(f"Attachment {attachment.id} changed during sync, keeping newer record")
                return None
            records = dict(self._records)
            updated = self._put(records, current.model_copy(update=changes))
            await self._commit(records)
        return updated.model_copy()

    async def ignore_attachment(self, attachment_id: str) -> Attachment:
        """Archive a record so that no sync pass picks it up again."""
        return await self.update_attachment(attachment_id, state=AttachmentState.ARCHIVED)

    async def delete_attachment(self, attachment_id: str, expected_timestamp: int | None = None) -> bool:
        """
        Remove a record entirely.

        :param expected_timestamp: Only remove the record if it was last written at this time
        :return: True if a record was removed
        """
        async with self._lock:
            await self._ensure_loaded()
            current = self._records.get(attachment_id)
            if current is not None and expected_timestamp is not None and current.timestamp != expected_timestamp:
                return False
            records = dict(self._records)
            removed = records.pop(attachment_id, None)
            if removed is not None:
                await self._commit(records)
        return removed is not None

    async def clear_queue(self) -> None:
        logger.info(f"Clearing attachment queue {self.table_name}")
        async with self._lock:
            await self._ensure_loaded()
            await self._commit({})

    async def watch_queued(self) -> AsyncIterator[list[Attachment]]:
        """
        Live stream of the queued records.

        Each item is the full list of records with work pending at that time,
        starting with the current one.
        """
        await self._ensure_loaded()
        if self._queued.value is None and not self._queued.closed:
            self._queued.publish(self._snapshot_queued())
        async for snapshot in self._queued.subscribe():
            yield snapshot

    def close(self) -> None:
        self._queued.close()

    def _put(self, records: dict[str, Attachment], attachment: Attachment) -> Attachment:
        # Timestamps double as write revisions, so they must strictly increase
        self._last_timestamp = max(_now_ms(), self._last_timestamp + 1)
        record = attachment.model_copy(update={'timestamp': self._last_timestamp})
        records[record.id] = record
        return record

    def _snapshot_queued(self) -> list[Attachment]:
        queued = [r for r in self._records.values() if r.is_queued]
        return [r.model_copy() for r in sorted(queued, key=lambda r: r.timestamp)]

    async def _commit(self, records: dict[str, Attachment]) -> None:
        # The table only changes once the write has succeeded
        if self.path is not None:
            await asyncio.to_thread(write_model, list(records.values()), self.path)
        self._records = records
        if not self._queued.closed:
            self._queued.publish(self._snapshot_queued())

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            if os.path.exists(self.path):
                try:
                    data = await asyncio.to_thread(read_model_json, self.path)
                except ValueError as e:
                    raise StorageError(f"Queue file '{self.path}' is corrupt: {e}") from e
                try:
                    records = [Attachment.model_validate(item) for item in data]
                except (TypeError, ModelValidationError) as e:
                    raise StorageError(f"Queue file '{self.path}' holds a malformed record: {e}") from e
                for record in records:
                    self._records[record.id] = record
                    self._last_timestamp = max(self._last_timestamp, record.timestamp)
                logger.debug(f"Loaded {len(self._records)} record(s) from {self.path}")
            else:
                parent_dir = os.path.dirname(self.path)
                if parent_dir:
                    await asyncio.to_thread(ensure_dir, parent_dir)
            self._loaded = True
