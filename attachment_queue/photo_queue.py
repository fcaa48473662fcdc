from attachment_queue.attachments_queue import AbstractAttachmentQueue
from attachment_queue.database import AppDatabase
from attachment_queue.models.attachment import Attachment
from attachment_queue.storage.remote_storage import RemoteStorageAdapter
from attachment_queue.utils.streams import WatchHandle
from attachment_queue.utils.validation import validate_identifier

PHOTO_EXTENSION = 'jpg'
PHOTO_MEDIA_TYPE = 'image/jpeg'


class PhotoAttachmentQueue(AbstractAttachmentQueue):
    """
    Attachment queue for JPEG photos referenced by a column of application data.

    By default photos are referenced by `users.photo_id`.
    """

    def __init__(
        self,
        db: AppDatabase,
        remote_storage: RemoteStorageAdapter,
        table: str = 'users',
        column: str = 'photo_id',
        **options
    ) -> None:
        """
        :param db: Synced application database
        :param remote_storage: Remote object store adapter
        :param table: Table holding the photo references
        :param column: Column holding the photo ids
        :param options: Any AbstractAttachmentQueue option
        """
        validate_identifier(table, 'table')
        validate_identifier(column, 'column')
        self.table = table
        self.column = column
        if options.get('file_extension') is None:
            options['file_extension'] = PHOTO_EXTENSION
        super().__init__(db=db, remote_storage=remote_storage, **options)

    @property
    def query(self) -> str:
        return f'SELECT {self.column} FROM {self.table} WHERE {self.column} IS NOT NULL'

    def watch_ids(self, file_extension: str | None = None) -> WatchHandle:
        return self.watch_referenced_ids(self.query, file_extension or PHOTO_EXTENSION)

    async def save_file(self, attachment_id: str, size: int, media_type: str | None = None) -> Attachment:
        return await self.queue_upload(attachment_id, size, PHOTO_EXTENSION, media_type or PHOTO_MEDIA_TYPE)

    async def delete_file(self, attachment_id: str) -> Attachment:
        return await self.queue_delete(attachment_id, PHOTO_EXTENSION)
