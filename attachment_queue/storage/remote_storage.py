"""Contract for the remote object store attachments are synced against."""
from typing import Protocol, runtime_checkable


@runtime_checkable
class RemoteStorageAdapter(Protocol):
    """
    Byte-level transport to remote storage.

    Implementations raise NetworkError for transient failures and
    RemoteStorageError when the store rejects a request. The syncing service
    turns either into an error-callback decision.
    """

    async def upload_file(self, filename: str, data: bytes, media_type: str | None = None) -> None:
        ...

    async def download_file(self, filename: str) -> bytes:
        ...

    async def delete_file(self, filename: str) -> None:
        ...
