"""Contract for the synced application database the queue reacts to."""
from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from attachment_queue.models.status import ConnectionStatus


@runtime_checkable
class AppDatabase(Protocol):
    """
    The application's synced database, seen from the attachment queue.

    Both methods return a fresh live stream on every call, so a consumer that
    lost its stream resubscribes by calling again.
    """

    def watch_referenced_ids(self, query: str) -> AsyncIterator[set[str]]:
        """Full set of attachment ids referenced by `query`, re-emitted on every change."""
        ...

    def status_stream(self) -> AsyncIterator[ConnectionStatus]:
        """Connectivity snapshots, starting with the current one."""
        ...
