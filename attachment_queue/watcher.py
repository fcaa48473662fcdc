"""Reconciliation of ids referenced by application data against the queue."""
import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

from loguru import logger

from attachment_queue.utils.streams import WatchHandle

SnapshotFactory = Callable[[], AsyncIterator[set[str]]]
TrackedIdsReader = Callable[[], Awaitable[set[str]]]
DownloadEnqueuer = Callable[[set[str], str | None], Awaitable[object]]


class ReconciliationWatcher:
    """
    Keeps the queue's tracked ids a superset of the ids referenced by data.

    Every snapshot from the data stream is a full set. For each one, in
    arrival order, the tracked ids are read fresh from the queue store and
    only the difference is handed on for download. A failed read or enqueue
    skips that snapshot; the next snapshot corrects it. A failed stream is
    resubscribed through the factory.
    """

    def __init__(
        self,
        snapshots: SnapshotFactory,
        tracked_ids: TrackedIdsReader,
        enqueue_downloads: DownloadEnqueuer,
        file_extension: str | None = None,
        resubscribe_delay: float = 1.0,
        name: str = 'reconciliation-watcher'
    ):
        """
        :param snapshots: Returns a fresh live stream of referenced-id sets
        :param tracked_ids: Point-in-time read of ids already in the queue
        :param enqueue_downloads: Called with (new_ids, file_extension)
        :param file_extension: Extension passed along with every enqueue
        :param resubscribe_delay: Seconds to wait before resubscribing after a stream failure
        :param name: Name used for the task and in logs
        """
        self._snapshots = snapshots
        self._tracked_ids = tracked_ids
        self._enqueue_downloads = enqueue_downloads
        self.file_extension = file_extension
        self.resubscribe_delay = resubscribe_delay
        self.name = name

    def start(self) -> WatchHandle:
        """Start watching on the running loop and return the cancellation handle."""
        logger.debug(f"Starting {self.name}")
        return WatchHandle.spawn(self.run(), self.name)

    async def run(self) -> None:
        while True:
            try:
                async for snapshot in self._snapshots():
                    await self.reconcile(snapshot)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    f"{self.name} lost its data stream after {type(e).__name__}: {e}. "
                    f"Resubscribing in {self.resubscribe_delay:.1f}s"
                )
                await asyncio.sleep(self.resubscribe_delay)
                continue
            logger.debug(f"{self.name} data stream ended")
            return

    async def reconcile(self, snapshot: set[str]) -> set[str]:
        """
        Enqueue ids from snapshot that the queue does not track yet.

        :return: The ids handed on for download, empty if none or on failure
        """
        try:
            tracked = await self._tracked_ids()
        except Exception as e:
            logger.warning(f"{self.name} skipped a snapshot, tracked id read failed: {e}")
            return set()

        new_ids = set(snapshot) - tracked
        if not new_ids:
            return set()

        logger.debug(f"{self.name} found {len(new_ids)} untracked id(s)")
        try:
            await self._enqueue_downloads(new_ids, self.file_extension)
        except Exception as e:
            logger.warning(f"{self.name} failed to enqueue {len(new_ids)} download(s): {e}")
            return set()
        return new_ids
