"""Retry policy for remote storage transfers."""
import asyncio
import functools
from collections.abc import Awaitable, Callable, Iterator
from typing import Any, TypeVar

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from attachment_queue.exceptions import NetworkError

T = TypeVar('T')

# RemoteStorageError marks a rejected request and is never retried
TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (NetworkError, ConnectionError, TimeoutError)


class RetryPolicy(BaseModel):
    """
    How often an adapter repeats a transfer that failed transiently.

    Whether a record that still fails is retried on a later sync pass is
    decided by the queue's error callbacks, not by this policy.
    """
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=0.5, ge=0)
    backoff_factor: float = Field(default=1.5, ge=1)

    def delays(self) -> Iterator[float]:
        """Seconds to wait before each retry, growing exponentially."""
        delay = self.initial_delay
        for _ in range(self.max_retries):
            yield delay
            delay *= self.backoff_factor


def retry_transfer(action: str) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorate an adapter method `(self, filename, ...)` so transient failures are retried.

    The policy is read from the adapter's `retry_policy` attribute on every call.

    :param action: Transfer name used in log messages, e.g. 'upload'
    """
    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(adapter: Any, filename: str, *args: Any, **kwargs: Any) -> T:
            policy: RetryPolicy = getattr(adapter, 'retry_policy', None) or RetryPolicy()
            delays = policy.delays()
            attempt = 0
            while True:
                try:
                    return await fn(adapter, filename, *args, **kwargs)
                except TRANSIENT_EXCEPTIONS as e:
                    delay = next(delays, None)
                    if delay is None:
                        logger.error(f"Giving up on {action} of {filename} after {attempt} retries: {e}")
                        raise
                    attempt += 1
                    logger.warning(
                        f"Retrying {action} of {filename} ({attempt}/{policy.max_retries}) "
                        f"after {type(e).__name__}: {e}. Waiting {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
        return wrapper
    return decorator
