"""Remote storage adapter for object stores exposed over plain HTTP."""
import logging
from typing import Any

import httpx
from httpx import Response, Timeout
from loguru import logger

from attachment_queue.exceptions import ConfigurationError, NetworkError, RemoteStorageError
from attachment_queue.utils.retry import RetryPolicy, retry_transfer
from attachment_queue.utils.settings import get_settings

# Suppress verbose httpx debug logging
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

SENSITIVE_HEADERS = {'authorization', 'x-api-key', 'cookie', 'set-cookie'}
DEFAULT_MEDIA_TYPE = 'application/octet-stream'


def _sanitize_headers(headers: dict | None) -> dict | None:
    """Remove sensitive headers before logging."""
    if headers is None:
        return None
    return {k: '[REDACTED]' if k.lower() in SENSITIVE_HEADERS else v for k, v in headers.items()}


def _handle_response_error(response: Response, allow: tuple[int, ...] = ()) -> None:
    """Check response status and raise appropriate exception."""
    if response.status_code in allow:
        return
    if response.status_code >= 500:
        raise NetworkError(f"HTTP {response.status_code}: {response.text}")
    if response.status_code >= 400:
        raise RemoteStorageError(f"HTTP {response.status_code}: {response.text}")


class HttpRemoteStorageAdapter:
    """
    Stores each attachment as `<base_url>/<filename>`.

    Uploads are PUT requests with the attachment's media type, downloads are
    GET requests and deletes are DELETE requests. A missing object on delete
    is treated as already deleted.
    """

    def __init__(
        self,
        base_url: str | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 60.0,
        retry_policy: RetryPolicy | None = None
    ) -> None:
        """
        :param base_url: Object store base URL, defaults to ATTACHMENTS_REMOTE_BASE_URL
        :param headers: Extra default headers, e.g. authorization
        :param timeout: Per-request timeout in seconds
        :param retry_policy: Retries for transient failures, defaults to ATTACHMENTS_TRANSFER_RETRIES
        :raises ConfigurationError: If no base URL is available
        """
        effective_base_url = base_url or get_settings().remote_base_url
        if not effective_base_url:
            raise ConfigurationError(
                "ATTACHMENTS_REMOTE_BASE_URL environment variable is required for HTTP remote storage"
            )
        self.base_url = effective_base_url.rstrip('/')
        self.retry_policy = retry_policy or RetryPolicy(max_retries=get_settings().transfer_retries)
        self.http2_client = httpx.AsyncClient(
            http2=True,
            base_url=self.base_url,
            headers={'cache-control': 'no-cache', **(headers or {})},
            timeout=Timeout(timeout=timeout)
        )

    async def __aenter__(self) -> "HttpRemoteStorageAdapter":
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.http2_client.aclose()

    @retry_transfer('upload')
    async def upload_file(self, filename: str, data: bytes, media_type: str | None = None) -> None:
        await self._request(
            'PUT', filename,
            content=data,
            headers={'content-type': media_type or DEFAULT_MEDIA_TYPE}
        )

    @retry_transfer('download')
    async def download_file(self, filename: str) -> bytes:
        response = await self._request('GET', filename)
        return response.content

    @retry_transfer('delete')
    async def delete_file(self, filename: str) -> None:
        await self._request('DELETE', filename, allow=(404,))

    async def _request(
        self,
        method: str,
        filename: str,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        allow: tuple[int, ...] = ()
    ) -> Response:
        """
        Make an HTTP request with common error handling and logging.

        :raises NetworkError: On connection/timeout errors and 5xx responses
        :raises RemoteStorageError: On 4xx responses
        """
        url = f'/{filename}'
        logger.debug(f'{method} request to {url}, headers: {_sanitize_headers(headers)}')
        try:
            response = await self.http2_client.request(method, url, content=content, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            raise NetworkError(f"Network error: {e}") from e

        logger.debug(f'Response ({response.status_code}) for {method} {url}')
        _handle_response_error(response, allow)
        return response
