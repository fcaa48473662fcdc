"""Remote storage adapter backed by an S3 bucket."""
import asyncio
import base64
import hashlib

import boto3
import botocore.exceptions
from loguru import logger

from attachment_queue.exceptions import ConfigurationError, NetworkError, RemoteStorageError
from attachment_queue.utils.retry import RetryPolicy, retry_transfer
from attachment_queue.utils.settings import get_settings

DEFAULT_MEDIA_TYPE = 'application/octet-stream'
TRANSIENT_ERRORS = (
    botocore.exceptions.EndpointConnectionError,
    botocore.exceptions.ConnectTimeoutError,
    botocore.exceptions.ReadTimeoutError,
)


def get_md5(data: bytes) -> str:
    """Calculate base64-encoded MD5 hash of data."""
    return base64.b64encode(hashlib.md5(data).digest()).decode('utf-8')


class S3RemoteStorageAdapter:
    """S3 adapter storing each attachment under `<prefix><filename>`."""

    def __init__(
        self,
        bucket: str | None = None,
        prefix: str = '',
        region_name: str | None = None,
        client=None,
        retry_policy: RetryPolicy | None = None
    ):
        """
        Initialize the S3 adapter.

        :param bucket: Bucket name (defaults to ATTACHMENTS_S3_BUCKET env var)
        :param prefix: Key prefix, e.g. 'attachments/'
        :param region_name: AWS region (defaults to ATTACHMENTS_S3_REGION)
        :param client: Pre-built boto3 S3 client, mostly useful in tests
        :param retry_policy: Retries for transient failures, defaults to ATTACHMENTS_TRANSFER_RETRIES
        :raises ConfigurationError: If bucket not provided and env var not set
        """
        settings = get_settings()
        self.bucket = bucket or settings.s3_bucket
        if not self.bucket:
            raise ConfigurationError("ATTACHMENTS_S3_BUCKET environment variable is required for S3 storage")
        self.prefix = prefix
        self.region_name = region_name or settings.s3_region
        self._s3_client = client
        self.retry_policy = retry_policy or RetryPolicy(max_retries=settings.transfer_retries)

    def _get_s3_client(self):
        if self._s3_client is None:
            self._s3_client = boto3.client('s3', region_name=self.region_name)
        return self._s3_client

    def _key(self, filename: str) -> str:
        return f'{self.prefix}{filename}'

    @retry_transfer('upload')
    async def upload_file(self, filename: str, data: bytes, media_type: str | None = None) -> None:
        await self._call(
            'put_object',
            Body=data,
            Bucket=self.bucket,
            Key=self._key(filename),
            ContentType=media_type or DEFAULT_MEDIA_TYPE,
            ContentMD5=get_md5(data),
        )

    @retry_transfer('download')
    async def download_file(self, filename: str) -> bytes:
        response = await self._call('get_object', Bucket=self.bucket, Key=self._key(filename))
        return await asyncio.to_thread(response['Body'].read)

    @retry_transfer('delete')
    async def delete_file(self, filename: str) -> None:
        await self._call('delete_object', Bucket=self.bucket, Key=self._key(filename))

    async def _call(self, operation: str, **kwargs) -> dict:
        """
        Run a blocking boto3 call in a worker thread and map its errors.

        :raises NetworkError: On connection/timeout errors
        :raises RemoteStorageError: When S3 rejects the request
        """
        logger.debug(f"S3 {operation} s3://{self.bucket}/{kwargs.get('Key')}")
        method = getattr(self._get_s3_client(), operation)
        try:
            return await asyncio.to_thread(method, **kwargs)
        except TRANSIENT_ERRORS as e:
            raise NetworkError(f"S3 {operation} failed: {e}") from e
        except botocore.exceptions.ClientError as e:
            code = e.response.get('Error', {}).get('Code', 'Unknown')
            raise RemoteStorageError(f"S3 {operation} rejected ({code}): {e}") from e
