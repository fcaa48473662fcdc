"""Tests for the S3 remote storage adapter."""
import io
from unittest.mock import MagicMock

import botocore.exceptions
import pytest

from attachment_queue.exceptions import ConfigurationError, NetworkError, RemoteStorageError
from attachment_queue.storage.s3_storage import S3RemoteStorageAdapter, get_md5
from attachment_queue.utils.retry import RetryPolicy


@pytest.fixture
def s3_client():
    return MagicMock()


@pytest.fixture
def adapter(s3_client):
    return S3RemoteStorageAdapter(
        bucket='attachments-bucket', prefix='photos/', client=s3_client,
        retry_policy=RetryPolicy(initial_delay=0)
    )


def client_error(code):
    return botocore.exceptions.ClientError({'Error': {'Code': code, 'Message': code}}, 'Operation')


class TestS3RemoteStorageAdapter:

    def test_requires_bucket(self, monkeypatch):
        monkeypatch.setattr(
            'attachment_queue.storage.s3_storage.get_settings',
            lambda: type('S', (), {'s3_bucket': None, 's3_region': 'us-east-1'})()
        )

        with pytest.raises(ConfigurationError, match="ATTACHMENTS_S3_BUCKET"):
            S3RemoteStorageAdapter()

    @pytest.mark.asyncio
    async def test_upload(self, adapter, s3_client):
        await adapter.upload_file('p3.jpg', b'jpeg', 'image/jpeg')

        s3_client.put_object.assert_called_once_with(
            Body=b'jpeg',
            Bucket='attachments-bucket',
            Key='photos/p3.jpg',
            ContentType='image/jpeg',
            ContentMD5=get_md5(b'jpeg'),
        )

    @pytest.mark.asyncio
    async def test_download(self, adapter, s3_client):
        s3_client.get_object.return_value = {'Body': io.BytesIO(b'remote')}

        assert await adapter.download_file('p2.jpg') == b'remote'
        s3_client.get_object.assert_called_once_with(Bucket='attachments-bucket', Key='photos/p2.jpg')

    @pytest.mark.asyncio
    async def test_delete(self, adapter, s3_client):
        await adapter.delete_file('p1.jpg')

        s3_client.delete_object.assert_called_once_with(Bucket='attachments-bucket', Key='photos/p1.jpg')

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self, adapter, s3_client):
        s3_client.get_object.side_effect = client_error('NoSuchKey')

        with pytest.raises(RemoteStorageError, match="NoSuchKey"):
            await adapter.download_file('p2.jpg')

        assert s3_client.get_object.call_count == 1

    @pytest.mark.asyncio
    async def test_connection_error_is_retried(self, adapter, s3_client):
        s3_client.delete_object.side_effect = [
            botocore.exceptions.EndpointConnectionError(endpoint_url='https://s3.amazonaws.com'),
            {},
        ]

        await adapter.delete_file('p1.jpg')

        assert s3_client.delete_object.call_count == 2

    @pytest.mark.asyncio
    async def test_connection_error_exhausted(self, adapter, s3_client):
        s3_client.put_object.side_effect = botocore.exceptions.EndpointConnectionError(
            endpoint_url='https://s3.amazonaws.com'
        )

        with pytest.raises(NetworkError):
            await adapter.upload_file('p3.jpg', b'x')

        assert s3_client.put_object.call_count == 4

    @pytest.mark.asyncio
    async def test_read_timeout_is_retried(self, adapter, s3_client):
        s3_client.get_object.side_effect = [
            botocore.exceptions.ReadTimeoutError(endpoint_url='https://s3.amazonaws.com'),
            {'Body': io.BytesIO(b'remote')},
        ]

        assert await adapter.download_file('p2.jpg') == b'remote'
        assert s3_client.get_object.call_count == 2

    @pytest.mark.asyncio
    async def test_transient_error_maps_to_network_error(self, s3_client):
        adapter = S3RemoteStorageAdapter(
            bucket='attachments-bucket', client=s3_client, retry_policy=RetryPolicy(max_retries=0)
        )
        s3_client.delete_object.side_effect = botocore.exceptions.ConnectTimeoutError(
            endpoint_url='https://s3.amazonaws.com'
        )

        with pytest.raises(NetworkError, match="S3 delete_object failed"):
            await adapter.delete_file('p1.jpg')

        assert s3_client.delete_object.call_count == 1


class TestGetMd5:

    def test_known_digest(self):
        assert get_md5(b'') == '1B2M2Y8AsgTpgAmY7PhCfg=='
