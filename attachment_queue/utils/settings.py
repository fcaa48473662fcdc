"""
Attachment Queue Configuration Settings.

Uses Pydantic Settings for type-safe configuration with environment variable support.
Options passed to a queue at construction time take precedence over these values.

Optional environment variables (with defaults):
- ATTACHMENTS_DIRECTORY_NAME: Directory attachments are stored under (default: 'attachments')
- ATTACHMENTS_QUEUE_TABLE_NAME: Queue table/namespace identifier (default: 'attachments_queue')
- ATTACHMENTS_SYNC_INTERVAL_MINUTES: Periodic sync interval (default: 5)
- ATTACHMENTS_STORAGE_ROOT: User storage root on this device (default: ~/.attachment_queue)
- ATTACHMENTS_DEBUG: Enable debug logging (default: false)
- ATTACHMENTS_REMOTE_BASE_URL: Base URL of an HTTP object store (optional)
- ATTACHMENTS_S3_BUCKET: S3 bucket for the S3 adapter (optional)
- ATTACHMENTS_S3_REGION: AWS region for the S3 adapter (default: 'us-east-1')
- ATTACHMENTS_TRANSFER_RETRIES: Retries of a transiently failing remote transfer (default: 3)
"""
import os
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STORAGE_ROOT = os.path.join(os.path.expanduser('~'), '.attachment_queue')


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
    )

    # Queue settings
    attachment_directory_name: str = Field(default='attachments', alias='ATTACHMENTS_DIRECTORY_NAME')
    attachments_queue_table_name: str = Field(
        default='attachments_queue',
        alias='ATTACHMENTS_QUEUE_TABLE_NAME'
    )
    interval_in_minutes: float = Field(default=5, gt=0, alias='ATTACHMENTS_SYNC_INTERVAL_MINUTES')

    # Local storage settings
    storage_root: str = Field(default=DEFAULT_STORAGE_ROOT, alias='ATTACHMENTS_STORAGE_ROOT')

    # Debug settings
    debug: bool = Field(default=False, alias='ATTACHMENTS_DEBUG')

    # Remote storage (optional - only needed by the bundled adapters)
    remote_base_url: str | None = Field(default=None, alias='ATTACHMENTS_REMOTE_BASE_URL')
    s3_bucket: str | None = Field(default=None, alias='ATTACHMENTS_S3_BUCKET')
    s3_region: str = Field(default='us-east-1', alias='ATTACHMENTS_S3_REGION')
    transfer_retries: int = Field(default=3, ge=0, alias='ATTACHMENTS_TRANSFER_RETRIES')


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
