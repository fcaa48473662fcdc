"""Custom exception classes for the attachment queue."""


class AttachmentQueueError(Exception):
    """Base exception for attachment queue errors."""
    pass


class ConfigurationError(AttachmentQueueError):
    """Raised when queue options are missing or invalid."""
    pass


class ValidationError(AttachmentQueueError):
    """Raised when input validation fails."""
    pass


class InitializationError(AttachmentQueueError):
    """Raised when the queue cannot be brought to a running state."""
    pass


class StorageError(AttachmentQueueError):
    """Raised when local file operations fail."""
    pass


class RemoteStorageError(AttachmentQueueError):
    """Raised when the remote object store rejects an operation."""
    pass


class NetworkError(RemoteStorageError):
    """Raised when requests to remote storage fail in transit."""
    pass


class AttachmentNotFoundError(AttachmentQueueError):
    """Raised when a record is not tracked by the queue."""
    pass
