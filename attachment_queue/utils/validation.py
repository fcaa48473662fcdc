"""Shared validation utilities for the attachment queue."""
import os
import re

from attachment_queue.exceptions import ValidationError

# Extensions are plain alphanumerics, e.g. 'jpg' or 'tar.gz'
EXTENSION_PATTERN = re.compile(r'^[A-Za-z0-9]+(\.[A-Za-z0-9]+)*$')


def validate_non_empty(value: str, field_name: str) -> None:
    """
    Validate that a string value is non-empty.

    :param value: Value to validate
    :param field_name: Name of the field for error messages
    :raises ValidationError: If value is empty or whitespace-only
    """
    if not value or not value.strip():
        raise ValidationError(f"{field_name} cannot be empty")


def validate_id(value: str, field_name: str = "ID") -> None:
    """
    Validate that an attachment ID is usable as a file name stem.

    :param value: ID value to validate
    :param field_name: Name of the field for error messages (default "ID")
    :raises ValidationError: If ID is empty or contains path separators
    """
    validate_non_empty(value, field_name)
    validate_filename(value, field_name)


def validate_filename(value: str, field_name: str = "filename") -> None:
    """
    Validate that a filename cannot address anything outside its directory.

    :param value: Filename to validate
    :param field_name: Name of the field for error messages
    :raises ValidationError: If the filename contains separators or is a dot entry
    """
    validate_non_empty(value, field_name)
    if '/' in value or '\\' in value or value in ('.', '..') or '\x00' in value:
        raise ValidationError(f"{field_name} must be a plain file name, got '{value}'")


def validate_relative_dir(value: str, field_name: str = "directory") -> None:
    """
    Validate a directory path that must stay relative to its parent.

    :param value: Relative directory path, e.g. 'thumbnails' or 'a/b'
    :param field_name: Name of the field for error messages
    :raises ValidationError: If the path is absolute or walks upwards
    """
    validate_non_empty(value, field_name)
    if os.path.isabs(value) or value.startswith('\\'):
        raise ValidationError(f"{field_name} must be relative, got '{value}'")
    parts = value.replace('\\', '/').split('/')
    if any(part == '..' for part in parts):
        raise ValidationError(f"{field_name} cannot contain '..', got '{value}'")


def validate_extension(value: str | None) -> str | None:
    """
    Normalize and validate a file extension.

    :param value: Extension with or without a leading dot, or None
    :return: The extension without its leading dot, or None when not set
    :raises ValidationError: If the extension contains unexpected characters
    """
    if value is None:
        return None
    extension = value.lstrip('.')
    if not extension:
        return None
    if not EXTENSION_PATTERN.match(extension):
        raise ValidationError(f"Invalid file extension '{value}'")
    return extension


def validate_size(size: int) -> None:
    """
    Validate a byte size supplied at upload-enqueue time.

    :raises ValidationError: If size is not a non-negative integer
    """
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ValidationError(f"size must be a non-negative integer, got {size!r}")


IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def validate_identifier(value: str, field_name: str) -> None:
    """
    Validate a table or column name interpolated into a watch query.

    :raises ValidationError: If value is not a plain SQL identifier
    """
    if not value or not IDENTIFIER_PATTERN.match(value):
        raise ValidationError(f"{field_name} must be a plain identifier, got '{value}'")
