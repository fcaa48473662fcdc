"""Pure path helpers for attachment files."""
import os

from attachment_queue.exceptions import ValidationError
from attachment_queue.utils.validation import validate_extension, validate_id


def build_filename(attachment_id: str, extension: str | None = None) -> str:
    """
    Derive the stored filename for an attachment.

    Example: ('p3', 'jpg') returns 'p3.jpg', ('p3', None) returns 'p3'

    :raises ValidationError: If the id or extension is unusable
    """
    validate_id(attachment_id, "attachment id")
    extension = validate_extension(extension)
    return f'{attachment_id}.{extension}' if extension else attachment_id


def join_within(root: str, relative_path: str) -> str:
    """
    Join root and relative_path, refusing results that escape root.

    :raises ValidationError: If relative_path is absolute or walks out of root
    """
    if os.path.isabs(relative_path):
        raise ValidationError(f"Expected a relative path, got '{relative_path}'")
    root = os.path.normpath(root)
    path = os.path.normpath(os.path.join(root, relative_path))
    if os.path.commonpath([root, path]) != root:
        raise ValidationError(f"'{relative_path}' points outside '{root}'")
    return path
