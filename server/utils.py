"""Utility helper functions for the HTTP layer."""

import re
from urllib.parse import quote

from engine.utils import utc_now

_UNSAFE_FILENAME_CHARS = re.compile(r'[^A-Za-z0-9._ ()-]')


def content_disposition(filename: str) -> str:
    """
    Build an attachment Content-Disposition header for an untrusted name.

    Args:
        filename: Original file name as uploaded

    Returns:
        Header value with an ASCII fallback and an RFC 5987 UTF-8 name
    """
    filename = (filename or "download").replace("\r", "").replace("\n", "")
    fallback = _UNSAFE_FILENAME_CHARS.sub("_", filename).strip() or "download"
    encoded = quote(filename, safe="")
    return f'attachment; filename="{fallback}"; filename*=UTF-8\'\'{encoded}'


def get_current_timestamp() -> str:
    """
    Get current timestamp in ISO format.

    Returns:
        Current UTC timestamp as ISO format string
    """
    return utc_now().isoformat()
