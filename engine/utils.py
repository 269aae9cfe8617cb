"""Utility helper functions for the engine."""

import re
import secrets
import time
from datetime import datetime, timezone

from common.constants import OBJECT_ID_PATTERN

_OBJECT_ID_RE = re.compile(OBJECT_ID_PATTERN)


def generate_object_id() -> str:
    """
    Generate a new object id.

    Millisecond timestamp plus 64 random bits, so ids sort roughly by
    creation time and concurrent uploads practically never collide.

    Returns:
        Object id string (e.g., "1718040000123-9f86d081884c7d65")
    """
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}"


def is_valid_object_id(object_id: str) -> bool:
    """
    Check that an id is safe to use as a file name stem.

    Args:
        object_id: Untrusted id

    Returns:
        True if the id only contains [A-Za-z0-9_-]
    """
    return isinstance(object_id, str) and bool(_OBJECT_ID_RE.fullmatch(object_id))


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
