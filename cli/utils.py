"""Utility functions for CLI output."""

from datetime import datetime
from typing import List


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based) and automatically selects the most
    appropriate unit (B, KiB, MiB, GiB, TiB).

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    size = size_bytes / 1024.0
    for unit in ['KiB', 'MiB', 'GiB', 'TiB']:
        if size < 1024.0:
            return f"{size:.2f} {unit}"
        size /= 1024.0

    return f"{size:.2f} PiB"


def format_upload_date(value: str) -> str:
    """Render an ISO timestamp as 'YYYY-MM-DD HH:MM:SS', or return it unchanged."""
    try:
        return datetime.fromisoformat(value).strftime('%Y-%m-%d %H:%M:%S')
    except (TypeError, ValueError):
        return str(value)


def format_file_table(files: List[dict]) -> str:
    """
    Format a file listing as aligned columns.

    Args:
        files: Descriptor dictionaries as returned by GET /api/files

    Returns:
        Multi-line table, newest first as received
    """
    rows = [
        (
            f.get('id', ''),
            format_file_size(int(f.get('size', 0))),
            format_upload_date(f.get('uploadDate', '')),
            f.get('originalName', ''),
        )
        for f in files
    ]
    headers = ('ID', 'SIZE', 'UPLOADED', 'NAME')
    widths = [max([len(h)] + [len(r[i]) for r in rows]) for i, h in enumerate(headers[:3])]

    lines = ["  ".join(h.ljust(w) for h, w in zip(headers[:3], widths)) + "  " + headers[3]]
    for row in rows:
        lines.append("  ".join(c.ljust(w) for c, w in zip(row[:3], widths)) + "  " + row[3])
    return "\n".join(lines)
