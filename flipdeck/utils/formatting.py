"""
Helper functions for formatting data into human-readable strings.
"""

from datetime import datetime


def format_size(bytes_size: int) -> str:
    """Formats bytes into a human-readable size string (e.g., '145.3 MB')."""
    if bytes_size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while bytes_size >= 1024 and i < len(units) - 1:
        bytes_size /= 1024
        i += 1
    return f"{bytes_size:.1f} {units[i]}"


def format_timestamp(timestamp_ms: int) -> str:
    """Formats an epoch-millisecond timestamp in local time (e.g. '2024-05-01 14:03')."""
    if timestamp_ms <= 0:
        return "-"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M")


def truncate(text: str, width: int = 60) -> str:
    """Collapses whitespace and shortens `text` to at most `width` characters."""
    flat = " ".join(text.split())
    if len(flat) <= width:
        return flat
    return flat[: width - 1].rstrip() + "…"


def describe_image(value: str | None) -> str:
    """Short label for a card image: inline data size, a URL, or nothing."""
    if not value:
        return ""
    if value.startswith("data:"):
        # base64 inflates by 4/3
        payload = value.split(",", 1)[-1]
        return f"inline image ({format_size(len(payload) * 3 // 4)})"
    return truncate(value, 40)
