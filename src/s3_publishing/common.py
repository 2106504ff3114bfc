"""
Common utilities shared by storage, publishing and CLI modules.
"""

from urllib.parse import quote

_SIZE_UNITS = ("KB", "MB", "GB", "TB")


def encode_path_for_uri(path: str) -> str:
    """
    Percent-encode each "/"-separated segment of a path independently.

    Slashes are preserved as separators, so "abc/a b.png" becomes "abc/a%20b.png".
    """
    return "/".join(quote(segment, safe="") for segment in path.split("/"))


def identifier_from_key(key: str, prefix: str) -> str:
    """
    Resource identifier of an object key: the key without its prefix.

    A "/" left between prefix and identifier is dropped, so "store/abc" gives
    "abc" for both the prefixes "store" and "store/".
    """
    return key.removeprefix(prefix).removeprefix("/")


def format_bytes(size_bytes: int) -> str:
    """Human-readable size, e.g. "512 B" or "1.5 MB"."""
    if size_bytes < 1024:
        return f"{size_bytes} B"

    size = float(size_bytes)
    for unit in _SIZE_UNITS:
        size /= 1024.0
        if size < 1024.0 or unit == _SIZE_UNITS[-1]:
            break
    return f"{size:.1f} {unit}"


def pluralize(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"


def format_duration(seconds: float) -> str:
    """Human-readable duration: "250ms", "4.2s", "2m 30s" or "1h 15m"."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m"
