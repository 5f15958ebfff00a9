"""Small shared helpers."""

from typing import List, Optional, Sequence, TypeVar, Union

T = TypeVar("T")

WWW_PREFIX = "www."


def ensure_sequence(value: Union[None, T, Sequence[T]]) -> List[T]:
    """Normalize None / single item / list into a list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def normalize_name(name: str) -> str:
    """Lower-cased, stripped domain name used as a lookup key."""
    return (name or "").strip().lower()


def strip_www(name: str) -> str:
    """Drop a leading ``www.`` label."""
    if name.startswith(WWW_PREFIX):
        return name[len(WWW_PREFIX):]
    return name


def preview(text: Optional[str], limit: int = 300) -> str:
    """Truncated body text for error messages."""
    if not text:
        return ""
    text = text.strip()
    if len(text) > limit:
        return text[:limit] + "..."
    return text
