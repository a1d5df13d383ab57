"""Version ordering and release-date helpers for firmware tables."""
import re
from datetime import datetime, timezone
from functools import cmp_to_key
from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

_LEADING_DIGITS = re.compile(r"^[0-9]+")


def _numeric_parts(version) -> list[int]:
    parts = []
    for segment in str(version).split("."):
        match = _LEADING_DIGITS.match(segment)
        parts.append(int(match.group()) if match else 0)
    return parts


def compare_versions(version1, version2) -> int:
    """Order two dotted version strings; returns -1, 0 or 1.

    Only the leading digits of each segment count, so "1.0.0-beta" equals
    "1.0.0" and a segment like "rc" counts as 0. Missing trailing segments
    are treated as 0.
    """
    v1 = _numeric_parts(version1)
    v2 = _numeric_parts(version2)
    width = max(len(v1), len(v2))
    v1 += [0] * (width - len(v1))
    v2 += [0] * (width - len(v2))
    for a, b in zip(v1, v2):
        if a < b:
            return -1
        if a > b:
            return 1
    return 0


def sort_by_version(items: Iterable[T], direction: str, key: Callable[[T], str | None]) -> list[T]:
    """Stable sort on the version returned by ``key``.

    ``direction`` is "asc" or "desc"; anything else keeps input order.
    """
    items = list(items)
    if direction not in ("asc", "desc"):
        return items
    sign = 1 if direction == "asc" else -1
    return sorted(items, key=cmp_to_key(lambda a, b: sign * compare_versions(key(a) or "0", key(b) or "0")))


def sort_by_release_date(items: Iterable[T], direction: str, key: Callable[[T], object]) -> list[T]:
    """Stable sort on the release date returned by ``key``.

    Entries without a parseable date sort as the oldest.
    """
    items = list(items)
    if direction not in ("asc", "desc"):
        return items
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(
        items,
        key=lambda item: parse_release_date(key(item)) or oldest,
        reverse=direction == "desc",
    )


def parse_release_date(value) -> datetime | None:
    """Parse a release date from the firmware list.

    Accepts datetimes, epoch milliseconds and ISO-8601 strings. Naive
    timestamps (the server sends "2025-07-09T07:11:12.598639") are UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_release_date(value) -> str:
    """Render a release date as "July 9, 2025"."""
    if value is None or value == "":
        return "N/A"
    parsed = parse_release_date(value)
    if parsed is None:
        return str(value)
    return f"{parsed:%B} {parsed.day}, {parsed.year}"
