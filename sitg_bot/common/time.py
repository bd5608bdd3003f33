"""Clock helpers.

Components that need the current time accept a ``Clock`` so tests can pin
it; production code uses :func:`utcnow`.
"""

from __future__ import annotations

import datetime as dt
import typing as typ

import msgspec

Clock: typ.TypeAlias = typ.Callable[[], dt.datetime]


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp."""
    return dt.datetime.now(dt.UTC)


def unix_seconds(moment: dt.datetime | None = None) -> int:
    """Return whole seconds since the epoch for ``moment`` (default: now)."""
    return int((moment or utcnow()).timestamp())


def parse_timestamp(value: str) -> dt.datetime:
    """Parse an RFC 3339 timestamp as produced by GitHub and the backend.

    Raises
    ------
    ValueError
        If the value is not ISO formatted or carries no timezone.

    """
    parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        msg = f"timestamp missing timezone: {value!r}"
        raise ValueError(msg)
    return parsed.astimezone(dt.UTC)


# msgspec rejects naive timestamps for fields annotated with this alias.
AwareDatetime = typ.Annotated[dt.datetime, msgspec.Meta(tz=True)]
