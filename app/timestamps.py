"""
Timestamp representations found in stored documents.

Orders written over the life of the store carry their times in one of three
shapes: a native ``datetime``, an ``{"seconds": N, "nanoseconds": M}`` object,
or a raw date (epoch milliseconds, or an ISO-8601 or RFC 2822 date string).
``from_stored`` tags a stored value with its shape once; ``to_iso`` turns any
tagged value into an ISO-8601 string.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional, Union


@dataclass(frozen=True)
class NativeTimestamp:
    value: datetime


@dataclass(frozen=True)
class EpochSeconds:
    seconds: int
    nanoseconds: int = 0


@dataclass(frozen=True)
class RawDate:
    value: Union[int, float, str]


Timestamp = Union[NativeTimestamp, EpochSeconds, RawDate]


def server_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def to_stored(value: datetime) -> dict:
    """Encode a datetime the way the document store persists server times."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    seconds = int(value.timestamp())
    return {"seconds": seconds, "nanoseconds": value.microsecond * 1000}


def from_stored(value: Any) -> Optional[Timestamp]:
    if value is None or value == "":
        return None
    if isinstance(value, (NativeTimestamp, EpochSeconds, RawDate)):
        return value
    if isinstance(value, datetime):
        return NativeTimestamp(value)
    if isinstance(value, dict) and "seconds" in value:
        return EpochSeconds(int(value["seconds"]), int(value.get("nanoseconds") or 0))
    if isinstance(value, (int, float, str)) and not isinstance(value, bool):
        return RawDate(value)
    raise TypeError(f"Unsupported timestamp representation: {value!r}")


def _format(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_date_string(value: str) -> datetime:
    """ISO-8601 first, then RFC 2822 ('Mon, 15 Jan 2024 10:30:00 GMT')."""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Unrecognised date string: {value!r}") from exc


def to_iso(ts: Timestamp) -> str:
    if isinstance(ts, NativeTimestamp):
        return _format(ts.value)
    if isinstance(ts, EpochSeconds):
        moment = datetime.fromtimestamp(ts.seconds, tz=timezone.utc)
        return _format(moment.replace(microsecond=ts.nanoseconds // 1000))
    if isinstance(ts, RawDate):
        if isinstance(ts.value, str):
            return _format(_parse_date_string(ts.value))
        return _format(datetime.fromtimestamp(ts.value / 1000, tz=timezone.utc))
    raise TypeError(f"Unknown timestamp variant: {type(ts).__name__}")


def normalize(value: Any) -> Optional[str]:
    """ISO-8601 string for any stored timestamp shape, ``None`` when absent."""
    ts = from_stored(value)
    if ts is None:
        return None
    return to_iso(ts)
