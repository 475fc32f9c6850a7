"""
Session payload encoding and expiry computation.

Payloads are JSON-compatible mappings that carry a ``cookie`` sub-object with
a numeric ``maxAge`` (milliseconds) and/or an ``expires`` date.
"""

import json
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sqlsession.core.errors import MalformedPayloadError

DEFAULT_TTL = timedelta(days=1)

SessionPayload = Dict[str, Any]
TimestampInput = Union[datetime, date, str, int, float, None]


class CookieOptions(BaseModel):
    """The cookie metadata the store cares about; other keys pass through."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    max_age: Optional[float] = Field(default=None, alias="maxAge")
    expires: Optional[Any] = None

    @field_validator("max_age", mode="before")
    @classmethod
    def numeric_max_age(cls, value: Any) -> Optional[float]:
        # Anything that is not a real number means "no maxAge"
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if not math.isfinite(value):
            return None
        return value


def cookie_options(payload: Any) -> CookieOptions:
    """Extract cookie options from a payload, tolerating a missing cookie"""
    cookie = payload.get("cookie") if isinstance(payload, Mapping) else None
    if isinstance(cookie, BaseModel):
        cookie = cookie.model_dump(by_alias=True)
    if not isinstance(cookie, Mapping):
        return CookieOptions()
    return CookieOptions.model_validate(dict(cookie))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def compute_expiry(payload: Any, now: Optional[datetime] = None) -> datetime:
    """
    Derive the expiration time of a session.

    Args:
        payload: The session payload
        now: Reference time, defaults to the current UTC time

    Returns:
        ``now + cookie.maxAge`` when maxAge is a number, otherwise ``now + 24h``
    """
    now = now or utc_now()
    max_age = cookie_options(payload).max_age
    if max_age is None:
        return now + DEFAULT_TTL
    try:
        return now + timedelta(milliseconds=max_age)
    except OverflowError:
        # Lifetimes beyond the datetime range are clamped to its ends
        limit = datetime.max if max_age > 0 else datetime.min
        return limit.replace(tzinfo=timezone.utc)


def to_utc_datetime(value: TimestampInput = None) -> datetime:
    """
    Normalise a point in time to an aware UTC datetime.

    Accepts ``None`` (now), datetimes (naive ones are taken as UTC), dates,
    ISO-8601 strings with an optional trailing ``Z`` and epoch milliseconds.
    """
    if value is None:
        return utc_now()
    if isinstance(value, bool):
        raise ValueError(f"Cannot interpret {value!r} as a timestamp")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Cannot interpret {value!r} as a timestamp") from e
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    raise ValueError(f"Cannot interpret {value!r} as a timestamp")


def _json_default(obj: Any) -> Any:
    if isinstance(obj, datetime):
        return to_utc_datetime(obj).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_payload(payload: Any) -> str:
    """Serialize a session payload to JSON text; dates become ISO strings"""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json", by_alias=True)
    return json.dumps(payload, default=_json_default, separators=(",", ":"))


def decode_payload(value: Any, sid: Optional[str] = None) -> SessionPayload:
    """
    Turn a stored ``sess`` value back into a mapping.

    Drivers return native JSON columns either decoded or as text, and text
    columns always as text (or bytes), so both shapes are accepted.

    Raises:
        MalformedPayloadError: If the stored value is not UTF-8 encoded JSON
    """
    try:
        if isinstance(value, (bytes, bytearray)):
            value = value.decode("utf-8")
        if isinstance(value, str):
            return json.loads(value)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(sid, str(e)) from e
    return value
