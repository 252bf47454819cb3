"""
Coercion helpers for loosely-typed export values.
"""
import math
import re
from datetime import datetime, date, timezone
from typing import Any, Optional, Union

SourceId = Union[int, str]

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%d %b %Y",
    "%b %d, %Y",
)
_NUMBER_NOISE = re.compile(r"[,\s_]")


class RecordError(ValueError):
    """A single source record cannot be mapped."""


def source_id(value: Any) -> Optional[SourceId]:
    """Normalise an export id so "42" and 42 refer to the same record."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    return int(text) if text.isdigit() else text


def parse_number(value: Any, field: str) -> Optional[float]:
    """
    Parse a numeric export field, tolerating thousands separators ("20,000")
    and a trailing percent sign. Returns None for blanks, raises RecordError
    for anything that is not a finite number.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise RecordError(f"{field} is not a number: {value!r}")
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = _NUMBER_NOISE.sub("", str(value))
        if text.endswith("%"):
            text = text[:-1]
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            raise RecordError(f"{field} is not a number: {value!r}") from None
    if math.isnan(number) or math.isinf(number):
        raise RecordError(f"{field} is not a finite number: {value!r}")
    return number


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timezone-aware UTC copy of a datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an export date into an aware UTC datetime; None when unparsable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    else:
        text = str(value).strip()
        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None
    return as_utc(parsed)


def text_value(value: Any) -> Optional[str]:
    """Stringify and strip a value; blanks become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
