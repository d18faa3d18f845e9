"""
Temporal normalization for graph values.

Timestamps reach the dashboard in several shapes: epoch milliseconds stored
as integers, Neo4j temporal types, ISO strings written by other services, and
occasionally plain maps with ``year``/``month``/``day`` keys. Everything that
can be resolved to an instant is rendered as a UTC ISO-8601 string with
millisecond precision (``2024-03-15T10:30:00.000Z``); everything else falls
back to ``str(value)``. Callers must not assume the output is date-shaped.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
import numbers
import re
from decimal import Decimal
from typing import Any, Mapping, Optional

from dateutil import parser as date_parser
from neo4j.time import Date, DateTime, Duration, Time

from ..config.models import ProjectionSettings

logger = logging.getLogger(__name__)

EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)
ONE_MILLISECOND = dt.timedelta(milliseconds=1)

TEMPORAL_NATIVE_TYPES = (
    DateTime,
    Date,
    Time,
    Duration,
    dt.datetime,
    dt.date,
    dt.time,
    dt.timedelta,
)

_COMPONENT_KEYS = ("year", "month", "day")
_NUMERIC_RE = re.compile(r"^[+-]?\d+(\.\d+)?$")
# Fills the parts a free-form date leaves out.
_PARSE_DEFAULT = dt.datetime(1970, 1, 1)


def is_temporal_native(value: Any) -> bool:
    return isinstance(value, TEMPORAL_NATIVE_TYPES)


def _component(source: Any, name: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def looks_temporal(value: Any) -> bool:
    """True for objects or maps exposing non-empty year/month/day components."""
    if is_temporal_native(value):
        return True
    if isinstance(value, Mapping):
        return all(value.get(key) for key in _COMPONENT_KEYS)
    return False


def _components_to_millis(value: Any) -> Optional[float]:
    year = _component(value, "year")
    month = _component(value, "month")
    day = _component(value, "day")
    if not (year and month and day):
        return None

    hour = int(_component(value, "hour") or 0)
    minute = int(_component(value, "minute") or 0)
    raw_second = _component(value, "second") or 0
    second = int(raw_second)
    millis = int(round((float(raw_second) - second) * 1000))

    nanosecond = _component(value, "nanosecond")
    microsecond = _component(value, "microsecond")
    if nanosecond:
        millis = int(nanosecond) // 1_000_000
    elif microsecond:
        millis = int(microsecond) // 1_000

    # Components are 1-based for months, the same as Python's calendar.
    instant = dt.datetime(int(year), int(month), int(day), hour, minute, second, tzinfo=dt.timezone.utc)

    utcoffset = getattr(value, "utcoffset", None)
    if callable(utcoffset):
        offset = utcoffset()
        if isinstance(offset, dt.timedelta):
            instant -= offset

    return (instant - EPOCH) // ONE_MILLISECOND + millis


def _string_to_millis(text: str) -> Optional[float]:
    """
    Parse a timestamp string: plain numbers are epoch millis, then ISO-8601,
    then free-form dates (``Fri, 15 Mar 2024 10:30:00 GMT``, ``March 15, 2024``).
    """
    candidate = text.strip()
    if not candidate:
        return None
    # Compact ISO dates would otherwise swallow 13-digit epoch strings.
    if _NUMERIC_RE.match(candidate):
        return float(candidate) if "." in candidate else int(candidate)
    parsed = None
    try:
        parsed = date_parser.isoparse(candidate)
    except (ValueError, OverflowError):
        try:
            parsed = date_parser.parse(candidate, default=_PARSE_DEFAULT)
        except (ValueError, OverflowError):
            parsed = None
    if parsed is not None:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=dt.timezone.utc)
        return (parsed - EPOCH) // ONE_MILLISECOND
    try:
        return float(candidate)
    except ValueError:
        return None


def to_epoch_millis(value: Any) -> Optional[float]:
    """
    Resolve ``value`` to a millisecond epoch, or ``None`` when no path applies.

    Resolution order: integers, big numbers, structured temporal objects,
    plain floats, then strings (numeric first, then ISO-8601, then free-form).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (numbers.Integral, Decimal)):
        return float(value)
    if isinstance(value, dt.date) or looks_temporal(value):
        return _components_to_millis(value)
    if isinstance(value, float):
        return value
    if isinstance(value, str):
        return _string_to_millis(value)
    return None


def epoch_millis_to_iso(millis: float) -> str:
    instant = EPOCH + dt.timedelta(milliseconds=int(millis))
    return (
        f"{instant.year:04d}-{instant.month:02d}-{instant.day:02d}"
        f"T{instant.hour:02d}:{instant.minute:02d}:{instant.second:02d}"
        f".{instant.microsecond // 1000:03d}Z"
    )


class TemporalNormalizer:
    """Turns timestamp-like values into canonical ISO-8601 strings."""

    def __init__(self, settings: Optional[ProjectionSettings] = None):
        self.settings = settings or ProjectionSettings()

    def applies_to(self, field_name: Optional[str], raw: Any) -> bool:
        return is_temporal_native(raw) or self.settings.is_timestamp_field(field_name)

    def normalize(self, field_name: Optional[str], raw: Any) -> Optional[str]:
        if raw is None:
            return None
        if isinstance(raw, bool):
            return "true" if raw else "false"
        try:
            millis = to_epoch_millis(raw)
            if millis is not None and math.isfinite(millis):
                return epoch_millis_to_iso(millis)
        except (ArithmeticError, ValueError, TypeError) as exc:
            logger.debug(
                "[PROJECTION] Could not convert %r for field %s: %s",
                raw,
                field_name or "<value>",
                exc,
            )
        return str(raw)


def normalize_temporal(field_name: Optional[str], raw: Any, settings: Optional[ProjectionSettings] = None) -> Optional[str]:
    return TemporalNormalizer(settings).normalize(field_name, raw)
