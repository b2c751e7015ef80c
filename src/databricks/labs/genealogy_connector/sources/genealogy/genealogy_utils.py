"""Utility helpers shared by the genealogy connector.

Time parsing/formatting for PI Web API payloads, option coercion and the
value normalisation used when matching identifiers against historian samples.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_ts(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    PI Web API emits 7 fractional digits ("2024-01-01T00:00:00.1234567Z"),
    which `datetime.fromisoformat` rejects, so the fraction is trimmed to
    microseconds first. Naive inputs are taken as UTC.
    """
    s = str(value).strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    if "." in s:
        head, _, tail = s.partition(".")
        frac = tail
        offset = ""
        for sep in ("+", "-"):
            idx = tail.find(sep)
            if idx != -1:
                frac, offset = tail[:idx], tail[idx:]
                break
        s = f"{head}.{frac[:6].ljust(6, '0')}{offset}" if frac else f"{head}{offset}"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_z(dt: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with a trailing Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def as_bool(value: Any, default: bool = False) -> bool:
    """Coerce an option value ("true", "1", True, ...) to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    s = str(value).strip().lower()
    if s in ("true", "1", "yes", "y", "on"):
        return True
    if s in ("false", "0", "no", "n", "off"):
        return False
    return default


def as_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Coerce an option value to int, falling back to `default`."""
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def value_text(value: Any) -> Optional[str]:
    """Render a historian sample value as the text used for matching.

    Digital states arrive as {"Name": ..., "Value": ...} and are matched by
    their state name.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        name = value.get("Name")
        if name is not None:
            return str(name)
        inner = value.get("Value")
        return None if inner is None else str(inner)
    if isinstance(value, bool):
        return "True" if value else "False"
    return str(value)


def clamp_dt(dt: datetime, lower: datetime, upper: datetime) -> datetime:
    """Clamp `dt` into [lower, upper]."""
    if dt < lower:
        return lower
    if dt > upper:
        return upper
    return dt
