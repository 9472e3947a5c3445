"""Build timestamp computation.

Produces the instant reported by the service, either exact or floored to a
minute boundary, and renders it as an ISO-8601 string in UTC with
millisecond precision (``2024-03-01T12:05:00.000Z``).
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Callable, Dict, Optional


# JSON key of the single field in every response
TIMESTAMP_FIELD = "buildAt"

# Default rounding step in minutes
DEFAULT_ROUND_MINUTES = 5

# Fractional seconds right after the seconds field
_FRACTION_RE = re.compile(r"(?<=:\d\d)\.(\d+)")


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def floor_minutes(moment: datetime, step: int = DEFAULT_ROUND_MINUTES) -> datetime:
    """Round a datetime down to the previous multiple of ``step`` minutes.

    Seconds and sub-second components are zeroed. Only the minute field is
    touched, so the result always stays within the same hour.

    Args:
        moment: The instant to round.
        step: Minute step, between 1 and 60.

    Returns:
        A new datetime that is <= ``moment``.
    """
    if step < 1 or step > 60:
        raise ValueError(f"Rounding step must be between 1 and 60 minutes: {step}")
    minutes = (moment.minute // step) * step
    return moment.replace(minute=minutes, second=0, microsecond=0)


def format_timestamp(moment: datetime) -> str:
    """Render an instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``.

    Naive datetimes are taken to be UTC already.
    """
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.isoformat(timespec="milliseconds") + "Z"


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Fractions of any length are accepted and cut to microseconds, so
    nanosecond stamps from other services parse on every supported Python.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp has no UTC offset: {value}")
    return parsed.astimezone(timezone.utc)


def build_timestamp(
    now: Optional[datetime] = None,
    rounding: bool = True,
    step: int = DEFAULT_ROUND_MINUTES,
) -> str:
    """Compute the build timestamp string for a request received at ``now``."""
    if now is None:
        now = utc_now()
    if rounding:
        now = floor_minutes(now, step)
    return format_timestamp(now)


def build_payload(
    now: Optional[datetime] = None,
    rounding: bool = True,
    step: int = DEFAULT_ROUND_MINUTES,
) -> Dict[str, str]:
    """Single-field response document: ``{"buildAt": "<timestamp>"}``."""
    return {TIMESTAMP_FIELD: build_timestamp(now, rounding=rounding, step=step)}
