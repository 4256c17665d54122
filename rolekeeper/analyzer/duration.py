# analyzer/duration.py – ISO 8601 durations ("PT1H2M3.456S") used by time requirements

from __future__ import annotations

import datetime as dt
import re

from rolekeeper.errors import ConfigError

_DURATION_RE = re.compile(
    r"^P(?!$)"
    r"(?:(?P<days>\d+(?:\.\d+)?)D)?"
    r"(?:T(?=\d)"
    r"(?:(?P<hours>\d+(?:\.\d+)?)H)?"
    r"(?:(?P<minutes>\d+(?:\.\d+)?)M)?"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)S)?"
    r")?$"
)


def parse_duration(text: str) -> dt.timedelta:
    """
    Parse the day/time subset of ISO 8601 durations.

    Years and months are rejected since they have no fixed length.
    Seconds keep millisecond precision: ``PT1M2.345S`` -> 62.345 s.

    Raises:
        ConfigError: ``text`` is not such a duration
    """
    match = _DURATION_RE.match(text.strip().upper()) if isinstance(text, str) else None
    if match is None or not any(match.groupdict().values()):
        raise ConfigError(f"Invalid duration {text!r}: expected ISO 8601 like 'PT1H2M3.5S'")

    parts = {name: float(value) for name, value in match.groupdict().items() if value}
    delta = dt.timedelta(**parts)
    return dt.timedelta(milliseconds=round(delta.total_seconds() * 1000))


def format_seconds(seconds: float) -> str:
    """Render a run time the way leaderboards do: ``1:02:03.450`` / ``2:03.450``."""
    ms = int(round(seconds * 1000))
    total, ms = divmod(ms, 1000)
    h, rem = divmod(total, 3600)
    m, s = divmod(rem, 60)
    frac = f".{ms:03d}" if ms else ""
    if h > 0:
        return f"{h:d}:{m:02d}:{s:02d}{frac}"
    return f"{m:d}:{s:02d}{frac}"
