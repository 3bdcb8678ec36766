"""HH:MM handling for bell periods. All overlap arithmetic happens in minutes since midnight."""

import re
from datetime import time
from typing import Union

HHMM_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):([0-5][0-9])$")

TimeLike = Union[str, time]


def normalize_time_24(v: TimeLike) -> str:
    """Parse a 24-hour time (H:MM, HH:MM, or datetime.time) into zero-padded HH:MM."""
    if isinstance(v, time):
        return v.strftime("%H:%M")
    if isinstance(v, str):
        match = HHMM_PATTERN.match(v.strip())
        if match:
            return f"{int(match.group(1)):02d}:{match.group(2)}"
    raise ValueError("time must be in 24-hour HH:MM format (e.g. 09:00, 13:45)")


def to_minutes(v: TimeLike) -> int:
    if isinstance(v, time):
        return v.hour * 60 + v.minute
    hours, minutes = normalize_time_24(v).split(":")
    return int(hours) * 60 + int(minutes)


def ranges_overlap(start1: TimeLike, end1: TimeLike, start2: TimeLike, end2: TimeLike) -> bool:
    """Half-open [start, end) overlap. Back-to-back ranges (10:00 end, 10:00 start) do not overlap."""
    return to_minutes(start1) < to_minutes(end2) and to_minutes(end1) > to_minutes(start2)
