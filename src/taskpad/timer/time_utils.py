# src/taskpad/timer/time_utils.py

from __future__ import annotations

import re
import time

_TOKEN_RE = re.compile(r"^\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*(?:(\d+)\s*s)?\s*$", re.IGNORECASE)

MAX_DISPLAY_HOURS = 99


def wall_clock_ms() -> float:
    return time.time() * 1000.0


def format_hms(ms: float) -> str:
    """Format milliseconds as HH:MM:SS (hours capped at 99 for display)."""
    total_seconds = max(0, int(ms // 1000))
    minutes, seconds = divmod(total_seconds, 60)
    hours, minutes = divmod(minutes, 60)
    hours = min(hours, MAX_DISPLAY_HOURS)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def _split_colon_ints(text: str) -> list[int] | None:
    out: list[int] = []
    for part in text.split(":"):
        part = part.strip()
        if not part.isdigit():
            return None
        out.append(int(part))
    return out


def parse_time_input(text: str) -> int | None:
    """
    Strict parser for user-edited elapsed time.

    Accepts "M:SS" and "H:MM:SS". Blank input means zero.
    Returns None when the input is not a valid duration.
    """
    if not text or not text.strip():
        return 0

    parts = _split_colon_ints(text.strip())
    if parts is None:
        return None

    if len(parts) == 2:
        minutes, seconds = parts
        if seconds >= 60:
            return None
        return (minutes * 60 + seconds) * 1000

    if len(parts) == 3:
        hours, minutes, seconds = parts
        if minutes >= 60 or seconds >= 60:
            return None
        return (hours * 3600 + minutes * 60 + seconds) * 1000

    return None


def parse_timer_to_ms(text: str) -> int:
    """
    Lenient parser for imported timer values.

    Supports "1h 2m 3s" tokens as well as "HH:MM:SS" / "MM:SS".
    Anything unrecognized counts as zero.
    """
    if not text:
        return 0
    s = text.strip()

    m = _TOKEN_RE.match(s)
    if m and any(m.groups()):
        h, mins, sec = (int(g or 0) for g in m.groups())
        return ((h * 60 + mins) * 60 + sec) * 1000

    parts = _split_colon_ints(s)
    if parts is None:
        return 0
    if len(parts) == 3:
        h, mins, sec = parts
        return ((h * 60 + mins) * 60 + sec) * 1000
    if len(parts) == 2:
        mins, sec = parts
        return (mins * 60 + sec) * 1000
    return 0
