# tests/test_time_utils.py

from __future__ import annotations

import pytest

from taskpad.timer.time_utils import format_hms, parse_time_input, parse_timer_to_ms


@pytest.mark.parametrize(
    ("ms", "text"),
    [
        (0, "00:00:00"),
        (999, "00:00:00"),
        (61_000, "00:01:01"),
        (3_723_000, "01:02:03"),
        (150 * 3600 * 1000, "99:00:00"),
        (-5, "00:00:00"),
    ],
)
def test_format_hms(ms: int, text: str) -> None:
    assert format_hms(ms) == text


@pytest.mark.parametrize(
    ("text", "ms"),
    [
        ("1:30", 90_000),
        ("0:05", 5_000),
        ("1:02:03", 3_723_000),
        ("  2:00 ", 120_000),
        ("", 0),
        ("   ", 0),
    ],
)
def test_parse_time_input_accepts(text: str, ms: int) -> None:
    assert parse_time_input(text) == ms


@pytest.mark.parametrize("text", ["abc", "5", "1:60", "1:61:00", "1:2:3:4", "-1:00", "1.5:00"])
def test_parse_time_input_rejects(text: str) -> None:
    assert parse_time_input(text) is None


@pytest.mark.parametrize(
    ("text", "ms"),
    [
        ("1h 2m 3s", 3_723_000),
        ("2m", 120_000),
        ("45s", 45_000),
        ("01:02:03", 3_723_000),
        ("1:30", 90_000),
        ("junk", 0),
        ("10:30m", 0),
        ("3m 10:00", 0),
        (" 1h 5m ", 3_900_000),
        ("", 0),
    ],
)
def test_parse_timer_to_ms_is_lenient(text: str, ms: int) -> None:
    assert parse_timer_to_ms(text) == ms
