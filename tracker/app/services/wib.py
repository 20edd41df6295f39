"""
WIB (Asia/Jakarta, UTC+7) clock helpers.

All stored timestamps are naive WIB wall-clock strings in the form
``YYYY-MM-DD HH:MM:SS`` so they sort lexicographically and compare
directly in SQL.
"""

import time
from datetime import datetime, date
from typing import Optional, Union
from zoneinfo import ZoneInfo

WIB = ZoneInfo("Asia/Jakarta")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_DAY_NAMES = ["Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu"]
_MONTH_NAMES = [
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
]


def now_wib() -> datetime:
    """Current WIB time as a naive datetime."""
    return datetime.now(WIB).replace(tzinfo=None)


def today_wib() -> date:
    return now_wib().date()


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def format_wib_timestamp(value: Optional[Union[datetime, float]] = None) -> str:
    """
    Format a moment as a WIB timestamp string.

    Accepts an aware datetime, a POSIX timestamp, or nothing (now). Naive
    datetimes are assumed to already be WIB wall-clock time.
    """
    if value is None:
        moment = now_wib()
    elif isinstance(value, (int, float)):
        moment = datetime.fromtimestamp(value, WIB).replace(tzinfo=None)
    elif value.tzinfo is not None:
        moment = value.astimezone(WIB).replace(tzinfo=None)
    else:
        moment = value
    return moment.strftime(TIMESTAMP_FORMAT)


def wib_timestamp() -> str:
    return format_wib_timestamp()


def parse_wib_timestamp(value: str) -> datetime:
    return datetime.strptime(value[:19], TIMESTAMP_FORMAT)


def format_long_id(value: Optional[str]) -> Optional[str]:
    """
    Render a stored timestamp the way id-ID "full date, short time" does,
    e.g. ``Minggu, 18 Oktober 2026 pukul 14.05``.

    Returns the input unchanged if it cannot be parsed.
    """
    if not value:
        return value
    try:
        moment = parse_wib_timestamp(value)
    except ValueError:
        return value
    return (
        f"{_DAY_NAMES[moment.weekday()]}, {moment.day} "
        f"{_MONTH_NAMES[moment.month - 1]} {moment.year} "
        f"pukul {moment.hour:02d}.{moment.minute:02d}"
    )
