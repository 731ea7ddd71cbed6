from __future__ import annotations

import datetime as dt
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> dt.datetime:
        """Current local time, timezone-aware."""
        ...


class SystemClock:
    def __init__(self, tz_name: str = "Asia/Kolkata"):
        try:
            self.tz = ZoneInfo(tz_name)
        except Exception:
            self.tz = ZoneInfo("UTC")

    def now(self) -> dt.datetime:
        return dt.datetime.now(dt.timezone.utc).astimezone(self.tz)


def today_str(now: dt.datetime) -> str:
    return now.date().isoformat()


def time_str(now: dt.datetime) -> str:
    # 24h HH:MM, same shape as the routine fields
    return now.strftime("%H:%M")
