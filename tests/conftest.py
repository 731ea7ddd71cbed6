from __future__ import annotations

import datetime as dt
import os
from zoneinfo import ZoneInfo

import pytest

# settings are read at import time; tests never talk to Telegram/OpenAI
os.environ.setdefault("BOT_TOKEN", "123456:test")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")

from dietcoach.clock import today_str  # noqa: E402
from dietcoach.domain import CoachState, DailyStats, UserProfile  # noqa: E402
from dietcoach.state import StateStore  # noqa: E402


TZ = ZoneInfo("Asia/Kolkata")


class FakeClock:
    def __init__(self, now: dt.datetime):
        self.current = now

    def now(self) -> dt.datetime:
        return self.current

    def set(self, hhmm: str, date: str | None = None) -> None:
        d = dt.date.fromisoformat(date) if date else self.current.date()
        h, m = hhmm.split(":")
        self.current = dt.datetime(d.year, d.month, d.day, int(h), int(m), tzinfo=TZ)

    def advance(self, minutes: float) -> None:
        self.current = self.current + dt.timedelta(minutes=minutes)


def at(date: str, hhmm: str) -> dt.datetime:
    d = dt.date.fromisoformat(date)
    h, m = hhmm.split(":")
    return dt.datetime(d.year, d.month, d.day, int(h), int(m), tzinfo=TZ)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(at("2024-01-01", "06:00"))


@pytest.fixture
def profile() -> UserProfile:
    return UserProfile(
        name="Asha",
        onboarding_complete=True,
        age=32,
        gender="Female",
        height_cm=160,
        current_weight_kg=78,
        target_weight_kg=65,
        activity_level="Low",
        wake_time="07:00",
        breakfast_time="08:30",
        lunch_time="13:30",
        snack_time="17:00",
        dinner_time="20:00",
        sleep_time="23:00",
        water_goal="2.5 L",
        daily_calorie_target=1600,
        notifications_enabled=True,
    )


@pytest.fixture
def store(clock: FakeClock, profile: UserProfile) -> StateStore:
    return StateStore(clock, CoachState(profile=profile, stats=DailyStats.fresh(today_str(clock.now()))))
