from __future__ import annotations

import asyncio
import datetime as dt
import logging
import math
from dataclasses import dataclass
from typing import Protocol, Sequence

from dietcoach.clock import Clock
from dietcoach.domain import (
    ROUTINE_CATEGORIES,
    HHMM_RE,
    DailyStats,
    Message,
    ReminderCategory,
    UserProfile,
)
from dietcoach.state import ReminderFired, StateStore


logger = logging.getLogger(__name__)

YES_NOT_YET: tuple[str, ...] = ("Yes", "Not yet")

REMINDER_TEXTS: dict[ReminderCategory, str] = {
    ReminderCategory.WAKE: "Good morning ☀️ New day, new consistency. Have a glass of water.",
    ReminderCategory.BREAKFAST: "Hey, it's breakfast time. Have you eaten?",
    ReminderCategory.LUNCH: "Hey, it's lunchtime. Have you had your lunch?",
    ReminderCategory.SNACK: "It's your snack window. Choose something light and healthy.",
    ReminderCategory.DINNER: "Hey, it's dinner time. Have you had your dinner?",
    ReminderCategory.SLEEP: "Day complete 🌙 Good night. Tomorrow we continue strong.",
    ReminderCategory.HYDRATION: "Hydration check 💧 Sip some water?",
}

REMINDER_REPLIES: dict[ReminderCategory, tuple[str, ...]] = {
    ReminderCategory.WAKE: (),
    ReminderCategory.BREAKFAST: YES_NOT_YET,
    ReminderCategory.LUNCH: YES_NOT_YET,
    ReminderCategory.SNACK: ("Yes, I ate", "Not yet"),
    ReminderCategory.DINNER: YES_NOT_YET,
    ReminderCategory.SLEEP: (),
    ReminderCategory.HYDRATION: YES_NOT_YET,
}


@dataclass(frozen=True)
class Reminder:
    category: ReminderCategory
    text: str
    quick_replies: tuple[str, ...]


class Notifier(Protocol):
    async def notify(self, message: Message, quick_replies: Sequence[str]) -> None:
        ...


def minutes_of_day(hhmm: str | None) -> int | None:
    if not hhmm or not HHMM_RE.match(hhmm.strip()):
        return None
    h, m = hhmm.strip().split(":")
    return int(h) * 60 + int(m)


def in_window(now: dt.datetime, scheduled: str | None, window_min: int = 15) -> bool:
    """True from the scheduled minute up to window_min minutes after it (same day only)."""
    sched = minutes_of_day(scheduled)
    if sched is None:
        return False
    diff = now.hour * 60 + now.minute - sched
    return 0 <= diff <= window_min


def minutes_since(then: dt.datetime | None, now: dt.datetime) -> float:
    if then is None:
        return math.inf
    if then.tzinfo is None:
        then = then.replace(tzinfo=dt.timezone.utc)
    return (now - then).total_seconds() / 60.0


def due_reminder(
    profile: UserProfile,
    stats: DailyStats,
    now: dt.datetime,
    *,
    window_min: int = 15,
    water_gap_min: int = 90,
    water_cooldown_min: int = 60,
) -> Reminder | None:
    if not profile.onboarding_complete:
        return None

    for category in ROUTINE_CATEGORIES:
        # snack is skipped automatically when no time is configured
        if stats.reminder_sent(category):
            continue
        if in_window(now, profile.routine_time(category), window_min):
            return Reminder(category, REMINDER_TEXTS[category], REMINDER_REPLIES[category])

    if (
        minutes_since(stats.last_water_at, now) >= water_gap_min
        and minutes_since(stats.last_water_reminder_at, now) >= water_cooldown_min
    ):
        hydration = ReminderCategory.HYDRATION
        return Reminder(hydration, REMINDER_TEXTS[hydration], REMINDER_REPLIES[hydration])
    return None


class ReminderEngine:
    def __init__(
        self,
        store: StateStore,
        clock: Clock,
        notifier: Notifier | None = None,
        *,
        tick_s: float = 30,
        window_min: int = 15,
        water_gap_min: int = 90,
        water_cooldown_min: int = 60,
    ):
        self.store = store
        self.clock = clock
        self.notifier = notifier
        self.tick_s = tick_s
        self.window_min = window_min
        self.water_gap_min = water_gap_min
        self.water_cooldown_min = water_cooldown_min

    async def tick(self) -> Message | None:
        """Evaluate once and emit at most one reminder."""
        now = self.clock.now()
        state = self.store.state
        reminder = due_reminder(
            state.profile,
            state.stats,
            now,
            window_min=self.window_min,
            water_gap_min=self.water_gap_min,
            water_cooldown_min=self.water_cooldown_min,
        )
        if reminder is None:
            return None

        msg = Message(role="model", text=reminder.text, timestamp=now)
        state = self.store.dispatch(
            ReminderFired(category=reminder.category, message=msg, quick_replies=reminder.quick_replies, at=now)
        )
        logger.info("Reminder fired: %s", reminder.category.value)

        if self.notifier is not None and state.profile.notifications_enabled:
            try:
                await self.notifier.notify(msg, reminder.quick_replies)
            except Exception:
                logger.warning("Notification for %s reminder failed", reminder.category.value, exc_info=True)
        return msg

    async def run(self) -> None:
        """Background loop; a failed tick is logged and the next one runs as usual."""
        while True:
            try:
                await self.tick()
            except Exception:
                logger.exception("Reminder tick failed")
            await asyncio.sleep(self.tick_s)
