"""
Domain types shared by the store, the reminder engine and the conversation flow.

All models are frozen: state changes produce new instances (see dietcoach.state).
Persisted shapes are read tolerantly, so older or partial blobs still load.
"""

from __future__ import annotations

import datetime as dt
import re
import uuid
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


HHMM_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

DEFAULT_CALORIE_TARGET = 1500


class ReminderCategory(str, Enum):
    WAKE = "wake"
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    SNACK = "snack"
    DINNER = "dinner"
    SLEEP = "sleep"
    HYDRATION = "hydration"


# Strict priority order; hydration is evaluated only after all of these.
ROUTINE_CATEGORIES: tuple[ReminderCategory, ...] = (
    ReminderCategory.WAKE,
    ReminderCategory.BREAKFAST,
    ReminderCategory.LUNCH,
    ReminderCategory.SNACK,
    ReminderCategory.DINNER,
    ReminderCategory.SLEEP,
)


class ReminderStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def _fresh_reminders() -> dict[ReminderCategory, ReminderStatus]:
    return {c: ReminderStatus.PENDING for c in ROUTINE_CATEGORIES}


class UserProfile(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    onboarding_complete: bool = False

    age: int | None = None
    gender: str | None = None
    height_cm: float | None = None
    current_weight_kg: float | None = None
    target_weight_kg: float | None = None
    activity_level: str | None = None

    # routine, HH:MM 24h
    wake_time: str | None = None
    breakfast_time: str | None = None
    lunch_time: str | None = None
    snack_time: str | None = None
    dinner_time: str | None = None
    sleep_time: str | None = None

    water_goal: str | None = None
    dietary_preference: str | None = None
    allergies: str | None = None
    medical_conditions: tuple[str, ...] = ()

    daily_calorie_target: int = Field(default=DEFAULT_CALORIE_TARGET, gt=0)

    notifications_enabled: bool = False
    chat_id: int | None = None

    @field_validator("wake_time", "breakfast_time", "lunch_time", "snack_time", "dinner_time", "sleep_time", mode="before")
    @classmethod
    def _check_hhmm(cls, v: Any) -> Any:
        if v is None:
            return None
        s = str(v).strip()
        if not s:
            return None
        if not HHMM_RE.match(s):
            raise ValueError(f"expected HH:MM, got {s!r}")
        return s

    @model_validator(mode="after")
    def _routine_required_once_onboarded(self) -> "UserProfile":
        if self.onboarding_complete:
            missing = [
                c.value
                for c in ROUTINE_CATEGORIES
                if c is not ReminderCategory.SNACK and self.routine_time(c) is None
            ]
            if missing:
                raise ValueError(f"routine times missing: {', '.join(missing)}")
        return self

    def routine_time(self, category: ReminderCategory) -> str | None:
        return getattr(self, f"{category.value}_time", None)


class MealLog(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default_factory=new_id)
    time: str
    description: str
    calories: int = Field(ge=0)


class DailyStats(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    date: str
    calories_consumed: int = Field(default=0, ge=0)
    water_intake_ml: int = Field(default=0, ge=0)
    last_water_at: dt.datetime | None = None
    last_water_reminder_at: dt.datetime | None = None
    meals: tuple[MealLog, ...] = ()
    reminders: dict[ReminderCategory, ReminderStatus] = Field(default_factory=_fresh_reminders)

    @field_validator("reminders", mode="before")
    @classmethod
    def _coerce_reminders(cls, v: Any) -> Any:
        # accepts {"breakfast": true} style flags as well as statuses
        out: dict[str, Any] = {c.value: ReminderStatus.PENDING for c in ROUTINE_CATEGORIES}
        if not isinstance(v, dict):
            return out
        for k, val in v.items():
            key = k.value if isinstance(k, ReminderCategory) else str(k)
            if key not in out:
                continue
            if isinstance(val, bool):
                out[key] = ReminderStatus.SENT if val else ReminderStatus.PENDING
            else:
                out[key] = val
        return out

    @classmethod
    def fresh(cls, date: str) -> "DailyStats":
        return cls(date=date)

    def reminder_sent(self, category: ReminderCategory) -> bool:
        return self.reminders.get(category) is ReminderStatus.SENT


class Message(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(default_factory=new_id)
    role: Literal["user", "model"]
    text: str = ""
    image: str | None = None  # data URI
    timestamp: dt.datetime


class CoachState(BaseModel):
    """Everything the bot knows. Only profile, stats and transcript are persisted."""

    model_config = ConfigDict(frozen=True)

    profile: UserProfile
    stats: DailyStats
    transcript: tuple[Message, ...] = ()
    quick_replies: tuple[str, ...] = ()
    pending: bool = False
