"""
Single owner of the coach state.

Both the reminder loop and the conversation flow change state only through
``StateStore.dispatch(event)``. The reducer is a pure ``(state, event) -> state``
function and dispatch never awaits, so two coroutines interleaving on the event
loop cannot observe a half-applied update.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any, Protocol, Union

from dietcoach.clock import Clock, time_str, today_str
from dietcoach.directives import ParsedReply
from dietcoach.domain import (
    CoachState,
    DailyStats,
    MealLog,
    Message,
    ReminderCategory,
    ReminderStatus,
    UserProfile,
)


logger = logging.getLogger(__name__)

PROFILE_KEY = "profile"
STATS_KEY = "stats"
TRANSCRIPT_KEY = "transcript"


@dataclass(frozen=True)
class UserSpoke:
    message: Message


@dataclass(frozen=True)
class DirectivesApplied:
    reply: ParsedReply
    meal_description: str
    at: dt.datetime


@dataclass(frozen=True)
class ReminderFired:
    category: ReminderCategory
    message: Message
    quick_replies: tuple[str, ...]
    at: dt.datetime


@dataclass(frozen=True)
class ModelReplied:
    message: Message
    quick_replies: tuple[str, ...] | None = None


@dataclass(frozen=True)
class OnboardingCompleted:
    profile: UserProfile
    message: Message


@dataclass(frozen=True)
class NotificationsToggled:
    enabled: bool


@dataclass(frozen=True)
class ChatBound:
    chat_id: int


Event = Union[
    UserSpoke,
    DirectivesApplied,
    ReminderFired,
    ModelReplied,
    OnboardingCompleted,
    NotificationsToggled,
    ChatBound,
]


def roll_over(state: CoachState, today: str) -> CoachState:
    if state.stats.date == today:
        return state
    return state.model_copy(update={"stats": DailyStats.fresh(today)})


def _append(state: CoachState, message: Message) -> tuple[Message, ...]:
    return state.transcript + (message,)


def _apply_directives(state: CoachState, ev: DirectivesApplied) -> CoachState:
    reply = ev.reply
    profile = state.profile
    stats = state.stats
    quick = state.quick_replies

    target = reply.new_target
    if target is not None and target > 0:
        profile = profile.model_copy(update={"daily_calorie_target": target})

    kcal = reply.calories_to_add
    if kcal is not None and kcal > 0:
        meal = MealLog(time=time_str(ev.at), description=ev.meal_description, calories=kcal)
        stats = stats.model_copy(
            update={
                "calories_consumed": stats.calories_consumed + kcal,
                "meals": stats.meals + (meal,),
            }
        )

    ml = reply.water_to_add
    if ml is not None and ml > 0:
        stats = stats.model_copy(
            update={
                "water_intake_ml": stats.water_intake_ml + ml,
                "last_water_at": ev.at,
            }
        )

    if reply.buttons:
        quick = reply.buttons

    return state.model_copy(update={"profile": profile, "stats": stats, "quick_replies": quick})


def _apply_reminder(state: CoachState, ev: ReminderFired) -> CoachState:
    stats = state.stats
    if ev.category is ReminderCategory.HYDRATION:
        stats = stats.model_copy(update={"last_water_reminder_at": ev.at})
    else:
        if stats.reminder_sent(ev.category):
            return state
        reminders = dict(stats.reminders)
        reminders[ev.category] = ReminderStatus.SENT
        stats = stats.model_copy(update={"reminders": reminders})

    update: dict[str, Any] = {"stats": stats, "transcript": _append(state, ev.message)}
    if ev.quick_replies:
        update["quick_replies"] = ev.quick_replies
    return state.model_copy(update=update)


def reduce(state: CoachState, event: Event) -> CoachState:
    if isinstance(event, UserSpoke):
        return state.model_copy(
            update={"transcript": _append(state, event.message), "quick_replies": (), "pending": True}
        )
    if isinstance(event, DirectivesApplied):
        return _apply_directives(state, event)
    if isinstance(event, ReminderFired):
        return _apply_reminder(state, event)
    if isinstance(event, ModelReplied):
        update: dict[str, Any] = {"transcript": _append(state, event.message), "pending": False}
        if event.quick_replies is not None:
            update["quick_replies"] = event.quick_replies
        return state.model_copy(update=update)
    if isinstance(event, OnboardingCompleted):
        profile = event.profile.model_copy(update={"chat_id": state.profile.chat_id})
        return state.model_copy(
            update={"profile": profile, "transcript": (event.message,), "quick_replies": ()}
        )
    if isinstance(event, NotificationsToggled):
        return state.model_copy(
            update={"profile": state.profile.model_copy(update={"notifications_enabled": event.enabled})}
        )
    if isinstance(event, ChatBound):
        return state.model_copy(
            update={"profile": state.profile.model_copy(update={"chat_id": event.chat_id})}
        )
    raise TypeError(f"Unknown event: {type(event).__name__}")


class StateSaver(Protocol):
    async def save(self, key: str, payload: Any) -> None:
        ...


def default_state(today: str) -> CoachState:
    return CoachState(profile=UserProfile(), stats=DailyStats.fresh(today))


class StateStore:
    def __init__(self, clock: Clock, state: CoachState | None = None, saver: StateSaver | None = None):
        self.clock = clock
        self.saver = saver
        self._state = state or default_state(today_str(clock.now()))
        self._pending_saves: set[asyncio.Task[None]] = set()
        self._unsaved: dict[str, Any] = {}
        self._save_lock = asyncio.Lock()

    @property
    def state(self) -> CoachState:
        self.ensure_today()
        return self._state

    def ensure_today(self) -> bool:
        """Replace stale per-day stats. Safe to call any number of times."""
        today = today_str(self.clock.now())
        before = self._state
        after = roll_over(before, today)
        if after is before:
            return False
        logger.info("Daily stats rolled over: %s -> %s", before.stats.date, today)
        self._state = after
        self._persist(before, after)
        return True

    def dispatch(self, event: Event) -> CoachState:
        self.ensure_today()
        before = self._state
        after = reduce(before, event)
        self._state = after
        self._persist(before, after)
        return after

    def _persist(self, before: CoachState, after: CoachState) -> None:
        if self.saver is None:
            return
        if after.profile is not before.profile:
            self._schedule_save(PROFILE_KEY, after.profile.model_dump(mode="json"))
        if after.stats is not before.stats:
            self._schedule_save(STATS_KEY, after.stats.model_dump(mode="json"))
        if after.transcript is not before.transcript:
            self._schedule_save(TRANSCRIPT_KEY, [m.model_dump(mode="json") for m in after.transcript])

    def _schedule_save(self, key: str, payload: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; %s not persisted", key)
            return
        # later payloads for the same key supersede earlier unsaved ones
        self._unsaved[key] = payload
        task = loop.create_task(self._save(key))
        self._pending_saves.add(task)
        task.add_done_callback(self._pending_saves.discard)

    async def _save(self, key: str) -> None:
        assert self.saver is not None
        async with self._save_lock:
            if key not in self._unsaved:
                return
            payload = self._unsaved.pop(key)
            try:
                await self.saver.save(key, payload)
            except Exception:
                # best-effort: the in-memory state stays authoritative
                logger.warning("Failed to persist %s", key, exc_info=True)

    async def flush(self) -> None:
        while self._pending_saves:
            await asyncio.gather(*list(self._pending_saves))
