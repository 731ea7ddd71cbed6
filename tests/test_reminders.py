from __future__ import annotations

import asyncio

import pytest

from dietcoach.directives import parse_reply
from dietcoach.domain import CoachState, DailyStats, ReminderCategory, UserProfile
from dietcoach.reminders import ReminderEngine, due_reminder, in_window, minutes_since
from dietcoach.state import DirectivesApplied, StateStore

from conftest import at


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, tuple[str, ...]]] = []

    async def notify(self, message, quick_replies) -> None:
        self.sent.append((message.text, tuple(quick_replies)))


class FailingNotifier:
    async def notify(self, message, quick_replies) -> None:
        raise ConnectionError("telegram down")


def _drink(store: StateStore, clock, ml: int = 250) -> None:
    store.dispatch(DirectivesApplied(reply=parse_reply(f"[[WATER: {ml}]]"), meal_description="", at=clock.now()))


def _engine(store, clock, notifier=None) -> ReminderEngine:
    return ReminderEngine(store, clock, notifier)


def test_window_bounds() -> None:
    assert in_window(at("2024-01-01", "13:30"), "13:30")
    assert in_window(at("2024-01-01", "13:45"), "13:30")
    assert not in_window(at("2024-01-01", "13:46"), "13:30")
    assert not in_window(at("2024-01-01", "13:29"), "13:30")
    assert not in_window(at("2024-01-01", "13:30"), None)
    # the window does not wrap past midnight
    assert not in_window(at("2024-01-02", "00:05"), "23:55")


def test_minutes_since_missing_is_infinite() -> None:
    assert minutes_since(None, at("2024-01-01", "10:00")) == float("inf")
    assert minutes_since(at("2024-01-01", "09:00"), at("2024-01-01", "10:30")) == 90


@pytest.mark.asyncio
async def test_lunch_fires_once_per_day(store, clock) -> None:
    clock.set("13:30")
    _drink(store, clock)
    engine = _engine(store, clock)

    msg = await engine.tick()
    assert msg is not None
    assert "lunch" in msg.text.lower()
    assert store.state.quick_replies == ("Yes", "Not yet")
    assert store.state.stats.reminder_sent(ReminderCategory.LUNCH)

    clock.set("13:40")
    assert await engine.tick() is None
    lunch_msgs = [m for m in store.state.transcript if "lunch" in m.text.lower()]
    assert len(lunch_msgs) == 1


@pytest.mark.asyncio
async def test_reminder_fires_again_after_rollover(store, clock) -> None:
    clock.set("13:31")
    _drink(store, clock)
    engine = _engine(store, clock)
    assert (await engine.tick()) is not None

    clock.set("13:31", "2024-01-02")
    _drink(store, clock)
    msg = await engine.tick()
    assert msg is not None and "lunch" in msg.text.lower()
    assert store.state.stats.date == "2024-01-02"


@pytest.mark.asyncio
async def test_hydration_gap_and_cooldown(store, clock) -> None:
    clock.set("10:00")
    _drink(store, clock)
    engine = _engine(store, clock)

    clock.set("11:29")
    assert await engine.tick() is None

    clock.set("11:30")
    msg = await engine.tick()
    assert msg is not None and "hydration" in msg.text.lower()
    assert store.state.stats.last_water_reminder_at == clock.now()

    # still thirsty, but the cooldown holds
    clock.set("12:29")
    assert await engine.tick() is None
    clock.set("12:30")
    assert await engine.tick() is not None


@pytest.mark.asyncio
async def test_hydration_due_when_nothing_logged(store, clock) -> None:
    clock.set("10:00")
    msg = await _engine(store, clock).tick()
    assert msg is not None
    assert store.state.stats.last_water_reminder_at == clock.now()


def test_meal_wins_over_hydration(profile) -> None:
    stats = DailyStats.fresh("2024-01-01")
    r = due_reminder(profile, stats, at("2024-01-01", "20:05"))
    assert r is not None and r.category is ReminderCategory.DINNER


def test_priority_follows_routine_order() -> None:
    p = UserProfile(
        name="A",
        onboarding_complete=True,
        wake_time="07:00",
        breakfast_time="07:05",
        lunch_time="13:00",
        dinner_time="20:00",
        sleep_time="23:00",
    )
    stats = DailyStats.fresh("2024-01-01")
    r = due_reminder(p, stats, at("2024-01-01", "07:10"))
    assert r is not None and r.category is ReminderCategory.WAKE

    woke = DailyStats.model_validate({"date": "2024-01-01", "reminders": {"wake": "sent"}})
    r = due_reminder(p, woke, at("2024-01-01", "07:10"))
    assert r is not None and r.category is ReminderCategory.BREAKFAST


def test_snack_skipped_when_unset(profile) -> None:
    p = profile.model_copy(update={"snack_time": None})
    stats = DailyStats.fresh("2024-01-01").model_copy(update={"last_water_at": at("2024-01-01", "16:55")})
    assert due_reminder(p, stats, at("2024-01-01", "17:05")) is None


def test_snack_offers_its_own_replies(profile) -> None:
    stats = DailyStats.fresh("2024-01-01")
    r = due_reminder(profile, stats, at("2024-01-01", "17:00"))
    assert r is not None
    assert r.category is ReminderCategory.SNACK
    assert r.quick_replies == ("Yes, I ate", "Not yet")


def test_nothing_before_onboarding() -> None:
    p = UserProfile(wake_time="07:00")
    assert due_reminder(p, DailyStats.fresh("2024-01-01"), at("2024-01-01", "07:00")) is None


@pytest.mark.asyncio
async def test_notifier_called_when_enabled(store, clock) -> None:
    clock.set("08:30")
    _drink(store, clock)
    notifier = RecordingNotifier()
    await _engine(store, clock, notifier).tick()
    assert notifier.sent == [("Hey, it's breakfast time. Have you eaten?", ("Yes", "Not yet"))]


@pytest.mark.asyncio
async def test_notifier_skipped_without_permission(clock, profile) -> None:
    store = StateStore(
        clock,
        CoachState(profile=profile.model_copy(update={"notifications_enabled": False}), stats=DailyStats.fresh("2024-01-01")),
    )
    clock.set("08:30")
    _drink(store, clock)
    notifier = RecordingNotifier()
    msg = await _engine(store, clock, notifier).tick()

    # the reminder still lands in the transcript
    assert msg is not None
    assert store.state.transcript[-1] == msg
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_notifier_failure_does_not_break_tick(store, clock) -> None:
    clock.set("08:30")
    _drink(store, clock)
    msg = await _engine(store, clock, FailingNotifier()).tick()
    assert msg is not None
    assert store.state.stats.reminder_sent(ReminderCategory.BREAKFAST)


@pytest.mark.asyncio
async def test_run_loop_survives_a_failing_tick(store, clock, monkeypatch) -> None:
    engine = ReminderEngine(store, clock, tick_s=0)
    calls = 0

    async def boom():
        nonlocal calls
        calls += 1
        if calls >= 3:
            raise asyncio.CancelledError
        raise RuntimeError("bad tick")

    monkeypatch.setattr(engine, "tick", boom)
    with pytest.raises(asyncio.CancelledError):
        await engine.run()
    assert calls == 3
