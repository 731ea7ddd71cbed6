"""
One-message onboarding: the user fills a short ``key: value`` form and we build the
profile from it. Required routine times drive the reminder engine, the rest feeds
the calorie target and the model context.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Any

from pydantic import ValidationError

from dietcoach.domain import Message, UserProfile
from dietcoach.nutrition import ACTIVITY_LEVELS, daily_calorie_target


FORM_TEMPLATE = (
    "Name: \n"
    "Age: \n"
    "Gender: Female/Male\n"
    "Height cm: \n"
    "Weight kg: \n"
    "Target weight kg: \n"
    "Activity: Very low/Low/Moderate/High\n"
    "Wake: 07:00\n"
    "Breakfast: 08:30\n"
    "Lunch: 13:30\n"
    "Snack: 17:00 (optional)\n"
    "Dinner: 20:00\n"
    "Sleep: 23:00\n"
    "Water goal: 2.5 L\n"
    "Diet: Vegetarian\n"
    "Allergies: none\n"
    "Health: none (or PCOS, Thyroid, Diabetes, ...)"
)

# label (lowercase, spaces collapsed) -> profile field
_ALIASES: dict[str, str] = {
    "name": "name",
    "age": "age",
    "gender": "gender",
    "sex": "gender",
    "height": "height_cm",
    "height cm": "height_cm",
    "weight": "current_weight_kg",
    "weight kg": "current_weight_kg",
    "current weight": "current_weight_kg",
    "current weight kg": "current_weight_kg",
    "target weight": "target_weight_kg",
    "target weight kg": "target_weight_kg",
    "activity": "activity_level",
    "activity level": "activity_level",
    "wake": "wake_time",
    "wake up": "wake_time",
    "breakfast": "breakfast_time",
    "lunch": "lunch_time",
    "snack": "snack_time",
    "dinner": "dinner_time",
    "sleep": "sleep_time",
    "water": "water_goal",
    "water goal": "water_goal",
    "diet": "dietary_preference",
    "dietary preference": "dietary_preference",
    "allergies": "allergies",
    "health": "medical_conditions",
    "medical conditions": "medical_conditions",
}

_REQUIRED = ("name", "age", "gender", "wake_time", "breakfast_time", "lunch_time", "dinner_time", "sleep_time")
_TIME_FIELDS = {"wake_time", "breakfast_time", "lunch_time", "snack_time", "dinner_time", "sleep_time"}
_NONE_WORDS = {"", "-", "none", "no", "nil", "n/a", "optional"}

_TIME_RE = re.compile(r"^(\d{1,2})(?::|\.)?(\d{2})?\s*(am|pm)?$", re.IGNORECASE)


def normalize_time(s: str) -> str | None:
    """'7:30' -> '07:30', '7 pm' -> '19:00', '23.15' -> '23:15'."""
    m = _TIME_RE.match(s.strip())
    if not m:
        return None
    h = int(m.group(1))
    mm = int(m.group(2) or 0)
    ampm = (m.group(3) or "").lower()
    if ampm:
        if not 1 <= h <= 12:
            return None
        h = h % 12 + (12 if ampm == "pm" else 0)
    if h > 23 or mm > 59:
        return None
    return f"{h:02d}:{mm:02d}"


def _parse_number(s: str) -> float | None:
    m = re.search(r"\d+(?:[.,]\d+)?", s)
    if not m:
        return None
    return float(m.group(0).replace(",", "."))


def _strip_hint(value: str) -> str:
    return re.sub(r"\s*\((?:optional|or [^)]*)\)\s*$", "", value, flags=re.IGNORECASE).strip()


def parse_profile_form(text: str) -> tuple[dict[str, Any], list[str]]:
    fields: dict[str, Any] = {}
    errors: list[str] = []
    invalid: set[str] = set()

    for line in (text or "").splitlines():
        if ":" not in line:
            continue
        # split on the first colon only, so "Wake: 07:00" keeps its time intact
        label, value = line.split(":", 1)
        key = _ALIASES.get(" ".join(label.strip().lower().split()))
        if key is None:
            continue
        value = _strip_hint(value)
        if value.lower() in _NONE_WORDS:
            continue

        if key in _TIME_FIELDS:
            t = normalize_time(value)
            if t is None:
                errors.append(f"{label.strip()}: expected a time like 07:30")
                invalid.add(key)
                continue
            fields[key] = t
        elif key == "age":
            n = _parse_number(value)
            if n is None or not 10 <= n <= 110:
                errors.append("Age: expected a number of years")
                invalid.add(key)
                continue
            fields[key] = int(n)
        elif key in {"height_cm", "current_weight_kg", "target_weight_kg"}:
            n = _parse_number(value)
            if n is None or n <= 0:
                errors.append(f"{label.strip()}: expected a number")
                invalid.add(key)
                continue
            fields[key] = n
        elif key == "gender":
            g = value.strip().lower()
            if g in {"f", "female", "woman"}:
                fields[key] = "Female"
            elif g in {"m", "male", "man"}:
                fields[key] = "Male"
            else:
                fields[key] = value.strip()
        elif key == "activity_level":
            match = [a for a in ACTIVITY_LEVELS if a.lower() == value.strip().lower()]
            fields[key] = match[0] if match else value.strip()
        elif key == "medical_conditions":
            fields[key] = tuple(c.strip() for c in value.split(",") if c.strip().lower() not in _NONE_WORDS)
        else:
            fields[key] = value.strip()

    for req in _REQUIRED:
        if req not in fields and req not in invalid:
            errors.append(f"{_label_for(req)}: required")
    return fields, errors


def _label_for(field: str) -> str:
    for label, f in _ALIASES.items():
        if f == field:
            return label.capitalize()
    return field


def complete_onboarding(current: UserProfile, fields: dict[str, Any]) -> UserProfile:
    """Builds the onboarded profile; raises ValueError when the form is incomplete."""
    data = current.model_dump()
    data.update(fields)
    data["daily_calorie_target"] = daily_calorie_target(
        gender=data.get("gender"),
        age=data.get("age"),
        height_cm=data.get("height_cm"),
        current_weight_kg=data.get("current_weight_kg"),
        target_weight_kg=data.get("target_weight_kg"),
        activity_level=data.get("activity_level"),
    )
    data["onboarding_complete"] = True
    try:
        return UserProfile.model_validate(data)
    except ValidationError as e:
        raise ValueError(str(e)) from e


def welcome_message(profile: UserProfile, now: dt.datetime) -> Message:
    text = (
        "Setup complete ✅\n\n"
        "I have configured your reminders based on your routine.\n"
        f"• Calorie target: {profile.daily_calorie_target} kcal\n"
        f"• Water goal: {profile.water_goal or 'not set'}\n\n"
        "I will remind you when it's time for meals and water. "
        "You can also send me photos of your food anytime to log them."
    )
    return Message(role="model", text=text, timestamp=now)
