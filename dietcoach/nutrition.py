from __future__ import annotations

from dataclasses import dataclass


DEFAULT_BMR_KCAL = 1500.0
MIN_LOSS_TARGET_KCAL = 1200
LOSS_DEFICIT_KCAL = 400
GAIN_SURPLUS_KCAL = 250

ACTIVITY_LEVELS = ("Very low", "Low", "Moderate", "High")


@dataclass(frozen=True)
class CalcMeta:
    bmr_kcal: int
    tdee_kcal: int
    target_kcal: int
    direction: str  # loss/maintain/gain


def _activity_multiplier(level: str | None) -> float:
    # unknown levels fall back to "Low"
    return {
        "very low": 1.2,
        "low": 1.375,
        "moderate": 1.55,
        "high": 1.725,
    }.get((level or "low").strip().lower(), 1.375)


def bmr_mifflin_st_jeor(gender: str | None, age: int, height_cm: float, weight_kg: float) -> float:
    # BMR = 10W + 6.25H - 5A + s
    s = -161 if (gender or "").strip().lower() == "female" else 5
    return 10 * weight_kg + 6.25 * height_cm - 5 * age + s


def direction(current_weight_kg: float | None, target_weight_kg: float | None) -> str:
    if not current_weight_kg or not target_weight_kg:
        return "maintain"
    if target_weight_kg < current_weight_kg:
        return "loss"
    if target_weight_kg > current_weight_kg:
        return "gain"
    return "maintain"


def daily_calorie_target_with_meta(
    *,
    gender: str | None,
    age: int | None,
    height_cm: float | None,
    current_weight_kg: float | None,
    target_weight_kg: float | None,
    activity_level: str | None,
) -> CalcMeta:
    if current_weight_kg and height_cm and age:
        bmr = bmr_mifflin_st_jeor(gender, age, height_cm, current_weight_kg)
    else:
        bmr = DEFAULT_BMR_KCAL
    td = bmr * _activity_multiplier(activity_level)

    d = direction(current_weight_kg, target_weight_kg)
    if d == "loss":
        target = max(MIN_LOSS_TARGET_KCAL, int(round(td - LOSS_DEFICIT_KCAL)))
    elif d == "gain":
        target = int(round(td + GAIN_SURPLUS_KCAL))
    else:
        target = int(round(td))

    return CalcMeta(bmr_kcal=int(round(bmr)), tdee_kcal=int(round(td)), target_kcal=max(target, 1), direction=d)


def daily_calorie_target(**kwargs) -> int:
    return daily_calorie_target_with_meta(**kwargs).target_kcal
