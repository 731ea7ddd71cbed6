from __future__ import annotations

from tabulate import tabulate

from dietcoach.domain import DailyStats, UserProfile


def calories_line(consumed: int, target: int) -> str:
    remaining = target - consumed
    if remaining >= 0:
        return f"🔥 {consumed} / {target} kcal · {remaining} remaining"
    return f"🔥 {consumed} / {target} kcal · {-remaining} over"


def escape_html(s: str) -> str:
    return (s or "").replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def meals_table(stats: DailyStats) -> str:
    rows = [[m.time, m.description, m.calories] for m in stats.meals]
    return tabulate(rows, headers=["Time", "Meal", "kcal"], tablefmt="github")


def today_summary(profile: UserProfile, stats: DailyStats) -> str:
    """HTML summary for the /today command."""
    pct = min(100, round(stats.calories_consumed * 100 / profile.daily_calorie_target))
    parts = [
        f"📅 {stats.date}",
        calories_line(stats.calories_consumed, profile.daily_calorie_target) + f" ({pct}%)",
        f"💧 {stats.water_intake_ml} ml" + (f" (goal: {escape_html(profile.water_goal)})" if profile.water_goal else ""),
    ]
    if stats.meals:
        # monospace so the table columns line up in Telegram
        parts.append(f"<pre>{escape_html(meals_table(stats))}</pre>")
    else:
        parts.append("No meals logged yet.")
    return "\n".join(parts)
