from __future__ import annotations

from typing import Sequence

from aiogram.types import KeyboardButton, ReplyKeyboardMarkup, ReplyKeyboardRemove


BTN_TODAY = "📊 Today"
BTN_HELP = "❓ Help"

MAIN_BUTTONS: list[list[str]] = [
    [BTN_TODAY, BTN_HELP],
]


def main_menu_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=t) for t in row] for row in MAIN_BUTTONS],
        resize_keyboard=True,
        input_field_placeholder="Tell me what you ate, or send a photo",
    )


def quick_replies_kb(replies: Sequence[str]) -> ReplyKeyboardMarkup:
    """
    Quick replies from the coach (reminders or [[BUTTONS: ...]]).
    Two per row; one-time so the keyboard disappears once the user acts.
    With no replies we fall back to the main menu.
    """
    labels = [r for r in replies if r.strip()]
    if not labels:
        return main_menu_kb()
    rows = [labels[i : i + 2] for i in range(0, len(labels), 2)]
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=t) for t in row] for row in rows],
        resize_keyboard=True,
        one_time_keyboard=True,
        input_field_placeholder="Tap a reply or type your own",
    )


def no_keyboard() -> ReplyKeyboardRemove:
    return ReplyKeyboardRemove()
