from __future__ import annotations

import asyncio
import contextlib
import logging
import re
from typing import Sequence

from aiogram import Bot, Dispatcher, F, Router
from aiogram.client.default import DefaultBotProperties
from aiogram.filters import Command, CommandObject
from aiogram.types import BufferedInputFile, Message

from dietcoach.clock import SystemClock
from dietcoach.coach import Coach, Turn
from dietcoach.config import settings
from dietcoach.db import database_url, make_engine, make_session_factory
from dietcoach.domain import Message as ChatMessage
from dietcoach.init_db import init_db
from dietcoach.keyboards import BTN_HELP, BTN_TODAY, main_menu_kb, no_keyboard, quick_replies_kb
from dietcoach.onboarding import FORM_TEMPLATE, complete_onboarding, parse_profile_form, welcome_message
from dietcoach.openai_client import OpenAICoachModel, OpenAIImageGenerator, scrub_secrets
from dietcoach.reminders import ReminderEngine
from dietcoach.render import escape_html, today_summary
from dietcoach.repositories import SqlStateSaver, load_state
from dietcoach.state import ChatBound, NotificationsToggled, OnboardingCompleted, StateStore
from dietcoach.tg_files import download_telegram_file, from_data_uri, to_data_uri


logger = logging.getLogger(__name__)

router = Router()

# Telegram has a hard 4096 limit (1024 for captions); we keep some headroom.
TEXT_LIMIT = 3900
CAPTION_LIMIT = 1000


def _sanitize_ai_text(s: str) -> str:
    """
    Telegram is in HTML parse_mode. Models like Markdown, so escape everything and
    convert the common emphasis markers to HTML.
    """
    if not s:
        return s
    t = escape_html(s.strip())
    t = re.sub(r"\*\*(.+?)\*\*", r"<b>\1</b>", t, flags=re.S)
    t = re.sub(r"__(.+?)__", r"<b>\1</b>", t, flags=re.S)
    t = re.sub(r"(?<![\*\w])\*(?!\*)(.+?)(?<!\*)\*(?![\*\w])", r"<i>\1</i>", t)
    return t


def _split_long_line(ln: str, limit: int) -> list[str]:
    # prefer breaking on a space; hard cut only when a word exceeds the limit
    parts: list[str] = []
    while len(ln) > limit:
        cut = ln.rfind(" ", 0, limit + 1)
        if cut <= 0:
            cut = limit
        parts.append(ln[:cut])
        ln = ln[cut:].lstrip(" ")
    parts.append(ln)
    return parts


def _chunks(text: str, limit: int = TEXT_LIMIT) -> list[str]:
    # split on whole lines where possible so HTML tags are not cut in half
    out: list[str] = []
    cur = ""
    for ln in text.split("\n"):
        for piece in _split_long_line(ln, limit):
            cand = f"{cur}\n{piece}" if cur else piece
            if len(cand) <= limit:
                cur = cand
                continue
            if cur:
                out.append(cur)
            cur = piece
    if cur:
        out.append(cur)
    return out or [""]


async def _answer_text(message: Message, text: str, quick_replies: Sequence[str] = ()) -> None:
    parts = _chunks(_sanitize_ai_text(text) or "👍")
    for i, part in enumerate(parts):
        markup = quick_replies_kb(quick_replies) if i == len(parts) - 1 else None
        await message.answer(part, reply_markup=markup)


async def _send_turn(message: Message, turn: Turn) -> None:
    reply = turn.reply
    decoded = from_data_uri(reply.image) if reply.image else None
    if decoded is not None:
        data, mime = decoded
        ext = mime.split("/")[-1] or "png"
        text = _sanitize_ai_text(reply.text)
        if text and len(text) <= CAPTION_LIMIT:
            await message.answer_photo(
                BufferedInputFile(data, filename=f"dish.{ext}"),
                caption=text,
                reply_markup=quick_replies_kb(turn.quick_replies),
            )
            return
        await message.answer_photo(BufferedInputFile(data, filename=f"dish.{ext}"))
    await _answer_text(message, reply.text, turn.quick_replies)


class TelegramNotifier:
    """Pushes reminder messages into the bound chat."""

    def __init__(self, bot: Bot, store: StateStore):
        self.bot = bot
        self.store = store

    async def notify(self, message: ChatMessage, quick_replies: Sequence[str]) -> None:
        chat_id = settings.owner_chat_id or self.store.state.profile.chat_id
        if chat_id is None:
            logger.debug("No chat bound yet; reminder stays in the transcript only")
            return
        await self.bot.send_message(
            chat_id,
            _sanitize_ai_text(message.text),
            reply_markup=quick_replies_kb(quick_replies),
        )


async def _allowed(message: Message, store: StateStore) -> bool:
    """Single-profile bot: the first chat that talks to it becomes the owner."""
    chat_id = message.chat.id
    if settings.owner_chat_id is not None:
        if chat_id != settings.owner_chat_id:
            return False
    profile = store.state.profile
    if profile.chat_id is None:
        store.dispatch(ChatBound(chat_id))
        return True
    if profile.chat_id != chat_id:
        await message.answer("Sorry, this coach is already set up for someone else.")
        return False
    return True


async def _start_onboarding(message: Message) -> None:
    await message.answer(
        "Hi! I'm your personal diet coach 🌱\n"
        "Copy the form below, fill it in and send it back as one message.\n"
        "Times are 24h (HH:MM). Snack is optional.\n\n"
        f"<code>{escape_html(FORM_TEMPLATE)}</code>",
        reply_markup=no_keyboard(),
    )


async def _handle_onboarding_form(message: Message, store: StateStore) -> None:
    fields, errors = parse_profile_form(message.text or "")
    if not fields:
        await _start_onboarding(message)
        return
    if errors:
        await message.answer(
            "Almost there, please fix these and send the whole form again:\n"
            + "\n".join(f"- {escape_html(e)}" for e in errors)
        )
        return
    try:
        profile = complete_onboarding(store.state.profile, fields)
    except ValueError as e:
        logger.warning("Onboarding rejected: %s", e)
        await message.answer("Some fields look off. Please check the times (HH:MM) and send the form again.")
        return

    welcome = welcome_message(profile, store.clock.now())
    store.dispatch(OnboardingCompleted(profile=profile, message=welcome))
    store.dispatch(NotificationsToggled(True))
    logger.info("Onboarding complete, target %s kcal", profile.daily_calorie_target)
    await message.answer(_sanitize_ai_text(welcome.text), reply_markup=main_menu_kb())


async def _coach_turn(message: Message, bot: Bot, coach: Coach, text: str, image: str | None = None) -> None:
    await bot.send_chat_action(message.chat.id, "typing")
    try:
        turn = await coach.send_message(text, image)
    except ValueError:
        await message.answer("Send me a message or a photo of your food 🙂", reply_markup=main_menu_kb())
        return
    await _send_turn(message, turn)


@router.message(Command("start"))
async def cmd_start(message: Message, store: StateStore) -> None:
    if not await _allowed(message, store):
        return
    profile = store.state.profile
    if not profile.onboarding_complete:
        await _start_onboarding(message)
        return
    await message.answer(
        f"Welcome back, {escape_html(profile.name)} 💪\n"
        "Tell me what you ate, send a food photo, or ask me anything.\n"
        "Commands: /today, /notify, /help",
        reply_markup=main_menu_kb(),
    )


@router.message(Command("help"))
@router.message(F.text == BTN_HELP)
async def cmd_help(message: Message, store: StateStore) -> None:
    if not await _allowed(message, store):
        return
    await message.answer(
        "Commands:\n"
        "- /start - setup form\n"
        "- /today - today's calories, water and meals\n"
        "- /notify on|off - reminder messages\n"
        "- /help - this message\n\n"
        "Or just chat: tell me what you ate, how much water you drank, or send a food photo.",
        reply_markup=main_menu_kb(),
    )


@router.message(Command("today"))
@router.message(F.text == BTN_TODAY)
async def cmd_today(message: Message, store: StateStore) -> None:
    if not await _allowed(message, store):
        return
    state = store.state
    if not state.profile.onboarding_complete:
        await _start_onboarding(message)
        return
    await message.answer(today_summary(state.profile, state.stats), reply_markup=main_menu_kb())


@router.message(Command("notify"))
async def cmd_notify(message: Message, command: CommandObject, store: StateStore) -> None:
    if not await _allowed(message, store):
        return
    arg = (command.args or "").strip().lower()
    if arg in {"on", "off"}:
        store.dispatch(NotificationsToggled(arg == "on"))
    enabled = store.state.profile.notifications_enabled
    await message.answer(
        f"Reminders are <b>{'on' if enabled else 'off'}</b>. Use /notify on or /notify off.",
        reply_markup=main_menu_kb(),
    )


@router.message(F.photo)
async def photo_message(message: Message, bot: Bot, store: StateStore, coach: Coach) -> None:
    if not await _allowed(message, store) or not message.photo:
        return
    if not store.state.profile.onboarding_complete:
        await _start_onboarding(message)
        return
    try:
        image_bytes = await download_telegram_file(bot, message.photo[-1].file_id)
    except Exception as e:
        logger.warning("Photo download failed: %s", scrub_secrets(str(e))[:200])
        await message.answer("I couldn't load that photo. Could you send it again?")
        return
    await _coach_turn(message, bot, coach, (message.caption or "").strip(), to_data_uri(image_bytes))


@router.message(F.text)
async def any_text(message: Message, bot: Bot, store: StateStore, coach: Coach) -> None:
    if not await _allowed(message, store):
        return
    if not store.state.profile.onboarding_complete:
        await _handle_onboarding_form(message, store)
        return
    await _coach_turn(message, bot, coach, message.text or "")


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


async def main() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    engine = make_engine(database_url(settings.db_path, settings.database_url))
    await init_db(engine)
    session_factory = make_session_factory(engine)

    clock = SystemClock(settings.timezone)
    store = StateStore(clock, await load_state(session_factory, clock), saver=SqlStateSaver(session_factory))

    bot = Bot(settings.bot_token, default=DefaultBotProperties(parse_mode="HTML"))
    coach = Coach(
        store,
        OpenAICoachModel(clock),
        clock,
        OpenAIImageGenerator(),
        transcript_window=settings.transcript_window,
    )
    reminders = ReminderEngine(
        store,
        clock,
        TelegramNotifier(bot, store),
        tick_s=settings.reminder_tick_s,
        window_min=settings.reminder_window_min,
        water_gap_min=settings.water_intake_gap_min,
        water_cooldown_min=settings.water_reminder_cooldown_min,
    )

    dp = Dispatcher(store=store, coach=coach)
    dp.include_router(router)

    reminders_task = asyncio.create_task(reminders.run())
    try:
        await dp.start_polling(bot)
    finally:
        await _cancel(reminders_task)
        await store.flush()
        await bot.session.close()
        await engine.dispose()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
