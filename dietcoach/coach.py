from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from dietcoach.clock import Clock
from dietcoach.directives import parse_reply
from dietcoach.domain import DailyStats, Message, UserProfile
from dietcoach.state import DirectivesApplied, ModelReplied, StateStore, UserSpoke


logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Oh no! My connection seems a bit weak right now. Can you say that again? 🛑"
IMAGE_UNAVAILABLE_TEXT = "Image unavailable. Would you like the recipe text instead?"
IMAGE_UNAVAILABLE_REPLIES: tuple[str, ...] = ("Yes", "No")

GENERIC_MEAL_LABEL = "Meal/Snack"
MEAL_LABEL_MAX_LEN = 30


class ModelClient(Protocol):
    async def reply(self, transcript: Sequence[Message], profile: UserProfile, stats: DailyStats) -> str:
        ...


class ImageGenerator(Protocol):
    async def generate(self, prompt: str) -> str | None:
        ...


@dataclass(frozen=True)
class Turn:
    user_message: Message
    reply: Message
    quick_replies: tuple[str, ...]


def meal_description(user_text: str) -> str:
    t = " ".join((user_text or "").split())
    if not t or len(t) > MEAL_LABEL_MAX_LEN:
        return GENERIC_MEAL_LABEL
    return t


class Coach:
    def __init__(
        self,
        store: StateStore,
        model: ModelClient,
        clock: Clock,
        images: ImageGenerator | None = None,
        *,
        transcript_window: int = 15,
    ):
        self.store = store
        self.model = model
        self.clock = clock
        self.images = images
        self.transcript_window = transcript_window

    async def send_message(self, text: str, image: str | None = None) -> Turn:
        text = (text or "").strip()
        if not text and not image:
            raise ValueError("Message needs text or an image")

        user_msg = Message(role="user", text=text, image=image, timestamp=self.clock.now())
        state = self.store.dispatch(UserSpoke(user_msg))

        window = state.transcript[-self.transcript_window :] if self.transcript_window > 0 else state.transcript
        try:
            raw = await self.model.reply(window, state.profile, state.stats)
        except Exception:
            logger.exception("Model call failed")
            raw = FALLBACK_REPLY

        reply_text, reply_image, quick_override = FALLBACK_REPLY, None, None
        try:
            reply_text, reply_image, quick_override = await self._apply_reply(raw, text)
        except Exception:
            logger.exception("Failed to apply model reply")
        finally:
            # the turn always ends with exactly one model message
            reply = Message(role="model", text=reply_text, image=reply_image, timestamp=self.clock.now())
            state = self.store.dispatch(ModelReplied(message=reply, quick_replies=quick_override))
        return Turn(user_message=user_msg, reply=reply, quick_replies=state.quick_replies)

    async def _apply_reply(self, raw: str, user_text: str) -> tuple[str, str | None, tuple[str, ...] | None]:
        parsed = parse_reply(raw)
        self.store.dispatch(
            DirectivesApplied(reply=parsed, meal_description=meal_description(user_text), at=self.clock.now())
        )
        if not parsed.image_prompt:
            return parsed.clean_text, None, None
        image = await self._generate_image(parsed.image_prompt)
        if not image:
            return IMAGE_UNAVAILABLE_TEXT, None, IMAGE_UNAVAILABLE_REPLIES
        return parsed.clean_text, image, None

    async def _generate_image(self, prompt: str) -> str | None:
        if self.images is None:
            logger.warning("Image requested but no image generator configured")
            return None
        try:
            out = await self.images.generate(prompt)
        except Exception:
            logger.warning("Image generation failed for prompt %r", prompt[:80], exc_info=True)
            return None
        return out or None
