from __future__ import annotations

import re
from typing import Any, Sequence

from openai import AsyncOpenAI

from dietcoach.clock import Clock
from dietcoach.config import settings
from dietcoach.domain import DailyStats, Message, UserProfile
from dietcoach.prompts import system_prompt


client = AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.openai_timeout_s)

EMPTY_REPLY = "Sorry, I couldn't generate a response."


def scrub_secrets(s: str) -> str:
    """
    Avoid leaking tokens in logs.
    Very simple masking for OpenAI-style keys.
    """
    if not s:
        return s
    return re.sub(r"\bsk-[A-Za-z0-9_-]{10,}\b", "sk-***", s)


def _is_unsupported_param_error(e: Exception, param: str) -> bool:
    # openai-python raises different exception types across versions; parse message best-effort
    msg = str(e).lower()
    p = param.lower()
    return ("unsupported parameter" in msg or "invalid_request_error" in msg) and (p in msg or f"'{p}'" in msg)


async def _chat_create(*, model: str, messages: list[dict[str, Any]], max_output_tokens: int) -> str:
    """
    Best-effort compatibility layer for Chat Completions across model/SDK differences.
    """
    # Some models reject max_tokens and require max_completion_tokens; try that first.
    try:
        cc = await client.chat.completions.create(
            model=model,
            messages=messages,
            max_completion_tokens=max_output_tokens,
        )
        return (cc.choices[0].message.content or "").strip()
    except Exception as e:
        if not _is_unsupported_param_error(e, "max_completion_tokens"):
            raise RuntimeError(f"Chat completion failed: {scrub_secrets(str(e))}") from e

    try:
        cc = await client.chat.completions.create(model=model, messages=messages, max_tokens=max_output_tokens)
        return (cc.choices[0].message.content or "").strip()
    except Exception as e:
        raise RuntimeError(f"Chat completion failed: {scrub_secrets(str(e))}") from e


def history_messages(transcript: Sequence[Message]) -> list[dict[str, Any]]:
    """Transcript -> chat messages; user photos are sent inline as data URLs."""
    out: list[dict[str, Any]] = []
    for m in transcript:
        if m.role == "model":
            if m.text:
                out.append({"role": "assistant", "content": m.text})
            continue
        if m.image:
            content: list[dict[str, Any]] = []
            if m.text:
                content.append({"type": "text", "text": m.text})
            content.append({"type": "image_url", "image_url": {"url": m.image}})
            out.append({"role": "user", "content": content})
        elif m.text:
            out.append({"role": "user", "content": m.text})
    return out


async def chat_reply(
    *,
    system: str,
    transcript: Sequence[Message],
    model: str | None = None,
    max_output_tokens: int | None = None,
) -> str:
    messages = [{"role": "system", "content": system}, *history_messages(transcript)]
    text = await _chat_create(
        model=model or settings.openai_chat_model,
        messages=messages,
        max_output_tokens=max_output_tokens or settings.chat_max_output_tokens,
    )
    return text or EMPTY_REPLY


async def generate_image(prompt: str, *, model: str | None = None, size: str | None = None) -> str | None:
    """Returns a PNG data URI, or None if the API gave us nothing usable."""
    resp = await client.images.generate(
        model=model or settings.openai_image_model,
        prompt=prompt,
        size=size or settings.openai_image_size,
        n=1,
    )
    data = getattr(resp, "data", None) or []
    if not data:
        return None
    b64 = getattr(data[0], "b64_json", None)
    if not b64:
        return None
    return f"data:image/png;base64,{b64}"


class OpenAICoachModel:
    def __init__(self, clock: Clock):
        self.clock = clock

    async def reply(self, transcript: Sequence[Message], profile: UserProfile, stats: DailyStats) -> str:
        system = system_prompt(profile, stats, self.clock.now())
        return await chat_reply(system=system, transcript=transcript)


class OpenAIImageGenerator:
    async def generate(self, prompt: str) -> str | None:
        return await generate_image(prompt)
