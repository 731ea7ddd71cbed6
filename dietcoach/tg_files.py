from __future__ import annotations

import base64
from io import BytesIO

from aiogram import Bot


async def download_telegram_file(bot: Bot, file_id: str) -> bytes:
    f = await bot.get_file(file_id)
    buf = BytesIO()
    await bot.download_file(f.file_path, destination=buf)
    return buf.getvalue()


def to_data_uri(data: bytes, mime: str = "image/jpeg") -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def from_data_uri(uri: str) -> tuple[bytes, str] | None:
    """(bytes, mime) for a base64 data URI, else None."""
    if not uri.startswith("data:") or ";base64," not in uri:
        return None
    head, b64 = uri[5:].split(";base64,", 1)
    try:
        return base64.b64decode(b64), head or "application/octet-stream"
    except ValueError:
        return None
