from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dietcoach.clock import Clock, today_str
from dietcoach.domain import CoachState, DailyStats, Message, UserProfile
from dietcoach.models import Blob
from dietcoach.state import PROFILE_KEY, STATS_KEY, TRANSCRIPT_KEY, roll_over


logger = logging.getLogger(__name__)


def dumps(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


class BlobRepo:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, key: str) -> Blob | None:
        q: Select[tuple[Blob]] = select(Blob).where(Blob.key == key)
        res = await self.db.execute(q)
        return res.scalar_one_or_none()

    async def get_json(self, key: str) -> Any:
        """Parsed value, or None when the key is missing or its JSON is unreadable."""
        b = await self.get(key)
        if not b or not b.json:
            return None
        try:
            return json.loads(b.json)
        except ValueError:
            logger.warning("Stored %s is not valid JSON; ignoring it", key)
            return None

    async def set_json(self, key: str, obj: Any) -> Blob:
        b = await self.get(key)
        if b:
            b.json = dumps(obj)
            return b
        b = Blob(key=key, json=dumps(obj))
        self.db.add(b)
        await self.db.flush()
        return b


class SqlStateSaver:
    """Writes one blob per call in its own session (used as the store's saver)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def save(self, key: str, payload: Any) -> None:
        async with self.session_factory() as db:
            await BlobRepo(db).set_json(key, payload)
            await db.commit()


def _profile_from(obj: Any) -> UserProfile:
    if isinstance(obj, dict):
        try:
            return UserProfile.model_validate(obj)
        except ValidationError:
            logger.warning("Stored profile is invalid; starting with defaults", exc_info=True)
    return UserProfile()


def _stats_from(obj: Any, today: str) -> DailyStats:
    if isinstance(obj, dict):
        try:
            return DailyStats.model_validate(obj)
        except ValidationError:
            logger.warning("Stored stats are invalid; starting fresh", exc_info=True)
    return DailyStats.fresh(today)


def _transcript_from(obj: Any) -> tuple[Message, ...]:
    if not isinstance(obj, list):
        return ()
    out: list[Message] = []
    dropped = 0
    for item in obj:
        try:
            out.append(Message.model_validate(item))
        except ValidationError:
            dropped += 1
    if dropped:
        logger.warning("Dropped %d unreadable transcript messages", dropped)
    return tuple(out)


async def load_state(session_factory: async_sessionmaker[AsyncSession], clock: Clock) -> CoachState:
    today = today_str(clock.now())
    async with session_factory() as db:
        repo = BlobRepo(db)
        profile = _profile_from(await repo.get_json(PROFILE_KEY))
        stats = _stats_from(await repo.get_json(STATS_KEY), today)
        transcript = _transcript_from(await repo.get_json(TRANSCRIPT_KEY))
    state = CoachState(profile=profile, stats=stats, transcript=transcript)
    return roll_over(state, today)
