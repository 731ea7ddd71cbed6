from __future__ import annotations

import os
from pathlib import Path

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


def _ensure_db_dir(db_path: str) -> None:
    p = Path(db_path)
    if p.parent and str(p.parent) not in ("", "."):
        os.makedirs(p.parent, exist_ok=True)


def database_url(db_path: str, url: str | None = None) -> str:
    """Explicit DATABASE_URL wins; otherwise a local aiosqlite file."""
    if url:
        return url
    _ensure_db_dir(db_path)
    return f"sqlite+aiosqlite:///{db_path}"


def make_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, future=True, echo=False)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)
