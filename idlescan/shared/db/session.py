from dataclasses import dataclass
from threading import Lock
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from idlescan.shared.core.config import get_settings

logger = structlog.get_logger()


@dataclass(slots=True)
class _DBRuntime:
    engine: AsyncEngine
    session_maker: async_sessionmaker[AsyncSession]
    effective_url: str


_db_runtime: _DBRuntime | None = None
_db_runtime_lock = Lock()


def _normalize_db_url(raw_url: str) -> str:
    url = (raw_url or "").strip()
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _build_pool_config(settings_obj: Any, effective_url: str) -> dict[str, Any]:
    pool_config: dict[str, Any] = {
        "pool_pre_ping": True,
        "echo": bool(getattr(settings_obj, "DB_ECHO", False)),
    }
    if effective_url.endswith(":memory:"):
        # One shared connection, otherwise every session sees an empty database.
        pool_config["poolclass"] = StaticPool
    return pool_config


def build_engine(url: str | None = None) -> AsyncEngine:
    settings_obj = get_settings()
    effective_url = _normalize_db_url(url or settings_obj.DATABASE_URL)
    if not effective_url:
        raise ValueError("DATABASE_URL is not set. The application cannot start.")
    return create_async_engine(effective_url, **_build_pool_config(settings_obj, effective_url))


def _get_runtime() -> _DBRuntime:
    global _db_runtime
    with _db_runtime_lock:
        if _db_runtime is None:
            engine = build_engine()
            _db_runtime = _DBRuntime(
                engine=engine,
                session_maker=async_sessionmaker(
                    engine, class_=AsyncSession, expire_on_commit=False
                ),
                effective_url=str(engine.url),
            )
            logger.info(
                "database_engine_created",
                url=engine.url.render_as_string(hide_password=True),
            )
        return _db_runtime


def get_engine() -> AsyncEngine:
    return _get_runtime().engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    return _get_runtime().session_maker


async def dispose_engine() -> None:
    global _db_runtime
    with _db_runtime_lock:
        runtime, _db_runtime = _db_runtime, None
    if runtime is not None:
        await runtime.engine.dispose()
