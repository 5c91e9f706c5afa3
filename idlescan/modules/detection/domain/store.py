from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from idlescan.models.detection import DetectedResourceMixin

logger = structlog.get_logger()


class DetectionStore(Protocol):
    """Append-only sink for detected resources, one table per resource kind."""

    def ensure_schema(self, model: type[DetectedResourceMixin]) -> None: ...

    async def save(self, record: DetectedResourceMixin) -> None: ...


class SQLAlchemyDetectionStore:
    """
    DetectionStore backed by an async SQLAlchemy engine.

    Writes are serialized through a lock and each record is committed in its
    own session, so concurrent detectors never share a session and a
    cancelled scan leaves every committed row intact.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.engine = engine
        self.session_maker = session_maker or async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._models: dict[str, type[DetectedResourceMixin]] = {}
        self._created: set[str] = set()
        self._lock = asyncio.Lock()

    def ensure_schema(self, model: type[DetectedResourceMixin]) -> None:
        """Register a record model; tables are created lazily and idempotently."""
        table_name: str = getattr(model, "__tablename__")
        self._models.setdefault(table_name, model)

    async def create_all(self) -> None:
        pending = [
            model.__table__  # type: ignore[attr-defined]
            for name, model in self._models.items()
            if name not in self._created
        ]
        if not pending:
            return

        def _create(sync_conn: Any) -> None:
            for table in pending:
                table.create(sync_conn, checkfirst=True)

        async with self.engine.begin() as conn:
            await conn.run_sync(_create)
        self._created.update(t.name for t in pending)
        logger.info("detection_tables_ready", tables=sorted(t.name for t in pending))

    async def save(self, record: DetectedResourceMixin) -> None:
        table_name: str = getattr(record, "__tablename__")
        async with self._lock:
            if table_name not in self._created:
                self.ensure_schema(type(record))
                await self.create_all()
            async with self.session_maker() as session:
                session.add(record)
                await session.commit()
