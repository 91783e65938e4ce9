"""
Booking Service: Inventory Store

レッスンの座席数と注文履歴を所有する唯一のコンポーネント。
呼び出し元には pydantic モデルのコピーだけを返す。

各操作は lock_timeout 秒で打ち切り、StorageFault にする。
SQLAlchemy のエラーも StorageFault に変換し、リトライはしない。
"""

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker

from . import commands, queries, seed
from .database import WRITE_OPTIONS
from .errors import InsufficientSeats, NotFound, StorageFault
from .events import EventPublisher, LessonUpdated, OrderPlaced, ReservationRejected
from .schemas import Lesson, Order

logger = logging.getLogger(__name__)


class InventoryStore:
    def __init__(
        self,
        engine: AsyncEngine,
        publisher: EventPublisher | None = None,
        lock_timeout: float = 5.0,
    ) -> None:
        self.engine = engine
        self.async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        # 書き込み単位用: SQLite では BEGIN IMMEDIATE で開始する
        self.write_session = sessionmaker(
            engine.execution_options(**WRITE_OPTIONS),
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self.publisher = publisher or EventPublisher()
        self.lock_timeout = lock_timeout

    async def _run(self, operation: str, fn, *args, write: bool = False):
        async def unit_of_work():
            session_factory = self.write_session if write else self.async_session
            async with session_factory() as session:
                return await fn(session, *args)

        try:
            return await asyncio.wait_for(unit_of_work(), timeout=self.lock_timeout)
        except asyncio.TimeoutError as e:
            logger.error("%s timed out after %.1fs", operation, self.lock_timeout)
            raise StorageFault(f"{operation} could not complete in time") from e
        except SQLAlchemyError as e:
            logger.exception("%s failed", operation)
            raise StorageFault(f"{operation} failed: storage unavailable") from e

    # ── Query ────────────────────────────────────────

    async def get_lesson(self, lesson_id: str) -> Lesson:
        lesson = await self._run("get_lesson", queries.get_lesson, lesson_id)
        if lesson is None:
            raise NotFound(f"Lesson {lesson_id} not found")
        return lesson

    async def list_lessons(self) -> list[Lesson]:
        return await self._run("list_lessons", queries.list_lessons)

    async def search_lessons(self, token: str) -> list[Lesson]:
        return await self._run("search_lessons", queries.search_lessons, token)

    async def list_orders(self) -> list[Order]:
        return await self._run("list_orders", queries.list_orders)

    # ── Command ──────────────────────────────────────

    async def update_lesson(self, lesson_id: str, changes: dict) -> Lesson:
        lesson, applied = await self._run(
            "update_lesson", commands.update_lesson, lesson_id, changes, write=True
        )
        logger.info("Updated lesson %s: %s", lesson_id, sorted(applied))
        await self.publisher.publish(
            LessonUpdated(
                lesson_id=lesson_id,
                changes=applied,
                timestamp=datetime.now(timezone.utc),
            )
        )
        return lesson

    async def reserve(
        self,
        customer_name: str,
        customer_phone: str,
        lesson_ids: list[str],
    ) -> Order:
        try:
            order = await self._run(
                "reserve",
                commands.reserve_seats,
                customer_name,
                customer_phone,
                lesson_ids,
                write=True,
            )
        except InsufficientSeats as e:
            logger.info("Reservation rejected: %s", e.message)
            await self.publisher.publish(
                ReservationRejected(
                    lesson_id=e.lesson_id,
                    requested=e.requested,
                    available=e.available,
                    timestamp=datetime.now(timezone.utc),
                )
            )
            raise

        logger.info("Order %s placed for %d seat(s)", order.id, len(order.lesson_ids))
        await self.publisher.publish(
            OrderPlaced(
                order_id=order.id,
                customer_name=order.customer_name,
                lesson_ids=order.lesson_ids,
                seats=commands.tally_seats(order.lesson_ids),
                timestamp=order.created_at,
            )
        )
        return order

    # ── Maintenance ──────────────────────────────────

    async def seed(self, reset: bool = False) -> dict[str, int]:
        return await self._run("seed", seed.seed_lessons, seed.DEFAULT_LESSONS, reset, write=True)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError:
            logger.exception("Database ping failed")
            return False
        return True

    async def close(self) -> None:
        await self.engine.dispose()
