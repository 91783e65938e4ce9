"""
Booking Service: クエリハンドラ (Read 側)

read-committed で十分なので、ロックは取らない。
"""

import json
import math
from datetime import datetime, timezone

from sqlalchemy import DateTime, text
from sqlalchemy.ext.asyncio import AsyncSession

from .database import MAX_SPACES
from .schemas import Lesson, Order

_LESSON_COLUMNS = "id, subject, location, price, spaces, icon"


def lesson_from_row(row) -> Lesson:
    return Lesson(
        id=str(row.id),
        subject=row.subject,
        location=row.location,
        price=float(row.price),
        spaces=row.spaces,
        icon=row.icon,
    )


def _escape_like(value: str) -> str:
    """LIKE のワイルドカード (% と _) を文字として扱う。"""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _as_utc(value: datetime) -> datetime:
    # SQLite はタイムゾーンを保存しない
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_lesson(session: AsyncSession, lesson_id: str) -> Lesson | None:
    result = await session.execute(
        text(f"SELECT {_LESSON_COLUMNS} FROM lessons WHERE id = :id"),
        {"id": lesson_id},
    )
    row = result.fetchone()
    if not row:
        return None
    return lesson_from_row(row)


async def list_lessons(session: AsyncSession) -> list[Lesson]:
    result = await session.execute(
        text(f"SELECT {_LESSON_COLUMNS} FROM lessons ORDER BY subject, location"),
    )
    return [lesson_from_row(row) for row in result.fetchall()]


async def search_lessons(session: AsyncSession, token: str) -> list[Lesson]:
    """
    subject / location の部分一致（大文字小文字を無視）。
    token が数値として読めれば price / spaces の一致も含める。
    """
    token = token.strip()
    if not token:
        return await list_lessons(session)

    conditions = [
        "LOWER(subject) LIKE :pattern ESCAPE '\\'",
        "LOWER(location) LIKE :pattern ESCAPE '\\'",
    ]
    params: dict = {"pattern": f"%{_escape_like(token.lower())}%"}
    try:
        number = float(token)
    except ValueError:
        number = None
    if number is not None and math.isfinite(number):
        conditions.append("price = :price")
        params["price"] = number
        if number.is_integer() and abs(number) <= MAX_SPACES:
            conditions.append("spaces = :spaces")
            params["spaces"] = int(number)

    result = await session.execute(
        text(
            f"SELECT {_LESSON_COLUMNS} FROM lessons "
            f"WHERE {' OR '.join(conditions)} ORDER BY subject, location"
        ),
        params,
    )
    return [lesson_from_row(row) for row in result.fetchall()]


async def list_orders(session: AsyncSession) -> list[Order]:
    result = await session.execute(
        text("""
            SELECT id, customer_name, customer_phone, lesson_ids, created_at
            FROM orders
            ORDER BY created_at DESC
        """).columns(created_at=DateTime(timezone=True)),
    )
    return [
        Order(
            id=str(row.id),
            customer_name=row.customer_name,
            customer_phone=row.customer_phone,
            lesson_ids=json.loads(row.lesson_ids),
            created_at=_as_utc(row.created_at),
        )
        for row in result.fetchall()
    ]
