"""
Booking Service: コマンドハンドラ (Write 側)

座席の引き当て (reserve_seats) とレッスン更新 (update_lesson) を処理する。

引き当ては 1 トランザクションで行う:
  1. 要求されたレッスンがすべて存在するか確認
  2. レッスンごとに条件付き UPDATE (spaces >= 要求数) で減算
     1 件でも失敗したら全体をロールバック
  3. orders に注文を INSERT

チェックしてから別々に減算する方式では、同じ注文内の重複 ID を
数えられず、並行注文が同じ最後の 1 席を二重に確保してしまう。
条件付き UPDATE なら行ロック下で条件が再評価される。
"""

import json
import math
from collections import Counter
from datetime import datetime, timezone
from numbers import Real
from uuid import uuid4

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from . import queries
from .database import MAX_SPACES
from .errors import InsufficientSeats, InvalidField, InvalidInput, NotFound
from .icons import icon_for_subject
from .schemas import Lesson, Order

EDITABLE_FIELDS = ("subject", "location", "price", "spaces", "icon")

_DUPLICATE_LESSON_MARKERS = (
    "uq_lessons_subject_location",  # PostgreSQL
    "lessons.subject, lessons.location",  # SQLite
)


def tally_seats(lesson_ids: list[str]) -> dict[str, int]:
    """重複 ID は 1 つにつき 1 席として数える。"""
    return dict(Counter(lesson_ids))


def _validate_order(customer_name: str, customer_phone: str, lesson_ids: list[str]) -> None:
    if not customer_name or not customer_name.strip():
        raise InvalidInput("customerName is required")
    if not customer_phone or not customer_phone.strip():
        raise InvalidInput("customerPhone is required")
    if not lesson_ids:
        raise InvalidInput("lessonIds must contain at least one lesson")
    if any(not isinstance(i, str) or not i.strip() for i in lesson_ids):
        raise InvalidInput("lessonIds must not contain empty identifiers")


async def reserve_seats(
    session: AsyncSession,
    customer_name: str,
    customer_phone: str,
    lesson_ids: list[str],
) -> Order:
    """
    座席引き当てコマンド

    成功すればコミット済みの Order を返す。
    InvalidInput / InsufficientSeats の場合は何も書き込まれない。
    """
    _validate_order(customer_name, customer_phone, lesson_ids)
    requested = tally_seats(lesson_ids)

    try:
        # 1. 存在確認
        result = await session.execute(
            text("SELECT id FROM lessons WHERE id IN :ids").bindparams(
                bindparam("ids", expanding=True)
            ),
            {"ids": list(requested)},
        )
        known = {str(row.id) for row in result.fetchall()}
        unknown = [i for i in requested if i not in known]
        if unknown:
            raise InvalidInput(f"Unknown lesson id(s): {', '.join(unknown)}")

        # 2. 条件付き減算（ロック順を揃えるため ID 順）
        for lesson_id in sorted(requested):
            count = requested[lesson_id]
            result = await session.execute(
                text("""
                    UPDATE lessons
                    SET spaces = spaces - :count
                    WHERE id = :id AND spaces >= :count
                """),
                {"count": count, "id": lesson_id},
            )
            if result.rowcount == 0:
                row = (
                    await session.execute(
                        text("SELECT spaces FROM lessons WHERE id = :id"),
                        {"id": lesson_id},
                    )
                ).fetchone()
                available = row.spaces if row else 0
                raise InsufficientSeats(lesson_id, count, available)

        # 3. 注文を記録
        order = Order(
            id=str(uuid4()),
            customer_name=customer_name.strip(),
            customer_phone=customer_phone.strip(),
            lesson_ids=list(lesson_ids),
            created_at=datetime.now(timezone.utc),
        )
        await session.execute(
            text("""
                INSERT INTO orders
                    (id, customer_name, customer_phone, lesson_ids, created_at)
                VALUES
                    (:id, :customer_name, :customer_phone, :lesson_ids, :created_at)
            """).bindparams(bindparam("created_at", type_=DateTime(timezone=True))),
            {
                "id": order.id,
                "customer_name": order.customer_name,
                "customer_phone": order.customer_phone,
                "lesson_ids": json.dumps(order.lesson_ids),
                "created_at": order.created_at,
            },
        )
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    return order


def _validate_changes(changes: dict) -> dict:
    if not changes:
        raise InvalidInput("Request body must contain at least one field to update")

    cleaned: dict = {}
    for key, value in changes.items():
        if key not in EDITABLE_FIELDS:
            raise InvalidField(key, f"Field '{key}' cannot be updated")
        if key in ("subject", "location", "icon"):
            if not isinstance(value, str) or not value.strip():
                raise InvalidField(key, f"'{key}' must be a non-empty string")
            cleaned[key] = value.strip()
        elif key == "price":
            if isinstance(value, bool) or not isinstance(value, Real):
                raise InvalidField(key, "'price' must be a non-negative number")
            try:
                price = float(value)
            except OverflowError:
                price = math.inf
            if not math.isfinite(price) or price < 0:
                raise InvalidField(key, "'price' must be a non-negative number")
            cleaned[key] = price
        elif key == "spaces":
            if (
                isinstance(value, bool)
                or not isinstance(value, int)
                or not 0 <= value <= MAX_SPACES
            ):
                raise InvalidField(
                    key, f"'spaces' must be an integer between 0 and {MAX_SPACES}"
                )
            cleaned[key] = value

    # 明示的な icon があればそれを優先する
    if "subject" in cleaned and "icon" not in cleaned:
        cleaned["icon"] = icon_for_subject(cleaned["subject"])
    return cleaned


def _is_duplicate_lesson(error: IntegrityError) -> bool:
    message = str(error.orig)
    return any(marker in message for marker in _DUPLICATE_LESSON_MARKERS)


async def update_lesson(session: AsyncSession, lesson_id: str, changes: dict) -> tuple[Lesson, dict]:
    """
    レッスン更新コマンド

    1 本の UPDATE で適用する（行単位の原子性）。
    更新後のレッスンと、実際に適用した変更を返す。
    """
    cleaned = _validate_changes(changes)

    assignments = ", ".join(f"{key} = :{key}" for key in cleaned)
    try:
        result = await session.execute(
            text(f"UPDATE lessons SET {assignments} WHERE id = :id"),
            {**cleaned, "id": lesson_id},
        )
        if result.rowcount == 0:
            raise NotFound(f"Lesson {lesson_id} not found")
        lesson = await queries.get_lesson(session, lesson_id)
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        if not _is_duplicate_lesson(e):
            raise
        raise InvalidInput(
            "A lesson with this subject and location already exists"
        ) from e
    except Exception:
        await session.rollback()
        raise

    return lesson, cleaned
