"""
Booking Service: 初期データ投入

(subject, location) が同じレッスンは重複して作らない。
reset=True なら既存レッスンの価格・席数・アイコンを初期値に戻す。

    python -m afterschool.seed [--reset]
"""

import argparse
import asyncio
import logging
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .icons import icon_for_subject

logger = logging.getLogger(__name__)

# (subject, location, price, spaces)
DEFAULT_LESSONS: list[tuple[str, str, float, int]] = [
    ("Math", "Hendon", 100, 5),
    ("Math", "Colindale", 80, 5),
    ("English", "Brent Cross", 90, 5),
    ("English", "Golders Green", 95, 5),
    ("Science", "Hendon", 110, 5),
    ("Music", "Colindale", 70, 5),
    ("Art", "Mill Hill", 65, 5),
    ("Drama", "Brent Cross", 75, 5),
    ("Coding", "Hendon", 120, 5),
    ("Football", "Mill Hill", 50, 5),
    ("Swimming", "Golders Green", 60, 5),
    ("Chess", "Colindale", 40, 5),
]


async def seed_lessons(
    session: AsyncSession,
    catalogue: list[tuple[str, str, float, int]] = DEFAULT_LESSONS,
    reset: bool = False,
) -> dict[str, int]:
    inserted = 0
    restored = 0
    try:
        for subject, location, price, spaces in catalogue:
            icon = icon_for_subject(subject)
            row = (
                await session.execute(
                    text("SELECT id FROM lessons WHERE subject = :subject AND location = :location"),
                    {"subject": subject, "location": location},
                )
            ).fetchone()

            if row is None:
                await session.execute(
                    text("""
                        INSERT INTO lessons (id, subject, location, price, spaces, icon)
                        VALUES (:id, :subject, :location, :price, :spaces, :icon)
                    """),
                    {
                        "id": str(uuid4()),
                        "subject": subject,
                        "location": location,
                        "price": float(price),
                        "spaces": spaces,
                        "icon": icon,
                    },
                )
                inserted += 1
            elif reset:
                await session.execute(
                    text("""
                        UPDATE lessons
                        SET price = :price, spaces = :spaces, icon = :icon
                        WHERE id = :id
                    """),
                    {"id": row.id, "price": float(price), "spaces": spaces, "icon": icon},
                )
                restored += 1
        await session.commit()
    except Exception:
        await session.rollback()
        raise

    logger.info("Seeded lessons: inserted=%d reset=%d", inserted, restored)
    return {"inserted": inserted, "reset": restored}


async def _run(reset: bool) -> dict[str, int]:
    from .config import Settings
    from .database import create_engine, create_schema
    from .store import InventoryStore

    settings = Settings()
    engine = create_engine(settings.database_url, settings.lock_timeout)
    store = InventoryStore(engine, lock_timeout=settings.lock_timeout)
    try:
        await create_schema(engine)
        return await store.seed(reset=reset)
    finally:
        await store.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Insert the default lesson catalogue.")
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Restore price, spaces and icon of lessons that already exist.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    counts = asyncio.run(_run(args.reset))
    print(f"inserted={counts['inserted']} reset={counts['reset']}")


if __name__ == "__main__":
    main()
