"""
Shared fixtures: every test gets its own SQLite file so that
concurrent sessions use separate connections.
"""

import pytest
import pytest_asyncio
from sqlalchemy import text

from afterschool.database import create_engine, create_schema
from afterschool.icons import icon_for_subject
from afterschool.store import InventoryStore


class FakePublisher:
    """Records published events instead of sending them to Redis"""

    def __init__(self) -> None:
        self.events: list = []

    async def publish(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}"


@pytest.fixture
def publisher() -> FakePublisher:
    return FakePublisher()


@pytest_asyncio.fixture
async def store(database_url, publisher):
    engine = create_engine(database_url, lock_timeout=5.0)
    await create_schema(engine)
    inventory = InventoryStore(engine, publisher=publisher, lock_timeout=5.0)
    yield inventory
    await inventory.close()


@pytest.fixture
def make_lesson(store):
    async def _make(
        lesson_id: str,
        subject: str = "Math",
        location: str | None = None,
        price: float = 100.0,
        spaces: int = 5,
    ) -> str:
        async with store.async_session() as session:
            await session.execute(
                text("""
                    INSERT INTO lessons (id, subject, location, price, spaces, icon)
                    VALUES (:id, :subject, :location, :price, :spaces, :icon)
                """),
                {
                    "id": lesson_id,
                    "subject": subject,
                    # location defaults to the id so (subject, location) stays unique
                    "location": location or f"Room {lesson_id}",
                    "price": price,
                    "spaces": spaces,
                    "icon": icon_for_subject(subject),
                },
            )
            await session.commit()
        return lesson_id

    return _make
