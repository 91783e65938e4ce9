import pytest
from sqlalchemy import event, text

from afterschool.commands import MAX_SPACES
from afterschool.errors import InvalidField, InvalidInput, NotFound, StorageFault
from afterschool.events import LessonUpdated
from afterschool.icons import DEFAULT_ICON


@pytest.mark.asyncio
async def test_subject_change_recomputes_icon(store, make_lesson):
    await make_lesson("L1", subject="Math", price=100.0, spaces=5)

    lesson = await store.update_lesson("L1", {"subject": "Music"})

    assert lesson.subject == "Music"
    assert lesson.icon == "fa-music"
    assert lesson.price == 100.0
    assert lesson.spaces == 5


@pytest.mark.asyncio
async def test_explicit_icon_wins_over_subject_lookup(store, make_lesson):
    await make_lesson("L1", subject="Math")

    lesson = await store.update_lesson("L1", {"subject": "Music", "icon": "fa-guitar"})

    assert lesson.icon == "fa-guitar"


@pytest.mark.asyncio
async def test_unknown_subject_gets_default_icon(store, make_lesson):
    await make_lesson("L1", subject="Math")

    lesson = await store.update_lesson("L1", {"subject": "Pottery"})

    assert lesson.icon == DEFAULT_ICON


@pytest.mark.asyncio
async def test_partial_update_leaves_other_fields(store, make_lesson):
    await make_lesson("L1", subject="Art", location="Hendon", price=60.0, spaces=5)

    lesson = await store.update_lesson("L1", {"spaces": 9, "price": 75})

    assert lesson.spaces == 9
    assert lesson.price == 75.0
    assert lesson.subject == "Art"
    assert lesson.location == "Hendon"
    assert lesson.icon == "fa-palette"


@pytest.mark.asyncio
async def test_empty_update_rejected_without_touching_storage(store, make_lesson):
    await make_lesson("L1")
    statements: list[str] = []

    @event.listens_for(store.engine.sync_engine, "before_cursor_execute")
    def record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    try:
        with pytest.raises(InvalidInput) as exc_info:
            await store.update_lesson("L1", {})
    finally:
        event.remove(store.engine.sync_engine, "before_cursor_execute", record)

    assert not isinstance(exc_info.value, InvalidField)
    assert statements == []


@pytest.mark.asyncio
async def test_unknown_lesson_not_found(store):
    with pytest.raises(NotFound):
        await store.update_lesson("missing", {"price": 10})


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "changes, field",
    [
        ({"id": "other"}, "id"),
        ({"instructor": "Smith"}, "instructor"),
        ({"price": -1}, "price"),
        ({"price": "cheap"}, "price"),
        ({"spaces": -3}, "spaces"),
        ({"spaces": 2.5}, "spaces"),
        ({"spaces": True}, "spaces"),
        ({"spaces": 10**20}, "spaces"),
        ({"spaces": MAX_SPACES + 1}, "spaces"),
        ({"price": float("nan")}, "price"),
        ({"price": float("inf")}, "price"),
        ({"price": 10**400}, "price"),
        ({"subject": ""}, "subject"),
        ({"location": 42}, "location"),
    ],
)
async def test_invalid_fields(store, make_lesson, changes, field):
    await make_lesson("L1", spaces=5)

    with pytest.raises(InvalidField) as exc_info:
        await store.update_lesson("L1", changes)

    assert exc_info.value.field == field
    assert (await store.get_lesson("L1")).spaces == 5


@pytest.mark.asyncio
async def test_duplicate_subject_location_rejected(store, make_lesson):
    await make_lesson("L1", subject="Math", location="Hendon")
    await make_lesson("L2", subject="Math", location="Colindale")

    with pytest.raises(InvalidInput):
        await store.update_lesson("L2", {"location": "Hendon"})

    assert (await store.get_lesson("L2")).location == "Colindale"


@pytest.mark.asyncio
async def test_other_integrity_errors_are_storage_faults(store, make_lesson):
    await make_lesson("L1", spaces=5)
    async with store.async_session() as session:
        await session.execute(
            text("""
                CREATE TRIGGER lessons_frozen BEFORE UPDATE ON lessons
                BEGIN SELECT RAISE(ABORT, 'lessons are frozen'); END
            """)
        )
        await session.commit()

    with pytest.raises(StorageFault):
        await store.update_lesson("L1", {"spaces": 9})

    assert (await store.get_lesson("L1")).spaces == 5


@pytest.mark.asyncio
async def test_largest_seat_count_accepted(store, make_lesson):
    await make_lesson("L1", spaces=5)

    lesson = await store.update_lesson("L1", {"spaces": MAX_SPACES})

    assert lesson.spaces == MAX_SPACES


@pytest.mark.asyncio
async def test_update_publishes_applied_changes(store, make_lesson, publisher):
    await make_lesson("L1", subject="Math")

    await store.update_lesson("L1", {"subject": "Chess"})

    [updated] = publisher.of_type(LessonUpdated)
    assert updated.lesson_id == "L1"
    assert updated.changes == {"subject": "Chess", "icon": "fa-chess"}
