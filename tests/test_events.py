import json
import logging
from datetime import datetime, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from afterschool.events import CHANNEL, EventPublisher, OrderPlaced


class RecordingRedis:
    def __init__(self, fail: bool = False) -> None:
        self.messages: list[tuple[str, str]] = []
        self.fail = fail

    async def publish(self, channel: str, message: str) -> int:
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.messages.append((channel, message))
        return 1


def _order_placed() -> OrderPlaced:
    return OrderPlaced(
        order_id="o-1",
        customer_name="Ann",
        lesson_ids=["L1", "L1"],
        seats={"L1": 2},
        timestamp=datetime(2026, 1, 5, 16, 0, tzinfo=timezone.utc),
    )


@pytest.mark.asyncio
async def test_publish_sends_envelope_on_booking_channel():
    redis = RecordingRedis()

    await EventPublisher(redis).publish(_order_placed())

    [(channel, message)] = redis.messages
    assert channel == CHANNEL
    payload = json.loads(message)
    assert payload["event_type"] == "OrderPlaced"
    assert payload["data"]["order_id"] == "o-1"
    assert payload["data"]["seats"] == {"L1": 2}


@pytest.mark.asyncio
async def test_publish_without_redis_is_noop():
    await EventPublisher(None).publish(_order_placed())


@pytest.mark.asyncio
async def test_publish_failure_is_logged_not_raised(caplog):
    with caplog.at_level(logging.ERROR, logger="afterschool.events"):
        await EventPublisher(RecordingRedis(fail=True)).publish(_order_placed())

    assert "Failed to publish OrderPlaced" in caplog.text
