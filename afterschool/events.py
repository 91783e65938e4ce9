"""
Booking Service: イベント定義と発行

コミット後に Redis Pub/Sub の booking_events チャネルへ発行する。
Redis が設定されていなければ何もしない。
"""

import json
import logging
from datetime import datetime

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

CHANNEL = "booking_events"


class OrderPlaced(BaseModel):
    """注文が確定し、座席が引き当てられた"""
    order_id: str
    customer_name: str
    lesson_ids: list[str]
    seats: dict[str, int]
    timestamp: datetime


class ReservationRejected(BaseModel):
    """座席不足で注文全体が拒否された"""
    lesson_id: str
    requested: int
    available: int
    timestamp: datetime


class LessonUpdated(BaseModel):
    """レッスンの属性が変更された"""
    lesson_id: str
    changes: dict
    timestamp: datetime


class EventPublisher:
    def __init__(self, redis: aioredis.Redis | None = None) -> None:
        self.redis = redis

    async def publish(self, event: BaseModel) -> None:
        if self.redis is None:
            logger.debug("No Redis configured, dropping %s", type(event).__name__)
            return
        message = json.dumps(
            {
                "event_type": type(event).__name__,
                "data": event.model_dump(mode="json"),
            },
            default=str,
        )
        try:
            await self.redis.publish(CHANNEL, message)
        except RedisError:
            # 変更はコミット済みなので、発行失敗で呼び出しを失敗させない
            logger.exception("Failed to publish %s", type(event).__name__)
