"""
Booking Service: リクエスト / レスポンスモデル

JSON は camelCase (customerName, lessonIds ...)。
リクエストは snake_case でも受け付ける。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Lesson(CamelModel):
    id: str
    subject: str
    location: str
    price: float
    spaces: int
    icon: str


class Order(CamelModel):
    id: str
    customer_name: str
    customer_phone: str
    lesson_ids: list[str]
    created_at: datetime


class PlaceOrderRequest(CamelModel):
    # 空文字の検査はストア側で行う（InvalidInput にするため）
    customer_name: str = ""
    customer_phone: str = ""
    lesson_ids: list[str] = Field(default_factory=list)
