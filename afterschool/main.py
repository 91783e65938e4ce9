"""
Booking Service: FastAPI エントリーポイント

放課後レッスン予約サイトの REST API。
InventoryStore は lifespan で生成して app.state に置き、
依存関係 (Depends) として各エンドポイントに渡す。

  GET  /lessons            レッスン一覧
  GET  /lessons/{id}       レッスン詳細
  PUT  /lessons/{id}       レッスンの部分更新
  GET  /search?q=...       レッスン検索
  POST /orders             注文（座席の引き当て）
  GET  /orders             注文一覧
  GET  /images/{path}      レッスン画像
"""

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import redis.asyncio as aioredis
from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

from .config import Settings
from .database import create_engine, create_schema
from .errors import BookingError, StorageFault
from .events import EventPublisher
from .schemas import Lesson, Order, PlaceOrderRequest
from .store import InventoryStore

logger = logging.getLogger(__name__)


def get_store(request: Request) -> InventoryStore:
    return request.app.state.store


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        redis_pool = None
        if settings.redis_url:
            redis_pool = aioredis.from_url(settings.redis_url, decode_responses=True)

        engine = create_engine(settings.database_url, settings.lock_timeout)
        store = InventoryStore(
            engine,
            publisher=EventPublisher(redis_pool),
            lock_timeout=settings.lock_timeout,
        )
        await create_schema(engine)
        if settings.seed_on_startup:
            await store.seed()
        logger.info("Connected to database")

        app.state.store = store
        yield
        await store.close()
        if redis_pool is not None:
            await redis_pool.aclose()

    app = FastAPI(title="After-school Booking Service", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - start) * 1000,
        )
        return response

    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_input", "message": "Malformed request body"},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=StorageFault("Internal server error").to_dict(),
        )

    _register_routes(app, settings.images_dir)
    return app


def _register_routes(app: FastAPI, images_dir: Path) -> None:

    # ── Lessons ──────────────────────────────────────

    @app.get("/lessons", response_model=list[Lesson])
    async def list_lessons(store: InventoryStore = Depends(get_store)):
        """全レッスンを取得"""
        return await store.list_lessons()

    @app.get("/lessons/{lesson_id}", response_model=Lesson)
    async def get_lesson(lesson_id: str, store: InventoryStore = Depends(get_store)):
        return await store.get_lesson(lesson_id)

    @app.put("/lessons/{lesson_id}", response_model=Lesson)
    async def update_lesson(
        lesson_id: str,
        changes: dict[str, Any] | None = Body(default=None),
        store: InventoryStore = Depends(get_store),
    ):
        """
        レッスンの部分更新

        subject を変えるとアイコンも科目表から引き直す（icon の明示指定が優先）。
        """
        return await store.update_lesson(lesson_id, changes or {})

    @app.get("/search", response_model=list[Lesson])
    async def search_lessons(q: str = "", store: InventoryStore = Depends(get_store)):
        """subject / location の部分一致、数値なら price / spaces の一致"""
        return await store.search_lessons(q)

    # ── Orders ───────────────────────────────────────

    @app.post("/orders", response_model=Order)
    async def place_order(req: PlaceOrderRequest, store: InventoryStore = Depends(get_store)):
        """
        注文を作成する

        lessonIds の重複は同じレッスンの複数席として扱う。
        1 件でも席が足りなければ注文全体が 409 で拒否され、何も減らない。
        """
        return await store.reserve(req.customer_name, req.customer_phone, req.lesson_ids)

    @app.get("/orders", response_model=list[Order])
    async def list_orders(store: InventoryStore = Depends(get_store)):
        return await store.list_orders()

    # ── Static images ────────────────────────────────

    @app.get("/images/{file_path:path}")
    async def get_image(file_path: str):
        root = images_dir.resolve()
        target = (root / file_path).resolve()
        if not target.is_relative_to(root) or not target.is_file():
            return JSONResponse(status_code=404, content={"error": "Image file does not exist"})
        return FileResponse(target)

    @app.get("/health")
    async def health(store: InventoryStore = Depends(get_store)):
        if not await store.ping():
            return JSONResponse(
                status_code=503,
                content={"status": "error", "service": "booking-service", "detail": "Database not connected"},
            )
        return {"status": "ok", "service": "booking-service"}
