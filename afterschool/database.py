"""
Booking Service: データベース

lessons と orders の 2 テーブルを持つ。
クエリは text() の生 SQL で書き、テーブル定義は DDL 用にだけ使う。

SQLite では書き込み単位だけを BEGIN IMMEDIATE で開始して書き込みを直列化し、
読み取りは通常の BEGIN で開く（PostgreSQL では UPDATE の行ロックで十分）。
"""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

metadata = MetaData()

lessons = Table(
    "lessons",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("subject", String(100), nullable=False),
    Column("location", String(100), nullable=False),
    Column("price", Float, nullable=False),
    Column("spaces", Integer, nullable=False),
    Column("icon", String(50), nullable=False),
    CheckConstraint("price >= 0", name="ck_lessons_price_non_negative"),
    CheckConstraint("spaces >= 0", name="ck_lessons_spaces_non_negative"),
    UniqueConstraint("subject", "location", name="uq_lessons_subject_location"),
)

orders = Table(
    "orders",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("customer_name", String(200), nullable=False),
    Column("customer_phone", String(50), nullable=False),
    Column("lesson_ids", Text, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


# lessons.spaces は INTEGER (PostgreSQL では int4)
MAX_SPACES = 2**31 - 1

WRITE_OPTIONS = {"sqlite_begin_immediate": True}


def create_engine(database_url: str, lock_timeout: float = 5.0) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        engine = create_async_engine(
            database_url, echo=False, connect_args={"timeout": lock_timeout}
        )
        _configure_sqlite(engine)
        return engine
    return create_async_engine(database_url, echo=False, pool_pre_ping=True)


def _configure_sqlite(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        # ドライバ自身の BEGIN を無効化する
        dbapi_connection.isolation_level = None
        # WAL: 書き込み中でも読み取りはブロックされない
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        # 書き込み単位 (WRITE_OPTIONS) だけが最初に書き込みロックを取る
        if conn.get_execution_options().get("sqlite_begin_immediate"):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
