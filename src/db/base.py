"""Подключение к хранилищу подписок и журнала напоминаний.

Хранилище одно на процесс: его делят FastAPI-эндпоинты, цикл напоминаний
в планировщике и CLI-команда --run-once. Поэтому engine и фабрика сессий
создаются лениво и переиспользуются, а закрываются в dispose_engine().

Выбор базы:
- DATABASE__POSTGRES_URL задан: PostgreSQL через asyncpg;
- иначе SQLite (data/alerts.db, в контейнере /data/alerts.db).

В SQLite журнал напоминаний пишут одновременно несколько сессий
(параллельная отправка писем, ручной запуск цикла, второй процесс),
поэтому соединения открываются в режиме WAL с ожиданием блокировки.

Модели наследуются от Base из src.db.models_base, здесь он только
реэкспортируется для alembic/env.py.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.config.constants import SQLITE_DB_PATH
from src.db.models_base import Base

__all__ = [
    "Base",
    "DatabaseSession",
    "dispose_engine",
    "get_async_session_factory",
    "get_engine",
    "get_session",
    "get_sync_engine",
]

# Сколько секунд SQLite ждёт снятия блокировки записи
SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


# ==============================================================================
# URL
# ==============================================================================


def get_database_url() -> str:
    """URL хранилища с асинхронным драйвером.

    Настройки читаются здесь, а не при импорте модуля: тесты импортируют
    репозитории, не трогая .env.
    """
    from src.config.settings import settings

    if settings.database.postgres_url:
        return settings.database.postgres_url
    return f"sqlite+aiosqlite:///{SQLITE_DB_PATH}"


def get_sync_database_url() -> str:
    """Тот же URL с синхронным драйвером (для SQLAdmin)."""
    return get_database_url().replace("+asyncpg", "").replace("+aiosqlite", "")


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _enable_sqlite_concurrency(sync_engine: Engine) -> None:
    """Включить WAL и ожидание блокировки для каждого нового соединения SQLite."""

    @event.listens_for(sync_engine, "connect")
    def on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_SECONDS * 1000}")
        cursor.close()


# ==============================================================================
# ENGINE И СЕССИИ
# ==============================================================================


def get_engine() -> AsyncEngine:
    """Асинхронный engine процесса (создаётся при первом обращении)."""
    global _engine
    if _engine is None:
        url = get_database_url()
        if _is_sqlite(url):
            _engine = create_async_engine(
                url,
                connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
            )
            _enable_sqlite_concurrency(_engine.sync_engine)
        else:
            _engine = create_async_engine(url, pool_pre_ping=True)
    return _engine


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """Фабрика сессий для цикла напоминаний и эндпоинтов.

    expire_on_commit=False: подписки, прочитанные сканером, используются
    в шаблоне письма уже после commit захвата.
    """
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_factory


async def dispose_engine() -> None:
    """Закрыть пул соединений при остановке сервиса или CLI."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_factory = None


def get_sync_engine() -> Engine:
    """Синхронный engine для SQLAdmin (создаётся только при включённой админке)."""
    url = get_sync_database_url()
    if _is_sqlite(url):
        sync_engine = create_engine(
            url, connect_args={"timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
        )
        _enable_sqlite_concurrency(sync_engine)
        return sync_engine
    return create_engine(url, pool_pre_ping=True)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Сессия на один HTTP-запрос (FastAPI Depends).

    Незакоммиченные изменения откатываются при ошибке в обработчике.
    """
    async with get_async_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


class DatabaseSession:
    """Сессия вне FastAPI (действия админки), с откатом при ошибке.

    Пример:
        async with DatabaseSession() as session:
            subscription = await session.get(Subscription, subscription_id)
            subscription.active = False
            await session.commit()
    """

    def __init__(self) -> None:
        self._session: AsyncSession | None = None

    async def __aenter__(self) -> AsyncSession:
        self._session = get_async_session_factory()()
        return self._session

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        if self._session is None:
            return
        try:
            if exc_type is not None:
                await self._session.rollback()
        finally:
            await self._session.close()
            self._session = None
