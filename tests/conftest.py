"""Фикстуры сервиса напоминаний.

- SQLite в памяти, своя на каждый тест
- Асинхронные сессии SQLAlchemy и фабрика сессий для DI
- Фабрика тестовых подписок
- Фейковый отправитель уведомлений, запоминающий письма
- Быстрая конфигурация напоминаний (без задержек между повторами)
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config.yaml_config import AlertsConfig
from src.db.models.subscription import Subscription
from src.db.models_base import Base
from src.services.notification import DeliveryResult

SubscriptionFactory = Callable[..., Awaitable[Subscription]]


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[Any, None]:
    """Engine на пустой SQLite в памяти с таблицами подписок и журнала."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine: Any) -> AsyncGenerator[AsyncSession, None]:
    """Сессия тестовой БД; незакоммиченное откатывается после теста."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_factory(
    db_session: AsyncSession,
) -> Callable[[], AbstractAsyncContextManager[AsyncSession]]:
    """Создать фабрику сессий БД для тестов с dependency injection.

    Возвращает фабрику, которая создаёт контекстный менеджер,
    возвращающий тестовую сессию БД. Используется для инжекции
    тестовой БД в сервис напоминаний вместо реальной БД.

    Args:
        db_session: Тестовая сессия БД.

    Returns:
        Фабрика сессий, совместимая с типом DatabaseSession.
    """

    @asynccontextmanager
    async def _session_factory() -> AsyncGenerator[AsyncSession, None]:
        """Контекстный менеджер, возвращающий тестовую сессию."""
        yield db_session

    return _session_factory


@pytest_asyncio.fixture
async def make_subscription(db_session: AsyncSession) -> SubscriptionFactory:
    """Фабрика тестовых подписок.

    Пример:
        sub = await make_subscription(name="Netflix", renewal_date=date(2024, 1, 4))

    Args:
        db_session: Сессия БД из фикстуры db_session.

    Returns:
        Корутина, создающая подписку в БД.
    """

    async def _make(**overrides: Any) -> Subscription:
        values: dict[str, Any] = {
            "user_id": "user-1",
            "user_email": "user@example.com",
            "name": "Netflix",
            "cost": Decimal("15.99"),
            "currency": "USD",
            "renewal_date": date(2024, 1, 4),
            "category": "Entertainment",
            "active": True,
        }
        values.update(overrides)
        subscription = Subscription(**values)
        db_session.add(subscription)
        await db_session.commit()
        await db_session.refresh(subscription)
        return subscription

    return _make


@dataclass
class SentMessage:
    """Письмо, «отправленное» фейковым отправителем."""

    to: str
    subject: str
    body: str


@dataclass
class RecordingSender:
    """Фейковый отправитель: запоминает письма, результат задаётся тестом.

    Attributes:
        sent: Успешно «доставленные» письма.
        calls: Все попытки отправки (включая неудачные).
        fail_for: Адреса, отправка на которые всегда неудачна.
        results: Очередь результатов для следующих попыток (по порядку).
    """

    sent: list[SentMessage] = field(default_factory=list)
    calls: list[SentMessage] = field(default_factory=list)
    fail_for: set[str] = field(default_factory=set)
    results: list[DeliveryResult] = field(default_factory=list)

    async def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        """Записать попытку и вернуть заданный результат."""
        message = SentMessage(to=to, subject=subject, body=body)
        self.calls.append(message)

        if to in self.fail_for:
            return DeliveryResult(success=False, error="mailbox unavailable")
        if self.results:
            result = self.results.pop(0)
        else:
            result = DeliveryResult(success=True)

        if result.success:
            self.sent.append(message)
        return result


@pytest.fixture
def sender() -> RecordingSender:
    """Фейковый отправитель уведомлений."""
    return RecordingSender()


@pytest.fixture
def alerts_config() -> AlertsConfig:
    """Конфигурация напоминаний для тестов: без задержек между повторами."""
    return AlertsConfig(
        lead_days=3,
        retry_attempts=3,
        backoff_seconds=0,
        backoff_max_seconds=0,
        send_timeout_seconds=1,
        max_concurrency=5,
        max_cycle_attempts=3,
    )
