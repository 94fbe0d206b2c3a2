"""Тесты для SubscriptionRepository.

Модуль тестирует:
- Создание подписки со значениями по умолчанию
- Получение подписок пользователя
- Переключение активна/на паузе
- Удаление
- Выборку активных подписок по диапазону дат продления
"""

from collections.abc import Awaitable, Callable
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.subscription import Subscription
from src.db.repositories.subscription_repo import SubscriptionRepository

SubscriptionFactory = Callable[..., Awaitable[Subscription]]


class TestCreate:
    """Тесты создания подписки."""

    @pytest.mark.asyncio
    async def test_create_with_defaults(self, db_session: AsyncSession) -> None:
        """Тест: валюта и категория по умолчанию, подписка активна."""
        repo = SubscriptionRepository(db_session)

        subscription = await repo.create(
            user_id="user-1",
            user_email="user@example.com",
            name="Spotify",
            cost=Decimal("9.99"),
            renewal_date=date(2024, 3, 1),
        )

        assert subscription.id is not None
        assert subscription.currency == "USD"
        assert subscription.category == "General"
        assert subscription.active is True
        assert subscription.created_at is not None


class TestGetUserSubscriptions:
    """Тесты получения подписок пользователя."""

    @pytest.mark.asyncio
    async def test_only_own_subscriptions_sorted(
        self,
        db_session: AsyncSession,
        make_subscription: SubscriptionFactory,
    ) -> None:
        """Тест: только подписки пользователя, ближайшие продления первыми."""
        later = await make_subscription(name="Later", renewal_date=date(2024, 5, 1))
        sooner = await make_subscription(name="Sooner", renewal_date=date(2024, 2, 1))
        await make_subscription(user_id="user-2", name="Foreign")

        repo = SubscriptionRepository(db_session)
        subscriptions = await repo.get_user_subscriptions("user-1")

        assert [s.id for s in subscriptions] == [sooner.id, later.id]

    @pytest.mark.asyncio
    async def test_unknown_user_empty(self, db_session: AsyncSession) -> None:
        """Тест: у неизвестного пользователя нет подписок."""
        repo = SubscriptionRepository(db_session)

        assert await repo.get_user_subscriptions("nobody") == []


class TestToggleActive:
    """Тесты паузы и возобновления."""

    @pytest.mark.asyncio
    async def test_toggle_twice(
        self,
        db_session: AsyncSession,
        make_subscription: SubscriptionFactory,
    ) -> None:
        """Тест: пауза, затем возобновление."""
        subscription = await make_subscription()
        repo = SubscriptionRepository(db_session)

        paused = await repo.toggle_active(subscription)
        assert paused.active is False

        resumed = await repo.toggle_active(paused)
        assert resumed.active is True


class TestDelete:
    """Тесты удаления."""

    @pytest.mark.asyncio
    async def test_delete_existing(
        self,
        db_session: AsyncSession,
        make_subscription: SubscriptionFactory,
    ) -> None:
        """Тест: подписка удаляется."""
        subscription = await make_subscription()
        repo = SubscriptionRepository(db_session)

        assert await repo.delete(subscription.id) is True
        assert await repo.get_by_id(subscription.id) is None

    @pytest.mark.asyncio
    async def test_delete_missing(self, db_session: AsyncSession) -> None:
        """Тест: удаление несуществующей подписки возвращает False."""
        repo = SubscriptionRepository(db_session)

        assert await repo.delete(99999) is False


class TestFindActiveRenewingBetween:
    """Тесты выборки подписок для напоминаний."""

    @pytest.mark.asyncio
    async def test_bounds_inclusive_and_inactive_excluded(
        self,
        db_session: AsyncSession,
        make_subscription: SubscriptionFactory,
    ) -> None:
        """Тест: границы включительно, приостановленные не попадают."""
        first = await make_subscription(renewal_date=date(2024, 1, 1))
        last = await make_subscription(renewal_date=date(2024, 1, 4))
        await make_subscription(renewal_date=date(2024, 1, 5))
        await make_subscription(renewal_date=date(2023, 12, 31))
        await make_subscription(renewal_date=date(2024, 1, 2), active=False)

        repo = SubscriptionRepository(db_session)
        found = await repo.find_active_renewing_between(
            date(2024, 1, 1), date(2024, 1, 4)
        )

        assert [s.id for s in found] == [first.id, last.id]
