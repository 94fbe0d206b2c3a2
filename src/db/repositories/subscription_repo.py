"""Запросы к таблице subscriptions.

Дашборд создаёт, переключает и удаляет подписки; сканер продлений
только читает активные подписки в диапазоне дат.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.subscription import Subscription
from src.utils.logging import get_logger

logger = get_logger(__name__)


class SubscriptionRepository:
    """Подписки пользователей (API дашборда и RenewalScanEngine)."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(  # noqa: PLR0913
        self,
        *,
        user_id: str,
        user_email: str,
        name: str,
        cost: Decimal,
        renewal_date: date,
        currency: str = "USD",
        category: str = "General",
        active: bool = True,
    ) -> Subscription:
        """Создать новую подписку.

        Args:
            user_id: Идентификатор владельца.
            user_email: Адрес для напоминаний.
            name: Название сервиса.
            cost: Стоимость периода.
            renewal_date: Дата следующего продления.
            currency: Код валюты.
            category: Категория.
            active: Активна ли подписка.

        Returns:
            Созданный объект Subscription.
        """
        subscription = Subscription(
            user_id=user_id,
            user_email=user_email,
            name=name,
            cost=cost,
            currency=currency,
            renewal_date=renewal_date,
            category=category,
            active=active,
        )
        self._session.add(subscription)
        await self._session.flush()
        await self._session.refresh(subscription)
        await self._session.commit()

        logger.info(
            "Создана подписка: id=%s, user_id=%s, name=%s, renewal_date=%s",
            subscription.id,
            user_id,
            name,
            renewal_date,
        )

        return subscription

    async def get_by_id(self, subscription_id: int) -> Subscription | None:
        """Получить подписку по ID.

        Args:
            subscription_id: ID подписки в нашей БД.

        Returns:
            Subscription или None если не найдена.
        """
        stmt = select(Subscription).where(Subscription.id == subscription_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_subscriptions(self, user_id: str) -> list[Subscription]:
        """Получить все подписки пользователя.

        Args:
            user_id: Идентификатор владельца.

        Returns:
            Список подписок, ближайшие продления первыми.
        """
        stmt = (
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.renewal_date, Subscription.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def toggle_active(self, subscription: Subscription) -> Subscription:
        """Приостановить активную подписку или возобновить приостановленную.

        Приостановленная подписка сразу исключается из всех
        будущих циклов напоминаний.

        Args:
            subscription: Подписка для переключения.

        Returns:
            Обновлённая подписка.
        """
        subscription.active = not subscription.active
        await self._session.commit()
        await self._session.refresh(subscription)

        logger.info(
            "Подписка %s: id=%s",
            "возобновлена" if subscription.active else "приостановлена",
            subscription.id,
        )
        return subscription

    async def delete(self, subscription_id: int) -> bool:
        """Удалить подписку.

        Записи журнала напоминаний не удаляются.

        Args:
            subscription_id: ID подписки.

        Returns:
            True если подписка была удалена.
        """
        stmt = delete(Subscription).where(Subscription.id == subscription_id)
        result = await self._session.execute(stmt)
        await self._session.commit()

        deleted = result.rowcount > 0
        if deleted:
            logger.info("Удалена подписка: id=%s", subscription_id)
        return deleted

    async def find_active_renewing_between(
        self,
        start: date,
        end: date,
    ) -> list[Subscription]:
        """Найти активные подписки с продлением в диапазоне дат.

        Границы включительно. Для точного совпадения передайте start == end.

        Args:
            start: Первая дата диапазона.
            end: Последняя дата диапазона.

        Returns:
            Подписки, отсортированные по дате продления и ID.
        """
        stmt = (
            select(Subscription)
            .where(
                Subscription.active.is_(True),
                Subscription.renewal_date >= start,
                Subscription.renewal_date <= end,
            )
            .order_by(Subscription.renewal_date, Subscription.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())
