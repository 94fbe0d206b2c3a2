"""Движок поиска подписок для напоминаний о продлении.

Для заданной «сегодняшней» даты находит активные подписки,
о продлении которых пора предупредить.

Политики выбора (alerts.match_policy в config.yaml):
- EXACT: renewal_date == today + lead_days.
  Подписка подходит ровно в один день. Если в этот день сервис
  не работал, напоминание пропадает.
- WINDOW (по умолчанию): today <= renewal_date <= today + lead_days.
  Пропущенный день догоняется при следующем запуске.

Выбор по дате: только фильтр кандидатов. От повторной отправки защищает
журнал напоминаний, а не совпадение дат: при двух запусках в один день
движок вернёт один и тот же набор подписок.

Движок ничего не записывает в БД.
"""

from datetime import date, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from src.config.yaml_config import MatchPolicy
from src.db.models.renewal_alert import CycleKey
from src.db.models.subscription import Subscription
from src.db.repositories.subscription_repo import SubscriptionRepository
from src.utils.logging import get_logger

logger = get_logger(__name__)

# За сколько дней до продления напоминать, если не указано иное
DEFAULT_LEAD_DAYS = 3


def validate_lead_days(lead_days: int) -> int:
    """Проверить количество дней до продления.

    Args:
        lead_days: За сколько дней предупреждать.

    Returns:
        То же значение.

    Raises:
        ValueError: Значение не целое или отрицательное.
    """
    if isinstance(lead_days, bool) or not isinstance(lead_days, int):
        raise ValueError(f"lead_days должен быть целым числом, получено: {lead_days!r}")
    if lead_days < 0:
        raise ValueError(f"lead_days не может быть отрицательным: {lead_days}")
    return lead_days


def compute_target_date(today: date, lead_days: int = DEFAULT_LEAD_DAYS) -> date:
    """Дата продления, о которой напоминаем сегодня.

    Args:
        today: Сегодняшняя дата в часовом поясе планировщика.
        lead_days: За сколько дней предупреждать.

    Returns:
        today + lead_days.
    """
    return today + timedelta(days=validate_lead_days(lead_days))


def cycle_key_for(subscription: Subscription) -> CycleKey:
    """Ключ текущего продления подписки.

    Args:
        subscription: Подписка.

    Returns:
        CycleKey(subscription.id, subscription.renewal_date).
    """
    return CycleKey(
        subscription_id=subscription.id,
        renewal_date=subscription.renewal_date,
    )


class RenewalScanEngine:
    """Поиск подписок, о продлении которых пора предупредить.

    Attributes:
        _repo: Репозиторий подписок.
        _policy: Политика выбора по дате.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: MatchPolicy = MatchPolicy.WINDOW,
    ) -> None:
        """Инициализировать движок.

        Args:
            session: Асинхронная сессия SQLAlchemy.
            policy: Политика выбора по дате.
        """
        self._repo = SubscriptionRepository(session)
        self._policy = policy

    async def find_due_subscriptions(
        self,
        today: date,
        lead_days: int = DEFAULT_LEAD_DAYS,
    ) -> list[Subscription]:
        """Найти подписки, о продлении которых пора предупредить.

        Приостановленные подписки не возвращаются никогда.

        Args:
            today: Сегодняшняя дата в часовом поясе планировщика.
            lead_days: За сколько дней предупреждать (>= 0).

        Returns:
            Подписки, отсортированные по дате продления и ID.

        Raises:
            ValueError: Некорректный lead_days.
        """
        target_date = compute_target_date(today, lead_days)
        start = target_date if self._policy == MatchPolicy.EXACT else today

        subscriptions = await self._repo.find_active_renewing_between(
            start, target_date
        )

        logger.debug(
            "Поиск продлений: today=%s, target=%s, policy=%s, найдено=%d",
            today,
            target_date,
            self._policy,
            len(subscriptions),
        )
        return subscriptions
