"""Репозитории для работы с данными.

Репозиторий: это паттерн, который инкапсулирует логику доступа к данным.
Вместо прямых SQL-запросов в сервисах и API используем методы репозитория.

Преимущества:
- Вся логика работы с БД в одном месте
- Легко тестировать (можно подменить репозиторий на mock)
- Сервисы не зависят от деталей реализации БД
"""

from src.db.repositories.alert_repo import AlertLedgerRepository, ClaimResult
from src.db.repositories.subscription_repo import SubscriptionRepository

__all__ = [
    "AlertLedgerRepository",
    "ClaimResult",
    "SubscriptionRepository",
]
