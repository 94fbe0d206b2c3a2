"""Модели базы данных (таблицы).

Каждая модель: это класс Python, который соответствует таблице в БД.
SQLAlchemy автоматически преобразует объекты в SQL-запросы.

Все модели должны наследоваться от Base (из db.models_base).
"""

from src.db.models.renewal_alert import AlertStatus, CycleKey, RenewalAlert
from src.db.models.subscription import Subscription

__all__ = [
    "AlertStatus",
    "CycleKey",
    "RenewalAlert",
    "Subscription",
]
