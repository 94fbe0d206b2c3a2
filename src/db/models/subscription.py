"""Модель подписки пользователя.

Подписка: регулярный платёж пользователя (Netflix, Spotify, хостинг и т.д.),
о продлении которого сервис заранее предупреждает письмом.

Подписки создаются, изменяются и удаляются через REST API дашборда.
Планировщик напоминаний только читает их и никогда не изменяет.

Приостановленная подписка (active=False) не участвует в напоминаниях,
какой бы ни была дата продления.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column
from typing_extensions import override

from src.db.models_base import Base, TimestampMixin


class Subscription(TimestampMixin, Base):
    """Подписка пользователя на платный сервис.

    Attributes:
        id: Внутренний ID подписки (автоинкремент).
        user_id: Идентификатор владельца (непрозрачная строка из системы
            аутентификации дашборда).
        user_email: Адрес для отправки напоминаний.
        name: Название сервиса (например, "Netflix").
        cost: Стоимость одного периода. Decimal с двумя знаками,
            чтобы не терять копейки на float.
        currency: Код валюты ISO 4217 (USD, EUR, RUB).
        renewal_date: Дата следующего продления (без времени).
        category: Категория для группировки в дашборде.
        active: Активна ли подписка. False: приостановлена пользователем.
        created_at: Время создания записи в БД.
        updated_at: Время последнего обновления.

    Индексы:
        - active + renewal_date: поиск подписок для напоминаний
        - user_id: список подписок пользователя в дашборде
    """

    __tablename__ = "subscriptions"

    # Первичный ключ
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Владелец подписки и адрес для писем
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_email: Mapped[str] = mapped_column(String(320), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Numeric(12, 2) возвращает Decimal, а не float
    cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    # Только дата: время продления не важно
    renewal_date: Mapped[date] = mapped_column(Date, nullable=False)

    category: Mapped[str] = mapped_column(
        String(100), default="General", nullable=False
    )

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        # Индекс для планировщика: active = true AND renewal_date BETWEEN ? AND ?
        Index("ix_subscriptions_active_renewal_date", "active", "renewal_date"),
        # Индекс для дашборда: подписки пользователя
        Index("ix_subscriptions_user_id", "user_id"),
    )

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return (
            f"<Subscription(id={self.id}, name={self.name}, "
            f"renewal_date={self.renewal_date}, active={self.active})>"
        )
