"""Декларативная база моделей и общие колонки.

Модуль не читает настройки, поэтому модели можно импортировать в тестах
и в alembic/env.py без .env.
"""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """База для Subscription и RenewalAlert; по ней Alembic находит таблицы."""


class TimestampMixin:
    """Время создания и изменения записи (UTC, без tzinfo).

    Значения ставит база (func.now()), а не Python, поэтому они
    одинаковы для записей из API, планировщика и админки.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        onupdate=func.now(),
        nullable=True,
    )
