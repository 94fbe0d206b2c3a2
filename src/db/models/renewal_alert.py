"""Модель журнала напоминаний о продлении.

Журнал гарантирует, что на одно продление одной подписки уходит
не больше одного письма, сколько бы раз ни запускался планировщик.

Ключ записи: пара (subscription_id, renewal_date), а не только ID подписки:
следующее продление той же подписки (с новой датой): отдельное напоминание.

Уникальный индекс по этой паре: атомарная «вставка, если нет».
Два процесса планировщика не могут одновременно захватить одно напоминание:
вставка второго просто не пройдёт.

Жизненный цикл записи:
1. CLAIMED: цикл захватил напоминание и отправляет письмо
2. SENT: отправка подтверждена. Финальный статус, запись больше не меняется
3. FAILED: все попытки в цикле неудачны. Следующий цикл может захватить
   запись заново, пока cycle_attempts меньше alerts.max_cycle_attempts

Записи не удаляются сервисом. Старые записи лишь делают прошедшие
продления «уже отправленными», на корректность это не влияет.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import StrEnum

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from typing_extensions import override

from src.db.models_base import Base, TimestampMixin


class AlertStatus(StrEnum):
    """Статус напоминания в журнале.

    Значения:
        CLAIMED: Напоминание захвачено циклом, идёт отправка.
            Если процесс упал, захват истекает через alerts.claim_lease_seconds.
        SENT: Письмо успешно отправлено. Финальный статус.
        FAILED: Отправка не удалась после всех попыток цикла.
    """

    CLAIMED = "claimed"
    SENT = "sent"
    FAILED = "failed"


class RenewalAlert(TimestampMixin, Base):
    """Запись журнала напоминаний.

    Attributes:
        id: Внутренний ID записи.
        subscription_id: ID подписки. Без внешнего ключа: запись
            переживает удаление подписки через API.
        renewal_date: Дата продления, о котором напоминание.
        status: Текущий статус напоминания.
        recipient: Адрес, на который отправлялось письмо.
        claim_token: ID цикла, который захватил напоминание.
            Подтвердить отправку может только владелец захвата.
        claimed_at: Время захвата (UTC).
        notified_at: Время подтверждённой отправки (UTC). Только для SENT.
        cycle_attempts: Сколько циклов пытались отправить напоминание.
        last_error: Последняя ошибка отправки.
        created_at: Время создания записи.
        updated_at: Время последнего обновления.

    Индексы:
        - subscription_id + renewal_date: уникальный ключ напоминания
        - status: выборка для админки и оператора
    """

    __tablename__ = "renewal_alerts"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Ключ напоминания
    subscription_id: Mapped[int] = mapped_column(Integer, nullable=False)
    renewal_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[AlertStatus] = mapped_column(
        Enum(AlertStatus, native_enum=False, length=20),
        default=AlertStatus.CLAIMED,
        nullable=False,
    )

    recipient: Mapped[str] = mapped_column(String(320), nullable=False)

    # Владелец захвата (ID цикла)
    claim_token: Mapped[str] = mapped_column(String(64), nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    notified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    cycle_attempts: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "subscription_id",
            "renewal_date",
            name="uq_renewal_alerts_cycle_key",
        ),
        Index("ix_renewal_alerts_status", "status"),
    )

    @property
    def is_notified(self) -> bool:
        """Подтверждена ли отправка напоминания."""
        return self.status == AlertStatus.SENT

    @override
    def __repr__(self) -> str:
        """Строковое представление для отладки."""
        return (
            f"<RenewalAlert(subscription_id={self.subscription_id}, "
            f"renewal_date={self.renewal_date}, status={self.status}, "
            f"cycle_attempts={self.cycle_attempts})>"
        )


@dataclass(frozen=True, slots=True)
class CycleKey:
    """Ключ одного продления одной подписки.

    Attributes:
        subscription_id: ID подписки.
        renewal_date: Дата продления.
    """

    subscription_id: int
    renewal_date: date

    @override
    def __str__(self) -> str:
        """Строковое представление для логов."""
        return f"{self.subscription_id}@{self.renewal_date.isoformat()}"
