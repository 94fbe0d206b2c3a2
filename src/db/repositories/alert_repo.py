"""Репозиторий журнала напоминаний о продлении.

Журнал: единственное место, где цикл напоминаний что-то записывает.
Все изменения делаются условными SQL-запросами, а решение «кто победил»
принимает база данных (уникальный индекс или количество изменённых строк).
Проверка и запись через два отдельных запроса здесь не используются:
между ними другой процесс успел бы отправить то же письмо.

Основные операции:
- has_notified: отправлено ли уже напоминание о продлении
- claim: атомарно захватить напоминание перед отправкой
- record_notified: подтвердить отправку (только владелец захвата)
- record_failure: отметить неудачу, чтобы следующий цикл мог повторить
"""

from datetime import datetime, timedelta
from enum import StrEnum

from sqlalchemy import ColumnElement, and_, exists, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models.renewal_alert import AlertStatus, CycleKey, RenewalAlert
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Максимальная длина сохраняемого текста ошибки
MAX_ERROR_LENGTH = 2000


class ClaimResult(StrEnum):
    """Результат попытки захватить напоминание.

    Значения:
        CLAIMED: Захват получен, можно отправлять письмо.
        ALREADY_NOTIFIED: Напоминание уже отправлено ранее.
        IN_PROGRESS: Напоминание отправляет другой цикл или процесс.
        EXHAUSTED: Лимит циклов на отправку исчерпан.
    """

    CLAIMED = "claimed"
    ALREADY_NOTIFIED = "already_notified"
    IN_PROGRESS = "in_progress"
    EXHAUSTED = "exhausted"


def _cycle_key_clause(key: CycleKey) -> ColumnElement[bool]:
    """Условие WHERE для записи журнала по ключу продления."""
    return and_(
        RenewalAlert.subscription_id == key.subscription_id,
        RenewalAlert.renewal_date == key.renewal_date,
    )


class AlertLedgerRepository:
    """Репозиторий журнала напоминаний.

    Каждая изменяющая операция сразу делает commit: запись в журнале
    должна быть видна другим процессам до того, как цикл пойдёт дальше.

    Attributes:
        session: Асинхронная сессия SQLAlchemy.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Инициализация репозитория.

        Args:
            session: Асинхронная сессия SQLAlchemy.
        """
        self._session = session

    async def has_notified(self, key: CycleKey) -> bool:
        """Проверить, отправлено ли уже напоминание.

        Захваченные и неудачные напоминания не считаются отправленными.

        Args:
            key: Ключ продления.

        Returns:
            True если в журнале есть подтверждённая отправка.
        """
        stmt = select(
            exists().where(
                _cycle_key_clause(key),
                RenewalAlert.status == AlertStatus.SENT,
            )
        )
        result = await self._session.execute(stmt)
        return bool(result.scalar())

    async def get(self, key: CycleKey) -> RenewalAlert | None:
        """Получить запись журнала по ключу продления.

        Args:
            key: Ключ продления.

        Returns:
            RenewalAlert или None если записи нет.
        """
        # populate_existing: запись могла измениться другим процессом
        stmt = (
            select(RenewalAlert)
            .where(_cycle_key_clause(key))
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_entries(
        self,
        *,
        status: AlertStatus | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[RenewalAlert]:
        """Получить записи журнала для оператора.

        Args:
            status: Фильтр по статусу (опционально).
            limit: Максимальное количество записей.
            offset: Смещение для пагинации.

        Returns:
            Список записей, новые первыми.
        """
        stmt = select(RenewalAlert)
        if status is not None:
            stmt = stmt.where(RenewalAlert.status == status)
        stmt = (
            stmt.order_by(RenewalAlert.created_at.desc(), RenewalAlert.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def claim(  # noqa: PLR0913
        self,
        key: CycleKey,
        *,
        recipient: str,
        claim_token: str,
        now: datetime,
        max_cycle_attempts: int,
        lease_seconds: int,
    ) -> ClaimResult:
        """Атомарно захватить напоминание перед отправкой.

        Порядок:
        1. Вставить запись CLAIMED, если записи с таким ключом нет.
        2. Иначе перезахватить существующую запись одним условным UPDATE:
           FAILED с cycle_attempts < max_cycle_attempts или CLAIMED
           с истёкшим захватом (процесс упал во время отправки).
        3. Иначе вернуть причину, по которой захват не получен.

        Args:
            key: Ключ продления.
            recipient: Адрес получателя.
            claim_token: ID цикла, который захватывает напоминание.
            now: Текущее время UTC (naive).
            max_cycle_attempts: Максимум циклов на одно напоминание.
            lease_seconds: Время жизни захвата.

        Returns:
            Результат захвата.
        """
        if await self._insert_if_absent(key, recipient, claim_token, now):
            return ClaimResult.CLAIMED

        lease_expired_before = now - timedelta(seconds=lease_seconds)
        stmt = (
            update(RenewalAlert)
            .where(
                _cycle_key_clause(key),
                RenewalAlert.cycle_attempts < max_cycle_attempts,
                or_(
                    RenewalAlert.status == AlertStatus.FAILED,
                    and_(
                        RenewalAlert.status == AlertStatus.CLAIMED,
                        RenewalAlert.claimed_at < lease_expired_before,
                    ),
                ),
            )
            .values(
                status=AlertStatus.CLAIMED,
                claim_token=claim_token,
                claimed_at=now,
                recipient=recipient,
                cycle_attempts=RenewalAlert.cycle_attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()

        if result.rowcount == 1:
            logger.info("Напоминание %s захвачено повторно (cycle=%s)", key, claim_token)
            return ClaimResult.CLAIMED

        entry = await self.get(key)
        if entry is None:
            return ClaimResult.IN_PROGRESS
        if entry.status == AlertStatus.SENT:
            return ClaimResult.ALREADY_NOTIFIED
        if entry.cycle_attempts >= max_cycle_attempts:
            return ClaimResult.EXHAUSTED
        return ClaimResult.IN_PROGRESS

    async def record_notified(
        self,
        key: CycleKey,
        *,
        claim_token: str,
        timestamp: datetime,
    ) -> bool:
        """Подтвердить успешную отправку.

        Вызывается только после подтверждённой доставки.
        Запись переходит в SENT, только если захват всё ещё принадлежит
        этому циклу. После этого запись больше не меняется.

        Args:
            key: Ключ продления.
            claim_token: ID цикла, владеющего захватом.
            timestamp: Время отправки UTC (naive).

        Returns:
            True если запись подтверждена, False если захват потерян.
        """
        stmt = (
            update(RenewalAlert)
            .where(
                _cycle_key_clause(key),
                RenewalAlert.claim_token == claim_token,
                RenewalAlert.status == AlertStatus.CLAIMED,
            )
            .values(
                status=AlertStatus.SENT,
                notified_at=timestamp,
                last_error=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount == 1

    async def record_failure(
        self,
        key: CycleKey,
        *,
        claim_token: str,
        error: str,
    ) -> bool:
        """Отметить, что все попытки отправки в цикле неудачны.

        Запись переходит в FAILED и может быть перезахвачена
        следующим циклом, пока не исчерпан лимит циклов.

        Args:
            key: Ключ продления.
            claim_token: ID цикла, владеющего захватом.
            error: Текст последней ошибки.

        Returns:
            True если запись обновлена.
        """
        stmt = (
            update(RenewalAlert)
            .where(
                _cycle_key_clause(key),
                RenewalAlert.claim_token == claim_token,
                RenewalAlert.status == AlertStatus.CLAIMED,
            )
            .values(
                status=AlertStatus.FAILED,
                last_error=error[:MAX_ERROR_LENGTH],
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        await self._session.commit()
        return result.rowcount == 1

    async def _insert_if_absent(
        self,
        key: CycleKey,
        recipient: str,
        claim_token: str,
        now: datetime,
    ) -> bool:
        """Вставить запись CLAIMED, если записи с таким ключом ещё нет.

        Для SQLite и PostgreSQL используется INSERT ... ON CONFLICT DO NOTHING.
        Для остальных диалектов используется вставка в SAVEPOINT с перехватом
        нарушения уникальности.

        Returns:
            True если запись вставлена (захват получен).
        """
        values = {
            "subscription_id": key.subscription_id,
            "renewal_date": key.renewal_date,
            "status": AlertStatus.CLAIMED,
            "recipient": recipient,
            "claim_token": claim_token,
            "claimed_at": now,
            "cycle_attempts": 1,
        }
        dialect_name = self._session.get_bind().dialect.name

        if dialect_name in ("sqlite", "postgresql"):
            insert = sqlite.insert if dialect_name == "sqlite" else postgresql.insert
            stmt = (
                insert(RenewalAlert)
                .values(**values)
                .on_conflict_do_nothing(
                    index_elements=["subscription_id", "renewal_date"]
                )
                .returning(RenewalAlert.id)
            )
            result = await self._session.execute(stmt)
            inserted_id = result.scalar_one_or_none()
            await self._session.commit()
            return inserted_id is not None

        try:
            async with self._session.begin_nested():
                self._session.add(RenewalAlert(**values))
        except IntegrityError:
            await self._session.commit()
            return False
        await self._session.commit()
        return True
