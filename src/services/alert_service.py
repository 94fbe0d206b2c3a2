"""Сервис напоминаний о продлении подписок.

Один вызов run_cycle(): один цикл напоминаний:
1. Вычислить «сегодня» в часовом поясе планировщика и целевую дату
2. Найти подписки для напоминания (RenewalScanEngine)
3. Для каждой подписки:
   - уже отправлено (has_notified) → пропустить
   - атомарно захватить напоминание в журнале (claim) → не удалось → пропустить
   - отправить письмо с таймаутом и повторами с растущей задержкой
   - успех → подтвердить отправку в журнале (record_notified)
   - все попытки неудачны → DELIVERY_FAILED в лог и record_failure,
     остальные подписки цикла продолжают обрабатываться
4. Записать итоги цикла в лог и вернуть CycleSummary

Один и тот же run_cycle() используется и планировщиком APScheduler,
и ручным запуском через API и CLI.

Конкурентность:
- письма отправляются параллельно, не больше alerts.max_concurrency одновременно
- все обращения к БД идут через один asyncio.Lock, запись в журнал
  выполняется строго по одной операции
- циклы внутри процесса не пересекаются (отдельный lock на цикл);
  между процессами от повторной отправки защищает уникальный ключ журнала

Ошибки:
- неудачная доставка: нормальный исход, цикл продолжается
- хранилище недоступно: новые захваты прекращаются, уже начатые отправки
  завершаются, затем цикл прерывается с StoreUnavailableError
- письмо отправлено, а запись в журнал не удалась: RECONCILIATION_NEEDED
  в лог (возможна повторная отправка в будущем, нужна ручная проверка)

Остановка:
    request_stop() / shutdown(): новые напоминания не захватываются,
    начатые отправки завершаются, цикл возвращает итоги с aborted=True.

Пример использования:
    service = create_renewal_alert_service(sender=sender)
    summary = await service.run_cycle(trigger="manual")
    print(summary.sent, summary.failed)
"""

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.yaml_config import AlertsConfig, YamlConfig
from src.core.exceptions import SchedulerShuttingDownError, StoreUnavailableError
from src.db.models.renewal_alert import CycleKey
from src.db.repositories.alert_repo import AlertLedgerRepository, ClaimResult
from src.services.notification import (
    DeliveryResult,
    NotificationSender,
    RenewalMessage,
    render_renewal_message,
)
from src.services.renewal_scan import (
    RenewalScanEngine,
    compute_target_date,
    cycle_key_for,
)
from src.utils.logging import get_logger
from src.utils.timezone import today_in_timezone, utc_now_naive

logger = get_logger(__name__)

T = TypeVar("T")

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

# =============================================================================
# КОНСТАНТЫ
# =============================================================================

# Имена событий для оператора (поле alert_event в записи лога)
EVENT_CYCLE_FAILED = "CYCLE_FAILED"
EVENT_DELIVERY_FAILED = "DELIVERY_FAILED"
EVENT_RECONCILIATION_NEEDED = "RECONCILIATION_NEEDED"

# Сколько ждать завершения текущего цикла при остановке (секунды)
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS: float = 60.0


# =============================================================================
# DATA CLASSES
# =============================================================================


class CandidateOutcome(StrEnum):
    """Итог обработки одной подписки в цикле."""

    SENT = "sent"
    SKIPPED = "skipped"
    IN_PROGRESS = "in_progress"
    FAILED = "failed"
    RECONCILIATION_NEEDED = "reconciliation_needed"
    NOT_ATTEMPTED = "not_attempted"


@dataclass
class CycleSummary:
    """Итоги одного цикла напоминаний.

    Attributes:
        cycle_id: Уникальный ID цикла (он же токен захвата в журнале).
        trigger: Кто запустил цикл (schedule, manual, cli).
        today: «Сегодня» в часовом поясе планировщика.
        target_date: today + lead_days.
        due: Сколько подписок найдено для напоминания.
        skipped: Сколько уже были отправлены ранее.
        in_progress: Сколько отправляет другой процесс или исчерпали лимит циклов.
        sent: Сколько отправлено в этом цикле.
        failed: Сколько не удалось отправить после всех попыток.
        reconciliation_needed: Сколько отправлено, но не записано в журнал.
        not_attempted: Сколько не обработано из-за остановки или сбоя хранилища.
        aborted: Цикл прерван (остановка сервиса или сбой хранилища).
        started_at: Время начала (UTC).
        finished_at: Время окончания (UTC).
        duration_seconds: Длительность цикла.
    """

    cycle_id: str
    trigger: str
    today: date
    target_date: date
    due: int = 0
    skipped: int = 0
    in_progress: int = 0
    sent: int = 0
    failed: int = 0
    reconciliation_needed: int = 0
    not_attempted: int = 0
    aborted: bool = False
    started_at: datetime = field(default_factory=utc_now_naive)
    finished_at: datetime | None = None
    duration_seconds: float = 0.0

    def add(self, outcome: CandidateOutcome) -> None:
        """Учесть итог обработки одной подписки."""
        if outcome == CandidateOutcome.SENT:
            self.sent += 1
        elif outcome == CandidateOutcome.SKIPPED:
            self.skipped += 1
        elif outcome == CandidateOutcome.IN_PROGRESS:
            self.in_progress += 1
        elif outcome == CandidateOutcome.FAILED:
            self.failed += 1
        elif outcome == CandidateOutcome.RECONCILIATION_NEEDED:
            self.reconciliation_needed += 1
        else:
            self.not_attempted += 1

    def to_dict(self) -> dict[str, Any]:
        """Итоги в виде словаря (для API и логов)."""
        data = asdict(self)
        data["today"] = self.today.isoformat()
        data["target_date"] = self.target_date.isoformat()
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


@dataclass
class _CycleState:
    """Общее состояние цикла для параллельных обработчиков."""

    cycle_id: str
    today: date
    store_error: StoreUnavailableError | None = None

    def fail_store(self, error: StoreUnavailableError) -> None:
        """Запомнить первый сбой хранилища: новые захваты прекращаются."""
        if self.store_error is None:
            self.store_error = error


# =============================================================================
# СЕРВИС НАПОМИНАНИЙ
# =============================================================================


class RenewalAlertService:
    """Цикл напоминаний о продлении подписок.

    Использует Dependency Injection: фабрика сессий и отправитель
    передаются в конструктор. Это позволяет тестировать цикл
    с тестовой БД и фейковым отправителем.

    Attributes:
        _session_factory: Фабрика сессий БД (возвращает context manager).
        _sender: Отправитель уведомлений.
        _config: Настройки напоминаний.
        _dashboard_url: Ссылка на дашборд для писем.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        sender: NotificationSender,
        config: AlertsConfig,
        dashboard_url: str | None = None,
    ) -> None:
        """Инициализировать сервис.

        Args:
            session_factory: Фабрика сессий БД.
            sender: Отправитель уведомлений.
            config: Настройки напоминаний из config.yaml.
            dashboard_url: Ссылка на дашборд (опционально).
        """
        self._session_factory = session_factory
        self._sender = sender
        self._config = config
        self._dashboard_url = dashboard_url

        # Циклы внутри процесса выполняются строго по одному
        self._cycle_lock = asyncio.Lock()
        # Единственная точка сериализации обращений к журналу и хранилищу
        self._ledger_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()

    @property
    def config(self) -> AlertsConfig:
        """Настройки напоминаний."""
        return self._config

    @property
    def is_running(self) -> bool:
        """Выполняется ли сейчас цикл."""
        return self._cycle_lock.locked()

    @property
    def is_stopping(self) -> bool:
        """Запрошена ли остановка сервиса."""
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        """Запросить остановку.

        Новые напоминания не захватываются, начатые отправки завершаются.
        Новые циклы не запускаются.
        """
        if not self._stop_event.is_set():
            logger.info("Запрошена остановка сервиса напоминаний")
            self._stop_event.set()

    async def shutdown(
        self,
        timeout: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS,
    ) -> None:
        """Остановить сервис и дождаться завершения текущего цикла.

        Args:
            timeout: Сколько ждать завершения цикла (секунды).
        """
        self.request_stop()
        if not self.is_running:
            return

        try:
            async with asyncio.timeout(timeout):
                async with self._cycle_lock:
                    pass
        except TimeoutError:
            logger.warning(
                "Цикл напоминаний не завершился за %.0f с при остановке", timeout
            )
        else:
            logger.info("Текущий цикл напоминаний завершён, сервис остановлен")

    async def run_cycle(
        self,
        today: date | None = None,
        trigger: str = "schedule",
    ) -> CycleSummary:
        """Выполнить один цикл напоминаний.

        Если цикл уже выполняется, ждёт его завершения и запускает новый.

        Args:
            today: «Сегодня» (по умолчанию текущая дата в alerts.timezone).
            trigger: Кто запустил цикл (для логов).

        Returns:
            Итоги цикла.

        Raises:
            SchedulerShuttingDownError: Сервис останавливается.
            StoreUnavailableError: Хранилище недоступно, цикл прерван.
        """
        if self.is_stopping:
            raise SchedulerShuttingDownError()

        async with self._cycle_lock:
            if self.is_stopping:
                raise SchedulerShuttingDownError()
            return await self._run_cycle_locked(today, trigger)

    async def _run_cycle_locked(
        self,
        today: date | None,
        trigger: str,
    ) -> CycleSummary:
        """Тело цикла (вызывается под _cycle_lock)."""
        config = self._config
        if today is None:
            today = today_in_timezone(config.timezone)

        summary = CycleSummary(
            cycle_id=uuid.uuid4().hex,
            trigger=trigger,
            today=today,
            target_date=compute_target_date(today, config.lead_days),
        )
        state = _CycleState(cycle_id=summary.cycle_id, today=today)
        started = time.monotonic()

        logger.info(
            "Цикл напоминаний запущен: cycle=%s, trigger=%s, today=%s, target=%s, "
            "policy=%s",
            summary.cycle_id,
            trigger,
            today,
            summary.target_date,
            config.match_policy,
        )

        try:
            candidates = await self._load_candidates(today)
        except StoreUnavailableError as e:
            self._finish(summary, started, aborted=True)
            e.summary = summary
            self._log_cycle_failed(summary, e)
            raise

        summary.due = len(candidates)

        semaphore = asyncio.Semaphore(config.max_concurrency)

        async def _worker(key: CycleKey, message: RenewalMessage) -> CandidateOutcome:
            async with semaphore:
                return await self._process_candidate(key, message, state)

        outcomes = await asyncio.gather(
            *(_worker(key, message) for key, message in candidates)
        )
        for outcome in outcomes:
            summary.add(outcome)

        aborted = state.store_error is not None or self.is_stopping
        self._finish(summary, started, aborted=aborted)

        if state.store_error is not None:
            error = state.store_error
            self._log_cycle_failed(summary, error)
            raise StoreUnavailableError(
                error.operation, error.original_error, summary=summary
            ) from error.original_error

        log = logger.warning if summary.aborted else logger.info
        log(
            "Цикл напоминаний завершён%s: cycle=%s, найдено=%d, пропущено=%d, "
            "в работе=%d, отправлено=%d, ошибок=%d, требует сверки=%d, "
            "не обработано=%d, время=%.2f с",
            " (остановлен)" if summary.aborted else "",
            summary.cycle_id,
            summary.due,
            summary.skipped,
            summary.in_progress,
            summary.sent,
            summary.failed,
            summary.reconciliation_needed,
            summary.not_attempted,
            summary.duration_seconds,
        )
        return summary

    async def _load_candidates(
        self,
        today: date,
    ) -> list[tuple[CycleKey, RenewalMessage]]:
        """Найти подписки и сразу сформировать письма.

        Письма формируются внутри сессии, дальше цикл работает
        только с готовыми данными, а не с ORM-объектами.
        """
        async with self._ledger_lock:
            try:
                async with self._session_factory() as session:
                    engine = RenewalScanEngine(session, self._config.match_policy)
                    subscriptions = await engine.find_due_subscriptions(
                        today, self._config.lead_days
                    )
                    return [
                        (
                            cycle_key_for(subscription),
                            render_renewal_message(
                                subscription,
                                self._config,
                                today,
                                self._dashboard_url,
                            ),
                        )
                        for subscription in subscriptions
                    ]
            except (SQLAlchemyError, OSError) as e:
                raise StoreUnavailableError("find_due_subscriptions", e) from e

    async def _ledger(
        self,
        operation: str,
        action: Callable[[AlertLedgerRepository], Awaitable[T]],
    ) -> T:
        """Выполнить операцию с журналом в отдельной сессии под общим lock.

        Raises:
            StoreUnavailableError: Ошибка БД.
        """
        async with self._ledger_lock:
            try:
                async with self._session_factory() as session:
                    return await action(AlertLedgerRepository(session))
            except (SQLAlchemyError, OSError) as e:
                raise StoreUnavailableError(operation, e) from e

    def _may_start(self, state: _CycleState) -> bool:
        """Можно ли начинать обработку нового напоминания."""
        return state.store_error is None and not self.is_stopping

    async def _process_candidate(
        self,
        key: CycleKey,
        message: RenewalMessage,
        state: _CycleState,
    ) -> CandidateOutcome:
        """Обработать одну подписку: проверка, захват, отправка, запись."""
        config = self._config

        if not self._may_start(state):
            return CandidateOutcome.NOT_ATTEMPTED

        try:
            if await self._ledger("has_notified", lambda repo: repo.has_notified(key)):
                logger.debug("Напоминание %s уже отправлено, пропуск", key)
                return CandidateOutcome.SKIPPED

            # Остановка могла быть запрошена, пока ждали lock
            if not self._may_start(state):
                return CandidateOutcome.NOT_ATTEMPTED

            claim = await self._ledger(
                "claim",
                lambda repo: repo.claim(
                    key,
                    recipient=message.to,
                    claim_token=state.cycle_id,
                    now=utc_now_naive(),
                    max_cycle_attempts=config.max_cycle_attempts,
                    lease_seconds=config.claim_lease_seconds,
                ),
            )
        except StoreUnavailableError as e:
            state.fail_store(e)
            return CandidateOutcome.NOT_ATTEMPTED

        if claim == ClaimResult.ALREADY_NOTIFIED:
            return CandidateOutcome.SKIPPED
        if claim != ClaimResult.CLAIMED:
            logger.info("Напоминание %s не захвачено: %s", key, claim)
            return CandidateOutcome.IN_PROGRESS

        result = await self._deliver(key, message)

        if result.success:
            return await self._confirm(key, message, state)

        logger.error(
            "%s: напоминание %s не доставлено на %s: %s",
            EVENT_DELIVERY_FAILED,
            key,
            message.to,
            result.error,
            extra={"alert_event": EVENT_DELIVERY_FAILED},
        )
        try:
            await self._ledger(
                "record_failure",
                lambda repo: repo.record_failure(
                    key,
                    claim_token=state.cycle_id,
                    error=result.error or "unknown error",
                ),
            )
        except StoreUnavailableError as e:
            state.fail_store(e)
        return CandidateOutcome.FAILED

    async def _confirm(
        self,
        key: CycleKey,
        message: RenewalMessage,
        state: _CycleState,
    ) -> CandidateOutcome:
        """Записать подтверждённую отправку в журнал."""
        try:
            recorded = await self._ledger(
                "record_notified",
                lambda repo: repo.record_notified(
                    key,
                    claim_token=state.cycle_id,
                    timestamp=utc_now_naive(),
                ),
            )
        except StoreUnavailableError as e:
            state.fail_store(e)
            self._log_reconciliation(key, message, str(e.original_error))
            return CandidateOutcome.RECONCILIATION_NEEDED

        if not recorded:
            self._log_reconciliation(key, message, "захват напоминания потерян")
            return CandidateOutcome.RECONCILIATION_NEEDED

        logger.info("Напоминание %s отправлено на %s", key, message.to)
        return CandidateOutcome.SENT

    async def _deliver(self, key: CycleKey, message: RenewalMessage) -> DeliveryResult:
        """Отправить письмо с таймаутом и повторами.

        Каждая попытка ограничена alerts.send_timeout_seconds.
        Задержка между попытками растёт вдвое (alerts.backoff_seconds),
        ожидание прерывается при остановке сервиса.
        """
        config = self._config
        result = DeliveryResult(success=False, error="отправка не выполнялась")

        for attempt in range(1, config.retry_attempts + 1):
            try:
                result = await asyncio.wait_for(
                    self._sender.send(message.to, message.subject, message.body),
                    timeout=config.send_timeout_seconds,
                )
            except TimeoutError:
                result = DeliveryResult(
                    success=False,
                    error=f"таймаут отправки ({config.send_timeout_seconds:g} с)",
                    retryable=True,
                )
            except Exception as e:
                logger.exception("Отправитель выбросил исключение для %s", key)
                result = DeliveryResult(success=False, error=str(e), retryable=True)

            if result.success:
                return result

            if not result.retryable or attempt == config.retry_attempts:
                break

            delay = config.backoff_delay(attempt)
            logger.warning(
                "Ошибка отправки %s (попытка %d/%d): %s. Повтор через %.1f с",
                key,
                attempt,
                config.retry_attempts,
                result.error,
                delay,
            )
            if await self._wait_or_stop(delay):
                logger.info("Повторы отправки %s прерваны остановкой сервиса", key)
                break

        return result

    async def _wait_or_stop(self, delay: float) -> bool:
        """Подождать delay секунд или до запроса остановки.

        Returns:
            True если запрошена остановка.
        """
        if self.is_stopping:
            return True
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except TimeoutError:
            return False
        return True

    def _finish(self, summary: CycleSummary, started: float, *, aborted: bool) -> None:
        """Заполнить время окончания цикла."""
        summary.aborted = aborted
        summary.finished_at = utc_now_naive()
        summary.duration_seconds = round(time.monotonic() - started, 3)

    def _log_cycle_failed(
        self,
        summary: CycleSummary,
        error: StoreUnavailableError,
    ) -> None:
        """Записать в лог прерванный из-за хранилища цикл."""
        logger.error(
            "%s: цикл %s прерван, хранилище недоступно (%s): %s. "
            "Отправлено до сбоя=%d, требует сверки=%d",
            EVENT_CYCLE_FAILED,
            summary.cycle_id,
            error.operation,
            error.original_error,
            summary.sent,
            summary.reconciliation_needed,
            extra={"alert_event": EVENT_CYCLE_FAILED},
        )

    def _log_reconciliation(
        self,
        key: CycleKey,
        message: RenewalMessage,
        reason: str,
    ) -> None:
        """Записать в лог отправку, которую не удалось подтвердить в журнале."""
        logger.error(
            "%s: письмо %s отправлено на %s, но не записано в журнал: %s. "
            "Возможна повторная отправка, требуется ручная проверка",
            EVENT_RECONCILIATION_NEEDED,
            key,
            message.to,
            reason,
            extra={"alert_event": EVENT_RECONCILIATION_NEEDED},
        )


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def create_renewal_alert_service(
    sender: NotificationSender,
    session_factory: SessionFactory | None = None,
    yaml_config: YamlConfig | None = None,
    dashboard_url: str | None = None,
) -> RenewalAlertService:
    """Создать экземпляр RenewalAlertService (factory function).

    Args:
        sender: Отправитель уведомлений.
        session_factory: Фабрика сессий (опционально, по умолчанию основная БД).
        yaml_config: YAML-конфигурация (опционально, берётся из глобальной).
        dashboard_url: Ссылка на дашборд (опционально).

    Returns:
        Настроенный экземпляр RenewalAlertService.

    Example:
        service = create_renewal_alert_service(create_notification_sender())
        summary = await service.run_cycle(trigger="manual")
    """
    if yaml_config is None:
        from src.config.yaml_config import yaml_config as global_yaml_config

        yaml_config = global_yaml_config

    if session_factory is None:
        from src.db.base import get_async_session_factory

        session_factory = get_async_session_factory()

    return RenewalAlertService(
        session_factory=session_factory,
        sender=sender,
        config=yaml_config.alerts,
        dashboard_url=dashboard_url,
    )
