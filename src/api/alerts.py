"""API эндпоинты оператора для напоминаний о продлении.

Этот модуль содержит HTTP-эндпоинты:
- POST /api/alerts/run: запустить цикл напоминаний вручную
- GET /api/alerts/ledger: просмотр журнала напоминаний
- POST /api/alerts/test-email: отправить тестовое письмо

Важно:
- Все эндпоинты требуют аутентификации оператора
  (сессия админки или заголовок X-Admin-Token)
- Ручной запуск выполняет тот же цикл, что и планировщик,
  поэтому повторный запуск не отправляет писем повторно
"""

from collections.abc import Callable
from datetime import date, datetime
from typing import Annotated, Any, TypeVar, cast

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, EmailStr
from sqlalchemy.ext.asyncio import AsyncSession

from src.admin.auth import is_operator_session, is_valid_api_token
from src.core.exceptions import SchedulerShuttingDownError, StoreUnavailableError
from src.db.base import get_session
from src.db.models.renewal_alert import AlertStatus
from src.db.repositories.alert_repo import AlertLedgerRepository
from src.services.alert_service import RenewalAlertService
from src.services.notification import (
    TEST_EMAIL_BODY,
    TEST_EMAIL_SUBJECT,
    NotificationSender,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Роутер для API оператора
router = APIRouter(prefix="/api/alerts", tags=["alerts"])

# Максимум записей журнала за один запрос
MAX_LEDGER_PAGE_SIZE = 500

THandler = TypeVar("THandler", bound=Callable[..., Any])


def typed_post(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.post."""
    return router.post(*args, **kwargs)


def typed_get(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.get."""
    return router.get(*args, **kwargs)


# =============================================================================
# МОДЕЛИ ОТВЕТОВ
# =============================================================================


class CycleSummaryResponse(BaseModel):
    """Итоги цикла напоминаний.

    Attributes:
        cycle_id: ID цикла.
        trigger: Кто запустил цикл (schedule/manual/cli).
        today: «Сегодня» цикла.
        target_date: Дата продления today + lead_days.
        due: Найдено подписок для напоминания.
        skipped: Пропущено, напоминание уже отправлено.
        in_progress: Захвачены другим циклом или исчерпали лимит циклов.
        sent: Отправлено и записано в журнал.
        failed: Отправка не удалась.
        reconciliation_needed: Отправлено, но не записано в журнал.
        not_attempted: Не обработано из-за остановки или недоступности БД.
        aborted: Цикл прерван.
        started_at: Время начала (UTC).
        finished_at: Время окончания (UTC).
        duration_seconds: Длительность цикла.
    """

    cycle_id: str
    trigger: str
    today: date
    target_date: date
    due: int
    skipped: int
    in_progress: int
    sent: int
    failed: int
    reconciliation_needed: int
    not_attempted: int
    aborted: bool
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_seconds: float | None = None


class LedgerEntryResponse(BaseModel):
    """Запись журнала напоминаний."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    subscription_id: int
    renewal_date: date
    status: AlertStatus
    recipient: str
    claimed_at: datetime
    notified_at: datetime | None = None
    cycle_attempts: int
    last_error: str | None = None
    created_at: datetime


class TestEmailRequest(BaseModel):
    """Запрос на отправку тестового письма."""

    email: EmailStr


class TestEmailResponse(BaseModel):
    """Ответ на отправку тестового письма.

    Attributes:
        success: True если письмо отправлено.
        message: Сообщение о результате.
    """

    success: bool
    message: str


# =============================================================================
# ЗАВИСИМОСТИ
# =============================================================================


async def require_operator_auth(
    request: Request,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """Проверить аутентификацию оператора.

    Принимается сессия админки (SQLAdmin cookie-based auth) или
    заголовок X-Admin-Token, совпадающий с ADMIN__API_TOKEN.

    Args:
        request: FastAPI Request.
        x_admin_token: Значение заголовка X-Admin-Token.

    Raises:
        HTTPException: Если оператор не авторизован.
    """
    if is_valid_api_token(x_admin_token) or is_operator_session(request):
        return

    raise HTTPException(
        status_code=401,
        detail="Admin authentication required",
    )


async def get_alert_service(request: Request) -> RenewalAlertService:
    """Получить сервис напоминаний из app.state.

    Args:
        request: FastAPI Request.

    Returns:
        Экземпляр RenewalAlertService.

    Raises:
        HTTPException: Если сервис не инициализирован.
    """
    service = getattr(request.app.state, "alert_service", None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="Alert service not available",
        )
    return cast("RenewalAlertService", service)


async def get_notification_sender(request: Request) -> NotificationSender:
    """Получить отправителя уведомлений из app.state.

    Args:
        request: FastAPI Request.

    Returns:
        Отправитель уведомлений.

    Raises:
        HTTPException: Если отправитель не инициализирован.
    """
    sender = getattr(request.app.state, "notification_sender", None)
    if sender is None:
        raise HTTPException(
            status_code=503,
            detail="Notification sender not available",
        )
    return cast("NotificationSender", sender)


# =============================================================================
# ЭНДПОИНТЫ
# =============================================================================


@typed_post("/run", dependencies=[Depends(require_operator_auth)])
async def run_alerts(
    service: Annotated[RenewalAlertService, Depends(get_alert_service)],
    today: Annotated[date | None, Query()] = None,
) -> CycleSummaryResponse:
    """Запустить цикл напоминаний вручную.

    Выполняет тот же цикл, что и планировщик, и ждёт его завершения.
    Если цикл по расписанию уже идёт, ручной запуск начнётся после него.

    Args:
        service: Сервис напоминаний.
        today: «Сегодня» для цикла (по умолчанию текущая дата
            в часовом поясе планировщика).

    Returns:
        Итоги цикла.

    Raises:
        HTTPException: 409 если сервис останавливается,
            503 если хранилище недоступно.
    """
    logger.info("Ручной запуск цикла напоминаний (today=%s)", today)

    try:
        summary = await service.run_cycle(today=today, trigger="manual")
    except SchedulerShuttingDownError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except StoreUnavailableError as e:
        detail: dict[str, Any] = {"error": str(e)}
        if e.summary is not None:
            detail["summary"] = e.summary.to_dict()
        raise HTTPException(status_code=503, detail=detail) from e

    return CycleSummaryResponse(**summary.to_dict())


@typed_get("/ledger", dependencies=[Depends(require_operator_auth)])
async def list_ledger(
    session: Annotated[AsyncSession, Depends(get_session)],
    status: Annotated[AlertStatus | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=MAX_LEDGER_PAGE_SIZE)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> list[LedgerEntryResponse]:
    """Получить записи журнала напоминаний.

    Args:
        session: Сессия БД.
        status: Фильтр по статусу (claimed/sent/failed).
        limit: Количество записей.
        offset: Смещение.

    Returns:
        Записи журнала, новые первыми.
    """
    repo = AlertLedgerRepository(session)
    entries = await repo.list_entries(status=status, limit=limit, offset=offset)
    return [LedgerEntryResponse.model_validate(entry) for entry in entries]


@typed_post("/test-email", dependencies=[Depends(require_operator_auth)])
async def send_test_email(
    payload: TestEmailRequest,
    sender: Annotated[NotificationSender, Depends(get_notification_sender)],
) -> TestEmailResponse:
    """Отправить тестовое письмо через настроенного отправителя.

    Позволяет проверить настройки SMTP без ожидания цикла.

    Args:
        payload: Адрес получателя.
        sender: Отправитель уведомлений.

    Returns:
        TestEmailResponse с результатом.

    Raises:
        HTTPException: 502 если письмо не отправлено.
    """
    result = await sender.send(
        to=str(payload.email),
        subject=TEST_EMAIL_SUBJECT,
        body=TEST_EMAIL_BODY,
    )

    if not result.success:
        logger.warning(
            "Тестовое письмо на %s не отправлено: %s", payload.email, result.error
        )
        raise HTTPException(
            status_code=502,
            detail=f"Ошибка отправки: {result.error}",
        )

    logger.info("Тестовое письмо отправлено на %s", payload.email)
    return TestEmailResponse(success=True, message="Email sent successfully!")
