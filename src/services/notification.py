"""Отправка уведомлений о продлении подписок.

Отправитель: внешняя возможность, которую планировщик получает
в конструкторе. Планировщик ничего не знает о протоколе доставки
и работает с любым объектом, реализующим NotificationSender.

Реализации:
- SmtpNotificationSender: письма через SMTP (aiosmtplib)
- LoggingNotificationSender: письма только пишутся в лог
  (когда SMTP не настроен, для локальной разработки)

Неудачная доставка: нормальный исход, а не исключение:
send() всегда возвращает DeliveryResult.
"""

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from email.mime.text import MIMEText
from typing import Protocol

import aiosmtplib

from src.config.models import SMTPSettings
from src.config.yaml_config import AlertsConfig
from src.core.exceptions import ConfigurationError, NotificationError
from src.db.models.subscription import Subscription
from src.utils.logging import get_logger

logger = get_logger(__name__)

# =============================================================================
# КОНСТАНТЫ
# =============================================================================

# Таймаут SMTP-соединения по умолчанию (секунды)
DEFAULT_SMTP_TIMEOUT_SECONDS: float = 30.0

# Ошибки SMTP, после которых повторять отправку бессмысленно:
# адрес отклонён сервером или неверные учётные данные
NON_RETRYABLE_SMTP_ERRORS: tuple[type[aiosmtplib.SMTPException], ...] = (
    aiosmtplib.SMTPRecipientsRefused,
    aiosmtplib.SMTPRecipientRefused,
    aiosmtplib.SMTPSenderRefused,
    aiosmtplib.SMTPAuthenticationError,
    aiosmtplib.SMTPNotSupported,
)

TEST_EMAIL_SUBJECT = "Test Alert: Subscription Audit"
TEST_EMAIL_BODY = "If you are reading this, your email system is working perfectly!"


# =============================================================================
# ПРОТОКОЛЫ И DATA CLASSES
# =============================================================================


@dataclass
class DeliveryResult:
    """Результат одной попытки доставки.

    Attributes:
        success: Доставлено ли сообщение.
        error: Текст ошибки (если есть).
        retryable: Имеет ли смысл повторить попытку.
    """

    success: bool
    error: str | None = None
    retryable: bool = True


@dataclass(frozen=True)
class RenewalMessage:
    """Готовое письмо о продлении.

    Attributes:
        to: Адрес получателя.
        subject: Тема письма.
        body: Текст письма.
    """

    to: str
    subject: str
    body: str


class NotificationSender(Protocol):
    """Протокол отправителя уведомлений (для DI и тестирования)."""

    async def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        """Попытаться доставить сообщение."""
        ...


# =============================================================================
# РЕАЛИЗАЦИИ
# =============================================================================


class SmtpNotificationSender:
    """Отправка писем через SMTP.

    Использование:
        sender = SmtpNotificationSender(settings.smtp)
        result = await sender.send("user@example.com", "Тема", "Текст")
    """

    def __init__(
        self,
        smtp: SMTPSettings,
        timeout: float = DEFAULT_SMTP_TIMEOUT_SECONDS,
    ) -> None:
        """Инициализировать отправителя.

        Args:
            smtp: Настройки SMTP-сервера.
            timeout: Таймаут SMTP-соединения в секундах.

        Raises:
            ConfigurationError: SMTP-сервер не указан.
        """
        if not smtp.is_configured:
            raise ConfigurationError("SMTP-сервер не указан", field="SMTP__HOST")
        self._smtp = smtp
        self._timeout = timeout

    async def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        """Отправить письмо.

        Args:
            to: Адрес получателя.
            subject: Тема.
            body: Текст.

        Returns:
            DeliveryResult. Исключения транспорта не выбрасываются.
        """
        try:
            await self._deliver(to, subject, body)
        except NotificationError as e:
            logger.warning("Письмо не отправлено: %s", e)
            return DeliveryResult(
                success=False,
                error=e.message,
                retryable=e.is_retryable,
            )

        logger.info("Письмо отправлено: to=%s, subject=%s", to, subject)
        return DeliveryResult(success=True)

    async def _deliver(self, to: str, subject: str, body: str) -> None:
        """Отправить письмо через aiosmtplib.

        Raises:
            NotificationError: Отправка не удалась.
        """
        message = MIMEText(body, "plain", "utf-8")
        message["Subject"] = subject
        message["From"] = self._smtp.sender_address
        message["To"] = to

        password = (
            self._smtp.password.get_secret_value() if self._smtp.password else None
        )

        try:
            await aiosmtplib.send(
                message,
                hostname=self._smtp.host,
                port=self._smtp.port,
                username=self._smtp.username,
                password=password,
                start_tls=self._smtp.start_tls,
                timeout=self._timeout,
            )
        except NON_RETRYABLE_SMTP_ERRORS as e:
            raise NotificationError(
                f"SMTP отклонил письмо: {e}",
                recipient=to,
                is_retryable=False,
                original_error=e,
            ) from e
        except (aiosmtplib.SMTPException, OSError, TimeoutError) as e:
            raise NotificationError(
                f"Ошибка SMTP: {e}",
                recipient=to,
                is_retryable=True,
                original_error=e,
            ) from e


class LoggingNotificationSender:
    """Отправитель, который только пишет письма в лог.

    Используется, когда SMTP не настроен: цикл напоминаний работает
    полностью, включая журнал, но письма никуда не уходят.
    """

    async def send(self, to: str, subject: str, body: str) -> DeliveryResult:
        """Записать письмо в лог и сообщить об успехе."""
        logger.info(
            "SMTP не настроен, письмо записано в лог: to=%s, subject=%s\n%s",
            to,
            subject,
            body,
        )
        return DeliveryResult(success=True)


# =============================================================================
# ФОРМИРОВАНИЕ ПИСЕМ
# =============================================================================


def format_cost(cost: Decimal) -> str:
    """Отформатировать стоимость с двумя знаками после запятой.

    Args:
        cost: Стоимость.

    Returns:
        Строка вида "15.99".
    """
    return str(Decimal(cost).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def render_renewal_message(
    subscription: Subscription,
    config: AlertsConfig,
    today: date,
    dashboard_url: str | None = None,
) -> RenewalMessage:
    """Сформировать письмо о продлении по шаблонам из config.yaml.

    Args:
        subscription: Подписка.
        config: Настройки напоминаний (шаблоны).
        today: Сегодняшняя дата (для {days_left}).
        dashboard_url: Ссылка на дашборд (для {dashboard_url}).

    Returns:
        Готовое письмо.
    """
    fields = {
        "name": subscription.name,
        "cost": format_cost(subscription.cost),
        "currency": subscription.currency,
        "renewal_date": subscription.renewal_date.isoformat(),
        "days_left": (subscription.renewal_date - today).days,
        "dashboard_url": dashboard_url or "",
    }
    return RenewalMessage(
        to=subscription.user_email,
        subject=config.subject_template.format(**fields),
        body=config.body_template.format(**fields),
    )


# =============================================================================
# FACTORY FUNCTIONS
# =============================================================================


def create_notification_sender(
    smtp: SMTPSettings | None = None,
    timeout: float = DEFAULT_SMTP_TIMEOUT_SECONDS,
) -> NotificationSender:
    """Создать отправителя уведомлений (factory function).

    Если SMTP настроен, SmtpNotificationSender, иначе LoggingNotificationSender.

    Args:
        smtp: Настройки SMTP (опционально, берутся из глобальных settings).
        timeout: Таймаут SMTP-соединения.

    Returns:
        Отправитель уведомлений.
    """
    if smtp is None:
        from src.config.settings import settings

        smtp = settings.smtp

    if smtp.is_configured:
        logger.info("Отправка напоминаний через SMTP: %s:%d", smtp.host, smtp.port)
        return SmtpNotificationSender(smtp, timeout=timeout)

    logger.warning("SMTP не настроен (SMTP__HOST), письма будут только в логах")
    return LoggingNotificationSender()
