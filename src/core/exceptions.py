"""Исключения сервиса напоминаний.

- StoreUnavailableError: хранилище недоступно, цикл прерывается целиком;
- NotificationError: сбой SMTP внутри отправителя, наружу не выходит;
- SchedulerShuttingDownError: цикл не запущен, сервис останавливается;
- ConfigurationError: неверные настройки при старте.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from typing_extensions import override

if TYPE_CHECKING:
    from src.services.alert_service import CycleSummary

# =============================================================================
# DATABASE EXCEPTIONS
# =============================================================================
# Иерархия: DatabaseError -> StoreUnavailableError
# =============================================================================


class DatabaseError(Exception):
    """Ошибка хранилища.

    retryable=True: сбой временный, следующий цикл по расписанию повторит работу.
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = retryable


class StoreUnavailableError(DatabaseError):
    """Хранилище подписок или журнал напоминаний недоступны.

    Цикл напоминаний прерывается целиком и считается неудачным.
    Следующий запуск продолжит с того же места: отправленные напоминания
    уже отмечены в журнале, а незавершённые захваты перехватываются
    после истечения lease.

    Attributes:
        operation: Операция, на которой хранилище оказалось недоступно.
        summary: Итоги прерванного цикла на момент остановки (если есть).
        original_error: Оригинальное исключение.
    """

    def __init__(
        self,
        operation: str,
        original_error: Exception,
        summary: CycleSummary | None = None,
    ) -> None:
        """Создать исключение о недоступности хранилища.

        Args:
            operation: Название операции.
            original_error: Оригинальное исключение.
            summary: Частичные итоги цикла.
        """
        super().__init__(
            f"Хранилище недоступно при выполнении '{operation}': {original_error}",
            retryable=True,
        )
        self.operation = operation
        self.original_error = original_error
        self.summary = summary


# =============================================================================
# NOTIFICATION EXCEPTIONS
# =============================================================================
# Исключения транспорта уведомлений (SMTP и т.д.).
# Отправитель не выбрасывает их наружу при неудачной доставке,
# а возвращает DeliveryResult: неудача доставки считается обычным исходом.
# =============================================================================


class NotificationError(Exception):
    """Ошибка отправки уведомления.

    Attributes:
        message: Описание ошибки.
        recipient: Адрес получателя.
        is_retryable: Можно ли повторить отправку (True для сетевых ошибок).
        original_error: Оригинальное исключение транспорта.
    """

    def __init__(
        self,
        message: str,
        *,
        recipient: str,
        is_retryable: bool = True,
        original_error: Exception | None = None,
    ) -> None:
        """Создать ошибку отправки.

        Args:
            message: Описание ошибки.
            recipient: Адрес получателя.
            is_retryable: Можно ли повторить отправку.
            original_error: Оригинальное исключение.
        """
        super().__init__(message)
        self.message = message
        self.recipient = recipient
        self.is_retryable = is_retryable
        self.original_error = original_error

    @override
    def __str__(self) -> str:
        """Строковое представление ошибки."""
        return f"[{self.recipient}] {self.message}"


# =============================================================================
# ALERT SERVICE EXCEPTIONS
# =============================================================================
# Исключения сервиса напоминаний о продлении.
# =============================================================================


class AlertServiceError(Exception):
    """Базовое исключение сервиса напоминаний."""

    def __init__(self, message: str) -> None:
        """Создать исключение сервиса напоминаний.

        Args:
            message: Описание ошибки.
        """
        super().__init__(message)
        self.message = message


class SchedulerShuttingDownError(AlertServiceError):
    """Сервис напоминаний останавливается, новые циклы не запускаются."""

    def __init__(self) -> None:
        """Создать исключение об остановке сервиса."""
        super().__init__("Сервис напоминаний останавливается, цикл не запущен")


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================


class ConfigurationError(Exception):
    """Некорректная конфигурация.

    Выбрасывается при старте приложения. Приложение не должно
    продолжать работу с конфигурацией по умолчанию вместо неверной.
    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        """Создать исключение конфигурации.

        Args:
            message: Описание ошибки.
            field: Название параметра конфигурации (опционально).
        """
        super().__init__(message)
        self.message = message
        self.field = field

    @override
    def __str__(self) -> str:
        """Строковое представление ошибки."""
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message
