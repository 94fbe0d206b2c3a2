"""Логирование сервиса напоминаний.

Каналы вывода:
- консоль (stdout), с цветной подсветкой уровня и событий;
- data/logs/app.log, общий лог с ротацией;
- data/logs/alert_events.log, только события для оператора.

Событие для оператора: запись с полем alert_event в extra:
    logger.error("...", extra={"alert_event": "DELIVERY_FAILED"})

Сообщение события начинается с его имени (DELIVERY_FAILED: ...),
в консоли оно выделяется жирным.
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from typing_extensions import override

from src.config.constants import (
    ALERT_EVENTS_LOG_FILENAME,
    APP_LOG_FILENAME,
    LOGS_DIR,
)
from src.utils.timezone import get_timezone

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%y-%m-%d %H:%M:%S"

# Ротация: файл до 5 МБ плюс 3 архива
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# Библиотеки, которые в INFO пишут слишком много
NOISY_LOGGERS = ("apscheduler", "aiosmtplib", "sqlalchemy.engine")

# ==============================================================================
# ЦВЕТА
# ==============================================================================

RESET = "\033[0m"
BOLD = "\033[1m"

LEVEL_COLORS: dict[str, str] = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}


# ==============================================================================
# ФОРМАТТЕРЫ И ФИЛЬТРЫ
# ==============================================================================


class TimezoneFormatter(logging.Formatter):
    """Форматтер, выводящий время в заданном часовом поясе, а не в системном."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        timezone_name: str = "UTC",
    ) -> None:
        super().__init__(fmt, datefmt)
        self.timezone = get_timezone(timezone_name)

    @override
    def formatTime(
        self,
        record: logging.LogRecord,
        datefmt: str | None = None,
    ) -> str:
        moment = datetime.fromtimestamp(record.created, tz=self.timezone)
        return moment.strftime(datefmt or self.default_time_format)


class ColoredFormatter(TimezoneFormatter):
    """Консольный форматтер.

    Убирает префикс "src." из имени логгера, красит уровень
    и выделяет жирным события для оператора.
    Исходная запись не меняется: её же получают файловые обработчики.
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        timezone_name: str = "UTC",
        use_colors: bool = True,
    ) -> None:
        """Инициализировать форматтер.

        Args:
            fmt: Формат строки лога.
            datefmt: Формат даты/времени.
            timezone_name: Часовой пояс из базы IANA.
            use_colors: Добавлять ли ANSI-коды.
        """
        super().__init__(fmt, datefmt, timezone_name)
        self.use_colors = use_colors

    @override
    def format(self, record: logging.LogRecord) -> str:
        original_name, original_msg = record.name, record.msg
        record.name = record.name.removeprefix("src.")
        if self.use_colors and getattr(record, "alert_event", None) is not None:
            record.msg = f"{BOLD}{record.msg}{RESET}"
        try:
            formatted = super().format(record)
        finally:
            record.name, record.msg = original_name, original_msg

        color = LEVEL_COLORS.get(record.levelname) if self.use_colors else None
        if color:
            formatted = formatted.replace(
                f"| {record.levelname} |",
                f"| {color}{record.levelname}{RESET} |",
            )
        return formatted


class AlertEventFilter(logging.Filter):
    """Пропускает только записи с полем alert_event."""

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        return getattr(record, "alert_event", None) is not None


# ==============================================================================
# НАСТРОЙКА
# ==============================================================================


def _should_use_colors() -> bool:
    """Цвета только в терминале и только без NO_COLOR (https://no-color.org/)."""
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()


def _rotating_handler(
    path: Path, formatter: logging.Formatter
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def _route_uvicorn(*handlers: logging.Handler) -> None:
    """Перевести логи Uvicorn на наши обработчики, чтобы формат был единым."""
    for name in ("uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = list(handlers)
        uvicorn_logger.propagate = False

    parent = logging.getLogger("uvicorn")
    parent.handlers = []
    parent.propagate = False


def setup_logging(
    level: str = "INFO",
    timezone_name: str = "UTC",
) -> None:
    """Настроить логирование приложения.

    Повторный вызов заменяет ранее установленные обработчики, поэтому
    функцию можно вызывать и из FastAPI-приложения, и из CLI.

    Args:
        level: Уровень логирования (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        timezone_name: Часовой пояс для времени в логах.
    """
    LOGS_DIR.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        ColoredFormatter(
            LOG_FORMAT,
            datefmt=DATE_FORMAT,
            timezone_name=timezone_name,
            use_colors=_should_use_colors(),
        )
    )

    file_formatter = TimezoneFormatter(
        LOG_FORMAT, datefmt=DATE_FORMAT, timezone_name=timezone_name
    )
    app_handler = _rotating_handler(LOGS_DIR / APP_LOG_FILENAME, file_formatter)
    events_handler = _rotating_handler(
        LOGS_DIR / ALERT_EVENTS_LOG_FILENAME, file_formatter
    )
    events_handler.addFilter(AlertEventFilter())

    for handler in (console_handler, app_handler, events_handler):
        root_logger.addHandler(handler)

    _route_uvicorn(console_handler, app_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Получить логгер модуля (обычно get_logger(__name__))."""
    return logging.getLogger(name)
