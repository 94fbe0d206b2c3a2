"""Время и часовые пояса.

В базе время хранится в UTC без tzinfo. Часовых поясов в сервисе два:
- LOGGING__TIMEZONE: время в логах и админке;
- alerts.timezone из config.yaml: расписание и «сегодняшняя» дата
  для поиска продлений.
"""

from datetime import UTC, date, datetime
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@lru_cache(maxsize=32)
def get_timezone(timezone_name: str) -> ZoneInfo:
    """Получить часовой пояс по имени из базы IANA.

    Raises:
        ZoneInfoNotFoundError: Если такого пояса нет.
    """
    return ZoneInfo(timezone_name)


def is_valid_timezone(timezone_name: str) -> bool:
    """Проверить, что имя часового пояса известно базе IANA."""
    try:
        get_timezone(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def today_in_timezone(timezone_name: str) -> date:
    """Сегодняшняя календарная дата в часовом поясе планировщика.

    В 23:30 по UTC в Москве уже следующий день, поэтому от выбора
    пояса зависит, какие продления попадут в окно напоминаний.

    Args:
        timezone_name: Название часового пояса из базы IANA.

    Returns:
        Текущая дата в этом поясе.
    """
    return datetime.now(get_timezone(timezone_name)).date()


def utc_now_naive() -> datetime:
    """Текущее время UTC без tzinfo, в формате колонок журнала напоминаний."""
    return datetime.now(UTC).replace(tzinfo=None)


def format_datetime(
    dt: datetime | None,
    timezone_name: str,
    fmt: str = "%d.%m.%Y %H:%M",
) -> str:
    """Отформатировать время из БД для админки.

    Args:
        dt: Время из БД (naive считается UTC). None выводится как "-".
        timezone_name: Часовой пояс для отображения.
        fmt: Формат вывода.

    Returns:
        Строка со временем в нужном поясе.
    """
    if dt is None:
        return "-"
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(get_timezone(timezone_name)).strftime(fmt)
