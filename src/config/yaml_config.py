"""Загрузчик YAML-конфигурации.

Этот модуль загружает и валидирует config.yaml: файл с настройками,
которые можно менять без изменения кода.

Содержимое config.yaml:
- Расписание планировщика напоминаний (cron-выражение, часовой пояс)
- За сколько дней до продления отправлять напоминание
- Повторы, задержки и таймауты отправки
- Шаблоны писем

Некорректная конфигурация приводит к ошибке при старте приложения.
Значения по умолчанию НЕ подставляются молча вместо неверных,
иначе частота напоминаний могла бы измениться незаметно.
"""

from enum import StrEnum
from pathlib import Path
from typing import Any

import yaml
from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel, Field, field_validator, model_validator
from typing_extensions import Self

from src.config.constants import CONFIG_YAML_PATH
from src.utils.timezone import is_valid_timezone

# Поля, доступные в шаблонах писем.
# Пример: "Your {name} subscription renews on {renewal_date}"
TEMPLATE_FIELDS: dict[str, Any] = {
    "name": "Netflix",
    "cost": "15.99",
    "currency": "USD",
    "renewal_date": "2024-01-04",
    "days_left": 3,
    "dashboard_url": "https://example.com",
}

# Запас сверх худшего времени отправки, чтобы живой захват не истёк
CLAIM_LEASE_MARGIN_SECONDS = 60


class MatchPolicy(StrEnum):
    """Политика выбора подписок для напоминания.

    EXACT: только подписки, продление которых ровно через lead_days дней.
        Пропущенный день сканирования (например, сервис был выключен)
        означает пропущенное напоминание.
    WINDOW: все подписки, продление которых от сегодня до сегодня + lead_days
        включительно. Пропущенное напоминание отправится при следующем запуске,
        повторы отсекает журнал напоминаний.
    """

    EXACT = "exact"
    WINDOW = "window"


class AlertsConfig(BaseModel):
    """Настройки планировщика напоминаний о продлении подписок.

    Attributes:
        enabled: Запускать ли планировщик по расписанию.
            Ручной запуск через API работает всегда.
        cadence: Cron-выражение расписания (5 полей: минута час день месяц день_недели).
            По умолчанию каждый день в 9:00.
        timezone: Часовой пояс расписания и «сегодняшней» даты (IANA).
        lead_days: За сколько дней до продления отправлять напоминание.
        match_policy: Политика выбора подписок (exact или window).
        retry_attempts: Сколько попыток отправки делать в рамках одного цикла.
        backoff_seconds: Задержка перед второй попыткой.
            Каждая следующая задержка удваивается.
        backoff_max_seconds: Максимальная задержка между попытками.
        send_timeout_seconds: Таймаут одной попытки отправки.
            Зависшая отправка не должна останавливать весь цикл.
        max_concurrency: Сколько писем отправлять параллельно.
        max_cycle_attempts: Сколько циклов подряд может пытаться отправить
            одно и то же напоминание, если все попытки в цикле неудачны.
            1 = не повторять в следующих циклах.
        claim_lease_seconds: Через сколько секунд незавершённый захват
            напоминания (например, процесс упал во время отправки)
            считается просроченным и может быть захвачен заново.
            Должно быть больше худшего времени отправки (max_delivery_seconds)
            с запасом CLAIM_LEASE_MARGIN_SECONDS, иначе второй процесс
            перехватит напоминание, которое ещё отправляется.
        subject_template: Шаблон темы письма.
        body_template: Шаблон текста письма.
    """

    enabled: bool = Field(
        default=True,
        description="Запускать планировщик напоминаний по расписанию",
    )
    cadence: str = Field(
        default="0 9 * * *",
        description="Cron-выражение расписания (по умолчанию каждый день в 9:00)",
    )
    timezone: str = Field(
        default="UTC",
        description="Часовой пояс расписания (IANA, например Europe/Moscow)",
    )
    lead_days: int = Field(
        default=3,
        ge=0,
        le=365,
        description="За сколько дней до продления отправлять напоминание (0-365)",
    )
    match_policy: MatchPolicy = Field(
        default=MatchPolicy.WINDOW,
        description="Политика выбора подписок: window (с догоняющей отправкой) или exact",
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Количество попыток отправки в рамках цикла (1-10)",
    )
    backoff_seconds: float = Field(
        default=2.0,
        ge=0,
        le=300,
        description="Задержка перед повторной попыткой в секундах (удваивается)",
    )
    backoff_max_seconds: float = Field(
        default=60.0,
        ge=0,
        le=3600,
        description="Максимальная задержка между попытками в секундах",
    )
    send_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=600,
        description="Таймаут одной попытки отправки в секундах",
    )
    max_concurrency: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Количество параллельных отправок (1-100)",
    )
    max_cycle_attempts: int = Field(
        default=3,
        ge=1,
        le=30,
        description="Сколько циклов может пытаться отправить одно напоминание (1-30)",
    )
    claim_lease_seconds: int = Field(
        default=900,
        ge=60,
        le=86400,
        description="Время жизни незавершённого захвата напоминания в секундах",
    )
    subject_template: str = Field(
        default="Renewal Alert: {name}",
        description="Шаблон темы письма",
    )
    body_template: str = Field(
        default=(
            "Your {name} subscription ({cost} {currency}) renews on {renewal_date}.\n\n"
            "Check your dashboard to cancel or pause it."
        ),
        description="Шаблон текста письма",
    )

    @field_validator("cadence")
    @classmethod
    def validate_cadence(cls, v: str) -> str:
        """Проверить, что cron-выражение корректно.

        Используется тот же разборщик, что и в планировщике,
        поэтому ошибка обнаружится при загрузке конфига, а не при старте задачи.
        """
        v = v.strip()
        try:
            CronTrigger.from_crontab(v)
        except ValueError as e:
            raise ValueError(f"Некорректное cron-выражение '{v}': {e}") from e
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Проверить, что часовой пояс существует в базе IANA."""
        if not is_valid_timezone(v):
            raise ValueError(f"Неизвестный часовой пояс '{v}'")
        return v

    @field_validator("subject_template", "body_template")
    @classmethod
    def validate_template(cls, v: str) -> str:
        """Проверить, что шаблон использует только известные поля."""
        try:
            v.format(**TEMPLATE_FIELDS)
        except (KeyError, IndexError, ValueError) as e:
            available = ", ".join(f"{{{name}}}" for name in TEMPLATE_FIELDS)
            raise ValueError(
                f"Некорректный шаблон письма: {e}. Доступные поля: {available}"
            ) from e
        return v

    @model_validator(mode="after")
    def validate_backoff(self) -> Self:
        """Проверить, что максимальная задержка не меньше начальной."""
        if self.backoff_max_seconds < self.backoff_seconds:
            raise ValueError(
                "backoff_max_seconds не может быть меньше backoff_seconds"
            )
        return self

    @model_validator(mode="after")
    def validate_claim_lease(self) -> Self:
        """Проверить, что захват не истекает, пока письмо ещё отправляется.

        Истёкший захват может забрать другой экземпляр сервиса, и тогда
        одно напоминание уйдёт дважды.
        """
        required = self.max_delivery_seconds + CLAIM_LEASE_MARGIN_SECONDS
        if self.claim_lease_seconds <= required:
            raise ValueError(
                f"claim_lease_seconds={self.claim_lease_seconds} слишком мал: "
                f"отправка одного письма со всеми повторами может занять "
                f"{self.max_delivery_seconds:g} с, нужно больше {required:g} с"
            )
        return self

    @property
    def max_delivery_seconds(self) -> float:
        """Худшее время отправки одного письма: все попытки и задержки между ними."""
        timeouts = self.retry_attempts * self.send_timeout_seconds
        delays = sum(
            self.backoff_delay(attempt) for attempt in range(1, self.retry_attempts)
        )
        return timeouts + delays

    def backoff_delay(self, attempt: int) -> float:
        """Задержка перед повторной попыткой.

        Args:
            attempt: Номер неудачной попытки (начиная с 1).

        Returns:
            Задержка в секундах: backoff_seconds * 2^(attempt-1), не больше максимума.
        """
        delay = self.backoff_seconds * (2 ** max(attempt - 1, 0))
        return min(delay, self.backoff_max_seconds)


class YamlConfig(BaseModel):
    """Главная YAML-конфигурация.

    Загружается из config.yaml при старте приложения.
    """

    alerts: AlertsConfig = Field(
        default_factory=AlertsConfig,
        description="Настройки планировщика напоминаний о продлении",
    )


def load_yaml_config(path: Path | str = CONFIG_YAML_PATH) -> YamlConfig:
    """Загрузить и валидировать YAML-конфигурацию.

    Args:
        path: Путь к файлу конфигурации.

    Returns:
        Валидированный объект конфигурации.
        Если файла нет, конфигурация по умолчанию.

    Raises:
        yaml.YAMLError: Некорректный YAML.
        pydantic.ValidationError: Некорректная конфигурация.
    """
    config_path = Path(path)

    if not config_path.exists():
        return YamlConfig()

    with config_path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    return YamlConfig.model_validate(data)


yaml_config = load_yaml_config()
