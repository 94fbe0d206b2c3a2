"""Тесты для загрузки и валидации YAML-конфигурации напоминаний."""

import tempfile
from pathlib import Path

import pytest
from pydantic import ValidationError

from src.config.yaml_config import (
    CLAIM_LEASE_MARGIN_SECONDS,
    AlertsConfig,
    MatchPolicy,
    load_yaml_config,
)


def _write_temp_yaml(content: str) -> str:
    """Записать YAML во временный файл и вернуть путь."""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write(content)
        return f.name


def test_defaults_when_file_missing() -> None:
    """Тест: без config.yaml используются значения по умолчанию."""
    config = load_yaml_config("/nonexistent/config.yaml")

    alerts = config.alerts
    assert alerts.enabled is True
    assert alerts.cadence == "0 9 * * *"
    assert alerts.timezone == "UTC"
    assert alerts.lead_days == 3
    assert alerts.match_policy == MatchPolicy.WINDOW


def test_alerts_section_loaded() -> None:
    """Тест загрузки секции alerts."""
    temp_path = _write_temp_yaml(
        """
alerts:
  cadence: "30 8 * * 1-5"
  timezone: "Europe/Moscow"
  lead_days: 7
  match_policy: exact
  retry_attempts: 5
  max_concurrency: 2
"""
    )

    try:
        config = load_yaml_config(temp_path)

        assert config.alerts.cadence == "30 8 * * 1-5"
        assert config.alerts.timezone == "Europe/Moscow"
        assert config.alerts.lead_days == 7
        assert config.alerts.match_policy == MatchPolicy.EXACT
        assert config.alerts.retry_attempts == 5
        assert config.alerts.max_concurrency == 2
    finally:
        Path(temp_path).unlink()


def test_empty_file_gives_defaults() -> None:
    """Тест: пустой файл, конфигурация по умолчанию."""
    temp_path = _write_temp_yaml("")

    try:
        config = load_yaml_config(temp_path)
        assert config.alerts.lead_days == 3
    finally:
        Path(temp_path).unlink()


def test_project_config_yaml_is_valid() -> None:
    """Тест: config.yaml из репозитория проходит валидацию."""
    config = load_yaml_config()

    assert config.alerts.lead_days == 3
    assert "{name}" in config.alerts.subject_template


class TestAlertsConfigValidation:
    """Некорректная конфигурация останавливает запуск, а не заменяется молча."""

    def test_invalid_cron_rejected(self) -> None:
        """Тест: некорректное cron-выражение."""
        with pytest.raises(ValidationError) as exc_info:
            AlertsConfig(cadence="every day at nine")

        assert "cron" in str(exc_info.value).lower()

    def test_unknown_timezone_rejected(self) -> None:
        """Тест: неизвестный часовой пояс."""
        with pytest.raises(ValidationError) as exc_info:
            AlertsConfig(timezone="Mars/Olympus_Mons")

        assert "Mars/Olympus_Mons" in str(exc_info.value)

    @pytest.mark.parametrize("lead_days", [-1, 366])
    def test_lead_days_out_of_range_rejected(self, lead_days: int) -> None:
        """Тест: lead_days вне диапазона 0..365."""
        with pytest.raises(ValidationError):
            AlertsConfig(lead_days=lead_days)

    def test_zero_lead_days_allowed(self) -> None:
        """Тест: lead_days=0, напоминание в день продления."""
        assert AlertsConfig(lead_days=0).lead_days == 0

    def test_zero_retry_attempts_rejected(self) -> None:
        """Тест: хотя бы одна попытка отправки обязательна."""
        with pytest.raises(ValidationError):
            AlertsConfig(retry_attempts=0)

    def test_zero_send_timeout_rejected(self) -> None:
        """Тест: таймаут отправки должен быть положительным."""
        with pytest.raises(ValidationError):
            AlertsConfig(send_timeout_seconds=0)

    def test_unknown_match_policy_rejected(self) -> None:
        """Тест: неизвестная политика выбора."""
        with pytest.raises(ValidationError):
            AlertsConfig(match_policy="sometimes")  # type: ignore[arg-type]

    def test_template_with_unknown_field_rejected(self) -> None:
        """Тест: шаблон с неизвестным полем."""
        with pytest.raises(ValidationError) as exc_info:
            AlertsConfig(subject_template="Renewal: {title}")

        assert "title" in str(exc_info.value)

    def test_backoff_max_less_than_backoff_rejected(self) -> None:
        """Тест: максимальная задержка меньше начальной."""
        with pytest.raises(ValidationError):
            AlertsConfig(backoff_seconds=10, backoff_max_seconds=5)

    def test_invalid_yaml_file_rejected(self) -> None:
        """Тест: ошибка валидации при загрузке файла."""
        temp_path = _write_temp_yaml("alerts:\n  lead_days: -5\n")

        try:
            with pytest.raises(ValidationError) as exc_info:
                load_yaml_config(temp_path)
            assert "lead_days" in str(exc_info.value)
        finally:
            Path(temp_path).unlink()


class TestBackoffDelay:
    """Тесты расчёта задержки между попытками."""

    def test_delay_doubles(self) -> None:
        """Тест: задержка удваивается с каждой попыткой."""
        config = AlertsConfig(backoff_seconds=2, backoff_max_seconds=60)

        assert config.backoff_delay(1) == 2
        assert config.backoff_delay(2) == 4
        assert config.backoff_delay(3) == 8

    def test_delay_capped(self) -> None:
        """Тест: задержка не превышает backoff_max_seconds."""
        config = AlertsConfig(backoff_seconds=2, backoff_max_seconds=5)

        assert config.backoff_delay(10) == 5


class TestClaimLease:
    """Захват напоминания не должен истекать во время отправки."""

    def test_max_delivery_seconds(self) -> None:
        """Тест: худшее время отправки: все таймауты плюс задержки между попытками."""
        config = AlertsConfig(
            retry_attempts=5,
            send_timeout_seconds=60,
            backoff_seconds=10,
            backoff_max_seconds=60,
            claim_lease_seconds=900,
        )

        # 5 * 60 + (10 + 20 + 40 + 60)
        assert config.max_delivery_seconds == 430

    def test_lease_shorter_than_delivery_rejected(self) -> None:
        """Тест: захват короче худшего времени отправки, конфигурация отклонена."""
        with pytest.raises(ValidationError) as exc_info:
            AlertsConfig(
                claim_lease_seconds=60,
                retry_attempts=5,
                send_timeout_seconds=60,
                backoff_seconds=10,
                backoff_max_seconds=60,
            )

        assert "claim_lease_seconds" in str(exc_info.value)

    def test_lease_without_margin_rejected(self) -> None:
        """Тест: захват ровно на время отправки без запаса отклонён."""
        with pytest.raises(ValidationError):
            AlertsConfig(
                claim_lease_seconds=90,
                retry_attempts=3,
                send_timeout_seconds=30,
                backoff_seconds=0,
                backoff_max_seconds=0,
            )

    def test_lease_with_margin_accepted(self) -> None:
        """Тест: захват длиннее отправки с запасом принимается."""
        config = AlertsConfig(
            claim_lease_seconds=90 + CLAIM_LEASE_MARGIN_SECONDS + 1,
            retry_attempts=3,
            send_timeout_seconds=30,
            backoff_seconds=0,
            backoff_max_seconds=0,
        )

        assert config.claim_lease_seconds == 151

    def test_defaults_are_consistent(self) -> None:
        """Тест: значения по умолчанию проходят проверку захвата."""
        config = AlertsConfig()

        assert config.claim_lease_seconds > (
            config.max_delivery_seconds + CLAIM_LEASE_MARGIN_SECONDS
        )
