"""Тесты для моделей настроек из src/config/models.py.

Проверяет:
- Ссылку на дашборд при разных значениях domain
- Включение SMTP, админки и CORS
- Нормализацию URL PostgreSQL и проверку настроек логирования
"""

import pytest
from pydantic import SecretStr, ValidationError

from src.config.models import (
    AdminSettings,
    AppSettings,
    CORSSettings,
    DatabaseSettings,
    LoggingSettings,
    SMTPSettings,
)


class TestAppSettings:
    """Тесты для класса AppSettings."""

    def test_dashboard_url_adds_https(self) -> None:
        """Проверить, что к домену без протокола добавляется https://."""
        settings = AppSettings(domain="example.com")

        assert settings.dashboard_url == "https://example.com"

    def test_dashboard_url_keeps_protocol(self) -> None:
        """Проверить, что протокол из домена сохраняется."""
        settings = AppSettings(domain="http://localhost:5173/")

        assert settings.dashboard_url == "http://localhost:5173"

    def test_dashboard_url_without_domain(self) -> None:
        """Проверить, что без домена ссылки нет."""
        assert AppSettings().dashboard_url is None


class TestSMTPSettings:
    """Тесты для класса SMTPSettings."""

    def test_not_configured_without_host(self) -> None:
        """Без SMTP__HOST отправка писем не настроена."""
        assert SMTPSettings().is_configured is False

    def test_configured_with_host(self) -> None:
        """С SMTP__HOST отправка писем настроена."""
        assert SMTPSettings(host="smtp.example.com").is_configured is True

    def test_sender_address_prefers_from_email(self) -> None:
        """Адрес отправителя, from_email, если задан."""
        smtp = SMTPSettings(
            host="smtp.example.com",
            username="login@example.com",
            from_email="alerts@example.com",
        )

        assert smtp.sender_address == "alerts@example.com"

    def test_sender_address_falls_back_to_username(self) -> None:
        """Без from_email адрес отправителя, логин SMTP."""
        smtp = SMTPSettings(host="smtp.example.com", username="login@example.com")

        assert smtp.sender_address == "login@example.com"


class TestAdminSettings:
    """Тесты для класса AdminSettings."""

    def test_enabled_with_username_and_password(self) -> None:
        """Админка включена, если заданы логин и пароль."""
        admin = AdminSettings(username="admin", password=SecretStr("secret"))

        assert admin.is_enabled is True

    def test_disabled_without_password(self) -> None:
        """Админка выключена без пароля."""
        assert AdminSettings(username="admin").is_enabled is False


class TestCORSSettings:
    """Тесты для класса CORSSettings."""

    def test_disabled_by_default(self) -> None:
        """CORS выключен, пока не указаны домены."""
        assert CORSSettings().is_enabled is False

    def test_enabled_with_origins(self) -> None:
        """CORS включён при указанных доменах."""
        cors = CORSSettings(allow_origins=["https://dashboard.example.com"])

        assert cors.is_enabled is True


class TestDatabaseSettings:
    """Тесты для класса DatabaseSettings."""

    @pytest.mark.parametrize(
        "url",
        [
            "postgres://user:pass@db:5432/alerts",
            "postgresql://user:pass@db:5432/alerts",
            "postgresql+asyncpg://user:pass@db:5432/alerts",
        ],
    )
    def test_postgres_url_uses_asyncpg(self, url: str) -> None:
        """URL хостинга приводится к драйверу asyncpg."""
        database = DatabaseSettings(postgres_url=url)

        assert database.postgres_url == "postgresql+asyncpg://user:pass@db:5432/alerts"

    def test_blank_url_means_sqlite(self) -> None:
        """Пустая строка равносильна отсутствию PostgreSQL."""
        assert DatabaseSettings(postgres_url="  ").postgres_url is None

    def test_foreign_url_rejected(self) -> None:
        """URL другой СУБД отклоняется."""
        with pytest.raises(ValidationError):
            DatabaseSettings(postgres_url="mysql://user@db/alerts")


class TestLoggingSettings:
    """Тесты для класса LoggingSettings."""

    def test_level_normalized(self) -> None:
        """Уровень логирования приводится к верхнему регистру."""
        assert LoggingSettings(level="debug").level == "DEBUG"

    def test_unknown_level_rejected(self) -> None:
        """Неизвестный уровень логирования отклоняется."""
        with pytest.raises(ValidationError):
            LoggingSettings(level="VERBOSE")

    def test_unknown_timezone_rejected(self) -> None:
        """Неизвестный часовой пояс отклоняется."""
        with pytest.raises(ValidationError):
            LoggingSettings(timezone="Mars/Olympus")
