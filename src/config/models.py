"""Секции настроек из окружения (.env).

Здесь только Pydantic-модели, без чтения окружения: тесты создают
их напрямую, например SMTPSettings(host="smtp.example.com").
Объект settings собирается в src.config.settings.
"""

from pydantic import BaseModel, SecretStr, field_validator

from src.utils.timezone import is_valid_timezone

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class DatabaseSettings(BaseModel):
    """Хранилище подписок и журнала напоминаний.

    Без DATABASE__POSTGRES_URL используется SQLite в data/alerts.db.
    """

    postgres_url: str | None = None

    @field_validator("postgres_url")
    @classmethod
    def normalize_postgres_url(cls, v: str | None) -> str | None:
        """Привести URL к асинхронному драйверу asyncpg.

        Хостинги часто выдают URL вида postgres://... или postgresql://...,
        а create_async_engine нужен явный драйвер.
        """
        if v is None or not v.strip():
            return None
        v = v.strip()
        for prefix in ("postgres://", "postgresql://"):
            if v.startswith(prefix):
                return "postgresql+asyncpg://" + v.removeprefix(prefix)
        if not v.startswith("postgresql+asyncpg://"):
            raise ValueError("Ожидается URL PostgreSQL (postgresql+asyncpg://...)")
        return v


class LoggingSettings(BaseModel):
    """Уровень логов и часовой пояс времени в логах и админке.

    Пояс планировщика (от него зависит «сегодня») задаётся
    отдельно: alerts.timezone в config.yaml.
    """

    level: str = "INFO"
    timezone: str = "UTC"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Неизвестный уровень логирования '{v}'")
        return level

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if not is_valid_timezone(v):
            raise ValueError(f"Неизвестный часовой пояс '{v}'")
        return v


class SMTPSettings(BaseModel):
    """Почтовый сервер для напоминаний.

    Без SMTP__HOST письма не уходят, а пишутся в лог: так сервис
    можно запустить локально без почты.

        SMTP__HOST=smtp.gmail.com
        SMTP__PORT=587
        SMTP__USERNAME=alerts@example.com
        SMTP__PASSWORD=app-password
    """

    host: str | None = None

    # 587: STARTTLS, 465: SSL
    port: int = 587

    username: str | None = None
    password: SecretStr | None = None

    # Поле From; без него используется username
    from_email: str | None = None

    start_tls: bool = True

    @property
    def is_configured(self) -> bool:
        """Настроена ли реальная отправка."""
        return self.host is not None

    @property
    def sender_address(self) -> str:
        """Адрес в поле From."""
        return self.from_email or self.username or "alerts@localhost"


class AdminSettings(BaseModel):
    """Доступ оператора: админка /admin и эндпоинты /api/alerts.

    Админка монтируется, только если заданы username и password.
    api_token позволяет вызывать /api/alerts из cron или CI
    без входа в админку (заголовок X-Admin-Token).
    """

    username: str | None = None
    password: SecretStr | None = None

    # Ключ подписи cookie; без него генерируется при каждом старте
    secret_key: SecretStr | None = None

    api_token: SecretStr | None = None

    @property
    def is_enabled(self) -> bool:
        """Включена ли админка (заданы и логин, и пароль)."""
        return self.username is not None and self.password is not None


class AppSettings(BaseModel):
    """Публичный адрес дашборда подписок.

    Попадает в письма ({dashboard_url} в шаблоне), чтобы пользователь
    мог перейти к подписке. Можно указать без протокола: example.com.
    """

    domain: str | None = None

    @property
    def dashboard_url(self) -> str | None:
        """URL дашборда с протоколом, без завершающего слэша."""
        if self.domain is None:
            return None
        domain = self.domain.strip().rstrip("/")
        if not domain.startswith(("http://", "https://")):
            domain = f"https://{domain}"
        return domain


class CORSSettings(BaseModel):
    """CORS для дашборда на другом домене.

    По умолчанию выключен: /api/subs доступен только same-origin.
    Пример: CORS__ALLOW_ORIGINS=["https://dashboard.example.com"]
    """

    allow_origins: list[str] = []

    # При True браузер не примет allow_origins=["*"]
    allow_credentials: bool = True

    allow_methods: list[str] = ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"]
    allow_headers: list[str] = ["*"]

    @property
    def is_enabled(self) -> bool:
        """Включён ли CORS."""
        return bool(self.allow_origins)
