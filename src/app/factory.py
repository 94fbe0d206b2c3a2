"""Сборка FastAPI-приложения сервиса напоминаний.

Маршруты:
- /api/subs: подписки для дашборда;
- /api/alerts: ручной запуск цикла, журнал и тестовое письмо (оператор);
- /health: liveness и состояние планировщика;
- /admin: SQLAdmin, если заданы ADMIN__USERNAME и ADMIN__PASSWORD.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from src.admin import setup_admin
from src.admin.auth import get_admin_secret_key
from src.api.alerts import router as alerts_router
from src.api.health import router as health_router
from src.api.subscriptions import router as subscriptions_router
from src.app.lifecycle import ApplicationLifecycle
from src.config.models import CORSSettings
from src.config.settings import Settings, settings
from src.config.yaml_config import YamlConfig, yaml_config
from src.utils.logging import get_logger

logger = get_logger(__name__)


def _add_cors(app: FastAPI, cors: CORSSettings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors.allow_origins,
        allow_credentials=cors.allow_credentials,
        allow_methods=cors.allow_methods,
        allow_headers=cors.allow_headers,
    )
    logger.info("CORS включён для доменов: %s", ", ".join(cors.allow_origins))


def create_app(
    app_settings: Settings | None = None,
    app_yaml_config: YamlConfig | None = None,
) -> FastAPI:
    """Создать FastAPI-приложение.

    Args:
        app_settings: Настройки (по умолчанию из окружения и .env).
        app_yaml_config: Конфигурация напоминаний (по умолчанию из config.yaml).

    Returns:
        Приложение; планировщик стартует в его lifespan.
    """
    app_settings = app_settings or settings
    app_yaml_config = app_yaml_config or yaml_config
    lifecycle = ApplicationLifecycle(app_settings, app_yaml_config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        await lifecycle.startup(app)
        yield
        await lifecycle.shutdown()

    app = FastAPI(
        title="Renewal Alerts",
        description="Напоминания о продлении подписок",
        version="0.1.0",
        lifespan=lifespan,
    )

    setup_admin(app)

    # Сессия админки принимается и эндпоинтами /api/alerts, ключ общий с SQLAdmin
    if app_settings.admin.is_enabled:
        app.add_middleware(SessionMiddleware, secret_key=get_admin_secret_key())

    # Middleware выполняются в обратном порядке: CORS добавляем последним
    if app_settings.cors.is_enabled:
        _add_cors(app, app_settings.cors)

    app.include_router(subscriptions_router)
    app.include_router(alerts_router)
    app.include_router(health_router)

    return app
