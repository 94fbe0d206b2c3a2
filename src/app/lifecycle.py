"""Запуск и остановка сервиса напоминаний.

ApplicationLifecycle собирает компоненты в одном месте, чтобы FastAPI
lifespan и CLI (--run-once) получали одинаково настроенный сервис.

Порядок остановки важен: сначала планировщик (новых циклов нет),
затем сервис (текущий цикл дописывает журнал), и только потом engine.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.db.base import dispose_engine, get_engine
from src.db.migrations import check_migrations
from src.scheduler import create_scheduler, start_scheduler, stop_scheduler
from src.services.alert_service import (
    RenewalAlertService,
    create_renewal_alert_service,
)
from src.services.notification import NotificationSender, create_notification_sender
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from fastapi import FastAPI

    from src.config.settings import Settings
    from src.config.yaml_config import YamlConfig

logger = get_logger(__name__)


class ApplicationLifecycle:
    """Компоненты сервиса и их порядок запуска и остановки.

    Attributes:
        settings: Настройки из окружения.
        yaml_config: Конфигурация из config.yaml.
        sender: Отправитель писем (после build_service).
        service: Сервис напоминаний (после build_service).
        scheduler: Планировщик (только в режиме сервера).
    """

    def __init__(self, settings: Settings, yaml_config: YamlConfig) -> None:
        self.settings = settings
        self.yaml_config = yaml_config
        self.sender: NotificationSender | None = None
        self.service: RenewalAlertService | None = None
        self.scheduler: AsyncIOScheduler | None = None

    def build_service(self) -> RenewalAlertService:
        """Создать отправителя и сервис напоминаний.

        Без SMTP__HOST письма только пишутся в лог, и об этом
        предупреждаем при старте: иначе «отправленные» напоминания
        легко принять за доставленные.
        """
        alerts = self.yaml_config.alerts
        self.sender = create_notification_sender(
            self.settings.smtp,
            timeout=alerts.send_timeout_seconds,
        )
        if not self.settings.smtp.is_configured:
            logger.warning("SMTP__HOST не задан: напоминания будут только в логе")

        return create_renewal_alert_service(
            sender=self.sender,
            yaml_config=self.yaml_config,
            dashboard_url=self.settings.app.dashboard_url,
        )

    async def startup(self, app: FastAPI) -> None:
        """Проверить миграции, собрать сервис и запустить планировщик.

        Args:
            app: Приложение; компоненты кладутся в app.state для эндпоинтов.
        """
        logger.info("Запуск сервиса напоминаний...")

        # Только предупреждение: миграции применяются командой alembic upgrade head
        await check_migrations(get_engine())

        self.service = self.build_service()
        self.scheduler = create_scheduler(self.yaml_config, self.service)
        start_scheduler(self.scheduler)

        app.state.notification_sender = self.sender
        app.state.alert_service = self.service
        app.state.scheduler = self.scheduler

        logger.info("✅ Сервис напоминаний запущен")

    async def shutdown(self) -> None:
        """Остановить планировщик, дождаться цикла и закрыть соединения."""
        logger.info("Остановка сервиса напоминаний...")

        if self.scheduler is not None:
            stop_scheduler(self.scheduler)

        if self.service is not None:
            await self.service.shutdown()

        await dispose_engine()
        logger.info("✅ Сервис напоминаний остановлен")
