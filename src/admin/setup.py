"""Подключение SQLAdmin к приложению.

Админка монтируется на /admin только при заданных ADMIN__USERNAME
и ADMIN__PASSWORD; без них /admin отвечает 404, а /api/alerts
принимает только X-Admin-Token.
"""

from fastapi import FastAPI
from sqladmin import Admin, ModelView

from src.admin.auth import get_admin_auth
from src.admin.views import RenewalAlertAdmin, SubscriptionAdmin
from src.config.settings import settings
from src.db.base import get_sync_engine
from src.utils.logging import get_logger

logger = get_logger(__name__)

ADMIN_BASE_URL = "/admin"

# Порядок разделов в меню: сначала данные, затем журнал рассылки
ADMIN_VIEWS: tuple[type[ModelView], ...] = (SubscriptionAdmin, RenewalAlertAdmin)


def setup_admin(app: FastAPI) -> Admin | None:
    """Смонтировать админку, если она включена.

    Args:
        app: FastAPI приложение.

    Returns:
        Admin или None, если админка выключена.
    """
    if not settings.admin.is_enabled:
        logger.info("Админка отключена: не заданы ADMIN__USERNAME и ADMIN__PASSWORD")
        return None

    admin = Admin(
        app=app,
        # SQLAdmin работает только с синхронным engine
        engine=get_sync_engine(),
        base_url=ADMIN_BASE_URL,
        authentication_backend=get_admin_auth(),
        title="Renewal Alerts",
    )
    for view in ADMIN_VIEWS:
        admin.add_view(view)

    dashboard_url = settings.app.dashboard_url or ""
    logger.info("Админка доступна: %s%s", dashboard_url, ADMIN_BASE_URL)
    return admin
