"""API эндпоинты.

Этот модуль содержит FastAPI роутеры для:
- Health check (/health)
- Операций оператора с напоминаниями (/api/alerts)
- Управления подписками из дашборда (/api/subs)
"""

from src.api.alerts import router as alerts_router
from src.api.health import router as health_router
from src.api.subscriptions import router as subscriptions_router

__all__ = ["alerts_router", "health_router", "subscriptions_router"]
