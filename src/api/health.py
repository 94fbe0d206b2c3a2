"""GET /health: liveness-проба и состояние планировщика напоминаний."""

from typing import Any

from fastapi import APIRouter, Request

from src.scheduler import next_alert_run

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Проверка состояния сервиса.

    Сервис отвечает "ok", даже если планировщик остановлен: ручной запуск
    цикла через /api/alerts/run при этом доступен.

    Returns:
        status, состояние планировщика и время следующего цикла (ISO или None).
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    running = scheduler is not None and scheduler.running
    next_run = next_alert_run(scheduler)
    return {
        "status": "ok",
        "scheduler": "running" if running else "stopped",
        "next_alert_run": next_run.isoformat() if next_run else None,
    }
