"""Запуск цикла напоминаний по расписанию (APScheduler)."""

from src.scheduler.runner import (
    create_scheduler,
    next_alert_run,
    start_scheduler,
    stop_scheduler,
)

__all__ = ["create_scheduler", "next_alert_run", "start_scheduler", "stop_scheduler"]
