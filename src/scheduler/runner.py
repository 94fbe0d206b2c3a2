"""APScheduler для цикла напоминаний о продлении.

Одна задача, renewal_alerts, запускает RenewalAlertService.run_cycle
по cron-выражению alerts.cadence в часовом поясе alerts.timezone
(по умолчанию ежедневно в 09:00 UTC).

Планировщик создаётся и запускается в ApplicationLifecycle.startup
и останавливается в shutdown. Цикл, который уже идёт в момент
остановки, завершает сам сервис (RenewalAlertService.shutdown).
"""

from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.config.yaml_config import YamlConfig
from src.scheduler.tasks import process_renewal_alerts
from src.services.alert_service import RenewalAlertService
from src.utils.logging import get_logger

logger = get_logger(__name__)

RENEWAL_ALERTS_JOB_ID = "renewal_alerts"

# Запуск, пропущенный из-за перезапуска или занятого event loop,
# ещё выполняется, если опоздал не больше чем на час
MISFIRE_GRACE_SECONDS = 3600


def create_scheduler(
    yaml_config: YamlConfig,
    service: RenewalAlertService,
) -> AsyncIOScheduler:
    """Создать планировщик с задачей renewal_alerts (не запуская его).

    При alerts.enabled=false планировщик создаётся пустым: ручной запуск
    через /api/alerts/run и --run-once при этом продолжают работать.

    Args:
        yaml_config: YAML-конфигурация.
        service: Сервис напоминаний, общий с API.

    Returns:
        AsyncIOScheduler в часовом поясе напоминаний.
    """
    alerts = yaml_config.alerts
    scheduler = AsyncIOScheduler(timezone=alerts.timezone)

    if not alerts.enabled:
        logger.info("Напоминания по расписанию отключены (alerts.enabled=false)")
        return scheduler

    # max_instances=1 и coalesce: пропущенные запуски схлопываются в один,
    # и два цикла по расписанию не пересекаются
    scheduler.add_job(
        process_renewal_alerts,
        trigger=CronTrigger.from_crontab(alerts.cadence, timezone=alerts.timezone),
        kwargs={"service": service},
        id=RENEWAL_ALERTS_JOB_ID,
        name=f"Напоминания о продлении ({alerts.cadence}, {alerts.timezone})",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=MISFIRE_GRACE_SECONDS,
    )
    return scheduler


def next_alert_run(scheduler: AsyncIOScheduler | None) -> datetime | None:
    """Время следующего запуска цикла или None, если запуска не будет."""
    if scheduler is None or not scheduler.running:
        return None
    job = scheduler.get_job(RENEWAL_ALERTS_JOB_ID)
    if job is None:
        return None
    return job.next_run_time


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Запустить планировщик, если он ещё не запущен."""
    if scheduler.running:
        logger.warning("Планировщик уже запущен")
        return

    scheduler.start()
    next_run = next_alert_run(scheduler)
    if next_run is None:
        logger.info("Планировщик запущен без задач")
    else:
        logger.info("Планировщик запущен, следующий цикл напоминаний: %s", next_run)


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    """Прекратить новые запуски по расписанию.

    wait=False: текущий цикл не ждём здесь, его останавливает
    RenewalAlertService.shutdown с учётом таймаута.
    """
    if not scheduler.running:
        logger.debug("Планировщик не запущен, остановка не нужна")
        return

    scheduler.shutdown(wait=False)
    logger.info("Планировщик остановлен")
