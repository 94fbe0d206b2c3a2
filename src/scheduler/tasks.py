"""Задачи планировщика.

Этот модуль содержит функции, которые периодически выполняются
планировщиком APScheduler:

1. process_renewal_alerts: цикл напоминаний о продлении подписок

Как работает цикл напоминаний:
1. По расписанию alerts.cadence (по умолчанию ежедневно в 09:00) запускается цикл
2. Находим активные подписки, продление которых в пределах alerts.lead_days дней
3. Пропускаем те, о которых уже напомнили (журнал renewal_alerts)
4. Отправляем письма, успешные отправки записываем в журнал
5. Неудачные отправки повторяются в следующих циклах
   (до alerts.max_cycle_attempts раз)

Важно: Задачи идемпотентны (безопасно запускать повторно) и не выбрасывают
исключения в APScheduler: ошибки цикла пишутся в лог, следующий запуск
по расписанию начинает заново.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from src.core.exceptions import SchedulerShuttingDownError, StoreUnavailableError
from src.utils.logging import get_logger

if TYPE_CHECKING:
    from src.services.alert_service import CycleSummary, RenewalAlertService

logger = get_logger(__name__)


async def process_renewal_alerts(
    service: RenewalAlertService,
) -> CycleSummary | None:
    """Выполнить цикл напоминаний по расписанию.

    Args:
        service: Сервис напоминаний.

    Returns:
        Итоги цикла или None, если цикл не выполнен.
    """
    logger.info("Запуск цикла напоминаний о продлении по расписанию...")

    try:
        return await service.run_cycle(trigger="schedule")
    except SchedulerShuttingDownError:
        logger.info("Сервис напоминаний останавливается, цикл пропущен")
    except StoreUnavailableError:
        # Подробности уже записаны сервисом (CYCLE_FAILED)
        logger.warning("Цикл напоминаний прерван, повтор при следующем запуске")
    except Exception:
        logger.exception("Непредвиденная ошибка в цикле напоминаний")
    return None
