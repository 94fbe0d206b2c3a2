"""ASGI-приложение сервиса напоминаний о продлении подписок.

    uvicorn src.main:app --host 0.0.0.0 --port 8000

или через CLI (он же умеет выполнить один цикл без сервера):

    python -m src
    python -m src --run-once

Логирование настраивается при импорте, до создания приложения:
сообщения о загрузке config.yaml и подключении к базе уже попадают
в data/logs/app.log.
"""

from src.app import create_app
from src.config.settings import settings
from src.config.yaml_config import yaml_config
from src.utils.logging import get_logger, setup_logging

setup_logging(
    level=settings.logging.level,
    timezone_name=settings.logging.timezone,
)

logger = get_logger(__name__)

alerts = yaml_config.alerts
if alerts.enabled:
    logger.info(
        "Напоминания за %d дн. по расписанию '%s' (%s)",
        alerts.lead_days,
        alerts.cadence,
        alerts.timezone,
    )
else:
    logger.info("Напоминания по расписанию отключены (alerts.enabled: false)")

app = create_app(settings, yaml_config)
