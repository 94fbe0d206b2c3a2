"""Пути и неизменяемые значения сервиса напоминаний.

Всё, что зависит от расположения проекта на диске, собрано здесь:
база SQLite, логи, миграции, config.yaml и .env.
"""

from pathlib import Path

# ==============================================================================
# КОРЕНЬ ПРОЕКТА
# ==============================================================================

# src/config/constants.py -> src/config -> src -> корень
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# ==============================================================================
# ДАННЫЕ
# ==============================================================================

# В контейнере данные лежат на томе /data, локально в ./data
_CONTAINER_DATA = Path("/data")
DATA_DIR = _CONTAINER_DATA if _CONTAINER_DATA.exists() else PROJECT_ROOT / "data"
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Файл SQLite, если DATABASE__POSTGRES_URL не задан
SQLITE_DB_PATH = DATA_DIR / "alerts.db"

# Основной лог и отдельный журнал событий напоминаний
LOGS_DIR = DATA_DIR / "logs"
APP_LOG_FILENAME = "app.log"
ALERT_EVENTS_LOG_FILENAME = "alert_events.log"

# ==============================================================================
# КОНФИГУРАЦИЯ И МИГРАЦИИ
# ==============================================================================

CONFIG_YAML_PATH = PROJECT_ROOT / "config.yaml"

ENV_FILE = PROJECT_ROOT / ".env"

# Без .env настройки читаются только из переменных окружения
ENV_FILE_PATH: Path | None = ENV_FILE if ENV_FILE.exists() else None

MIGRATIONS_DIR = PROJECT_ROOT / "alembic"
