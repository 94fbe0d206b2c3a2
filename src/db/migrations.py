"""Сверка ревизии базы с alembic/versions при старте сервиса.

Сервис миграции не применяет. Если таблиц журнала напоминаний ещё нет
или схема устарела, цикл упадёт на первом запросе, поэтому при старте
об этом пишется заметное предупреждение с командой для исправления.
"""

from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from alembic.util.exc import CommandError
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine

from src.config.constants import MIGRATIONS_DIR
from src.utils.logging import get_logger

logger = get_logger(__name__)

UPGRADE_HINT = "   Выполните: alembic upgrade head"


def get_head_revision(script_location: Path = MIGRATIONS_DIR) -> str | None:
    """Последняя ревизия в alembic/versions или None, если миграций нет.

    При нескольких head (ветвление миграций) берётся первая по имени,
    а о ветвлении пишется предупреждение.
    """
    if not (script_location / "versions").exists():
        logger.warning("Папка миграций не найдена: %s", script_location)
        return None

    config = Config()
    config.set_main_option("script_location", str(script_location))
    script = ScriptDirectory.from_config(config)

    try:
        return script.get_current_head()
    except CommandError:
        heads = sorted(script.get_heads())
        logger.warning("Несколько head-ревизий: %s", heads)
        return heads[0] if heads else None


def _read_revision(connection: Connection) -> str | None:
    return MigrationContext.configure(connection).get_current_revision()


async def get_current_revision(engine: AsyncEngine) -> str | None:
    """Ревизия из таблицы alembic_version или None, если миграций не было."""
    async with engine.connect() as conn:
        return await conn.run_sync(_read_revision)


async def check_migrations(engine: AsyncEngine) -> bool:
    """Предупредить в лог, если схема базы не совпадает с head.

    Args:
        engine: Engine хранилища.

    Returns:
        True, если база на последней ревизии.
    """
    head = get_head_revision()
    if head is None:
        logger.warning("⚠️  Файлы миграций не найдены (alembic/versions)")
        return False

    current = await get_current_revision(engine)
    if current is None:
        logger.warning(
            "⚠️  МИГРАЦИИ НЕ ПРИМЕНЕНЫ! Таблиц подписок и журнала нет.\n%s",
            UPGRADE_HINT,
        )
        return False

    if current != head:
        logger.warning(
            "⚠️  МИГРАЦИИ НЕ АКТУАЛЬНЫ: в базе %s, последняя %s\n%s",
            current,
            head,
            UPGRADE_HINT,
        )
        return False

    logger.debug("Схема базы актуальна (ревизия %s)", current)
    return True
