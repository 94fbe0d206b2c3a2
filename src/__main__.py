"""Entry point для запуска через python -m src.

По умолчанию запускает uvicorn сервер с FastAPI приложением
и планировщиком напоминаний.

С флагом --run-once выполняет один цикл напоминаний без сервера
(тот же цикл, что и по расписанию), печатает итоги в JSON и завершается.
Удобно для запуска из внешнего cron или вручную.

Использование:
    python -m src                            # Production mode (без hot-reload)
    python -m src --dev                      # Development mode (с hot-reload)
    python -m src --run-once                 # Один цикл напоминаний
    python -m src --run-once --today 2024-02-07
    python -m src --help                     # Показать справку

Коды выхода --run-once:
    0: цикл выполнен
    1: хранилище недоступно или сервис останавливается
"""

import argparse
import asyncio
import json
import sys
from datetime import date

import uvicorn

EXIT_OK = 0
EXIT_CYCLE_FAILED = 1


def _parse_date(value: str) -> date:
    """Разобрать дату в формате YYYY-MM-DD для argparse."""
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(
            f"Некорректная дата {value!r}, ожидается YYYY-MM-DD"
        ) from e


def build_parser() -> argparse.ArgumentParser:
    """Создать парсер аргументов командной строки."""
    parser = argparse.ArgumentParser(
        description="Renewal Alerts: напоминания о продлении подписок",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Примеры:
    python -m src                            # Production mode
    python -m src --dev                      # Development mode с hot-reload
    python -m src --port 3000                # Указать кастомный порт
    python -m src --run-once                 # Один цикл напоминаний
    python -m src --run-once --today 2024-02-07
        """,
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Включить hot-reload для разработки",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Хост для сервера (по умолчанию: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Порт для сервера (по умолчанию: 8000)",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Выполнить один цикл напоминаний и завершиться",
    )
    parser.add_argument(
        "--today",
        type=_parse_date,
        default=None,
        help="«Сегодня» для --run-once (YYYY-MM-DD, по умолчанию текущая дата)",
    )
    return parser


async def run_once(today: date | None = None) -> int:
    """Выполнить один цикл напоминаний и напечатать итоги.

    Args:
        today: «Сегодня» для цикла (по умолчанию текущая дата
            в часовом поясе планировщика).

    Returns:
        Код выхода процесса.
    """
    from src.app.lifecycle import ApplicationLifecycle
    from src.config.settings import settings
    from src.config.yaml_config import yaml_config
    from src.core.exceptions import SchedulerShuttingDownError, StoreUnavailableError
    from src.db.base import dispose_engine
    from src.utils.logging import setup_logging

    setup_logging(
        level=settings.logging.level,
        timezone_name=settings.logging.timezone,
    )

    service = ApplicationLifecycle(settings, yaml_config).build_service()
    try:
        summary = await service.run_cycle(today=today, trigger="cli")
    except StoreUnavailableError as e:
        print(f"Цикл прерван: {e}", file=sys.stderr)
        if e.summary is not None:
            print(json.dumps(e.summary.to_dict(), ensure_ascii=False, indent=2))
        return EXIT_CYCLE_FAILED
    except SchedulerShuttingDownError as e:
        print(str(e), file=sys.stderr)
        return EXIT_CYCLE_FAILED
    finally:
        await dispose_engine()

    print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))
    return EXIT_OK


def main() -> None:
    """Запустить приложение через uvicorn или выполнить один цикл."""
    parser = build_parser()
    args = parser.parse_args()

    if args.today is not None and not args.run_once:
        parser.error("--today используется только вместе с --run-once")

    if args.run_once:
        sys.exit(asyncio.run(run_once(args.today)))

    if args.dev:
        # Development mode с hot-reload
        uvicorn.run(
            "src.main:app",
            host=args.host,
            port=args.port,
            reload=True,
            reload_includes=["src/**/*.py", "config.yaml"],
            reload_excludes=[".venv/**", "data/**", "tests/**", ".git/**"],
        )
    else:
        # Production mode без hot-reload
        uvicorn.run(
            "src.main:app",
            host=args.host,
            port=args.port,
            reload=False,
        )


if __name__ == "__main__":
    main()
