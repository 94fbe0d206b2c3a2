"""Тесты для точки входа python -m src.

Проверяет:
- Разбор аргументов командной строки
- --run-once: итоги цикла в JSON и коды выхода
"""

import json
from collections.abc import Iterator
from datetime import date
from unittest.mock import AsyncMock, Mock, patch

import pytest
from sqlalchemy.exc import OperationalError

from src.__main__ import EXIT_CYCLE_FAILED, EXIT_OK, build_parser, main, run_once
from src.core.exceptions import StoreUnavailableError
from src.services.alert_service import CycleSummary, RenewalAlertService


def _summary() -> CycleSummary:
    """Итоги цикла для тестов."""
    return CycleSummary(
        cycle_id="abc",
        trigger="cli",
        today=date(2024, 2, 7),
        target_date=date(2024, 2, 10),
        due=1,
        sent=1,
    )


@pytest.fixture
def mock_service() -> Mock:
    """Мок сервиса напоминаний, подставляемый вместо реального."""
    service = Mock(spec=RenewalAlertService)
    service.run_cycle = AsyncMock(return_value=_summary())
    return service


@pytest.fixture
def patched_cli(mock_service: Mock) -> Iterator[AsyncMock]:
    """Подменить создание сервиса, логирование и закрытие БД."""
    with (
        patch(
            "src.app.lifecycle.ApplicationLifecycle.build_service",
            return_value=mock_service,
        ),
        patch("src.utils.logging.setup_logging"),
        patch("src.db.base.dispose_engine", new_callable=AsyncMock) as dispose,
    ):
        yield dispose


class TestBuildParser:
    """Тесты разбора аргументов."""

    def test_defaults(self) -> None:
        """Без аргументов, сервер на 0.0.0.0:8000."""
        args = build_parser().parse_args([])

        assert args.host == "0.0.0.0"  # noqa: S104
        assert args.port == 8000
        assert args.run_once is False
        assert args.today is None

    def test_run_once_with_today(self) -> None:
        """--today разбирается в date."""
        args = build_parser().parse_args(["--run-once", "--today", "2024-02-07"])

        assert args.run_once is True
        assert args.today == date(2024, 2, 7)

    def test_invalid_today(self) -> None:
        """Некорректная дата, ошибка argparse."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--run-once", "--today", "07.02.2024"])

    def test_today_requires_run_once(self) -> None:
        """--today без --run-once, ошибка."""
        with (
            patch("sys.argv", ["src", "--today", "2024-02-07"]),
            pytest.raises(SystemExit) as exc_info,
        ):
            main()

        assert exc_info.value.code == 2


class TestRunOnce:
    """Тесты разового цикла."""

    @pytest.mark.asyncio
    @pytest.mark.usefixtures("patched_cli")
    async def test_prints_summary(
        self, mock_service: Mock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Итоги печатаются в JSON, код выхода 0."""
        code = await run_once(date(2024, 2, 7))

        assert code == EXIT_OK
        mock_service.run_cycle.assert_awaited_once_with(
            today=date(2024, 2, 7), trigger="cli"
        )
        output = json.loads(capsys.readouterr().out)
        assert output["sent"] == 1
        assert output["target_date"] == "2024-02-10"

    @pytest.mark.asyncio
    async def test_store_unavailable(
        self,
        mock_service: Mock,
        patched_cli: AsyncMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Хранилище недоступно, код выхода 1, БД всё равно закрывается."""
        mock_service.run_cycle.side_effect = StoreUnavailableError(
            "find_due_subscriptions",
            OperationalError("SELECT 1", {}, Exception("connection refused")),
        )

        code = await run_once()

        assert code == EXIT_CYCLE_FAILED
        assert "Цикл прерван" in capsys.readouterr().err
        patched_cli.assert_awaited_once()
