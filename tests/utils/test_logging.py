"""Тесты для src/utils/logging.py.

Проверяет:
- AlertEventFilter пропускает только события для оператора
- ColoredFormatter убирает префикс src., помечает события и не портит запись
"""

import logging

import pytest

from src.utils.logging import AlertEventFilter, ColoredFormatter


def _record(
    name: str = "src.services.alert_service", **extra: object
) -> logging.LogRecord:
    """Создать запись лога с дополнительными полями."""
    record = logging.LogRecord(
        name=name,
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg="message",
        args=None,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestAlertEventFilter:
    """Тесты фильтра событий для оператора."""

    @pytest.mark.parametrize(
        "event", ["CYCLE_FAILED", "DELIVERY_FAILED", "RECONCILIATION_NEEDED"]
    )
    def test_passes_alert_events(self, event: str) -> None:
        """Запись с alert_event попадает в файл событий."""
        assert AlertEventFilter().filter(_record(alert_event=event)) is True

    def test_drops_regular_records(self) -> None:
        """Обычная запись в файл событий не попадает."""
        assert AlertEventFilter().filter(_record()) is False


class TestColoredFormatter:
    """Тесты цветного форматтера."""

    def test_strips_src_prefix(self) -> None:
        """Префикс src. убирается только в выводе."""
        formatter = ColoredFormatter("%(name)s | %(message)s", use_colors=False)
        record = _record()

        assert formatter.format(record) == "services.alert_service | message"
        assert record.name == "src.services.alert_service"

    def test_colors_level(self) -> None:
        """Уровень выделяется ANSI-цветом."""
        formatter = ColoredFormatter("%(asctime)s | %(levelname)s | %(message)s")

        assert "\033[31mERROR\033[0m" in formatter.format(_record())

    def test_highlights_alert_event(self) -> None:
        """Событие для оператора выделяется жирным, исходная запись не меняется."""
        formatter = ColoredFormatter("%(message)s")
        record = _record(alert_event="DELIVERY_FAILED")

        assert formatter.format(record) == "\033[1mmessage\033[0m"
        assert record.msg == "message"
