"""Разделы админки: подписки и журнал напоминаний.

Подписки можно править и ставить на паузу пачкой. Журнал только для чтения:
его пишет цикл напоминаний, а оператор ищет в нём недоставленные письма.
"""

# ruff: noqa: RUF012, S704

from typing import Any
from urllib.parse import urlencode

from markupsafe import Markup
from sqladmin import ModelView, action
from sqladmin.filters import BooleanFilter
from starlette.requests import Request
from starlette.responses import RedirectResponse

from src.config.settings import settings
from src.db.base import DatabaseSession
from src.db.models.renewal_alert import AlertStatus, RenewalAlert
from src.db.models.subscription import Subscription
from src.utils.timezone import format_datetime

ADMIN_TIMEZONE = settings.logging.timezone

ALERT_STATUS_LABELS = {
    AlertStatus.CLAIMED: "Отправляется",
    AlertStatus.SENT: "Отправлено",
    AlertStatus.FAILED: "Ошибка",
}

# Классы бейджей Bootstrap
ALERT_STATUS_COLORS = {
    AlertStatus.CLAIMED: "warning",
    AlertStatus.SENT: "success",
    AlertStatus.FAILED: "danger",
}

DETAIL_DATETIME_FORMAT = "%d.%m.%Y %H:%M:%S"


# =============================================================================
# ФИЛЬТРЫ
# =============================================================================


class AlertStatusFilter:
    """Фильтр журнала напоминаний по статусу."""

    has_operator = False
    title = "Статус напоминания"
    parameter_name = "alert_status"

    async def lookups(
        self, request: Any, model: Any, run_query: Any
    ) -> list[tuple[str, str]]:
        return [
            ("all", "Все"),
            (AlertStatus.SENT.name, "Отправленные"),
            (AlertStatus.FAILED.name, "С ошибкой"),
            (AlertStatus.CLAIMED.name, "Отправляются"),
        ]

    async def get_filtered_query(self, query: Any, value: str, model: Any) -> Any:
        if value != "all":
            return query.where(RenewalAlert.status == AlertStatus[value])
        return query


# =============================================================================
# ФОРМАТТЕРЫ
# =============================================================================


def format_alert_status(model: RenewalAlert, attr: Any) -> Markup:
    """Статус записи журнала цветным бейджем."""
    status = AlertStatus(model.status)
    label = ALERT_STATUS_LABELS.get(status, model.status)
    color = ALERT_STATUS_COLORS.get(status, "secondary")
    return Markup(f'<span class="badge bg-{color}">{label}</span>')


def _format_optional_datetime(value: Any, fmt: str | None = None) -> str:
    """Время из БД в поясе админки или прочерк."""
    if value is None:
        return "-"
    if fmt is None:
        return format_datetime(value, ADMIN_TIMEZONE)
    return format_datetime(value, ADMIN_TIMEZONE, fmt=fmt)


def _with_flash(url: str, msg: str, msg_type: str = "info") -> str:
    """URL списка с сообщением о результате действия (старые msg отбрасываются)."""
    params = urlencode({"msg": msg, "msg_type": msg_type})
    return f"{url.partition('?')[0]}?{params}"


# =============================================================================
# ПОДПИСКИ
# =============================================================================


class SubscriptionAdmin(ModelView, model=Subscription):
    """Подписки пользователей.

    Пауза (active=False) исключает подписку из напоминаний, поэтому
    для неё есть отдельные действия над выбранными строками.
    """

    name = "Подписка"
    name_plural = "Подписки"

    icon = "fa-solid fa-rotate"

    column_labels = {
        Subscription.id: "ID",
        Subscription.user_id: "ID пользователя",
        Subscription.user_email: "Email",
        Subscription.name: "Сервис",
        Subscription.cost: "Стоимость",
        Subscription.currency: "Валюта",
        Subscription.renewal_date: "Дата продления",
        Subscription.category: "Категория",
        Subscription.active: "Активна",
        Subscription.created_at: "Дата создания",
        Subscription.updated_at: "Дата обновления",
    }

    column_list = [
        Subscription.id,
        Subscription.user_id,
        Subscription.name,
        Subscription.cost,
        Subscription.currency,
        Subscription.renewal_date,
        Subscription.category,
        Subscription.active,
    ]

    column_searchable_list = [
        Subscription.name,
        Subscription.user_id,
        Subscription.user_email,
    ]

    column_search_placeholder = "Поиск по сервису, ID пользователя или email"

    # Сортировка по умолчанию (ближайшие продления первыми)
    column_default_sort = [(Subscription.renewal_date, False)]

    column_sortable_list = [
        Subscription.id,
        Subscription.name,
        Subscription.cost,
        Subscription.renewal_date,
        Subscription.active,
    ]

    column_filters = [
        BooleanFilter(Subscription.active, "Активна"),
    ]

    column_formatters = {
        Subscription.active: lambda m, a: "Да" if m.active else "На паузе",
        Subscription.renewal_date: lambda m, a: m.renewal_date.strftime("%d.%m.%Y"),
    }

    column_formatters_detail = {
        Subscription.active: lambda m, a: "Да" if m.active else "На паузе",
        Subscription.created_at: lambda m, a: _format_optional_datetime(
            m.created_at, DETAIL_DATETIME_FORMAT
        ),
        Subscription.updated_at: lambda m, a: _format_optional_datetime(
            m.updated_at, DETAIL_DATETIME_FORMAT
        ),
    }

    form_columns = [
        Subscription.user_id,
        Subscription.user_email,
        Subscription.name,
        Subscription.cost,
        Subscription.currency,
        Subscription.renewal_date,
        Subscription.category,
        Subscription.active,
    ]

    page_size = 50
    page_size_options = [25, 50, 100, 200]

    can_export = True
    export_types = ["csv"]

    async def _set_active(self, request: Request, active: bool) -> RedirectResponse:
        """Установить active для выбранных подписок и вернуться к списку."""
        pks_param = request.query_params.get("pks", "")
        pks: list[str] = [pk.strip() for pk in pks_param.split(",") if pk.strip()]

        changed_count = 0

        async with DatabaseSession() as session:
            for pk in pks:
                try:
                    subscription = await session.get(Subscription, int(pk))
                except (ValueError, TypeError):
                    continue
                if subscription and subscription.active != active:
                    subscription.active = active
                    changed_count += 1

            await session.commit()

        referer = request.headers.get("Referer", "")
        list_url = str(request.url_for("admin:list", identity=self.identity))
        redirect_url = referer or list_url

        verb = "Возобновлено" if active else "Приостановлено"
        if changed_count > 0:
            msg = f"{verb} подписок: {changed_count}"
            redirect_url = _with_flash(redirect_url, msg, "success")
        else:
            msg = "Нет подписок для изменения (статус уже такой или не найдены)"
            redirect_url = _with_flash(redirect_url, msg, "warning")

        return RedirectResponse(redirect_url, status_code=302)

    @action(
        name="pause_subscriptions",
        label="⏸ Приостановить",
        confirmation_message="Приостановить выбранные подписки? "
        "Напоминания о продлении по ним отправляться не будут.",
        add_in_detail=True,
        add_in_list=True,
    )
    async def action_pause(self, request: Request) -> RedirectResponse:
        """Приостановить выбранные подписки (active=False)."""
        return await self._set_active(request, active=False)

    @action(
        name="resume_subscriptions",
        label="▶ Возобновить",
        confirmation_message="Возобновить выбранные подписки?",
        add_in_detail=True,
        add_in_list=True,
    )
    async def action_resume(self, request: Request) -> RedirectResponse:
        """Возобновить выбранные подписки (active=True)."""
        return await self._set_active(request, active=True)


# =============================================================================
# ЖУРНАЛ НАПОМИНАНИЙ
# =============================================================================


class RenewalAlertAdmin(ModelView, model=RenewalAlert):
    """Журнал напоминаний (только просмотр).

    Только просмотр: журнал изменяет исключительно цикл напоминаний.
    Записи со статусом FAILED и исчерпанным лимитом циклов требуют
    внимания оператора.
    """

    name = "Напоминание"
    name_plural = "Журнал напоминаний"
    icon = "fa-solid fa-bell"

    column_labels = {
        RenewalAlert.id: "ID",
        RenewalAlert.subscription_id: "ID подписки",
        RenewalAlert.renewal_date: "Дата продления",
        RenewalAlert.status: "Статус",
        RenewalAlert.recipient: "Получатель",
        RenewalAlert.claim_token: "ID цикла",
        RenewalAlert.claimed_at: "Захвачено",
        RenewalAlert.notified_at: "Отправлено",
        RenewalAlert.cycle_attempts: "Циклов",
        RenewalAlert.last_error: "Последняя ошибка",
        RenewalAlert.created_at: "Дата создания",
        RenewalAlert.updated_at: "Дата обновления",
    }

    column_list = [
        RenewalAlert.id,
        RenewalAlert.subscription_id,
        RenewalAlert.renewal_date,
        RenewalAlert.status,
        RenewalAlert.recipient,
        RenewalAlert.cycle_attempts,
        RenewalAlert.notified_at,
    ]

    column_searchable_list = [
        RenewalAlert.recipient,
        RenewalAlert.claim_token,
    ]
    column_search_placeholder = "Поиск по получателю или ID цикла"

    column_default_sort = [(RenewalAlert.created_at, True)]

    column_sortable_list = [
        RenewalAlert.id,
        RenewalAlert.subscription_id,
        RenewalAlert.renewal_date,
        RenewalAlert.cycle_attempts,
        RenewalAlert.notified_at,
    ]

    column_filters = [AlertStatusFilter()]

    column_formatters = {
        RenewalAlert.status: format_alert_status,
        RenewalAlert.notified_at: lambda m, a: _format_optional_datetime(m.notified_at),
    }

    column_formatters_detail = {
        RenewalAlert.status: format_alert_status,
        RenewalAlert.claimed_at: lambda m, a: _format_optional_datetime(
            m.claimed_at, DETAIL_DATETIME_FORMAT
        ),
        RenewalAlert.notified_at: lambda m, a: _format_optional_datetime(
            m.notified_at, DETAIL_DATETIME_FORMAT
        ),
        RenewalAlert.created_at: lambda m, a: _format_optional_datetime(
            m.created_at, DETAIL_DATETIME_FORMAT
        ),
        RenewalAlert.updated_at: lambda m, a: _format_optional_datetime(
            m.updated_at, DETAIL_DATETIME_FORMAT
        ),
        RenewalAlert.last_error: lambda m, a: m.last_error or "-",
    }

    # Журнал ведёт только цикл напоминаний
    can_create = False
    can_edit = False
    can_delete = False

    page_size = 50
    page_size_options = [25, 50, 100, 200]

    can_export = True
    export_types = ["csv"]
