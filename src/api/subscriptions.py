"""API эндпоинты для управления подписками.

Этот модуль содержит HTTP-эндпоинты дашборда:
- GET /api/subs/{user_id}: подписки пользователя
- POST /api/subs: добавить подписку
- PATCH /api/subs/{subscription_id}: переключить активна/на паузе
- DELETE /api/subs/{subscription_id}: удалить подписку

Поля в JSON: в camelCase (userId, userEmail, renewalDate),
как их отправляет клиент дашборда. snake_case тоже принимается.

Приостановленные подписки (active=false) не получают напоминаний.
"""

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.base import get_session
from src.db.repositories.subscription_repo import SubscriptionRepository
from src.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/subs", tags=["subscriptions"])

THandler = TypeVar("THandler", bound=Callable[..., Any])


def typed_get(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.get."""
    return router.get(*args, **kwargs)


def typed_post(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.post."""
    return router.post(*args, **kwargs)


def typed_patch(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.patch."""
    return router.patch(*args, **kwargs)


def typed_delete(*args: Any, **kwargs: Any) -> Callable[[THandler], THandler]:
    """Типизированный wrapper для router.delete."""
    return router.delete(*args, **kwargs)


# =============================================================================
# МОДЕЛИ ЗАПРОСОВ И ОТВЕТОВ
# =============================================================================


class SubscriptionCreate(BaseModel):
    """Данные новой подписки."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str = Field(min_length=1, max_length=255)
    user_email: EmailStr
    name: str = Field(min_length=1, max_length=255)
    cost: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    renewal_date: date
    category: str = Field(default="General", min_length=1, max_length=100)
    active: bool = True


class SubscriptionResponse(BaseModel):
    """Подписка в ответе API."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    id: int
    user_id: str
    user_email: str
    name: str
    cost: Decimal
    currency: str
    renewal_date: date
    category: str
    active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DeleteResponse(BaseModel):
    """Ответ на удаление подписки."""

    message: str


# =============================================================================
# ЭНДПОИНТЫ
# =============================================================================


@typed_get("/{user_id}")
async def list_user_subscriptions(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> list[SubscriptionResponse]:
    """Получить все подписки пользователя.

    Args:
        user_id: ID пользователя.
        session: Сессия БД.

    Returns:
        Подписки, отсортированные по дате продления.
    """
    repo = SubscriptionRepository(session)
    subscriptions = await repo.get_user_subscriptions(user_id)
    return [SubscriptionResponse.model_validate(sub) for sub in subscriptions]


@typed_post("", status_code=201)
async def create_subscription(
    payload: SubscriptionCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SubscriptionResponse:
    """Добавить подписку.

    Args:
        payload: Данные подписки.
        session: Сессия БД.

    Returns:
        Созданная подписка.
    """
    repo = SubscriptionRepository(session)
    subscription = await repo.create(
        user_id=payload.user_id,
        user_email=str(payload.user_email),
        name=payload.name,
        cost=payload.cost,
        renewal_date=payload.renewal_date,
        currency=payload.currency.upper(),
        category=payload.category,
        active=payload.active,
    )
    return SubscriptionResponse.model_validate(subscription)


@typed_patch("/{subscription_id}")
async def toggle_subscription(
    subscription_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SubscriptionResponse:
    """Переключить статус подписки (активна ↔ на паузе).

    Args:
        subscription_id: ID подписки.
        session: Сессия БД.

    Returns:
        Подписка с новым статусом.

    Raises:
        HTTPException: Если подписка не найдена.
    """
    repo = SubscriptionRepository(session)
    subscription = await repo.get_by_id(subscription_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail="Subscription not found")

    subscription = await repo.toggle_active(subscription)
    return SubscriptionResponse.model_validate(subscription)


@typed_delete("/{subscription_id}")
async def delete_subscription(
    subscription_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DeleteResponse:
    """Удалить подписку.

    Удаление несуществующей подписки не считается ошибкой.
    Записи журнала напоминаний при этом сохраняются.

    Args:
        subscription_id: ID подписки.
        session: Сессия БД.

    Returns:
        Сообщение о результате.
    """
    repo = SubscriptionRepository(session)
    await repo.delete(subscription_id)
    return DeleteResponse(message="Deleted successfully")
