"""Тесты для API подписок дашборда.

Модуль тестирует:
- GET /api/subs/{user_id}: список подписок пользователя
- POST /api/subs: создание подписки (camelCase поля)
- PATCH /api/subs/{id}: пауза и возобновление
- DELETE /api/subs/{id}: удаление
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.subscriptions import router as subscriptions_router
from src.db.base import get_session
from src.db.models.subscription import Subscription
from src.db.repositories.subscription_repo import SubscriptionRepository

SubscriptionFactory = Callable[..., Awaitable[Subscription]]

# ==============================================================================
# ФИКСТУРЫ
# ==============================================================================


@pytest.fixture
def app(db_session: AsyncSession) -> FastAPI:
    """FastAPI app с роутером подписок на тестовой БД."""
    app = FastAPI()
    app.include_router(subscriptions_router)

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_session] = override_get_session
    return app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client для тестирования API."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ==============================================================================
# ТЕСТЫ
# ==============================================================================


class TestCreateSubscription:
    """Тесты POST /api/subs."""

    @pytest.mark.asyncio
    async def test_create_camel_case(
        self, client: AsyncClient, db_session: AsyncSession
    ) -> None:
        """Тест: подписка создаётся из camelCase полей дашборда."""
        response = await client.post(
            "/api/subs",
            json={
                "userId": "user-1",
                "userEmail": "user@example.com",
                "name": "Netflix",
                "cost": 15.99,
                "currency": "usd",
                "renewalDate": "2024-02-10",
                "category": "Entertainment",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["userId"] == "user-1"
        assert data["renewalDate"] == "2024-02-10"
        assert data["currency"] == "USD"
        assert data["active"] is True

        repo = SubscriptionRepository(db_session)
        stored = await repo.get_by_id(data["id"])
        assert stored is not None
        assert stored.user_email == "user@example.com"
        assert stored.renewal_date == date(2024, 2, 10)

    @pytest.mark.asyncio
    async def test_defaults(self, client: AsyncClient) -> None:
        """Тест: валюта и категория по умолчанию."""
        response = await client.post(
            "/api/subs",
            json={
                "userId": "user-1",
                "userEmail": "user@example.com",
                "name": "Spotify",
                "cost": "9.99",
                "renewalDate": "2024-03-01",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["currency"] == "USD"
        assert data["category"] == "General"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"userEmail": "not-an-email"},
            {"cost": -1},
            {"renewalDate": "someday"},
            {"currency": "DOLLARS"},
        ],
    )
    async def test_invalid_payload(
        self, client: AsyncClient, overrides: dict[str, object]
    ) -> None:
        """Тест: некорректные поля, 422."""
        payload: dict[str, object] = {
            "userId": "user-1",
            "userEmail": "user@example.com",
            "name": "Netflix",
            "cost": 15.99,
            "renewalDate": "2024-02-10",
        }
        payload.update(overrides)

        response = await client.post("/api/subs", json=payload)

        assert response.status_code == 422


class TestListSubscriptions:
    """Тесты GET /api/subs/{user_id}."""

    @pytest.mark.asyncio
    async def test_lists_user_subscriptions(
        self, client: AsyncClient, make_subscription: SubscriptionFactory
    ) -> None:
        """Тест: только подписки пользователя, ближайшие продления первыми."""
        later = await make_subscription(name="Later", renewal_date=date(2024, 5, 1))
        sooner = await make_subscription(name="Sooner", renewal_date=date(2024, 2, 1))
        await make_subscription(user_id="user-2", name="Foreign")

        response = await client.get("/api/subs/user-1")

        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [sooner.id, later.id]

    @pytest.mark.asyncio
    async def test_unknown_user(self, client: AsyncClient) -> None:
        """Тест: у неизвестного пользователя пустой список."""
        response = await client.get("/api/subs/nobody")

        assert response.status_code == 200
        assert response.json() == []


class TestToggleSubscription:
    """Тесты PATCH /api/subs/{id}."""

    @pytest.mark.asyncio
    async def test_pause_and_resume(
        self, client: AsyncClient, make_subscription: SubscriptionFactory
    ) -> None:
        """Тест: первый PATCH ставит на паузу, второй возобновляет."""
        subscription = await make_subscription()

        paused = await client.patch(f"/api/subs/{subscription.id}")
        resumed = await client.patch(f"/api/subs/{subscription.id}")

        assert paused.status_code == 200
        assert paused.json()["active"] is False
        assert resumed.json()["active"] is True

    @pytest.mark.asyncio
    async def test_not_found(self, client: AsyncClient) -> None:
        """Тест: несуществующая подписка, 404."""
        response = await client.patch("/api/subs/99999")

        assert response.status_code == 404
        assert response.json()["detail"] == "Subscription not found"


class TestDeleteSubscription:
    """Тесты DELETE /api/subs/{id}."""

    @pytest.mark.asyncio
    async def test_delete(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        make_subscription: SubscriptionFactory,
    ) -> None:
        """Тест: подписка удаляется."""
        subscription = await make_subscription()

        response = await client.delete(f"/api/subs/{subscription.id}")

        assert response.status_code == 200
        assert response.json() == {"message": "Deleted successfully"}
        repo = SubscriptionRepository(db_session)
        assert await repo.get_by_id(subscription.id) is None

    @pytest.mark.asyncio
    async def test_delete_missing(self, client: AsyncClient) -> None:
        """Тест: удаление несуществующей подписки не ошибка."""
        response = await client.delete("/api/subs/99999")

        assert response.status_code == 200
