"""Тесты для src/admin/auth.py.

Проверяет:
- Проверку X-Admin-Token
- Признание сессии оператора
- Вход в админку по логину и паролю
"""

from typing import Any
from unittest.mock import AsyncMock, Mock, patch

import pytest
from pydantic import SecretStr

from src.admin.auth import (
    SESSION_AUTH_KEY,
    AdminAuth,
    is_operator_session,
    is_valid_api_token,
)
from src.config.models import AdminSettings
from src.config.settings import settings

ADMIN = AdminSettings(
    username="operator",
    password=SecretStr("correct-horse"),
    api_token=SecretStr("token-123"),
)


def _request(
    session: dict[str, Any] | None = None,
    form: dict[str, str] | None = None,
) -> Mock:
    """Запрос Starlette с сессией и формой входа."""
    request = Mock()
    request.scope = {} if session is None else {"session": session}
    request.session = session if session is not None else {}
    request.form = AsyncMock(return_value=form or {})
    return request


class TestApiToken:
    """Тесты заголовка X-Admin-Token."""

    def test_valid_token(self) -> None:
        """Тест: токен совпадает с ADMIN__API_TOKEN."""
        with patch.object(settings, "admin", ADMIN):
            assert is_valid_api_token("token-123") is True

    @pytest.mark.parametrize("token", [None, "", "token-12"])
    def test_invalid_token(self, token: str | None) -> None:
        """Тест: пустой или неверный токен отклоняется."""
        with patch.object(settings, "admin", ADMIN):
            assert is_valid_api_token(token) is False

    def test_token_not_configured(self) -> None:
        """Тест: без ADMIN__API_TOKEN заголовок не принимается."""
        with patch.object(settings, "admin", AdminSettings()):
            assert is_valid_api_token("") is False
            assert is_valid_api_token("anything") is False


class TestOperatorSession:
    """Тесты сессии оператора."""

    def test_without_session_middleware(self) -> None:
        """Тест: без SessionMiddleware сессии нет."""
        assert is_operator_session(_request()) is False

    def test_logged_in(self) -> None:
        """Тест: после входа в сессии стоит флаг оператора."""
        assert is_operator_session(_request({SESSION_AUTH_KEY: True})) is True

    def test_anonymous(self) -> None:
        """Тест: пустая сессия, не оператор."""
        assert is_operator_session(_request({})) is False


class TestAdminAuth:
    """Тесты входа в админку."""

    @pytest.mark.asyncio
    async def test_login_success(self) -> None:
        """Тест: верные логин и пароль, флаг в сессии."""
        session: dict[str, Any] = {}
        form = {"username": "operator", "password": "correct-horse"}
        request = _request(session, form)

        with patch.object(settings, "admin", ADMIN):
            assert await AdminAuth(secret_key="k").login(request) is True

        assert session[SESSION_AUTH_KEY] is True

    @pytest.mark.asyncio
    async def test_login_wrong_password(self) -> None:
        """Тест: неверный пароль, вход отклонён."""
        session: dict[str, Any] = {}
        request = _request(session, {"username": "operator", "password": "wrong"})

        with patch.object(settings, "admin", ADMIN):
            assert await AdminAuth(secret_key="k").login(request) is False

        assert SESSION_AUTH_KEY not in session

    @pytest.mark.asyncio
    async def test_login_when_admin_disabled(self) -> None:
        """Тест: без ADMIN__USERNAME/PASSWORD вход невозможен."""
        request = _request({}, {"username": "", "password": ""})

        with patch.object(settings, "admin", AdminSettings()):
            assert await AdminAuth(secret_key="k").login(request) is False

    @pytest.mark.asyncio
    async def test_logout_clears_session(self) -> None:
        """Тест: выход очищает сессию."""
        session: dict[str, Any] = {SESSION_AUTH_KEY: True}

        assert await AdminAuth(secret_key="k").logout(_request(session)) is True
        assert session == {}
