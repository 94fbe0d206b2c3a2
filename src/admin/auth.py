"""Доступ оператора: вход в админку и вызовы /api/alerts.

Оператор подтверждает себя одним из двух способов:
- логин и пароль из ADMIN__USERNAME / ADMIN__PASSWORD, после входа
  в админку в подписанной cookie-сессии ставится SESSION_AUTH_KEY;
- заголовок X-Admin-Token, равный ADMIN__API_TOKEN (для cron и CI).

Все сравнения секретов идут через secrets.compare_digest.
"""

import secrets

from pydantic import SecretStr
from sqladmin.authentication import AuthenticationBackend
from starlette.requests import Request
from typing_extensions import override

from src.config.settings import settings
from src.utils.logging import get_logger

logger = get_logger(__name__)

SESSION_AUTH_KEY = "admin_authenticated"

# Один ключ на процесс: SQLAdmin и SessionMiddleware должны подписывать одинаково
_generated_secret_key: str | None = None


def _matches_secret(given: object, expected: SecretStr | str | None) -> bool:
    """Сравнить значение с секретом за постоянное время.

    Незаданный секрет не совпадает ни с чем, даже с пустой строкой.
    """
    if expected is None:
        return False
    if isinstance(expected, SecretStr):
        expected = expected.get_secret_value()
    return secrets.compare_digest(str(given or ""), expected)


def is_valid_api_token(token: str | None) -> bool:
    """Проверить заголовок X-Admin-Token."""
    return bool(token) and _matches_secret(token, settings.admin.api_token)


def is_operator_session(request: Request) -> bool:
    """Есть ли в запросе сессия вошедшего оператора.

    Сессия существует, только если подключён SessionMiddleware,
    то есть админка включена.
    """
    if "session" not in request.scope:
        return False
    return bool(request.session.get(SESSION_AUTH_KEY, False))


class AdminAuth(AuthenticationBackend):
    """Вход в SQLAdmin по логину и паролю из настроек."""

    @override
    async def login(self, request: Request) -> bool:
        if not settings.admin.is_enabled:
            return False

        form = await request.form()
        # Проверяем оба поля, чтобы время ответа не выдавало верный логин
        username_ok = _matches_secret(form.get("username"), settings.admin.username)
        password_ok = _matches_secret(form.get("password"), settings.admin.password)

        if username_ok and password_ok:
            request.session.update({SESSION_AUTH_KEY: True})
            logger.info("Оператор вошёл в админку")
            return True

        logger.warning("Неудачная попытка входа в админку")
        return False

    @override
    async def logout(self, request: Request) -> bool:
        request.session.clear()
        return True

    @override
    async def authenticate(self, request: Request) -> bool:
        return is_operator_session(request)


def get_admin_secret_key() -> str:
    """Ключ подписи cookie-сессий.

    Без ADMIN__SECRET_KEY ключ генерируется при старте процесса,
    и после перезапуска оператору придётся войти заново.
    """
    global _generated_secret_key

    if settings.admin.secret_key:
        return settings.admin.secret_key.get_secret_value()
    if _generated_secret_key is None:
        _generated_secret_key = secrets.token_urlsafe(32)
        logger.info("ADMIN__SECRET_KEY не задан, ключ сессий сгенерирован")
    return _generated_secret_key


def get_admin_auth() -> AdminAuth:
    """Backend аутентификации SQLAdmin с ключом подписи процесса."""
    return AdminAuth(secret_key=get_admin_secret_key())
