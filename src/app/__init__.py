"""FastAPI-приложение сервиса и его жизненный цикл (планировщик, engine)."""

from src.app.factory import create_app
from src.app.lifecycle import ApplicationLifecycle

__all__ = [
    "ApplicationLifecycle",
    "create_app",
]
