"""Хранилище подписок и журнала напоминаний.

- models_base.py: Base для моделей, импорт без чтения настроек;
- models/: таблицы subscriptions и renewal_alerts;
- repositories/: запросы к ним;
- base.py: engine и сессии, читает настройки при первом подключении;
- migrations.py: сверка ревизии Alembic при старте.

Функции подключения импортируются напрямую из src.db.base, чтобы импорт
пакета в тестах не тянул за собой .env.
"""
