"""Конфигурация сервиса.

Два источника:
- src.config.settings: секреты и подключения из окружения и .env;
- src.config.yaml_config: расписание, lead_days и шаблоны писем из config.yaml.

Пакет ничего не импортирует сам, чтобы тесты могли брать классы
из src.config.models, не читая .env.
"""
