"""Логирование и работа с часовыми поясами."""
