"""Админка SQLAdmin: подписки и журнал напоминаний.

Оператор видит, кому и когда ушло напоминание, какие письма не дошли,
и может приостановить или возобновить подписки.
"""

from src.admin.setup import setup_admin

__all__ = ["setup_admin"]
