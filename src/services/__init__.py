"""Сервисы приложения.

Этот пакет содержит бизнес-логику приложения.

Сервисы:
- RenewalScanEngine: поиск подписок, о продлении которых пора напомнить.
- RenewalAlertService: цикл напоминаний: журнал, отправка, повторы, остановка.
- NotificationSender: отправка писем (SMTP или лог).
"""

from src.services.alert_service import (
    CycleSummary,
    RenewalAlertService,
    create_renewal_alert_service,
)
from src.services.notification import (
    DeliveryResult,
    NotificationSender,
    create_notification_sender,
)
from src.services.renewal_scan import RenewalScanEngine

__all__ = [
    "CycleSummary",
    "DeliveryResult",
    "NotificationSender",
    "RenewalAlertService",
    "RenewalScanEngine",
    "create_notification_sender",
    "create_renewal_alert_service",
]
