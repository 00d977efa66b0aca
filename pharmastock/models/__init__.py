# pharmastock/models/__init__.py
from .inventory import Drug, Batch
from .sales import Sale, SaleLine, SaleStatus
from .notification import Notification, NotificationType, NotificationSeverity
from .idempotency import IdempotencyRecord, IdempotencyStatus
from .audit import AuditLog
from .general_config import GeneralConfig

__all__ = [
    "Drug",
    "Batch",
    "Sale",
    "SaleLine",
    "SaleStatus",
    "Notification",
    "NotificationType",
    "NotificationSeverity",
    "IdempotencyRecord",
    "IdempotencyStatus",
    "AuditLog",
    "GeneralConfig",
]
