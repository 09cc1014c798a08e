from .dedup import ReminderLog
from .models import (
    CheckResult,
    ExpiringItem,
    LogStatus,
    MessageTemplate,
    ReminderCategory,
    ReminderLogEntry,
    ReminderNotification,
    ReminderSettings,
)
from .resolvers import CategoryResolver, default_resolvers
from .runner import NotificationDispatcher, ReminderCheckRunner
from .settings import load_settings, normalize_offsets, save_settings

__all__ = [
    "CategoryResolver",
    "CheckResult",
    "ExpiringItem",
    "LogStatus",
    "MessageTemplate",
    "NotificationDispatcher",
    "ReminderCategory",
    "ReminderCheckRunner",
    "ReminderLog",
    "ReminderLogEntry",
    "ReminderNotification",
    "ReminderSettings",
    "default_resolvers",
    "load_settings",
    "normalize_offsets",
    "save_settings",
]
