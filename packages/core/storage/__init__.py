from .base import (
    ExpiryRecordStore,
    ReminderLogStore,
    ReminderSettingsState,
    ReminderSettingsStore,
)
from .sqlite import SQLiteExpiryStore

__all__ = [
    "ExpiryRecordStore",
    "ReminderLogStore",
    "ReminderSettingsState",
    "ReminderSettingsStore",
    "SQLiteExpiryStore",
]
