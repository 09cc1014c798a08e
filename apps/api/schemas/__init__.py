from .expiry_reminders import (
    CheckResultResponse,
    ReminderLogResponse,
    ReminderSettingsRequest,
    ReminderSettingsResponse,
    SchedulerStartRequest,
    SchedulerStatusResponse,
)

__all__ = [
    "CheckResultResponse",
    "ReminderLogResponse",
    "ReminderSettingsRequest",
    "ReminderSettingsResponse",
    "SchedulerStartRequest",
    "SchedulerStatusResponse",
]
