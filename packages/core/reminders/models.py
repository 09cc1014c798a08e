from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional


class ReminderCategory(str, Enum):
    SERVICE = "service"
    COMPANY_DOCUMENT = "company_document"
    INDIVIDUAL_DOCUMENT = "individual_document"
    EMPLOYEE_DOCUMENT = "employee_document"
    MONETARY_DUE = "monetary_due"


class LogStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


# Log rows for custom reminder dates are keyed on this offset.
CUSTOM_DATE_OFFSET = 0


@dataclass(frozen=True)
class MessageTemplate:
    subject: str = ""
    body: str = ""


@dataclass(frozen=True)
class ReminderSettings:
    reminder_type: str
    enabled: bool
    offsets: List[int]
    template: MessageTemplate = field(default_factory=MessageTemplate)


@dataclass(frozen=True)
class ExpiringItem:
    id: str
    category: ReminderCategory
    expiry_date: date
    recipient_email: Optional[str]
    recipient_name: str
    secondary_email: Optional[str] = None
    display_fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def recipients(self) -> List[str]:
        if not self.recipient_email:
            return []
        addresses = [self.recipient_email]
        if self.secondary_email and self.secondary_email.lower() != self.recipient_email.lower():
            addresses.append(self.secondary_email)
        return addresses


@dataclass(frozen=True)
class ReminderLogEntry:
    id: str
    reminder_type: str
    item_id: str
    category: ReminderCategory
    offset_days: int
    expiry_date: str
    recipient_email: Optional[str]
    recipient_name: str
    status: LogStatus
    sent_at: str
    error_message: Optional[str] = None


@dataclass(frozen=True)
class ReminderNotification:
    """Everything a dispatcher needs to render and send one reminder."""

    recipients: List[str]
    recipient_name: str
    category: ReminderCategory
    offset_days: int
    days_until_expiry: int
    expiry_date: date
    display_fields: Dict[str, Any]
    template: MessageTemplate


@dataclass(frozen=True)
class CheckResult:
    success: bool
    total_checked: int
    reminders_sent: int
    errors: int
    message: str

    @classmethod
    def failure(cls, exc: BaseException) -> "CheckResult":
        return cls(
            success=False,
            total_checked=0,
            reminders_sent=0,
            errors=1,
            message=f"Error: {exc}",
        )
