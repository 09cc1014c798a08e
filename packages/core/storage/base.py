from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..reminders.models import ReminderLogEntry


@dataclass(frozen=True)
class ReminderSettingsState:
    reminder_type: str
    enabled: bool
    offsets: List[int]
    subject_template: str
    body_template: str
    updated_at: str


@runtime_checkable
class ReminderSettingsStore(Protocol):
    def get_reminder_settings(self, reminder_type: str) -> Optional[ReminderSettingsState]:
        """Return the settings record for a reminder type, or None if absent."""

    def upsert_reminder_settings(self, settings: ReminderSettingsState) -> None:
        """Insert or replace the settings record for its reminder type."""


@runtime_checkable
class ExpiryRecordStore(Protocol):
    def list_expiring(self, category: str, on_date: str) -> List[Dict[str, Any]]:
        """Rows of a category whose expiry/due date equals on_date (YYYY-MM-DD)."""

    def list_custom_dated(self, category: str, on_date: str) -> List[Dict[str, Any]]:
        """Rows of a category whose custom reminder dates include on_date."""

    def list_custom_interval(self, category: str) -> List[Dict[str, Any]]:
        """Rows of a category that carry their own reminder intervals."""


@runtime_checkable
class ReminderLogStore(Protocol):
    def reminder_log_exists(
        self,
        category: str,
        item_id: str,
        offset_days: int,
        start_iso: str,
        end_iso: str,
    ) -> bool:
        """True if an entry for the key was written in [start_iso, end_iso)."""

    def append_reminder_log(self, entry: ReminderLogEntry) -> None:
        """Append a log entry. Entries are never updated."""

    def list_reminder_logs(
        self,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
        limit: int = 200,
    ) -> List[ReminderLogEntry]:
        """List entries newest first."""
