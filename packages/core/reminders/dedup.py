from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import List, Optional, Tuple

from ..storage.base import ReminderLogStore
from .clock import Clock, local_now
from .models import ExpiringItem, LogStatus, ReminderLogEntry

logger = logging.getLogger("expiry_reminders.dedup")


class ReminderLog:
    """Append-only record of reminder attempts, consulted before each send."""

    def __init__(self, store: ReminderLogStore, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock or local_now

    def today_window(self) -> Tuple[str, str]:
        today = self._clock().date()
        tomorrow = today + dt.timedelta(days=1)
        return f"{today.isoformat()}T00:00:00", f"{tomorrow.isoformat()}T00:00:00"

    def has_reminder_been_sent(self, item: ExpiringItem, offset_days: int) -> bool:
        start, end = self.today_window()
        try:
            return self._store.reminder_log_exists(
                item.category.value, item.id, offset_days, start, end
            )
        except Exception:
            # A missed reminder is worse than a duplicate one.
            logger.exception(
                "reminder_log_check_failed category=%s item_id=%s offset=%s",
                item.category.value,
                item.id,
                offset_days,
            )
            return False

    def record(
        self,
        item: ExpiringItem,
        offset_days: int,
        status: LogStatus,
        reminder_type: str,
        error_message: Optional[str] = None,
    ) -> Optional[ReminderLogEntry]:
        entry = ReminderLogEntry(
            id=str(uuid.uuid4()),
            reminder_type=reminder_type,
            item_id=item.id,
            category=item.category,
            offset_days=offset_days,
            expiry_date=item.expiry_date.isoformat(),
            recipient_email=item.recipient_email,
            recipient_name=item.recipient_name,
            status=status,
            sent_at=self._clock().isoformat(timespec="seconds"),
            error_message=error_message,
        )
        try:
            self._store.append_reminder_log(entry)
        except Exception:
            logger.exception(
                "reminder_log_write_failed category=%s item_id=%s offset=%s status=%s",
                item.category.value,
                item.id,
                offset_days,
                status.value,
            )
            return None
        return entry

    def list_entries(
        self,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
        limit: int = 200,
    ) -> List[ReminderLogEntry]:
        """List entries newest first.

        A date-only ``end_iso`` covers that whole day. Raises ValueError
        when it is not a valid date.
        """
        if end_iso and len(end_iso) == 10:
            end_iso = f"{dt.date.fromisoformat(end_iso).isoformat()}T23:59:59"
        return self._store.list_reminder_logs(start_iso=start_iso, end_iso=end_iso, limit=limit)
