from __future__ import annotations

import datetime as dt

from packages.core.reminders.dedup import ReminderLog
from packages.core.reminders.models import ExpiringItem, LogStatus, ReminderCategory
from packages.core.storage.sqlite import SQLiteExpiryStore


def _item(item_id="sb-1", category=ReminderCategory.SERVICE):
    return ExpiringItem(
        id=item_id,
        category=category,
        expiry_date=dt.date(2024, 6, 8),
        recipient_email="ops@acme.test",
        recipient_name="Acme LLC",
    )


def test_today_window_spans_one_calendar_day():
    log = ReminderLog(store=None, clock=lambda: dt.datetime(2024, 6, 30, 23, 59, 59))
    assert log.today_window() == ("2024-06-30T00:00:00", "2024-07-01T00:00:00")


def test_dedup_is_scoped_to_today_offset_and_category(tmp_path):
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))
    now = {"value": dt.datetime(2024, 6, 1, 9, 0, 0)}
    log = ReminderLog(store, clock=lambda: now["value"])

    entry = log.record(_item(), 7, LogStatus.FAILED, "service_expiry", error_message="bounced")

    assert entry.sent_at == "2024-06-01T09:00:00"
    assert log.has_reminder_been_sent(_item(), 7) is True
    assert log.has_reminder_been_sent(_item(), 3) is False
    assert log.has_reminder_been_sent(_item(category=ReminderCategory.COMPANY_DOCUMENT), 7) is False

    now["value"] = dt.datetime(2024, 6, 2, 0, 0, 0)
    assert log.has_reminder_been_sent(_item(), 7) is False


def test_store_failures_do_not_raise():
    class BrokenStore:
        def reminder_log_exists(self, *args):
            raise RuntimeError("read failed")

        def append_reminder_log(self, entry):
            raise RuntimeError("write failed")

    log = ReminderLog(BrokenStore(), clock=lambda: dt.datetime(2024, 6, 1, 9, 0, 0))

    assert log.has_reminder_been_sent(_item(), 7) is False
    assert log.record(_item(), 7, LogStatus.SENT, "service_expiry") is None


def test_list_entries_filters_and_orders_newest_first(tmp_path):
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))
    now = {"value": dt.datetime(2024, 6, 1, 9, 0, 0)}
    log = ReminderLog(store, clock=lambda: now["value"])
    log.record(_item("a"), 7, LogStatus.SENT, "service_expiry")
    now["value"] = dt.datetime(2024, 6, 3, 9, 0, 0)
    log.record(_item("b"), 3, LogStatus.SENT, "service_expiry")

    assert [entry.item_id for entry in log.list_entries()] == ["b", "a"]
    assert [entry.item_id for entry in log.list_entries(start_iso="2024-06-02")] == ["b"]
    assert [entry.item_id for entry in log.list_entries(limit=1)] == ["b"]
