import sqlite3

import pytest

from packages.core.storage.sqlite import SQLiteExpiryStore


def test_employee_document_rows_nest_relations(tmp_path):
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))
    store.insert_record("companies", {"id": "co-1", "company_name": "Acme", "email1": "hr@acme.test"})
    store.insert_record("employees", {"id": "em-1", "name": "Omar", "company_id": "co-1"})
    store.insert_record(
        "employee_documents",
        {"id": "ed-1", "employee_id": "em-1", "name": "Visa", "expiry_date": "2024-06-08"},
    )
    store.insert_record(
        "employee_documents",
        {
            "id": "ed-2",
            "employee_id": "em-1",
            "name": "Old Visa",
            "expiry_date": "2024-06-08",
            "status": "expired",
        },
    )

    rows = store.list_expiring("employee_document", "2024-06-08")

    assert [row["id"] for row in rows] == ["ed-1"]
    assert rows[0]["employee"]["name"] == "Omar"
    assert rows[0]["employee"]["company"]["email1"] == "hr@acme.test"
    assert rows[0]["service_type"] is None


def test_insert_record_rejects_unknown_tables_and_columns(tmp_path):
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))

    with pytest.raises(ValueError):
        store.insert_record("email_reminder_logs", {"id": "x"})
    with pytest.raises(ValueError):
        store.insert_record("companies", {"id": "co-1", "company_name": "A", "fax": "1"})


def test_unknown_category_raises(tmp_path):
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))
    with pytest.raises(ValueError):
        store.list_expiring("cards", "2024-06-08")


def test_list_custom_interval_returns_only_rows_with_intervals(tmp_path):
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))
    store.insert_record("companies", {"id": "co-1", "company_name": "Acme"})
    for billing_id, intervals in (("sb-1", "10, 5"), ("sb-2", None), ("sb-3", "  ")):
        store.insert_record(
            "service_billings",
            {
                "id": billing_id,
                "company_id": "co-1",
                "expiry_date": "2024-06-11",
                "custom_reminder_intervals": intervals,
            },
        )

    rows = store.list_custom_interval("service")

    assert [row["id"] for row in rows] == ["sb-1"]
    assert rows[0]["custom_reminder_intervals"] == "10, 5"
    assert rows[0]["company"]["company_name"] == "Acme"


def test_each_call_closes_its_connection(tmp_path, monkeypatch):
    closed = []

    class TrackingConnection(sqlite3.Connection):
        def close(self):
            closed.append(self)
            super().close()

    real_connect = sqlite3.connect
    monkeypatch.setattr(
        sqlite3, "connect", lambda path: real_connect(path, factory=TrackingConnection)
    )
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))
    after_init = len(closed)

    store.list_reminder_logs()
    store.get_reminder_settings("service_expiry")

    assert after_init == 1
    assert len(closed) == 3
